"""
Send-once gate for reminder dispatch

A dispatch slot is identified by (reminder_id, slot_at). Before sending, a
worker inserts a claim row; the unique constraint on the claims table makes
the insert the single atomic decision point, so two workers racing on the
same slot cannot both acquire it. A claim is either `in_flight` (a worker is
sending) or `sent` (terminal). Failed sends delete the claim so a later scan
can acquire it again. Claims left behind by a dead worker are reaped once
their lease runs out.
"""
import logging
import os
import socket
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple
import uuid

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from studyplanner.models import DispatchClaim
from studyplanner.utils.timezone import to_utc_aware, utcnow
from .config import settings
from .repository import IdLike, LogRepository, as_uuid

logger = logging.getLogger(__name__)


class GateResult(str, Enum):
    ACQUIRED = "acquired"
    ALREADY_SENT = "already_sent"
    IN_FLIGHT = "in_flight"


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class DispatchGate:
    def __init__(
        self,
        session_factory: sessionmaker,
        lease_seconds: Optional[int] = None,
        worker_id: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.lease = timedelta(seconds=lease_seconds if lease_seconds is not None else settings.CLAIM_LEASE_SECONDS)
        self.worker_id = worker_id or default_worker_id()
        self.clock = clock

    def _claim_filter(self, reminder_id, slot_at):
        return (DispatchClaim.reminder_id == reminder_id, DispatchClaim.slot_at == slot_at)

    def try_acquire(
        self,
        reminder_id: IdLike,
        slot_at: datetime,
        occurrence_at: Optional[datetime] = None,
    ) -> GateResult:
        rid = as_uuid(reminder_id)
        slot = to_utc_aware(slot_at)
        now = self.clock()

        with self.session_factory() as db:
            try:
                db.add(
                    DispatchClaim(
                        reminder_id=rid,
                        slot_at=slot,
                        occurrence_at=to_utc_aware(occurrence_at),
                        state="in_flight",
                        claimed_at=now,
                        claimed_by=self.worker_id,
                    )
                )
                db.commit()
                logger.debug(f"🔒 [Gate] Acquired {rid} @ {slot.isoformat()}")
                return GateResult.ACQUIRED
            except IntegrityError:
                db.rollback()

            claim = db.execute(select(DispatchClaim).where(*self._claim_filter(rid, slot))).scalars().first()
            if claim is None:
                # Released between our insert and this read; the next scan picks it up
                return GateResult.IN_FLIGHT
            if claim.state == "sent":
                return GateResult.ALREADY_SENT

            if to_utc_aware(claim.claimed_at) >= now - self.lease:
                return GateResult.IN_FLIGHT

            # Take over an in-flight claim whose holder stopped renewing it
            result = db.execute(
                update(DispatchClaim)
                .where(DispatchClaim.id == claim.id)
                .where(DispatchClaim.state == "in_flight")
                .where(DispatchClaim.claimed_at < now - self.lease)
                .values(claimed_at=now, claimed_by=self.worker_id)
            )
            db.commit()
            if result.rowcount == 1:
                logger.warning(
                    f"⚠️ [Gate] Took over stale claim {rid} @ {slot.isoformat()} from {claim.claimed_by}"
                )
                return GateResult.ACQUIRED
            return GateResult.IN_FLIGHT

    def mark_sent(
        self,
        reminder_id: IdLike,
        slot_at: datetime,
        occurrence_at: Optional[datetime] = None,
        at: Optional[datetime] = None,
    ) -> bool:
        """Flip the claim to `sent` and append the sent log row atomically.

        Returns False when a sent row for the slot already exists; the unique
        index rejected the duplicate and nothing was written.
        """
        rid = as_uuid(reminder_id)
        slot = to_utc_aware(slot_at)
        with self.session_factory() as db:
            try:
                db.execute(
                    update(DispatchClaim).where(*self._claim_filter(rid, slot)).values(state="sent")
                )
                db.add(LogRepository.build_entry(rid, "sent", slot_at=slot, occurrence_at=occurrence_at, at=at or self.clock()))
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.error(f"❌ [Gate] Duplicate sent entry rejected for {rid} @ {slot.isoformat()}")
                return False
        return True

    def release(
        self,
        reminder_id: IdLike,
        slot_at: datetime,
        error_message: Optional[str] = None,
        occurrence_at: Optional[datetime] = None,
        at: Optional[datetime] = None,
    ) -> None:
        """Drop the in-flight claim after a failed send and record the failure."""
        rid = as_uuid(reminder_id)
        slot = to_utc_aware(slot_at)
        with self.session_factory() as db:
            db.execute(
                delete(DispatchClaim)
                .where(*self._claim_filter(rid, slot))
                .where(DispatchClaim.state == "in_flight")
            )
            db.add(
                LogRepository.build_entry(
                    rid,
                    "failed",
                    slot_at=slot,
                    occurrence_at=occurrence_at,
                    error_message=error_message,
                    at=at or self.clock(),
                )
            )
            db.commit()
        logger.info(f"🔓 [Gate] Released {rid} @ {slot.isoformat()}")

    def reap_stale(self, now: Optional[datetime] = None) -> List[Tuple[uuid.UUID, datetime]]:
        """Release in-flight claims whose lease ran out, recording each as a failed attempt.

        A worker that dies between acquiring a slot and recording the outcome
        leaves its claim behind. Reaping turns that claim into a `failed` log
        row, which the retry sweep then picks up like any other failed send.
        """
        now = to_utc_aware(now) if now else self.clock()
        cutoff = now - self.lease
        reaped = []
        with self.session_factory() as db:
            stale = db.execute(
                select(DispatchClaim)
                .where(DispatchClaim.state == "in_flight")
                .where(DispatchClaim.claimed_at < cutoff)
            ).scalars().all()
            for claim in stale:
                result = db.execute(
                    delete(DispatchClaim)
                    .where(DispatchClaim.id == claim.id)
                    .where(DispatchClaim.state == "in_flight")
                    .where(DispatchClaim.claimed_at < cutoff)
                )
                if result.rowcount != 1:
                    continue
                db.add(
                    LogRepository.build_entry(
                        claim.reminder_id,
                        "failed",
                        slot_at=claim.slot_at,
                        occurrence_at=claim.occurrence_at,
                        error_message=f"Abandoned in flight by {claim.claimed_by}",
                        at=now,
                    )
                )
                reaped.append((claim.reminder_id, to_utc_aware(claim.slot_at)))
            db.commit()
        for rid, slot in reaped:
            logger.warning(f"⚠️ [Gate] Reaped abandoned claim {rid} @ {slot.isoformat()}")
        return reaped
