"""add dispatch claims and slot keys on reminder logs

Revision ID: 002_add_dispatch_claims
Revises: 001_add_study_schedules
Create Date: 2025-10-20
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '002_add_dispatch_claims'
down_revision = '001_add_study_schedules'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column('reminder_logs', sa.Column('occurrence_at', sa.DateTime(timezone=True), nullable=True))
    op.add_column('reminder_logs', sa.Column('slot_at', sa.DateTime(timezone=True), nullable=True))
    # At most one successful send per (reminder, slot)
    op.create_index(
        'uq_reminder_logs_sent_slot',
        'reminder_logs',
        ['reminder_id', 'slot_at'],
        unique=True,
        postgresql_where=sa.text("status = 'sent'"),
    )

    op.create_table(
        'reminder_dispatch_claims',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('reminder_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('schedule_reminders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('slot_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('occurrence_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('state', sa.String(), nullable=False, server_default='in_flight'),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('claimed_by', sa.String(), nullable=True),
        sa.UniqueConstraint('reminder_id', 'slot_at', name='uq_reminder_dispatch_claims_slot'),
        sa.CheckConstraint("state IN ('in_flight', 'sent')", name='ck_reminder_dispatch_claims_state'),
    )
    # Reaper scans for in-flight claims past their lease
    op.create_index(
        'ix_reminder_dispatch_claims_state_claimed_at',
        'reminder_dispatch_claims',
        ['state', 'claimed_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_reminder_dispatch_claims_state_claimed_at', table_name='reminder_dispatch_claims')
    op.drop_table('reminder_dispatch_claims')
    op.drop_index('uq_reminder_logs_sent_slot', table_name='reminder_logs')
    op.drop_column('reminder_logs', 'slot_at')
    op.drop_column('reminder_logs', 'occurrence_at')
