from typing import Optional


class ReminderError(Exception):
    """Base class for reminder subsystem errors.

    `code` names the localized text shown on action pages; `params` fill it in.
    """

    def __init__(self, message: str = "", code: Optional[str] = None, **params):
        super().__init__(message)
        self.code = code
        self.params = params


class ConfigurationError(ReminderError):
    """Required configuration (e.g. transport credentials) is missing; fatal at startup."""


class DeliveryError(ReminderError):
    """The transport rejected the message; retrying the same call will not help."""


class TransientDeliveryError(DeliveryError):
    """The transport was unreachable or timed out; safe to retry."""


class InvalidActionError(ReminderError):
    """An action reference was malformed (unknown action, missing or bad parameters)."""


class NotFoundError(ReminderError):
    """A referenced reminder or schedule item does not exist."""
