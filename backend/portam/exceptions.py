"""Exceptions raised while evaluating a tap-in."""

from portam.messages import OutcomeKind


class ValidationDenied(Exception):
    """A tap-in was refused for an expected, user-facing reason."""

    def __init__(self, kind: OutcomeKind, reason: str = ""):
        super().__init__(reason or kind.value)
        self.kind = kind
        self.reason = reason


class CannotInitialize(ValidationDenied):
    """The issued product cannot be started at this station."""

    def __init__(self, reason: str = ""):
        super().__init__(OutcomeKind.CANNOT_INITIALIZE, reason)


class FareStoreError(Exception):
    """The fare-record store could not complete an operation."""


class StaleUserTitleError(FareStoreError):
    """A conditional write found the issued product changed since it was read."""


class LockTimeout(FareStoreError):
    """The per-product validation lock could not be acquired in time."""
