"""Typed errors raised by the tracking engine.

The HTTP layer maps these onto status codes; everything below it raises
and propagates them unchanged.
"""

from enum import Enum


class PacematesError(Exception):
    """Base class for every error the engine raises on purpose."""


# --------- Position source --------- #

class PositionSourceError(PacematesError):
    kind = "unavailable"


class PermissionDenied(PositionSourceError):
    kind = "permission_denied"


class Unavailable(PositionSourceError):
    kind = "unavailable"


class Timeout(PositionSourceError):
    kind = "timeout"


POSITION_ERRORS = {
    cls.kind: cls for cls in (PermissionDenied, Unavailable, Timeout)
}


class UnreadableTrack(PacematesError, ValueError):
    """A recorded track that cannot be replayed."""


def classify_position_error(error) -> PositionSourceError:
    """Map whatever a position source reported onto one of the three kinds.

    Accepts an already classified error, a builtin exception, or a kind
    string such as ``"permission_denied"``.
    """
    if isinstance(error, PositionSourceError):
        return error
    if isinstance(error, str):
        cls = POSITION_ERRORS.get(error.strip().lower(), Unavailable)
        return cls(f"position source reported {error!r}")
    if isinstance(error, PermissionError):
        return PermissionDenied(str(error) or "location permission denied")
    if isinstance(error, TimeoutError):
        return Timeout(str(error) or "timed out waiting for a position")
    return Unavailable(str(error) or error.__class__.__name__)


# --------- State machine --------- #

class InvalidTransition(PacematesError):
    def __init__(self, operation: str, status: str):
        super().__init__(f"cannot {operation} while {status}")
        self.operation = operation
        self.status = status


# --------- Store / feed --------- #

class StoreError(PacematesError):
    pass


class StoreWriteFailed(StoreError):
    pass


class StoreReadFailed(StoreError):
    pass


class FeedDisconnected(PacematesError):
    pass


class PresenceNotFound(PacematesError, KeyError):
    def __str__(self):
        return f"no visible active session for {self.args[0]!r}"


# --------- Finalization --------- #

class FinalizeStep(str, Enum):
    record_run = "record_run"
    clear_presence = "clear_presence"
    update_statistics = "update_statistics"


class FinalizeError(PacematesError):
    """A finalize step failed; earlier steps stay applied."""

    def __init__(self, step: FinalizeStep, cause: Exception):
        super().__init__(f"finalize failed at {step.value}: {cause}")
        self.step = step
        self.cause = cause
