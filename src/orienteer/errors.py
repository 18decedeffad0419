"""
Typed failure reasons for the hunt engine.

Every failure the engine can report is one of these exceptions, so callers (CLI,
HTTP front, UI layers) can branch on the type instead of parsing messages.
Transitions never partially apply: when one of these is raised, the Progress the
caller holds is still the one it had before the call.
"""

from __future__ import annotations


class HuntError(Exception):
    """Base class for all engine errors; `message` is safe to show to a player."""

    code = "hunt_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidHuntError(HuntError):
    """The hunt cannot be played (e.g. it has no waypoints)."""

    code = "invalid_hunt"


class InvalidArgumentError(HuntError):
    """A transition was called with malformed arguments (e.g. negative points)."""

    code = "invalid_argument"


class NotEligibleError(HuntError):
    """Check-in attempted without a position inside the check-in radius of the target."""

    code = "not_eligible"


class AttemptInProgressError(HuntError):
    """Another check-in for the same progress has not resolved yet."""

    code = "attempt_in_progress"


class PermissionDeniedError(HuntError):
    """The location source has no permission; the stream cannot start."""

    code = "permission_denied"


class SessionClosedError(HuntError):
    """The session has no active hunt (never started, ended, or abandoned)."""

    code = "session_closed"


class RemoteError(HuntError):
    """Base class for failures of the remote collaborator."""

    code = "remote_error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteClientError(RemoteError):
    """4xx-equivalent: the server rejected the request and said why."""

    code = "remote_client_error"


class HuntNotFoundError(RemoteClientError):
    """No hunt with the requested id."""

    code = "hunt_not_found"

    def __init__(self, hunt_id: str):
        super().__init__(f"Hunt '{hunt_id}' not found", status_code=404)
        self.hunt_id = hunt_id


class RemoteTransientError(RemoteError):
    """5xx-equivalent or network failure: retrying later may succeed."""

    code = "remote_transient_error"
