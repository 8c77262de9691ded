"""
Exceptions raised by the reading session core.

None of these are fatal: each one leaves the session in a consistent state
and the triggering action can simply be retried.
"""


class SessionError(Exception):
    """Base class for reading session errors."""


class DeviceUnavailable(SessionError):
    """The capture device could not be opened (missing, busy or permission denied)."""


class ClassificationFailure(SessionError):
    """A single frame could not be classified; the tick is skipped."""

    def __init__(self, message: str, flag: str | None = None):
        super().__init__(message)
        self.flag = flag


class InvalidTransition(SessionError):
    """The requested action is not valid in the current session state."""

    def __init__(self, action: str, state: str):
        super().__init__(f"'{action}' is not allowed in state '{state}'")
        self.action = action
        self.state = state


class SessionNotFound(SessionError):
    """No open session matches the given handle."""
