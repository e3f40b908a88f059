"""Exception taxonomy for the reconciliation engine.

Transport faults (``TransportClosedError``, ``CommandTimeoutError``) are
retried once by the session coordinator. Everything else reaches the caller
with the command and device message attached.
"""
from typing import Optional, Sequence


class RTXError(Exception):
    """Base class for all engine errors."""
    pass


class ConnectError(RTXError):
    """The remote shell connection could not be established."""
    pass


class AuthenticationError(ConnectError):
    """The device rejected the login credentials."""
    pass


class TransportClosedError(RTXError, ConnectionError):
    """The connection dropped while a command was in flight."""
    pass


class CommandTimeoutError(RTXError, TimeoutError):
    """No prompt was seen before the command deadline."""

    def __init__(self, message: str, command: Optional[str] = None, partial_output: str = ""):
        super().__init__(message)
        self.command = command
        self.partial_output = partial_output


class PrivilegeError(RTXError):
    """Administrator elevation was rejected."""
    pass


class MalformedOutputError(RTXError):
    """Device output is inconsistent with the resource being present."""
    pass


class GrammarError(RTXError):
    """A grammar, template or desired record is not well formed."""
    pass


class NotFoundError(RTXError):
    """The requested resource does not exist on the device."""
    pass


class CommandError(RTXError):
    """The device reported an error for a read-only command."""

    def __init__(self, command: str, device_message: str):
        super().__init__(f"Command '{command}' failed: {device_message}")
        self.command = command
        self.device_message = device_message


class SessionError(RTXError):
    """The session retry budget is exhausted; the session is closed."""
    pass


class DeadlineExceeded(SessionError):
    """The caller's deadline expired; the session was torn down."""
    pass


class ApplyError(RTXError):
    """A command plan stopped part way through.

    Attributes:
        executed: results of commands the device accepted, in order
        failed: the command that was rejected or could not be confirmed
        failed_result: its CommandResult (device error or timeout), when one exists
        not_confirmed: the failed command followed by every command never sent
        device_message: the device's error text, if the device reported one
    """

    def __init__(
        self,
        message: str,
        executed: Sequence = (),
        failed=None,
        not_confirmed: Sequence = (),
        device_message: Optional[str] = None,
        failed_result=None,
    ):
        super().__init__(message)
        self.executed = list(executed)
        self.failed = failed
        self.not_confirmed = list(not_confirmed)
        self.device_message = device_message
        self.failed_result = failed_result

    @property
    def executed_commands(self) -> list[str]:
        return [r.command.text for r in self.executed]

    @property
    def not_confirmed_commands(self) -> list[str]:
        return [c.text for c in self.not_confirmed]

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "executed": self.executed_commands,
            "failed": self.failed.text if self.failed is not None else None,
            "not_confirmed": self.not_confirmed_commands,
            "signal": self.failed_result.signal.value if self.failed_result is not None else None,
            "device_message": self.device_message,
        }
