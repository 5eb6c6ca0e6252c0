"""Error taxonomy for the remote account stack.

Everything raised by the transport, the executor, the observer and the
reconcilers derives from :class:`AccountSyncError`, so API handlers can map a
single hierarchy to responses.
"""
from enum import Enum
from typing import Optional


class AccountSyncError(Exception):
    """Base class for all reconciler failures."""


class AuthError(AccountSyncError):
    """No credential strategy authenticated against the host."""


class NetworkError(AccountSyncError):
    """The SSH transport could not be established or was lost."""


class ExecutionKind(str, Enum):
    FAILED = "failed"
    ELEVATION = "elevation"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class ExecutionError(AccountSyncError):
    """A remote command exited non-zero, could not elevate, or ran out of time."""

    def __init__(
        self,
        command: str,
        stderr: str = "",
        exit_status: Optional[int] = None,
        kind: ExecutionKind = ExecutionKind.FAILED,
    ):
        self.command = command
        self.stderr = stderr
        self.exit_status = exit_status
        self.kind = kind
        detail = stderr.strip() or f"exit status {exit_status}"
        if kind is ExecutionKind.TIMEOUT:
            detail = "timed out"
        elif kind is ExecutionKind.CANCELLED:
            detail = "cancelled"
        super().__init__(f"Command failed: {command}: {detail}")


class ParseError(AccountSyncError):
    """Introspection output did not match the expected positional format."""

    def __init__(self, command: str, line: str, reason: str):
        self.command = command
        self.line = line
        self.reason = reason
        super().__init__(f"Command failed: {command}: cannot parse {line!r}: {reason}")


class IdentifierError(AccountSyncError):
    """A persisted identifier is not a well-formed integer."""


class EntityNotFoundError(AccountSyncError):
    """An update targeted an id with no matching remote entity."""


class ReplacementRequiredError(AccountSyncError):
    """The requested change cannot be applied in place (e.g. a new uid)."""


def parse_identifier(value: str) -> int:
    """Turns a persisted string identifier back into a numeric id.

    Only plain ASCII digits are accepted; signs, underscores and other
    Unicode digits that int() would take are rejected.
    """
    text = str(value).strip()
    if not (text.isascii() and text.isdigit()):
        raise IdentifierError(f"ID stored is not int: {value!r}")
    return int(text)
