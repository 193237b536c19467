"""Error types shared by the jdwpdbg toolkit."""

from __future__ import annotations

from typing import Optional


class JdwpError(RuntimeError):
    """Base class for all jdwpdbg errors."""


class TestBug(JdwpError):
    """Raised when the debuggee cannot be brought into a testable state."""

    __test__ = False


class Failure(JdwpError):
    """Raised when the debuggee reports data that contradicts the test."""


class UnexpectedTag(Failure):
    """Raised when a value carries a different type tag than requested."""

    def __init__(self, received: int, expected: int, *, where: str = "") -> None:
        self.received = received
        self.expected = expected
        self.where = where
        prefix = f"wrong tag for {where}" if where else "wrong tag"
        super().__init__(f"{prefix}: {received} (expected: {expected})")


class NotInitialized(JdwpError):
    """Raised when a command is issued before the VM_INIT event arrived."""


class SessionStateError(TestBug):
    """Raised on an illegal debuggee lifecycle transition."""


class TransportError(JdwpError):
    """Raised when the transport cannot complete an operation."""


class ProtocolError(JdwpError):
    """Raised when a packet does not conform to the JDWP wire shape."""


class MalformedHeader(ProtocolError):
    """Raised when a packet header is truncated or its length is inconsistent."""


class OutOfBounds(ProtocolError):
    """Raised when a read would run past the end of the packet data."""

    def __init__(self, needed: int, position: int, available: int) -> None:
        self.needed = needed
        self.position = position
        self.available = available
        super().__init__(
            f"cannot read {needed} byte(s) at offset {position}: "
            f"only {max(0, available - position)} byte(s) left"
        )


class UnmatchedReply(ProtocolError):
    """Raised when a reply identifier differs from its command identifier."""

    def __init__(self, expected_id: int, received_id: int) -> None:
        self.expected_id = expected_id
        self.received_id = received_id
        super().__init__(f"reply id {received_id} does not match command id {expected_id}")


class CommandError(JdwpError):
    """Raised when the debuggee answers a command with a non-zero error code."""

    def __init__(self, command_name: str, error_code: int, error_name: Optional[str] = None) -> None:
        self.command_name = command_name
        self.error_code = error_code
        label = f"{error_name} ({error_code})" if error_name else str(error_code)
        super().__init__(f"{command_name} failed with error {label}")
