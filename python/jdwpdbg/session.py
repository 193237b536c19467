"""Debuggee lifecycle coordination.

A :class:`DebuggeeSession` is the explicit context handed to every helper in
this package.  It owns the JDWP transport, the debuggee process and the text
side channel, and walks the debuggee through::

    LAUNCHED -> INITIALIZING -> READY -> SUSPENDED -> RESUMED -> TERMINATING -> EXITED

Any step may move the session to ``FAILED`` instead.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, Iterator, Optional

from .commands import CommandClient
from .constants import Command, CommandId, Error, EventKind, error_name
from .errors import (
    CommandError,
    JdwpError,
    NotInitialized,
    ProtocolError,
    SessionStateError,
    TestBug,
    TransportError,
)
from .packet import CommandPacket, Field, IDSizes, ReplyPacket
from .pipe import ERROR, QUIT, READY, IOPipe
from .transport import JdwpTransport

if TYPE_CHECKING:  # pragma: no cover
    from .launcher import DebuggeeProcess

LOGGER = logging.getLogger("jdwpdbg.session")


class SessionState(Enum):
    LAUNCHED = "launched"
    INITIALIZING = "initializing"
    READY = "ready"
    SUSPENDED = "suspended"
    RESUMED = "resumed"
    TERMINATING = "terminating"
    EXITED = "exited"
    FAILED = "failed"


_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.LAUNCHED: frozenset({SessionState.INITIALIZING, SessionState.TERMINATING}),
    SessionState.INITIALIZING: frozenset({SessionState.READY, SessionState.TERMINATING}),
    SessionState.READY: frozenset({SessionState.SUSPENDED, SessionState.TERMINATING}),
    SessionState.SUSPENDED: frozenset({SessionState.RESUMED, SessionState.TERMINATING}),
    SessionState.RESUMED: frozenset({SessionState.SUSPENDED, SessionState.TERMINATING}),
    SessionState.TERMINATING: frozenset({SessionState.EXITED}),
    SessionState.FAILED: frozenset({SessionState.TERMINATING, SessionState.EXITED}),
    SessionState.EXITED: frozenset(),
}


class DebuggeeSession:
    """Explicit session context for one debuggee VM."""

    def __init__(
        self,
        *,
        transport: JdwpTransport,
        process: "DebuggeeProcess",
        pipe: IOPipe,
        wait_timeout: Optional[float] = None,
    ) -> None:
        self.transport = transport
        self.process = process
        self.pipe = pipe
        self.wait_timeout = wait_timeout
        self.state = SessionState.LAUNCHED
        self.exit_code: Optional[int] = None
        self.failure_reason: Optional[str] = None
        self.commands = CommandClient(self)
        self._vm_initialized = False
        self._id_sizes: Optional[IDSizes] = None

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------
    def _transition(self, new_state: SessionState) -> None:
        if new_state is SessionState.FAILED:
            self.state = new_state
            return
        if new_state not in _TRANSITIONS[self.state]:
            raise SessionStateError(f"illegal debuggee transition {self.state.value} -> {new_state.value}")
        LOGGER.debug("debuggee state %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    def _fail(self, reason: str) -> None:
        self.failure_reason = reason
        self._transition(SessionState.FAILED)

    @property
    def vm_initialized(self) -> bool:
        return self._vm_initialized

    @property
    def id_sizes(self) -> IDSizes:
        if self._id_sizes is None:
            raise NotInitialized("ID sizes have not been negotiated yet")
        return self._id_sizes

    # ------------------------------------------------------------------
    # Packet round trips
    # ------------------------------------------------------------------
    def new_command(self, command: CommandId, fields: Iterable[Field] = ()) -> CommandPacket:
        if not self._vm_initialized:
            raise NotInitialized(f"cannot issue command {command} before VM_INIT")
        return self.transport.new_command(command, fields)

    def request(self, command: CommandPacket) -> ReplyPacket:
        """Send ``command`` and return its matched, error-free reply."""
        LOGGER.debug("sending command packet:\n%s", command)
        self.transport.send(command)
        try:
            reply = self.transport.read_reply()
            LOGGER.debug("reply packet received:\n%s", reply)
            self.transport.match_reply(command, reply)
        except (TransportError, ProtocolError):
            self.transport.allocator.release(command.id)
            raise
        if reply.error_code != Error.NONE:
            raise CommandError(command.name, reply.error_code, error_name(reply.error_code))
        reply.reset_position()
        return reply

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def wait_for_vm_init(self) -> None:
        self._transition(SessionState.INITIALIZING)
        LOGGER.debug("waiting for VM_INIT event")
        event = self.transport.next_event()
        if event.command_id != Command.Event.Composite:
            raise TestBug(f"unexpected command packet while waiting for VM_INIT: {event.name}")
        event.reset_position()
        suspend_policy = event.read_byte()
        count = event.read_int()
        if count < 1:
            raise TestBug(f"VM_INIT composite event carries {count} event(s)")
        kind = event.read_byte()
        request_id = event.read_int()
        if kind != EventKind.VM_INIT:
            raise TestBug(f"unexpected event kind {kind} received (expected VM_INIT {EventKind.VM_INIT})")
        LOGGER.debug("VM_INIT received: suspend_policy=%s request_id=%s", suspend_policy, request_id)
        self._vm_initialized = True

    def query_id_sizes(self) -> IDSizes:
        if self._id_sizes is None:
            sizes = self.commands.id_sizes()
            self._id_sizes = sizes
            self.transport.id_sizes = sizes
            LOGGER.debug("ID sizes: %s", sizes)
        return self._id_sizes

    def suspend(self) -> None:
        self.commands.suspend()
        self._transition(SessionState.SUSPENDED)

    def resume(self) -> None:
        self.commands.resume()
        if self.state is SessionState.SUSPENDED:
            self._transition(SessionState.RESUMED)

    @contextmanager
    def suspended(self) -> Iterator["DebuggeeSession"]:
        """Hold every debuggee thread suspended for the duration of the block."""
        LOGGER.debug("suspending all threads in debuggee")
        self.suspend()
        try:
            yield self
        finally:
            LOGGER.debug("resuming all threads in debuggee")
            self.resume()

    def prepare(self) -> None:
        """Bring a freshly launched debuggee to ``READY``.

        Waits for VM_INIT, negotiates ID sizes, resumes the initially suspended
        VM and blocks on the ``ready`` signal.  Raises :class:`TestBug` on any
        other outcome.
        """
        try:
            self.wait_for_vm_init()
            self.query_id_sizes()
            LOGGER.debug("resuming debuggee VM")
            self.resume()
        except JdwpError as exc:
            self._fail(str(exc))
            raise
        LOGGER.debug("waiting for signal from debuggee: %s", READY)
        signal = self.pipe.readln()
        LOGGER.debug("received signal from debuggee: %s", signal)
        if signal is None:
            reason = f"Null signal received from debuggee (expected: {READY})"
        elif signal == ERROR:
            reason = f"Debuggee was not able to start tested thread (received signal: {signal})"
        elif signal != READY:
            reason = f"Unexpected signal received from debuggee: {signal} (expected: {READY})"
        else:
            self._transition(SessionState.READY)
            return
        self._fail(reason)
        raise TestBug(reason)

    def get_capability(self, index: int, name: str = "") -> bool:
        capabilities = self.commands.capabilities_new()
        if not 0 <= index < len(capabilities):
            raise TestBug(f"capability index {index} ({name}) out of range")
        value = capabilities[index]
        LOGGER.debug("capability %s = %s", name or index, value)
        return value

    def quit(self) -> int:
        """Signal the debuggee to quit and return its exit code."""
        if self.exit_code is not None:
            return self.exit_code
        self._transition(SessionState.TERMINATING)
        LOGGER.debug("sending signal to debuggee: %s", QUIT)
        try:
            self.pipe.println(QUIT)
        except (OSError, ValueError) as exc:
            LOGGER.warning("unable to send %s signal: %s", QUIT, exc)
        LOGGER.debug("waiting for debuggee exit")
        self.exit_code = self.process.wait_for(self.wait_timeout)
        self._transition(SessionState.EXITED)
        self.transport.close()
        return self.exit_code

    def close(self) -> None:
        """Release the connection; kill the debuggee if it is still running."""
        self.transport.close()
        if self.process.is_alive():
            self.process.kill()
        self.pipe.close()
        if self.state is not SessionState.EXITED:
            self.state = SessionState.EXITED
