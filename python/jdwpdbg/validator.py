"""Request/response transaction checks for ThreadReference.CurrentContendedMonitor.

A transaction is ``encode -> send -> receive -> match -> parse -> validate``.
Transport and wire-shape problems stop the transaction at the failing stage
and are recorded as a failed check; they never propagate.  Once the reply has
been parsed, the content checks are evaluated independently so that one
failing check never hides another.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from .constants import Command, Error, Tag, error_name, tag_name
from .errors import ProtocolError, TransportError
from .packet import CommandPacket, ReplyPacket

if TYPE_CHECKING:  # pragma: no cover
    from .session import DebuggeeSession

LOGGER = logging.getLogger("jdwpdbg.validator")

CHECK_SEND = "send"
CHECK_RECEIVE = "receive"
CHECK_HEADER = "header"
CHECK_ERROR_CODE = "error_code"
CHECK_PARSE_TAG = "parse_tag"
CHECK_PARSE_OBJECT_ID = "parse_object_id"
CHECK_TAG = "tag"
CHECK_NON_NEGATIVE = "non_negative"
CHECK_EXPECTED_VALUE = "expected_value"
CHECK_FULLY_CONSUMED = "fully_consumed"

CONTENT_CHECKS = (CHECK_TAG, CHECK_NON_NEGATIVE, CHECK_EXPECTED_VALUE, CHECK_FULLY_CONSUMED)


@dataclass
class CheckResult:
    name: str
    passed: bool
    detail: str = ""


@dataclass
class QueryOutcome:
    """Structured result of one command transaction."""

    command: str
    checks: List[CheckResult] = field(default_factory=list)
    tag: Optional[int] = None
    object_id: Optional[int] = None

    def record(self, name: str, passed: bool, detail: str = "") -> bool:
        self.checks.append(CheckResult(name, passed, detail))
        if not passed:
            LOGGER.error("%s: %s", self.command, detail or name)
        return passed

    def check(self, name: str) -> Optional[CheckResult]:
        for result in self.checks:
            if result.name == name:
                return result
        return None

    @property
    def failed_checks(self) -> List[CheckResult]:
        return [result for result in self.checks if not result.passed]

    @property
    def passed(self) -> bool:
        return bool(self.checks) and not self.failed_checks


def exchange(session: "DebuggeeSession", command: CommandPacket, outcome: QueryOutcome) -> Optional[ReplyPacket]:
    """Send ``command`` and return its matched reply, or ``None`` after recording why not."""
    transport = session.transport
    try:
        LOGGER.debug("sending command packet:\n%s", command)
        transport.send(command)
    except (TransportError, ProtocolError) as exc:
        outcome.record(CHECK_SEND, False, f"Unable to send command packet: {exc}")
        return None
    try:
        LOGGER.debug("waiting for reply packet")
        reply = transport.read_reply()
        LOGGER.debug("reply packet received:\n%s", reply)
    except (TransportError, ProtocolError) as exc:
        transport.allocator.release(command.id)
        outcome.record(CHECK_RECEIVE, False, f"Unable to read reply packet: {exc}")
        return None
    try:
        transport.match_reply(command, reply)
    except ProtocolError as exc:
        transport.allocator.release(command.id)
        outcome.record(CHECK_HEADER, False, f"Bad header of reply packet: {exc}")
        return None
    if reply.error_code != Error.NONE:
        outcome.record(
            CHECK_ERROR_CODE,
            False,
            f"Reply packet carries error {error_name(reply.error_code)} ({reply.error_code})",
        )
        return None
    return reply


def run_query(session: "DebuggeeSession", thread_id: int, expected_monitor_id: int) -> QueryOutcome:
    """Issue CurrentContendedMonitor for ``thread_id`` and validate the reply."""
    LOGGER.debug("create command packet: ThreadReference.CurrentContendedMonitor threadID=%s", thread_id)
    command = session.new_command(Command.ThreadReference.CurrentContendedMonitor, [("object_id", thread_id)])
    outcome = QueryOutcome(command.name)

    reply = exchange(session, command, outcome)
    if reply is None:
        return outcome

    reply.reset_position()
    try:
        tag = reply.read_byte()
    except ProtocolError as exc:
        outcome.record(CHECK_PARSE_TAG, False, f"Unable to extract tag for contended monitor object: {exc}")
        return outcome
    outcome.tag = tag
    LOGGER.debug("    tag: %s", tag)
    try:
        object_id = reply.read_object_id()
    except ProtocolError as exc:
        outcome.record(CHECK_PARSE_OBJECT_ID, False, f"Unable to extract contended monitor objectID: {exc}")
        return outcome
    outcome.object_id = object_id
    LOGGER.debug("    objectID: %s", object_id)

    outcome.record(
        CHECK_TAG,
        tag == Tag.OBJECT,
        f"Unexpected tag for monitor object received: {tag_name(tag)} (expected: {tag_name(Tag.OBJECT)})",
    )
    outcome.record(
        CHECK_NON_NEGATIVE,
        object_id >= 0,
        f"Negative value of objectID received: {object_id}",
    )
    outcome.record(
        CHECK_EXPECTED_VALUE,
        object_id == expected_monitor_id,
        f"Unexpected monitor objectID received: {object_id} (expected: {expected_monitor_id})",
    )
    outcome.record(
        CHECK_FULLY_CONSUMED,
        reply.is_parsed(),
        f"Extra trailing bytes found in reply packet at: {reply.offset_string()}",
    )
    return outcome
