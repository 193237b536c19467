"""
jdwpdbg - JDWP debugger-side toolkit for single-command VM checks.

The package drives a debuggee VM over JDWP and validates command replies.
Each module keeps one responsibility:

    packet.py     → binary packet codec with bounds-checked reads
    transport.py  → socket connection, handshake, reply matching
    pipe.py       → text side channel for readiness signals
    launcher.py   → debuggee process launch and binding
    session.py    → lifecycle state machine (init, ready, suspend, quit)
    commands.py   → typed wrappers around JDWP commands
    queries.py    → fixture lookups (class IDs, static field values)
    validator.py  → CurrentContendedMonitor transaction checks
"""

from .errors import (  # noqa: F401
    CommandError,
    Failure,
    JdwpError,
    MalformedHeader,
    NotInitialized,
    OutOfBounds,
    ProtocolError,
    SessionStateError,
    TestBug,
    TransportError,
    UnexpectedTag,
    UnmatchedReply,
)
from .packet import (  # noqa: F401
    CommandPacket,
    IDSizes,
    PacketIdAllocator,
    ReplyPacket,
    Value,
    decode,
    encode,
)
from .transport import JdwpTransport, TransportConfig  # noqa: F401
from .pipe import IOPipe  # noqa: F401
from .session import DebuggeeSession, SessionState  # noqa: F401
from .launcher import Binder, DebuggeeLauncher, DebuggeeProcess, LaunchConfig  # noqa: F401
from .commands import CommandClient  # noqa: F401
from .queries import get_reference_type_id, query_typed_value  # noqa: F401
from .validator import CheckResult, QueryOutcome, run_query  # noqa: F401

__all__ = [
    "JdwpError",
    "TestBug",
    "Failure",
    "UnexpectedTag",
    "NotInitialized",
    "SessionStateError",
    "TransportError",
    "ProtocolError",
    "MalformedHeader",
    "OutOfBounds",
    "UnmatchedReply",
    "CommandError",
    "CommandPacket",
    "ReplyPacket",
    "IDSizes",
    "PacketIdAllocator",
    "Value",
    "encode",
    "decode",
    "JdwpTransport",
    "TransportConfig",
    "IOPipe",
    "DebuggeeSession",
    "SessionState",
    "Binder",
    "DebuggeeLauncher",
    "DebuggeeProcess",
    "LaunchConfig",
    "CommandClient",
    "get_reference_type_id",
    "query_typed_value",
    "CheckResult",
    "QueryOutcome",
    "run_query",
]

__version__ = "0.1.0"
