"""JDWP protocol constants used by the contended monitor check.

Command identifiers are ``(command_set, command)`` tuples so they can be passed
straight to :func:`python.jdwpdbg.packet.encode`.
"""

from __future__ import annotations

from typing import Dict, Tuple

HANDSHAKE = b"JDWP-Handshake"

HEADER_SIZE = 11
REPLY_FLAG = 0x80

CommandId = Tuple[int, int]


class Command:
    class VirtualMachine:
        Version: CommandId = (1, 1)
        ClassesBySignature: CommandId = (1, 2)
        IDSizes: CommandId = (1, 7)
        Suspend: CommandId = (1, 8)
        Resume: CommandId = (1, 9)
        CapabilitiesNew: CommandId = (1, 17)

    class ReferenceType:
        Fields: CommandId = (2, 4)
        GetValues: CommandId = (2, 6)

    class ThreadReference:
        Name: CommandId = (11, 1)
        CurrentContendedMonitor: CommandId = (11, 9)

    class Event:
        Composite: CommandId = (64, 100)


COMMAND_NAMES: Dict[CommandId, str] = {
    Command.VirtualMachine.Version: "VirtualMachine.Version",
    Command.VirtualMachine.ClassesBySignature: "VirtualMachine.ClassesBySignature",
    Command.VirtualMachine.IDSizes: "VirtualMachine.IDSizes",
    Command.VirtualMachine.Suspend: "VirtualMachine.Suspend",
    Command.VirtualMachine.Resume: "VirtualMachine.Resume",
    Command.VirtualMachine.CapabilitiesNew: "VirtualMachine.CapabilitiesNew",
    Command.ReferenceType.Fields: "ReferenceType.Fields",
    Command.ReferenceType.GetValues: "ReferenceType.GetValues",
    Command.ThreadReference.Name: "ThreadReference.Name",
    Command.ThreadReference.CurrentContendedMonitor: "ThreadReference.CurrentContendedMonitor",
    Command.Event.Composite: "Event.Composite",
}


def command_name(command: CommandId) -> str:
    return COMMAND_NAMES.get(tuple(command), f"Command{tuple(command)}")


class Tag:
    ARRAY = ord("[")
    BYTE = ord("B")
    CHAR = ord("C")
    OBJECT = ord("L")
    FLOAT = ord("F")
    DOUBLE = ord("D")
    INT = ord("I")
    LONG = ord("J")
    SHORT = ord("S")
    VOID = ord("V")
    BOOLEAN = ord("Z")
    STRING = ord("s")
    THREAD = ord("t")
    THREAD_GROUP = ord("g")
    CLASS_LOADER = ord("l")
    CLASS_OBJECT = ord("c")


OBJECT_TAGS = frozenset(
    {
        Tag.ARRAY,
        Tag.OBJECT,
        Tag.STRING,
        Tag.THREAD,
        Tag.THREAD_GROUP,
        Tag.CLASS_LOADER,
        Tag.CLASS_OBJECT,
    }
)

TAG_NAMES: Dict[int, str] = {
    value: name for name, value in vars(Tag).items() if isinstance(value, int)
}


def tag_name(tag: int) -> str:
    name = TAG_NAMES.get(tag)
    if name is None:
        return f"<unknown tag {tag}>"
    return f"{name} ({chr(tag)!r})"


class TypeTag:
    CLASS = 1
    INTERFACE = 2
    ARRAY = 3


class EventKind:
    VM_START = 90
    VM_INIT = 90
    VM_DEATH = 99


class SuspendPolicy:
    NONE = 0
    EVENT_THREAD = 1
    ALL = 2


class Modifier:
    STATIC = 0x0008


class Capability:
    """Indices into the VirtualMachine.CapabilitiesNew reply."""

    CAN_WATCH_FIELD_MODIFICATION = 0
    CAN_WATCH_FIELD_ACCESS = 1
    CAN_GET_BYTECODES = 2
    CAN_GET_SYNTHETIC_ATTRIBUTE = 3
    CAN_GET_OWNED_MONITOR_INFO = 4
    CAN_GET_CURRENT_CONTENDED_MONITOR = 5
    CAN_GET_MONITOR_INFO = 6
    COUNT = 32


class Error:
    NONE = 0
    INVALID_THREAD = 10
    INVALID_THREAD_GROUP = 11
    THREAD_NOT_SUSPENDED = 13
    INVALID_OBJECT = 20
    INVALID_CLASS = 21
    INVALID_FIELDID = 25
    NOT_IMPLEMENTED = 99
    NULL_POINTER = 100
    ABSENT_INFORMATION = 101
    INTERNAL = 113
    VM_DEAD = 112


ERROR_NAMES: Dict[int, str] = {
    value: name for name, value in vars(Error).items() if isinstance(value, int)
}


def error_name(code: int) -> str:
    return ERROR_NAMES.get(code, "UNKNOWN")
