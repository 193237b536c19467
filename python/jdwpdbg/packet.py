"""JDWP packet codec.

Every JDWP packet starts with an 11 byte big-endian header::

    length:u32  id:u32  flags:u8  command_set:u8 command:u8   (command)
    length:u32  id:u32  flags:u8  error_code:u16              (reply)

Identifier fields (objectID, referenceTypeID, ...) have VM specific widths that
are negotiated once per session through ``VirtualMachine.IDSizes``; packets
therefore carry the :class:`IDSizes` they were built or decoded with.  All reads
go through a single bounds-checked cursor so a short reply always surfaces as
:class:`OutOfBounds` instead of silently truncated data.
"""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Set, Tuple

from .constants import (
    HEADER_SIZE,
    OBJECT_TAGS,
    REPLY_FLAG,
    CommandId,
    Tag,
    command_name,
    error_name,
    tag_name,
)
from .errors import MalformedHeader, OutOfBounds, ProtocolError, UnexpectedTag

_HEADER = struct.Struct(">IIB")
_COMMAND_TAIL = struct.Struct(">BB")
_REPLY_TAIL = struct.Struct(">H")

_U8 = struct.Struct(">B")
_I16 = struct.Struct(">h")
_U16 = struct.Struct(">H")
_I32 = struct.Struct(">i")
_I64 = struct.Struct(">q")
_F32 = struct.Struct(">f")
_F64 = struct.Struct(">d")

# 8 byte IDs are read as signed so that negative IDs stay detectable.
_ID_STRUCTS = {
    1: struct.Struct(">B"),
    2: struct.Struct(">H"),
    4: struct.Struct(">I"),
    8: struct.Struct(">q"),
}

_MAX_PACKET_ID = 0x7FFFFFFF


@dataclass(frozen=True)
class IDSizes:
    """Widths (in bytes) of the variably sized JDWP identifiers."""

    field_id: int = 8
    method_id: int = 8
    object_id: int = 8
    reference_type_id: int = 8
    frame_id: int = 8

    def __post_init__(self) -> None:
        for name in ("field_id", "method_id", "object_id", "reference_type_id", "frame_id"):
            size = getattr(self, name)
            if size not in _ID_STRUCTS:
                raise ProtocolError(f"unsupported {name} size: {size}")


DEFAULT_ID_SIZES = IDSizes()


class PacketIdAllocator:
    """Hands out packet identifiers that are unique among pending requests."""

    def __init__(self, start: int = 1) -> None:
        self._next = start
        self._outstanding: Set[int] = set()
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            if len(self._outstanding) >= _MAX_PACKET_ID:
                raise ProtocolError("packet id space exhausted")
            while True:
                candidate = self._next
                self._next = candidate + 1 if candidate < _MAX_PACKET_ID else 1
                if candidate not in self._outstanding:
                    self._outstanding.add(candidate)
                    return candidate

    def release(self, packet_id: int) -> None:
        with self._lock:
            self._outstanding.discard(packet_id)

    def is_outstanding(self, packet_id: int) -> bool:
        with self._lock:
            return packet_id in self._outstanding

    @property
    def outstanding(self) -> Tuple[int, ...]:
        with self._lock:
            return tuple(sorted(self._outstanding))


@dataclass(frozen=True)
class Value:
    """Tagged JDWP value (primitive scalar or object reference)."""

    tag: int
    value: Any

    @property
    def is_object(self) -> bool:
        return self.tag in OBJECT_TAGS

    def object_id(self, expected_tag: int, *, where: str = "") -> int:
        """Return the object ID, insisting on ``expected_tag``."""
        if self.tag != expected_tag:
            raise UnexpectedTag(self.tag, expected_tag, where=where)
        if not self.is_object:
            raise ProtocolError(f"{tag_name(self.tag)} value does not carry an object ID")
        return int(self.value)

    def __str__(self) -> str:
        return f"{tag_name(self.tag)}: {self.value!r}"


def _id_struct(size: int) -> struct.Struct:
    try:
        return _ID_STRUCTS[size]
    except KeyError:
        raise ProtocolError(f"unsupported ID size: {size}") from None


def _decode_modified_utf8(raw: bytes) -> str:
    """Decode JDWP modified UTF-8 (``C0 80`` for NUL, surrogate pairs for
    supplementary characters).  Malformed input raises ``UnicodeError``."""
    text = raw.replace(b"\xc0\x80", b"\x00").decode("utf-8", errors="surrogatepass")
    return text.encode("utf-16-be", errors="surrogatepass").decode("utf-16-be")


def _hex_rows(data: bytes, *, width: int = 16) -> List[str]:
    rows = []
    for offset in range(0, len(data), width):
        chunk = data[offset:offset + width]
        rows.append(f"    {offset:04X}: {' '.join(f'{b:02X}' for b in chunk)}")
    return rows


class Packet:
    """Common state of command and reply packets: header fields, data, cursor."""

    def __init__(
        self,
        packet_id: int,
        flags: int,
        data: bytes = b"",
        *,
        id_sizes: Optional[IDSizes] = None,
    ) -> None:
        self.id = packet_id
        self.flags = flags
        self.data = bytearray(data)
        self.id_sizes = id_sizes or DEFAULT_ID_SIZES
        self.position = 0
        self.length: Optional[int] = None
        self._frozen = False

    # ------------------------------------------------------------------
    # Header helpers
    # ------------------------------------------------------------------
    @property
    def is_reply(self) -> bool:
        return bool(self.flags & REPLY_FLAG)

    def set_length(self) -> int:
        """Finalize the header length field from the current data."""
        self.length = HEADER_SIZE + len(self.data)
        return self.length

    def _header_tail(self) -> bytes:
        raise NotImplementedError

    def to_bytes(self) -> bytes:
        if self.length != HEADER_SIZE + len(self.data):
            raise MalformedHeader(f"packet {self.id}: length not finalized (call set_length())")
        return _HEADER.pack(self.length, self.id, self.flags) + self._header_tail() + bytes(self.data)

    def freeze(self) -> None:
        self._frozen = True

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------
    def _append(self, raw: bytes) -> None:
        if self._frozen:
            raise ProtocolError(f"packet {self.id} already sent")
        self.data.extend(raw)

    def add_byte(self, value: int) -> None:
        self._append(_U8.pack(value & 0xFF))

    def add_boolean(self, value: bool) -> None:
        self.add_byte(1 if value else 0)

    def add_short(self, value: int) -> None:
        self._append(_I16.pack(value))

    def add_int(self, value: int) -> None:
        self._append(_I32.pack(value))

    def add_long(self, value: int) -> None:
        self._append(_I64.pack(value))

    def add_string(self, value: str) -> None:
        raw = value.encode("utf-8")
        self.add_int(len(raw))
        self._append(raw)

    def add_id(self, value: int, size: int) -> None:
        _id_struct(size)
        mask = (1 << (8 * size)) - 1
        self._append((int(value) & mask).to_bytes(size, "big"))

    def add_object_id(self, value: int) -> None:
        self.add_id(value, self.id_sizes.object_id)

    def add_reference_type_id(self, value: int) -> None:
        self.add_id(value, self.id_sizes.reference_type_id)

    def add_field_id(self, value: int) -> None:
        self.add_id(value, self.id_sizes.field_id)

    def add_bytes(self, raw: bytes) -> None:
        self._append(bytes(raw))

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------
    def reset_position(self) -> None:
        self.position = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.position

    def is_parsed(self) -> bool:
        return self.position == len(self.data)

    def offset_string(self) -> str:
        return f"0x{self.position:04X}"

    def _take(self, size: int) -> bytes:
        end = self.position + size
        if size < 0 or end > len(self.data):
            raise OutOfBounds(size, self.position, len(self.data))
        chunk = bytes(self.data[self.position:end])
        self.position = end
        return chunk

    def _read(self, fmt: struct.Struct) -> Any:
        return fmt.unpack(self._take(fmt.size))[0]

    def read_byte(self) -> int:
        return self._read(_U8)

    def read_boolean(self) -> bool:
        return self.read_byte() != 0

    def read_short(self) -> int:
        return self._read(_I16)

    def read_char(self) -> int:
        return self._read(_U16)

    def read_int(self) -> int:
        return self._read(_I32)

    def read_long(self) -> int:
        return self._read(_I64)

    def read_float(self) -> float:
        return self._read(_F32)

    def read_double(self) -> float:
        return self._read(_F64)

    def read_string(self) -> str:
        start = self.position
        length = self.read_int()
        if length < 0:
            self.position = start
            raise ProtocolError(f"negative string length {length} at offset 0x{start:04X}")
        raw = self._take(length)
        try:
            return _decode_modified_utf8(raw)
        except UnicodeError as exc:
            self.position = start
            raise ProtocolError(f"invalid string bytes at offset 0x{start:04X}: {exc}") from exc

    def read_id(self, size: int) -> int:
        return self._read(_id_struct(size))

    def read_object_id(self) -> int:
        return self.read_id(self.id_sizes.object_id)

    def read_reference_type_id(self) -> int:
        return self.read_id(self.id_sizes.reference_type_id)

    def read_field_id(self) -> int:
        return self.read_id(self.id_sizes.field_id)

    def read_method_id(self) -> int:
        return self.read_id(self.id_sizes.method_id)

    def read_frame_id(self) -> int:
        return self.read_id(self.id_sizes.frame_id)

    def read_untagged_value(self, tag: int) -> Value:
        if tag in OBJECT_TAGS:
            return Value(tag, self.read_object_id())
        if tag == Tag.BYTE:
            return Value(tag, struct.unpack(">b", self._take(1))[0])
        if tag == Tag.BOOLEAN:
            return Value(tag, self.read_boolean())
        if tag == Tag.CHAR:
            return Value(tag, self.read_char())
        if tag == Tag.SHORT:
            return Value(tag, self.read_short())
        if tag == Tag.INT:
            return Value(tag, self.read_int())
        if tag == Tag.LONG:
            return Value(tag, self.read_long())
        if tag == Tag.FLOAT:
            return Value(tag, self.read_float())
        if tag == Tag.DOUBLE:
            return Value(tag, self.read_double())
        if tag == Tag.VOID:
            return Value(tag, None)
        raise ProtocolError(f"unknown value tag {tag} at offset {self.offset_string()}")

    def read_value(self) -> Value:
        return self.read_untagged_value(self.read_byte())

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def _describe(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        lines = [self._describe(), f"    data ({len(self.data)} bytes):"]
        lines.extend(_hex_rows(bytes(self.data)))
        return "\n".join(lines)


class CommandPacket(Packet):
    """Command sent by the debugger (or an event sent by the VM)."""

    def __init__(
        self,
        command: CommandId,
        packet_id: int,
        data: bytes = b"",
        *,
        id_sizes: Optional[IDSizes] = None,
    ) -> None:
        super().__init__(packet_id, 0, data, id_sizes=id_sizes)
        self.command_set, self.command = int(command[0]), int(command[1])

    @property
    def command_id(self) -> CommandId:
        return (self.command_set, self.command)

    @property
    def name(self) -> str:
        return command_name(self.command_id)

    def _header_tail(self) -> bytes:
        return _COMMAND_TAIL.pack(self.command_set, self.command)

    def _describe(self) -> str:
        return (
            f"CommandPacket id={self.id} length={self.length} flags=0x{self.flags:02X} "
            f"command={self.name} ({self.command_set}/{self.command})"
        )


class ReplyPacket(Packet):
    """Reply sent by the VM for a previously issued command."""

    def __init__(
        self,
        packet_id: int,
        error_code: int = 0,
        data: bytes = b"",
        *,
        id_sizes: Optional[IDSizes] = None,
    ) -> None:
        super().__init__(packet_id, REPLY_FLAG, data, id_sizes=id_sizes)
        self.error_code = error_code

    def _header_tail(self) -> bytes:
        return _REPLY_TAIL.pack(self.error_code)

    def _describe(self) -> str:
        return (
            f"ReplyPacket id={self.id} length={self.length} flags=0x{self.flags:02X} "
            f"error={error_name(self.error_code)} ({self.error_code})"
        )


Field = Tuple[str, Any]


def encode(
    command: CommandId,
    fields: Iterable[Field] = (),
    *,
    allocator: PacketIdAllocator,
    id_sizes: Optional[IDSizes] = None,
) -> CommandPacket:
    """Build a finalized command packet.

    ``fields`` are ``(kind, value)`` pairs written in order through the
    matching ``add_<kind>`` writer, e.g. ``("object_id", thread_id)``.
    """

    packet = CommandPacket(command, allocator.allocate(), id_sizes=id_sizes)
    try:
        for kind, value in fields:
            writer = getattr(packet, f"add_{kind}", None)
            if writer is None:
                raise ValueError(f"unknown field kind {kind!r}")
            writer(value)
    except Exception:
        allocator.release(packet.id)
        raise
    packet.set_length()
    return packet


def decode(raw: bytes, *, id_sizes: Optional[IDSizes] = None) -> Packet:
    """Parse one complete packet, validating the header before the payload."""

    raw = bytes(raw)
    if len(raw) < HEADER_SIZE:
        raise MalformedHeader(f"truncated header: {len(raw)} of {HEADER_SIZE} byte(s)")
    length, packet_id, flags = _HEADER.unpack_from(raw, 0)
    if length != len(raw):
        raise MalformedHeader(f"declared length {length} does not match {len(raw)} byte(s) available")
    payload = raw[HEADER_SIZE:]
    packet: Packet
    if flags == REPLY_FLAG:
        (error_code,) = _REPLY_TAIL.unpack_from(raw, _HEADER.size)
        packet = ReplyPacket(packet_id, error_code, payload, id_sizes=id_sizes)
    elif flags == 0:
        command_set, command = _COMMAND_TAIL.unpack_from(raw, _HEADER.size)
        packet = CommandPacket((command_set, command), packet_id, payload, id_sizes=id_sizes)
    else:
        raise MalformedHeader(f"unexpected flags 0x{flags:02X} in packet {packet_id}")
    packet.length = length
    packet.freeze()
    return packet

