"""Typed JDWP command helpers built on top of DebuggeeSession."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Sequence

from .constants import Capability, Command
from .errors import ProtocolError
from .packet import IDSizes, ReplyPacket, Value

if TYPE_CHECKING:  # pragma: no cover
    from .session import DebuggeeSession


@dataclass
class VersionInfo:
    description: str
    jdwp_major: int
    jdwp_minor: int
    vm_version: str
    vm_name: str


@dataclass
class LoadedClass:
    type_tag: int
    type_id: int
    status: int


@dataclass
class FieldInfo:
    field_id: int
    name: str
    signature: str
    mod_bits: int


def _check_count(count: int, what: str) -> int:
    if count < 0:
        raise ProtocolError(f"negative {what} count: {count}")
    return count


@dataclass
class CommandClient:
    session: "DebuggeeSession"

    def _request(self, command, fields=()) -> ReplyPacket:
        packet = self.session.new_command(command, fields)
        return self.session.request(packet)

    # ------------------------------------------------------------------
    # VirtualMachine command set
    # ------------------------------------------------------------------
    def version(self) -> VersionInfo:
        reply = self._request(Command.VirtualMachine.Version)
        return VersionInfo(
            description=reply.read_string(),
            jdwp_major=reply.read_int(),
            jdwp_minor=reply.read_int(),
            vm_version=reply.read_string(),
            vm_name=reply.read_string(),
        )

    def id_sizes(self) -> IDSizes:
        reply = self._request(Command.VirtualMachine.IDSizes)
        return IDSizes(
            field_id=reply.read_int(),
            method_id=reply.read_int(),
            object_id=reply.read_int(),
            reference_type_id=reply.read_int(),
            frame_id=reply.read_int(),
        )

    def suspend(self) -> None:
        self._request(Command.VirtualMachine.Suspend)

    def resume(self) -> None:
        self._request(Command.VirtualMachine.Resume)

    def capabilities_new(self) -> List[bool]:
        reply = self._request(Command.VirtualMachine.CapabilitiesNew)
        return [reply.read_boolean() for _ in range(Capability.COUNT)]

    def classes_by_signature(self, signature: str) -> List[LoadedClass]:
        reply = self._request(Command.VirtualMachine.ClassesBySignature, [("string", signature)])
        count = _check_count(reply.read_int(), "class")
        classes = []
        for _ in range(count):
            classes.append(
                LoadedClass(
                    type_tag=reply.read_byte(),
                    type_id=reply.read_reference_type_id(),
                    status=reply.read_int(),
                )
            )
        return classes

    # ------------------------------------------------------------------
    # ReferenceType command set
    # ------------------------------------------------------------------
    def fields(self, reference_type_id: int) -> List[FieldInfo]:
        reply = self._request(Command.ReferenceType.Fields, [("reference_type_id", reference_type_id)])
        count = _check_count(reply.read_int(), "field")
        entries = []
        for _ in range(count):
            entries.append(
                FieldInfo(
                    field_id=reply.read_field_id(),
                    name=reply.read_string(),
                    signature=reply.read_string(),
                    mod_bits=reply.read_int(),
                )
            )
        return entries

    def get_static_values(self, reference_type_id: int, field_ids: Sequence[int]) -> List[Value]:
        fields = [("reference_type_id", reference_type_id), ("int", len(field_ids))]
        fields.extend(("field_id", field_id) for field_id in field_ids)
        reply = self._request(Command.ReferenceType.GetValues, fields)
        count = _check_count(reply.read_int(), "value")
        if count != len(field_ids):
            raise ProtocolError(f"GetValues returned {count} value(s) for {len(field_ids)} field(s)")
        return [reply.read_value() for _ in range(count)]

    # ------------------------------------------------------------------
    # ThreadReference command set
    # ------------------------------------------------------------------
    def thread_name(self, thread_id: int) -> str:
        reply = self._request(Command.ThreadReference.Name, [("object_id", thread_id)])
        return reply.read_string()
