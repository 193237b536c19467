"""In-process stand-ins for the debuggee VM, its process and its side channel."""

from __future__ import annotations

import socket
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from python.jdwpdbg.constants import (
    HANDSHAKE,
    Capability,
    Command,
    CommandId,
    EventKind,
    Modifier,
    SuspendPolicy,
    Tag,
    TypeTag,
)
from python.jdwpdbg.packet import DEFAULT_ID_SIZES, CommandPacket, IDSizes, ReplyPacket, decode
from python.jdwpdbg.session import DebuggeeSession
from python.jdwpdbg.transport import JdwpTransport, TransportConfig

CLASS_ID = 0x101
THREAD_FIELD_ID = 0x201
MONITOR_FIELD_ID = 0x202
THREAD_ID = 0x301
MONITOR_ID = 0x302
THREAD_NAME = "TestedThread"

Response = Union[ReplyPacket, bytes, None]
Handler = Callable[[CommandPacket], Response]


def make_reply(
    packet_id: int,
    fields: Sequence[Tuple[str, Any]] = (),
    *,
    error_code: int = 0,
    id_sizes: IDSizes = DEFAULT_ID_SIZES,
) -> ReplyPacket:
    reply = ReplyPacket(packet_id, error_code, id_sizes=id_sizes)
    for kind, value in fields:
        getattr(reply, f"add_{kind}")(value)
    reply.set_length()
    return reply


def vm_init_event(packet_id: int = 1000, *, kind: int = EventKind.VM_INIT) -> bytes:
    event = CommandPacket(Command.Event.Composite, packet_id)
    event.add_byte(SuspendPolicy.ALL)
    event.add_int(1)
    event.add_byte(kind)
    event.add_int(0)
    event.add_object_id(1)
    event.set_length()
    return event.to_bytes()


class FakeVM:
    """Scripted JDWP agent served from a thread over a socketpair."""

    def __init__(
        self,
        *,
        id_sizes: IDSizes = DEFAULT_ID_SIZES,
        can_get_contended_monitor: bool = True,
        send_vm_init: bool = True,
        read_timeout: float = 5.0,
    ) -> None:
        self.id_sizes = id_sizes
        self.can_get_contended_monitor = can_get_contended_monitor
        self.send_vm_init = send_vm_init
        self.received: List[CommandPacket] = []
        self.field_values: Dict[int, Tuple[int, int]] = {
            THREAD_FIELD_ID: (Tag.THREAD, THREAD_ID),
            MONITOR_FIELD_ID: (Tag.OBJECT, MONITOR_ID),
        }
        self.handlers: Dict[CommandId, Handler] = {
            Command.VirtualMachine.Version: self._version,
            Command.VirtualMachine.IDSizes: self._id_sizes,
            Command.VirtualMachine.Suspend: self._empty,
            Command.VirtualMachine.Resume: self._empty,
            Command.VirtualMachine.CapabilitiesNew: self._capabilities,
            Command.VirtualMachine.ClassesBySignature: self._classes_by_signature,
            Command.ReferenceType.Fields: self._fields,
            Command.ReferenceType.GetValues: self._get_values,
            Command.ThreadReference.Name: self._thread_name,
            Command.ThreadReference.CurrentContendedMonitor: self._current_contended_monitor,
        }
        self._server, client = socket.socketpair()
        self.transport = JdwpTransport.from_socket(client, TransportConfig(read_timeout=read_timeout))
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------
    def commands(self) -> List[CommandId]:
        return [packet.command_id for packet in self.received]

    def count(self, command: CommandId) -> int:
        return self.commands().count(command)

    def reply(self, packet: CommandPacket, fields: Sequence[Tuple[str, Any]] = (), *, error_code: int = 0) -> ReplyPacket:
        return make_reply(packet.id, fields, error_code=error_code, id_sizes=self.id_sizes)

    def stop(self) -> None:
        self.transport.close()
        try:
            self._server.close()
        except OSError:
            pass
        self._thread.join(timeout=1.0)

    # ------------------------------------------------------------------
    # Server loop
    # ------------------------------------------------------------------
    def _recv_exact(self, size: int) -> Optional[bytes]:
        data = bytearray()
        while len(data) < size:
            chunk = self._server.recv(size - len(data))
            if not chunk:
                return None
            data.extend(chunk)
        return bytes(data)

    def _serve(self) -> None:
        try:
            if self._recv_exact(len(HANDSHAKE)) != HANDSHAKE:
                return
            self._server.sendall(HANDSHAKE)
            if self.send_vm_init:
                self._server.sendall(vm_init_event())
            while True:
                prefix = self._recv_exact(4)
                if prefix is None:
                    return
                rest = self._recv_exact(int.from_bytes(prefix, "big") - 4)
                if rest is None:
                    return
                packet = decode(prefix + rest, id_sizes=self.id_sizes)
                self.received.append(packet)
                handler = self.handlers.get(packet.command_id, self._not_implemented)
                response = handler(packet)
                if response is None:
                    return
                if isinstance(response, ReplyPacket):
                    response = response.to_bytes()
                self._server.sendall(response)
        except OSError:
            pass
        finally:
            try:
                self._server.close()
            except OSError:
                pass

    # ------------------------------------------------------------------
    # Default command handlers
    # ------------------------------------------------------------------
    def _not_implemented(self, packet: CommandPacket) -> Response:
        return self.reply(packet, error_code=99)

    def _empty(self, packet: CommandPacket) -> Response:
        return self.reply(packet)

    def _version(self, packet: CommandPacket) -> Response:
        return self.reply(
            packet,
            [("string", "Fake VM"), ("int", 11), ("int", 0), ("string", "11.0"), ("string", "FakeVM")],
        )

    def _id_sizes(self, packet: CommandPacket) -> Response:
        sizes = self.id_sizes
        return self.reply(
            packet,
            [
                ("int", sizes.field_id),
                ("int", sizes.method_id),
                ("int", sizes.object_id),
                ("int", sizes.reference_type_id),
                ("int", sizes.frame_id),
            ],
        )

    def _capabilities(self, packet: CommandPacket) -> Response:
        flags = [False] * Capability.COUNT
        flags[Capability.CAN_GET_CURRENT_CONTENDED_MONITOR] = self.can_get_contended_monitor
        return self.reply(packet, [("boolean", flag) for flag in flags])

    def _classes_by_signature(self, packet: CommandPacket) -> Response:
        return self.reply(
            packet,
            [("int", 1), ("byte", TypeTag.CLASS), ("reference_type_id", CLASS_ID), ("int", 7)],
        )

    def _fields(self, packet: CommandPacket) -> Response:
        fields: List[Tuple[str, Any]] = [("int", 2)]
        for field_id, name, signature in (
            (THREAD_FIELD_ID, "thread", "Ljava/lang/Thread;"),
            (MONITOR_FIELD_ID, "monitor", "Ljava/lang/Object;"),
        ):
            fields.extend(
                [
                    ("field_id", field_id),
                    ("string", name),
                    ("string", signature),
                    ("int", Modifier.STATIC),
                ]
            )
        return self.reply(packet, fields)

    def _get_values(self, packet: CommandPacket) -> Response:
        packet.reset_position()
        packet.read_reference_type_id()
        count = packet.read_int()
        fields: List[Tuple[str, Any]] = [("int", count)]
        for _ in range(count):
            tag, value = self.field_values[packet.read_field_id()]
            fields.extend([("byte", tag), ("object_id", value)])
        return self.reply(packet, fields)

    def _thread_name(self, packet: CommandPacket) -> Response:
        return self.reply(packet, [("string", THREAD_NAME)])

    def _current_contended_monitor(self, packet: CommandPacket) -> Response:
        return self.reply(packet, [("byte", Tag.OBJECT), ("object_id", MONITOR_ID)])


class FakeProcess:
    def __init__(self, exit_code: int = 95) -> None:
        self.exit_code = exit_code
        self.pid = 4242
        self.killed = False
        self.waited = 0

    def is_alive(self) -> bool:
        return not self.killed and not self.waited

    def wait_for(self, timeout: Optional[float] = None) -> int:
        self.waited += 1
        return self.exit_code

    def kill(self) -> None:
        self.killed = True


class FakePipe:
    def __init__(self, lines: Sequence[Optional[str]] = ("ready",)) -> None:
        self.lines = list(lines)
        self.written: List[str] = []
        self.closed = False

    def readln(self) -> Optional[str]:
        if not self.lines:
            return None
        return self.lines.pop(0)

    def println(self, line: str) -> None:
        self.written.append(line)

    def close(self) -> None:
        self.closed = True


def make_session(vm: FakeVM, *, signals: Sequence[Optional[str]] = ("ready",), exit_code: int = 95) -> DebuggeeSession:
    vm.transport.handshake()
    return DebuggeeSession(transport=vm.transport, process=FakeProcess(exit_code), pipe=FakePipe(signals))


class FakeBinder:
    def __init__(self, vm: FakeVM, *, signals: Sequence[Optional[str]] = ("ready",), exit_code: int = 95) -> None:
        self.vm = vm
        self.signals = signals
        self.exit_code = exit_code
        self.bound: List[str] = []
        self.session: Optional[DebuggeeSession] = None

    def bind_to_debuggee(self, class_name: str) -> DebuggeeSession:
        self.bound.append(class_name)
        self.session = make_session(self.vm, signals=self.signals, exit_code=self.exit_code)
        return self.session
