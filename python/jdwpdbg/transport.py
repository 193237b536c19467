"""
Transport layer for jdwpdbg.

Responsibilities:
    * Establish the socket connection to the debuggee JDWP agent, either by
      listening for it (``server=n`` agent) or by attaching (``server=y``).
    * Perform the ``JDWP-Handshake`` exchange.
    * Frame packets on the wire and hand complete packets to the codec.
    * Correlate replies with their commands by packet identifier.

All I/O is synchronous and blocking; ``read_timeout=None`` blocks forever.
"""

from __future__ import annotations

import logging
import socket
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Iterable, Optional, Tuple

from .constants import HANDSHAKE, HEADER_SIZE, CommandId
from .errors import ProtocolError, TransportError, UnmatchedReply
from .packet import (
    DEFAULT_ID_SIZES,
    CommandPacket,
    Field,
    IDSizes,
    Packet,
    PacketIdAllocator,
    ReplyPacket,
    decode,
    encode,
)

LOGGER = logging.getLogger("jdwpdbg.transport")

LISTEN = "listen"
ATTACH = "attach"


@dataclass
class TransportConfig:
    mode: str = LISTEN
    host: str = "127.0.0.1"
    port: int = 0
    connect_timeout: float = 60.0
    read_timeout: Optional[float] = None
    reconnect_backoff: float = 0.5
    max_backoff: float = 5.0
    max_retries: int = 20

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class JdwpTransport:
    """Blocking JDWP packet transport over a TCP socket."""

    config: TransportConfig = field(default_factory=TransportConfig)
    id_sizes: IDSizes = DEFAULT_ID_SIZES

    _sock: Optional[socket.socket] = field(init=False, default=None)
    _listener: Optional[socket.socket] = field(init=False, default=None)
    _state: str = field(init=False, default="disconnected")
    _allocator: PacketIdAllocator = field(init=False, default_factory=PacketIdAllocator)
    _events: Deque[CommandPacket] = field(init=False, default_factory=deque)

    @classmethod
    def from_socket(cls, sock: socket.socket, config: Optional[TransportConfig] = None) -> "JdwpTransport":
        """Wrap an already connected socket (handshake not yet performed)."""
        transport = cls(config or TransportConfig())
        transport._adopt(sock)
        return transport

    #
    # Connection lifecycle helpers
    #
    @property
    def state(self) -> str:
        return self._state

    @property
    def allocator(self) -> PacketIdAllocator:
        return self._allocator

    def listen(self) -> Tuple[str, int]:
        """Open the listening socket the debuggee agent will connect to."""
        if self._listener is not None:
            host, port = self._listener.getsockname()[:2]
            return host, port
        try:
            listener = socket.create_server((self.config.host, self.config.port))
        except OSError as exc:
            raise TransportError(f"listen on {self.config.address} failed: {exc}") from exc
        self._listener = listener
        host, port = listener.getsockname()[:2]
        self.config.port = port
        self._state = "listening"
        LOGGER.debug("listening for debuggee on %s:%s", host, port)
        return host, port

    def accept(self) -> None:
        """Wait for the debuggee to connect, then handshake."""
        listener = self._listener
        if listener is None:
            raise TransportError("accept() called before listen()")
        listener.settimeout(self.config.connect_timeout)
        try:
            sock, peer = listener.accept()
        except socket.timeout as exc:
            raise TransportError(
                f"debuggee did not connect within {self.config.connect_timeout}s"
            ) from exc
        except OSError as exc:
            raise TransportError(f"accept failed: {exc}") from exc
        finally:
            self._close_listener()
        LOGGER.debug("debuggee connected from %s", peer)
        self._adopt(sock)
        self.handshake()

    def attach(self) -> None:
        """Connect to a debuggee agent started with ``server=y``, then handshake."""
        if self._sock:
            return
        self._state = "connecting"
        try:
            sock = self._connect_with_backoff()
        except TransportError:
            self._state = "disconnected"
            raise
        self._adopt(sock)
        self.handshake()

    def handshake(self) -> None:
        self._sendall(HANDSHAKE, what="handshake")
        reply = self._recv_exact(len(HANDSHAKE))
        if reply != HANDSHAKE:
            raise TransportError(f"unexpected handshake reply: {reply!r}")
        self._state = "connected"
        LOGGER.debug("JDWP handshake completed")

    def close(self) -> None:
        self._close_listener()
        sock = self._sock
        self._sock = None
        if sock:
            try:
                sock.close()
            except OSError:
                pass
        self._state = "disconnected"

    #
    # Packet exchange
    #
    def new_command(self, command: CommandId, fields: Iterable[Field] = ()) -> CommandPacket:
        return encode(command, fields, allocator=self._allocator, id_sizes=self.id_sizes)

    def send(self, packet: CommandPacket) -> None:
        """Write one finalized command packet."""
        try:
            raw = packet.to_bytes()
        except ProtocolError:
            self._allocator.release(packet.id)
            raise
        packet.freeze()
        try:
            self._sendall(raw, what=f"packet {packet.id}")
        except TransportError:
            self._allocator.release(packet.id)
            raise

    def receive(self) -> Packet:
        """Block until one complete packet has been read."""
        prefix = self._recv_exact(4)
        length = int.from_bytes(prefix, "big")
        if length < HEADER_SIZE:
            raise TransportError(f"malformed packet length {length}")
        raw = prefix + self._recv_exact(length - 4)
        return decode(raw, id_sizes=self.id_sizes)

    def read_reply(self) -> ReplyPacket:
        """Read the next reply packet, queueing VM events seen on the way."""
        while True:
            packet = self.receive()
            if isinstance(packet, ReplyPacket):
                return packet
            LOGGER.debug("queued event packet while waiting for reply:\n%s", packet)
            self._events.append(packet)  # type: ignore[arg-type]

    def next_event(self) -> CommandPacket:
        """Return the next VM event packet (queued or freshly received)."""
        if self._events:
            return self._events.popleft()
        packet = self.receive()
        if isinstance(packet, ReplyPacket):
            raise ProtocolError(f"unexpected reply packet {packet.id} while waiting for an event")
        return packet  # type: ignore[return-value]

    def match_reply(self, command: CommandPacket, reply: ReplyPacket) -> None:
        if reply.id != command.id:
            raise UnmatchedReply(command.id, reply.id)
        self._allocator.release(command.id)

    #
    # Internal helpers
    #
    def _adopt(self, sock: socket.socket) -> None:
        sock.settimeout(self.config.read_timeout)
        self._sock = sock
        self._state = "connected"

    def _close_listener(self) -> None:
        listener = self._listener
        self._listener = None
        if listener:
            try:
                listener.close()
            except OSError:
                pass

    def _connect_with_backoff(self) -> socket.socket:
        attempt = 0
        backoff = self.config.reconnect_backoff
        last_error: Optional[OSError] = None
        while True:
            attempt += 1
            try:
                return socket.create_connection(
                    (self.config.host, self.config.port),
                    timeout=self.config.connect_timeout,
                )
            except OSError as exc:
                last_error = exc
                if self.config.max_retries > 0 and attempt >= self.config.max_retries:
                    break
                time.sleep(backoff)
                backoff = min(backoff * 2, self.config.max_backoff)
        raise TransportError(f"attach to {self.config.address} failed: {last_error}") from last_error

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise TransportError("transport not connected")
        return self._sock

    def _sendall(self, data: bytes, *, what: str) -> None:
        sock = self._require_socket()
        try:
            sock.sendall(data)
        except OSError as exc:
            raise TransportError(f"write of {what} failed: {exc}") from exc

    def _recv_exact(self, size: int) -> bytes:
        sock = self._require_socket()
        chunks = bytearray()
        while len(chunks) < size:
            try:
                chunk = sock.recv(size - len(chunks))
            except socket.timeout as exc:
                raise TransportError(f"read timed out after {self.config.read_timeout}s") from exc
            except OSError as exc:
                raise TransportError(f"read failed: {exc}") from exc
            if not chunk:
                raise TransportError("connection closed by debuggee")
            chunks.extend(chunk)
        return bytes(chunks)
