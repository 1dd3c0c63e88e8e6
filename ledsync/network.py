"""UDP packet framing and dispatch between devices on the local network."""

from __future__ import annotations

import enum
import logging
import socket
import struct
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol

PORT_UDP = 4867
BROADCAST_ADDRESS = "255.255.255.255"

_U32 = struct.Struct("<I")
_MAX_DATAGRAM = 65535
_POLL_SECONDS = 0.2

log = logging.getLogger(__name__)


class PacketType(enum.IntEnum):
    """The first byte of every datagram: which subsystem it belongs to."""

    CONNECTIVITY = 1
    TIME = 2
    PRESET = 3


class Transport(Protocol):
    def sendto(self, data: bytes, address: tuple[str, int]) -> Any: ...


class Writer:
    """Builds a packet from little-endian integers and length-prefixed strings."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def write_u8(self, value: int) -> Writer:
        if not 0 <= value <= 0xFF:
            raise ValueError(f"u8 out of range: {value}")
        self._buffer.append(value)
        return self

    def write_u32(self, value: int) -> Writer:
        if not 0 <= value <= 0xFFFFFFFF:
            raise ValueError(f"u32 out of range: {value}")
        self._buffer += _U32.pack(value)
        return self

    def write_string(self, value: str) -> Writer:
        encoded = value.encode("utf-8")
        self.write_u32(len(encoded))
        self._buffer += encoded
        return self

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


class Reader:
    """Reads the fields written by :class:`Writer`; raises ValueError when short."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def _take(self, size: int) -> bytes:
        if self.remaining < size:
            raise ValueError(
                f"packet truncated: need {size} bytes, {self.remaining} left"
            )
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def read_u8(self) -> int:
        return self._take(1)[0]

    def read_u32(self) -> int:
        return _U32.unpack(self._take(4))[0]

    def read_string(self) -> str:
        size = self.read_u32()
        return self._take(size).decode("utf-8")


Handler = Callable[[Reader, str, int], bool]


def _monotonic_millis() -> int:
    return time.monotonic_ns() // 1_000_000


class NetworkManager:
    """Sends datagrams and dispatches received ones to registered handlers.

    Without a transport, :meth:`open` binds a UDP socket and receives on a
    background thread; handlers are then called from that thread.
    """

    def __init__(self, port: int = PORT_UDP, transport: Transport | None = None) -> None:
        self.port = port
        self._transport = transport
        self._handlers: dict[int, Handler] = {}
        self._socket: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self.millis_source: Callable[[], int] = _monotonic_millis

    def __enter__(self) -> NetworkManager:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def register(self, packet_type: int, handler: Handler) -> None:
        self._handlers[int(packet_type)] = handler

    def handle_datagram(self, data: bytes, ip: str, receive_millis: int) -> bool:
        """Dispatch one datagram by its type byte; True if a handler took it."""
        if not data:
            return False
        reader = Reader(data)
        handler = self._handlers.get(reader.read_u8())
        if handler is None:
            return False
        try:
            return bool(handler(reader, ip, receive_millis))
        except ValueError as error:
            log.warning("Malformed packet from %s: %s", ip, error)
            return False

    def _sender(self) -> Transport:
        if self._transport is not None:
            return self._transport
        if self._socket is not None:
            return self._socket
        raise RuntimeError("network is not open")

    def send_to(self, data: bytes, ip: str) -> None:
        self._sender().sendto(bytes(data), (ip, self.port))

    def broadcast(self, data: bytes) -> None:
        self._sender().sendto(bytes(data), (BROADCAST_ADDRESS, self.port))

    def open(self) -> NetworkManager:
        if self._transport is not None or self._socket is not None:
            return self
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.bind(("", self.port))
        sock.settimeout(_POLL_SECONDS)
        self._socket = sock
        self._stop.clear()
        self._thread = threading.Thread(target=self._receive_loop, daemon=True)
        self._thread.start()
        return self

    def _receive_loop(self) -> None:
        sock = self._socket
        while sock is not None and not self._stop.is_set():
            try:
                data, address = sock.recvfrom(_MAX_DATAGRAM)
            except socket.timeout:
                continue
            except OSError:
                break
            self.handle_datagram(data, address[0], self.millis_source())

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None