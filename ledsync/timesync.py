"""Shared clock between devices, synchronised by request/response packets."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .connectivity import ConnectivityManager
from .network import NetworkManager, PacketType, Reader, Writer

DEFAULT_TIMEZONE = "Europe/Berlin"

TIME_SYNC_INTERVAL = 10000
SINGLE_HOST_TIME = 2000

SUBTYPE_SYNC_REQUEST = 1
SUBTYPE_SYNC_RESPONSE = 2

_MASK = 0xFFFFFFFF

log = logging.getLogger(__name__)


def _monotonic_millis() -> int:
    return time.monotonic_ns() // 1_000_000


def _signed32(value: int) -> int:
    value &= _MASK
    return value - (1 << 32) if value & 0x80000000 else value


def _resolve_tz(tz: tzinfo | str | None) -> tzinfo | None:
    if tz is None:
        tz = DEFAULT_TIMEZONE
    if isinstance(tz, str):
        try:
            return ZoneInfo(tz)
        except ZoneInfoNotFoundError:
            log.warning("Time zone %s not available, using local time", tz)
            return None
    return tz


class TimeManager:
    """Keeps a millisecond clock in step with a randomly chosen peer."""

    def __init__(
        self,
        network: NetworkManager,
        connectivity: ConnectivityManager,
        clock: Callable[[], int] | None = None,
        tz: tzinfo | str | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._network = network
        self._connectivity = connectivity
        self._clock = clock if clock is not None else _monotonic_millis
        self.tz = _resolve_tz(tz)
        self._rng = rng if rng is not None else random.Random()
        self.wall_clock: Callable[[], datetime] | None = None
        self._offset_millis = 0
        self._last_sync_millis = 0
        self._synced = False
        self._begin_millis = 0
        self.last_rtt: int | None = None
        network.register(PacketType.TIME, self.handle_packet)

    @property
    def offset_millis(self) -> int:
        return self._offset_millis

    @property
    def synced(self) -> bool:
        return self._synced

    def begin(self) -> None:
        now = self._clock()
        self._last_sync_millis = now - TIME_SYNC_INTERVAL
        self._begin_millis = now

    def update(self) -> None:
        now = self._clock()
        if now - self._last_sync_millis > TIME_SYNC_INTERVAL and self.send_sync_request():
            self._last_sync_millis = now

    def send_sync_request(self) -> bool:
        """Ask one random active device for its time; False if none is known."""
        devices = self._connectivity.active_devices()
        if not devices:
            return False
        ip = devices[self._rng.randrange(len(devices))]
        packet = (
            Writer()
            .write_u8(PacketType.TIME)
            .write_u8(SUBTYPE_SYNC_REQUEST)
            .write_u32(self.synced_millis())
            .getvalue()
        )
        self._network.send_to(packet, ip)
        return True

    def synced_millis(self) -> int:
        return (self._clock() + self._offset_millis) & _MASK

    def handle_packet(self, reader: Reader, ip: str, receive_millis: int) -> bool:
        sub_type = reader.read_u8()
        if sub_type == SUBTYPE_SYNC_REQUEST:
            client_start = reader.read_u32()
            packet = (
                Writer()
                .write_u8(PacketType.TIME)
                .write_u8(SUBTYPE_SYNC_RESPONSE)
                .write_u32(client_start)
                .write_u32(receive_millis & _MASK)
                .write_u32(self.synced_millis())
                .getvalue()
            )
            self._network.send_to(packet, ip)
        elif sub_type == SUBTYPE_SYNC_RESPONSE:
            client_start = reader.read_u32()
            server_start = reader.read_u32()
            server_end = reader.read_u32()
            client_end = receive_millis

            total = _signed32(server_start - client_start + server_end - client_end)
            offset = int(total / 2.0 + 0.5)
            rtt = (client_end - client_start - server_end + server_start) & _MASK

            log.info("Time offset: %d, RTT: %d", offset, rtt)
            self._offset_millis += offset
            self.last_rtt = rtt
            self._synced = True
        else:
            return False
        return True

    def can_be_visible(self) -> bool:
        """True once synced, or once running long enough alone."""
        return self._synced or self._clock() - self._begin_millis > SINGLE_HOST_TIME

    def current_time(self) -> datetime:
        if self.wall_clock is not None:
            now = self.wall_clock()
            return now.astimezone(self.tz) if now.tzinfo is not None else now
        return datetime.now(self.tz)

    def hours(self) -> int:
        return self.current_time().hour

    def minutes(self) -> int:
        return self.current_time().minute

    def seconds(self) -> int:
        return self.current_time().second