"""Discovery of other devices by broadcast heartbeats."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .network import NetworkManager, PacketType, Reader, Writer

HEARTBEAT_INTERVAL = 2000
INACTIVE_TIMEOUT = 2.5 * HEARTBEAT_INTERVAL

SUBTYPE_HEARTBEAT_REQUEST = 1
SUBTYPE_HEARTBEAT_RESPONSE = 2

log = logging.getLogger(__name__)


def _monotonic_millis() -> int:
    return time.monotonic_ns() // 1_000_000


@dataclass
class ActiveDevice:
    device_name: str
    last_seen_millis: int


class ConnectivityManager:
    """Tracks which devices answer heartbeats, keyed by IP address string."""

    def __init__(
        self,
        network: NetworkManager,
        device_name: str = "",
        clock: Callable[[], int] | None = None,
        can_be_visible: Callable[[], bool] | None = None,
        on_devices_changed: Callable[[str], None] | None = None,
    ) -> None:
        self._network = network
        self.device_name = device_name
        self._clock = clock if clock is not None else _monotonic_millis
        self.can_be_visible = can_be_visible if can_be_visible is not None else lambda: True
        self.on_devices_changed = on_devices_changed
        self._last_heartbeat_millis = 0
        self._devices: dict[str, ActiveDevice] = {}
        network.register(PacketType.CONNECTIVITY, self.handle_packet)

    def begin(self) -> None:
        self._last_heartbeat_millis = self._clock() - HEARTBEAT_INTERVAL
        self._send_heartbeat_request()

    def update(self) -> None:
        now = self._clock()
        if self.can_be_visible() and now - self._last_heartbeat_millis > HEARTBEAT_INTERVAL:
            self._send_heartbeat()
            self._last_heartbeat_millis = now
        self._remove_inactive()

    def active_device_count(self) -> int:
        return len(self._devices)

    def active_devices(self) -> list[str]:
        """IP addresses of active devices, in string order."""
        return sorted(self._devices)

    def handle_packet(self, reader: Reader, ip: str, receive_millis: int) -> bool:
        sub_type = reader.read_u8()
        if sub_type == SUBTYPE_HEARTBEAT_REQUEST:
            self._send_heartbeat()
        elif sub_type == SUBTYPE_HEARTBEAT_RESPONSE:
            name = reader.read_string()
            device = self._devices.get(ip)
            if device is not None:
                device.last_seen_millis = self._clock()
                if device.device_name != name:
                    device.device_name = name
                    self.send_devices()
            else:
                log.info("New device %s %s", ip, name)
                self._devices[ip] = ActiveDevice(name, self._clock())
                self.send_devices()
        else:
            return False
        return True

    def _send_heartbeat_request(self) -> None:
        packet = (
            Writer()
            .write_u8(PacketType.CONNECTIVITY)
            .write_u8(SUBTYPE_HEARTBEAT_REQUEST)
            .getvalue()
        )
        self._network.broadcast(packet)

    def _send_heartbeat(self) -> None:
        packet = (
            Writer()
            .write_u8(PacketType.CONNECTIVITY)
            .write_u8(SUBTYPE_HEARTBEAT_RESPONSE)
            .write_string(self.device_name)
            .getvalue()
        )
        self._network.broadcast(packet)

    def _remove_inactive(self) -> None:
        now = self._clock()
        stale = [
            ip
            for ip, device in self._devices.items()
            if now - device.last_seen_millis > INACTIVE_TIMEOUT
        ]
        for ip in stale:
            device = self._devices.pop(ip)
            log.info("%s off (%dms)", ip, now - device.last_seen_millis)
        if stale:
            self.send_devices()

    def send_devices(self) -> None:
        """Pass the device list, as compact JSON, to the change callback."""
        if self.on_devices_changed is not None:
            self.on_devices_changed(json.dumps(self.to_json(), separators=(",", ":")))

    def to_json(self) -> dict[str, Any]:
        return {
            "actDev": [
                {"ip": ip, "n": self._devices[ip].device_name}
                for ip in self.active_devices()
            ]
        }