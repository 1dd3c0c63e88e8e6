"""Presets (stored device configurations) and playlists that cycle through them."""

from __future__ import annotations

import ipaddress
import json
import logging
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Protocol

from .network import NetworkManager, PacketType, Reader, Writer

SUBTYPE_CREATE_PRESET = 1
SUBTYPE_SET_PRESET = 2

PRESETS_FILE = "presets.json"
PLAYLISTS_FILE = "playlists.json"

DEFAULT_CYCLE_MILLIS = 10 * 1000

log = logging.getLogger(__name__)


def _monotonic_millis() -> int:
    return time.monotonic_ns() // 1_000_000


def _ip_to_u32(ip: str) -> int:
    """Pack an IPv4 address so that its first octet is the low byte."""
    return int.from_bytes(ipaddress.IPv4Address(ip).packed, "little")


def _u32_to_ip(value: int) -> str:
    return str(ipaddress.IPv4Address(value.to_bytes(4, "little")))


def _normalise_ip(ip: str) -> str:
    return str(ipaddress.IPv4Address(ip))


class DeviceConfig(Protocol):
    def to_json(self) -> dict[str, Any]: ...
    def from_json(self, data: dict[str, Any]) -> None: ...


class Preset:
    """A named configuration shared by a set of devices, identified by IP."""

    def __init__(self, id: int, name: str = "", ips: Iterable[str] = ()) -> None:
        self.id = id
        self.name = name
        self.ips: set[str] = {_normalise_ip(ip) for ip in ips}
        self.enable_alexa = False

    def __repr__(self) -> str:
        return f"Preset(id={self.id!r}, name={self.name!r}, ips={self.sorted_ips!r})"

    @property
    def sorted_ips(self) -> list[str]:
        """The IPs in the order they go on the wire."""
        return sorted(self.ips, key=_ip_to_u32)

    def set_packet(self) -> bytes:
        """Packet asking other devices to switch to this preset."""
        return (
            Writer()
            .write_u8(PacketType.PRESET)
            .write_u8(SUBTYPE_SET_PRESET)
            .write_u32(self.id)
            .getvalue()
        )

    def create_packet(self) -> bytes:
        """Packet telling the devices of this preset that it exists."""
        writer = (
            Writer()
            .write_u8(PacketType.PRESET)
            .write_u8(SUBTYPE_CREATE_PRESET)
            .write_u32(self.id)
            .write_string(self.name)
            .write_u32(len(self.ips))
        )
        for ip in self.sorted_ips:
            writer.write_u32(_ip_to_u32(ip))
        return writer.getvalue()

    def targets(self, local_ip: str) -> list[str]:
        """The preset's IPs other than the local one."""
        local = _normalise_ip(local_ip)
        return [ip for ip in self.sorted_ips if ip != local]

    def from_json(self, data: dict[str, Any], local_ip: str) -> None:
        """Update from JSON; a given ``ips`` list replaces the set, plus the local IP."""
        self.id = int(data.get("id", self.id))
        self.name = data.get("n", self.name)

        ips = data.get("ips")
        if isinstance(ips, list):
            self.ips = {_normalise_ip(local_ip)}
            for entry in ips:
                try:
                    self.ips.add(_normalise_ip(str(entry)))
                except ValueError:
                    log.warning("Ignoring invalid IP %r in preset %s", entry, self.id)

        if data.get("eA") is not None:
            self.enable_alexa = bool(data["eA"])

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "n": self.name,
            "ips": self.sorted_ips,
            "eA": self.enable_alexa,
        }


class Playlist:
    """A list of preset ids shown one after another, each for ``cycle_millis``."""

    def __init__(self, id: int, name: str = "") -> None:
        self.id = id
        self.name = name
        self.cycle_millis = DEFAULT_CYCLE_MILLIS
        self.presets: list[int] = []
        self.current_index = 0
        self._last_cycle_millis = 0

    def load(self, now: int) -> int | None:
        """Restart at the first preset; returns its id, or None if empty."""
        self._last_cycle_millis = now
        self.current_index = 0
        return self.presets[0] if self.presets else None

    def update(self, now: int) -> int | None:
        """The id of the next preset when the cycle time has passed, else None."""
        if not self.presets or now - self._last_cycle_millis <= self.cycle_millis:
            return None
        self.current_index = (self.current_index + 1) % len(self.presets)
        preset_id = self.presets[self.current_index]
        log.info("Playlist %s loading preset %s", self.id, preset_id)
        self._last_cycle_millis = now
        return preset_id

    def from_json(self, data: dict[str, Any]) -> None:
        self.id = int(data.get("id", self.id))
        self.name = data.get("n", self.name)
        self.cycle_millis = int(data.get("cm", self.cycle_millis))
        ids = data.get("pIds")
        if isinstance(ids, list):
            self.presets = [int(value) for value in ids]

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "n": self.name,
            "cm": self.cycle_millis,
            "pIds": list(self.presets),
        }


class PresetManager:
    """Stores presets and playlists on disk and shares them over the network."""

    def __init__(
        self,
        network: NetworkManager,
        directory: str | Path,
        device_config: DeviceConfig,
        local_ip: str = "0.0.0.0",
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._network = network
        self.directory = Path(directory)
        self._device_config = device_config
        self.local_ip = _normalise_ip(local_ip)
        self._clock = clock if clock is not None else _monotonic_millis
        self._presets: dict[int, Preset] = {}
        self._playlists: dict[int, Playlist] = {}
        self.active_playlist_id: int | None = None
        self.on_config_changed: Callable[[], None] | None = None
        self.on_preset_loaded: Callable[[str], None] | None = None
        network.register(PacketType.PRESET, self.handle_packet)

    @property
    def presets(self) -> dict[int, Preset]:
        return dict(self._presets)

    @property
    def playlists(self) -> dict[int, Playlist]:
        return dict(self._playlists)

    def _read(self, filename: str) -> dict[str, Any] | None:
        try:
            with open(self.directory / filename, encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def _write(self, filename: str, data: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        with open(self.directory / filename, "w", encoding="utf-8") as handle:
            json.dump(data, handle, separators=(",", ":"))

    def begin(self) -> None:
        """Create a preset entry for every configuration stored on disk."""
        stored = self._read(PRESETS_FILE)
        for key in stored or {}:
            try:
                id = int(key)
            except ValueError:
                continue
            self._presets[id] = Preset(id, ips={self.local_ip})

    def save_preset(self, id: int) -> None:
        """Store the current device configuration as preset ``id``."""
        stored = self._read(PRESETS_FILE) or {}
        stored[str(id)] = self._device_config.to_json()
        self._write(PRESETS_FILE, stored)

    def load_preset(self, id: int, notify: bool = True) -> None:
        """Apply stored preset ``id``; with ``notify``, tell its other devices."""
        stored = self._read(PRESETS_FILE)
        if stored is not None:
            config = stored.get(str(id))
            if isinstance(config, dict):
                config["on"] = True
                self._device_config.from_json(config)
                if self.on_config_changed is not None:
                    self.on_config_changed()
                if self.on_preset_loaded is not None:
                    self.on_preset_loaded(json.dumps(config, separators=(",", ":")))

        preset = self._presets.get(id)
        if notify and preset is not None:
            packet = preset.set_packet()
            for ip in preset.targets(self.local_ip):
                self._network.send_to(packet, ip)

    def delete_preset(self, id: int) -> None:
        stored = self._read(PRESETS_FILE) or {}
        stored.pop(str(id), None)
        self._write(PRESETS_FILE, stored)

    def save_playlist(self, id: int) -> None:
        playlist = self._playlists.get(id)
        if playlist is None:
            return
        stored = self._read(PLAYLISTS_FILE) or {}
        stored[str(id)] = playlist.to_json()
        self._write(PLAYLISTS_FILE, stored)

    def load_playlist(self, id: int) -> None:
        playlist = self._playlists.get(id)
        if playlist is None:
            return
        preset_id = playlist.load(self._clock())
        if preset_id is not None:
            self.load_preset(preset_id)

    def delete_playlist(self, id: int) -> None:
        stored = self._read(PLAYLISTS_FILE) or {}
        stored.pop(str(id), None)
        self._write(PLAYLISTS_FILE, stored)

    def load(self, id: int, notify: bool = True) -> None:
        """Load a playlist or a preset by id; anything else stops the playlist."""
        if id in self._playlists:
            self.active_playlist_id = id
            self.load_playlist(id)
        elif id in self._presets:
            self.active_playlist_id = None
            self.load_preset(id, notify)
        else:
            self.active_playlist_id = None

    def handle_packet(self, reader: Reader, ip: str, receive_millis: int) -> bool:
        sub_type = reader.read_u8()
        if sub_type == SUBTYPE_CREATE_PRESET:
            id = reader.read_u32()
            name = reader.read_string()
            count = reader.read_u32()
            ips = [_u32_to_ip(reader.read_u32()) for _ in range(count)]
            log.info("Preset received: %s: %s - %s", id, name, ", ".join(ips))
            self.save_preset(id)
            self._presets[id] = Preset(id, name, ips)
        elif sub_type == SUBTYPE_SET_PRESET:
            id = reader.read_u32()
            log.info("Remotely set preset: %s", id)
            self.load_preset(id, False)
        else:
            return False
        return True

    def update(self) -> None:
        if self.active_playlist_id is None:
            return
        playlist = self._playlists.get(self.active_playlist_id)
        if playlist is None:
            return
        preset_id = playlist.update(self._clock())
        if preset_id is not None:
            self.load_preset(preset_id)

    def from_json(self, data: dict[str, Any]) -> None:
        """Apply the preset and playlist lists, their contents and ``prstId``."""
        preset_ids = data.get("prstIds")
        if isinstance(preset_ids, list):
            wanted = [int(value) for value in preset_ids]
            wanted_set = set(wanted)
            create = [id for id in dict.fromkeys(wanted) if id not in self._presets]
            for id in [key for key in sorted(self._presets) if key not in wanted_set]:
                self.delete_preset(id)
                del self._presets[id]
            for id in create:
                self.save_preset(id)
                self._presets[id] = Preset(id, ips={self.local_ip})

        for entry in data.get("prsts") or []:
            if not isinstance(entry, dict):
                continue
            preset = self._presets.get(int(entry.get("id", 0)))
            if preset is None:
                continue
            preset.from_json(entry, self.local_ip)
            packet = preset.create_packet()
            for ip in preset.sorted_ips:
                self._network.send_to(packet, ip)

        playlist_ids = data.get("pllstIds")
        if isinstance(playlist_ids, list):
            wanted = [int(value) for value in playlist_ids]
            wanted_set = set(wanted)
            create = [id for id in dict.fromkeys(wanted) if id not in self._playlists]
            for id in [key for key in sorted(self._playlists) if key not in wanted_set]:
                self.delete_playlist(id)
                del self._playlists[id]
            for id in create:
                self._playlists[id] = Playlist(id)

        for entry in data.get("pllsts") or []:
            if not isinstance(entry, dict):
                continue
            playlist = self._playlists.get(int(entry.get("id", 0)))
            if playlist is not None:
                playlist.from_json(entry)

        new_preset = int(data.get("prstId") or 0)
        if new_preset:
            log.info("Using preset %s", new_preset)
            self.load(new_preset)

    def to_json(self) -> dict[str, Any]:
        presets = sorted(self._presets.items())
        playlists = sorted(self._playlists.items())
        return {
            "prstIds": [id for id, _ in presets],
            "prsts": [preset.to_json() for _, preset in presets],
            "pllstIds": [id for id, _ in playlists],
            "pllsts": [playlist.to_json() for _, playlist in playlists],
        }