import json

import pytest

from ledsync.network import NetworkManager, Reader
from ledsync.presets import (
    DEFAULT_CYCLE_MILLIS,
    Playlist,
    Preset,
    PresetManager,
)

LOCAL_IP = "192.168.1.10"
REMOTE_IP = "192.168.1.20"
OTHER_IP = "192.168.1.30"


class FakeTransport:
    def __init__(self):
        self.sent = []

    def sendto(self, data, address):
        self.sent.append((data, address))


class FakeDeviceConfig:
    def __init__(self):
        self.state = {}
        self.loaded = []

    def to_json(self):
        return dict(self.state)

    def from_json(self, data):
        self.loaded.append(dict(data))


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def device_config():
    return FakeDeviceConfig()


@pytest.fixture
def clock():
    return {"now": 0}


@pytest.fixture
def manager(tmp_path, transport, device_config, clock):
    network = NetworkManager(transport=transport)
    return PresetManager(
        network, tmp_path, device_config, LOCAL_IP, lambda: clock["now"]
    )


def _stored(tmp_path, name):
    return json.loads((tmp_path / name).read_text())


def test_set_packet_wire_bytes():
    assert Preset(5).set_packet() == bytes([3, 2, 5, 0, 0, 0])


def test_create_packet_fields():
    preset = Preset(7, "Evening", [REMOTE_IP, LOCAL_IP])
    reader = Reader(preset.create_packet())
    assert reader.read_u8() == 3
    assert reader.read_u8() == 1
    assert reader.read_u32() == 7
    assert reader.read_string() == "Evening"
    assert reader.read_u32() == 2
    reader.read_u32()
    reader.read_u32()
    assert reader.remaining == 0


def test_targets_exclude_local_ip():
    preset = Preset(1, "x", [LOCAL_IP, REMOTE_IP, OTHER_IP])
    assert preset.targets(LOCAL_IP) == [REMOTE_IP, OTHER_IP]


def test_preset_from_json_adds_local_ip_and_round_trips():
    preset = Preset(1)
    preset.from_json({"id": 4, "n": "Party", "ips": [REMOTE_IP], "eA": True}, LOCAL_IP)
    data = preset.to_json()
    assert data["id"] == 4
    assert data["n"] == "Party"
    assert set(data["ips"]) == {LOCAL_IP, REMOTE_IP}
    assert data["eA"] is True

    copy = Preset(0)
    copy.from_json(data, LOCAL_IP)
    assert copy.to_json() == data


def test_preset_from_json_keeps_missing_fields():
    preset = Preset(3, "Keep", [REMOTE_IP])
    preset.from_json({}, LOCAL_IP)
    assert preset.to_json() == {"id": 3, "n": "Keep", "ips": [REMOTE_IP], "eA": False}


def test_playlist_load_and_cycle():
    playlist = Playlist(1)
    playlist.from_json({"pIds": [11, 12], "cm": 100})
    assert playlist.load(0) == 11
    assert playlist.update(100) is None
    assert playlist.update(101) == 12
    assert playlist.update(202) == 11


def test_empty_playlist_loads_nothing():
    playlist = Playlist(2)
    assert playlist.load(0) is None
    assert playlist.update(DEFAULT_CYCLE_MILLIS + 1) is None


def test_playlist_json_round_trip():
    playlist = Playlist(9, "Night")
    playlist.from_json({"cm": 500, "pIds": [3, 1, 2]})
    copy = Playlist(0)
    copy.from_json(playlist.to_json())
    assert copy.to_json() == playlist.to_json()
    assert copy.to_json()["pIds"] == [3, 1, 2]


def test_save_and_load_preset(manager, device_config, tmp_path):
    device_config.state = {"bri": 50}
    manager.save_preset(7)
    assert _stored(tmp_path, "presets.json") == {"7": {"bri": 50}}

    loaded = []
    manager.on_preset_loaded = loaded.append
    manager.load_preset(7)
    assert device_config.loaded == [{"bri": 50, "on": True}]
    assert json.loads(loaded[0]) == {"bri": 50, "on": True}


def test_load_missing_preset_changes_nothing(manager, device_config, tmp_path):
    device_config.state = {"bri": 1}
    manager.save_preset(1)
    loaded = []
    manager.on_preset_loaded = loaded.append
    manager.load_preset(2)
    assert device_config.loaded == []
    assert loaded == []
    assert manager.to_json()["prstIds"] == []
    assert _stored(tmp_path, "presets.json") == {"1": {"bri": 1}}


def test_from_json_creates_and_deletes_presets(manager, tmp_path, transport):
    manager.from_json({"prstIds": [1, 2]})
    assert sorted(_stored(tmp_path, "presets.json")) == ["1", "2"]
    assert manager.to_json()["prstIds"] == [1, 2]

    manager.from_json({"prstIds": [2]})
    assert sorted(_stored(tmp_path, "presets.json")) == ["2"]
    assert manager.to_json()["prstIds"] == [2]
    assert transport.sent == []


def test_from_json_preset_contents_are_announced(manager, transport):
    manager.from_json(
        {"prstIds": [5], "prsts": [{"id": 5, "n": "Blue", "ips": [REMOTE_IP]}]}
    )
    preset = manager.presets[5]
    assert preset.name == "Blue"
    addresses = sorted(address[0] for _, address in transport.sent)
    assert addresses == sorted([LOCAL_IP, REMOTE_IP])
    assert all(data == preset.create_packet() for data, _ in transport.sent)


def test_create_packet_received_registers_preset(manager, device_config, tmp_path):
    device_config.state = {"mode": "x"}
    packet = Preset(8, "Shared", [REMOTE_IP, OTHER_IP]).create_packet()
    assert manager._network.handle_datagram(packet, REMOTE_IP, 0) is True
    data = manager.to_json()
    assert data["prstIds"] == [8]
    assert data["prsts"][0]["n"] == "Shared"
    assert set(data["prsts"][0]["ips"]) == {REMOTE_IP, OTHER_IP}
    assert _stored(tmp_path, "presets.json") == {"8": {"mode": "x"}}


def test_remote_set_loads_without_notifying(manager, device_config, transport):
    device_config.state = {"c": 1}
    manager.from_json({"prstIds": [4], "prsts": [{"id": 4, "ips": [REMOTE_IP]}]})
    transport.sent.clear()

    assert manager._network.handle_datagram(Preset(4).set_packet(), REMOTE_IP, 0)
    assert device_config.loaded == [{"c": 1, "on": True}]
    assert transport.sent == []


def test_load_preset_notifies_remote_devices(manager, device_config, transport):
    manager.from_json({"prstIds": [4], "prsts": [{"id": 4, "ips": [REMOTE_IP]}]})
    transport.sent.clear()

    manager.load(4)
    assert transport.sent == [(Preset(4).set_packet(), (REMOTE_IP, 4867))]


def test_unknown_subtype_is_rejected(manager):
    assert manager._network.handle_datagram(bytes([3, 9]), REMOTE_IP, 0) is False


def test_truncated_packet_is_rejected(manager):
    assert manager._network.handle_datagram(bytes([3, 2, 1]), REMOTE_IP, 0) is False
    assert manager.to_json()["prstIds"] == []


def test_playlist_cycles_through_presets(manager, device_config, clock):
    device_config.state = {"name": "one"}
    manager.save_preset(1)
    device_config.state = {"name": "two"}
    manager.save_preset(2)
    manager.from_json(
        {"pllstIds": [10], "pllsts": [{"id": 10, "pIds": [1, 2], "cm": 100}]}
    )
    data = manager.to_json()
    assert data["pllstIds"] == [10]
    assert data["pllsts"][0]["pIds"] == [1, 2]

    manager.load(10)
    assert manager.active_playlist_id == 10
    assert device_config.loaded[-1]["name"] == "one"
    clock["now"] = 50
    manager.update()
    assert len(device_config.loaded) == 1
    clock["now"] = 101
    manager.update()
    assert device_config.loaded[-1]["name"] == "two"
    clock["now"] = 202
    manager.update()
    assert device_config.loaded[-1]["name"] == "one"
    assert manager.active_playlist_id == 10


def test_save_and_delete_playlist(manager, tmp_path):
    manager.from_json({"pllstIds": [3], "pllsts": [{"id": 3, "n": "P", "pIds": [1]}]})
    manager.save_playlist(3)
    assert _stored(tmp_path, "playlists.json")["3"]["pIds"] == [1]

    manager.from_json({"pllstIds": []})
    assert _stored(tmp_path, "playlists.json") == {}
    assert manager.to_json()["pllstIds"] == []


def test_begin_reads_stored_presets(manager, tmp_path):
    (tmp_path / "presets.json").write_text(json.dumps({"12": {}, "3": {}}))
    manager.begin()
    data = manager.to_json()
    assert data["prstIds"] == [3, 12]
    assert data["prsts"][0]["ips"] == [LOCAL_IP]


def test_loading_unknown_id_stops_playlist(manager):
    manager.from_json({"pllstIds": [10], "pllsts": [{"id": 10, "pIds": []}]})
    manager.load(10)
    assert manager.active_playlist_id == 10
    manager.load(999)
    assert manager.active_playlist_id is None