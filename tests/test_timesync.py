import random
from datetime import datetime, timezone

from ledsync.connectivity import SUBTYPE_HEARTBEAT_RESPONSE, ConnectivityManager
from ledsync.network import NetworkManager, PacketType, Reader, Writer
from ledsync.timesync import (
    SINGLE_HOST_TIME,
    SUBTYPE_SYNC_REQUEST,
    SUBTYPE_SYNC_RESPONSE,
    TIME_SYNC_INTERVAL,
    TimeManager,
)


class FakeTransport:
    def __init__(self):
        self.sent = []

    def sendto(self, data, address):
        self.sent.append((data, address))


class Clock:
    def __init__(self, now=1000):
        self.now = now

    def __call__(self):
        return self.now


def make():
    transport = FakeTransport()
    network = NetworkManager(transport=transport)
    clock = Clock()
    connectivity = ConnectivityManager(network, "Lamp", clock)
    manager = TimeManager(network, connectivity, clock, timezone.utc, random.Random(1))
    return manager, network, transport, clock


def add_peer(network, ip):
    packet = (
        Writer()
        .write_u8(PacketType.CONNECTIVITY)
        .write_u8(SUBTYPE_HEARTBEAT_RESPONSE)
        .write_string("peer")
        .getvalue()
    )
    network.handle_datagram(packet, ip, 0)


def sync_response(client_start, server_start, server_end):
    return (
        Writer()
        .write_u8(PacketType.TIME)
        .write_u8(SUBTYPE_SYNC_RESPONSE)
        .write_u32(client_start)
        .write_u32(server_start)
        .write_u32(server_end)
        .getvalue()
    )


def test_no_request_without_devices():
    manager, _, transport, _ = make()
    assert manager.send_sync_request() is False
    assert transport.sent == []


def test_sync_request_goes_to_active_device():
    manager, network, transport, clock = make()
    add_peer(network, "10.0.0.4")
    assert manager.send_sync_request() is True
    data, address = transport.sent[-1]
    assert address == ("10.0.0.4", 4867)
    reader = Reader(data)
    assert reader.read_u8() == PacketType.TIME
    assert reader.read_u8() == SUBTYPE_SYNC_REQUEST
    assert reader.read_u32() == manager.synced_millis()


def test_request_is_answered_with_timestamps():
    manager, network, transport, clock = make()
    request = (
        Writer()
        .write_u8(PacketType.TIME)
        .write_u8(SUBTYPE_SYNC_REQUEST)
        .write_u32(777)
        .getvalue()
    )
    assert network.handle_datagram(request, "10.0.0.5", 999) is True
    data, address = transport.sent[-1]
    assert address[0] == "10.0.0.5"
    reader = Reader(data)
    assert reader.read_u8() == PacketType.TIME
    assert reader.read_u8() == SUBTYPE_SYNC_RESPONSE
    assert reader.read_u32() == 777
    assert reader.read_u32() == 999
    assert reader.read_u32() == manager.synced_millis()


def test_response_adjusts_offset():
    manager, network, _, clock = make()
    before = manager.synced_millis()
    assert network.handle_datagram(sync_response(1000, 1600, 1600), "10.0.0.5", 1200)
    assert manager.offset_millis == 500
    assert manager.synced_millis() - before == manager.offset_millis
    assert manager.synced is True


def test_symmetric_exchange_gives_zero_offset():
    manager, network, _, _ = make()
    network.handle_datagram(sync_response(5000, 5050, 5050), "10.0.0.5", 5100)
    assert manager.offset_millis == 0
    assert manager.last_rtt == 100


def test_can_be_visible_after_single_host_time():
    manager, _, _, clock = make()
    manager.begin()
    assert manager.can_be_visible() is False
    clock.now += SINGLE_HOST_TIME
    assert manager.can_be_visible() is False
    clock.now += 1
    assert manager.can_be_visible() is True


def test_can_be_visible_once_synced():
    manager, network, _, _ = make()
    manager.begin()
    network.handle_datagram(sync_response(1, 1, 1), "10.0.0.5", 1)
    assert manager.can_be_visible() is True


def test_update_respects_interval():
    manager, network, transport, clock = make()
    add_peer(network, "10.0.0.4")
    manager.begin()
    manager.update()
    assert transport.sent == []
    clock.now += 1
    manager.update()
    assert len(transport.sent) == 1
    clock.now += TIME_SYNC_INTERVAL
    manager.update()
    assert len(transport.sent) == 1
    clock.now += 1
    manager.update()
    assert len(transport.sent) == 2


def test_wall_clock_parts():
    manager, _, _, _ = make()
    manager.wall_clock = lambda: datetime(2024, 5, 6, 21, 47, 13, tzinfo=timezone.utc)
    assert (manager.hours(), manager.minutes(), manager.seconds()) == (21, 47, 13)


def test_unknown_subtype_rejected():
    manager, network, _, _ = make()
    assert network.handle_datagram(b"\x02\x05", "10.0.0.5", 0) is False
    assert manager.synced is False