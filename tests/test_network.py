import pytest

from ledsync.network import (
    PORT_UDP,
    NetworkManager,
    PacketType,
    Reader,
    Writer,
)


class FakeTransport:
    def __init__(self):
        self.sent = []

    def sendto(self, data, address):
        self.sent.append((data, address))


def test_each_packet_type_dispatches_by_its_wire_byte():
    network = NetworkManager(transport=FakeTransport())
    seen = []

    for packet_type in PacketType:
        network.register(
            packet_type, lambda r, ip, ms, t=packet_type: seen.append(t) or True
        )

    assert network.handle_datagram(bytes([1]), "10.0.0.1", 0) is True
    assert network.handle_datagram(bytes([2]), "10.0.0.1", 0) is True
    assert network.handle_datagram(bytes([3]), "10.0.0.1", 0) is True
    assert seen == [PacketType.CONNECTIVITY, PacketType.TIME, PacketType.PRESET]


def test_writer_reader_round_trip():
    data = Writer().write_u8(7).write_u32(123456789).write_string("Kitchen").getvalue()
    reader = Reader(data)
    assert reader.read_u8() == 7
    assert reader.read_u32() == 123456789
    assert reader.read_string() == "Kitchen"
    assert reader.remaining == 0


def test_unicode_string_round_trip():
    reader = Reader(Writer().write_string("Wohnzimmer äöü").getvalue())
    assert reader.read_string() == "Wohnzimmer äöü"


def test_writer_u32_is_little_endian():
    assert Writer().write_u32(1).getvalue() == b"\x01\x00\x00\x00"


def test_writer_rejects_out_of_range():
    with pytest.raises(ValueError):
        Writer().write_u8(256)
    with pytest.raises(ValueError):
        Writer().write_u32(-1)


def test_reader_truncated_raises():
    reader = Reader(b"\x01\x02")
    with pytest.raises(ValueError):
        reader.read_u32()


def test_reader_truncated_string_raises():
    data = Writer().write_string("abcdef").getvalue()[:-2]
    with pytest.raises(ValueError):
        Reader(data).read_string()


def test_dispatch_to_registered_handler():
    network = NetworkManager(transport=FakeTransport())
    calls = []

    def handler(reader, ip, millis):
        calls.append((reader.read_u8(), ip, millis))
        return True

    network.register(PacketType.TIME, handler)
    assert network.handle_datagram(b"\x02\x09", "192.168.1.5", 42) is True
    assert calls == [(9, "192.168.1.5", 42)]


def test_dispatch_unknown_type_and_empty():
    network = NetworkManager(transport=FakeTransport())
    assert network.handle_datagram(b"\x09\x01", "10.0.0.1", 0) is False
    assert network.handle_datagram(b"", "10.0.0.1", 0) is False


def test_malformed_packet_is_rejected():
    network = NetworkManager(transport=FakeTransport())
    network.register(PacketType.CONNECTIVITY, lambda r, ip, ms: r.read_u32() >= 0)
    assert network.handle_datagram(b"\x01\x00", "10.0.0.1", 0) is False


def test_send_to_and_broadcast_use_port():
    transport = FakeTransport()
    network = NetworkManager(transport=transport)
    network.send_to(b"ab", "10.0.0.2")
    network.broadcast(b"cd")
    assert transport.sent == [
        (b"ab", ("10.0.0.2", PORT_UDP)),
        (b"cd", ("255.255.255.255", PORT_UDP)),
    ]


def test_send_without_open_raises():
    network = NetworkManager()
    with pytest.raises(RuntimeError):
        network.broadcast(b"x")