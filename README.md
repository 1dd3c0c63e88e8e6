# ledsync

`ledsync` holds the core logic of a networked LED controller. Several
controllers on the same LAN find each other with heartbeats. They agree on a
shared millisecond clock and share presets, so they can show the same
animation in step. The clock, the random source and the UDP transport are
passed in as arguments, which lets you drive each part by hand and test it on
its own.

It has no runtime dependencies.

## Install

```
pip install ledsync
pip install "ledsync[test]"   # adds pytest, for the test suite
```

## Modules

| Module | Contents |
| --- | --- |
| `ledsync.palette` | `Palette` holds colour keys on a cyclic 0..1 axis and blends linearly between them. The module also has `rgb_to_color`, `color_to_rgb` and `linear_blend`. |
| `ledsync.palette_manager` | `PaletteManager` keeps palettes by id and finds them by id or name (`get_by_id`, `get_by_name`). `create` gives a new palette a random id. `from_json` / `to_json` sync the set with a JSON config (`pIds` / `ps`). |
| `ledsync.profiler` | `Profiler` collects timestamps with `add_timestamp`. `report()` returns the time between consecutive timestamps as text and clears the list. |
| `ledsync.network` | `PacketType` and the binary packet format: `Writer` / `Reader` handle u8, little-endian u32 and length-prefixed UTF-8 strings. `NetworkManager` sends datagrams (`send_to`, `broadcast`) and passes each incoming datagram to the handler registered for its type byte. |
| `ledsync.connectivity` | `ConnectivityManager` broadcasts heartbeats and keeps the active peers (`ActiveDevice`) by IP. It drops peers not heard from for 5 seconds and reports changes to the device list as JSON through `on_devices_changed`. |
| `ledsync.timesync` | `TimeManager` asks a randomly chosen active peer for its time and adjusts its offset, which gives `synced_millis()`. It also gives the wall-clock time (`hours`, `minutes`, `seconds`), by default in `Europe/Berlin`. If that zone is not installed it falls back to local time. |
| `ledsync.overlay` | A four-digit seven-segment overlay (`OverlayManager`) that dims an RGB frame. It can show a clock, a countdown, a count-up or all segments lit. Segment transitions are none, fade or flow, and the separator dots pulse. |
| `ledsync.effects` | Abstract base classes for effects: `Effect`, `CyclicEffect`, `SimulationEffect`, `CyclicEffect2D` and `SimulationEffect2D`. |
| `ledsync.presets` | `Preset` and `Playlist`, and `PresetManager`. `PresetManager` stores device configurations in `presets.json` and playlists in `playlists.json` in a directory you choose, cycles through playlists, and sends presets to and receives them from peers. |

## Examples

Palettes:

```python
from ledsync.palette import Palette

palette = Palette(3, "RedAndGreen")
palette.add_color_key(0.0, 0x0000FF)
palette.add_color_key(0.5, 0x00FF00)

print(palette.color_at(0.25))  # halfway between the two keys
print(palette.to_json())       # {'id': 3, 'n': 'RedAndGreen', 'ks': [...]}
```

Peer discovery with a transport that only records what is sent:

```python
from ledsync.network import NetworkManager, PacketType, Writer
from ledsync.connectivity import ConnectivityManager

sent = []

class Capture:
    def sendto(self, data, address):
        sent.append((data, address))

net = NetworkManager(transport=Capture())
peers = ConnectivityManager(net, device_name="kitchen", clock=lambda: 0)
peers.begin()  # broadcasts a heartbeat request to 255.255.255.255:4867

heartbeat = (
    Writer().write_u8(PacketType.CONNECTIVITY).write_u8(2).write_string("desk").getvalue()
)
net.handle_datagram(heartbeat, "192.168.1.20", 0)
print(peers.active_devices())  # ['192.168.1.20']
```

If you give no transport, `NetworkManager.open()` binds a UDP socket on port
4867 and receives on a background thread. It can also be used as a context
manager.

Stepping a profiler by hand:

```python
from ledsync.profiler import Profiler

ticks = iter([0, 5, 12])
profiler = Profiler(clock=lambda: next(ticks))
profiler.add_timestamp()
profiler.add_timestamp("render")
profiler.add_timestamp("send")
print(profiler.report())
```

## What it does not do

- It has no command-line program, no web interface and no WebSocket push. Device-list and preset changes go only to the callbacks you set: `on_devices_changed`, `on_config_changed` and `on_preset_loaded`.
- It does not drive LED hardware. Effects and the overlay only fill or dim a flat list of RGB values.
- It ships no concrete effects, only the abstract base classes in `ledsync.effects`.
- It does not store the full device configuration. `PresetManager` saves whatever the `device_config` object you pass returns from `to_json()`.
- `Preset.enable_alexa` is only stored and serialised (`eA`). Nothing connects it to a voice assistant.

## Running the tests

```
pytest
```