"""Base classes for LED effects: time-cyclic and simulated, in 1D and 2D."""

from __future__ import annotations

import abc
import time
from collections.abc import Callable, MutableSequence
from typing import Any

from .palette import Palette, Rgb

Layout = Callable[[int], tuple[float, float]]

DEFAULT_DURATION = 10000


def _monotonic_millis() -> int:
    return time.monotonic_ns() // 1_000_000


def _put(leds: MutableSequence[int], index: int, color: Rgb) -> None:
    base = index * 3
    r, g, b = color
    leds[base] = r
    leds[base + 1] = g
    leds[base + 2] = b


class Effect(abc.ABC):
    """An effect fills a flat RGB buffer (3 values per LED) from a palette."""

    def __init__(self, id: int) -> None:
        self.id = id

    @abc.abstractmethod
    def update(self, leds: MutableSequence[int], count: int, palette: Palette) -> None:
        """Write ``count`` LED colours into ``leds``."""

    def from_json(self, data: dict[str, Any]) -> None:
        """Apply settings; the base effect has none."""

    def to_json(self) -> dict[str, Any]:
        return {}


class _CyclicSettings:
    """Duration and position range shared by the cyclic effects."""

    duration: int
    start_pos: float
    end_pos: float

    def _init_cycle(self) -> None:
        self.duration = DEFAULT_DURATION
        self.start_pos = 0.0
        self.end_pos = 1.0

    def _time_val(self, millis: int) -> float:
        return (millis % self.duration) / self.duration

    def _cycle_from_json(self, data: dict[str, Any]) -> None:
        self.duration = int(data.get("d", self.duration))
        self.start_pos = float(data.get("sP", self.start_pos))
        self.end_pos = float(data.get("eP", self.end_pos))

    def _cycle_to_json(self) -> dict[str, Any]:
        return {"d": self.duration, "sP": self.start_pos, "eP": self.end_pos}


class CyclicEffect(_CyclicSettings, Effect):
    """Colours depend only on LED position and the phase of a repeating cycle."""

    def __init__(self, id: int, synced_millis: Callable[[], int] | None = None) -> None:
        super().__init__(id)
        self._synced_millis = synced_millis if synced_millis is not None else _monotonic_millis
        self._init_cycle()

    def update(self, leds: MutableSequence[int], count: int, palette: Palette) -> None:
        time_val = self._time_val(self._synced_millis())
        span = self.end_pos - self.start_pos
        for i in range(count):
            pos = (i / count) * span + self.start_pos
            _put(leds, i, self.color_at(pos, time_val, count, palette))

    @abc.abstractmethod
    def color_at(self, pos: float, time_val: float, count: int, palette: Palette) -> Rgb:
        """The colour at ``pos`` when the cycle is at phase ``time_val`` (0..1)."""

    def from_json(self, data: dict[str, Any]) -> None:
        super().from_json(data)
        self._cycle_from_json(data)

    def to_json(self) -> dict[str, Any]:
        result = super().to_json()
        result.update(self._cycle_to_json())
        return result


class _SimulationSettings:
    """Step timing shared by the simulated effects."""

    led_count: int
    start_millis: int
    last_millis: int
    speed: float

    def _init_simulation(self) -> None:
        self.led_count = 0
        self.start_millis = 0
        self.last_millis = 0
        self.speed = 1.0

    def _sim_from_json(self, data: dict[str, Any]) -> None:
        self.speed = float(data.get("s", self.speed))

    def _sim_to_json(self) -> dict[str, Any]:
        return {"s": self.speed}


class SimulationEffect(_SimulationSettings, Effect):
    """State advanced step by step; re-initialised when the LED count changes."""

    def __init__(self, id: int, clock: Callable[[], int] | None = None) -> None:
        super().__init__(id)
        self._clock = clock if clock is not None else _monotonic_millis
        self._init_simulation()

    @abc.abstractmethod
    def init(self, old_count: int, new_count: int) -> None:
        """Prepare state for ``new_count`` LEDs."""

    def update(self, leds: MutableSequence[int], count: int, palette: Palette) -> None:
        current = self._clock()
        if self.led_count != count:
            self.init(self.led_count, count)
            self.led_count = count
            self.start_millis = current
        else:
            elapsed = int((current - self.last_millis) * self.speed)
            self.simulate(leds, count, palette, elapsed)
        self.last_millis = current

    @abc.abstractmethod
    def simulate(
        self, leds: MutableSequence[int], count: int, palette: Palette, dtime: int
    ) -> None:
        """Advance by ``dtime`` milliseconds (already scaled by speed) and draw."""

    def from_json(self, data: dict[str, Any]) -> None:
        super().from_json(data)
        self._sim_from_json(data)

    def to_json(self) -> dict[str, Any]:
        result = super().to_json()
        result.update(self._sim_to_json())
        return result


class CyclicEffect2D(_CyclicSettings, Effect):
    """Cyclic effect whose colours depend on each LED's 2D position."""

    def __init__(
        self, id: int, synced_millis: Callable[[], int], layout: Layout
    ) -> None:
        super().__init__(id)
        self._synced_millis = synced_millis
        self._layout = layout
        self._init_cycle()

    def update(self, leds: MutableSequence[int], count: int, palette: Palette) -> None:
        time_val = self._time_val(self._synced_millis())
        for i in range(count):
            x, y = self._layout(i)
            _put(leds, i, self.color_at(x, y, time_val, count, palette))

    @abc.abstractmethod
    def color_at(
        self, x: float, y: float, time_val: float, count: int, palette: Palette
    ) -> Rgb:
        """The colour at (``x``, ``y``) at cycle phase ``time_val``."""

    def from_json(self, data: dict[str, Any]) -> None:
        super().from_json(data)
        self._cycle_from_json(data)

    def to_json(self) -> dict[str, Any]:
        result = super().to_json()
        result.update(self._cycle_to_json())
        return result


class SimulationEffect2D(_SimulationSettings, Effect):
    """Simulated effect sampled at each LED's 2D position."""

    def __init__(self, id: int, clock: Callable[[], int], layout: Layout) -> None:
        super().__init__(id)
        self._clock = clock
        self._layout = layout
        self._init_simulation()

    @abc.abstractmethod
    def init(self) -> None:
        """Reset the simulation state."""

    def update(self, leds: MutableSequence[int], count: int, palette: Palette) -> None:
        current = self._clock()
        if self.led_count != count:
            self.init()
            self.led_count = count
            self.start_millis = current
        else:
            elapsed = int((current - self.last_millis) * self.speed)
            self.simulate(palette, elapsed)
            for i in range(count):
                x, y = self._layout(i)
                _put(leds, i, self.color_at(x, y, palette))
        self.last_millis = current

    @abc.abstractmethod
    def simulate(self, palette: Palette, dtime: int) -> None:
        """Advance the simulation by ``dtime`` milliseconds."""

    @abc.abstractmethod
    def color_at(self, x: float, y: float, palette: Palette) -> Rgb:
        """The simulated colour at (``x``, ``y``)."""

    def from_json(self, data: dict[str, Any]) -> None:
        super().from_json(data)
        self._sim_from_json(data)

    def to_json(self) -> dict[str, Any]:
        result = super().to_json()
        result.update(self._sim_to_json())
        return result