"""Seven-segment clock overlay: digit sources, segment transitions, dimming."""

from __future__ import annotations

import time
from collections.abc import Callable, MutableSequence, Sequence
from typing import Any, Protocol

OVERLAY_NONE = 1
OVERLAY_CLOCK = 2
OVERLAY_COUNTDOWN = 3
OVERLAY_COUNTUP = 4

TRANSITION_NONE = 1
TRANSITION_FADE = 2
TRANSITION_FLOW = 3

NUM_SEGMENTS = 7
LEDS_PER_SEGMENT = 8

_FAR = 99999

_LEFT_ADJ = (
    (0, 1, 0, 0, 0, 0, 0),
    (0, 0, 1, 0, 0, 0, 0),
    (0, 0, 0, 1, 0, 0, 1),
    (1, 0, 0, 0, 1, 0, 0),
    (0, 0, 0, 0, 0, 1, 0),
    (0, 0, 0, 0, 0, 0, 1),
    (0, 0, 1, 1, 0, 0, 0),
)

_RIGHT_ADJ = (
    (0, 0, 0, 1, 1, 0, 0),
    (1, 0, 0, 0, 0, 0, 0),
    (0, 1, 0, 0, 0, 0, 0),
    (0, 0, 1, 0, 0, 0, 1),
    (1, 0, 0, 1, 0, 0, 0),
    (0, 0, 0, 0, 1, 0, 0),
    (0, 0, 0, 0, 0, 1, 0),
)

SEGMENTS = (
    (1, 1, 1, 0, 1, 1, 1),
    (1, 0, 0, 0, 1, 0, 0),
    (1, 1, 0, 1, 0, 1, 1),
    (1, 1, 0, 1, 1, 1, 0),
    (1, 0, 1, 1, 1, 0, 0),
    (0, 1, 1, 1, 1, 1, 0),
    (0, 1, 1, 1, 1, 1, 1),
    (1, 1, 0, 0, 1, 0, 0),
    (1, 1, 1, 1, 1, 1, 1),
    (1, 1, 1, 1, 1, 1, 0),
)

DIGIT_STARTS = (0, 56, 120, 176)
DOT_START = 112


def _monotonic_millis() -> int:
    return time.monotonic_ns() // 1_000_000


def _dim(colors: MutableSequence[int], start: int, factors: Sequence[float]) -> None:
    for offset, factor in enumerate(factors):
        base = (start + offset) * 3
        for channel in range(base, base + 3):
            colors[channel] = int(colors[channel] * factor)


class _TimeSource(Protocol):
    def hours(self) -> int: ...
    def minutes(self) -> int: ...
    def synced_millis(self) -> int: ...


class SegmentTransition:
    """Moves per-LED brightness of a seven-segment digit towards its target."""

    def __init__(self, id: int) -> None:
        self.id = id
        self.num_segments = NUM_SEGMENTS
        self.leds_per_segment = LEDS_PER_SEGMENT
        self.duration_millis = 300

    def _per_milli(self) -> float:
        return 1.0 / self.duration_millis if self.duration_millis else float("inf")

    def transition(
        self,
        brightness: MutableSequence[float],
        target_segments: Sequence[int],
        delta_millis: int,
    ) -> None:
        """The base transition leaves brightness as it is."""

    def from_json(self, data: dict[str, Any]) -> None:
        self.duration_millis = data.get("dMs", self.duration_millis)

    def to_json(self) -> dict[str, Any]:
        return {"dMs": self.duration_millis}


class NoTransition(SegmentTransition):
    """Switches segments fully on or off at once."""

    def __init__(self) -> None:
        super().__init__(TRANSITION_NONE)

    def transition(self, brightness, target_segments, delta_millis) -> None:
        for seg in range(self.num_segments):
            value = 1.0 if target_segments[seg] else 0.0
            start = seg * self.leds_per_segment
            for index in range(start, start + self.leds_per_segment):
                brightness[index] = value


class FadeTransition(SegmentTransition):
    """Fades whole segments in and out over the duration."""

    def __init__(self) -> None:
        super().__init__(TRANSITION_FADE)

    def transition(self, brightness, target_segments, delta_millis) -> None:
        step = self._per_milli() * delta_millis if delta_millis else 0.0
        for seg in range(self.num_segments):
            change = step if target_segments[seg] else -step
            start = seg * self.leds_per_segment
            for index in range(start, start + self.leds_per_segment):
                brightness[index] = min(1.0, max(0.0, brightness[index] + change))


class FlowTransition(SegmentTransition):
    """Lets light flow into a segment from the lit neighbour it touches."""

    def __init__(self) -> None:
        super().__init__(TRANSITION_FLOW)

    def transition(self, brightness, target_segments, delta_millis) -> None:
        i1 = 0
        i2 = self.leds_per_segment // 2 - 1
        i3 = self.leds_per_segment // 2
        i4 = self.leds_per_segment - 1

        for seg in range(self.num_segments):
            off = 0 if target_segments[seg] else 1
            left_dist = self.dist_to_next_on(seg, target_segments, 1, off)
            right_dist = self.dist_to_next_on(seg, target_segments, 0, off)
            fac = (-1.0 if off else 1.0) * delta_millis

            if left_dist > 1 and right_dist > 1:
                self.flow_dim(brightness, seg, i4, i3, fac)
                self.flow_dim(brightness, seg, i1, i2, fac)
            elif left_dist > right_dist:
                self.flow_dim(brightness, seg, i4, i1, fac)
            elif left_dist < right_dist:
                self.flow_dim(brightness, seg, i1, i4, fac)
            else:
                self.flow_dim(brightness, seg, i2, i1, fac)
                self.flow_dim(brightness, seg, i3, i4, fac)

    def flow_dim(
        self,
        brightness: MutableSequence[float],
        seg: int,
        start_index: int,
        end_index: int,
        fac: float,
    ) -> None:
        """Pour brightness in at ``start_index``; overflow runs on towards ``end_index``."""
        direction = -1 if end_index < start_index else 1
        span = (end_index - start_index) * direction + 1
        amount = span * self._per_milli() * fac if fac else 0.0

        offset = start_index
        while True:
            index = seg * self.leds_per_segment + offset
            brightness[index] += amount
            if brightness[index] < 0.0:
                amount = brightness[index]
                brightness[index] = 0.0
            elif brightness[index] > 1.0:
                amount = brightness[index] - 1.0
                brightness[index] = 1.0
            else:
                break
            if offset == end_index:
                break
            offset += direction

    def dist_to_next_on(
        self, seg: int, target_segments: Sequence[int], left: int, on: int
    ) -> int:
        """0 if the segment already has state ``on``, 1 if adjacent, else far."""
        if (1 if target_segments[seg] else 0) == (1 if on else 0):
            return 0
        adjacency = _LEFT_ADJ if left else _RIGHT_ADJ
        touches = any(
            adjacent == 1 and target_segments[i]
            for i, adjacent in enumerate(adjacency[seg])
        )
        if touches:
            return 1 if on else _FAR
        return _FAR if on else 1


class SevenSegmentElement:
    """One digit of 7 segments, 8 LEDs each, starting at an LED index."""

    LENGTH = NUM_SEGMENTS * LEDS_PER_SEGMENT

    def __init__(self, start_index: int, clock: Callable[[], int] | None = None) -> None:
        self.start_index = start_index
        self._clock = clock if clock is not None else _monotonic_millis
        self.number = 0
        self._brightness = [0.0] * self.LENGTH
        self._last_update_millis = self._clock()

    @property
    def brightness(self) -> list[float]:
        return list(self._brightness)

    def update(
        self, colors: MutableSequence[int], transition: SegmentTransition | None
    ) -> None:
        now = self._clock()
        delta = now - self._last_update_millis
        self._last_update_millis = now
        if transition is not None:
            transition.transition(self._brightness, SEGMENTS[self.number], delta)
        _dim(colors, self.start_index, self._brightness)

    def set_number(self, number: int) -> None:
        self.number = number % 10


class DotElement:
    """The blinking separator dots, pulsing with a two-second period."""

    LENGTH = 8

    def __init__(self, start_index: int, clock: Callable[[], int] | None = None) -> None:
        self.start_index = start_index
        self._clock = clock if clock is not None else _monotonic_millis

    def update(self, colors: MutableSequence[int]) -> None:
        frac = (self._clock() % 2000) / 1000.0
        if frac > 1.0:
            frac = 2.0 - frac
        _dim(colors, self.start_index, [frac] * self.LENGTH)


class DataSource:
    """Supplies the four digits shown, least significant first."""

    def __init__(self, id: int) -> None:
        self.id = id

    def update(self) -> None:
        """Refresh internal state; the base source has none."""

    def digit(self, index: int) -> int:
        return 0

    def animate_dots(self) -> bool:
        return True

    def from_json(self, data: dict[str, Any]) -> None:
        """Apply settings; the base source has none."""

    def to_json(self) -> dict[str, Any]:
        return {}


class NoneDataSource(DataSource):
    """Lights every segment and keeps the dots still."""

    def __init__(self) -> None:
        super().__init__(OVERLAY_NONE)

    def digit(self, index: int) -> int:
        return 8

    def animate_dots(self) -> bool:
        return False


def _clock_digit(high: int, low: int, index: int) -> int | None:
    return {0: low % 10, 1: low // 10, 2: high % 10, 3: high // 10}.get(index)


class TimeDataSource(DataSource):
    """Shows the wall-clock time as HH:MM."""

    def __init__(self, time_manager: _TimeSource) -> None:
        super().__init__(OVERLAY_CLOCK)
        self._time = time_manager

    def digit(self, index: int) -> int:
        value = _clock_digit(self._time.hours(), self._time.minutes(), index)
        return super().digit(index) if value is None else value


class CountdownDataSource(DataSource):
    """Counts down from a set time (one minute by default) as MM:SS."""

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        super().__init__(OVERLAY_COUNTDOWN)
        self._clock = clock if clock is not None else _monotonic_millis
        self._start_millis = self._clock()
        self.value_millis = 60 * 1000
        self._elapsed_millis = 0

    def update(self) -> None:
        self._elapsed_millis = self._clock() - self._start_millis

    def digit(self, index: int) -> int:
        remaining = max(0, self.value_millis - self._elapsed_millis)
        seconds_total = remaining // 1000
        value = _clock_digit(seconds_total // 60, seconds_total % 60, index)
        return super().digit(index) if value is None else value

    def from_json(self, data: dict[str, Any]) -> None:
        """Set ``vMs`` and restart the countdown."""
        self.value_millis = data.get("vMs", self.value_millis)
        self._start_millis = self._clock()
        self._elapsed_millis = 0


class CountupDataSource(DataSource):
    """Counts the time since it was created as MM:SS."""

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        super().__init__(OVERLAY_COUNTUP)
        self._clock = clock if clock is not None else _monotonic_millis
        self._start_millis = self._clock()
        self._elapsed_millis = 0

    def update(self) -> None:
        self._elapsed_millis = self._clock() - self._start_millis

    def digit(self, index: int) -> int:
        seconds_total = self._elapsed_millis // 1000
        value = _clock_digit(seconds_total // 60, seconds_total % 60, index)
        return super().digit(index) if value is None else value


class OverlayManager:
    """Dims an LED frame so that four digits and the dots show through."""

    def __init__(
        self,
        time_manager: _TimeSource | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._time = time_manager
        self._clock = clock if clock is not None else _monotonic_millis
        dot_clock = time_manager.synced_millis if time_manager is not None else self._clock
        self.digits = [SevenSegmentElement(start, self._clock) for start in DIGIT_STARTS]
        self.dot = DotElement(DOT_START, dot_clock)
        self.data_source: DataSource = self._make_source(OVERLAY_CLOCK) or NoneDataSource()
        self.transition: SegmentTransition = NoTransition()

    def _make_source(self, overlay_id: int) -> DataSource | None:
        if overlay_id == OVERLAY_NONE:
            return NoneDataSource()
        if overlay_id == OVERLAY_CLOCK:
            return TimeDataSource(self._time) if self._time is not None else None
        if overlay_id == OVERLAY_COUNTDOWN:
            return CountdownDataSource(self._clock)
        if overlay_id == OVERLAY_COUNTUP:
            return CountupDataSource(self._clock)
        return None

    @staticmethod
    def _make_transition(transition_id: int) -> SegmentTransition | None:
        factories = {
            TRANSITION_NONE: NoTransition,
            TRANSITION_FADE: FadeTransition,
            TRANSITION_FLOW: FlowTransition,
        }
        factory = factories.get(transition_id)
        return factory() if factory is not None else None

    def update(self, colors: MutableSequence[int]) -> None:
        self.data_source.update()
        for index, element in enumerate(self.digits):
            element.set_number(self.data_source.digit(index))
            element.update(colors, self.transition)
        if self.data_source.animate_dots():
            self.dot.update(colors)

    def from_json(self, data: dict[str, Any]) -> None:
        overlay_id = data.get("oId") or 0
        if overlay_id:
            source = self._make_source(int(overlay_id))
            if source is not None:
                self.data_source = source

        source_data = data.get("oD")
        if isinstance(source_data, dict) and source_data:
            self.data_source.from_json(source_data)

        transition_id = data.get("tId") or 0
        if transition_id:
            transition = self._make_transition(int(transition_id))
            if transition is not None:
                self.transition = transition

        transition_data = data.get("tD")
        if isinstance(transition_data, dict) and transition_data:
            self.transition.from_json(transition_data)

    def to_json(self) -> dict[str, Any]:
        return {"oId": self.data_source.id, "tId": self.transition.id}