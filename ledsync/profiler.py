"""Simple timestamp profiler producing a plain-text report."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import NamedTuple

_RULE = "=" * 20


def _monotonic_millis() -> int:
    return time.monotonic_ns() // 1_000_000


class LogEntry(NamedTuple):
    timestamp: int
    message: str


class Profiler:
    """Collects timestamps and reports the time between consecutive ones."""

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock if clock is not None else _monotonic_millis
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def add_timestamp(self, message: str = "") -> None:
        self._entries.append(LogEntry(self._clock(), message))

    def report(self) -> str:
        """Render the collected timestamps and clear them."""
        lines = [_RULE]
        lines.append("".join(f"{entry.timestamp}ms " for entry in self._entries))
        lines.append("")
        for index, (earlier, later) in enumerate(
            zip(self._entries, self._entries[1:]), start=1
        ):
            diff = later.timestamp - earlier.timestamp
            lines.append(f"{index}. {later.message}: {diff}ms")
        lines.append("")
        lines.append(_RULE)
        self._entries.clear()
        return "\n".join(lines) + "\n"