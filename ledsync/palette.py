"""Colour palettes: colour keys on a looping 0..1 axis, blended linearly."""

from __future__ import annotations

from typing import Any

Rgb = tuple[int, int, int]

_BLACK: Rgb = (0, 0, 0)


def rgb_to_color(r: int, g: int, b: int) -> int:
    """Pack 8-bit red, green and blue into one integer (red in the low byte)."""
    return (r & 0xFF) | ((g & 0xFF) << 8) | ((b & 0xFF) << 16)


def color_to_rgb(color: int) -> Rgb:
    """Unpack an integer colour into an (r, g, b) tuple."""
    return color & 0xFF, (color >> 8) & 0xFF, (color >> 16) & 0xFF


def linear_blend(first: Rgb, second: Rgb, fac: float) -> Rgb:
    """Blend two RGB colours; ``fac`` 0 gives ``first``, 1 gives ``second``."""
    return tuple(  # type: ignore[return-value]
        int(a + (b - a) * fac) & 0xFF for a, b in zip(first, second)
    )


class Palette:
    """A named set of colour keys, indexed by position on a cyclic axis."""

    def __init__(self, id: int = 0, name: str = "") -> None:
        self.id = id
        self.name = name
        self._colors: dict[float, int] = {}

    def __repr__(self) -> str:
        return f"Palette(id={self.id!r}, name={self.name!r}, keys={self.keys!r})"

    @property
    def keys(self) -> list[tuple[float, int]]:
        """The colour keys as (position, colour) pairs, ordered by position."""
        return sorted(self._colors.items())

    def clear(self) -> None:
        self._colors.clear()

    def add_color_key(self, pos: float, color: int) -> None:
        """Set the colour at ``pos``, replacing any key already there."""
        self._colors[float(pos)] = int(color)

    def add_rgb_key(self, pos: float, r: int, g: int, b: int) -> None:
        self.add_color_key(pos, rgb_to_color(r, g, b))

    def color_at(self, pos: float) -> Rgb:
        """The colour at ``pos``, blended between the nearest keys on either side."""
        keys = self.keys
        if not keys:
            return _BLACK
        if len(keys) == 1:
            return color_to_rgb(keys[0][1])

        first_color = 0
        before_dist = 2.0
        for key_pos, color in keys:
            if key_pos <= pos and pos - key_pos < before_dist:
                first_color, before_dist = color, pos - key_pos
            elif key_pos <= pos + 1.0 and pos + 1.0 - key_pos < before_dist:
                first_color, before_dist = color, pos + 1.0 - key_pos

        second_color = 0
        after_dist = 2.0
        for key_pos, color in keys:
            if key_pos > pos and key_pos - pos < after_dist:
                second_color, after_dist = color, key_pos - pos
            elif key_pos + 1.0 > pos and key_pos + 1.0 - pos < after_dist:
                second_color, after_dist = color, key_pos + 1.0 - pos

        fac = before_dist / (before_dist + after_dist)
        return linear_blend(color_to_rgb(first_color), color_to_rgb(second_color), fac)

    def from_json(self, data: dict[str, Any]) -> None:
        """Update from a JSON object; missing fields keep their current values."""
        self.id = data.get("id", self.id)
        self.name = data.get("n", self.name)

        keys = data.get("ks")
        if isinstance(keys, list):
            self._colors.clear()
            for key in keys:
                if not isinstance(key, dict):
                    key = {}
                pos = float(key.get("p", 0.0))
                color = int(key.get("c", 0))
                self.add_rgb_key(pos, *color_to_rgb(color))

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "n": self.name,
            "ks": [{"p": pos, "c": color} for pos, color in self.keys],
        }