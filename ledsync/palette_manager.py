"""Collection of palettes, synchronised from a JSON configuration."""

from __future__ import annotations

import random
from collections.abc import Iterator
from typing import Any

from .palette import Palette

_MAX_RANDOM_ID = 0x7FFFFFFF


class PaletteManager:
    """Holds palettes by id and keeps them in line with a JSON description."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng if rng is not None else random.Random()
        self._palettes: dict[int, Palette] = {}

    def __len__(self) -> int:
        return len(self._palettes)

    def __contains__(self, id: object) -> bool:
        return id in self._palettes

    def __iter__(self) -> Iterator[Palette]:
        return (self._palettes[key] for key in sorted(self._palettes))

    def get_by_id(self, id: int) -> Palette | None:
        return self._palettes.get(id)

    def get_by_name(self, name: str) -> Palette | None:
        """The first palette, in id order, with the given name."""
        return next((palette for palette in self if palette.name == name), None)

    def create(self, name: str) -> Palette:
        """Create a palette with a random id and register it."""
        id = self._rng.randrange(_MAX_RANDOM_ID)
        palette = Palette(id, name)
        self._palettes[id] = palette
        return palette

    def from_json(self, data: dict[str, Any]) -> None:
        """Apply ``pIds`` (the full id list) and ``ps`` (palette contents)."""
        ids = data.get("pIds")
        if isinstance(ids, list):
            wanted = [int(value) for value in ids]
            wanted_set = set(wanted)
            for id in [key for key in self._palettes if key not in wanted_set]:
                del self._palettes[id]
            for id in wanted:
                self._palettes.setdefault(id, Palette(id))

        for entry in data.get("ps") or []:
            if not isinstance(entry, dict):
                continue
            palette = self._palettes.get(int(entry.get("id", 0)))
            if palette is not None:
                palette.from_json(entry)

    def to_json(self) -> dict[str, Any]:
        ordered = sorted(self._palettes.items())
        return {
            "pIds": [id for id, _ in ordered],
            "ps": [palette.to_json() for _, palette in ordered],
        }