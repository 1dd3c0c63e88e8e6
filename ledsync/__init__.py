"""Palettes, effect base classes, a seven-segment overlay, presets and LAN time sync for networked LED controllers."""

__version__ = "0.1.0"