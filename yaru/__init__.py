"""yaru - a small task manager backed by a local daemon."""

__version__ = "1.0.0"
