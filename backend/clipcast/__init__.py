"""ClipCast: turn long-form episodes into scheduled short clips."""

__version__ = "1.0.0"
