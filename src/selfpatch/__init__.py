"""Self-modifying patch pipeline for a Discord community bot."""

__version__ = "0.3.0"
