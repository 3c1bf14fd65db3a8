"""Real-time pre-game lobby server."""

__version__ = "0.1.0"
