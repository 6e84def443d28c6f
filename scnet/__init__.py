"""Stream sockets, shutdown signal handling, a ring queue and size helpers."""

__version__ = "2.0.0"

__all__ = ["ringqueue", "signals", "sock", "util"]