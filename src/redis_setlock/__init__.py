"""redis-setlock: run a command while holding a named lock in Redis."""

__version__ = "0.1.0"
