"""Pydantic data models for redis-setlock.

- Lock: local record of a lock entry we hold in Redis
- LockState: lifecycle of one acquisition
- ServerVersion: parsed Redis server version
"""

from .lock import Lock, LockState
from .server_version import MINIMUM_VERSION, ServerVersion

__all__ = [
    "MINIMUM_VERSION",
    "Lock",
    "LockState",
    "ServerVersion",
]
