"""Lock model for the Redis lock entry held by this process."""

import os
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class LockState(str, Enum):
    """Lifecycle of a single lock acquisition."""

    UNLOCKED = "unlocked"
    ACQUIRING = "acquiring"
    HELD = "held"
    RELEASED = "released"
    # Entry was already gone (or owned by someone else) at release time
    EXPIRED = "expired"


class Lock(BaseModel):
    """Lock entry written to Redis as ``key -> token``.

    Attributes:
        key: Lock key shared by all cooperating processes.
        token: Random ownership proof stored as the key's value.
        expires: Server-side TTL in seconds.
        pid: Process ID of the lock holder.
        acquired_at: When the lock was acquired.
    """

    key: str = Field(description="Lock key")
    token: str = Field(min_length=32, max_length=32, description="Hex ownership token")
    expires: int = Field(gt=0, description="TTL in seconds")
    pid: int = Field(default_factory=os.getpid)
    acquired_at: datetime = Field(default_factory=datetime.now)
