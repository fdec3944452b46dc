"""External service integrations for redis-setlock.

- store: Redis lock store client
"""

from .store import UNLOCK_SCRIPT, RedisStoreClient, StoreClient, extract_version

__all__ = [
    "UNLOCK_SCRIPT",
    "RedisStoreClient",
    "StoreClient",
    "extract_version",
]
