"""Lock store client.

All network interaction with the key-value store lives here. The lock
protocol needs only four capabilities, captured by ``StoreClient``: connect,
report the server version, set-if-absent with expiry, and an atomic
compare-and-delete. ``RedisStoreClient`` implements them on top of redis-py,
using a Lua script for the compare-and-delete so that the comparison and the
delete run as one server-side operation.
"""

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol

import redis

from ..constants import DIAL_TIMEOUT, RETRY_INTERVAL
from ..errors import StoreError, StoreUnreachableError, VersionUnparseableError
from ..models import ServerVersion

logger = logging.getLogger(__name__)

UNLOCK_SCRIPT = """\
if redis.call("get", KEYS[1]) == ARGV[1]
then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class StoreClient(Protocol):
    """Operations the lock protocol requires from a store."""

    def connect(self, timeout: float) -> None: ...

    def probe_version(self) -> ServerVersion: ...

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool: ...

    def compare_and_delete(self, key: str, expected: str) -> bool: ...

    def close(self) -> None: ...


def extract_version(info: Mapping[str, Any]) -> ServerVersion:
    """Pull the server version out of INFO metadata.

    Args:
        info: Parsed ``INFO`` reply (field name -> value)

    Raises:
        VersionUnparseableError: If ``redis_version`` is missing or malformed
    """
    raw = info.get("redis_version")
    if raw is None:
        raise VersionUnparseableError(
            f"could not detect Redis server version from INFO output: {dict(info)}"
        )
    try:
        return ServerVersion.parse(str(raw))
    except ValueError as e:
        raise VersionUnparseableError(f"unrecognized Redis server version {raw!r}") from e


class RedisStoreClient:
    """StoreClient backed by a single Redis server."""

    def __init__(
        self,
        host: str,
        port: int,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.host = host
        self.port = port
        self._sleep = sleep
        self._clock = clock
        self._client = redis.Redis(
            host=host,
            port=port,
            socket_connect_timeout=DIAL_TIMEOUT,
            decode_responses=True,
        )
        self._unlock = self._client.register_script(UNLOCK_SCRIPT)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def connect(self, timeout: float) -> None:
        """Establish the connection, retrying until ``timeout`` seconds pass.

        redis-py dials lazily, so a PING forces the connection. A timeout of
        0 makes exactly one attempt.

        Raises:
            StoreUnreachableError: If no attempt succeeded in time
        """
        start = self._clock()
        while True:
            try:
                self._client.ping()
                logger.debug(f"Connected to Redis at {self.address}")
                return
            except (redis.ConnectionError, redis.TimeoutError) as e:
                elapsed = self._clock() - start
                if elapsed >= timeout:
                    raise StoreUnreachableError(
                        f"Redis server at {self.address} seems down: {e}"
                    ) from e
                logger.debug(f"Redis at {self.address} not reachable yet ({e}), retrying")
            self._sleep(RETRY_INTERVAL)

    def probe_version(self) -> ServerVersion:
        """Return the server version reported by ``INFO server``."""
        try:
            info = self._client.info("server")
        except redis.RedisError as e:
            raise StoreError(f"INFO failed: {e}") from e
        return extract_version(info)

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        """``SET key value EX ttl NX``; True if the key was created."""
        try:
            return bool(self._client.set(key, value, ex=ttl, nx=True))
        except redis.RedisError as e:
            raise StoreError(f"SET {key} failed: {e}") from e

    def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete ``key`` only if it still holds ``expected``; True if deleted."""
        try:
            deleted = self._unlock(keys=[key], args=[expected])
        except redis.RedisError as e:
            raise StoreError(f"unlock of {key} failed: {e}") from e
        return int(deleted) == 1

    def close(self) -> None:
        self._client.close()
