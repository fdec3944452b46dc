"""Lock manager for Redis-backed mutual exclusion.

Implements the acquire/release protocol on top of a ``StoreClient``:

- every acquisition attempt writes a fresh random token with
  ``SET key token EX ttl NX``, so only one holder can exist until expiry
- release deletes the key only if it still carries our token, so a lock
  that expired and was taken over by another process is left alone
- the server version is checked before any attempt, since older servers
  lack the atomic set-if-absent-with-expiry
"""

import logging
import random
import secrets
import time
from collections.abc import Callable

from ..config import Options
from ..constants import RETRY_INTERVAL, RETRY_JITTER
from ..errors import LockContendedError, StoreError, UnsupportedStoreVersionError
from ..models import MINIMUM_VERSION, Lock, LockState, ServerVersion
from ..services.store import StoreClient

logger = logging.getLogger(__name__)

TOKEN_BYTES = 16  # 128-bit tokens


def create_token() -> str:
    """Return a new 128-bit hex token from a CSPRNG."""
    return secrets.token_hex(TOKEN_BYTES)


def retry_delay(jitter: Callable[[float, float], float] = random.uniform) -> float:
    """Seconds to sleep before the next acquisition attempt."""
    return RETRY_INTERVAL + jitter(-RETRY_JITTER, RETRY_JITTER)


class LockCoordinator:
    """Acquire and release one lock against a store.

    Args:
        store: Connected store client
        options: Invocation options (expiry, wait and keep policies)
        sleep: Blocking sleep used between polls
        token_factory: Source of fresh lock tokens
        jitter: ``uniform(a, b)``-style source of retry jitter
    """

    def __init__(
        self,
        store: StoreClient,
        options: Options,
        sleep: Callable[[float], None] = time.sleep,
        token_factory: Callable[[], str] = create_token,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.store = store
        self.options = options
        self.state = LockState.UNLOCKED
        self._sleep = sleep
        self._token_factory = token_factory
        self._jitter = jitter

    def check_version(self) -> ServerVersion:
        """Refuse to work with servers older than the minimum version.

        Returns:
            The detected server version

        Raises:
            VersionUnparseableError: If the server did not report a version
            UnsupportedStoreVersionError: If the server is too old
        """
        version = self.store.probe_version()
        if version < MINIMUM_VERSION:
            logger.error(
                f"required Redis server version >= {MINIMUM_VERSION}. "
                f"current server version is {version}"
            )
            raise UnsupportedStoreVersionError(
                f"Redis server version {version} is older than {MINIMUM_VERSION}"
            )
        logger.debug(f"Redis server version {version}")
        return version

    def try_acquire(self, key: str) -> Lock | None:
        """Make a single acquisition attempt with a fresh token."""
        token = self._token_factory()
        if self.store.set_if_absent(key, token, self.options.expires):
            return Lock(key=key, token=token, expires=self.options.expires)
        return None

    def acquire(self, key: str) -> Lock:
        """Acquire ``key``, polling while it is held if waiting is enabled.

        Args:
            key: Lock key

        Returns:
            The held lock

        Raises:
            LockContendedError: If the key is held and waiting is disabled
            StoreError: If the store fails while polling
        """
        self.state = LockState.ACQUIRING
        attempts = 0
        while True:
            attempts += 1
            try:
                lock = self.try_acquire(key)
            except StoreError:
                self.state = LockState.UNLOCKED
                raise
            if lock is not None:
                self.state = LockState.HELD
                logger.debug(f"Acquired lock {key!r} after {attempts} attempt(s)")
                return lock
            if not self.options.wait:
                self.state = LockState.UNLOCKED
                raise LockContendedError(f"unable to lock {key!r}: held by another process")
            delay = retry_delay(self._jitter)
            logger.debug(f"Lock {key!r} is held, retrying in {delay:.2f}s")
            self._sleep(delay)

    def release(self, lock: Lock) -> None:
        """Release ``lock`` unless the keep policy is set.

        A lock that is already gone (expired, or taken over after expiry) is
        only logged; so is a store failure during release.
        """
        if self.options.keep:
            logger.debug(f"Keeping lock {lock.key!r} until it expires")
            return
        try:
            deleted = self.store.compare_and_delete(lock.key, lock.token)
        except StoreError as e:
            logger.error(f"Failed to release lock {lock.key!r}: {e}")
            return
        if deleted:
            self.state = LockState.RELEASED
            logger.debug(f"Released lock {lock.key!r}")
        else:
            self.state = LockState.EXPIRED
            logger.warning(f"Lock {lock.key!r} was no longer held at release (expired?)")
