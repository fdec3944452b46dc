"""Top-level sequencing: connect, validate, acquire, run, release."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from ..config import Options
from ..constants import EXIT_CODE_ERROR
from ..errors import LockContendedError, StoreError, StoreUnreachableError, StoreVersionError
from ..services.store import RedisStoreClient, StoreClient
from .lock_manager import LockCoordinator
from .supervisor import supervise

logger = logging.getLogger(__name__)

Supervise = Callable[[Sequence[str]], Awaitable[int]]


def run_with_lock(
    options: Options,
    key: str,
    command: Sequence[str],
    store: StoreClient | None = None,
    runner: Supervise = supervise,
) -> int:
    """Run ``command`` while holding the lock ``key``.

    Args:
        options: Invocation options
        key: Lock key
        command: Program and its arguments
        store: Store client (default: Redis at ``options.redis``)
        runner: Coroutine function supervising the command

    Returns:
        Process exit code: the command's outcome, the contention code, or
        EXIT_CODE_ERROR when the store is unusable
    """
    if store is None:
        store = RedisStoreClient(options.host, options.port)
    try:
        try:
            store.connect(options.connect_timeout)
        except StoreUnreachableError as e:
            logger.error(str(e))
            return EXIT_CODE_ERROR

        coordinator = LockCoordinator(store, options)
        try:
            coordinator.check_version()
        except StoreVersionError as e:
            logger.error(str(e))
            return EXIT_CODE_ERROR
        except StoreError as e:
            logger.error(f"Could not check Redis server version: {e}")
            return EXIT_CODE_ERROR

        try:
            lock = coordinator.acquire(key)
        except LockContendedError as e:
            logger.warning(str(e))
            return options.contention_exit_code
        except StoreError as e:
            logger.error(f"Could not acquire lock {key!r}: {e}")
            return EXIT_CODE_ERROR

        try:
            return asyncio.run(runner(command))
        finally:
            coordinator.release(lock)
    finally:
        store.close()
