"""Shared test fixtures for redis-setlock tests."""

import threading
import time
from collections.abc import Callable

import pytest
from typer.testing import CliRunner

from redis_setlock.config import Options
from redis_setlock.errors import StoreUnreachableError
from redis_setlock.models import ServerVersion
from redis_setlock.services.store import extract_version


class FakeStore:
    """In-memory StoreClient honouring NX and TTL semantics."""

    def __init__(
        self,
        version: str | None = "7.2.4",
        reachable: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.version = version
        self.reachable = reachable
        self.clock = clock
        self.data: dict[str, tuple[str, float]] = {}
        self.set_calls: list[tuple[str, str, int]] = []
        self.connect_timeouts: list[float] = []
        self.closed = False
        self._mutex = threading.Lock()

    def connect(self, timeout: float) -> None:
        self.connect_timeouts.append(timeout)
        if not self.reachable:
            raise StoreUnreachableError("Redis server at fake:6379 seems down")

    def probe_version(self) -> ServerVersion:
        info = {} if self.version is None else {"redis_version": self.version}
        return extract_version(info)

    def _live(self, key: str) -> tuple[str, float] | None:
        entry = self.data.get(key)
        if entry is not None and entry[1] <= self.clock():
            del self.data[key]
            return None
        return entry

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        with self._mutex:
            self.set_calls.append((key, value, ttl))
            if self._live(key) is not None:
                return False
            self.data[key] = (value, self.clock() + ttl)
            return True

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with self._mutex:
            entry = self._live(key)
            if entry is not None and entry[0] == expected:
                del self.data[key]
                return True
            return False

    def get(self, key: str) -> str | None:
        with self._mutex:
            entry = self._live(key)
            return None if entry is None else entry[0]

    def hold(self, key: str, token: str = "f" * 32, ttl: int = 60) -> None:
        """Pre-seed ``key`` as held by another process."""
        self.set_if_absent(key, token, ttl)
        self.set_calls.clear()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def store() -> FakeStore:
    """In-memory lock store."""
    return FakeStore()


@pytest.fixture
def options() -> Options:
    """Default options: wait for the lock, release on exit."""
    return Options()


@pytest.fixture
def no_wait_options() -> Options:
    """Fail-fast options, as with -n."""
    return Options(wait=False)


@pytest.fixture
def make_store() -> Callable[..., FakeStore]:
    """Factory for stores with a custom version, reachability or clock."""
    return FakeStore
