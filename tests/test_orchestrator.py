"""Tests for run_with_lock sequencing."""

import time
from collections.abc import Callable, Sequence
from unittest.mock import MagicMock

import pytest

from redis_setlock.config import Options
from redis_setlock.constants import EXIT_CODE_ERROR
from redis_setlock.core.orchestrator import run_with_lock
from redis_setlock.errors import StoreError
from redis_setlock.models import ServerVersion


def fake_runner(code: int = 0, seen: list | None = None) -> Callable:
    """Coroutine function standing in for the supervisor."""

    async def run(command: Sequence[str]) -> int:
        if seen is not None:
            seen.append(list(command))
        return code

    return run


class TestLockLifecycle:
    """The lock is held exactly while the command runs."""

    def test_runs_command_and_releases(self, store, options: Options) -> None:
        seen: list = []
        code = run_with_lock(options, "jobs", ["echo", "hi"], store, fake_runner(0, seen))
        assert code == 0
        assert seen == [["echo", "hi"]]
        assert store.get("jobs") is None
        assert store.closed

    def test_lock_is_held_while_running(self, store, options: Options) -> None:
        held: list = []

        async def run(command: Sequence[str]) -> int:
            held.append(store.get("jobs"))
            return 0

        run_with_lock(options, "jobs", ["true"], store, run)
        assert held[0] is not None
        assert store.get("jobs") is None

    def test_releases_after_failing_command(self, store, options: Options) -> None:
        code = run_with_lock(options, "jobs", ["false"], store, fake_runner(7))
        assert code == 7
        assert store.get("jobs") is None

    def test_releases_when_supervision_raises(self, store, options: Options) -> None:
        async def run(command: Sequence[str]) -> int:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            run_with_lock(options, "jobs", ["true"], store, run)
        assert store.get("jobs") is None
        assert store.closed

    def test_keep_leaves_lock(self, store) -> None:
        code = run_with_lock(Options(keep=True), "jobs", ["true"], store, fake_runner(0))
        assert code == 0
        assert store.get("jobs") is not None

    def test_runs_real_command(self, store, options: Options) -> None:
        assert run_with_lock(options, "jobs", ["sh", "-c", "exit 5"], store) == 5
        assert store.get("jobs") is None


class TestContention:
    """Exit codes when the key is already held."""

    def test_no_wait_exits_nonzero(self, store) -> None:
        store.hold("jobs")
        seen: list = []
        start = time.monotonic()
        code = run_with_lock(Options(wait=False), "jobs", ["true"], store, fake_runner(0, seen))
        assert code == EXIT_CODE_ERROR
        assert time.monotonic() - start < 1
        assert seen == []

    def test_no_wait_exit_zero(self, store) -> None:
        store.hold("jobs", token="f" * 32)
        options = Options(wait=False, contention_exit_code=0)
        start = time.monotonic()
        assert run_with_lock(options, "jobs", ["true"], store, fake_runner(9)) == 0
        assert time.monotonic() - start < 1
        assert store.get("jobs") == "f" * 32

    def test_store_failure_while_acquiring(self, options: Options) -> None:
        store = MagicMock()
        store.probe_version.return_value = ServerVersion.parse("7.2.4")
        store.set_if_absent.side_effect = StoreError("SET jobs failed")
        code = run_with_lock(options, "jobs", ["true"], store, fake_runner(0))
        assert code == EXIT_CODE_ERROR
        store.close.assert_called_once()


class TestStoreProblems:
    """Failures before any lock attempt."""

    def test_unreachable(self, make_store: Callable, options: Options) -> None:
        store = make_store(reachable=False)
        seen: list = []
        code = run_with_lock(options, "jobs", ["true"], store, fake_runner(0, seen))
        assert code == EXIT_CODE_ERROR
        assert seen == []
        assert store.set_calls == []
        assert store.closed

    def test_connect_timeout_follows_wait_policy(self, make_store: Callable) -> None:
        waiting = make_store()
        run_with_lock(Options(expires=45), "jobs", ["true"], waiting, fake_runner(0))
        assert waiting.connect_timeouts == [45]

        failing_fast = make_store()
        no_wait = Options(expires=45, wait=False)
        run_with_lock(no_wait, "jobs", ["true"], failing_fast, fake_runner(0))
        assert failing_fast.connect_timeouts == [0]

    def test_old_server(self, make_store: Callable, options: Options) -> None:
        store = make_store(version="2.6.11")
        assert run_with_lock(options, "jobs", ["true"], store, fake_runner(0)) == EXIT_CODE_ERROR
        assert store.set_calls == []

    def test_unknown_server_version(self, make_store: Callable, options: Options) -> None:
        store = make_store(version=None)
        assert run_with_lock(options, "jobs", ["true"], store, fake_runner(0)) == EXIT_CODE_ERROR
        assert store.set_calls == []

    def test_version_probe_failure(self, options: Options) -> None:
        store = MagicMock()
        store.probe_version.side_effect = StoreError("INFO failed")
        assert run_with_lock(options, "jobs", ["true"], store, fake_runner(0)) == EXIT_CODE_ERROR
        store.set_if_absent.assert_not_called()

    def test_default_store_uses_redis_address(
        self, monkeypatch: pytest.MonkeyPatch, store, options: Options
    ) -> None:
        client_cls = MagicMock(return_value=store)
        monkeypatch.setattr("redis_setlock.core.orchestrator.RedisStoreClient", client_cls)
        run_with_lock(Options(redis="cache:6390"), "jobs", ["true"], runner=fake_runner(0))
        client_cls.assert_called_once_with("cache", 6390)
