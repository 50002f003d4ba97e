"""Tests for formflow/autosave.py -- debounced auto-save with retry and local fallback.

Each scenario runs on its own event loop via asyncio.run; delays and
backoff are shrunk to milliseconds.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from formflow.autosave import AutoSaveController, AutoSaveOptions, SaveStatus
from formflow.config import Settings
from formflow.connectivity import ConnectivityMonitor
from formflow.errors import OFFLINE_MESSAGE, OfflineError, TerminalSaveError
from formflow.local_store import LocalFallbackStore
from formflow.retry import RetryPolicy, exponential_backoff

FAST = AutoSaveOptions(delay=10, max_retries=3, local_storage_key="autosave-tok")


def _tiny_backoff(attempt: int) -> float:
    return 0.001


class Recorder:
    """Save function that fails a configurable number of times."""

    def __init__(self, failures: int = 0, exc: Exception | None = None) -> None:
        self.calls: list = []
        self.failures = failures
        self.exc = exc or RuntimeError("server down")

    async def __call__(self, data) -> None:
        self.calls.append(data)
        if self.failures < 0 or len(self.calls) <= self.failures:
            raise self.exc


@pytest.fixture()
def store(tmp_path):
    return LocalFallbackStore(tmp_path / "local")


def _controller(save, store, **kwargs) -> AutoSaveController:
    options = kwargs.pop("options", FAST)
    kwargs.setdefault("retry_policy", RetryPolicy(max_retries=options.max_retries,
                                                  backoff=_tiny_backoff))
    return AutoSaveController(save, options, local_store=store, **kwargs)


# ── Happy path ───────────────────────────────────────────────────────────


class TestSaving:
    def test_debounced_save_succeeds(self, store):
        save = Recorder()

        async def scenario():
            c = _controller(save, store)
            assert c.status is SaveStatus.IDLE
            c.update({"name": "A"})
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        assert save.calls == [{"name": "A"}]
        assert c.status is SaveStatus.SAVED
        assert c.last_saved is not None
        assert c.error is None

    def test_rapid_changes_save_only_last(self, store):
        save = Recorder()

        async def scenario():
            c = _controller(save, store)
            c.update({"name": "A"})
            c.update({"name": "Ma"})
            c.update({"name": "Maria"})
            await c.wait_until_settled()

        asyncio.run(scenario())
        assert save.calls == [{"name": "Maria"}]

    def test_unchanged_data_not_saved(self, store):
        save = Recorder()

        async def scenario():
            c = _controller(save, store, initial_data={"name": "A"})
            c.update({"name": "A"})
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        assert save.calls == []
        assert c.status is SaveStatus.IDLE

    def test_empty_data_not_saved(self, store):
        save = Recorder()

        async def scenario():
            c = _controller(save, store)
            c.update({})
            await c.wait_until_settled()

        asyncio.run(scenario())
        assert save.calls == []

    def test_snapshot_is_isolated_from_caller(self, store):
        save = Recorder()

        async def scenario():
            c = _controller(save, store)
            doc = {"tags": ["a"]}
            c.update(doc)
            doc["tags"].append("b")
            await c.wait_until_settled()

        asyncio.run(scenario())
        assert save.calls == [{"tags": ["a"]}]

    def test_save_now_bypasses_debounce(self, store):
        save = Recorder()

        async def scenario():
            c = _controller(save, store, options=AutoSaveOptions(delay=60_000))
            c.update({"name": "A"})
            await c.save_now()
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        assert save.calls == [{"name": "A"}]
        assert c.status is SaveStatus.SAVED

    def test_save_now_without_data_is_noop(self, store):
        save = Recorder()
        asyncio.run(_controller(save, store).save_now())
        assert save.calls == []

    def test_state_change_callback(self, store):
        seen = []

        async def scenario():
            c = _controller(Recorder(), store, on_state_change=lambda s: seen.append(s.status))
            c.update({"a": 1})
            await c.wait_until_settled()

        asyncio.run(scenario())
        assert seen == [SaveStatus.SAVING, SaveStatus.SAVED]


# ── Failures and retries ─────────────────────────────────────────────────


class TestRetries:
    def test_retry_bound(self, store):
        save = Recorder(failures=-1)

        async def scenario():
            c = _controller(save, store, options=AutoSaveOptions(delay=10, max_retries=2))
            c.update({"name": "A"})
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        assert len(save.calls) == 3
        assert c.status is SaveStatus.ERROR
        assert c.error == "server down"
        assert c.retry_count == 0

    def test_failure_keeps_local_copy(self, store):
        save = Recorder(failures=-1)

        async def scenario():
            c = _controller(save, store, options=AutoSaveOptions(delay=10, max_retries=1))
            c.update({"name": "A"})
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        snapshot = c.get_local_data()
        assert snapshot is not None
        assert snapshot.data == {"name": "A"}

    def test_recovers_after_transient_failure(self, store):
        save = Recorder(failures=1)

        async def scenario():
            c = _controller(save, store)
            c.update({"name": "A"})
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        assert len(save.calls) == 2
        assert c.status is SaveStatus.SAVED
        assert c.retry_count == 0
        assert c.get_local_data() is None

    def test_terminal_error_not_retried(self, store):
        save = Recorder(failures=-1, exc=TerminalSaveError("Form has expired", 400))

        async def scenario():
            c = _controller(save, store)
            c.update({"name": "A"})
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        assert len(save.calls) == 1
        assert c.status is SaveStatus.ERROR
        assert c.error == "Form has expired"

    def test_save_now_raises_after_exhaustion(self, store):
        save = Recorder(failures=-1)

        async def scenario():
            c = _controller(save, store, options=AutoSaveOptions(delay=10, max_retries=0))
            c.update({"name": "A"})
            with pytest.raises(RuntimeError, match="server down"):
                await c.save_now()
            return c

        c = asyncio.run(scenario())
        assert c.status is SaveStatus.ERROR

    def test_new_data_replaces_waiting_retry(self, store):
        save = Recorder(failures=1)

        async def scenario():
            c = _controller(save, store, retry_policy=RetryPolicy(backoff=lambda a: 30))
            c.update({"v": 1})
            await asyncio.sleep(0.1)
            assert len(save.calls) == 1
            c.update({"v": 2})
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        assert save.calls == [{"v": 1}, {"v": 2}]
        assert c.status is SaveStatus.SAVED

    def test_failed_older_save_is_not_retried_over_newer(self, store):
        calls = []

        async def save(data):
            calls.append(data["v"])
            if data["v"] == "A":
                await asyncio.sleep(0.1)
                raise RuntimeError("502")

        async def scenario():
            c = _controller(save, store, retry_policy=RetryPolicy(backoff=lambda a: 0.3))
            c.update({"v": "A"})
            await asyncio.sleep(0.03)
            assert calls == ["A"]
            c.update({"v": "B"})
            await c.wait_until_settled()
            await asyncio.sleep(0.5)
            return c

        c = asyncio.run(scenario())
        assert calls == ["A", "B"]
        assert c.status is SaveStatus.SAVED
        assert c.retry_count == 0
        assert store.read("autosave-tok") is None

    def test_successful_save_cancels_outstanding_retry(self, store):
        save = Recorder(failures=1)

        async def scenario():
            c = _controller(save, store, retry_policy=RetryPolicy(backoff=lambda a: 30))
            c.update({"v": 1})
            await asyncio.sleep(0.05)
            await c.perform_save({"v": 1})
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        assert save.calls == [{"v": 1}, {"v": 1}]
        assert c.status is SaveStatus.SAVED

    def test_clear_error(self, store):
        save = Recorder(failures=-1, exc=TerminalSaveError("Form not found", 404))

        async def scenario():
            c = _controller(save, store)
            c.update({"a": 1})
            await c.wait_until_settled()
            assert c.status is SaveStatus.ERROR
            c.clear_error()
            return c

        c = asyncio.run(scenario())
        assert c.status is SaveStatus.IDLE
        assert c.error is None

    def test_clear_error_ignored_when_not_in_error(self, store):
        c = _controller(Recorder(), store)
        c.clear_error()
        assert c.status is SaveStatus.IDLE


# ── Offline ──────────────────────────────────────────────────────────────


class TestOffline:
    def test_offline_writes_locally_without_calling_save(self, store):
        save = Recorder()

        async def scenario():
            c = _controller(save, store, connectivity=ConnectivityMonitor(online=False))
            c.update({"name": "A"})
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        assert save.calls == []
        assert c.status is SaveStatus.ERROR
        assert c.error == OFFLINE_MESSAGE
        assert store.read("autosave-tok").data == {"name": "A"}

    def test_offline_save_now_raises(self, store):
        save = Recorder()

        async def scenario():
            c = _controller(save, store, connectivity=ConnectivityMonitor(online=False))
            c.update({"name": "A"})
            with pytest.raises(OfflineError):
                await c.save_now()

        asyncio.run(scenario())
        assert save.calls == []

    def test_resumes_when_back_online(self, store):
        save = Recorder()
        monitor = ConnectivityMonitor(online=False)

        async def scenario():
            c = _controller(save, store, connectivity=monitor)
            c.update({"name": "A"})
            await c.wait_until_settled()
            monitor.set_online(True)
            assert c.online
            await c.save_now()
            return c

        c = asyncio.run(scenario())
        assert save.calls == [{"name": "A"}]
        assert c.status is SaveStatus.SAVED
        assert c.get_local_data() is None

    def test_local_storage_disabled(self, store):
        options = AutoSaveOptions(delay=10, enable_local_storage=False, local_storage_key="k")

        async def scenario():
            c = _controller(Recorder(), store, options=options,
                            connectivity=ConnectivityMonitor(online=False))
            c.update({"name": "A"})
            await c.wait_until_settled()
            return c

        c = asyncio.run(scenario())
        assert c.get_local_data() is None
        assert store.read("k") is None


# ── Lifecycle and options ────────────────────────────────────────────────


class TestLifecycle:
    def test_listener_added_and_removed(self, store):
        monitor = ConnectivityMonitor()
        c = _controller(Recorder(), store, connectivity=monitor)
        assert monitor.listener_count == 1
        c.close()
        assert monitor.listener_count == 0
        assert c.closed

    def test_update_after_close_raises(self, store):
        c = _controller(Recorder(), store)
        c.close()
        with pytest.raises(RuntimeError):
            c.update({"a": 1})

    def test_close_cancels_pending_save(self, store):
        save = Recorder()

        async def scenario():
            c = _controller(save, store)
            c.update({"a": 1})
            c.close()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert save.calls == []

    def test_default_local_store_under_data_dir(self, tmp_path):
        options = AutoSaveOptions(delay=10, local_storage_key="autosave-tok")
        with patch("formflow.autosave.get_settings", return_value=Settings(data_dir=tmp_path)):
            c = AutoSaveController(Recorder(), options,
                                   connectivity=ConnectivityMonitor(online=False))

        async def scenario():
            c.update({"name": "A"})
            await c.wait_until_settled()

        asyncio.run(scenario())
        snapshot = LocalFallbackStore(tmp_path / "local").read("autosave-tok")
        assert snapshot is not None
        assert snapshot.data == {"name": "A"}

    def test_mismatched_retry_policy_rejected(self, store):
        with pytest.raises(ValueError, match="max_retries"):
            AutoSaveController(Recorder(), FAST, local_store=store,
                               retry_policy=RetryPolicy(max_retries=5))

    def test_options_from_settings(self):
        settings = Settings(autosave_delay_ms=500, autosave_max_retries=5,
                            local_storage_key="draft")
        options = AutoSaveOptions.from_settings(settings, "abc")
        assert options.delay == 500
        assert options.max_retries == 5
        assert options.local_storage_key == "draft-abc"

    def test_defaults(self):
        options = AutoSaveOptions()
        assert (options.delay, options.max_retries, options.enable_local_storage,
                options.local_storage_key) == (2000, 3, True, "autosave")


def test_exponential_backoff():
    assert [exponential_backoff(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]


def test_retry_policy_bound():
    policy = RetryPolicy(max_retries=2)
    assert policy.should_retry(1)
    assert policy.should_retry(2)
    assert not policy.should_retry(3)
