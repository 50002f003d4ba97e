"""Auto-save controller for client form sessions.

The controller receives every new version of a form document, coalesces
rapid edits through an ``AsyncDebouncer`` and pushes the latest version to
a ``save_function``.  Failed saves are written to the local fallback store
and retried according to a ``RetryPolicy``; once retries are exhausted the
controller enters the ``error`` state.  A failed save is never retried once
a newer document has arrived, and a successful save cancels any retry still
outstanding.  While offline nothing is sent: the document goes straight to
local storage.

State machine::

    idle --change--> saving --ok--> saved
                        |--fail, retries left--> (retry after backoff)
                        |--fail, exhausted-----> error --clear_error--> idle
    any --offline save--> error

All methods must be called from the event loop the controller runs on.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

from formflow.config import get_settings
from formflow.connectivity import ConnectivityMonitor
from formflow.debounce import AsyncDebouncer, DebounceCancelled
from formflow.errors import OFFLINE_MESSAGE, OfflineError, TerminalSaveError
from formflow.local_store import LocalFallbackStore, LocalSnapshot
from formflow.retry import RetryPolicy

logger = logging.getLogger(__name__)

SaveFunction = Callable[[Any], Awaitable[None]]

_UNSET = object()


class SaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass
class AutoSaveOptions:
    """Controller options.  ``delay`` is in milliseconds."""

    delay: int = 2000
    max_retries: int = 3
    enable_local_storage: bool = True
    local_storage_key: str = "autosave"

    @classmethod
    def from_settings(cls, settings, token: str = "") -> AutoSaveOptions:
        key = settings.local_storage_key
        if token:
            key = f"{key}-{token}"
        return cls(
            delay=settings.autosave_delay_ms,
            max_retries=settings.autosave_max_retries,
            enable_local_storage=settings.enable_local_storage,
            local_storage_key=key,
        )


@dataclass
class AutoSaveState:
    status: SaveStatus = SaveStatus.IDLE
    last_saved: datetime | None = None
    error: str | None = None
    retry_count: int = 0


class AutoSaveHandle(Protocol):
    """What form UIs depend on; ``AutoSaveController`` implements it."""

    @property
    def status(self) -> SaveStatus: ...

    @property
    def last_saved(self) -> datetime | None: ...

    @property
    def error(self) -> str | None: ...

    def update(self, data: Any) -> None: ...

    async def save_now(self) -> None: ...

    def clear_error(self) -> None: ...


class AutoSaveController:
    def __init__(
        self,
        save_function: SaveFunction,
        options: AutoSaveOptions | None = None,
        *,
        initial_data: Any = _UNSET,
        connectivity: ConnectivityMonitor | None = None,
        local_store: LocalFallbackStore | None = None,
        retry_policy: RetryPolicy | None = None,
        on_state_change: Callable[[AutoSaveState], None] | None = None,
    ) -> None:
        self.options = options or AutoSaveOptions()
        self.state = AutoSaveState()
        self._save_function = save_function
        if local_store is None and self.options.enable_local_storage:
            local_store = LocalFallbackStore(get_settings().data_dir / "local")
        self._local_store = local_store
        if retry_policy is None:
            retry_policy = RetryPolicy(max_retries=self.options.max_retries)
        elif retry_policy.max_retries != self.options.max_retries:
            raise ValueError(
                f"retry_policy.max_retries ({retry_policy.max_retries}) does not match "
                f"options.max_retries ({self.options.max_retries})"
            )
        self._retry_policy = retry_policy
        self._on_state_change = on_state_change
        self._debouncer = AsyncDebouncer(self.perform_save, self.options.delay / 1000)

        self._last_data: Any = _UNSET
        self._data: Any = None
        if initial_data is not _UNSET:
            self._last_data = copy.deepcopy(initial_data)
            self._data = copy.deepcopy(initial_data)

        self._pending: asyncio.Future | None = None
        self._retry_task: asyncio.Task | None = None
        self._retry_waiting = False
        self._closed = False

        self._connectivity = connectivity or ConnectivityMonitor()
        self._online = self._connectivity.online
        self._connectivity.add_listener(self._on_connectivity)

    # -- Read-only view ------------------------------------------------------

    @property
    def status(self) -> SaveStatus:
        return self.state.status

    @property
    def last_saved(self) -> datetime | None:
        return self.state.last_saved

    @property
    def error(self) -> str | None:
        return self.state.error

    @property
    def retry_count(self) -> int:
        return self.state.retry_count

    @property
    def online(self) -> bool:
        return self._online

    @property
    def closed(self) -> bool:
        return self._closed

    # -- Inputs --------------------------------------------------------------

    def update(self, data: Any) -> None:
        """Observe a new document version and schedule a debounced save."""
        if self._closed:
            raise RuntimeError("Auto-save controller is closed")

        snapshot = copy.deepcopy(data)
        self._data = snapshot
        if self._last_data is not _UNSET and snapshot == self._last_data:
            return
        self._last_data = snapshot

        if not snapshot:
            return

        self._cancel_waiting_retry()
        future = self._debouncer(snapshot)
        future.add_done_callback(_consume_outcome)
        self._pending = future

    async def save_now(self) -> None:
        """Save the latest document immediately, bypassing the debounce."""
        if self._data is None:
            return
        self._debouncer.cancel()
        self._cancel_waiting_retry()
        await self.perform_save(self._data)

    def clear_error(self) -> None:
        if self.state.status is SaveStatus.ERROR:
            self._set_state(status=SaveStatus.IDLE, error=None)

    # -- Saving --------------------------------------------------------------

    async def perform_save(self, data: Any) -> None:
        if not self._online:
            self._write_local(data)
            self._set_state(status=SaveStatus.ERROR, error=OFFLINE_MESSAGE)
            raise OfflineError()

        self._set_state(status=SaveStatus.SAVING, error=None)

        try:
            await self._save_function(data)
        except Exception as exc:
            if self._superseded(data):
                logger.debug("Dropping failed save of a superseded document: %s", exc)
                self.state.retry_count = 0
                return
            self._write_local(data)
            self.state.retry_count += 1
            attempt = self.state.retry_count
            message = str(exc) or "Save failed"

            terminal = isinstance(exc, TerminalSaveError)
            if not terminal and self._retry_policy.should_retry(attempt):
                delay = self._retry_policy.delay_for(attempt)
                logger.warning(
                    "Auto-save attempt %d failed (%s); retrying in %.1fs",
                    attempt, message, delay,
                )
                self._schedule_retry(data, delay)
                return

            logger.error("Auto-save failed: %s", message)
            self.state.retry_count = 0
            self._set_state(status=SaveStatus.ERROR, error=message)
            raise

        self._cancel_retry()
        self.state.retry_count = 0
        self._set_state(
            status=SaveStatus.SAVED,
            last_saved=datetime.now(timezone.utc),
            error=None,
        )
        self.clear_local_data()

    def _superseded(self, data: Any) -> bool:
        return data != self._data

    def _schedule_retry(self, data: Any, delay: float) -> None:
        if self._closed:
            return
        self._retry_task = asyncio.ensure_future(self._retry_after(data, delay))

    async def _retry_after(self, data: Any, delay: float) -> None:
        self._retry_waiting = True
        try:
            await asyncio.sleep(delay)
        finally:
            self._retry_waiting = False
        if self._superseded(data):
            logger.debug("Skipping retry of a superseded document")
            return
        try:
            await self.perform_save(data)
        except (OfflineError, TerminalSaveError) as exc:
            logger.info("Auto-save retry stopped: %s", exc)
        except Exception as exc:
            logger.debug("Auto-save retries exhausted: %s", exc)

    def _cancel_waiting_retry(self) -> None:
        if self._retry_task is not None and self._retry_waiting:
            self._retry_task.cancel()
            self._retry_task = None

    def _cancel_retry(self) -> None:
        """Cancel any retry chain other than the one currently saving."""
        task = self._retry_task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        self._retry_task = None

    async def wait_until_settled(self) -> None:
        """Wait for the pending debounced save and any retry chain to finish."""
        while True:
            if self._pending is not None and not self._pending.done():
                await asyncio.wait([self._pending])
            elif self._debouncer.running is not None:
                await asyncio.wait([self._debouncer.running])
            elif self._retry_task is not None and not self._retry_task.done():
                await asyncio.wait([self._retry_task])
            else:
                return

    # -- Local fallback ------------------------------------------------------

    def _local_enabled(self) -> bool:
        return self.options.enable_local_storage and self._local_store is not None

    def _write_local(self, data: Any) -> None:
        if not self._local_enabled():
            return
        try:
            self._local_store.write(self.options.local_storage_key, data)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to save draft locally: %s", exc)

    def get_local_data(self) -> LocalSnapshot | None:
        if not self._local_enabled():
            return None
        return self._local_store.read(self.options.local_storage_key)

    def clear_local_data(self) -> None:
        if not self._local_enabled():
            return
        try:
            self._local_store.clear(self.options.local_storage_key)
        except OSError as exc:
            logger.warning("Failed to clear local draft: %s", exc)

    # -- Lifecycle -----------------------------------------------------------

    def _on_connectivity(self, online: bool) -> None:
        self._online = online

    def _set_state(self, **changes: Any) -> None:
        for key, value in changes.items():
            setattr(self.state, key, value)
        if self._on_state_change is not None:
            self._on_state_change(self.state)

    def close(self) -> None:
        """Cancel pending work and detach from the connectivity monitor."""
        if self._closed:
            return
        self._closed = True
        self._debouncer.cancel()
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
        self._retry_task = None
        self._connectivity.remove_listener(self._on_connectivity)


def _consume_outcome(future: asyncio.Future) -> None:
    """Retrieve a debounced save's outcome; failures are already recorded."""
    if future.cancelled():
        return
    exc = future.exception()
    if exc is None or isinstance(exc, DebounceCancelled):
        return
    logger.debug("Debounced auto-save ended with %s", exc)
