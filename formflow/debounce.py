"""Debounce helpers built on the running asyncio event loop.

Each helper is a small object owned by one form session, so timers are
never shared between sessions and ``cancel()`` tears them down explicitly.
Both must be called from inside a running event loop.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable


class DebounceCancelled(Exception):
    """A debounced call was superseded before its delay elapsed.

    Callers should treat this as normal control flow, not a failure.
    """

    def __init__(self, message: str = "Debounced call was cancelled") -> None:
        super().__init__(message)


class Debouncer:
    """Fire-and-forget debounce for a plain callable.

    Every call cancels the pending invocation and schedules a new one
    *wait* seconds later; only the last call's arguments are ever used.
    """

    def __init__(self, func: Callable[..., Any], wait: float) -> None:
        self.func = func
        self.wait = wait
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        loop = asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self.wait, self._fire, args, kwargs)

    def _fire(self, args: tuple, kwargs: dict) -> None:
        self._handle = None
        self.func(*args, **kwargs)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class AsyncDebouncer:
    """Debounce for a coroutine function, returning a future per call.

    A call made before the previous delay elapsed fails the previous future
    with ``DebounceCancelled``.  Once the delay elapses the coroutine runs
    and its result or exception settles that call's future.
    """

    def __init__(self, func: Callable[..., Awaitable[Any]], wait: float) -> None:
        self.func = func
        self.wait = wait
        self._handle: asyncio.TimerHandle | None = None
        self._future: asyncio.Future | None = None
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        """True while a call is waiting for its delay to elapse."""
        return self._handle is not None

    @property
    def running(self) -> asyncio.Task | None:
        """The task of the call currently executing, if any."""
        if self._task is not None and not self._task.done():
            return self._task
        return None

    def __call__(self, *args: Any, **kwargs: Any) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        self.cancel()
        future = loop.create_future()
        self._future = future
        self._handle = loop.call_later(self.wait, self._fire, future, args, kwargs)
        return future

    def _fire(self, future: asyncio.Future, args: tuple, kwargs: dict) -> None:
        self._handle = None
        if self._future is future:
            self._future = None
        task = asyncio.ensure_future(self.func(*args, **kwargs))
        self._task = task
        task.add_done_callback(lambda t: _settle(future, t))

    def cancel(self) -> None:
        """Drop the pending call, failing its future with DebounceCancelled."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._future is not None and not self._future.done():
            self._future.set_exception(DebounceCancelled())
        self._future = None


def _settle(future: asyncio.Future, task: asyncio.Task) -> None:
    if future.done():
        return
    if task.cancelled():
        future.cancel()
    elif task.exception() is not None:
        future.set_exception(task.exception())
    else:
        future.set_result(task.result())
