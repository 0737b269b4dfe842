"""
cancel.py — Cooperative cancellation token shared by one pipeline run.

Cancellation is checked, not preemptive: stages call `raise_if_cancelled()`
at their boundaries, and `guard()` races a long call against the token.
A coroutine that loses the race is cancelled outright; an executor future
is dropped and its thread finishes on its own.

`cancel()` is safe to call from any thread, e.g. a signal handler or a UI
callback.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Callable, List, Optional, TypeVar

from .errors import AbortError

T = TypeVar("T")


class CancelToken:
    def __init__(self) -> None:
        self._flag = threading.Event()
        self._lock = threading.Lock()
        self._listeners: List[Callable[[], None]] = []
        self.reason = "Aborted by user"

    @property
    def cancelled(self) -> bool:
        return self._flag.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        with self._lock:
            if self._flag.is_set():
                return
            if reason:
                self.reason = reason
            self._flag.set()
            listeners = list(self._listeners)
        for notify in listeners:
            notify()

    def raise_if_cancelled(self, stage: Optional[str] = None) -> None:
        if self._flag.is_set():
            raise AbortError(self.reason, stage=stage)

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        loop = asyncio.get_running_loop()
        fut: asyncio.Future = loop.create_future()

        def _wake() -> None:
            if not fut.done():
                fut.set_result(None)

        def notify() -> None:
            loop.call_soon_threadsafe(_wake)

        with self._lock:
            if self._flag.is_set():
                return
            self._listeners.append(notify)
        try:
            await fut
        finally:
            with self._lock:
                self._listeners.remove(notify)

    async def guard(self, awaitable: Awaitable[T], stage: Optional[str] = None) -> T:
        """
        Await `awaitable` unless the token fires first.

        On cancellation the awaitable's task is cancelled and AbortError is
        raised; a result that arrives later is dropped.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            elif isinstance(awaitable, asyncio.Future):
                awaitable.cancel()
            raise AbortError(self.reason, stage=stage)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if self.cancelled:
            if not task.done():
                task.cancel()
            elif not task.cancelled():
                task.exception()  # mark retrieved; the outcome is discarded
            raise AbortError(self.reason, stage=stage)
        return task.result()
