"""Debouncing of rapidly changing input values.

:class:`Debouncer` is push-based: feed it raw values and it calls back with
the ones that stayed unchanged for a full window. :func:`debounce` wraps the
same algorithm around an async iterable.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from typing import Any, Generic, TypeVar

_logger = logging.getLogger(__name__)

V = TypeVar("V")

_UNSET: Any = object()


class Debouncer(Generic[V]):
    """Deliver a value once it has been stable for ``window`` seconds.

    At most one timer is outstanding at any time. Every new raw value
    restarts the window. With ``leading=True`` the very first value is
    delivered immediately; every later value waits for the full window.

    A value equal to the previous raw value is ignored, and one equal to the
    last delivered value is not delivered again. Values are compared with
    ``==``, which must return a plain ``bool``: wrap array-like values
    (numpy arrays, dataframes) in something with scalar equality first.

    Must be used from inside a running event loop.
    """

    def __init__(self, callback: Callable[[V], Any], window: float, *, leading: bool = False) -> None:
        if window < 0:
            raise ValueError(f"window must be >= 0, got {window}")
        self._callback = callback
        self._window = window
        self._leading = leading
        self._timer: asyncio.TimerHandle | None = None
        self._last_value: Any = _UNSET
        self._last_delivered: Any = _UNSET
        self._seen_value = False
        self._closed = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def window(self) -> float:
        return self._window

    @property
    def pending(self) -> bool:
        """Whether a timer is outstanding."""
        return self._timer is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, value: V) -> None:
        """Record a new raw value and (re)start the window."""
        if self._closed:
            return
        if self._last_value is not _UNSET and value == self._last_value:
            return
        first = not self._seen_value
        self._seen_value = True
        self._last_value = value

        self._cancel_timer()
        if first and self._leading:
            self._deliver(value)
            return

        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._window, self._fire)
        self._idle.clear()

    def cancel(self) -> None:
        """Drop the pending value without delivering it."""
        self._cancel_timer()
        # Forget the dropped value so pushing it again restarts the window.
        self._last_value = self._last_delivered

    def close(self) -> None:
        """Teardown: the timer is cleared and never fires afterwards."""
        if self._closed:
            return
        self._closed = True
        self._cancel_timer()

    async def wait_idle(self) -> None:
        """Wait until no timer is outstanding."""
        await self._idle.wait()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._idle.set()

    def _fire(self) -> None:
        self._timer = None
        self._idle.set()
        if self._closed:
            return
        self._deliver(self._last_value)

    def _deliver(self, value: V) -> None:
        if self._last_delivered is not _UNSET and value == self._last_delivered:
            return
        self._last_delivered = value
        try:
            self._callback(value)
        except Exception:
            _logger.debug("Debounce callback failed", exc_info=True)


async def debounce(source: AsyncIterable[V], window: float, *, leading: bool = False) -> AsyncIterator[V]:
    """Yield the values of *source* that stayed stable for ``window`` seconds.

    When *source* is exhausted, a still-pending value is yielded after its
    window elapses. Closing the generator cancels the pending timer.
    """
    queue: asyncio.Queue[Any] = asyncio.Queue()
    end = object()
    debouncer: Debouncer[V] = Debouncer(queue.put_nowait, window, leading=leading)

    async def _pump() -> None:
        try:
            async for value in source:
                debouncer.push(value)
            await debouncer.wait_idle()
        finally:
            queue.put_nowait(end)

    pump = asyncio.create_task(_pump())
    try:
        while True:
            item = await queue.get()
            if item is end:
                break
            yield item
        # Surface a failure of the source iterator.
        await pump
    finally:
        debouncer.close()
        if not pump.done():
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump
