"""Resource coordinator: single-flight state for one logical resource."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any, Generic, TypeVar

from reqscope._transport import Transport
from reqscope.config import ScopeConfig
from reqscope.dispatcher import PendingRequest, RequestDispatcher
from reqscope.exceptions import RequestError
from reqscope.models import ResourceState, ResourceStatus

_logger = logging.getLogger(__name__)

D = TypeVar("D")
P = TypeVar("P")


def _noop() -> None:
    return None


class ResourceCoordinator(Generic[D, P]):
    """Track ``data`` / ``error`` / ``is_loading`` for one logical resource.

    Every :meth:`trigger` cancels the call still outstanding for this
    resource before issuing the new one, so only the latest call can reach
    the observable state. Cancellations never show up as ``error``, and a
    failure keeps the last good ``data``.

    Construct inside a running event loop: when ``default_args`` is given
    the first call is issued immediately.

    Usage::

        async with ResourceCoordinator(search_users, ("alice",), transport=transport) as users:
            await users.join()
            print(users.data)
    """

    def __init__(
        self,
        fn: Callable[..., D],
        default_args: Sequence[Any] | None = None,
        *,
        transport: Transport[D, P],
        config: ScopeConfig | None = None,
    ) -> None:
        self._config = config or ScopeConfig()
        self._dispatcher: RequestDispatcher[D, P] = RequestDispatcher(fn, transport, config=self._config)
        self._data: P | None = None
        self._error: RequestError | None = None
        self._outcome = ResourceStatus.IDLE
        self._current: PendingRequest[P] | None = None
        self._tasks: set[asyncio.Task[P]] = set()
        self._listeners: list[Callable[[ResourceState[P]], None]] = []
        self._closed = False
        self._batching = False
        self._default_args: tuple[Any, ...] | None = None
        self._initial_cancel: Callable[[], None] = _noop
        self._unsubscribe = self._dispatcher.subscribe(self._on_dispatcher_change)
        if default_args is not None:
            self.update_defaults(*default_args)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ResourceCoordinator[D, P]:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()
        await self.join()

    def close(self) -> None:
        """Teardown: cancel outstanding work and freeze the visible state."""
        if self._closed:
            return
        self._unsubscribe()
        self._dispatcher.close()
        self._initial_cancel()
        self._closed = True
        self._current = None
        self._outcome = ResourceStatus.CLOSED
        self._listeners.clear()

    async def join(self) -> None:
        """Wait for every call issued by this coordinator to settle."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def data(self) -> P | None:
        return self._data

    @property
    def error(self) -> RequestError | None:
        return self._error

    @property
    def is_loading(self) -> bool:
        return self._dispatcher.has_pending or self._awaiting_settlement()

    @property
    def status(self) -> ResourceStatus:
        if self._closed:
            return ResourceStatus.CLOSED
        if self.is_loading:
            return ResourceStatus.PENDING
        return self._outcome

    @property
    def state(self) -> ResourceState[P]:
        return ResourceState(
            data=self._data,
            error=self._error,
            is_loading=self.is_loading,
            status=self.status,
        )

    @property
    def dispatcher(self) -> RequestDispatcher[D, P]:
        return self._dispatcher

    def subscribe(self, listener: Callable[[ResourceState[P]], None]) -> Callable[[], None]:
        """Call *listener* with a fresh snapshot on every visible change."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def trigger(self, *args: Any, **kwargs: Any) -> Callable[[], None]:
        """Issue a call for ``fn(*args, **kwargs)``, superseding any outstanding one.

        Returns a function that cancels this call. After :meth:`close` this
        is a no-op and the returned function does nothing.
        """
        if self._closed:
            _logger.debug("trigger() ignored: coordinator is closed")
            return _noop

        if self._dispatcher.has_pending:
            _logger.debug("Superseding %d outstanding call(s)", len(self._dispatcher.pending))
        # Listeners see one change: loading stays true across the swap.
        self._batching = True
        try:
            # Must run before the new token is minted.
            self._dispatcher.clear(self._config.superseded_message)
            handle = self._dispatcher.dispatch(*args, **kwargs)
            self._current = handle
            task = handle.ready()
        finally:
            self._batching = False
        self._notify()
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_settled(handle, t))
        return handle.cancel

    def cancel_all(self, reason: str | None = None) -> None:
        """Cancel the outstanding call, leaving ``data`` and ``error`` as they are."""
        if self._closed:
            return
        self._dispatcher.clear(reason)

    def update_defaults(self, *args: Any) -> None:
        """Re-issue the eager call when the default arguments change."""
        if self._closed or args == self._default_args:
            return
        self._initial_cancel()
        self._default_args = args
        self._initial_cancel = self.trigger(*args)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _awaiting_settlement(self) -> bool:
        # The current call stays loading until _on_settled has applied its outcome.
        current = self._current
        return current is not None and not current.token.is_cancelled

    def _on_dispatcher_change(self) -> None:
        current = self._current
        if current is not None and not current.token.is_cancelled and current.token not in self._dispatcher.pending:
            # Retirement of the current call; _on_settled publishes it with the outcome.
            return
        self._notify()

    def _on_settled(self, handle: PendingRequest[P], task: asyncio.Task[P]) -> None:
        self._tasks.discard(task)
        exc = None if task.cancelled() else task.exception()
        if self._closed or handle is not self._current:
            return
        self._current = None
        if handle.token.is_cancelled:
            # Already published when the token was retired.
            return
        if exc is None:
            self._data = task.result()
            self._error = None
            self._outcome = ResourceStatus.SUCCESS
        elif isinstance(exc, RequestError) and exc.is_cancel:
            _logger.debug("Resource call aborted by the transport: %s", exc)
        else:
            self._error = exc if isinstance(exc, RequestError) else RequestError(str(exc))
            self._outcome = ResourceStatus.ERROR
            _logger.debug("Resource call failed: %s", exc)
        self._notify()

    def _notify(self) -> None:
        if self._closed or self._batching or not self._listeners:
            return
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _logger.debug("Resource listener failed", exc_info=True)
