"""Request dispatcher: per-call cancellation tokens and pending accounting."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from reqscope._transport import Transport, create_request_error
from reqscope.cancellation import CancelToken, CancelTokenSource, create_token_source
from reqscope.config import ScopeConfig
from reqscope.exceptions import ReqScopeError, RequestCancelledError

_logger = logging.getLogger(__name__)

_TASK_CANCELLED = "Request task cancelled"

D = TypeVar("D")
P = TypeVar("P")


def _discard_late_result(call: asyncio.Future[Any]) -> None:
    """Retrieve the outcome of an abandoned transport call."""
    if call.cancelled():
        return
    exc = call.exception()
    if exc is not None:
        _logger.debug("Discarded late failure of a cancelled request: %r", exc)
    else:
        _logger.debug("Discarded late result of a cancelled request")


class PendingRequest(Generic[P]):
    """Deferred handle returned by :meth:`RequestDispatcher.dispatch`.

    Nothing is sent until :meth:`ready` is called.
    """

    __slots__ = ("_dispatcher", "_request", "_source", "_task")

    def __init__(self, dispatcher: RequestDispatcher[Any, P], source: CancelTokenSource, request: Any) -> None:
        self._dispatcher = dispatcher
        self._source = source
        self._request = request
        self._task: asyncio.Task[P] | None = None

    @property
    def token(self) -> CancelToken:
        return self._source.token

    @property
    def request(self) -> Any:
        """The descriptor built by the request function (``None`` after teardown)."""
        return self._request

    def ready(self) -> asyncio.Task[P]:
        """Issue the request and return the task that settles with its payload.

        The token is registered as pending before this method returns, so
        ``has_pending`` is accurate even if the transport resolves
        immediately. The task fails with
        :class:`~reqscope.RequestCancelledError` on cancellation and with
        :class:`~reqscope.RequestError` on any other failure.
        """
        if self._task is not None:
            raise ReqScopeError("ready() may only be called once per dispatched request")
        self._task = self._dispatcher._issue(self._source, self._request)  # noqa: SLF001
        return self._task

    def cancel(self, reason: str | None = None) -> None:
        """Abort this call only."""
        self._dispatcher._cancel(self._source, reason)  # noqa: SLF001


class RequestDispatcher(Generic[D, P]):
    """Issue requests built by *fn* through *transport*, one token per call.

    Tokens live in an insertion-ordered registry from the moment a call is
    issued until it settles. Calls may overlap freely and are cancelled
    independently; :meth:`clear` cancels them all.

    Usage::

        async with RequestDispatcher(get_user, transport) as dispatcher:
            payload = await dispatcher.dispatch("alice").ready()
    """

    def __init__(
        self,
        fn: Callable[..., D],
        transport: Transport[D, P],
        *,
        config: ScopeConfig | None = None,
    ) -> None:
        self._fn = fn
        self._transport = transport
        self._config = config or ScopeConfig()
        self._pending: dict[int, CancelTokenSource] = {}
        self._listeners: list[Callable[[], None]] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> RequestDispatcher[D, P]:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        """Cancel every pending call and stop publishing state changes."""
        if self._closed:
            return
        self.clear(self._config.closed_message)
        self._closed = True
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    @property
    def pending(self) -> tuple[CancelToken, ...]:
        """Outstanding tokens in issue order."""
        return tuple(source.token for source in self._pending.values())

    def dispatch(self, *args: Any, **kwargs: Any) -> PendingRequest[P]:
        """Build the request for ``fn(*args, **kwargs)`` without sending it.

        After :meth:`close` the handle comes back already cancelled and
        ``fn`` is not called.
        """
        source = create_token_source()
        if self._closed:
            source.cancel(self._config.closed_message)
            return PendingRequest(self, source, None)
        return PendingRequest(self, source, self._fn(*args, **kwargs))

    def clear(self, reason: str | None = None) -> None:
        """Cancel every pending call, using *reason* as the diagnostic."""
        if not self._pending:
            return
        sources = list(self._pending.values())
        self._pending.clear()
        for source in sources:
            source.cancel(reason)
        self._notify()

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call *listener* whenever the pending set changes."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _issue(self, source: CancelTokenSource, request: Any) -> asyncio.Task[P]:
        loop = asyncio.get_running_loop()
        token = source.token
        if not token.is_cancelled:
            self._pending[token.id] = source
            _logger.debug("Token %d issued (%d pending)", token.id, len(self._pending))
            self._notify()
        task = loop.create_task(self._perform(source, request))
        task.add_done_callback(lambda t: self._on_task_done(source, t))
        return task

    def _on_task_done(self, source: CancelTokenSource, task: asyncio.Task[Any]) -> None:
        # Covers tasks cancelled before their first step, where _perform never ran.
        if task.cancelled():
            source.cancel(_TASK_CANCELLED)
        elif source.token.is_cancelled:
            # A cancelled call is an expected outcome; nobody has to await it.
            task.exception()
        self._retire(source.token)

    def _cancel(self, source: CancelTokenSource, reason: str | None) -> None:
        source.cancel(reason)
        self._retire(source.token)

    def _retire(self, token: CancelToken) -> None:
        if self._pending.pop(token.id, None) is None:
            return
        _logger.debug("Token %d retired (%d pending)", token.id, len(self._pending))
        self._notify()

    def _notify(self) -> None:
        if self._closed:
            return
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                _logger.debug("Dispatcher listener failed", exc_info=True)

    async def _perform(self, source: CancelTokenSource, request: Any) -> P:
        token = source.token
        try:
            token.raise_if_cancelled()
            loop = asyncio.get_running_loop()
            aborted: asyncio.Future[None] = loop.create_future()
            call: asyncio.Future[P] = asyncio.ensure_future(self._transport.perform(request, token))

            def _on_cancel() -> None:
                call.cancel()
                if not aborted.done():
                    aborted.set_result(None)

            unregister = token.on_cancel(_on_cancel)
            try:
                await asyncio.wait((call, aborted), return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                source.cancel(_TASK_CANCELLED)
                call.add_done_callback(_discard_late_result)
                raise
            finally:
                unregister()
                if not aborted.done():
                    aborted.cancel()

            # A token cancelled after the transport finished still wins.
            if token.is_cancelled or call.cancelled():
                call.add_done_callback(_discard_late_result)
                raise RequestCancelledError(token.reason)

            exc = call.exception()
            if exc is not None:
                error = create_request_error(exc, token)
                if error is exc:
                    raise error
                raise error from exc
            return call.result()
        finally:
            self._retire(token)
