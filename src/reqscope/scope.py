"""Scoped lifetime for dispatchers, coordinators and debouncers.

A :class:`RequestScope` stands in for the lifetime of a UI component:
everything created through it is torn down exactly once when the scope
ends, on every exit path.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from reqscope._transport import Transport
from reqscope.config import ScopeConfig
from reqscope.context import current_transport
from reqscope.debounce import Debouncer
from reqscope.dispatcher import PendingRequest, RequestDispatcher
from reqscope.exceptions import ReqScopeError
from reqscope.resource import ResourceCoordinator

_logger = logging.getLogger(__name__)

D = TypeVar("D")
V = TypeVar("V")


class RequestScope:
    """Owner of request coordination objects for one consumer lifetime.

    Usage::

        async with RequestScope(transport) as scope:
            users, search = scope.use_resource(search_users, ("alice",))
            typing = scope.use_debounce(search)
            typing.push("bob")
    """

    def __init__(
        self,
        transport: Transport[Any, Any] | None = None,
        *,
        config: ScopeConfig | None = None,
    ) -> None:
        self._transport = transport if transport is not None else current_transport()
        self._config = config or ScopeConfig()
        self._owned: list[RequestDispatcher[Any, Any] | ResourceCoordinator[Any, Any] | Debouncer[Any]] = []
        self._closed = False

    async def __aenter__(self) -> RequestScope:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        coordinators = [obj for obj in self._owned if isinstance(obj, ResourceCoordinator)]
        self.close()
        for coordinator in coordinators:
            await coordinator.join()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def config(self) -> ScopeConfig:
        return self._config

    def use_request(
        self, fn: Callable[..., D]
    ) -> tuple[RequestDispatcher[D, Any], Callable[..., PendingRequest[Any]]]:
        """Return a dispatcher and its ``dispatch`` function."""
        self._ensure_open()
        dispatcher: RequestDispatcher[D, Any] = RequestDispatcher(fn, self._transport, config=self._config)
        self._adopt(dispatcher)
        return dispatcher, dispatcher.dispatch

    def use_resource(
        self, fn: Callable[..., D], default_args: Sequence[Any] | None = None
    ) -> tuple[ResourceCoordinator[D, Any], Callable[..., Callable[[], None]]]:
        """Return a resource coordinator and its ``trigger`` function."""
        self._ensure_open()
        coordinator: ResourceCoordinator[D, Any] = ResourceCoordinator(
            fn, default_args, transport=self._transport, config=self._config
        )
        self._adopt(coordinator)
        return coordinator, coordinator.trigger

    def use_debounce(
        self,
        callback: Callable[[V], Any],
        window: float | None = None,
        *,
        leading: bool | None = None,
    ) -> Debouncer[V]:
        """Return a debouncer whose timer is cleared when the scope ends."""
        self._ensure_open()
        debouncer: Debouncer[V] = Debouncer(
            callback,
            self._config.debounce_window if window is None else window,
            leading=self._config.debounce_leading if leading is None else leading,
        )
        self._adopt(debouncer)
        return debouncer

    def close(self) -> None:
        """End the scope. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        owned, self._owned = self._owned, []
        _logger.debug("Closing scope with %d owned object(s)", len(owned))
        # Debouncers were typically created after the coordinators they feed.
        for obj in reversed(owned):
            obj.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ReqScopeError("Request scope is closed")

    def _adopt(self, obj: RequestDispatcher[Any, Any] | ResourceCoordinator[Any, Any] | Debouncer[Any]) -> None:
        self._owned.append(obj)
