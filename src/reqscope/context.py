"""Ambient transport for scopes created without an explicit one."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextvars import ContextVar
from typing import Any

from reqscope._transport import Transport
from reqscope.exceptions import ReqScopeConfigError

_current_transport: ContextVar[Transport[Any, Any] | None] = ContextVar("reqscope_transport", default=None)


@contextlib.contextmanager
def request_context(transport: Transport[Any, Any]) -> Iterator[Transport[Any, Any]]:
    """Make *transport* the default for scopes created inside the block."""
    reset_token = _current_transport.set(transport)
    try:
        yield transport
    finally:
        _current_transport.reset(reset_token)


def current_transport() -> Transport[Any, Any]:
    """Return the ambient transport or raise :class:`ReqScopeConfigError`."""
    transport = _current_transport.get()
    if transport is None:
        raise ReqScopeConfigError("No transport configured. Pass one explicitly or use request_context(...)")
    return transport
