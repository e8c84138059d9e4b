"""Custom exception hierarchy for reqscope."""

from __future__ import annotations

from typing import Any


class ReqScopeError(Exception):
    """Base exception for all reqscope errors."""


class ReqScopeConfigError(ReqScopeError):
    """Invalid or missing configuration (including a missing transport)."""


class RequestError(ReqScopeError):
    """A dispatched request settled without a payload.

    ``is_cancel`` separates aborted calls from genuine failures; resource
    coordinators only surface the latter.
    """

    def __init__(
        self,
        message: str,
        *,
        is_cancel: bool = False,
        status_code: int | None = None,
        url: str = "",
        payload: Any = None,
    ) -> None:
        self.is_cancel = is_cancel
        self.status_code = status_code
        self.url = url
        self.payload = payload
        super().__init__(message)


class RequestCancelledError(RequestError):
    """Request aborted by ``cancel()``, ``clear()``, supersession or teardown."""

    def __init__(self, reason: str | None = None, *, url: str = "") -> None:
        self.reason = reason
        super().__init__(reason or "Request cancelled", is_cancel=True, url=url)


class TransportError(RequestError):
    """Transport-level failure (network, non-2xx status, undecodable body)."""
