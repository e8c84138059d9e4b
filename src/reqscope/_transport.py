"""Transport boundary and the bundled aiohttp transport."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol, TypeVar

import aiohttp

from reqscope._redact import redact_for_log
from reqscope.cancellation import CancelToken
from reqscope.config import ScopeConfig
from reqscope.exceptions import RequestCancelledError, RequestError, TransportError
from reqscope.models import HttpRequest

_logger = logging.getLogger(__name__)

D_contra = TypeVar("D_contra", contravariant=True)
P_co = TypeVar("P_co", covariant=True)


class Transport(Protocol[D_contra, P_co]):
    """Structural transport interface consumed by dispatchers.

    ``perform`` receives the opaque request descriptor produced by the
    caller's request function and the token of this invocation. Honoring
    the token is cooperative: the dispatcher discards late results either
    way.
    """

    async def perform(self, request: D_contra, token: CancelToken) -> P_co:
        ...


def create_request_error(exc: BaseException, token: CancelToken | None = None) -> RequestError:
    """Normalize any transport failure into a :class:`RequestError`."""
    url = getattr(exc, "url", "")
    url = url if isinstance(url, str) else str(url)
    if token is not None and token.is_cancelled:
        return RequestCancelledError(token.reason, url=url)
    if isinstance(exc, RequestError):
        return exc
    if isinstance(exc, asyncio.CancelledError) or getattr(exc, "is_cancel", False):
        return RequestCancelledError(str(exc) or None, url=url)
    if isinstance(exc, aiohttp.ClientResponseError):
        return TransportError(f"HTTP {exc.status}: {exc.message}", status_code=exc.status, url=url)
    if isinstance(exc, aiohttp.ClientError):
        return TransportError(f"Request failed: {exc}", url=url)
    return TransportError(f"{type(exc).__name__}: {exc}", url=url)


class AiohttpTransport:
    """HTTP transport performing :class:`HttpRequest` descriptors over aiohttp.

    Usage::

        async with AiohttpTransport(ScopeConfig(base_url="https://api.github.com")) as transport:
            ...
    """

    def __init__(
        self,
        config: ScopeConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or ScopeConfig()
        self._external_session = session is not None
        self._http = session

    async def __aenter__(self) -> AiohttpTransport:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    def _resolve_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")) or not self._config.base_url:
            return url
        return f"{self._config.base_url.rstrip('/')}/{url.lstrip('/')}"

    async def perform(self, request: HttpRequest, token: CancelToken) -> Any:
        """Send *request* and return the decoded body.

        JSON bodies are decoded, other bodies are returned as text and an
        empty body yields ``None``.
        """
        if self._http is None:
            raise TransportError("Transport not initialized. Use 'async with AiohttpTransport(...)'")
        token.raise_if_cancelled()

        url = self._resolve_url(request.url)
        headers = {**self._config.headers, **request.headers}

        _logger.debug("%s %s (token %d)", request.method, url, token.id)
        if self._config.trace_enabled:
            _logger.debug(
                "Request trace: params=%s headers=%s",
                redact_for_log(request.params),
                redact_for_log(headers),
            )

        try:
            async with self._http.request(
                request.method,
                url,
                params=request.query_params(),
                json=request.body,
                headers=headers,
            ) as resp:
                text = await resp.text()
                content_type = resp.content_type
                if resp.status >= 400:
                    raise TransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                        payload=text,
                    )
        except TransportError:
            raise
        except aiohttp.ClientError as exc:
            raise TransportError(f"Request to {url} failed: {exc}", url=url) from exc

        if not text.strip():
            return None

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            if content_type.endswith("json"):
                raise TransportError(f"Invalid JSON from {url}: {text[:200]}", url=url, payload=text) from exc
            return text
