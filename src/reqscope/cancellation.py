"""Cancellation tokens for dispatched requests.

A :class:`CancelTokenSource` pairs a :class:`CancelToken` with the function
that cancels it, one pair per request invocation. The dispatcher owns the
source; the transport only ever sees the token.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from reqscope.exceptions import RequestCancelledError

_logger = logging.getLogger(__name__)

_token_ids = itertools.count(1)


@dataclass(slots=True, eq=False)
class CancelToken:
    """Handle for one issued-but-not-yet-settled request.

    Tokens compare by identity; ``id`` is unique per process and is what
    registries key on.
    """

    id: int = field(default_factory=lambda: next(_token_ids))
    reason: str | None = field(default=None, init=False)
    _cancelled: bool = field(default=False, init=False, repr=False)
    _callbacks: list[Callable[[], None]] = field(default_factory=list, init=False, repr=False)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run *callback* once when the token is cancelled.

        Runs immediately if the token is already cancelled. Returns a
        function that unregisters the callback.
        """
        if self._cancelled:
            self._run_callback(callback)
            return _noop

        self._callbacks.append(callback)

        def _unregister() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return _unregister

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelledError(self.reason)

    def _cancel(self, reason: str | None) -> bool:
        if self._cancelled:
            return False
        self._cancelled = True
        self.reason = reason
        _logger.debug("Token %d cancelled: %s", self.id, reason)
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._run_callback(callback)
        return True

    def _run_callback(self, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            _logger.debug("Cancel callback for token %d failed", self.id, exc_info=True)


@dataclass(frozen=True, slots=True)
class CancelTokenSource:
    """A token plus the canceler bound to it."""

    token: CancelToken = field(default_factory=CancelToken)

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the token. Only the first call has an effect."""
        self.token._cancel(reason)  # noqa: SLF001


def create_token_source() -> CancelTokenSource:
    """Mint a fresh ``{token, cancel}`` pair."""
    return CancelTokenSource()


def _noop() -> None:
    return None
