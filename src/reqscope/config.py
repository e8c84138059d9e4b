"""Scope configuration for reqscope."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from reqscope._constants import CLOSED_MESSAGE, DEFAULT_DEBOUNCE_WINDOW, ENV_PREFIX, SUPERSEDED_MESSAGE
from reqscope.exceptions import ReqScopeConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class ScopeConfig:
    """Configuration shared by dispatchers, coordinators and transports.

    Parameters
    ----------
    base_url : str
        Prefix joined to relative request urls by :class:`AiohttpTransport`.
    headers : Mapping[str, str]
        Default headers sent with every request. Request headers win.
    debounce_window : float
        Default quiescence window in seconds for scoped debouncers.
    debounce_leading : bool
        Deliver the very first debounced value immediately instead of
        after a full window.
    superseded_message : str
        Cancellation reason used when a newer trigger replaces an
        outstanding call.
    closed_message : str
        Cancellation reason used when the owning scope ends.
    trace_enabled : bool
        Log (redacted) request params and headers at DEBUG level.
    """

    base_url: str = ""
    headers: Mapping[str, str] = dataclasses.field(default_factory=dict)
    debounce_window: float = DEFAULT_DEBOUNCE_WINDOW
    debounce_leading: bool = False
    superseded_message: str = SUPERSEDED_MESSAGE
    closed_message: str = CLOSED_MESSAGE
    trace_enabled: bool = False

    def __post_init__(self) -> None:
        if self.debounce_window < 0:
            raise ReqScopeConfigError(f"debounce_window must be >= 0, got {self.debounce_window}")

    @classmethod
    def from_env(cls, **overrides: Any) -> ScopeConfig:
        """Create configuration from ``REQSCOPE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        base_url = env.get(f"{ENV_PREFIX}BASE_URL")
        if base_url is not None:
            config_kwargs["base_url"] = base_url.rstrip("/")

        window_env = env.get(f"{ENV_PREFIX}DEBOUNCE_WINDOW")
        if window_env is not None and "debounce_window" not in overrides:
            try:
                config_kwargs["debounce_window"] = float(window_env)
            except ValueError as exc:
                raise ReqScopeConfigError(f"Invalid {ENV_PREFIX}DEBOUNCE_WINDOW: {window_env!r}") from exc

        if "debounce_leading" not in overrides:
            config_kwargs["debounce_leading"] = _env_bool(env.get(f"{ENV_PREFIX}DEBOUNCE_LEADING"), False)

        if "trace_enabled" not in overrides:
            config_kwargs["trace_enabled"] = _env_bool(env.get(f"{ENV_PREFIX}TRACE_ENABLED"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
