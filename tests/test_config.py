from __future__ import annotations

import pytest

from reqscope.config import ScopeConfig
from reqscope.exceptions import ReqScopeConfigError


def test_defaults() -> None:
    config = ScopeConfig()

    assert config.base_url == ""
    assert config.debounce_window == 0.5
    assert config.debounce_leading is False
    assert config.superseded_message == "A new request has been made before completing the last one"
    assert config.trace_enabled is False


def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REQSCOPE_BASE_URL", "https://api.github.com/")
    monkeypatch.setenv("REQSCOPE_DEBOUNCE_WINDOW", "0.25")
    monkeypatch.setenv("REQSCOPE_DEBOUNCE_LEADING", "yes")
    monkeypatch.setenv("REQSCOPE_TRACE_ENABLED", "on")

    config = ScopeConfig.from_env()

    assert config.base_url == "https://api.github.com"
    assert config.debounce_window == 0.25
    assert config.debounce_leading is True
    assert config.trace_enabled is True


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REQSCOPE_DEBOUNCE_WINDOW", "0.25")
    monkeypatch.setenv("REQSCOPE_TRACE_ENABLED", "1")

    config = ScopeConfig.from_env(debounce_window=1.0, trace_enabled=False, base_url="http://local")

    assert config.debounce_window == 1.0
    assert config.trace_enabled is False
    assert config.base_url == "http://local"


def test_from_env_unknown_bool_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REQSCOPE_DEBOUNCE_LEADING", "maybe")

    assert ScopeConfig.from_env().debounce_leading is False


def test_invalid_window_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(ReqScopeConfigError):
        ScopeConfig(debounce_window=-0.1)

    monkeypatch.setenv("REQSCOPE_DEBOUNCE_WINDOW", "soon")
    with pytest.raises(ReqScopeConfigError):
        ScopeConfig.from_env()
