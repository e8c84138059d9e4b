from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest
from pydantic import ValidationError

from reqscope.cancellation import CancelToken
from reqscope.config import ScopeConfig
from reqscope.exceptions import RequestCancelledError, TransportError
from reqscope.models import ResourceState, ResourceStatus
from reqscope.resource import ResourceCoordinator


@dataclass
class FakeSearchBackend:
    """Search endpoint with per-query latency and failures."""

    latency: dict[str, float] = field(default_factory=dict)
    default_latency: float = 0.01
    failures: dict[str, Exception] = field(default_factory=dict)
    honor_cancel: bool = True
    calls: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    tokens: dict[str, CancelToken] = field(default_factory=dict)

    async def perform(self, request: str, token: CancelToken) -> dict[str, Any]:
        self.calls.append(request)
        self.tokens[request] = token
        delay = self.latency.get(request, self.default_latency)
        if self.honor_cancel:
            await asyncio.sleep(delay)
        else:
            sleeper = asyncio.ensure_future(asyncio.sleep(delay))
            while not sleeper.done():
                try:
                    await asyncio.shield(sleeper)
                except asyncio.CancelledError:
                    continue
        self.completed.append(request)
        if request in self.failures:
            raise self.failures[request]
        return {"login": request}


def search_user(query: str) -> str:
    return query


@pytest.mark.asyncio
async def test_superseded_call_never_reaches_state() -> None:
    backend = FakeSearchBackend(latency={"ali": 0.1, "alice": 0.1})
    users = ResourceCoordinator(search_user, transport=backend)
    states: list[ResourceState[Any]] = []
    users.subscribe(states.append)

    users.trigger("ali")
    assert users.is_loading
    await asyncio.sleep(0.01)
    users.trigger("alice")
    assert users.is_loading
    assert backend.tokens["ali"].is_cancelled
    assert backend.tokens["ali"].reason == ScopeConfig().superseded_message

    await users.join()

    assert users.data == {"login": "alice"}
    assert users.error is None
    assert not users.is_loading
    assert [state.is_loading for state in states] == [True, True, False]
    settled = [(state.data, state.error, state.status) for state in states if not state.is_loading]
    assert settled == [({"login": "alice"}, None, ResourceStatus.SUCCESS)]


@pytest.mark.asyncio
async def test_late_settlement_of_superseded_call_is_discarded() -> None:
    # The first call ignores the abort and completes after the second one.
    backend = FakeSearchBackend(latency={"ali": 0.08, "alice": 0.02}, honor_cancel=False)
    users = ResourceCoordinator(search_user, transport=backend)

    users.trigger("ali")
    await asyncio.sleep(0.01)
    users.trigger("alice")
    await users.join()
    assert users.data == {"login": "alice"}

    await asyncio.sleep(0.1)
    assert backend.completed == ["alice", "ali"]
    assert users.data == {"login": "alice"}
    assert users.status is ResourceStatus.SUCCESS


@pytest.mark.asyncio
async def test_failure_keeps_previous_data() -> None:
    backend = FakeSearchBackend(failures={"bob": TransportError("HTTP 500", status_code=500)})
    users = ResourceCoordinator(search_user, transport=backend)

    users.trigger("alice")
    await users.join()
    users.trigger("bob")
    await users.join()

    assert users.data == {"login": "alice"}
    assert isinstance(users.error, TransportError)
    assert users.error.status_code == 500
    assert users.status is ResourceStatus.ERROR


@pytest.mark.asyncio
async def test_each_settlement_publishes_exactly_one_settled_snapshot() -> None:
    failure = TransportError("HTTP 500", status_code=500)
    backend = FakeSearchBackend(failures={"bad": failure})
    users = ResourceCoordinator(search_user, transport=backend)
    states: list[ResourceState[Any]] = []
    users.subscribe(states.append)

    users.trigger("alice")
    assert users.is_loading
    await users.join()
    assert not users.is_loading
    users.trigger("bad")
    await users.join()

    observed = [(state.is_loading, state.data, state.error, state.status) for state in states]
    assert observed == [
        (True, None, None, ResourceStatus.PENDING),
        (False, {"login": "alice"}, None, ResourceStatus.SUCCESS),
        (True, {"login": "alice"}, None, ResourceStatus.PENDING),
        (False, {"login": "alice"}, failure, ResourceStatus.ERROR),
    ]


@pytest.mark.asyncio
async def test_success_after_failure_clears_error() -> None:
    backend = FakeSearchBackend(failures={"bob": TransportError("HTTP 500", status_code=500)})
    users = ResourceCoordinator(search_user, transport=backend)

    users.trigger("bob")
    await users.join()
    assert users.error is not None
    assert users.data is None

    users.trigger("carol")
    await users.join()
    assert users.data == {"login": "carol"}
    assert users.error is None


@pytest.mark.asyncio
async def test_cancellation_is_invisible_even_when_transport_raises_its_own_error() -> None:
    class _Aborted(Exception):
        is_cancel = True

    backend = FakeSearchBackend(failures={"x": _Aborted("aborted by transport")})
    users = ResourceCoordinator(search_user, transport=backend)

    users.trigger("x")
    await users.join()

    assert users.error is None
    assert users.data is None
    assert users.status is ResourceStatus.IDLE


@pytest.mark.asyncio
async def test_returned_canceller_and_cancel_all_do_not_touch_state() -> None:
    backend = FakeSearchBackend(default_latency=0.05)
    users = ResourceCoordinator(search_user, transport=backend)
    users.trigger("alice")
    await users.join()
    before = users.state

    cancel = users.trigger("bob")
    cancel()
    assert not users.is_loading
    await users.join()

    users.trigger("carol")
    users.cancel_all("user navigated away")
    assert not users.is_loading
    await users.join()

    assert users.data == before.data
    assert users.error is None
    assert backend.tokens.get("carol") is None or backend.tokens["carol"].is_cancelled


@pytest.mark.asyncio
async def test_default_args_issue_eager_trigger() -> None:
    backend = FakeSearchBackend()
    users = ResourceCoordinator(search_user, ("gabriel",), transport=backend)

    assert users.is_loading
    assert users.status is ResourceStatus.PENDING
    await users.join()

    assert users.data == {"login": "gabriel"}
    assert backend.calls == ["gabriel"]


@pytest.mark.asyncio
async def test_empty_default_args_still_trigger() -> None:
    calls: list[tuple[Any, ...]] = []

    def list_users(*args: Any) -> str:
        calls.append(args)
        return "all"

    users = ResourceCoordinator(list_users, (), transport=FakeSearchBackend())
    await users.join()

    assert calls == [()]
    assert users.data == {"login": "all"}


@pytest.mark.asyncio
async def test_update_defaults_reissues_only_on_change() -> None:
    backend = FakeSearchBackend()
    users = ResourceCoordinator(search_user, ("a",), transport=backend)

    users.update_defaults("a")
    users.update_defaults("b")
    await users.join()

    assert backend.calls == ["b"]
    assert users.data == {"login": "b"}


@pytest.mark.asyncio
async def test_teardown_cancels_in_flight_call_and_later_calls_are_noops() -> None:
    backend = FakeSearchBackend(default_latency=0.05)
    async with ResourceCoordinator(search_user, ("gabriel",), transport=backend) as users:
        await asyncio.sleep(0.01)
        token = backend.tokens["gabriel"]

    assert token.is_cancelled
    assert token.reason == ScopeConfig().closed_message
    assert users.closed
    assert users.status is ResourceStatus.CLOSED
    assert not users.is_loading
    assert users.data is None

    cancel = users.trigger("alice")
    cancel()
    users.cancel_all()
    users.update_defaults("bob")
    users.close()
    await users.join()

    assert backend.calls == ["gabriel"]
    assert users.data is None
    assert users.error is None


@pytest.mark.asyncio
async def test_listeners_receive_snapshots() -> None:
    users = ResourceCoordinator(search_user, transport=FakeSearchBackend())
    states: list[ResourceState[Any]] = []
    users.subscribe(states.append)

    users.trigger("alice")
    await users.join()

    assert states[0].is_loading is True
    assert states[0].status is ResourceStatus.PENDING
    assert states[-1].data == {"login": "alice"}
    assert states[-1].status is ResourceStatus.SUCCESS
    with pytest.raises(ValidationError):
        states[-1].data = None  # type: ignore[misc]


@pytest.mark.asyncio
async def test_dispatcher_level_ready_reports_cancellation() -> None:
    backend = FakeSearchBackend(default_latency=0.05)
    users = ResourceCoordinator(search_user, transport=backend)
    users.trigger("alice")
    handle = users.dispatcher.dispatch("direct")
    task = handle.ready()
    users.trigger("bob")

    with pytest.raises(RequestCancelledError):
        await task
    await users.join()
    assert users.data == {"login": "bob"}
