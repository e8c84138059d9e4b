"""Data models: the HTTP request descriptor and resource state snapshots."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reqscope.exceptions import RequestError

T = TypeVar("T")


class HttpRequest(BaseModel):
    """Request descriptor understood by :class:`~reqscope.AiohttpTransport`.

    Request-producing functions return one of these; dispatchers and
    coordinators pass it through untouched.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    url: str
    method: str = "GET"
    params: dict[str, Any] = Field(default_factory=dict)
    body: Any = Field(default=None, description="JSON-encoded request body")
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        if not value:
            raise ValueError("url must be non-empty")
        return value

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    def query_params(self) -> dict[str, str]:
        """Params as aiohttp expects them: strings only, ``None`` dropped."""
        result: dict[str, str] = {}
        for key, value in self.params.items():
            if value is None:
                continue
            if isinstance(value, bool):
                result[key] = "true" if value else "false"
            else:
                result[key] = str(value)
        return result


class ResourceStatus(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    CLOSED = "closed"


class ResourceState(BaseModel, Generic[T]):
    """Observable snapshot of one logical resource.

    ``data`` survives a later failure, so ``data`` and ``error`` may both be
    set after a success followed by an error.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    data: T | None = None
    error: RequestError | None = None
    is_loading: bool = False
    status: ResourceStatus = ResourceStatus.IDLE
