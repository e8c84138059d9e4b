"""reqscope - Cancellable, debounced async requests bound to a scoped lifetime."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("reqscope")
except PackageNotFoundError:
    __version__ = "0+local"
from reqscope._transport import AiohttpTransport, Transport, create_request_error
from reqscope.cancellation import CancelToken, CancelTokenSource, create_token_source
from reqscope.config import ScopeConfig
from reqscope.context import current_transport, request_context
from reqscope.debounce import Debouncer, debounce
from reqscope.dispatcher import PendingRequest, RequestDispatcher
from reqscope.exceptions import (
    ReqScopeConfigError,
    ReqScopeError,
    RequestCancelledError,
    RequestError,
    TransportError,
)
from reqscope.models import HttpRequest, ResourceState, ResourceStatus
from reqscope.resource import ResourceCoordinator
from reqscope.scope import RequestScope

__all__ = [
    "__version__",
    "AiohttpTransport",
    "CancelToken",
    "CancelTokenSource",
    "Debouncer",
    "HttpRequest",
    "PendingRequest",
    "ReqScopeConfigError",
    "ReqScopeError",
    "RequestCancelledError",
    "RequestDispatcher",
    "RequestError",
    "RequestScope",
    "ResourceCoordinator",
    "ResourceState",
    "ResourceStatus",
    "ScopeConfig",
    "Transport",
    "TransportError",
    "create_request_error",
    "create_token_source",
    "current_transport",
    "debounce",
    "request_context",
]
