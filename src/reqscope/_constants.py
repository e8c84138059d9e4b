"""Internal constants shared across the library."""

SUPERSEDED_MESSAGE = "A new request has been made before completing the last one"
CLOSED_MESSAGE = "Request scope closed"

#: Default debounce quiescence window in seconds.
DEFAULT_DEBOUNCE_WINDOW: float = 0.5

ENV_PREFIX = "REQSCOPE_"
