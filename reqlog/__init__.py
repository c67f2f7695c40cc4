"""Context-aware structured logging for request handlers.

Request-scoped correlation data travels in an immutable execution context,
warnings and errors are attributed to their calling site, and request and
response bodies can be captured for logging without disturbing the exchange.
"""

from reqlog.caller import CallerFrame, FixedCallerResolver, StackCallerResolver
from reqlog.capture import STATUS_UNSET, ResponseCapture
from reqlog.context import (
    BACKGROUND,
    ExecutionContext,
    append_to_request_context,
    build_context,
    correlation_id,
    current_context,
    request_context,
    set_request_context,
    use_context,
)
from reqlog.logger import DEBUG, ERROR, FATAL, INFO, WARNING, Logger, new_logger, parse_level
from reqlog.middleware import RequestLoggingMiddleware

__all__ = [
    "BACKGROUND",
    "DEBUG",
    "ERROR",
    "FATAL",
    "INFO",
    "STATUS_UNSET",
    "WARNING",
    "CallerFrame",
    "ExecutionContext",
    "FixedCallerResolver",
    "Logger",
    "RequestLoggingMiddleware",
    "ResponseCapture",
    "StackCallerResolver",
    "append_to_request_context",
    "build_context",
    "correlation_id",
    "current_context",
    "new_logger",
    "parse_level",
    "request_context",
    "set_request_context",
    "use_context",
]
