"""Leveled, context-aware logging facade.

Every record carries the ``service`` field, the data map of the execution
context passed in (or the ambient one bound by the middleware), and for
warning-and-above records the ``func``/``file`` of the calling site.

Nothing here raises on the emit path: a record that cannot be formatted or
written is dropped and a traceback goes to stderr, the way stdlib handlers
report their own failures. ``fatal``/``fatalf`` are the exception to normal
control flow: after recording they call ``exit_func(1)``. By default that
flushes the sink and the standard streams, then ends the process with
``os._exit`` from whichever thread logged, so no ``SystemExit`` is left for a
worker thread or an ASGI server to swallow.
"""

from __future__ import annotations

import logging
import os
import sys
import traceback
from collections.abc import Mapping
from threading import Lock
from typing import IO, Any, Callable

import structlog
from starlette.requests import Request

from reqlog import context as _context
from reqlog.caller import CallerResolver, StackCallerResolver
from reqlog.capture import ResponseCapture, Send
from reqlog.config import get_settings
from reqlog.context import SERVICE_KEY, ExecutionContext, current_context
from reqlog.fields import FieldSet


DEBUG = logging.DEBUG
INFO = logging.INFO
WARNING = logging.WARNING
ERROR = logging.ERROR
FATAL = logging.CRITICAL

_LEVEL_NAMES = {
    "debug": DEBUG,
    "info": INFO,
    "warn": WARNING,
    "warning": WARNING,
    "error": ERROR,
    "fatal": FATAL,
    "critical": FATAL,
}

# structlog method used for each level; also the rendered "level" value.
_METHODS = {
    DEBUG: "debug",
    INFO: "info",
    WARNING: "warning",
    ERROR: "error",
    FATAL: "fatal",
}

# Caller attribution costs a stack walk, so only warnings and worse get it.
CALLER_LEVEL = WARNING

# Keys the processor chain writes itself; caller fields with these names are
# kept under a "fields." prefix instead of being overwritten.
RESERVED_KEYS = frozenset({"level", "time", "msg", "event"})


def parse_level(level: int | str) -> int:
    if isinstance(level, bool):
        raise ValueError(f"invalid log level: {level!r}")
    if isinstance(level, int):
        return level
    try:
        return _LEVEL_NAMES[str(level).strip().lower()]
    except KeyError:
        raise ValueError(f"invalid log level: {level!r}") from None


def _processors() -> list[Any]:
    return [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="time"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.EventRenamer("msg"),
        structlog.processors.JSONRenderer(),
    ]


def _sprint(args: tuple[Any, ...]) -> str:
    return " ".join(str(arg) for arg in args)


def _sprintf(message: str, args: tuple[Any, ...]) -> str:
    if not args:
        return message
    return message % args


def _flush(stream: Any) -> None:
    try:
        stream.flush()
    except Exception:
        pass


def _safe_fields(fields: Mapping[Any, Any]) -> dict[str, Any]:
    safe: dict[str, Any] = {}
    for key, value in fields.items():
        name = str(key)
        if name in RESERVED_KEYS:
            name = "fields." + name
        safe[name] = value
    return safe


def _report_emit_failure() -> None:
    try:
        sys.stderr.write("--- reqlog: dropped a log record ---\n")
        traceback.print_exc(file=sys.stderr)
    except Exception:
        pass


class Logger:
    def __init__(
        self,
        service: str,
        level: int | str = INFO,
        *,
        stream: IO[str] | None = None,
        resolver: CallerResolver | None = None,
        exit_func: Callable[[int], Any] | None = None,
    ) -> None:
        self._level_lock = Lock()
        self._level = parse_level(level)
        self._resolver: CallerResolver = resolver or StackCallerResolver()
        self._stream = stream
        self._exit_func = exit_func or self._terminate
        self._entry = structlog.wrap_logger(
            structlog.PrintLogger(file=stream),
            processors=_processors(),
            wrapper_class=structlog.BoundLogger,
            context_class=dict,
        ).bind(**{SERVICE_KEY: service})

    def _terminate(self, code: int) -> None:
        """Flush what was logged and end the whole process."""

        for stream in (self._stream, sys.stdout, sys.stderr):
            if stream is not None:
                _flush(stream)
        os._exit(code)

    @property
    def level(self) -> int:
        with self._level_lock:
            return self._level

    def set_level(self, level: int | str) -> None:
        parsed = parse_level(level)
        with self._level_lock:
            self._level = parsed

    def is_enabled_for(self, level: int) -> bool:
        return level >= self.level

    # Context helpers

    def build_context(self, correlation_id: str) -> ExecutionContext:
        return _context.build_context(correlation_id)

    def append_to_request_context(self, request: Request, correlation_id: str) -> Request:
        return _context.append_to_request_context(request, correlation_id)

    def set_request_context(
        self,
        request: Request,
        data: Mapping[str, str] | None,
        correlation_id: str,
    ) -> Request:
        return _context.set_request_context(request, data, correlation_id)

    def create_response_wrapper(self, send: Send) -> ResponseCapture:
        return ResponseCapture(send)

    def get_entry(self) -> Any:
        """The underlying structlog logger with the ``service`` field bound."""

        return self._entry

    # Emission

    def _fields(self, level: int, ctx: ExecutionContext | None) -> FieldSet:
        fields = FieldSet()
        if level >= CALLER_LEVEL:
            fields.set_caller(self._resolver.resolve())
        return fields.inject_context(ctx if ctx is not None else current_context())

    def _write(self, level: int, fields: FieldSet, message: str) -> None:
        method = _METHODS.get(level, "info")
        getattr(self._entry.bind(**_safe_fields(fields.as_dict())), method)(message)

    def _log(
        self,
        level: int,
        ctx: ExecutionContext | None,
        render: Callable[[], str],
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        if not self.is_enabled_for(level):
            return
        try:
            fields = self._fields(level, ctx).update(extra)
            self._write(level, fields, render())
        except Exception:
            _report_emit_failure()

    def debug(self, ctx: ExecutionContext | None, *args: Any) -> None:
        self._log(DEBUG, ctx, lambda: _sprint(args))

    def info(self, ctx: ExecutionContext | None, *args: Any) -> None:
        self._log(INFO, ctx, lambda: _sprint(args))

    def warn(self, ctx: ExecutionContext | None, *args: Any) -> None:
        self._log(WARNING, ctx, lambda: _sprint(args))

    def error(self, ctx: ExecutionContext | None, *args: Any) -> None:
        self._log(ERROR, ctx, lambda: _sprint(args))

    def fatal(self, ctx: ExecutionContext | None, *args: Any) -> None:
        self._log(FATAL, ctx, lambda: _sprint(args))
        self._exit_func(1)

    def debugf(self, ctx: ExecutionContext | None, message: str, *args: Any) -> None:
        self._log(DEBUG, ctx, lambda: _sprintf(message, args))

    def infof(self, ctx: ExecutionContext | None, message: str, *args: Any) -> None:
        self._log(INFO, ctx, lambda: _sprintf(message, args))

    def warnf(self, ctx: ExecutionContext | None, message: str, *args: Any) -> None:
        self._log(WARNING, ctx, lambda: _sprintf(message, args))

    def errorf(self, ctx: ExecutionContext | None, message: str, *args: Any) -> None:
        self._log(ERROR, ctx, lambda: _sprintf(message, args))

    def fatalf(self, ctx: ExecutionContext | None, message: str, *args: Any) -> None:
        self._log(FATAL, ctx, lambda: _sprintf(message, args))
        self._exit_func(1)

    warning = warn
    warningf = warnf

    def info_map(self, ctx: ExecutionContext | None, data: Mapping[str, Any] | None, *args: Any) -> None:
        """Info record with ``data`` merged over the context fields.

        Keys are rendered with ``str``; ``level``, ``time``, ``msg`` and ``event``
        are written as ``fields.<key>`` so they do not clobber the record.
        """

        self._log(INFO, ctx, lambda: _sprint(args), extra=data)

    async def log_request(self, ctx: ExecutionContext | None, request: Request) -> None:
        if not self.is_enabled_for(INFO):
            return
        try:
            fields = self._fields(INFO, ctx).inject_url_path(request).inject_method(request)
            await fields.inject_request_body(request)
            self._write(INFO, fields, "Request Body")
        except Exception:
            _report_emit_failure()

    def log_response(self, ctx: ExecutionContext | None, capture: ResponseCapture) -> None:
        if not self.is_enabled_for(INFO):
            return
        try:
            fields = self._fields(INFO, ctx).inject_response(capture)
            self._write(INFO, fields, "Response Body")
        except Exception:
            _report_emit_failure()


def new_logger(service: str | None = None, level: int | str | None = None, **kwargs: Any) -> Logger:
    """Build a ``Logger`` with defaults taken from the environment settings."""

    settings = get_settings()
    kwargs.setdefault("resolver", StackCallerResolver(max_depth=settings.max_caller_depth))
    return Logger(
        service or settings.service_name,
        settings.log_level if level is None else level,
        **kwargs,
    )
