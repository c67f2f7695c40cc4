"""Request-scoped execution context.

An ``ExecutionContext`` is an immutable chain of bindings. Deriving a context
never touches its parent, so a context can be shared freely between threads
and tasks. The logging data for a request lives under one typed key as a
read-only ``str -> str`` mapping that always carries the correlation id.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from starlette.requests import Request


CONTEXT_ID_KEY = "context_id"
PATH_KEY = "url_path"
METHOD_KEY = "method"
REQUEST_KEY = "request"
RESPONSE_KEY = "response"
RESPONSE_CODE_KEY = "response_code"
FUNC_KEY = "func"
FILE_KEY = "file"
SERVICE_KEY = "service"

# ASGI scope entry that carries the context of a request.
SCOPE_KEY = "reqlog.context"


class _ContextKey:
    """Private key type so nothing else can collide with our binding."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<context key {self.name!r}>"


CONTEXT_DATA_KEY = _ContextKey("value")


@dataclass(frozen=True, eq=False)
class ExecutionContext:
    parent: ExecutionContext | None = None
    key: Any = None
    val: Any = None

    def with_value(self, key: Any, value: Any) -> ExecutionContext:
        return ExecutionContext(parent=self, key=key, val=value)

    def value(self, key: Any) -> Any:
        """Return the nearest binding for ``key`` walking toward the root."""

        node: ExecutionContext | None = self
        while node is not None:
            if node.parent is not None and node.key == key:
                return node.val
            node = node.parent
        return None


BACKGROUND = ExecutionContext()


def _data_map(data: Mapping[str, str] | None, correlation_id: str) -> Mapping[str, str]:
    fresh = dict(data or {})
    fresh[CONTEXT_ID_KEY] = correlation_id
    return MappingProxyType(fresh)


def context_data(ctx: ExecutionContext | None) -> Mapping[str, str] | None:
    if ctx is None:
        return None
    data = ctx.value(CONTEXT_DATA_KEY)
    if not isinstance(data, Mapping):
        return None
    return data


def correlation_id(ctx: ExecutionContext | None) -> str | None:
    data = context_data(ctx)
    if data is None:
        return None
    return data.get(CONTEXT_ID_KEY)


def build_context(correlation_id: str) -> ExecutionContext:
    return BACKGROUND.with_value(CONTEXT_DATA_KEY, _data_map(None, correlation_id))


def request_context(request: Request) -> ExecutionContext:
    ctx = request.scope.get(SCOPE_KEY)
    if isinstance(ctx, ExecutionContext):
        return ctx
    return BACKGROUND


def _with_context(request: Request, ctx: ExecutionContext) -> Request:
    scope = dict(request.scope)
    scope[SCOPE_KEY] = ctx
    derived = Request(scope, request.receive)
    # Starlette keeps read state on the instance, not in the scope.
    if hasattr(request, "_body"):
        derived._body = request._body
    derived._stream_consumed = request._stream_consumed
    return derived


def append_to_request_context(request: Request, correlation_id: str) -> Request:
    ctx = request_context(request).with_value(CONTEXT_DATA_KEY, _data_map(None, correlation_id))
    return _with_context(request, ctx)


def set_request_context(
    request: Request,
    data: Mapping[str, str] | None,
    correlation_id: str,
) -> Request:
    """Like ``append_to_request_context`` but seeded with ``data``.

    The correlation id overrides any ``context_id`` entry in ``data``; ``data``
    itself is copied and never modified.
    """

    ctx = request_context(request).with_value(CONTEXT_DATA_KEY, _data_map(data, correlation_id))
    return _with_context(request, ctx)


_CURRENT: ContextVar[ExecutionContext | None] = ContextVar("reqlog_context", default=None)


def current_context() -> ExecutionContext | None:
    return _CURRENT.get()


@contextmanager
def use_context(ctx: ExecutionContext) -> Iterator[ExecutionContext]:
    """Bind ``ctx`` as the ambient context for the current task or thread."""

    token = _CURRENT.set(ctx)
    try:
        yield ctx
    finally:
        _CURRENT.reset(token)
