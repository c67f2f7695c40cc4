from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from starlette.requests import ClientDisconnect, Request

from reqlog.caller import CallerFrame
from reqlog.capture import ResponseCapture
from reqlog.context import (
    FILE_KEY,
    FUNC_KEY,
    METHOD_KEY,
    PATH_KEY,
    REQUEST_KEY,
    RESPONSE_CODE_KEY,
    RESPONSE_KEY,
    ExecutionContext,
    context_data,
)


class FieldSet:
    """Fields for one log call.

    Later writes win, so callers inject the caller frame first, then the
    context data, then anything specific to the call.
    """

    def __init__(self) -> None:
        self._fields: dict[str, Any] = {}

    def set_caller(self, frame: CallerFrame | None) -> FieldSet:
        if frame is None:
            return self
        if frame.function:
            self._fields[FUNC_KEY] = frame.function
        if frame.file:
            self._fields[FILE_KEY] = frame.location
        return self

    def inject_context(self, ctx: ExecutionContext | None) -> FieldSet:
        data = context_data(ctx)
        if data is not None:
            for key, value in data.items():
                self._fields[key] = value
        return self

    def inject_url_path(self, request: Request) -> FieldSet:
        self._fields[PATH_KEY] = request.url.netloc + request.url.path
        return self

    def inject_method(self, request: Request) -> FieldSet:
        self._fields[METHOD_KEY] = request.method
        return self

    async def inject_request_body(self, request: Request) -> FieldSet:
        try:
            body = await request.body()
        except (ClientDisconnect, RuntimeError):
            # Partial or unreadable bodies are logged as empty.
            body = b""
        self._fields[REQUEST_KEY] = body.decode("utf-8", errors="replace")
        return self

    def inject_response(self, capture: ResponseCapture) -> FieldSet:
        self._fields[RESPONSE_CODE_KEY] = capture.status
        self._fields[RESPONSE_KEY] = capture.body
        return self

    def update(self, extra: Mapping[str, Any] | None) -> FieldSet:
        if extra:
            self._fields.update(extra)
        return self

    def as_dict(self) -> dict[str, Any]:
        return dict(self._fields)
