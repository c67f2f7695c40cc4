from __future__ import annotations

import uuid
from typing import Any, Callable

from starlette.datastructures import MutableHeaders
from starlette.requests import Request

from reqlog.config import get_settings
from reqlog.context import request_context, use_context
from reqlog.logger import Logger, new_logger


class RequestLoggingMiddleware:
    """Attaches a correlation id context and logs each request and response body."""

    def __init__(
        self,
        app: Callable[..., Any],
        logger: Logger | None = None,
        *,
        header_name: str | None = None,
        log_bodies: bool | None = None,
    ) -> None:
        settings = get_settings()
        self.app = app
        self.logger = logger or new_logger()
        self.header_name = header_name or settings.request_id_header
        self.log_bodies = settings.log_bodies if log_bodies is None else log_bodies

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        correlation_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request = self.logger.append_to_request_context(request, correlation_id)
        ctx = request_context(request)

        downstream_receive = receive
        if self.log_bodies:
            await self.logger.log_request(ctx, request)
            downstream_receive = _replay_body(request, receive)

        header_name = self.header_name

        async def send_wrapper(message: dict[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers[header_name] = correlation_id
            await send(message)

        capture = self.logger.create_response_wrapper(send_wrapper)

        with use_context(ctx):
            try:
                await self.app(request.scope, downstream_receive, capture)
            finally:
                if self.log_bodies:
                    self.logger.log_response(ctx, capture)


def _replay_body(request: Request, receive: Callable[..., Any]) -> Callable[..., Any]:
    """Hand the body read for logging back to the app as a single message."""

    body: bytes | None = getattr(request, "_body", None)
    if body is None:
        return receive

    sent = False

    async def replay() -> dict[str, Any]:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay
