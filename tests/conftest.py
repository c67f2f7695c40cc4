from __future__ import annotations

import io
import json
from collections.abc import AsyncIterator
from typing import Any, Callable

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request as StarletteRequest

from reqlog.caller import reset_caller_cache
from reqlog.config import get_settings
from reqlog.context import correlation_id, request_context
from reqlog.logger import DEBUG, Logger
from reqlog.middleware import RequestLoggingMiddleware


class ExitRecorder:
    def __init__(self) -> None:
        self.codes: list[int] = []

    def __call__(self, code: int) -> None:
        self.codes.append(code)


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REQLOG_SERVICE_NAME", "test-service")
    get_settings.cache_clear()
    reset_caller_cache()

    yield

    get_settings.cache_clear()
    reset_caller_cache()


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def exit_recorder() -> ExitRecorder:
    return ExitRecorder()


@pytest.fixture
def logger(log_stream: io.StringIO, exit_recorder: ExitRecorder) -> Logger:
    return Logger("test-service", DEBUG, stream=log_stream, exit_func=exit_recorder)


@pytest.fixture
def records(log_stream: io.StringIO) -> Callable[[], list[dict[str, Any]]]:
    def _read() -> list[dict[str, Any]]:
        return [json.loads(line) for line in log_stream.getvalue().splitlines() if line.strip()]

    return _read


@pytest.fixture
def make_request() -> Callable[..., StarletteRequest]:
    def _make(
        method: str = "GET",
        path: str = "/",
        body: bytes = b"",
        headers: dict[str, str] | None = None,
        disconnect: bool = False,
    ) -> StarletteRequest:
        raw_headers = [(b"host", b"example.com")]
        for key, value in (headers or {}).items():
            raw_headers.append((key.lower().encode("latin-1"), value.encode("latin-1")))

        scope = {
            "type": "http",
            "method": method,
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "scheme": "http",
            "query_string": b"",
            "headers": raw_headers,
            "server": ("example.com", 80),
        }

        async def receive() -> dict[str, Any]:
            if disconnect:
                return {"type": "http.disconnect"}
            return {"type": "http.request", "body": body, "more_body": False}

        return StarletteRequest(scope, receive)

    return _make


def build_app(logger: Logger, **middleware_options: Any) -> FastAPI:
    app = FastAPI(title="reqlog test app")
    app.add_middleware(RequestLoggingMiddleware, logger=logger, **middleware_options)

    @app.post("/echo")
    async def echo(request: Request) -> JSONResponse:
        body = await request.body()
        return JSONResponse(
            {
                "body": body.decode("utf-8"),
                "context_id": correlation_id(request_context(request)),
            }
        )

    @app.get("/teapot")
    async def teapot() -> PlainTextResponse:
        return PlainTextResponse("short and stout", status_code=418)

    @app.get("/fail")
    async def fail() -> PlainTextResponse:
        logger.errorf(None, "lookup failed for %s", "widget")
        return PlainTextResponse("nope", status_code=404)

    return app


@pytest.fixture
async def api_client(logger: Logger) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=build_app(logger))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def app_factory() -> Callable[..., FastAPI]:
    return build_app
