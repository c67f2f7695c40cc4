from __future__ import annotations

from typing import Any, Awaitable, Callable


Send = Callable[[dict[str, Any]], Awaitable[None]]

# Status reported when the app never started a response.
STATUS_UNSET = 0


class ResponseCapture:
    """Pass-through ASGI ``send`` that remembers the status and body it forwarded."""

    def __init__(self, send: Send) -> None:
        self._send = send
        self.status: int = STATUS_UNSET
        self._chunks: list[bytes] = []

    async def __call__(self, message: dict[str, Any]) -> None:
        message_type = message.get("type")
        if message_type == "http.response.start":
            self.status = int(message.get("status", STATUS_UNSET))
        elif message_type == "http.response.body":
            chunk = message.get("body", b"")
            if chunk:
                self._chunks.append(bytes(chunk))

        await self._send(message)

    @property
    def body_bytes(self) -> bytes:
        return b"".join(self._chunks)

    @property
    def body(self) -> str:
        return self.body_bytes.decode("utf-8", errors="replace")
