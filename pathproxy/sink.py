# pathproxy/sink.py
from typing import Protocol

from starlette.types import Send

from pathproxy.errors import SinkWriteError


class ResponseSink(Protocol):
    """Where the proxy writes the response for the original caller.

    Writes must happen in HTTP order: status, headers, body, flush.
    """

    @property
    def committed(self) -> bool: ...

    def set_status(self, status_code: int) -> None: ...

    def add_header(self, name: str, value: str) -> None: ...

    async def write(self, chunk: bytes) -> None: ...

    async def flush(self) -> None: ...

    async def send_error(self, status_code: int, message: str) -> None: ...


class ASGIResponseSink:
    """ResponseSink on top of an ASGI ``send`` callable.

    Status and headers are held back until the first body chunk or the final
    flush, at which point the response is committed and can no longer be
    replaced by an error response.
    """

    def __init__(self, send: Send) -> None:
        self._send = send
        self.status_code = 200
        self.raw_headers: list[tuple[bytes, bytes]] = []
        self._committed = False
        self._finished = False

    @property
    def committed(self) -> bool:
        return self._committed

    def set_status(self, status_code: int) -> None:
        self.status_code = status_code

    def add_header(self, name: str, value: str) -> None:
        self.raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))

    async def _commit(self) -> None:
        if not self._committed:
            self._committed = True
            await self._send({
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers,
            })

    async def write(self, chunk: bytes) -> None:
        await self._commit()
        if chunk:
            await self._send({"type": "http.response.body", "body": chunk, "more_body": True})

    async def flush(self) -> None:
        await self._commit()
        if not self._finished:
            self._finished = True
            await self._send({"type": "http.response.body", "body": b"", "more_body": False})

    async def send_error(self, status_code: int, message: str) -> None:
        if self._committed:
            raise SinkWriteError(
                f"Cannot send {status_code} error, response already committed: {message}"
            )
        self.status_code = status_code
        self.raw_headers = []
        try:
            await self._commit()
            self._finished = True
            await self._send({
                "type": "http.response.body",
                "body": message.encode("utf-8"),
                "more_body": False,
            })
        except (OSError, RuntimeError) as exc:
            raise SinkWriteError(str(exc)) from exc
