# pathproxy/proxy.py
import logging
from typing import AsyncGenerator, AsyncIterator

import httpx
from starlette.requests import ClientDisconnect, Request
from starlette.types import Receive, Scope, Send

from pathproxy import router
from pathproxy.config import ProxyConfiguration
from pathproxy.errors import (
    ConfigurationError,
    ProxyError,
    SinkWriteError,
    UnsupportedMethodError,
    UpstreamIOError,
)
from pathproxy.sink import ASGIResponseSink, ResponseSink

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})

# Only dropped when the proxy is configured with strip_hop_by_hop=True.
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Failures of the forwarding itself. Anything else is logged with a traceback.
_EXPECTED_ERRORS = (ProxyError, ClientDisconnect, OSError)


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


async def _body_stream(
    stream: AsyncGenerator[bytes, None],
    first: bytes = b"",
) -> AsyncGenerator[bytes, None]:
    try:
        if first:
            yield first
        async for chunk in stream:
            if chunk:
                yield chunk
    finally:
        await stream.aclose()


async def _open_body(request: Request) -> AsyncGenerator[bytes, None] | None:
    """Return the inbound body as a stream, or None when there is nothing to send.

    A declared length of zero means no body. Without any framing header
    (HTTP/2 requests carry none) the first chunk decides: an empty, final
    first message means no body.
    """
    content_length = request.headers.get("content-length")
    if content_length is not None:
        if content_length.strip() == "0":
            return None
        return _body_stream(request.stream())
    if "transfer-encoding" in request.headers:
        return _body_stream(request.stream())

    stream = request.stream()
    first = await anext(stream)
    if not first:
        await stream.aclose()
        return None
    return _body_stream(stream, first)


async def _iter_raw(response: httpx.Response) -> AsyncIterator[bytes]:
    if response.is_stream_consumed:
        # Transports may hand back a response whose body httpx already
        # loaded; its byte stream can still be replayed undecoded.
        async for data in response.stream:
            yield data
        return
    async for data in response.aiter_raw():
        yield data


class HttpProxy:
    """Forwards requests below a mount path to another HTTP origin.

    One instance serves every request concurrently; the only state shared
    between requests is the immutable configuration and the client's
    connection pool.
    """

    def __init__(self, config: ProxyConfiguration, client: httpx.AsyncClient) -> None:
        self.config = config
        self.client = client

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            raise ConfigurationError(f"Proxy only serves HTTP, got ASGI scope {scope['type']!r}")
        await self.forward(Request(scope, receive), ASGIResponseSink(send))

    async def aclose(self) -> None:
        await self.client.aclose()

    async def forward(self, request: Request, sink: ResponseSink) -> None:
        """Forward ``request`` upstream and write the upstream response to ``sink``.

        Failures are answered with a 500 carrying the failure message. Only
        SinkWriteError, raised when even that answer cannot be written,
        escapes to the caller.
        """
        body: AsyncGenerator[bytes, None] | None = None
        outbound: httpx.Request | None = None
        try:
            body = await _open_body(request)
            outbound = self.build_request(request, body)
            await self._execute(request, outbound, sink)
        except SinkWriteError:
            raise
        except Exception as exc:
            # Suppliers and path transforms are user code and may raise anything.
            log = logger.warning if isinstance(exc, _EXPECTED_ERRORS) else logger.exception
            log(
                "Proxy error for %s %s -> %s: %s",
                request.method,
                router.request_path(request),
                outbound.url if outbound is not None else "-",
                _error_message(exc),
            )
            await sink.send_error(500, _error_message(exc))
        finally:
            if body is not None:
                await body.aclose()

    def build_request(
        self,
        request: Request,
        body: AsyncGenerator[bytes, None] | None = None,
    ) -> httpx.Request:
        url = router.upstream_url(self.config, request)
        method = request.method
        if method not in SUPPORTED_METHODS:
            raise UnsupportedMethodError(method)

        try:
            return httpx.Request(
                method,
                url,
                headers=self._copy_request_headers(request),
                content=body,
                extensions={"timeout": self.config.timeout.as_dict()},
            )
        except httpx.InvalidURL as exc:
            raise ConfigurationError(f"Invalid upstream URL {url!r}: {exc}") from exc

    def _copy_request_headers(self, request: Request) -> list[tuple[str, str]]:
        auth_supplier = self.config.authorization_supplier
        host_supplier = self.config.host_supplier
        headers: list[tuple[str, str]] = []

        for raw_name, raw_value in request.headers.raw:
            name = raw_name.decode("latin-1")
            lower_name = name.lower()
            if lower_name == "content-length":
                # httpx derives framing from the attached body.
                continue
            if auth_supplier is not None and lower_name == "authorization":
                continue
            if host_supplier is not None and lower_name == "host":
                continue
            if self.config.strip_hop_by_hop and lower_name in HOP_BY_HOP_HEADERS:
                continue
            headers.append((name, raw_value.decode("latin-1")))

        if auth_supplier is not None:
            headers.append(("Authorization", auth_supplier()))
        if host_supplier is not None:
            headers.append(("Host", host_supplier()))

        present = {name.lower() for name, _ in headers}
        for name, value in self.config.default_headers:
            if name.lower() not in present:
                headers.append((name, value))
        return headers

    async def _execute(self, request: Request, outbound: httpx.Request, sink: ResponseSink) -> None:
        try:
            response = await self.client.send(outbound, stream=True)
        except httpx.HTTPError as exc:
            raise UpstreamIOError(_error_message(exc)) from exc

        try:
            if response.status_code >= 500:
                logger.error(
                    "Upstream error %s for %s %s",
                    response.status_code, request.method, outbound.url,
                )
            sink.set_status(response.status_code)
            for raw_name, raw_value in response.headers.raw:
                name = raw_name.decode("latin-1")
                if self.config.strip_hop_by_hop and name.lower() in HOP_BY_HOP_HEADERS:
                    continue
                sink.add_header(name, raw_value.decode("latin-1"))
            chunk_size = self.config.chunk_size
            # Raw bytes: no content decoding, Content-Encoding is passed through.
            async for data in _iter_raw(response):
                for start in range(0, len(data), chunk_size):
                    await sink.write(data[start:start + chunk_size])
        except httpx.HTTPError as exc:
            raise UpstreamIOError(_error_message(exc)) from exc
        finally:
            await response.aclose()

        await sink.flush()
        logger.debug(
            "Forwarded %s %s -> %s (%s)",
            request.method, router.request_path(request), outbound.url, response.status_code,
        )
