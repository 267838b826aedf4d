# pathproxy/main.py
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.types import Receive, Scope, Send

from pathproxy.builder import ProxyBuilder
from pathproxy.config import Settings, settings as default_settings
from pathproxy.errors import ConfigurationError
from pathproxy.proxy import HttpProxy

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _forward(scope: Scope, receive: Receive, send: Send) -> None:
    proxy = scope["app"].state.proxy
    if proxy is None:
        raise ConfigurationError("Proxy is not started; run the app lifespan first")
    await proxy(scope, receive, send)


def create_app(settings: Settings | None = None, proxy: HttpProxy | None = None) -> FastAPI:
    """Build the host service with the proxy mounted at the configured mount path.

    The proxy, and with it the pooled HTTP client, is built on startup unless
    one is passed in.
    """
    settings = settings or default_settings
    mount_path = proxy.config.mount_path if proxy is not None else settings.mount_path

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Shared HTTP client: its connection pool lives as long as the app.
        if app.state.proxy is None:
            app.state.proxy = ProxyBuilder.from_settings(settings).build()
        running = app.state.proxy
        logger.info(
            "Proxying %s -> %s",
            running.config.mount_path, running.config.target_base_url,
        )
        yield
        await running.aclose()
        logger.info("HTTP client closed")

    app = FastAPI(title="Path Proxy", version="1.0.0", lifespan=lifespan)
    app.state.proxy = proxy

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Propagate or generate an X-Request-ID header for end-to-end tracing."""
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = req_id
        response = await call_next(request)
        response.headers["x-request-id"] = req_id
        return response

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # Starlette mounts need a leading slash and no trailing one.
    app.mount("/" + mount_path.strip("/"), _forward)
    return app


app = create_app()
