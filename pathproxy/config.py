# pathproxy/config.py
from dataclasses import dataclass, field

import httpx
from pydantic import PrivateAttr
from pydantic_settings import BaseSettings

from pathproxy.credentials import CredentialSupplier, HostSupplier
from pathproxy.errors import ConfigurationError
from pathproxy.router import PathTransform, identity_transform

DEFAULT_CHUNK_SIZE = 4096


def _header_pairs(value: str) -> list[tuple[str, str]]:
    """Parse "Name: value, Other: value" into ordered pairs."""
    pairs = []
    for item in value.split(","):
        name, sep, val = item.partition(":")
        if sep and name.strip():
            pairs.append((name.strip(), val.strip()))
    return pairs


def _seconds(ms: int | None) -> float | None:
    return None if ms is None else ms / 1000


def build_timeout(
    connect_ms: int | None,
    read_ms: int | None,
    connection_request_ms: int | None,
) -> httpx.Timeout:
    """Map millisecond settings onto httpx; ``None`` means no limit."""
    return httpx.Timeout(
        None,
        connect=_seconds(connect_ms),
        read=_seconds(read_ms),
        pool=_seconds(connection_request_ms),
    )


@dataclass(frozen=True)
class ProxyConfiguration:
    mount_path: str
    target_base_url: str
    path_transform: PathTransform = identity_transform
    authorization_supplier: CredentialSupplier | None = None
    host_supplier: HostSupplier | None = None
    default_headers: tuple[tuple[str, str], ...] = ()
    timeout: httpx.Timeout = field(default_factory=lambda: httpx.Timeout(None))
    strip_hop_by_hop: bool = False
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if not self.mount_path:
            raise ConfigurationError("mount_path must not be empty")
        if not self.target_base_url:
            raise ConfigurationError("target_base_url must not be empty")
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive")


class Settings(BaseSettings):
    # Routing
    mount_path: str = "/api/"                           # PROXY_MOUNT_PATH
    target_base_url: str = "http://upstream:8000"       # PROXY_TARGET_BASE_URL

    # Timeouts (milliseconds, unset = no limit)
    connect_timeout_ms: int | None = 10_000             # PROXY_CONNECT_TIMEOUT_MS
    read_timeout_ms: int | None = 120_000               # PROXY_READ_TIMEOUT_MS
    connection_request_timeout_ms: int | None = 10_000  # PROXY_CONNECTION_REQUEST_TIMEOUT_MS

    # Connection pool
    max_connections: int = 100                          # PROXY_MAX_CONNECTIONS
    max_keepalive_connections: int = 20                 # PROXY_MAX_KEEPALIVE_CONNECTIONS

    # Headers added to every outbound request unless the request already has them.
    # PROXY_DEFAULT_HEADERS="X-Forwarded-By: pathproxy, X-Env: prod"
    default_headers: str = ""

    # Drop Connection, Transfer-Encoding etc. in both directions. Off by default:
    # hop-by-hop headers are passed through unchanged.
    strip_hop_by_hop: bool = False                      # PROXY_STRIP_HOP_BY_HOP
    chunk_size: int = DEFAULT_CHUNK_SIZE                # PROXY_CHUNK_SIZE

    # Overrides. A static authorization wins over JWT minting.
    authorization: str | None = None                    # PROXY_AUTHORIZATION
    host: str | None = None                             # PROXY_HOST

    # Service JWT minted per token lifetime, enabled when a secret is set.
    jwt_secret: str | None = None                       # PROXY_JWT_SECRET
    jwt_algorithm: str = "HS256"                        # PROXY_JWT_ALGORITHM
    jwt_issuer: str = "pathproxy"                       # PROXY_JWT_ISSUER
    jwt_audience: str = "upstream"                      # PROXY_JWT_AUDIENCE
    jwt_subject: str = "pathproxy"                      # PROXY_JWT_SUBJECT
    jwt_ttl: int = 300                                  # PROXY_JWT_TTL (seconds)

    # Parsed once at startup, not on every request.
    _default_header_pairs: list[tuple[str, str]] = PrivateAttr(default_factory=list)

    def model_post_init(self, __context) -> None:
        self._default_header_pairs = _header_pairs(self.default_headers)

    @property
    def default_header_pairs(self) -> list[tuple[str, str]]:
        return self._default_header_pairs

    @property
    def timeout(self) -> httpx.Timeout:
        return build_timeout(
            self.connect_timeout_ms,
            self.read_timeout_ms,
            self.connection_request_timeout_ms,
        )

    model_config = {"env_file": ".env", "env_prefix": "PROXY_", "case_sensitive": False}


settings = Settings()
