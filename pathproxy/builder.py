# pathproxy/builder.py
from http.cookiejar import CookieJar, DefaultCookiePolicy

import httpx

from pathproxy.config import DEFAULT_CHUNK_SIZE, ProxyConfiguration, Settings, build_timeout
from pathproxy.credentials import (
    CredentialSupplier,
    HostSupplier,
    JWTCredentialSupplier,
    StaticValue,
)
from pathproxy.proxy import HttpProxy
from pathproxy.router import PathTransform, identity_transform


class ProxyBuilder:
    """Fluent construction of an HttpProxy and its pooled client.

    >>> proxy = (
    ...     ProxyBuilder("/api/", "https://upstream.internal")
    ...     .set_connect_timeout(2000)
    ...     .add_default_header("X-Forwarded-By", "pathproxy")
    ...     .build()
    ... )

    Timeouts are in milliseconds; ``None`` disables a timeout.
    """

    def __init__(self, mount_path: str, target_base_url: str) -> None:
        self.mount_path = mount_path
        self.target_base_url = target_base_url
        self.default_headers: list[tuple[str, str]] = []
        self.path_transform: PathTransform = identity_transform
        self.authorization_supplier: CredentialSupplier | None = None
        self.host_supplier: HostSupplier | None = None
        self.connect_timeout_ms: int | None = None
        self.read_timeout_ms: int | None = None
        self.connection_request_timeout_ms: int | None = None
        self.strip_hop_by_hop = False
        self.chunk_size = DEFAULT_CHUNK_SIZE
        self.limits = httpx.Limits()
        self.transport: httpx.AsyncBaseTransport | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProxyBuilder":
        builder = (
            cls(settings.mount_path, settings.target_base_url)
            .set_connect_timeout(settings.connect_timeout_ms)
            .set_read_timeout(settings.read_timeout_ms)
            .set_connection_request_timeout(settings.connection_request_timeout_ms)
            .set_strip_hop_by_hop(settings.strip_hop_by_hop)
            .set_chunk_size(settings.chunk_size)
            .set_limits(settings.max_connections, settings.max_keepalive_connections)
        )
        for name, value in settings.default_header_pairs:
            builder.add_default_header(name, value)

        if settings.authorization:
            builder.set_authorization_supplier(StaticValue(settings.authorization))
        elif settings.jwt_secret:
            builder.set_authorization_supplier(JWTCredentialSupplier(
                secret=settings.jwt_secret,
                issuer=settings.jwt_issuer,
                audience=settings.jwt_audience,
                subject=settings.jwt_subject,
                ttl=settings.jwt_ttl,
                algorithm=settings.jwt_algorithm,
            ))
        if settings.host:
            builder.set_host_supplier(StaticValue(settings.host))
        return builder

    def add_default_header(self, name: str, value: str) -> "ProxyBuilder":
        self.default_headers.append((name, value))
        return self

    def set_connect_timeout(self, timeout_ms: int | None) -> "ProxyBuilder":
        self.connect_timeout_ms = timeout_ms
        return self

    def set_read_timeout(self, timeout_ms: int | None) -> "ProxyBuilder":
        self.read_timeout_ms = timeout_ms
        return self

    def set_connection_request_timeout(self, timeout_ms: int | None) -> "ProxyBuilder":
        self.connection_request_timeout_ms = timeout_ms
        return self

    def set_path_transform(self, transform: PathTransform) -> "ProxyBuilder":
        self.path_transform = transform
        return self

    def set_authorization_supplier(self, supplier: CredentialSupplier | None) -> "ProxyBuilder":
        self.authorization_supplier = supplier
        return self

    def set_host_supplier(self, supplier: HostSupplier | None) -> "ProxyBuilder":
        self.host_supplier = supplier
        return self

    def set_strip_hop_by_hop(self, enabled: bool) -> "ProxyBuilder":
        self.strip_hop_by_hop = enabled
        return self

    def set_chunk_size(self, chunk_size: int) -> "ProxyBuilder":
        self.chunk_size = chunk_size
        return self

    def set_limits(self, max_connections: int | None, max_keepalive_connections: int | None) -> "ProxyBuilder":
        self.limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
        )
        return self

    def set_transport(self, transport: httpx.AsyncBaseTransport) -> "ProxyBuilder":
        """Replace the pooled network transport, e.g. with httpx.MockTransport in tests."""
        self.transport = transport
        return self

    def configuration(self) -> ProxyConfiguration:
        return ProxyConfiguration(
            mount_path=self.mount_path,
            target_base_url=self.target_base_url,
            path_transform=self.path_transform,
            authorization_supplier=self.authorization_supplier,
            host_supplier=self.host_supplier,
            default_headers=tuple(self.default_headers),
            timeout=build_timeout(
                self.connect_timeout_ms,
                self.read_timeout_ms,
                self.connection_request_timeout_ms,
            ),
            strip_hop_by_hop=self.strip_hop_by_hop,
            chunk_size=self.chunk_size,
        )

    def build(self) -> HttpProxy:
        config = self.configuration()
        # One client, and so one connection pool, per proxy; shared by all requests.
        client = httpx.AsyncClient(
            timeout=config.timeout,
            limits=self.limits,
            transport=self.transport,
            follow_redirects=False,
            # Set-Cookie belongs to the caller; an empty allow-list refuses every cookie.
            cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        )
        return HttpProxy(config, client)
