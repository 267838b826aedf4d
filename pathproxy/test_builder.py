# pathproxy/test_builder.py
from types import SimpleNamespace

import httpx
import pytest

from pathproxy.builder import ProxyBuilder
from pathproxy.config import ProxyConfiguration, Settings, build_timeout
from pathproxy.credentials import JWTCredentialSupplier, StaticValue
from pathproxy.errors import ConfigurationError
from pathproxy.proxy import HttpProxy
from pathproxy.router import identity_transform


def _fake_settings(**overrides):
    base = dict(
        mount_path="/api/",
        target_base_url="https://upstream.internal",
        connect_timeout_ms=1000,
        read_timeout_ms=2000,
        connection_request_timeout_ms=500,
        strip_hop_by_hop=False,
        chunk_size=4096,
        max_connections=50,
        max_keepalive_connections=10,
        default_header_pairs=[("X-Env", "test")],
        authorization=None,
        host=None,
        jwt_secret=None,
        jwt_algorithm="HS256",
        jwt_issuer="pathproxy",
        jwt_audience="upstream",
        jwt_subject="pathproxy",
        jwt_ttl=300,
    )
    base.update(overrides)
    return SimpleNamespace(**base)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class TestSettings:
    def test_default_headers_parsed_once(self):
        s = Settings(default_headers="X-Forwarded-By: pathproxy, X-Env: prod,  , bogus")
        assert s.default_header_pairs == [("X-Forwarded-By", "pathproxy"), ("X-Env", "prod")]

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("PROXY_MOUNT_PATH", "/svc/")
        monkeypatch.setenv("PROXY_CONNECT_TIMEOUT_MS", "250")
        s = Settings()
        assert s.mount_path == "/svc/"
        assert s.timeout.connect == 0.25

    def test_timeout_from_milliseconds(self):
        s = Settings(connect_timeout_ms=1500, read_timeout_ms=None, connection_request_timeout_ms=100)
        assert s.timeout.connect == 1.5
        assert s.timeout.read is None
        assert s.timeout.pool == 0.1


class TestBuildTimeout:
    def test_all_unset_means_no_limits(self):
        t = build_timeout(None, None, None)
        assert (t.connect, t.read, t.write, t.pool) == (None, None, None, None)


# ---------------------------------------------------------------------------
# ProxyConfiguration
# ---------------------------------------------------------------------------

class TestProxyConfiguration:
    def test_defaults(self):
        cfg = ProxyConfiguration("/api/", "https://upstream.internal")
        assert cfg.path_transform is identity_transform
        assert cfg.authorization_supplier is None
        assert cfg.strip_hop_by_hop is False
        assert cfg.chunk_size == 4096

    @pytest.mark.parametrize("mount,base", [("", "https://u"), ("/api/", "")])
    def test_empty_mount_or_base_rejected(self, mount, base):
        with pytest.raises(ConfigurationError):
            ProxyConfiguration(mount, base)

    def test_immutable(self):
        cfg = ProxyConfiguration("/api/", "https://upstream.internal")
        with pytest.raises(AttributeError):
            cfg.mount_path = "/other/"


# ---------------------------------------------------------------------------
# ProxyBuilder
# ---------------------------------------------------------------------------

class TestProxyBuilder:
    async def test_build_wires_configuration(self):
        auth = StaticValue("Bearer A")
        proxy = (
            ProxyBuilder("/api/", "https://upstream.internal")
            .set_connect_timeout(1000)
            .set_read_timeout(2000)
            .set_connection_request_timeout(300)
            .add_default_header("X-A", "1")
            .set_authorization_supplier(auth)
            .build()
        )
        try:
            assert isinstance(proxy, HttpProxy)
            assert proxy.config.default_headers == (("X-A", "1"),)
            assert proxy.config.authorization_supplier is auth
            assert proxy.config.timeout.connect == 1.0
            assert proxy.config.timeout.read == 2.0
            assert proxy.config.timeout.pool == 0.3
            assert isinstance(proxy.client, httpx.AsyncClient)
        finally:
            await proxy.aclose()

    async def test_build_twice_gives_separate_pools(self):
        builder = ProxyBuilder("/api/", "https://upstream.internal")
        first, second = builder.build(), builder.build()
        try:
            assert first.client is not second.client
        finally:
            await first.aclose()
            await second.aclose()

    def test_empty_mount_path_fails_on_build(self):
        with pytest.raises(ConfigurationError):
            ProxyBuilder("", "https://upstream.internal").build()

    def test_from_settings(self):
        cfg = ProxyBuilder.from_settings(_fake_settings()).configuration()
        assert cfg.mount_path == "/api/"
        assert cfg.default_headers == (("X-Env", "test"),)
        assert cfg.timeout.connect == 1.0
        assert cfg.authorization_supplier is None
        assert cfg.host_supplier is None

    def test_from_settings_static_overrides(self):
        builder = ProxyBuilder.from_settings(
            _fake_settings(authorization="Bearer static", host="upstream.example", jwt_secret="x")
        )
        cfg = builder.configuration()
        assert cfg.authorization_supplier() == "Bearer static"
        assert cfg.host_supplier() == "upstream.example"

    def test_from_settings_jwt(self):
        cfg = ProxyBuilder.from_settings(_fake_settings(jwt_secret="s3cret")).configuration()
        assert isinstance(cfg.authorization_supplier, JWTCredentialSupplier)
        assert cfg.authorization_supplier().startswith("Bearer ")

    def test_from_settings_limits(self):
        builder = ProxyBuilder.from_settings(_fake_settings())
        assert builder.limits.max_connections == 50
        assert builder.limits.max_keepalive_connections == 10
