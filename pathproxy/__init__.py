# pathproxy/__init__.py
from pathproxy.builder import ProxyBuilder
from pathproxy.config import ProxyConfiguration, Settings
from pathproxy.credentials import BearerToken, JWTCredentialSupplier, StaticValue
from pathproxy.errors import (
    ConfigurationError,
    ProxyError,
    SinkWriteError,
    UnsupportedMethodError,
    UpstreamIOError,
)
from pathproxy.proxy import HttpProxy
from pathproxy.router import compute_target_path, identity_transform, prefix_transform
from pathproxy.sink import ASGIResponseSink, ResponseSink

__all__ = [
    "ASGIResponseSink",
    "BearerToken",
    "ConfigurationError",
    "HttpProxy",
    "JWTCredentialSupplier",
    "ProxyBuilder",
    "ProxyConfiguration",
    "ProxyError",
    "ResponseSink",
    "Settings",
    "SinkWriteError",
    "StaticValue",
    "UnsupportedMethodError",
    "UpstreamIOError",
    "compute_target_path",
    "identity_transform",
    "prefix_transform",
]
