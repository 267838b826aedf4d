# pathproxy/errors.py


class ProxyError(Exception):
    """Base class for failures raised while forwarding a request."""


class ConfigurationError(ProxyError):
    """The proxy is wired wrong, e.g. the inbound path does not contain the mount path."""


class UnsupportedMethodError(ProxyError):
    def __init__(self, method: str) -> None:
        super().__init__(f"Proxy doesn't support method: {method}")
        self.method = method


class UpstreamIOError(ProxyError):
    """Connecting to, sending to or reading from the upstream failed."""


class SinkWriteError(ProxyError):
    """The error response itself could not be written to the caller."""
