# pathproxy/router.py
from typing import TYPE_CHECKING, Protocol

from starlette.requests import Request

from pathproxy.errors import ConfigurationError

if TYPE_CHECKING:
    from pathproxy.config import ProxyConfiguration


class PathTransform(Protocol):
    def __call__(self, path: str, request: Request) -> str: ...


def identity_transform(path: str, request: Request) -> str:
    return path


def prefix_transform(segment: str) -> PathTransform:
    """Return a transform that puts ``segment`` in front of the forwarded path.

    prefix_transform("tenant-a/") turns "users/42" into "tenant-a/users/42".
    """
    def transform(path: str, request: Request) -> str:
        return segment + path

    return transform


def request_path(request: Request) -> str:
    """The undecoded request path, as it arrived on the wire."""
    raw = request.scope.get("raw_path")
    if raw:
        # Some servers leave the query string on raw_path.
        return raw.split(b"?", 1)[0].decode("latin-1")
    return request.scope["path"]


def compute_target_path(
    request_path: str,
    mount_path: str,
    transform: PathTransform,
    request: Request,
) -> str:
    """Return the part of ``request_path`` after ``mount_path``, passed through ``transform``."""
    start = request_path.find(mount_path)
    if start == -1:
        raise ConfigurationError(
            f"Request path {request_path!r} does not contain mount path {mount_path!r}"
        )
    return transform(request_path[start + len(mount_path):], request)


def join_url(base: str, path: str) -> str:
    """Append ``path`` to ``base`` without touching either side.

    A separator is inserted only when neither side supplies one, so a mount
    path ending in "/" still yields "https://host/users/42" for base
    "https://host". Existing slashes are never removed.
    """
    if path and not base.endswith("/") and not path.startswith(("/", "?")):
        return f"{base}/{path}"
    return base + path


def upstream_url(config: "ProxyConfiguration", request: Request) -> str:
    """Resolve the full upstream URL for the given request.

    The query string is appended verbatim.
    """
    path = compute_target_path(
        request_path(request), config.mount_path, config.path_transform, request
    )
    url = join_url(config.target_base_url, path)
    query = request.scope.get("query_string", b"")
    if query:
        url += "?" + query.decode("latin-1")
    return url
