# pathproxy/credentials.py
import time
from typing import Callable, Protocol

from cachetools import TTLCache
from jose import jwt


class CredentialSupplier(Protocol):
    """Produces the ``Authorization`` value for one outbound request.

    Called once per forwarded request, after the inbound headers were copied.
    The proxy never caches the result, so a supplier may rotate credentials.
    """

    def __call__(self) -> str: ...


class HostSupplier(Protocol):
    """Produces the ``Host`` value for one outbound request, called once per request."""

    def __call__(self) -> str: ...


class StaticValue:
    def __init__(self, value: str) -> None:
        self.value = value

    def __call__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"StaticValue({self.value!r})"


class BearerToken:
    """Formats whatever ``token_source`` returns as a bearer credential."""

    def __init__(self, token_source: Callable[[], str]) -> None:
        self._token_source = token_source

    def __call__(self) -> str:
        return f"Bearer {self._token_source()}"


class JWTCredentialSupplier:
    """Mints short-lived service tokens for the upstream.

    A minted token is reused until ``refresh_margin`` seconds before it
    expires; the next call after that mints a new one.
    """

    _KEY = "token"

    def __init__(
        self,
        secret: str,
        issuer: str,
        audience: str,
        subject: str,
        ttl: int = 300,
        algorithm: str = "HS256",
        refresh_margin: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl <= refresh_margin:
            raise ValueError("ttl must be larger than refresh_margin")
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self._subject = subject
        self._ttl = ttl
        self._algorithm = algorithm
        self._clock = clock
        self._cache: TTLCache = TTLCache(maxsize=1, ttl=ttl - refresh_margin, timer=clock)

    def _mint(self) -> str:
        now = int(self._clock())
        claims = {
            "iss": self._issuer,
            "aud": self._audience,
            "sub": self._subject,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def __call__(self) -> str:
        token = self._cache.get(self._KEY)
        if token is None:
            token = self._mint()
            self._cache[self._KEY] = token
        return f"Bearer {token}"
