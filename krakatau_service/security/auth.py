"""
Request authentication for the engine routes.

Two independent checks, each enabled only when its configuration pair is
complete:

- HTTP Basic:   AUTH_USER + AUTH_PASSWORD
- Token header: AUTH_TOKEN_HEADER + AUTH_TOKEN_VALUE (the named request
                header must equal the configured value)

When both are configured both must pass. Failure raises
:class:`~krakatau_service.errors.AuthenticationError` (401); the response carries
``WWW-Authenticate: Basic realm="Krakatau Server"`` when Basic is configured.

The check is a FastAPI dependency that only looks at headers, so it runs before
the request body is read.

Usage
-----
    from fastapi import APIRouter, Depends
    from krakatau_service.security.auth import RequireCredentials

    router = APIRouter(dependencies=[Depends(RequireCredentials.from_config(cfg))])
"""

import base64
import binascii
import hmac
from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Request

from krakatau_service.errors import AuthenticationError

REALM = "Krakatau Server"


def _equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def parse_basic_auth(header: Optional[str]) -> Optional[Tuple[str, str]]:
    """Return ``(username, password)`` from an ``Authorization: Basic`` header."""
    if not header:
        return None
    parts = header.split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "basic":
        return None
    try:
        decoded = base64.b64decode(parts[1].strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


@dataclass(frozen=True)
class RequireCredentials:
    """
    Callable FastAPI dependency implementing the Basic / token-header checks.
    With no pair configured it lets every request through.
    """

    username: Optional[str] = None
    password: Optional[str] = None
    token_header: Optional[str] = None
    token_value: Optional[str] = None
    realm: str = REALM

    @classmethod
    def from_config(cls, cfg) -> "RequireCredentials":
        return cls(
            username=cfg.auth_user,
            password=cfg.auth_password,
            token_header=cfg.auth_token_header,
            token_value=cfg.auth_token_value,
        )

    @property
    def basic_enabled(self) -> bool:
        return bool(self.username and self.password)

    @property
    def token_enabled(self) -> bool:
        return bool(self.token_header and self.token_value)

    def check(self, headers) -> bool:
        if self.basic_enabled:
            creds = parse_basic_auth(headers.get("authorization"))
            if creds is None:
                return False
            user_ok = _equal(creds[0], self.username or "")
            pass_ok = _equal(creds[1], self.password or "")
            if not (user_ok and pass_ok):
                return False

        if self.token_enabled:
            supplied = headers.get((self.token_header or "").lower())
            if supplied is None or not _equal(supplied, self.token_value or ""):
                return False

        return True

    async def __call__(self, request: Request) -> None:
        if not self.check(request.headers):
            raise AuthenticationError(realm=self.realm if self.basic_enabled else None)


__all__ = ["RequireCredentials", "parse_basic_auth", "REALM"]
