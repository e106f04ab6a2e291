"""Bearer token verification and the owner-only authorization guard."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import jwt
import structlog

from blog_api.config import Settings
from blog_api.errors import (
    INVALID_TOKEN,
    NO_PERMISSION,
    NO_TOKEN_PROVIDED,
    ApiError,
    unauthorized,
)

log = structlog.get_logger()

_BEARER_PREFIX = "Bearer "
_REQUIRED_CLAIMS = ["exp", "iss", "sub"]

KeyResolver = Callable[[str], Any]


@dataclass(frozen=True)
class VerifierConfig:
    """Immutable trust parameters for token verification."""

    issuer: str
    audience: str
    jwks_url: str
    algorithms: tuple[str, ...] = ("RS256",)
    token_use: str | None = "access"

    @classmethod
    def from_settings(cls, settings: Settings) -> VerifierConfig:
        return cls(
            issuer=settings.auth_issuer,
            audience=settings.auth_audience,
            jwks_url=settings.jwks_url,
            algorithms=tuple(settings.algorithms),
            token_use=settings.auth_token_use,
        )


def jwks_key_resolver(jwks_url: str) -> KeyResolver:
    """Resolve a token's signing key from the issuer's JWKS, caching fetched keys."""
    client = jwt.PyJWKClient(jwks_url, cache_keys=True)

    def resolve(token: str) -> Any:
        return client.get_signing_key_from_jwt(token).key

    return resolve


def extract_bearer_token(headers: Mapping[str, str]) -> str | None:
    """Return the bearer token from an Authorization header (any case), if present."""
    for name, value in headers.items():
        if name.lower() == "authorization":
            token = value.removeprefix(_BEARER_PREFIX).strip()
            return token or None
    return None


class TokenVerifier:
    """Verifies signed bearer tokens against a configured issuer and audience.

    Built once per process; safe to share between concurrent requests. Signing
    keys are resolved through the issuer's JWKS unless a resolver is injected.
    """

    def __init__(self, config: VerifierConfig, key_resolver: KeyResolver | None = None) -> None:
        self._config = config
        self._resolve_key = key_resolver or jwks_key_resolver(config.jwks_url)

    @property
    def config(self) -> VerifierConfig:
        return self._config

    async def verify(self, token: str) -> str:
        """Return the token's subject claim, or raise an "Invalid token" error."""
        try:
            # PyJWKClient fetches keys synchronously
            key = await asyncio.to_thread(self._resolve_key, token)
            claims = jwt.decode(
                token,
                key,
                algorithms=list(self._config.algorithms),
                issuer=self._config.issuer,
                options={"require": _REQUIRED_CLAIMS, "verify_aud": False},
            )
        except jwt.PyJWTError as exc:
            await log.ainfo("token_rejected", reason=type(exc).__name__)
            raise unauthorized(INVALID_TOKEN) from exc

        if not self._audience_matches(claims):
            await log.ainfo("token_rejected", reason="audience")
            raise unauthorized(INVALID_TOKEN)
        if self._config.token_use and claims.get("token_use") != self._config.token_use:
            await log.ainfo("token_rejected", reason="token_use")
            raise unauthorized(INVALID_TOKEN)
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise unauthorized(INVALID_TOKEN)
        return subject

    def _audience_matches(self, claims: dict[str, Any]) -> bool:
        # Access tokens carry the app client in `client_id`; ID tokens use `aud`
        aud = claims.get("aud")
        audiences = aud if isinstance(aud, list) else [aud]
        if self._config.audience in audiences:
            return True
        return claims.get("client_id") == self._config.audience

    async def authenticate(self, headers: Mapping[str, str]) -> str:
        """Return the caller's identity; fail if the token is missing or invalid."""
        token = extract_bearer_token(headers)
        if token is None:
            raise unauthorized(NO_TOKEN_PROVIDED)
        return await self.verify(token)

    async def authenticate_optional(self, headers: Mapping[str, str]) -> str | None:
        """Like :meth:`authenticate`, but anonymous or invalid callers yield ``None``."""
        token = extract_bearer_token(headers)
        if token is None:
            return None
        try:
            return await self.verify(token)
        except ApiError:
            return None


def verify_ownership(resource_author_id: str, requester_id: str) -> None:
    """Raise a permission error unless the requester is the resource's author."""
    if resource_author_id != requester_id:
        raise unauthorized(NO_PERMISSION)
