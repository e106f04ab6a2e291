"""Shared test constants, fixtures, and factory functions."""

import time
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient

from blog_api.comment_store import MemoryCommentStore
from blog_api.config import Settings
from blog_api.handlers import AppContext
from blog_api.identity import TokenVerifier, VerifierConfig
from blog_api.main import app
from blog_api.post_store import MemoryPostStore

# -- Constants --

ISSUER = "https://auth.example.com/pool-1"
AUDIENCE = "blog-client"
JWKS_URL = f"{ISSUER}/.well-known/jwks.json"
AUTHOR_ID = "user-author"
OTHER_ID = "user-other"

SIGNING_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
FOREIGN_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)

VERIFIER_CONFIG = VerifierConfig(issuer=ISSUER, audience=AUDIENCE, jwks_url=JWKS_URL)

T0 = datetime(2026, 1, 1, tzinfo=UTC)


# -- Factories --


def make_settings(**overrides: Any) -> Settings:
    """Create a Settings instance with test defaults. Override any field."""
    defaults: dict[str, Any] = {
        "auth_issuer": ISSUER,
        "auth_audience": AUDIENCE,
    }
    return Settings(**(defaults | overrides))  # type: ignore[call-arg]


def make_token(
    sub: str = AUTHOR_ID,
    *,
    key: rsa.RSAPrivateKey = SIGNING_KEY,
    expires_in: int = 3600,
    **claim_overrides: Any,
) -> str:
    """Mint an RS256 access token shaped like the identity provider's."""
    now = int(time.time())
    claims: dict[str, Any] = {
        "sub": sub,
        "iss": ISSUER,
        "client_id": AUDIENCE,
        "token_use": "access",
        "iat": now,
        "exp": now + expires_in,
    }
    claims.update(claim_overrides)
    claims = {k: v for k, v in claims.items() if v is not None}
    return jwt.encode(claims, key, algorithm="RS256")


def auth_headers(sub: str = AUTHOR_ID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub)}"}


def make_verifier(config: VerifierConfig = VERIFIER_CONFIG) -> TokenVerifier:
    """A verifier that trusts SIGNING_KEY without fetching a JWKS."""
    return TokenVerifier(config, key_resolver=lambda _token: SIGNING_KEY.public_key())


class StepClock:
    """Deterministic clock: each call advances by a fixed step (one second by default)."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)) -> None:
        self._now = start
        self._step = step

    def __call__(self) -> datetime:
        current = self._now
        self._now += self._step
        return current


def make_context() -> AppContext:
    return AppContext(
        posts=MemoryPostStore(clock=StepClock()),
        comments=MemoryCommentStore(clock=StepClock()),
        verifier=make_verifier(),
    )


# -- Fixtures --


@pytest.fixture
def env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set required env vars for Settings."""
    monkeypatch.setenv("AUTH_ISSUER", ISSUER)
    monkeypatch.setenv("AUTH_AUDIENCE", AUDIENCE)


@pytest.fixture
def ctx() -> AppContext:
    return make_context()


@pytest.fixture
async def client(ctx: AppContext) -> AsyncIterator[AsyncClient]:
    """AsyncClient wired to the FastAPI app with in-memory stores."""
    app.state.settings = make_settings()
    app.state.ctx = ctx
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
