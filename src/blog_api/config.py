"""Application configuration via environment variables."""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

_JWKS_PATH = "/.well-known/jwks.json"


class Settings(BaseSettings):
    """Service configuration loaded from environment variables."""

    model_config = {"env_prefix": ""}

    # Identity provider (token verification only)
    auth_issuer: str = Field(description="Trusted token issuer URL (the `iss` claim)")
    auth_audience: str = Field(
        description="Expected audience: the `aud` claim or the `client_id` of access tokens"
    )
    auth_jwks_url: str | None = Field(
        default=None, description="JWKS endpoint. Defaults to <issuer>/.well-known/jwks.json"
    )
    auth_token_use: str | None = Field(
        default="access", description="Required `token_use` claim value, or None to skip"
    )
    auth_algorithms: str = Field(
        default="RS256", description="Comma-separated list of accepted signing algorithms"
    )

    # Persistence
    state_backend: Literal["memory", "redis"] = Field(
        default="memory", description="Store backend: 'memory' or 'redis'"
    )
    redis_url: str | None = Field(
        default=None, description="Redis URL (required when STATE_BACKEND=redis)"
    )
    posts_key_prefix: str = Field(default="posts", description="Key prefix for post records")
    comments_key_prefix: str = Field(
        default="comments", description="Key prefix for comment records"
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Server bind host")
    port: int = Field(default=8000, description="Server bind port")
    log_level: str = Field(default="info", description="Log level")

    @property
    def jwks_url(self) -> str:
        return self.auth_jwks_url or self.auth_issuer.rstrip("/") + _JWKS_PATH

    @property
    def algorithms(self) -> list[str]:
        return [a.strip() for a in self.auth_algorithms.split(",") if a.strip()]

    @field_validator("auth_issuer", "auth_audience")
    @classmethod
    def _require_non_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @model_validator(mode="after")
    def _check_backend(self) -> "Settings":
        if self.state_backend == "redis" and not self.redis_url:
            raise ValueError("REDIS_URL is required when STATE_BACKEND=redis")
        if not self.algorithms:
            raise ValueError("AUTH_ALGORITHMS must name at least one algorithm")
        if self.posts_key_prefix == self.comments_key_prefix:
            raise ValueError("POSTS_KEY_PREFIX and COMMENTS_KEY_PREFIX must differ")
        return self
