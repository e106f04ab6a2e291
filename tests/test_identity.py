"""Tests for bearer token verification and the ownership guard."""

from unittest.mock import MagicMock, patch

import jwt
import pytest

from blog_api.errors import ApiError, ErrorKind
from blog_api.identity import (
    TokenVerifier,
    VerifierConfig,
    extract_bearer_token,
    verify_ownership,
)
from tests.conftest import (
    AUDIENCE,
    AUTHOR_ID,
    FOREIGN_KEY,
    ISSUER,
    JWKS_URL,
    OTHER_ID,
    SIGNING_KEY,
    VERIFIER_CONFIG,
    make_settings,
    make_token,
    make_verifier,
)


async def _rejected(verifier: TokenVerifier, token: str) -> ApiError:
    with pytest.raises(ApiError) as exc_info:
        await verifier.verify(token)
    return exc_info.value


# -- Header extraction --


@pytest.mark.parametrize("name", ["Authorization", "authorization", "AUTHORIZATION"])
def test_extract_bearer_token_header_is_case_insensitive(name: str) -> None:
    assert extract_bearer_token({name: "Bearer abc.def"}) == "abc.def"


@pytest.mark.parametrize(
    "headers", [{}, {"Authorization": ""}, {"Authorization": "Bearer "}, {"X-Other": "x"}]
)
def test_extract_bearer_token_missing(headers: dict[str, str]) -> None:
    assert extract_bearer_token(headers) is None


def test_extract_bearer_token_without_prefix_is_passed_through() -> None:
    assert extract_bearer_token({"authorization": "raw-token"}) == "raw-token"


# -- Verification --


async def test_verify_returns_subject() -> None:
    assert await make_verifier().verify(make_token(AUTHOR_ID)) == AUTHOR_ID


async def test_verify_accepts_aud_claim() -> None:
    token = make_token(client_id=None, aud=AUDIENCE, token_use="access")
    assert await make_verifier().verify(token) == AUTHOR_ID


async def test_verify_accepts_aud_list() -> None:
    token = make_token(client_id=None, aud=["other", AUDIENCE])
    assert await make_verifier().verify(token) == AUTHOR_ID


async def test_verify_rejects_expired_token() -> None:
    err = await _rejected(make_verifier(), make_token(expires_in=-60))
    assert err.kind is ErrorKind.UNAUTHORIZED
    assert err.message == "Invalid token"


async def test_verify_rejects_wrong_signer() -> None:
    err = await _rejected(make_verifier(), make_token(key=FOREIGN_KEY))
    assert err.message == "Invalid token"


async def test_verify_rejects_malformed_token() -> None:
    verifier = TokenVerifier(VERIFIER_CONFIG, key_resolver=lambda t: jwt.get_unverified_header(t))
    err = await _rejected(verifier, "not-a-jwt")
    assert err.message == "Invalid token"


async def test_verify_rejects_wrong_issuer() -> None:
    err = await _rejected(make_verifier(), make_token(iss="https://evil.example.com"))
    assert err.message == "Invalid token"


async def test_verify_rejects_wrong_audience() -> None:
    err = await _rejected(make_verifier(), make_token(client_id="someone-else"))
    assert err.message == "Invalid token"


async def test_verify_rejects_missing_subject() -> None:
    err = await _rejected(make_verifier(), make_token(sub=None))  # type: ignore[arg-type]
    assert err.message == "Invalid token"


async def test_verify_rejects_id_token_when_access_required() -> None:
    err = await _rejected(make_verifier(), make_token(token_use="id"))
    assert err.message == "Invalid token"


async def test_verify_skips_token_use_when_not_configured() -> None:
    config = VerifierConfig(issuer=ISSUER, audience=AUDIENCE, jwks_url=JWKS_URL, token_use=None)
    assert await make_verifier(config).verify(make_token(token_use="id")) == AUTHOR_ID


async def test_verify_hides_key_resolution_failures() -> None:
    def fail(_token: str) -> None:
        raise jwt.PyJWKClientConnectionError("jwks unreachable")

    err = await _rejected(TokenVerifier(VERIFIER_CONFIG, key_resolver=fail), make_token())
    assert err.message == "Invalid token"
    assert "jwks" not in err.message


def test_default_resolver_uses_jwks_client() -> None:
    with patch("blog_api.identity.jwt.PyJWKClient") as mock_client_cls:
        verifier = TokenVerifier(VERIFIER_CONFIG)
        mock_client_cls.assert_called_once_with(JWKS_URL, cache_keys=True)
        signing_key = MagicMock(key="public-key")
        mock_client_cls.return_value.get_signing_key_from_jwt.return_value = signing_key
        assert verifier._resolve_key("tok") == "public-key"


async def test_verify_through_default_jwks_resolver() -> None:
    with patch("blog_api.identity.jwt.PyJWKClient") as mock_client_cls:
        mock_client_cls.return_value.get_signing_key_from_jwt.return_value = MagicMock(
            key=SIGNING_KEY.public_key()
        )
        verifier = TokenVerifier(VERIFIER_CONFIG)
        token = make_token()
        assert await verifier.verify(token) == AUTHOR_ID
    mock_client_cls.return_value.get_signing_key_from_jwt.assert_called_once_with(token)


def test_config_from_settings_defaults_jwks_url() -> None:
    config = VerifierConfig.from_settings(make_settings(auth_issuer=ISSUER + "/"))
    assert config.jwks_url == JWKS_URL
    assert config.algorithms == ("RS256",)
    assert config.token_use == "access"


# -- authenticate / authenticate_optional --


async def test_authenticate_requires_token() -> None:
    with pytest.raises(ApiError) as exc_info:
        await make_verifier().authenticate({})
    assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
    assert exc_info.value.message == "No token provided"


async def test_authenticate_returns_identity() -> None:
    headers = {"authorization": f"Bearer {make_token(OTHER_ID)}"}
    assert await make_verifier().authenticate(headers) == OTHER_ID


async def test_authenticate_optional_anonymous_is_none() -> None:
    assert await make_verifier().authenticate_optional({}) is None


async def test_authenticate_optional_invalid_is_none() -> None:
    headers = {"Authorization": f"Bearer {make_token(key=FOREIGN_KEY)}"}
    assert await make_verifier().authenticate_optional(headers) is None


async def test_authenticate_optional_valid_returns_identity() -> None:
    headers = {"Authorization": f"Bearer {make_token()}"}
    assert await make_verifier().authenticate_optional(headers) == AUTHOR_ID


# -- Ownership --


def test_verify_ownership_allows_owner() -> None:
    verify_ownership(AUTHOR_ID, AUTHOR_ID)


@pytest.mark.parametrize("requester", [OTHER_ID, AUTHOR_ID.upper(), "", AUTHOR_ID + " "])
def test_verify_ownership_rejects_everyone_else(requester: str) -> None:
    with pytest.raises(ApiError) as exc_info:
        verify_ownership(AUTHOR_ID, requester)
    assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
    assert exc_info.value.message == "You do not have permission to modify this resource"
