"""RSA signing key, JWKS and token factory standing in for a Cognito user pool."""

import time
from unittest.mock import MagicMock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

from fileshare_api.services.auth_service import AuthService, JwksCache
from tests.consts import (
    TEST_CLIENT_ID,
    TEST_ISSUER,
    TEST_KID,
    TEST_USER_EMAIL,
    TEST_USER_ID,
)


@pytest.fixture(scope="session")
def signing_key_pem() -> str:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def public_jwk(signing_key_pem) -> dict:
    key = jwk.construct(signing_key_pem, algorithm="RS256").public_key().to_dict()
    key.update(kid=TEST_KID, use="sig", alg="RS256")
    return key


@pytest.fixture
def make_token(signing_key_pem):
    """Build a signed Cognito-style token; keyword arguments override or (as None) remove claims."""

    def _make_token(token_use: str = "access", kid: str = TEST_KID, **overrides) -> str:
        now = int(time.time())
        claims = {
            "sub": TEST_USER_ID,
            "iss": TEST_ISSUER,
            "token_use": token_use,
            "iat": now,
            "exp": now + 3600,
            "cognito:username" if token_use == "id" else "username": TEST_USER_ID,
        }
        if token_use == "id":
            claims.update(aud=TEST_CLIENT_ID, email=TEST_USER_EMAIL)
        else:
            claims.update(client_id=TEST_CLIENT_ID, scope="openid email")

        for name, value in overrides.items():
            name = name.replace("__", ":")
            if value is None:
                claims.pop(name, None)
            else:
                claims[name] = value

        return jwt.encode(claims, signing_key_pem, algorithm="RS256", headers={"kid": kid})

    return _make_token


@pytest.fixture
def jwks_session(public_jwk) -> MagicMock:
    session = MagicMock()
    session.get.return_value.json.return_value = {"keys": [public_jwk]}
    return session


@pytest.fixture
def cognito_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def auth_service(settings, jwks_session, cognito_client) -> AuthService:
    jwks_cache = JwksCache(f"{TEST_ISSUER}/.well-known/jwks.json", session=jwks_session)
    return AuthService(settings=settings, cognito_client=cognito_client, jwks_cache=jwks_cache)
