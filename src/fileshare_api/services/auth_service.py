"""Verification of Cognito-issued JWTs and the Cognito calls made on a user's behalf."""

import logging
import re
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from botocore.exceptions import BotoCoreError, ClientError
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError

from fileshare_api.aws_clients import cognito_secret_hash, get_cognito_client
from fileshare_api.errors import AuthenticationError, InternalServerError
from fileshare_api.schemas import IdentityProvider, TokenValidationResult
from fileshare_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)

JWKS_CACHE_TTL_SECONDS = 600
JWKS_REQUEST_TIMEOUT_SECONDS = 5
VALID_TOKEN_USES = ("access", "id")

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


def strip_bearer(token: str) -> str:
    return _BEARER_PREFIX.sub("", token.strip())


class JwksCache:
    """Signing keys of a user pool, keyed by `kid` and refreshed every ten minutes."""

    def __init__(
        self,
        jwks_url: str,
        session: Optional[requests.Session] = None,
        ttl: int = JWKS_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.jwks_url = jwks_url
        self.session = session or requests.Session()
        self.ttl = ttl
        self.clock = clock
        self._keys: Dict[str, Dict[str, Any]] = {}
        self._fetched_at: Optional[float] = None
        self._lock = threading.Lock()

    def _expired(self) -> bool:
        return self._fetched_at is None or self.clock() - self._fetched_at > self.ttl

    def _refresh(self) -> None:
        try:
            response = self.session.get(self.jwks_url, timeout=JWKS_REQUEST_TIMEOUT_SECONDS)
            response.raise_for_status()
            keys = response.json()["keys"]
        except (requests.RequestException, KeyError, ValueError) as err:
            logger.error("Failed to fetch JWKS from %s: %s", self.jwks_url, err)
            raise AuthenticationError("Failed to get signing key", details=str(err)) from err

        self._keys = {key["kid"]: key for key in keys if "kid" in key}
        self._fetched_at = self.clock()

    def get_signing_key(self, kid: str) -> Dict[str, Any]:
        with self._lock:
            if self._expired() or kid not in self._keys:
                self._refresh()
            key = self._keys.get(kid)
        if key is None:
            raise AuthenticationError("Signing key not found")
        return key


class AuthService:
    """
    Validates Cognito access and ID tokens against the user pool's JWKS.

    :param settings: Application settings; `COGNITO_USER_POOL_ID` is required.
    :param cognito_client: An optional boto3 `cognito-idp` client. If not provided, one will be created.
    :param jwks_cache: An optional pre-built `JwksCache`.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cognito_client=None,
        jwks_cache: Optional[JwksCache] = None,
    ):
        self.settings = settings or get_settings()
        if not self.settings.cognito_user_pool_id:
            raise InternalServerError("COGNITO_USER_POOL_ID is required")

        self.issuer = self.settings.cognito_issuer
        self.client_id = self.settings.cognito_client_id
        self._cognito_client = cognito_client
        self.jwks = jwks_cache or JwksCache(f"{self.issuer}/.well-known/jwks.json")

    @property
    def cognito_client(self):
        if self._cognito_client is None:
            self._cognito_client = get_cognito_client(self.settings)
        return self._cognito_client

    def validate_token(self, token: Optional[str]) -> TokenValidationResult:
        """Never raises; failures come back as `is_valid=False` with an `error` message."""
        if not token or not token.strip():
            return TokenValidationResult(is_valid=False, error="Token is required")

        try:
            claims = self.verify_and_decode(strip_bearer(token))
        except AuthenticationError as err:
            logger.info("Token rejected: %s (%s)", err.message, err.details)
            return TokenValidationResult(is_valid=False, error=err.message)

        return TokenValidationResult(
            is_valid=True,
            user_id=claims.get("sub"),
            email=claims.get("email"),
            claims=claims,
        )

    def verify_and_decode(self, token: str) -> Dict[str, Any]:
        """
        Verify the RS256 signature, issuer and token use, returning the claims.

        :raises AuthenticationError: for any token that does not check out.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as err:
            raise AuthenticationError("Invalid token format", details=str(err)) from err

        kid = header.get("kid")
        if not kid:
            raise AuthenticationError("Invalid token format")

        signing_key = self.jwks.get_signing_key(kid)

        try:
            claims = jwt.decode(
                token,
                signing_key,
                algorithms=["RS256"],
                issuer=self.issuer,
                options={"verify_aud": False, "verify_at_hash": False},
            )
        except ExpiredSignatureError as err:
            raise AuthenticationError("Token has expired", details=str(err)) from err
        except (JWTClaimsError, JWTError) as err:
            raise AuthenticationError("Token verification failed", details=str(err)) from err

        if claims.get("token_use") not in VALID_TOKEN_USES:
            raise AuthenticationError("Invalid token use")

        if self.client_id:
            # ID tokens carry the app client in `aud`, access tokens in `client_id`
            token_client = claims.get("aud") if claims.get("token_use") == "id" else claims.get("client_id")
            if token_client != self.client_id:
                raise AuthenticationError("Token was not issued for this client")

        return claims

    def get_user_info(self, access_token: str) -> Dict[str, Any]:
        """Fetch the user behind an access token, with attributes flattened to a dict."""
        try:
            response = self.cognito_client.get_user(AccessToken=strip_bearer(access_token))
        except (ClientError, BotoCoreError) as err:
            raise AuthenticationError("Failed to get user info", details=str(err)) from err

        return {
            "username": response.get("Username"),
            "attributes": {
                attribute["Name"]: attribute["Value"]
                for attribute in response.get("UserAttributes", [])
                if attribute.get("Name") and attribute.get("Value")
            },
        }

    def refresh_token(self, refresh_token: str, username: Optional[str] = None) -> Dict[str, Any]:
        """
        Exchange a refresh token for new access and ID tokens.

        :param refresh_token: The Cognito refresh token.
        :param username: Cognito username, needed for `SECRET_HASH` when the app client has a secret.
        :return: `access_token`, `id_token` and `expires_in`.
        """
        if not refresh_token:
            raise AuthenticationError("Refresh token is required")
        if not self.client_id:
            raise AuthenticationError("Token refresh requires COGNITO_CLIENT_ID")

        auth_parameters = {"REFRESH_TOKEN": refresh_token}
        if self.settings.cognito_client_secret and username:
            auth_parameters["SECRET_HASH"] = cognito_secret_hash(
                username, self.client_id, self.settings.cognito_client_secret
            )

        try:
            response = self.cognito_client.initiate_auth(
                AuthFlow="REFRESH_TOKEN_AUTH",
                ClientId=self.client_id,
                AuthParameters=auth_parameters,
            )
        except (ClientError, BotoCoreError) as err:
            raise AuthenticationError("Failed to refresh token", details=str(err)) from err

        result = response.get("AuthenticationResult") or {}
        if "AccessToken" not in result:
            raise AuthenticationError("Failed to refresh token", details="No tokens returned")
        return {
            "access_token": result["AccessToken"],
            "id_token": result.get("IdToken"),
            "expires_in": result.get("ExpiresIn"),
        }


def identity_from_claims(claims: Dict[str, Any]) -> Tuple[IdentityProvider, str]:
    """
    Work out which identity provider a token's user signed in with.

    Federated users carry an `identities` claim (ID tokens) or a username
    prefixed with the provider name, e.g. `Google_1234` (access tokens).
    Everyone else is a native Cognito user identified by `sub`.
    """
    identities = claims.get("identities")
    if isinstance(identities, list) and identities:
        provider = provider_from_name(identities[0].get("providerName", ""))
        if provider is not None:
            return provider, str(identities[0].get("userId") or claims["sub"])

    username = claims.get("cognito:username") or claims.get("username") or ""
    if "_" in username:
        name, _, provider_user_id = username.partition("_")
        provider = provider_from_name(name)
        if provider is not None and provider_user_id:
            return provider, provider_user_id

    return IdentityProvider.COGNITO, claims["sub"]


def provider_from_name(name: str) -> Optional[IdentityProvider]:
    name = name.lower()
    if name.startswith("google"):
        return IdentityProvider.GOOGLE
    if name.startswith(("microsoft", "azure")):
        return IdentityProvider.MICROSOFT
    return None
