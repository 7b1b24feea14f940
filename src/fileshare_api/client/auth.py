"""Cognito sign-in for Python callers of the API: hosted-UI federation and native user pool accounts."""

import json
import logging
import time
from typing import Any, Dict, Optional, Union
from urllib.parse import urlencode

import requests
from botocore.exceptions import BotoCoreError, ClientError
from jose import jwt
from jose.exceptions import JWTError

from fileshare_api.aws_clients import cognito_secret_hash, get_cognito_client
from fileshare_api.client.errors import AuthenticationError
from fileshare_api.schemas import IdentityProvider
from fileshare_api.services.auth_service import provider_from_name
from fileshare_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)

OAUTH_SCOPES = "openid email profile"
HOSTED_UI_PROVIDER_NAMES = {
    IdentityProvider.GOOGLE: "Google",
    IdentityProvider.MICROSOFT: "Microsoft",
}
# refresh this many seconds before the access token actually expires
EXPIRY_MARGIN_SECONDS = 60


def _error_message(err: Exception) -> str:
    if isinstance(err, ClientError):
        return err.response.get("Error", {}).get("Message") or str(err)
    return str(err)


class CognitoAuthClient:
    """
    Holds one user's Cognito tokens in memory.

    Federated users sign in through the hosted UI: send them to `login(provider)`,
    then pass the `code` from the redirect to `complete_login(code)`. Native user
    pool accounts use `sign_up` / `confirm_sign_up` / `sign_in`.

    :param settings: Application settings with the `COGNITO_*` values.
    :param cognito_client: An optional boto3 `cognito-idp` client. If not provided, one will be created.
    :param session: An optional `requests.Session` for the hosted UI token endpoint.
    """

    def __init__(self, settings: Optional[Settings] = None, cognito_client=None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.client_id = self.settings.cognito_client_id
        self.client_secret = self.settings.cognito_client_secret
        self._cognito_client = cognito_client
        self.session = session or requests.Session()

        self.access_token: Optional[str] = None
        self.id_token: Optional[str] = None
        self.refresh_token_value: Optional[str] = None
        self.expires_at: Optional[float] = None
        self.username: Optional[str] = None

    @property
    def cognito_client(self):
        if self._cognito_client is None:
            self._cognito_client = get_cognito_client(self.settings)
        return self._cognito_client

    def _secret_hash(self, username: Optional[str]) -> Dict[str, str]:
        if not self.client_secret or not username:
            return {}
        return {"SECRET_HASH": cognito_secret_hash(username, self.client_id, self.client_secret)}

    def _hosted_ui_url(self, path: str) -> str:
        domain = self.settings.cognito_domain
        if not domain:
            raise ValueError("COGNITO_DOMAIN is not configured")
        if not domain.startswith("http"):
            domain = f"https://{domain}"
        return f"{domain.rstrip('/')}/{path.lstrip('/')}"

    def _store_tokens(self, access_token: str, id_token: Optional[str], refresh_token: Optional[str], expires_in: Optional[int]) -> None:
        self.access_token = access_token
        self.id_token = id_token or self.id_token
        self.refresh_token_value = refresh_token or self.refresh_token_value
        self.expires_at = time.time() + int(expires_in) if expires_in else None
        if self.id_token:
            try:
                claims = jwt.get_unverified_claims(self.id_token)
            except JWTError:
                return
            self.username = claims.get("cognito:username") or self.username

    def clear(self) -> None:
        self.access_token = None
        self.id_token = None
        self.refresh_token_value = None
        self.expires_at = None
        self.username = None

    ##############################
    # --- Hosted UI (OAuth2) --- #
    ##############################

    def login(self, provider: Union[IdentityProvider, str]) -> str:
        """Return the hosted UI URL that starts sign-in with Google or Microsoft."""
        try:
            provider = IdentityProvider(provider)
            if provider not in HOSTED_UI_PROVIDER_NAMES:
                raise ValueError(f"Unsupported identity provider: {provider.value}")
            query = urlencode(
                {
                    "identity_provider": HOSTED_UI_PROVIDER_NAMES[provider],
                    "response_type": "code",
                    "client_id": self.client_id,
                    "redirect_uri": self.settings.cognito_redirect_uri,
                    "scope": OAUTH_SCOPES,
                }
            )
            return f"{self._hosted_ui_url('/oauth2/authorize')}?{query}"
        except ValueError as err:
            raise AuthenticationError(str(err), "LOGIN_ERROR") from err

    def complete_login(self, code: str) -> Dict[str, Any]:
        """Exchange the authorization code from the hosted UI redirect for tokens."""
        try:
            response = self.session.post(
                self._hosted_ui_url("/oauth2/token"),
                data={
                    "grant_type": "authorization_code",
                    "client_id": self.client_id,
                    "code": code,
                    "redirect_uri": self.settings.cognito_redirect_uri,
                },
                auth=(self.client_id, self.client_secret) if self.client_secret else None,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=10,
            )
            response.raise_for_status()
            tokens = response.json()
        except (requests.RequestException, ValueError) as err:
            raise AuthenticationError(f"Login failed: {err}", "LOGIN_ERROR") from err

        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            raise AuthenticationError("Login failed: no access token returned", "LOGIN_ERROR")

        self._store_tokens(
            tokens["access_token"], tokens.get("id_token"), tokens.get("refresh_token"), tokens.get("expires_in")
        )
        return tokens

    ##############################
    # --- Session and tokens --- #
    ##############################

    def logout(self) -> None:
        """Revoke the session's tokens in Cognito and forget them locally."""
        access_token = self.access_token
        self.clear()
        if not access_token:
            return
        try:
            self.cognito_client.global_sign_out(AccessToken=access_token)
        except (ClientError, BotoCoreError) as err:
            raise AuthenticationError(_error_message(err), "LOGOUT_ERROR") from err

    def _expired(self) -> bool:
        return self.expires_at is not None and time.time() >= self.expires_at - EXPIRY_MARGIN_SECONDS

    def get_token(self) -> Optional[str]:
        """The current access token, refreshed first if it is about to expire. None when signed out."""
        if self.access_token and self._expired() and self.refresh_token_value:
            try:
                return self.refresh_token()
            except AuthenticationError as err:
                logger.info("Access token expired and could not be refreshed: %s", err.message)
                return None
        return self.access_token

    def is_authenticated(self) -> bool:
        return self.get_token() is not None

    def refresh_token(self) -> str:
        if not self.refresh_token_value:
            raise AuthenticationError("No refresh token available", "REFRESH_ERROR")
        try:
            response = self.cognito_client.initiate_auth(
                AuthFlow="REFRESH_TOKEN_AUTH",
                ClientId=self.client_id,
                AuthParameters={"REFRESH_TOKEN": self.refresh_token_value, **self._secret_hash(self.username)},
            )
        except (ClientError, BotoCoreError) as err:
            raise AuthenticationError(_error_message(err), "REFRESH_ERROR") from err

        result = response.get("AuthenticationResult") or {}
        if not result.get("AccessToken"):
            raise AuthenticationError("No token available after refresh", "REFRESH_ERROR")
        self._store_tokens(result["AccessToken"], result.get("IdToken"), result.get("RefreshToken"), result.get("ExpiresIn"))
        return self.access_token

    #####################################
    # --- Native user pool accounts --- #
    #####################################

    def sign_up(self, email: str, password: str, attributes: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        user_attributes = [{"Name": "email", "Value": email}]
        user_attributes += [{"Name": name, "Value": value} for name, value in (attributes or {}).items()]
        try:
            response = self.cognito_client.sign_up(
                ClientId=self.client_id,
                Username=email,
                Password=password,
                UserAttributes=user_attributes,
                **self._secret_hash(email),
            )
        except (ClientError, BotoCoreError) as err:
            raise AuthenticationError(_error_message(err), "SIGN_UP_ERROR") from err
        return {"user_sub": response.get("UserSub"), "user_confirmed": response.get("UserConfirmed", False)}

    def confirm_sign_up(self, email: str, code: str) -> None:
        try:
            self.cognito_client.confirm_sign_up(
                ClientId=self.client_id,
                Username=email,
                ConfirmationCode=code,
                **self._secret_hash(email),
            )
        except (ClientError, BotoCoreError) as err:
            raise AuthenticationError(_error_message(err), "CONFIRM_ERROR") from err

    def resend_confirmation_code(self, email: str) -> None:
        try:
            self.cognito_client.resend_confirmation_code(
                ClientId=self.client_id,
                Username=email,
                **self._secret_hash(email),
            )
        except (ClientError, BotoCoreError) as err:
            raise AuthenticationError(_error_message(err), "CONFIRM_ERROR") from err

    def sign_in(self, email: str, password: str) -> str:
        """Password sign-in (`USER_PASSWORD_AUTH`). Returns the access token."""
        try:
            response = self.cognito_client.initiate_auth(
                AuthFlow="USER_PASSWORD_AUTH",
                ClientId=self.client_id,
                AuthParameters={"USERNAME": email, "PASSWORD": password, **self._secret_hash(email)},
            )
        except (ClientError, BotoCoreError) as err:
            raise AuthenticationError(_error_message(err), "SIGN_IN_ERROR") from err

        if response.get("ChallengeName"):
            raise AuthenticationError(f"Additional challenge required: {response['ChallengeName']}", "SIGN_IN_ERROR")

        result = response.get("AuthenticationResult") or {}
        self.username = email
        self._store_tokens(result["AccessToken"], result.get("IdToken"), result.get("RefreshToken"), result.get("ExpiresIn"))
        return self.access_token

    def get_current_user(self) -> Optional[Dict[str, Any]]:
        """The signed-in user's id, email, provider and name; None when signed out."""
        token = self.get_token()
        if not token:
            return None
        try:
            response = self.cognito_client.get_user(AccessToken=token)
        except (ClientError, BotoCoreError) as err:
            logger.info("Could not load current user: %s", _error_message(err))
            return None

        attributes = {item["Name"]: item["Value"] for item in response.get("UserAttributes", [])}
        provider = IdentityProvider.COGNITO
        try:
            identities = json.loads(attributes.get("identities", "[]"))
        except ValueError:
            identities = []
        if identities:
            provider = provider_from_name(identities[0].get("providerName", "")) or provider

        return {
            "id": attributes.get("sub") or response.get("Username"),
            "email": attributes.get("email", ""),
            "provider": provider.value,
            "name": attributes.get("name"),
        }
