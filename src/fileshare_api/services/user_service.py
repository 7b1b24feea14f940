import logging
from typing import Optional

from fileshare_api.errors import AppError, AuthenticationError, DatabaseError, ValidationError
from fileshare_api.repositories.user_repository import UserRepository
from fileshare_api.sanitization import sanitize_email
from fileshare_api.schemas import AuthenticatedUser, NewUser, User
from fileshare_api.services.auth_service import AuthService, identity_from_claims

logger = logging.getLogger(__name__)


class UserService:
    """Keeps a `users` row for every identity that presents a valid token."""

    def __init__(self, user_repository: UserRepository, auth_service: Optional[AuthService] = None):
        self.user_repository = user_repository
        self.auth_service = auth_service

    def resolve_email(self, user: AuthenticatedUser) -> Optional[str]:
        """Email from the token, or from Cognito `GetUser` for access tokens that omit it."""
        if user.email:
            return user.email
        if self.auth_service is None or not user.token or user.claims.get("token_use") != "access":
            return None

        try:
            info = self.auth_service.get_user_info(user.token)
        except AuthenticationError as err:
            logger.warning("Could not look up email for user %s: %s", user.user_id, err.details)
            return None
        return info["attributes"].get("email")

    def sync_user(self, user: AuthenticatedUser) -> Optional[User]:
        """
        Upsert the user keyed on `(provider, provider_id)`, with the token `sub` as id.

        Returns None, without touching the table, when no email can be found for the user.
        """
        email = self.resolve_email(user)
        if email:
            try:
                email = sanitize_email(email)
            except ValidationError:
                logger.warning("Ignoring malformed email for user %s", user.user_id)
                email = None
        if not email:
            logger.warning("Not syncing user %s: no email in token or user pool", user.user_id)
            return None

        provider, provider_id = identity_from_claims({"sub": user.user_id, **user.claims})
        try:
            return self.user_repository.upsert(
                NewUser(id=user.user_id, email=email, provider=provider, provider_id=provider_id)
            )
        except AppError:
            raise
        except Exception as err:
            logger.error("Failed to sync user %s: %s", user.user_id, err)
            raise DatabaseError("Failed to sync user", details={"error": str(err)}) from err

    def ensure_user(self, user: AuthenticatedUser) -> None:
        """Create the user's row if missing, so files can reference it."""
        if self.user_repository.exists(user.user_id):
            return
        if self.sync_user(user) is None:
            raise AuthenticationError("Token does not include an email address")
