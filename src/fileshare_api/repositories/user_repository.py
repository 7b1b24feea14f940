from datetime import datetime, timezone
from typing import Optional

from fileshare_api.errors import DatabaseError
from fileshare_api.repositories.base import BaseRepository
from fileshare_api.schemas import IdentityProvider, NewUser, User

USER_COLUMNS = "id, email, provider, provider_id, created_at, last_login_at"


class UserRepository(BaseRepository[User]):
    """Users signed in through a federated identity provider."""

    table = "users"
    model = User
    resource_name = "User"
    select_columns = USER_COLUMNS
    filter_columns = {
        "email": "email",
        "provider": "provider",
        "provider_id": "provider_id",
    }
    update_columns = {
        "email": "email",
        "provider": "provider",
        "provider_id": "provider_id",
        "last_login_at": "last_login_at",
    }
    order_by = "created_at DESC"

    def _prepare_changes(self, changes):
        return {
            field: value.value if isinstance(value, IdentityProvider) else value
            for field, value in changes.items()
        }

    def create(self, data: NewUser) -> User:
        if data.id:
            sql = f"""
                INSERT INTO users (id, email, provider, provider_id, last_login_at)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {USER_COLUMNS}
            """
            params = (data.id, data.email, data.provider.value, data.provider_id, data.last_login_at)
        else:
            sql = f"""
                INSERT INTO users (email, provider, provider_id, last_login_at)
                VALUES (%s, %s, %s, %s)
                RETURNING {USER_COLUMNS}
            """
            params = (data.email, data.provider.value, data.provider_id, data.last_login_at)

        row = self.db.query_one(sql, params)
        if row is None:
            raise DatabaseError("Failed to create user")
        return self._to_model(row)

    def find_by_email(self, email: str) -> Optional[User]:
        sql = f"SELECT {USER_COLUMNS} FROM users WHERE email = %s"
        return self._to_model(self.db.query_one(sql, (email,)))

    def find_by_provider(self, provider: IdentityProvider, provider_id: str) -> Optional[User]:
        sql = f"SELECT {USER_COLUMNS} FROM users WHERE provider = %s AND provider_id = %s"
        return self._to_model(self.db.query_one(sql, (IdentityProvider(provider).value, provider_id)))

    def upsert(self, user: NewUser) -> User:
        """
        Insert the user, or refresh `email` and `last_login_at` when
        `(provider, provider_id)` is already registered.

        `last_login_at` defaults to now. The existing row keeps its `id`.
        """
        last_login_at = user.last_login_at or datetime.now(timezone.utc).replace(tzinfo=None)
        columns = "email, provider, provider_id, last_login_at"
        params = [user.email, user.provider.value, user.provider_id, last_login_at]
        if user.id:
            columns = "id, " + columns
            params.insert(0, user.id)

        placeholders = ", ".join(["%s"] * len(params))
        sql = f"""
            INSERT INTO users ({columns})
            VALUES ({placeholders})
            ON CONFLICT (provider, provider_id)
            DO UPDATE SET
                email = EXCLUDED.email,
                last_login_at = EXCLUDED.last_login_at
            RETURNING {USER_COLUMNS}
        """
        row = self.db.query_one(sql, params)
        if row is None:
            raise DatabaseError("Failed to upsert user")
        return self._to_model(row)

    def update_last_login(self, user_id: str) -> None:
        self.db.query("UPDATE users SET last_login_at = CURRENT_TIMESTAMP WHERE id = %s", (user_id,))
