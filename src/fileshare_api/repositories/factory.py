from typing import Optional

from fileshare_api.repositories.file_repository import FileRepository
from fileshare_api.repositories.user_repository import UserRepository


class RepositoryFactory:
    def __init__(self, db):
        self.db = db

    def create_user_repository(self) -> UserRepository:
        return UserRepository(self.db)

    def create_file_repository(self) -> FileRepository:
        return FileRepository(self.db)


_factory: Optional[RepositoryFactory] = None


def get_repository_factory(db) -> RepositoryFactory:
    """Process-wide factory; the `db` of the first call wins until `reset_repository_factory()`."""
    global _factory
    if _factory is None:
        _factory = RepositoryFactory(db)
    return _factory


def reset_repository_factory() -> None:
    global _factory
    _factory = None
