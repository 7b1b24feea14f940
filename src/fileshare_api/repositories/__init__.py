from fileshare_api.repositories.base import BaseRepository, build_assignments, build_where
from fileshare_api.repositories.factory import (
    RepositoryFactory,
    get_repository_factory,
    reset_repository_factory,
)
from fileshare_api.repositories.file_repository import FileRepository
from fileshare_api.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "FileRepository",
    "RepositoryFactory",
    "UserRepository",
    "build_assignments",
    "build_where",
    "get_repository_factory",
    "reset_repository_factory",
]
