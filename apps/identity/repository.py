"""Identity module repository implementations."""

from typing import Optional
from sqlalchemy import func
from framework.repository.base import BaseRepository
from .models import AppUser


class UserRepository(BaseRepository[AppUser]):
    """User repository."""

    def __init__(self, session):
        super().__init__(session, AppUser)

    async def get_by_username(self, username: str) -> Optional[AppUser]:
        """Find user by username (case-insensitive)."""
        return await self.get_first_or_default(func.lower(AppUser.username) == username.lower())

    async def username_exists(self, username: str) -> bool:
        """Also counts soft-deleted users: the unique index still holds their name."""
        return await self.any(func.lower(AppUser.username) == username.lower(), include_deleted=True)

    async def email_exists(self, email: str) -> bool:
        return await self.any(func.lower(AppUser.email) == email.lower(), include_deleted=True)
