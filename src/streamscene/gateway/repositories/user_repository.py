"""User repository for identity lookups."""

from typing import Optional
from uuid import UUID

from .base import BaseRepository
from ..database import User


class UserRepository(BaseRepository[User]):
    """Repository for User operations."""

    async def get_by_session_reference(self, reference: str) -> Optional[User]:
        """Resolve the identity reference stored in a session.

        Returns None for references that are not valid user ids.
        """
        try:
            user_id = UUID(reference)
        except ValueError:
            return None
        return await self.get(user_id)
