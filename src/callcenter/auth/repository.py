"""
Repository for user lookups.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from callcenter.auth.models import User


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        """Get user by ID."""
        result = await self._session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def list_by_roles(self, roles: list[str]) -> list[User]:
        """List users holding any of the given roles, ordered by name."""
        result = await self._session.execute(
            select(User).where(User.role.in_(roles)).order_by(User.name)
        )
        return list(result.scalars().all())
