"""
Repository for call ledger database operations.
"""

from datetime import date, datetime
from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from callcenter.auth.models import User
from callcenter.calls.exceptions import LedgerWriteError
from callcenter.calls.models import CallLedgerEntry


def _dialect_insert(dialect_name: str) -> Any:
    """Return the dialect-specific insert() that supports ON CONFLICT."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert

        return insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert

        return insert
    raise LedgerWriteError(
        f"Atomic ledger upsert not supported on '{dialect_name}'",
        details={"dialect": dialect_name},
    )


class CallLedgerRepository:
    """Repository for call ledger database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def increment(self, user_id: UUID, day: date, when: datetime) -> CallLedgerEntry:
        """Atomically add one attempt to the (user_id, day) row, creating it if absent.

        A single INSERT ... ON CONFLICT DO UPDATE statement, so concurrent
        increments for the same user are serialized by the database and
        none is lost.

        Args:
            user_id: Agent who placed the call.
            day: Ledger day bucket.
            when: Attempt timestamp, stored as last_attempt_at.

        Returns:
            The row after the increment.
        """
        insert = _dialect_insert(self._session.get_bind().dialect.name)
        stmt = insert(CallLedgerEntry).values(
            id=uuid4(),
            user_id=user_id,
            day=day,
            call_count=1,
            last_attempt_at=when,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CallLedgerEntry.user_id, CallLedgerEntry.day],
            set_={
                "call_count": CallLedgerEntry.call_count + 1,
                "last_attempt_at": stmt.excluded.last_attempt_at,
                "updated_at": func.now(),
            },
        ).returning(CallLedgerEntry)

        result = await self._session.execute(
            stmt,
            execution_options={"populate_existing": True},
        )
        return result.scalar_one()

    async def list_for_user_since(
        self,
        user_id: UUID,
        since_day: date,
    ) -> Sequence[CallLedgerEntry]:
        """Rows for one user from ``since_day`` on, most recent first."""
        stmt = (
            select(CallLedgerEntry)
            .where(
                CallLedgerEntry.user_id == user_id,
                CallLedgerEntry.day >= since_day,
            )
            .order_by(CallLedgerEntry.day.desc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_for_day(self, day: date) -> list[tuple[CallLedgerEntry, User | None]]:
        """All users' rows for one day, joined with their user record."""
        stmt = (
            select(CallLedgerEntry, User)
            .outerjoin(User, User.id == CallLedgerEntry.user_id)
            .where(CallLedgerEntry.day == day)
            .order_by(CallLedgerEntry.call_count.desc(), CallLedgerEntry.last_attempt_at.desc())
        )
        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def list_since(self, since_day: date) -> Sequence[CallLedgerEntry]:
        """Every row from ``since_day`` on, most recent first."""
        stmt = (
            select(CallLedgerEntry)
            .where(CallLedgerEntry.day >= since_day)
            .order_by(CallLedgerEntry.day.desc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()
