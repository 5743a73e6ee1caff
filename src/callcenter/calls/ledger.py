"""
Call attempt ledger.

Per-agent, per-day call counters. The ledger owns the ``call_ledger`` rows
exclusively: every write goes through ``record_attempt`` which is a single
atomic upsert, so concurrent dispatches from one agent never lose a count.

Day buckets are computed in the configured zone (``ledger_timezone``) or,
when none is configured, at server-local midnight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callcenter.auth.repository import UserRepository
from callcenter.calls.exceptions import LedgerWriteError
from callcenter.calls.models import LedgerRow
from callcenter.calls.repository import CallLedgerRepository
from callcenter.shared.exceptions import ValidationError
from callcenter.shared.logging import get_logger
from callcenter.telephony.interface import DispatchErrorKind

logger = get_logger(__name__)

MAX_STATS_DAYS = 365
SUMMARY_ROLES = ["agent", "admin"]


@dataclass(frozen=True)
class UserCallSummary:
    """One user's totals across a trailing window, with the per-day rows."""

    user_id: UUID
    name: str
    email: str
    role: str
    total_calls: int
    days_active: int
    daily: list[LedgerRow] = field(default_factory=list)


def summarize_stats(rows: list[LedgerRow], days: int) -> dict[str, Any]:
    """Totals for one user's trailing window."""
    total = sum(row.count for row in rows)
    return {
        "total_calls": total,
        "average_per_day": round(total / days, 1) if days else 0.0,
        "days": days,
    }


def summarize_today(rows: list[LedgerRow]) -> dict[str, Any]:
    """Totals across all users for one day."""
    total = sum(row.count for row in rows)
    active = len(rows)
    return {
        "total_calls_today": total,
        "active_users": active,
        "average_calls_per_user": round(total / active, 1) if active else 0.0,
    }


class CallLedger:
    """Records call attempts and answers stats queries."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tz_name: str = "",
    ) -> None:
        """Initialize the ledger.

        Args:
            session_factory: Factory for short-lived sessions; each operation
                opens and closes its own.
            tz_name: IANA zone for the day boundary; empty means server-local.
        """
        self._session_factory = session_factory
        self._tz = ZoneInfo(tz_name) if tz_name else None

    def day_for(self, when: datetime) -> date:
        """Calendar day bucket ``when`` belongs to.

        Naive datetimes are taken as server-local time.
        """
        if self._tz is None:
            return when.astimezone().date()
        return when.astimezone(self._tz).date()

    def today(self) -> date:
        return self.day_for(datetime.now(timezone.utc))

    def window_start(self, days: int) -> date:
        """First day of a trailing window of ``days`` days ending today."""
        if days < 1 or days > MAX_STATS_DAYS:
            raise ValidationError(
                f"days must be between 1 and {MAX_STATS_DAYS}",
                details={"days": days},
            )
        return self.today() - timedelta(days=days - 1)

    async def record_attempt(
        self,
        user_id: UUID,
        when: datetime | None = None,
    ) -> LedgerRow:
        """Add one attempt to the user's row for the day of ``when``.

        Raises:
            LedgerWriteError: The upsert could not be committed.
        """
        when = when or datetime.now(timezone.utc)
        day = self.day_for(when)

        try:
            async with self._session_factory() as session:
                entry = await CallLedgerRepository(session).increment(user_id, day, when)
                row = LedgerRow.from_entry(entry)
                await session.commit()
        except SQLAlchemyError as e:
            raise LedgerWriteError(
                details={"user_id": str(user_id), "day": day.isoformat(), "error": str(e)},
            ) from e

        logger.info(
            "Call attempt recorded",
            extra={"user_id": str(user_id), "day": day.isoformat(), "call_count": row.count},
        )
        return row

    async def record_attempt_safely(
        self,
        user_id: UUID,
        when: datetime | None = None,
    ) -> LedgerRow | None:
        """``record_attempt`` that logs a ledger failure instead of raising it.

        Used by the dispatcher, whose call result must not depend on the ledger.
        """
        try:
            return await self.record_attempt(user_id, when)
        except LedgerWriteError as e:
            logger.error(
                "Ledger write failed; call result unaffected",
                extra={
                    "user_id": str(user_id),
                    "error_kind": DispatchErrorKind.LEDGER_WRITE_FAILURE.value,
                    "error": e.message,
                    **e.details,
                },
            )
            return None

    async def get_stats(self, user_id: UUID, since_days: int) -> list[LedgerRow]:
        """Rows for the trailing ``since_days`` days including today, newest first.

        Days without attempts are absent, not zero-filled.
        """
        since = self.window_start(since_days)
        async with self._session_factory() as session:
            entries = await CallLedgerRepository(session).list_for_user_since(user_id, since)
            return [LedgerRow.from_entry(entry) for entry in entries]

    async def get_today_all_users(self) -> list[LedgerRow]:
        """Every user's row for today, busiest first, with user details."""
        async with self._session_factory() as session:
            pairs = await CallLedgerRepository(session).list_for_day(self.today())
            return [LedgerRow.from_entry(entry, user) for entry, user in pairs]

    async def get_all_users_stats(self, days: int) -> list[UserCallSummary]:
        """Per-user totals over the trailing window, busiest first.

        Every agent and admin is listed, including those with no calls.
        """
        since = self.window_start(days)
        async with self._session_factory() as session:
            users = await UserRepository(session).list_by_roles(SUMMARY_ROLES)
            entries = await CallLedgerRepository(session).list_since(since)

        by_user: dict[UUID, list[LedgerRow]] = {}
        for entry in entries:
            by_user.setdefault(entry.user_id, []).append(LedgerRow.from_entry(entry))

        summaries = []
        for user in users:
            daily = by_user.get(user.id, [])
            summaries.append(
                UserCallSummary(
                    user_id=user.id,
                    name=user.name,
                    email=user.email,
                    role=str(user.role),
                    total_calls=sum(row.count for row in daily),
                    days_active=len(daily),
                    daily=daily,
                )
            )
        summaries.sort(key=lambda s: s.total_calls, reverse=True)
        return summaries
