"""
Call ledger ORM model and its domain row.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from callcenter.shared.database import Base


class CallLedgerEntry(Base):
    """Per-agent, per-day call attempt counter.

    Exactly one row per (user_id, day); rows are incremented in place and
    never deleted by normal operation.
    """

    __tablename__ = "call_ledger"
    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_call_ledger_user_day"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    day: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    call_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attempt_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return (
            f"<CallLedgerEntry(user_id={self.user_id}, day={self.day}, "
            f"call_count={self.call_count})>"
        )


@dataclass(frozen=True)
class LedgerRow:
    """Detached view of a ledger entry, optionally enriched with the user."""

    user_id: UUID
    date: date
    count: int
    last_attempt_at: datetime
    user_name: str | None = None
    user_email: str | None = None
    user_role: str | None = None

    @classmethod
    def from_entry(cls, entry: CallLedgerEntry, user: object | None = None) -> "LedgerRow":
        return cls(
            user_id=entry.user_id,
            date=entry.day,
            count=entry.call_count,
            last_attempt_at=entry.last_attempt_at,
            user_name=getattr(user, "name", None),
            user_email=getattr(user, "email", None),
            user_role=getattr(user, "role", None),
        )
