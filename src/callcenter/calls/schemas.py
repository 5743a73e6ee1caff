"""
Pydantic schemas for the calls API.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from callcenter.calls.ledger import UserCallSummary
from callcenter.calls.models import LedgerRow
from callcenter.telephony.config import BackendKind
from callcenter.telephony.interface import CallRequest, CallResult


class DispatchCallBody(BaseModel):
    """Request body for POST /calls/dispatch."""

    phone_number: str = Field(..., description="Destination number as typed by the agent")
    backend: BackendKind | None = Field(default=None, description="Backend override")
    context: str | None = Field(default=None, description="PBX dialplan context")
    ring_time_seconds: int | None = Field(default=None, ge=1, le=300)
    caller_id: str | None = Field(default=None, max_length=100)
    display_name: str | None = Field(default=None, max_length=100)
    extra_metadata: dict[str, Any] = Field(default_factory=dict)

    def to_request(self, extension: str | None) -> CallRequest:
        return CallRequest(
            raw_phone_number=self.phone_number,
            extension=extension,
            backend=self.backend,
            caller_id=self.caller_id,
            context=self.context,
            ring_time_seconds=self.ring_time_seconds,
            display_name=self.display_name,
            extra_metadata=dict(self.extra_metadata),
        )


class CallResultResponse(BaseModel):
    """Uniform dispatch result returned by every backend."""

    success: bool
    status: str = Field(description="initiated | failed | timeout")
    message: str
    call_id: str | None = Field(default=None, description="Provider reference")
    backend: str | None = None
    error_kind: str | None = None
    phone_number: str | None = None
    extension: str | None = None
    attempts: int = 0
    diagnostics: str | None = None
    raw_backend_payload: Any = None

    @classmethod
    def from_result(cls, result: CallResult) -> "CallResultResponse":
        return cls(
            success=result.success,
            status=result.status_label.value,
            message=result.message,
            call_id=result.provider_reference,
            backend=result.backend.value if result.backend else None,
            error_kind=result.error_kind.value if result.error_kind else None,
            phone_number=result.phone_number,
            extension=result.extension,
            attempts=result.attempts,
            diagnostics=result.diagnostics,
            raw_backend_payload=result.raw_backend_payload,
        )


class LedgerRowResponse(BaseModel):
    """One user's call count for one day."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    date: date
    count: int
    last_attempt_at: datetime
    user_name: str | None = None
    user_email: str | None = None
    user_role: str | None = None

    @classmethod
    def from_row(cls, row: LedgerRow) -> "LedgerRowResponse":
        return cls.model_validate(row)


class StatsSummary(BaseModel):
    total_calls: int
    average_per_day: float
    days: int


class CallStatsResponse(BaseModel):
    """Caller's rows for the trailing window, most recent first."""

    stats: list[LedgerRowResponse]
    summary: StatsSummary


class TodaySummary(BaseModel):
    total_calls_today: int
    active_users: int
    average_calls_per_user: float


class TodayStatsResponse(BaseModel):
    """All users' rows for today."""

    date: date
    stats: list[LedgerRowResponse]
    summary: TodaySummary


class UserStatsResponse(BaseModel):
    user_id: UUID
    name: str
    email: str
    role: str
    total_calls: int
    days_active: int
    daily: list[LedgerRowResponse]

    @classmethod
    def from_summary(cls, summary: UserCallSummary) -> "UserStatsResponse":
        return cls(
            user_id=summary.user_id,
            name=summary.name,
            email=summary.email,
            role=summary.role,
            total_calls=summary.total_calls,
            days_active=summary.days_active,
            daily=[LedgerRowResponse.from_row(row) for row in summary.daily],
        )


class AllUsersStatsResponse(BaseModel):
    days: int
    total_calls: int
    users: list[UserStatsResponse]


class TwilioCallStatus(BaseModel):
    """Subset of a Twilio Call resource."""

    call_sid: str
    status: str | None = None
    duration: str | None = None
    direction: str | None = None
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    start_time: str | None = None
    end_time: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class TwilioCallSummary(TwilioCallStatus):
    """Completed Twilio call with its billed price."""

    price: str | None = None
    price_unit: str | None = None


class TwilioRecentCallsResponse(BaseModel):
    calls: list[TwilioCallSummary]
    count: int


class Click2CallTestResponse(BaseModel):
    """Result of a test call against the PBX API."""

    success: bool
    message: str
    status_code: int
    test_data: dict[str, Any]
    response: Any = None


class AmiConnectionTestResponse(BaseModel):
    """Exit status and output of an AMI script test run."""

    success: bool
    message: str
    exit_code: int
    output: str
    error: str
    test_data: dict[str, Any]


class AmiUserProfile(BaseModel):
    id: UUID
    name: str
    email: str
    role: str
    extension: str


class AmiChannelInfo(BaseModel):
    extension: str
    channel: str
    caller_id: str


class AmiUserInfoResponse(BaseModel):
    """Caller's identity and the Asterisk channel a call would ring first."""

    user: AmiUserProfile
    ami_info: AmiChannelInfo
