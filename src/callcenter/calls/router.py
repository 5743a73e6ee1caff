"""
Calls API router.

Provides:
- POST /calls/dispatch
- POST /calls/track
- GET /calls/stats
- GET /calls/stats/today (admin)
- GET /calls/stats/all (admin)
- GET /calls/backends/{backend}/status
- POST /calls/click2call/test-call
- POST /calls/ami/test-connection
- GET /calls/ami/user-info
- GET /calls/twilio/recent
- GET /calls/twilio/{call_sid}
- POST /calls/twilio/{call_sid}/end
"""

from typing import Annotated, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from callcenter.auth.middleware import CurrentUser
from callcenter.auth.rbac import require_admin, require_agent
from callcenter.calls.dispatcher import CallDispatcher
from callcenter.calls.exceptions import BackendNotEnabledError, LedgerWriteError
from callcenter.calls.ledger import (
    MAX_STATS_DAYS,
    CallLedger,
    summarize_stats,
    summarize_today,
)
from callcenter.calls.mapper import map_result
from callcenter.calls.schemas import (
    AllUsersStatsResponse,
    AmiChannelInfo,
    AmiConnectionTestResponse,
    AmiUserInfoResponse,
    AmiUserProfile,
    CallResultResponse,
    CallStatsResponse,
    Click2CallTestResponse,
    DispatchCallBody,
    LedgerRowResponse,
    StatsSummary,
    TodayStatsResponse,
    TodaySummary,
    TwilioCallStatus,
    TwilioCallSummary,
    TwilioRecentCallsResponse,
    UserStatsResponse,
)
from callcenter.config import Settings, get_settings
from callcenter.shared.exceptions import NotFoundError
from callcenter.shared.logging import get_logger
from callcenter.telephony.adapters import AmiScriptBackend, Click2CallBackend, TwilioBackend
from callcenter.telephony.adapters.ami import AMI_CALLER_ID
from callcenter.telephony.config import BackendKind
from callcenter.telephony.interface import (
    BackendError,
    BackendTimeoutError,
    CallBackend,
    CallResult,
    DispatchErrorKind,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/calls", tags=["calls"])

BackendT = TypeVar("BackendT", bound=CallBackend)

MAX_RECENT_CALLS = 100

_ERROR_STATUS: dict[DispatchErrorKind, int] = {
    DispatchErrorKind.INVALID_PHONE_NUMBER: status.HTTP_400_BAD_REQUEST,
    DispatchErrorKind.INVALID_EXTENSION: status.HTTP_400_BAD_REQUEST,
    DispatchErrorKind.BACKEND_TIMEOUT: status.HTTP_408_REQUEST_TIMEOUT,
    DispatchErrorKind.BACKEND_UNREACHABLE: status.HTTP_502_BAD_GATEWAY,
    DispatchErrorKind.BACKEND_REPORTED_FAILURE: status.HTTP_502_BAD_GATEWAY,
}


def get_dispatcher(request: Request) -> CallDispatcher:
    """Dispatcher built in the application lifespan."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "SERVICE_UNAVAILABLE", "message": "Call dispatcher not configured"},
        )
    return dispatcher


def get_ledger(request: Request) -> CallLedger:
    """Ledger built in the application lifespan."""
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "SERVICE_UNAVAILABLE", "message": "Call ledger not configured"},
        )
    return ledger


def http_status_for(result: CallResult) -> int:
    if result.success or result.error_kind is None:
        return status.HTTP_200_OK
    return _ERROR_STATUS.get(result.error_kind, status.HTTP_502_BAD_GATEWAY)


def _require_backend(
    dispatcher: CallDispatcher,
    kind: BackendKind,
    backend_type: type[BackendT],
) -> BackendT:
    """Enabled backend of ``kind``, or 404 when it was not built at startup."""
    backend = dispatcher.get_backend(kind)
    if not isinstance(backend, backend_type):
        e = BackendNotEnabledError(kind.value)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": e.code, "message": e.message},
        )
    return backend


def _backend_http_error(e: BackendError) -> HTTPException:
    status_code = (
        status.HTTP_408_REQUEST_TIMEOUT
        if isinstance(e, BackendTimeoutError)
        else status.HTTP_502_BAD_GATEWAY
    )
    return HTTPException(
        status_code=status_code,
        detail={"code": e.kind.value, "message": e.message},
    )


def _stats_days(days: int | None, settings: Settings) -> int:
    return days if days is not None else settings.stats_default_days


@router.post(
    "/dispatch",
    response_model=CallResultResponse,
    summary="Place an outbound call",
    responses={
        400: {"description": "Invalid phone number or extension"},
        408: {"description": "Backend timed out"},
        502: {"description": "Backend unreachable or reported failure"},
    },
)
async def dispatch_call(
    body: DispatchCallBody,
    response: Response,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    dispatcher: Annotated[CallDispatcher, Depends(get_dispatcher)],
) -> CallResultResponse:
    """Dispatch one call from the caller's extension.

    The body is always a CallResult; the HTTP status reflects its error kind.
    """
    result = await dispatcher.dispatch(
        body.to_request(current_user.extension),
        user_id=current_user.id,
    )
    response.status_code = http_status_for(result)
    return CallResultResponse.from_result(result)


@router.post(
    "/track",
    response_model=LedgerRowResponse,
    summary="Record a call attempt for the caller",
)
async def track_call(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    ledger: Annotated[CallLedger, Depends(get_ledger)],
) -> LedgerRowResponse:
    try:
        row = await ledger.record_attempt(current_user.id)
    except LedgerWriteError as e:
        logger.error(
            "Call tracking failed",
            extra={"user_id": str(current_user.id), "error": e.message},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": e.code, "message": e.message},
        )
    return LedgerRowResponse.from_row(row)


@router.get(
    "/stats",
    response_model=CallStatsResponse,
    summary="Caller's call counts for the trailing N days",
)
async def get_call_stats(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    ledger: Annotated[CallLedger, Depends(get_ledger)],
    settings: Annotated[Settings, Depends(get_settings)],
    days: Annotated[int | None, Query(ge=1, le=MAX_STATS_DAYS)] = None,
) -> CallStatsResponse:
    window = _stats_days(days, settings)
    rows = await ledger.get_stats(current_user.id, window)
    return CallStatsResponse(
        stats=[LedgerRowResponse.from_row(row) for row in rows],
        summary=StatsSummary(**summarize_stats(rows, window)),
    )


@router.get(
    "/stats/today",
    response_model=TodayStatsResponse,
    summary="All users' call counts for today",
)
async def get_today_stats(
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    ledger: Annotated[CallLedger, Depends(get_ledger)],
) -> TodayStatsResponse:
    rows = await ledger.get_today_all_users()
    return TodayStatsResponse(
        date=ledger.today(),
        stats=[LedgerRowResponse.from_row(row) for row in rows],
        summary=TodaySummary(**summarize_today(rows)),
    )


@router.get(
    "/stats/all",
    response_model=AllUsersStatsResponse,
    summary="Per-user call totals for the trailing N days",
)
async def get_all_users_stats(
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    ledger: Annotated[CallLedger, Depends(get_ledger)],
    settings: Annotated[Settings, Depends(get_settings)],
    days: Annotated[int | None, Query(ge=1, le=MAX_STATS_DAYS)] = None,
) -> AllUsersStatsResponse:
    window = _stats_days(days, settings)
    summaries = await ledger.get_all_users_stats(window)
    return AllUsersStatsResponse(
        days=window,
        total_calls=sum(s.total_calls for s in summaries),
        users=[UserStatsResponse.from_summary(s) for s in summaries],
    )


@router.get(
    "/backends/{backend}/status",
    summary="Backend reachability and configuration",
)
async def get_backend_status(
    backend: BackendKind,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    dispatcher: Annotated[CallDispatcher, Depends(get_dispatcher)],
) -> dict:
    impl = _require_backend(dispatcher, backend, CallBackend)
    return {
        **await impl.check_status(),
        "default": backend == dispatcher.default_backend,
    }


@router.post(
    "/click2call/test-call",
    response_model=Click2CallTestResponse,
    summary="Send a test call through the PBX API",
)
async def click2call_test_call(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    dispatcher: Annotated[CallDispatcher, Depends(get_dispatcher)],
) -> Click2CallTestResponse:
    backend = _require_backend(dispatcher, BackendKind.CLICK2CALL, Click2CallBackend)
    extension = dispatcher.resolve_extension(current_user.extension)
    try:
        payload, outcome = await backend.test_call(extension)
    except BackendError as e:
        raise _backend_http_error(e)

    result = map_result(outcome)
    logger.info(
        "Click2Call test call finished",
        extra={"user_id": str(current_user.id), "success": result.success},
    )
    return Click2CallTestResponse(
        success=result.success,
        message="Test call successful" if result.success else result.message,
        status_code=outcome.status_code,
        test_data=payload,
        response=outcome.body,
    )


@router.post(
    "/ami/test-connection",
    response_model=AmiConnectionTestResponse,
    summary="Run the AMI script against a test number",
    responses={408: {"description": "Script did not finish in time"}},
)
async def ami_test_connection(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    dispatcher: Annotated[CallDispatcher, Depends(get_dispatcher)],
) -> AmiConnectionTestResponse:
    backend = _require_backend(dispatcher, BackendKind.AMI, AmiScriptBackend)
    try:
        data = await backend.test_connection(dispatcher.resolve_extension(current_user.extension))
    except BackendError as e:
        raise _backend_http_error(e)
    return AmiConnectionTestResponse(**data)


@router.get(
    "/ami/user-info",
    response_model=AmiUserInfoResponse,
    summary="Caller's extension and AMI channel",
)
async def ami_user_info(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    dispatcher: Annotated[CallDispatcher, Depends(get_dispatcher)],
) -> AmiUserInfoResponse:
    backend = _require_backend(dispatcher, BackendKind.AMI, AmiScriptBackend)
    extension = dispatcher.resolve_extension(current_user.extension)
    return AmiUserInfoResponse(
        user=AmiUserProfile(
            id=current_user.id,
            name=current_user.name,
            email=current_user.email,
            role=current_user.role,
            extension=extension,
        ),
        ami_info=AmiChannelInfo(
            extension=extension,
            channel=backend.channel_for(extension),
            caller_id=AMI_CALLER_ID,
        ),
    )


# Declared before /twilio/{call_sid} so "recent" is not taken for a SID.
@router.get(
    "/twilio/recent",
    response_model=TwilioRecentCallsResponse,
    response_model_by_alias=True,
    summary="Most recent completed Twilio calls",
)
async def get_recent_twilio_calls(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    dispatcher: Annotated[CallDispatcher, Depends(get_dispatcher)],
    limit: Annotated[int, Query(ge=1, le=MAX_RECENT_CALLS)] = 10,
) -> TwilioRecentCallsResponse:
    backend = _require_backend(dispatcher, BackendKind.TWILIO, TwilioBackend)
    try:
        calls = await backend.list_recent_calls(limit)
    except BackendError as e:
        raise _backend_http_error(e)
    return TwilioRecentCallsResponse(
        calls=[TwilioCallSummary.model_validate(call) for call in calls],
        count=len(calls),
    )


@router.get(
    "/twilio/{call_sid}",
    response_model=TwilioCallStatus,
    response_model_by_alias=True,
    summary="Live status of a Twilio call",
)
async def get_twilio_call(
    call_sid: str,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    dispatcher: Annotated[CallDispatcher, Depends(get_dispatcher)],
) -> TwilioCallStatus:
    backend = _require_backend(dispatcher, BackendKind.TWILIO, TwilioBackend)
    try:
        data = await backend.fetch_call(call_sid)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": e.code, "message": e.message},
        )
    except BackendError as e:
        raise _backend_http_error(e)
    return TwilioCallStatus.model_validate(data)


@router.post(
    "/twilio/{call_sid}/end",
    response_model=TwilioCallStatus,
    response_model_by_alias=True,
    summary="Hang up a Twilio call",
)
async def end_twilio_call(
    call_sid: str,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    dispatcher: Annotated[CallDispatcher, Depends(get_dispatcher)],
) -> TwilioCallStatus:
    backend = _require_backend(dispatcher, BackendKind.TWILIO, TwilioBackend)
    try:
        data = await backend.end_call(call_sid)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": e.code, "message": e.message},
        )
    except BackendError as e:
        raise _backend_http_error(e)

    logger.info(
        "Twilio call ended",
        extra={"call_sid": call_sid, "user_id": str(current_user.id)},
    )
    return TwilioCallStatus.model_validate(data)
