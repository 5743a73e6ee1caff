"""
Outbound call dispatcher.

One dispatch = validate, pick the backend, run the attempt under a deadline,
retry once after a timeout when the backend allows it, map the outcome.

Every dispatch settles exactly once: the attempt runs inside an anyio cancel
scope, so either the backend returns first or the deadline cancels it, and
the coroutine produces a single CallResult either way.

The ledger is written after the result is final, in a background task.
A ledger failure is logged and never changes the result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import UUID

import anyio

from callcenter.calls.mapper import map_result
from callcenter.shared.logging import get_logger
from callcenter.telephony.config import BackendKind, TelephonyConfig
from callcenter.telephony.interface import (
    BackendError,
    BackendTimeoutError,
    BackendUnreachableError,
    CallBackend,
    CallRequest,
    CallResult,
    CallStatusLabel,
    DispatchErrorKind,
)
from callcenter.telephony.phone import PhoneNumberError, normalize

logger = get_logger(__name__)

TIMEOUT_MESSAGE = "The call initiation took too long to complete"
INVALID_EXTENSION_MESSAGE = (
    "Invalid extension. Please contact administrator to set up your extension."
)


class LedgerRecorder(Protocol):
    """Ledger side of a dispatch: records one attempt, logging its own failures."""

    async def record_attempt_safely(
        self, user_id: UUID, when: datetime | None = None
    ) -> Any: ...


class CallDispatcher:
    """Owns the configured backends and runs dispatches against them."""

    def __init__(
        self,
        backends: Mapping[BackendKind, CallBackend],
        config: TelephonyConfig,
        ledger: LedgerRecorder | None = None,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            backends: Backends built at startup, keyed by kind.
            config: Telephony configuration (default backend, extension rules
                and retry policy).
            ledger: Optional ledger; attempts are recorded only when given.
            sleep: Backoff sleeper, replaceable in tests.
        """
        self._backends = dict(backends)
        self._config = config
        self._ledger = ledger
        self._sleep = sleep
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def backends(self) -> dict[BackendKind, CallBackend]:
        return dict(self._backends)

    @property
    def default_backend(self) -> BackendKind:
        return self._config.default_backend

    def get_backend(self, kind: BackendKind) -> CallBackend | None:
        return self._backends.get(kind)

    def resolve_extension(self, extension: str | None) -> str:
        """Caller extension, or the configured default when it is blank."""
        return (extension or "").strip() or self._config.default_extension

    async def dispatch(
        self,
        request: CallRequest,
        user_id: UUID | None = None,
    ) -> CallResult:
        """Place one outbound call and return its uniform result.

        Validation failures, timeouts and backend errors are all reported in
        the returned CallResult rather than raised.

        Args:
            request: Raw call request; the number is normalized here.
            user_id: Caller to charge the attempt to in the ledger.

        Returns:
            The settled CallResult, with ``attempts`` set to the number of
            backend attempts made (0 when validation rejected the request).
        """
        kind = request.backend or self._config.default_backend

        try:
            phone_number = normalize(request.raw_phone_number)
        except PhoneNumberError as e:
            return self._rejected(kind, DispatchErrorKind.INVALID_PHONE_NUMBER, str(e))

        extension = self.resolve_extension(request.extension)
        if len(extension) < self._config.min_extension_length:
            return self._rejected(
                kind,
                DispatchErrorKind.INVALID_EXTENSION,
                INVALID_EXTENSION_MESSAGE,
                phone_number=phone_number,
            )

        backend = self._backends.get(kind)
        if backend is None:
            return CallResult(
                success=False,
                status_label=CallStatusLabel.FAILED,
                message=f"Backend '{kind.value}' is not enabled",
                backend=kind,
                error_kind=DispatchErrorKind.BACKEND_UNREACHABLE,
                phone_number=phone_number,
                extension=extension,
            )

        result = await self._attempt_with_retry(backend, phone_number, extension, request)
        result = result.with_context(phone_number=phone_number, extension=extension)

        logger.info(
            "Dispatch finished",
            extra={
                "backend": kind.value,
                "user_id": str(user_id) if user_id else None,
                "success": result.success,
                "status_label": result.status_label.value,
                "error_kind": result.error_kind.value if result.error_kind else None,
                "attempts": result.attempts,
                "provider_reference": result.provider_reference,
            },
        )

        if user_id is not None and result.attempts > 0:
            self._schedule_ledger_write(user_id)

        return result

    async def _attempt_with_retry(
        self,
        backend: CallBackend,
        phone_number: str,
        extension: str,
        request: CallRequest,
    ) -> CallResult:
        max_attempts = self._config.retry_max_attempts if backend.retryable else 1
        attempt = 0

        while True:
            attempt += 1
            try:
                with anyio.fail_after(backend.timeout_seconds):
                    outcome = await backend.attempt_call(phone_number, extension, request)
            except (TimeoutError, BackendTimeoutError) as e:
                if attempt < max_attempts:
                    logger.warning(
                        "Backend timed out; retrying after backoff",
                        extra={
                            "backend": backend.kind.value,
                            "attempt": attempt,
                            "backoff_seconds": self._config.retry_backoff_seconds,
                        },
                    )
                    await self._sleep(self._config.retry_backoff_seconds)
                    continue

                logger.warning(
                    "Backend timed out",
                    extra={"backend": backend.kind.value, "attempts": attempt},
                )
                return CallResult(
                    success=False,
                    status_label=CallStatusLabel.TIMEOUT,
                    message=TIMEOUT_MESSAGE,
                    backend=backend.kind,
                    error_kind=DispatchErrorKind.BACKEND_TIMEOUT,
                    attempts=attempt,
                    diagnostics=(
                        f"Timed out after {backend.timeout_seconds:g} seconds"
                        if isinstance(e, TimeoutError)
                        else str(e)
                    ),
                )
            except BackendUnreachableError as e:
                logger.error(
                    "Backend unreachable",
                    extra={"backend": backend.kind.value, "error": e.message},
                )
                return CallResult(
                    success=False,
                    status_label=CallStatusLabel.FAILED,
                    message=e.message,
                    backend=backend.kind,
                    error_kind=DispatchErrorKind.BACKEND_UNREACHABLE,
                    attempts=attempt,
                    raw_backend_payload=e.provider_response,
                )
            except BackendError as e:
                return CallResult(
                    success=False,
                    status_label=CallStatusLabel.FAILED,
                    message=e.message,
                    backend=backend.kind,
                    error_kind=e.kind,
                    attempts=attempt,
                    raw_backend_payload=e.provider_response,
                )

            return map_result(outcome).with_context(attempts=attempt)

    def _rejected(
        self,
        kind: BackendKind,
        error_kind: DispatchErrorKind,
        message: str,
        phone_number: str | None = None,
    ) -> CallResult:
        logger.info(
            "Dispatch rejected",
            extra={"backend": kind.value, "error_kind": error_kind.value},
        )
        return CallResult(
            success=False,
            status_label=CallStatusLabel.FAILED,
            message=message,
            backend=kind,
            error_kind=error_kind,
            phone_number=phone_number,
        )

    def _schedule_ledger_write(self, user_id: UUID) -> None:
        if self._ledger is None:
            return
        when = datetime.now(timezone.utc)
        task = asyncio.create_task(self._record_attempt(user_id, when))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record_attempt(self, user_id: UUID, when: datetime) -> None:
        assert self._ledger is not None
        try:
            await self._ledger.record_attempt_safely(user_id, when)
        except Exception:
            logger.exception(
                "Unexpected ledger error; call result unaffected",
                extra={"user_id": str(user_id)},
            )

    async def wait_for_ledger(self) -> None:
        """Wait for in-flight ledger writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        """Drain pending ledger writes, then close every backend."""
        await self.wait_for_ledger()
        for backend in self._backends.values():
            await backend.aclose()
