"""
Mock calling backend for development and tests.

Scripted steps are consumed one per attempt; with nothing scripted every
attempt succeeds with a sequential ``MOCK_CALL_`` reference.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any

import anyio

from callcenter.shared.logging import get_logger
from callcenter.telephony.config import BackendKind
from callcenter.telephony.interface import (
    BackendOutcome,
    CallBackend,
    CallRequest,
    HttpOutcome,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class MockStep:
    delay_seconds: float = 0.0
    outcome: BackendOutcome | None = None
    error: Exception | None = None


@dataclass(frozen=True)
class MockAttempt:
    phone_number: str
    extension: str
    request: CallRequest


class MockBackend(CallBackend):
    """In-memory backend with scriptable outcomes."""

    kind = BackendKind.MOCK

    def __init__(self, retryable: bool = True, timeout_seconds: float = 5.0) -> None:
        """Initialize the mock backend.

        Args:
            retryable: Whether the dispatcher may retry after a timeout.
            timeout_seconds: Deadline the dispatcher applies per attempt.
        """
        self.retryable = retryable
        self._timeout_seconds = timeout_seconds
        self._steps: deque[MockStep] = deque()
        self._attempts: list[MockAttempt] = []
        self._next_call_id = 1

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    @property
    def attempts(self) -> list[MockAttempt]:
        return self._attempts.copy()

    def reset(self) -> None:
        self._steps.clear()
        self._attempts.clear()
        self._next_call_id = 1

    def queue_outcome(self, outcome: BackendOutcome, delay_seconds: float = 0.0) -> None:
        self._steps.append(MockStep(delay_seconds=delay_seconds, outcome=outcome))

    def queue_error(self, error: Exception, delay_seconds: float = 0.0) -> None:
        self._steps.append(MockStep(delay_seconds=delay_seconds, error=error))

    def queue_delay(self, delay_seconds: float) -> None:
        """Next attempt sleeps, then succeeds (useful to trip the dispatcher deadline)."""
        self._steps.append(MockStep(delay_seconds=delay_seconds))

    async def attempt_call(
        self,
        phone_number: str,
        extension: str,
        request: CallRequest,
    ) -> BackendOutcome:
        self._attempts.append(MockAttempt(phone_number, extension, request))
        step = self._steps.popleft() if self._steps else MockStep()

        logger.info(
            "Mock: attempting call",
            extra={"phone_number": phone_number, "attempt": len(self._attempts)},
        )

        if step.delay_seconds:
            await anyio.sleep(step.delay_seconds)
        if step.error is not None:
            raise step.error
        if step.outcome is not None:
            return step.outcome

        call_id = f"MOCK_CALL_{self._next_call_id:06d}"
        self._next_call_id += 1
        return HttpOutcome(
            backend=self.kind,
            status_code=200,
            body={"success": True, "callId": call_id, "mock": True},
        )

    async def check_status(self) -> dict[str, Any]:
        return {
            "backend": self.kind.value,
            "service_name": "Mock",
            "status": "connected",
            "attempts": len(self._attempts),
        }
