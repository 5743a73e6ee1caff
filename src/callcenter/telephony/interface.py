"""
Outbound calling backend interface and the value objects that flow through a dispatch.

CallRequest -> CallBackend.attempt_call -> BackendOutcome -> CallResult
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Union

from callcenter.telephony.config import BackendKind


class CallStatusLabel(str, Enum):
    """Uniform status of a finished dispatch."""

    INITIATED = "initiated"
    FAILED = "failed"
    TIMEOUT = "timeout"


class DispatchErrorKind(str, Enum):
    """Error taxonomy for dispatch outcomes."""

    INVALID_PHONE_NUMBER = "InvalidPhoneNumber"
    INVALID_EXTENSION = "InvalidExtension"
    BACKEND_UNREACHABLE = "BackendUnreachable"
    BACKEND_TIMEOUT = "BackendTimeout"
    BACKEND_REPORTED_FAILURE = "BackendReportedFailure"
    LEDGER_WRITE_FAILURE = "LedgerWriteFailure"


@dataclass(frozen=True)
class CallRequest:
    """One outbound call request, consumed by a single dispatch."""

    raw_phone_number: str
    extension: str | None = None
    backend: BackendKind | None = None
    caller_id: str | None = None
    context: str | None = None
    ring_time_seconds: int | None = None
    display_name: str | None = None
    extra_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HttpOutcome:
    """PBX HTTP API reply: status code plus JSON (or text) body."""

    backend: BackendKind
    status_code: int
    body: Any = None


@dataclass(frozen=True)
class ProcessOutcome:
    """Finished subprocess: only the exit code decides success."""

    backend: BackendKind
    exit_code: int
    stdout: str = ""
    stderr: str = ""


@dataclass(frozen=True)
class TwilioOutcome:
    """Twilio REST reply; errors may be carried inside the JSON body."""

    backend: BackendKind
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


BackendOutcome = Union[HttpOutcome, ProcessOutcome, TwilioOutcome]


@dataclass(frozen=True)
class CallResult:
    """Uniform result of a dispatch, whatever backend handled it."""

    success: bool
    status_label: CallStatusLabel
    message: str
    provider_reference: str | None = None
    backend: BackendKind | None = None
    error_kind: DispatchErrorKind | None = None
    phone_number: str | None = None
    extension: str | None = None
    attempts: int = 0
    diagnostics: str | None = None
    # Observability only; never parsed by callers.
    raw_backend_payload: Any = None

    def with_context(self, **changes: Any) -> "CallResult":
        return replace(self, **changes)


class BackendError(Exception):
    """Base exception for backend failures that produced no outcome."""

    kind: DispatchErrorKind = DispatchErrorKind.BACKEND_REPORTED_FAILURE

    def __init__(
        self,
        message: str,
        provider_response: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider_response = provider_response


class BackendUnreachableError(BackendError):
    """The backend could not even be contacted (network error, missing executable)."""

    kind = DispatchErrorKind.BACKEND_UNREACHABLE


class BackendTimeoutError(BackendError):
    """The backend did not answer within its deadline."""

    kind = DispatchErrorKind.BACKEND_TIMEOUT


class CallBackend(ABC):
    """Capability: place one outbound call for a normalized number and extension."""

    kind: BackendKind
    # Only vendor HTTP backends are retried after a timeout.
    retryable: bool = False

    @property
    @abstractmethod
    def timeout_seconds(self) -> float:
        """Deadline applied by the dispatcher to a single attempt."""

    @abstractmethod
    async def attempt_call(
        self,
        phone_number: str,
        extension: str,
        request: CallRequest,
    ) -> BackendOutcome:
        """Place the call and return the raw backend outcome.

        Raises:
            BackendUnreachableError: the backend could not be started/contacted.
            BackendTimeoutError: the backend's own transport timed out.
        """

    @abstractmethod
    async def check_status(self) -> dict[str, Any]:
        """Report reachability and non-secret configuration."""

    async def aclose(self) -> None:
        """Release resources owned by the backend."""
