"""
Tests for the calling backend interface value objects.
"""

from dataclasses import FrozenInstanceError

import pytest

from callcenter.telephony.config import BackendKind
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


class TestCallRequest:
    """Tests for CallRequest dataclass."""

    def test_create_request_with_required_fields(self) -> None:
        """Test creating request with the raw number only."""
        request = CallRequest(raw_phone_number="555-123-4567")

        assert request.extension is None
        assert request.backend is None
        assert request.extra_metadata == {}

    def test_request_is_immutable(self) -> None:
        request = CallRequest(raw_phone_number="555-123-4567")

        with pytest.raises(FrozenInstanceError):
            request.extension = "205"  # type: ignore[misc]


class TestCallResult:
    def test_with_context_returns_copy(self) -> None:
        result = CallResult(
            success=True,
            status_label=CallStatusLabel.INITIATED,
            message="Call initiated successfully",
            backend=BackendKind.MOCK,
        )

        updated = result.with_context(phone_number="15551234567", attempts=2)

        assert updated.phone_number == "15551234567"
        assert updated.attempts == 2
        assert result.phone_number is None
        assert result.attempts == 0


class TestBackendErrors:
    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (BackendError("x"), DispatchErrorKind.BACKEND_REPORTED_FAILURE),
            (BackendUnreachableError("x"), DispatchErrorKind.BACKEND_UNREACHABLE),
            (BackendTimeoutError("x"), DispatchErrorKind.BACKEND_TIMEOUT),
        ],
    )
    def test_kinds(self, error: BackendError, kind: DispatchErrorKind) -> None:
        assert error.kind == kind
        assert isinstance(error, BackendError)

    def test_provider_response_kept(self) -> None:
        error = BackendError("failed", provider_response={"code": 1})

        assert str(error) == "failed"
        assert error.provider_response == {"code": 1}


def test_backend_is_abstract() -> None:
    with pytest.raises(TypeError):
        CallBackend()  # type: ignore[abstract]
