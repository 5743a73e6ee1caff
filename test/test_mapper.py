"""
Tests for backend outcome -> CallResult mapping.
"""

import re

import pytest

from callcenter.calls.mapper import body_error_message, map_result, synthesize_reference
from callcenter.telephony.config import BackendKind
from callcenter.telephony.interface import (
    CallStatusLabel,
    DispatchErrorKind,
    HttpOutcome,
    ProcessOutcome,
    TwilioOutcome,
)


class TestHttpOutcome:
    def test_200_with_call_id_is_initiated(self) -> None:
        result = map_result(
            HttpOutcome(BackendKind.CLICK2CALL, 200, {"success": True, "callId": "PBX-42"})
        )

        assert result.success is True
        assert result.status_label == CallStatusLabel.INITIATED
        assert result.provider_reference == "PBX-42"
        assert result.error_kind is None
        assert result.raw_backend_payload["status_code"] == 200

    def test_200_with_success_false_is_failure(self) -> None:
        result = map_result(
            HttpOutcome(BackendKind.CLICK2CALL, 200, {"success": False, "message": "x"})
        )

        assert result.success is False
        assert result.status_label == CallStatusLabel.FAILED
        assert result.error_kind == DispatchErrorKind.BACKEND_REPORTED_FAILURE
        assert result.message == "x"
        assert result.provider_reference is None

    def test_200_with_error_field_is_failure(self) -> None:
        result = map_result(
            HttpOutcome(BackendKind.CLICK2CALL, 200, {"error": "Extension busy"})
        )

        assert result.success is False
        assert result.message == "Extension busy"

    def test_non_200_is_failure(self) -> None:
        result = map_result(HttpOutcome(BackendKind.CLICK2CALL, 500, {"message": "PBX down"}))

        assert result.success is False
        assert result.error_kind == DispatchErrorKind.BACKEND_REPORTED_FAILURE
        assert result.message == "PBX down"

    def test_non_200_without_body_message(self) -> None:
        result = map_result(HttpOutcome(BackendKind.CLICK2CALL, 503, "Service Unavailable"))

        assert result.message == "Call initiation failed with status: 503"

    def test_missing_call_id_gets_synthetic_reference(self) -> None:
        result = map_result(HttpOutcome(BackendKind.CLICK2CALL, 200, {"success": True}))

        assert result.success is True
        assert re.fullmatch(r"call_\d{13}_[0-9a-f]{6}", result.provider_reference)

    def test_empty_body_is_success(self) -> None:
        result = map_result(HttpOutcome(BackendKind.CLICK2CALL, 200, None))

        assert result.success is True
        assert result.provider_reference.startswith("call_")


class TestProcessOutcome:
    def test_exit_zero_is_initiated(self) -> None:
        result = map_result(ProcessOutcome(BackendKind.AMI, 0, stdout="Originate queued"))

        assert result.success is True
        assert result.provider_reference.startswith("ami_call_")
        assert "Asterisk will call your extension first" in result.message

    def test_nonzero_exit_surfaces_stderr(self) -> None:
        result = map_result(
            ProcessOutcome(BackendKind.AMI, 1, stdout="", stderr="Authentication failed\n")
        )

        assert result.success is False
        assert result.error_kind == DispatchErrorKind.BACKEND_REPORTED_FAILURE
        assert result.message == "Authentication failed"
        assert result.diagnostics == "Authentication failed\n"

    def test_nonzero_exit_without_stderr(self) -> None:
        result = map_result(ProcessOutcome(BackendKind.AMI, 3, stdout="ignored"))

        assert result.success is False
        assert result.message == "Unknown error occurred"
        assert result.diagnostics is None


class TestTwilioOutcome:
    def test_created_call_uses_sid(self) -> None:
        result = map_result(
            TwilioOutcome(BackendKind.TWILIO, 201, {"sid": "CA123", "status": "queued"})
        )

        assert result.success is True
        assert result.provider_reference == "CA123"

    def test_http_error_uses_message(self) -> None:
        result = map_result(
            TwilioOutcome(
                BackendKind.TWILIO,
                400,
                {"code": 21211, "message": "Invalid 'To' Phone Number"},
            )
        )

        assert result.success is False
        assert result.message == "Invalid 'To' Phone Number"

    def test_nested_error_in_2xx_body_is_failure(self) -> None:
        result = map_result(
            TwilioOutcome(
                BackendKind.TWILIO,
                200,
                {"sid": "CA123", "error": {"code": 13224, "message": "Invalid number"}},
            )
        )

        assert result.success is False
        assert result.message == "Invalid number"

    def test_error_code_in_2xx_body_is_failure(self) -> None:
        result = map_result(
            TwilioOutcome(
                BackendKind.TWILIO,
                201,
                {"sid": "CA123", "error_code": 32009, "error_message": "Trunk error"},
            )
        )

        assert result.success is False
        assert result.message == "Trunk error"


class TestHelpers:
    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            ({"success": True}, None),
            ({"error": None, "success": True}, None),
            ({"success": False}, "Backend reported failure"),
            ({"error": {"code": "E1"}}, "E1"),
            ("plain text", None),
        ],
    )
    def test_body_error_message(self, body, expected) -> None:
        assert body_error_message(body) == expected

    def test_synthetic_references_are_unique(self) -> None:
        refs = {synthesize_reference(BackendKind.TWILIO) for _ in range(50)}

        assert len(refs) == 50
        assert all(ref.startswith("twilio_call_") for ref in refs)

    def test_unsupported_outcome(self) -> None:
        with pytest.raises(TypeError):
            map_result({"status_code": 200})  # type: ignore[arg-type]
