"""
Backend outcome -> CallResult mapping.

HTTP status alone is never enough: a 2xx reply whose JSON body says
``success: false`` or carries an ``error`` field is a failure.
Successful results always carry a provider reference; one is synthesized
from the current timestamp when the backend does not return it.
"""

from __future__ import annotations

import time
from typing import Any
from uuid import uuid4

from callcenter.telephony.config import BackendKind
from callcenter.telephony.interface import (
    BackendOutcome,
    CallResult,
    CallStatusLabel,
    DispatchErrorKind,
    HttpOutcome,
    ProcessOutcome,
    TwilioOutcome,
)

REFERENCE_PREFIXES: dict[BackendKind, str] = {
    BackendKind.CLICK2CALL: "call",
    BackendKind.TWILIO: "twilio_call",
    BackendKind.AMI: "ami_call",
    BackendKind.MOCK: "mock_call",
}

INITIATED_MESSAGES: dict[BackendKind, str] = {
    BackendKind.AMI: (
        "Call initiated successfully. Asterisk will call your extension first, "
        "then connect you to the target number."
    ),
}


def synthesize_reference(backend: BackendKind) -> str:
    """Timestamp-based reference, with a short random suffix for same-millisecond calls."""
    millis = int(time.time() * 1000)
    return f"{REFERENCE_PREFIXES.get(backend, 'call')}_{millis}_{uuid4().hex[:6]}"


def body_error_message(body: Any) -> str | None:
    """Return the error a JSON body encodes, or None when it signals none."""
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or "Backend reported an error")
    if error:
        return str(body.get("message") or error)

    if body.get("success") is False:
        return str(body.get("message") or "Backend reported failure")

    return None


def _initiated(
    backend: BackendKind,
    reference: Any,
    raw: Any,
) -> CallResult:
    return CallResult(
        success=True,
        status_label=CallStatusLabel.INITIATED,
        message=INITIATED_MESSAGES.get(backend, "Call initiated successfully"),
        provider_reference=str(reference) if reference else synthesize_reference(backend),
        backend=backend,
        raw_backend_payload=raw,
    )


def _reported_failure(
    backend: BackendKind,
    message: str,
    raw: Any,
    diagnostics: str | None = None,
) -> CallResult:
    return CallResult(
        success=False,
        status_label=CallStatusLabel.FAILED,
        message=message,
        backend=backend,
        error_kind=DispatchErrorKind.BACKEND_REPORTED_FAILURE,
        diagnostics=diagnostics,
        raw_backend_payload=raw,
    )


def _map_http(outcome: HttpOutcome) -> CallResult:
    raw = {"status_code": outcome.status_code, "body": outcome.body}

    if outcome.status_code != 200:
        message = body_error_message(outcome.body)
        if message is None and isinstance(outcome.body, dict):
            message = outcome.body.get("message")
        return _reported_failure(
            outcome.backend,
            message or f"Call initiation failed with status: {outcome.status_code}",
            raw,
        )

    error = body_error_message(outcome.body)
    if error is not None:
        return _reported_failure(outcome.backend, error, raw)

    reference = outcome.body.get("callId") if isinstance(outcome.body, dict) else None
    return _initiated(outcome.backend, reference, raw)


def _map_process(outcome: ProcessOutcome) -> CallResult:
    raw = {
        "exit_code": outcome.exit_code,
        "stdout": outcome.stdout,
        "stderr": outcome.stderr,
    }
    if outcome.exit_code == 0:
        return _initiated(outcome.backend, None, raw)

    stderr = outcome.stderr.strip()
    return _reported_failure(
        outcome.backend,
        stderr or "Unknown error occurred",
        raw,
        diagnostics=outcome.stderr or None,
    )


def _map_twilio(outcome: TwilioOutcome) -> CallResult:
    body = outcome.body
    raw = {"status_code": outcome.status_code, "body": body}

    if outcome.status_code >= 400:
        return _reported_failure(
            outcome.backend,
            str(body.get("message") or f"Twilio returned HTTP {outcome.status_code}"),
            raw,
        )

    error = body_error_message(body)
    if error is None and body.get("error_code"):
        error = str(body.get("error_message") or f"Twilio error {body['error_code']}")
    if error is not None:
        return _reported_failure(outcome.backend, error, raw)

    return _initiated(outcome.backend, body.get("sid"), raw)


def map_result(outcome: BackendOutcome) -> CallResult:
    """Translate any backend outcome into the uniform CallResult."""
    if isinstance(outcome, ProcessOutcome):
        return _map_process(outcome)
    if isinstance(outcome, TwilioOutcome):
        return _map_twilio(outcome)
    if isinstance(outcome, HttpOutcome):
        return _map_http(outcome)
    raise TypeError(f"Unsupported backend outcome: {type(outcome).__name__}")
