"""
Click2Call PBX HTTP backend.

POSTs an ``OriginateCall`` action to the PBX manager API. The PBX rings the
agent's extension first and then bridges to the destination number.
"""

from __future__ import annotations

import json
from typing import Any

import anyio
import httpx

from callcenter.shared.logging import get_logger
from callcenter.telephony.config import BackendKind, TelephonyConfig
from callcenter.telephony.interface import (
    BackendTimeoutError,
    BackendUnreachableError,
    CallBackend,
    CallRequest,
    HttpOutcome,
)

logger = get_logger(__name__)

CLICK2CALL_TEST_PHONE_NUMBER = "15551234567"
CLICK2CALL_TEST_NOTE = "Test call from CRM"


def build_click2call_client(config: TelephonyConfig) -> httpx.AsyncClient:
    """HTTP client for the PBX, honoring its TLS verification setting."""
    if not config.click2call_verify_tls:
        logger.warning(
            "TLS certificate verification is DISABLED for the Click2Call PBX",
            extra={"base_url": config.click2call_base_url},
        )
    return httpx.AsyncClient(
        verify=config.click2call_verify_tls,
        timeout=httpx.Timeout(config.click2call_timeout_seconds),
    )


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class Click2CallBackend(CallBackend):
    """Vendor-HTTP backend for the PBX Click2Call API."""

    kind = BackendKind.CLICK2CALL
    retryable = True

    def __init__(
        self,
        config: TelephonyConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Click2Call backend.

        Args:
            config: Telephony configuration with the PBX URL and call defaults.
            http_client: Optional shared client; when omitted one is built
                with the configured TLS setting and closed in ``aclose``.
        """
        self._config = config
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def timeout_seconds(self) -> float:
        return self._config.click2call_timeout_seconds

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = build_click2call_client(self._config)
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def build_payload(
        self,
        phone_number: str,
        extension: str,
        request: CallRequest,
    ) -> dict[str, Any]:
        """Build the ``OriginateCall`` body; request fields override config defaults."""
        cfg = self._config
        ring_time = request.ring_time_seconds or cfg.click2call_ring_time_seconds
        other = ""
        if request.extra_metadata:
            other = json.dumps(request.extra_metadata, separators=(",", ":"), default=str)
        return {
            "Action": "OriginateCall",
            "Data": {
                "phone": phone_number,
                "context": request.context or cfg.click2call_context,
                "ringtime": str(ring_time),
                "CallerID": request.caller_id or cfg.click2call_caller_id,
                "extension": extension,
                "name": request.display_name or cfg.click2call_display_name,
                "other": other,
            },
        }

    async def _post(self, payload: dict[str, Any]) -> HttpOutcome:
        try:
            response = await self._get_client().post(
                self._config.click2call_call_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(f"Click2Call request timed out: {e!s}") from e
        except httpx.TransportError as e:
            raise BackendUnreachableError(f"Click2Call unreachable: {e!s}") from e

        body = _parse_body(response)
        logger.info(
            "Click2Call response",
            extra={"status_code": response.status_code, "body": body},
        )
        return HttpOutcome(backend=self.kind, status_code=response.status_code, body=body)

    async def attempt_call(
        self,
        phone_number: str,
        extension: str,
        request: CallRequest,
    ) -> HttpOutcome:
        """POST an ``OriginateCall`` action for the destination number.

        Args:
            phone_number: Canonical destination number.
            extension: Agent extension the PBX rings first.
            request: Original call request; its optional fields override
                the configured context, ring time, caller ID and name.

        Returns:
            HttpOutcome with the PBX status code and parsed body.

        Raises:
            BackendTimeoutError: The HTTP request timed out.
            BackendUnreachableError: The PBX could not be reached.
        """
        logger.info(
            "Originating Click2Call call",
            extra={
                "url": self._config.click2call_call_url,
                "phone_number": phone_number,
                "extension": extension,
            },
        )
        return await self._post(self.build_payload(phone_number, extension, request))

    async def test_call(self, extension: str) -> tuple[dict[str, Any], HttpOutcome]:
        """Originate a call to a fixed test number to exercise the PBX API.

        Args:
            extension: Extension to ring for the test.

        Returns:
            The payload that was sent and the PBX outcome.

        Raises:
            BackendTimeoutError: No answer within the backend deadline.
            BackendUnreachableError: The PBX could not be reached.
        """
        request = CallRequest(
            raw_phone_number=CLICK2CALL_TEST_PHONE_NUMBER,
            extension=extension,
            caller_id="Test Call",
            display_name="Test User",
        )
        payload = self.build_payload(CLICK2CALL_TEST_PHONE_NUMBER, extension, request)
        payload["Data"]["other"] = CLICK2CALL_TEST_NOTE

        logger.info("Sending Click2Call test call", extra={"extension": extension})
        try:
            with anyio.fail_after(self.timeout_seconds):
                outcome = await self._post(payload)
        except TimeoutError as e:
            raise BackendTimeoutError(
                f"Click2Call test call timed out after {self.timeout_seconds:g} seconds"
            ) from e
        return payload, outcome

    async def check_status(self) -> dict[str, Any]:
        base_url = self._config.click2call_base_url
        status: dict[str, Any] = {
            "backend": self.kind.value,
            "service_name": "Click2Call",
            "base_url": base_url,
            "verify_tls": self._config.click2call_verify_tls,
        }
        try:
            response = await self._get_client().get(base_url)
        except httpx.HTTPError as e:
            logger.warning("Click2Call status check failed", extra={"error": str(e)})
            return {**status, "status": "unreachable", "error": str(e)}

        return {
            **status,
            "status": "connected" if response.status_code < 500 else "degraded",
            "status_code": response.status_code,
        }
