"""
Twilio voice backend.

Uses the Twilio REST API through httpx with basic auth. Calls are created
with inline TwiML; provider references are Twilio Call SIDs.
"""

from __future__ import annotations

from typing import Any

import httpx

from callcenter.shared.exceptions import NotFoundError
from callcenter.shared.logging import get_logger, mask_secret
from callcenter.telephony.config import BackendKind, TelephonyConfig
from callcenter.telephony.interface import (
    BackendError,
    BackendTimeoutError,
    BackendUnreachableError,
    CallBackend,
    CallRequest,
    TwilioOutcome,
)
from callcenter.telephony.phone import to_e164

logger = get_logger(__name__)


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {"message": response.text}
    return data if isinstance(data, dict) else {"data": data}


class TwilioBackend(CallBackend):
    """Vendor-HTTP backend for Twilio programmable voice."""

    kind = BackendKind.TWILIO
    retryable = True

    def __init__(
        self,
        config: TelephonyConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Twilio backend.

        Args:
            config: Telephony configuration with account SID, auth token and
                caller number.
            http_client: Optional shared client; when omitted the backend
                builds one on first use and closes it in ``aclose``.
        """
        self._config = config
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def timeout_seconds(self) -> float:
        return self._config.twilio_timeout_seconds

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.twilio_timeout_seconds)
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _get_auth(self) -> tuple[str, str]:
        return (self._config.twilio_account_sid, self._config.twilio_auth_token)

    def _get_api_url(self, endpoint: str) -> str:
        base = self._config.twilio_api_base.rstrip("/")
        return f"{base}/Accounts/{self._config.twilio_account_sid}{endpoint}"

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._get_client().request(
                method,
                self._get_api_url(endpoint),
                auth=self._get_auth(),
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(f"Twilio request timed out: {e!s}") from e
        except httpx.TransportError as e:
            raise BackendUnreachableError(f"Twilio unreachable: {e!s}") from e

    async def attempt_call(
        self,
        phone_number: str,
        extension: str,
        request: CallRequest,
    ) -> TwilioOutcome:
        """Create a Twilio call to the destination number.

        Args:
            phone_number: Canonical destination number, sent as ``+E.164``.
            extension: Agent extension, logged only.
            request: Original call request.

        Returns:
            TwilioOutcome carrying the HTTP status and parsed body. API errors
            are returned, not raised, so the mapper can report them.

        Raises:
            BackendTimeoutError: The HTTP request timed out.
            BackendUnreachableError: Twilio could not be reached.
        """
        payload = {
            "To": to_e164(phone_number),
            "From": self._config.twilio_from_number,
            "Twiml": self._config.twilio_twiml,
        }

        logger.info(
            "Initiating Twilio call",
            extra={"to": payload["To"], "from": payload["From"], "extension": extension},
        )

        response = await self._request("POST", "/Calls.json", data=payload)
        body = _json_or_empty(response)

        if response.status_code >= 400:
            logger.error(
                "Twilio call initiation failed",
                extra={"status_code": response.status_code, "error": body},
            )

        return TwilioOutcome(backend=self.kind, status_code=response.status_code, body=body)

    async def fetch_call(self, call_sid: str) -> dict[str, Any]:
        """Fetch the live status of a call by SID.

        Raises:
            NotFoundError: Twilio has no call with this SID.
            BackendError: Any other API or transport failure.
        """
        response = await self._request("GET", f"/Calls/{call_sid}.json")
        return self._call_resource(response, call_sid)

    async def end_call(self, call_sid: str) -> dict[str, Any]:
        """Hang up a call by moving it to ``completed``.

        Raises:
            NotFoundError: Twilio has no call with this SID.
            BackendError: Any other API or transport failure.
        """
        response = await self._request(
            "POST",
            f"/Calls/{call_sid}.json",
            data={"Status": "completed"},
        )
        return self._call_resource(response, call_sid)

    async def list_recent_calls(self, limit: int = 10) -> list[dict[str, Any]]:
        """List the most recent completed calls on the account.

        Args:
            limit: Maximum number of calls to return (Twilio page size).

        Returns:
            Call summaries, newest first as Twilio orders them.

        Raises:
            BackendError: Twilio rejected the request or could not be reached.
        """
        response = await self._request(
            "GET",
            "/Calls.json",
            params={"Status": "completed", "PageSize": limit},
        )
        body = _json_or_empty(response)
        if response.status_code >= 400:
            raise BackendError(
                body.get("message", f"Twilio returned HTTP {response.status_code}"),
                provider_response=body,
            )

        calls = body.get("calls") or []
        return [
            {
                **self._call_fields(call, call.get("sid", "")),
                "price": call.get("price"),
                "price_unit": call.get("price_unit"),
            }
            for call in calls[:limit]
        ]

    def _call_resource(self, response: httpx.Response, call_sid: str) -> dict[str, Any]:
        body = _json_or_empty(response)
        if response.status_code == 404:
            raise NotFoundError(f"Call not found: {call_sid}", details={"call_sid": call_sid})
        if response.status_code >= 400:
            raise BackendError(
                body.get("message", f"Twilio returned HTTP {response.status_code}"),
                provider_response=body,
            )
        return self._call_fields(body, call_sid)

    @staticmethod
    def _call_fields(body: dict[str, Any], call_sid: str) -> dict[str, Any]:
        return {
            "call_sid": body.get("sid", call_sid),
            "status": body.get("status"),
            "duration": body.get("duration"),
            "direction": body.get("direction"),
            "from": body.get("from"),
            "to": body.get("to"),
            "start_time": body.get("start_time"),
            "end_time": body.get("end_time"),
        }

    async def check_status(self) -> dict[str, Any]:
        status: dict[str, Any] = {
            "backend": self.kind.value,
            "service_name": "Twilio",
            "account_sid": mask_secret(self._config.twilio_account_sid),
            "from_number": self._config.twilio_from_number,
        }
        if not self._config.twilio_account_sid or not self._config.twilio_auth_token:
            return {**status, "status": "not_configured"}

        try:
            response = await self._request("GET", ".json")
        except BackendError as e:
            return {**status, "status": "unreachable", "error": e.message}

        if response.status_code >= 400:
            return {**status, "status": "unauthorized", "status_code": response.status_code}
        return {**status, "status": "connected", "status_code": response.status_code}
