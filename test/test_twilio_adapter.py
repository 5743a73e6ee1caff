"""Tests for the Twilio voice backend."""

from unittest.mock import MagicMock

import httpx
import pytest

from callcenter.shared.exceptions import NotFoundError
from callcenter.telephony.adapters.twilio import TwilioBackend
from callcenter.telephony.config import TelephonyConfig
from callcenter.telephony.interface import (
    BackendError,
    BackendUnreachableError,
    CallRequest,
    TwilioOutcome,
)


@pytest.fixture
def mock_client() -> MagicMock:
    return MagicMock(spec=httpx.AsyncClient)


@pytest.fixture
def backend(telephony_config: TelephonyConfig, mock_client: MagicMock) -> TwilioBackend:
    return TwilioBackend(telephony_config, http_client=mock_client)


class TestTwilioAttemptCall:
    @pytest.mark.asyncio
    async def test_creates_call_with_e164_number(
        self,
        backend: TwilioBackend,
        mock_client: MagicMock,
    ) -> None:
        mock_client.request.return_value = httpx.Response(
            201,
            json={"sid": "CA_TEST_CALL_SID_123", "status": "queued"},
        )

        outcome = await backend.attempt_call(
            "15551234567", "205", CallRequest(raw_phone_number="5551234567")
        )

        assert isinstance(outcome, TwilioOutcome)
        assert outcome.status_code == 201
        assert outcome.body["sid"] == "CA_TEST_CALL_SID_123"

        args, kwargs = mock_client.request.call_args
        assert args[0] == "POST"
        assert args[1].endswith("/Accounts/AC_TEST_ACCOUNT_SID/Calls.json")
        assert kwargs["data"]["To"] == "+15551234567"
        assert kwargs["data"]["From"] == "+14155550000"
        assert "<Response>" in kwargs["data"]["Twiml"]
        assert kwargs["auth"] == ("AC_TEST_ACCOUNT_SID", "test_auth_token_12345")

    @pytest.mark.asyncio
    async def test_api_error_is_returned_as_outcome(
        self,
        backend: TwilioBackend,
        mock_client: MagicMock,
    ) -> None:
        mock_client.request.return_value = httpx.Response(
            400,
            json={"code": 21211, "message": "Invalid 'To' Phone Number"},
        )

        outcome = await backend.attempt_call(
            "15551234567", "205", CallRequest(raw_phone_number="5551234567")
        )

        assert outcome.status_code == 400
        assert outcome.body["code"] == 21211

    @pytest.mark.asyncio
    async def test_http_error_is_unreachable(
        self,
        backend: TwilioBackend,
        mock_client: MagicMock,
    ) -> None:
        mock_client.request.side_effect = httpx.ConnectError("Connection refused")

        with pytest.raises(BackendUnreachableError):
            await backend.attempt_call(
                "15551234567", "205", CallRequest(raw_phone_number="5551234567")
            )


class TestTwilioCallResource:
    @pytest.mark.asyncio
    async def test_fetch_call(self, backend: TwilioBackend, mock_client: MagicMock) -> None:
        mock_client.request.return_value = httpx.Response(
            200,
            json={
                "sid": "CA1",
                "status": "in-progress",
                "duration": None,
                "direction": "outbound-api",
                "from": "+14155550000",
                "to": "+15551234567",
                "start_time": "Mon, 15 Jan 2024 10:30:00 +0000",
                "end_time": None,
            },
        )

        data = await backend.fetch_call("CA1")

        assert data["call_sid"] == "CA1"
        assert data["status"] == "in-progress"
        assert data["from"] == "+14155550000"
        assert mock_client.request.call_args[0][0] == "GET"

    @pytest.mark.asyncio
    async def test_end_call_sets_completed(
        self,
        backend: TwilioBackend,
        mock_client: MagicMock,
    ) -> None:
        mock_client.request.return_value = httpx.Response(
            200, json={"sid": "CA1", "status": "completed"}
        )

        data = await backend.end_call("CA1")

        assert data["status"] == "completed"
        args, kwargs = mock_client.request.call_args
        assert args[0] == "POST"
        assert args[1].endswith("/Calls/CA1.json")
        assert kwargs["data"] == {"Status": "completed"}

    @pytest.mark.asyncio
    async def test_unknown_call(self, backend: TwilioBackend, mock_client: MagicMock) -> None:
        mock_client.request.return_value = httpx.Response(404, json={"message": "not found"})

        with pytest.raises(NotFoundError):
            await backend.fetch_call("CA_MISSING")

    @pytest.mark.asyncio
    async def test_api_failure(self, backend: TwilioBackend, mock_client: MagicMock) -> None:
        mock_client.request.return_value = httpx.Response(500, json={"message": "Twilio down"})

        with pytest.raises(BackendError) as exc_info:
            await backend.end_call("CA1")

        assert exc_info.value.message == "Twilio down"


class TestTwilioStatus:
    @pytest.mark.asyncio
    async def test_not_configured(self, telephony_config: TelephonyConfig) -> None:
        config = telephony_config.model_copy(update={"twilio_auth_token": ""})
        backend = TwilioBackend(config, http_client=MagicMock(spec=httpx.AsyncClient))

        status = await backend.check_status()

        assert status["status"] == "not_configured"

    @pytest.mark.asyncio
    async def test_connected_masks_sid(
        self,
        backend: TwilioBackend,
        mock_client: MagicMock,
    ) -> None:
        mock_client.request.return_value = httpx.Response(200, json={"status": "active"})

        status = await backend.check_status()

        assert status["status"] == "connected"
        assert status["account_sid"] == "AC_TES***"
        assert "test_auth_token" not in str(status)

    @pytest.mark.asyncio
    async def test_unauthorized(self, backend: TwilioBackend, mock_client: MagicMock) -> None:
        mock_client.request.return_value = httpx.Response(401, json={"code": 20003})

        status = await backend.check_status()

        assert status["status"] == "unauthorized"


class TestRecentCalls:
    @pytest.mark.asyncio
    async def test_lists_completed_calls(
        self,
        backend: TwilioBackend,
        mock_client: MagicMock,
    ) -> None:
        mock_client.request.return_value = httpx.Response(
            200,
            json={
                "calls": [
                    {
                        "sid": "CA1",
                        "status": "completed",
                        "duration": "42",
                        "direction": "outbound-api",
                        "from": "+14155550000",
                        "to": "+15551234567",
                        "start_time": "Mon, 15 Jan 2024 09:00:00 +0000",
                        "end_time": "Mon, 15 Jan 2024 09:00:42 +0000",
                        "price": "-0.01300",
                        "price_unit": "USD",
                    },
                    {"sid": "CA2", "status": "completed", "duration": "7"},
                ]
            },
        )

        calls = await backend.list_recent_calls(limit=5)

        assert [c["call_sid"] for c in calls] == ["CA1", "CA2"]
        assert calls[0]["duration"] == "42"
        assert calls[0]["price"] == "-0.01300"
        assert calls[0]["price_unit"] == "USD"
        assert calls[1]["price"] is None

        args, kwargs = mock_client.request.call_args
        assert args[0] == "GET"
        assert args[1].endswith("/Accounts/AC_TEST_ACCOUNT_SID/Calls.json")
        assert kwargs["params"] == {"Status": "completed", "PageSize": 5}

    @pytest.mark.asyncio
    async def test_limit_caps_result(self, backend: TwilioBackend, mock_client: MagicMock) -> None:
        mock_client.request.return_value = httpx.Response(
            200,
            json={"calls": [{"sid": f"CA{i}"} for i in range(5)]},
        )

        assert len(await backend.list_recent_calls(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_empty_page(self, backend: TwilioBackend, mock_client: MagicMock) -> None:
        mock_client.request.return_value = httpx.Response(200, json={"calls": []})

        assert await backend.list_recent_calls() == []

    @pytest.mark.asyncio
    async def test_api_error_raises(self, backend: TwilioBackend, mock_client: MagicMock) -> None:
        mock_client.request.return_value = httpx.Response(401, json={"message": "Authenticate"})

        with pytest.raises(BackendError) as exc_info:
            await backend.list_recent_calls()

        assert exc_info.value.message == "Authenticate"
