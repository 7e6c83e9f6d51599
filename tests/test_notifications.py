"""Tests for the notification dispatcher and its providers.

HTTP providers run against ``httpx.MockTransport`` so the request shape
can be asserted. All tests run WITHOUT network access.
"""

from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest

from src.services.errors import DispatchError
from src.services.notifications import (
    Channel,
    EmergencyAlertPayload,
    NotificationDispatcher,
    SMSPayload,
    _LogEmergencyProvider,
    _MockSMSProvider,
    _TwilioProvider,
    _WebhookEmergencyProvider,
    mask_phone,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def payload() -> EmergencyAlertPayload:
    return EmergencyAlertPayload(
        report_id="r1",
        user_id="u1",
        user_name="Ana Souza",
        user_phone="+33 6 12 34 56 78",
        type="medical",
        severity="high",
        message="Chest pain",
        coordinates=[2.35, 48.85],
    )


def _settings(**overrides) -> SimpleNamespace:
    values = {
        "emergency_services_webhook_url": "",
        "emergency_services_email": "desk@example.com",
        "sms_provider": "mock",
        "sms_account_sid": "",
        "sms_auth_token": "",
        "sms_from_number": "",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestMaskPhone:
    def test_keeps_last_four_digits(self) -> None:
        assert mask_phone("+1 (555) 010-1234") == "*******1234"

    def test_short_numbers_fully_masked(self) -> None:
        assert mask_phone("112") == "***"


# ---------------------------------------------------------------------------
# Default providers
# ---------------------------------------------------------------------------


class TestDefaultDispatcher:
    async def test_log_and_mock_channels_succeed(self, payload: EmergencyAlertPayload) -> None:
        dispatcher = NotificationDispatcher()
        receipt = await dispatcher.send_emergency_alert(payload)
        assert receipt.channel == Channel.EMERGENCY_SERVICES
        assert receipt.provider == "log"
        assert receipt.message_id.startswith("log_")

        sms = await dispatcher.send_sms("+15550100", "EMERGENCY ALERT: test")
        assert sms.channel == Channel.SMS
        assert sms.provider == "mock"

    def test_from_settings_defaults(self) -> None:
        dispatcher = NotificationDispatcher.from_settings(_settings())
        assert isinstance(dispatcher._emergency, _LogEmergencyProvider)
        assert isinstance(dispatcher._sms, _MockSMSProvider)

    def test_twilio_needs_credentials(self) -> None:
        with pytest.raises(ValueError):
            NotificationDispatcher.from_settings(_settings(sms_provider="twilio"))

    async def test_wrong_payload_type_is_a_dispatch_error(self, payload: EmergencyAlertPayload) -> None:
        dispatcher = NotificationDispatcher()
        with pytest.raises(DispatchError) as excinfo:
            await dispatcher.dispatch(Channel.SMS, payload)
        assert excinfo.value.channel == "sms"

    async def test_long_sms_is_truncated(self) -> None:
        seen: list[str] = []

        class _Capture(_MockSMSProvider):
            async def send(self, to: str, message: str) -> dict:
                seen.append(message)
                return {"message_id": "m1"}

        dispatcher = NotificationDispatcher(sms_provider=_Capture())
        await dispatcher.send_sms(" +15550100 ", "x" * 2000)
        assert len(seen[0]) == 1600

    def test_sms_payload_limit(self) -> None:
        with pytest.raises(ValueError):
            SMSPayload(to="+1", body="x" * 1601)


# ---------------------------------------------------------------------------
# HTTP providers
# ---------------------------------------------------------------------------


class TestWebhookProvider:
    async def test_posts_alert_json(self, payload: EmergencyAlertPayload) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202, json={"id": "desk-42"})

        dispatcher = NotificationDispatcher.from_settings(
            _settings(emergency_services_webhook_url="https://desk.example.com/intake"),
            transport=httpx.MockTransport(handler),
        )
        receipt = await dispatcher.send_emergency_alert(payload)

        assert receipt.message_id == "desk-42"
        assert receipt.provider == "webhook"
        body = json.loads(requests[0].content)
        assert body["recipient"] == "desk@example.com"
        assert body["alert"]["report_id"] == "r1"
        assert body["alert"]["coordinates"] == [2.35, 48.85]

    async def test_server_error_raises_dispatch_error(self, payload: EmergencyAlertPayload) -> None:
        provider = _WebhookEmergencyProvider(
            "https://desk.example.com/intake",
            "desk@example.com",
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        dispatcher = NotificationDispatcher(emergency_provider=provider)
        with pytest.raises(DispatchError) as excinfo:
            await dispatcher.send_emergency_alert(payload)
        assert excinfo.value.channel == "emergency-services"

    async def test_single_attempt_only(self, payload: EmergencyAlertPayload) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("refused", request=request)

        provider = _WebhookEmergencyProvider(
            "https://desk.example.com/intake", "desk@example.com", transport=httpx.MockTransport(handler)
        )
        with pytest.raises(DispatchError):
            await NotificationDispatcher(emergency_provider=provider).send_emergency_alert(payload)
        assert calls == 1


class TestTwilioProvider:
    async def test_form_post_with_basic_auth(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"sid": "SM123", "status": "queued"})

        provider = _TwilioProvider("AC1", "secret", "+15550000", transport=httpx.MockTransport(handler))
        receipt = await NotificationDispatcher(sms_provider=provider).send_sms("+15550100", "Hello")

        assert receipt.message_id == "SM123"
        request = requests[0]
        assert request.url.path == "/2010-04-01/Accounts/AC1/Messages.json"
        assert request.headers["Authorization"].startswith("Basic ")
        form = dict(httpx.QueryParams(request.content.decode()))
        assert form == {"To": "+15550100", "From": "+15550000", "Body": "Hello"}

    async def test_rejected_number(self) -> None:
        provider = _TwilioProvider(
            "AC1",
            "secret",
            "+15550000",
            transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"message": "bad To"})),
        )
        with pytest.raises(DispatchError) as excinfo:
            await NotificationDispatcher(sms_provider=provider).send_sms("nope", "Hello")
        assert excinfo.value.channel == "sms"
