"""Outbound notification channels for emergencies.

Two independent channels:

1. **emergency-services** -- the alert handed to the emergency desk.
   Posted as JSON to a webhook when one is configured; otherwise the
   alert is only written to the audit log (development mode).
2. **sms** -- a text message to the traveller's personal emergency
   contact, sent through Twilio or a mock provider.

Delivery is at-most-once: each call makes exactly one attempt and any
failure surfaces as :class:`DispatchError` naming the channel. Whether
a failure is fatal is decided by the caller.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final
from uuid import uuid4

import httpx
import structlog
from pydantic import BaseModel, Field

from src.models.user import PersonalContact
from src.services.errors import DispatchError

logger = structlog.get_logger(__name__)

TWILIO_API_BASE: Final[str] = "https://api.twilio.com/2010-04-01"

_HTTP_TIMEOUT_SECONDS: Final[float] = 10.0
_SMS_MAX: Final[int] = 1600


class Channel(StrEnum):
    __slots__ = ()

    EMERGENCY_SERVICES = "emergency-services"
    SMS = "sms"


class EmergencyAlertPayload(BaseModel):
    """What the emergency desk receives about one report."""

    report_id: str
    user_id: str
    user_name: str
    user_phone: str
    type: str
    severity: str
    message: str
    coordinates: list[float]
    address: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    emergency_contact: PersonalContact | None = None


class SMSPayload(BaseModel):
    to: str
    body: str = Field(max_length=_SMS_MAX)


class DispatchReceipt(BaseModel):
    channel: Channel
    message_id: str
    provider: str
    sent_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


def mask_phone(number: str) -> str:
    """Keep the last four digits for log output."""
    digits = re.sub(r"\D", "", number)
    if len(digits) <= 4:
        return "*" * len(digits)
    return "*" * (len(digits) - 4) + digits[-4:]


# ---------------------------------------------------------------------------
# Emergency-services channel providers
# ---------------------------------------------------------------------------


class _EmergencyProviderBase:
    name: str = "base"

    async def send(self, payload: EmergencyAlertPayload) -> dict[str, Any]:
        raise NotImplementedError


class _WebhookEmergencyProvider(_EmergencyProviderBase):
    """POSTs the alert as JSON to the emergency desk's intake webhook."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        recipient: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._recipient = recipient
        self._transport = transport

    async def send(self, payload: EmergencyAlertPayload) -> dict[str, Any]:
        body = {"recipient": self._recipient, "alert": payload.model_dump(mode="json")}
        async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT_SECONDS, transport=self._transport) as client:
            response = await client.post(self._url, json=body)
            response.raise_for_status()
            data = response.json() if response.content else {}
        return {"message_id": str(data.get("id") or data.get("message_id") or uuid4().hex)}


class _LogEmergencyProvider(_EmergencyProviderBase):
    """Development provider: the alert only goes to the audit log."""

    name = "log"

    def __init__(self, recipient: str) -> None:
        self._recipient = recipient

    async def send(self, payload: EmergencyAlertPayload) -> dict[str, Any]:
        logger.warning(
            "emergency_alert.logged",
            recipient=self._recipient,
            report_id=payload.report_id,
            type=payload.type,
            severity=payload.severity,
            coordinates=payload.coordinates,
        )
        return {"message_id": f"log_{uuid4().hex[:12]}"}


# ---------------------------------------------------------------------------
# SMS channel providers
# ---------------------------------------------------------------------------


class _SMSProviderBase:
    name: str = "base"

    async def send(self, to: str, message: str) -> dict[str, Any]:
        raise NotImplementedError


class _TwilioProvider(_SMSProviderBase):
    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not (account_sid and auth_token and from_number):
            raise ValueError("Twilio needs an account SID, auth token and sender number.")
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._transport = transport

    async def send(self, to: str, message: str) -> dict[str, Any]:
        url = f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json"
        async with httpx.AsyncClient(
            timeout=_HTTP_TIMEOUT_SECONDS,
            auth=(self._account_sid, self._auth_token),
            transport=self._transport,
        ) as client:
            response = await client.post(
                url,
                data={"To": to, "From": self._from_number, "Body": message},
            )
            response.raise_for_status()
            data = response.json()
        return {"message_id": str(data.get("sid", "")), "status": data.get("status", "queued")}


class _MockSMSProvider(_SMSProviderBase):
    """Mock SMS provider for local development and testing."""

    name = "mock"

    async def send(self, to: str, message: str) -> dict[str, Any]:
        logger.info(
            "mock_sms.sent",
            to=mask_phone(to),
            message_preview=message[:80],
            length=len(message),
        )
        return {"message_id": f"mock_{uuid4().hex[:12]}", "status": "mock"}


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """Single entry point for both notification channels.

    Usage::

        dispatcher = NotificationDispatcher.from_settings(settings)
        await dispatcher.send_emergency_alert(payload)
        await dispatcher.send_sms("+15550100", "EMERGENCY ALERT: ...")
    """

    __slots__ = ("_emergency", "_sms")

    def __init__(
        self,
        emergency_provider: _EmergencyProviderBase | None = None,
        sms_provider: _SMSProviderBase | None = None,
    ) -> None:
        self._emergency = emergency_provider or _LogEmergencyProvider("emergency@travault.com")
        self._sms = sms_provider or _MockSMSProvider()
        logger.info(
            "notifications.initialised",
            emergency_provider=self._emergency.name,
            sms_provider=self._sms.name,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> NotificationDispatcher:
        if settings.emergency_services_webhook_url:
            emergency: _EmergencyProviderBase = _WebhookEmergencyProvider(
                settings.emergency_services_webhook_url,
                settings.emergency_services_email,
                transport=transport,
            )
        else:
            emergency = _LogEmergencyProvider(settings.emergency_services_email)

        if settings.sms_provider == "twilio":
            sms: _SMSProviderBase = _TwilioProvider(
                settings.sms_account_sid,
                settings.sms_auth_token,
                settings.sms_from_number,
                transport=transport,
            )
        else:
            sms = _MockSMSProvider()
        return cls(emergency, sms)

    async def dispatch(self, channel: Channel, payload: EmergencyAlertPayload | SMSPayload) -> DispatchReceipt:
        """Make one delivery attempt on *channel*.

        Raises
        ------
        DispatchError
            On any provider failure. Nothing is retried.
        """
        log = logger.bind(channel=channel.value)
        try:
            if channel == Channel.EMERGENCY_SERVICES:
                if not isinstance(payload, EmergencyAlertPayload):
                    raise TypeError("emergency-services expects an EmergencyAlertPayload")
                provider_name = self._emergency.name
                result = await self._emergency.send(payload)
            else:
                if not isinstance(payload, SMSPayload):
                    raise TypeError("sms expects an SMSPayload")
                provider_name = self._sms.name
                result = await self._sms.send(payload.to, payload.body)
        except Exception as exc:
            log.error("dispatch.channel_failed", error=str(exc), exc_info=True)
            raise DispatchError(channel.value, str(exc) or type(exc).__name__) from exc

        receipt = DispatchReceipt(
            channel=channel,
            message_id=str(result.get("message_id", "")),
            provider=provider_name,
        )
        log.info("dispatch.sent", provider=provider_name, message_id=receipt.message_id)
        return receipt

    async def send_emergency_alert(self, payload: EmergencyAlertPayload) -> DispatchReceipt:
        return await self.dispatch(Channel.EMERGENCY_SERVICES, payload)

    async def send_sms(self, to: str, message: str) -> DispatchReceipt:
        return await self.dispatch(Channel.SMS, SMSPayload(to=to.strip(), body=message[:_SMS_MAX]))
