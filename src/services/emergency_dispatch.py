"""Emergency dispatch workflow.

Raising an emergency is a fixed sequence::

    validate -> resolve caller -> pick location -> persist (active)
             -> notify emergency services -> SMS the personal contact
             -> dispatched | failed

The report is written before any notification is attempted. A failed
notification never rolls the report back: it moves the report to
``failed`` with the error recorded, and the caller still gets the
report id back. Nothing is retried.

A safety check-in with ``help_needed`` creates a report the same way,
but its notifications are best-effort and never change the answer the
traveller gets.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Final

import structlog

from src.models.emergency import EmergencyReport, ReportUpdate, TransitionRejected
from src.models.enums import (
    CheckInStatus,
    CountryCode,
    EmergencyType,
    ReportStatus,
    Severity,
    UpdateTag,
)
from src.models.geo import CurrentLocation
from src.models.request import (
    AuditNoteInput,
    CheckInInput,
    EmergencyAlertInput,
    ReportUpdateInput,
)
from src.models.user import User
from src.services.errors import InvalidTransition, NotFound, TravaultError
from src.services.notifications import EmergencyAlertPayload, NotificationDispatcher, mask_phone
from src.services.realtime import (
    EMERGENCY_RESPONDERS,
    EventBroker,
    contacts_topic,
    make_event,
    user_topic,
)
from src.services.report_store import ReportPage, ReportStore
from src.services.users import UserRepository
from src.services.validation import validate

logger = structlog.get_logger(__name__)

DEFAULT_ESTIMATED_RESPONSE: Final[str] = "5-15 minutes"
CHECK_IN_HELP_MESSAGE: Final[str] = "User requested help during check-in"

# ---------------------------------------------------------------------------
# National emergency numbers
# ---------------------------------------------------------------------------

COUNTRY_EMERGENCY_SERVICES: Final = MappingProxyType({
    CountryCode.US: MappingProxyType({"police": "911", "fire": "911", "medical": "911", "general": "911"}),
    CountryCode.UK: MappingProxyType({
        "police": "999",
        "fire": "999",
        "medical": "999",
        "general": "999",
        "non_emergency_police": "101",
        "non_emergency_medical": "111",
    }),
    CountryCode.CA: MappingProxyType({"police": "911", "fire": "911", "medical": "911", "general": "911"}),
    CountryCode.AU: MappingProxyType({"police": "000", "fire": "000", "medical": "000", "general": "000"}),
    CountryCode.DE: MappingProxyType({"police": "110", "fire": "112", "medical": "112", "general": "112"}),
    CountryCode.FR: MappingProxyType({"police": "17", "fire": "18", "medical": "15", "general": "112"}),
    CountryCode.JP: MappingProxyType({"police": "110", "fire": "119", "medical": "119"}),
    CountryCode.IN: MappingProxyType({"police": "100", "fire": "101", "medical": "108", "general": "112"}),
    CountryCode.BR: MappingProxyType({"police": "190", "fire": "193", "medical": "192", "general": "911"}),
    CountryCode.MX: MappingProxyType({"police": "911", "fire": "911", "medical": "911", "general": "911"}),
})

CALLER_INSTRUCTIONS: Final = MappingProxyType({
    "general": "Stay calm and speak clearly when calling emergency services",
    "information": "Be ready to provide your location, nature of emergency, and contact information",
    "language": "If language is a barrier, ask for an interpreter",
})


def country_services(country: str) -> tuple[CountryCode, Mapping[str, str]]:
    """National emergency numbers for an ISO-style country code.

    Raises
    ------
    NotFound
        If the code is not a supported country.
    """
    try:
        code = CountryCode(country.strip().upper())
    except ValueError as exc:
        raise NotFound("Emergency services not found for this country") from exc
    # Every CountryCode must be mapped; a KeyError here is a programming error.
    return code, COUNTRY_EMERGENCY_SERVICES[code]


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DispatchOutcome:
    report: EmergencyReport
    estimated_response: str | None = None
    error: str | None = None

    @property
    def dispatched(self) -> bool:
        return self.report.status == ReportStatus.DISPATCHED

    @property
    def report_id(self) -> str:
        return self.report.report_id


@dataclass(frozen=True, slots=True)
class CheckInOutcome:
    status: CheckInStatus
    message: str | None
    location: CurrentLocation
    timestamp: datetime
    report: EmergencyReport | None = None

    @property
    def emergency_id(self) -> str | None:
        return self.report.report_id if self.report is not None else None

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "location": {
                "coordinates": self.location.point.coordinates,
                "address": self.location.address,
            },
            "timestamp": self.timestamp.isoformat(),
        }


def _status_tag(status: ReportStatus) -> UpdateTag:
    if status == ReportStatus.RESOLVED:
        return UpdateTag.SUCCESS
    if status in (ReportStatus.CANCELLED, ReportStatus.FALSE_ALARM):
        return UpdateTag.WARNING
    return UpdateTag.INFO


def _error_text(exc: Exception) -> str:
    if isinstance(exc, TravaultError):
        return exc.message
    return str(exc) or type(exc).__name__


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class EmergencyDispatchService:
    """Owns the emergency report lifecycle from creation to resolution."""

    __slots__ = ("_dispatcher", "_estimated_response", "_events", "_reports", "_users")

    def __init__(
        self,
        users: UserRepository,
        reports: ReportStore,
        dispatcher: NotificationDispatcher,
        events: EventBroker,
        estimated_response: str = DEFAULT_ESTIMATED_RESPONSE,
    ) -> None:
        self._users = users
        self._reports = reports
        self._dispatcher = dispatcher
        self._events = events
        self._estimated_response = estimated_response

    # ------------------------------------------------------------------
    # Raising an emergency
    # ------------------------------------------------------------------

    async def raise_emergency(
        self,
        caller_id: str,
        data: EmergencyAlertInput | Mapping[str, Any],
    ) -> DispatchOutcome:
        """Record an emergency and alert the outside world.

        Raises ``ValidationFailed`` for bad input and ``NotFound`` for an
        unknown caller, both before anything is written. Notification
        failures do not raise: the outcome carries a ``failed`` report.
        """
        alert = data if isinstance(data, EmergencyAlertInput) else validate(EmergencyAlertInput, dict(data)).unwrap()
        user = await self._users.require(caller_id)

        explicit = alert.coordinates
        report = EmergencyReport(
            user_id=user.user_id,
            type=alert.type,
            severity=alert.severity,
            priority=alert.severity,
            message=alert.message or None,
            location=explicit or user.current_location.point,
            address=None if explicit else user.current_location.address,
        )
        await self._reports.create_report(report)
        self._publish_report("emergency.created", report)

        log = logger.bind(report_id=report.report_id, user_id=user.user_id)
        payload = self._alert_payload(user, report)
        try:
            await self._dispatcher.send_emergency_alert(payload)
            contact = user.emergency_contact
            if contact is not None and contact.can_receive_sms:
                await self._dispatcher.send_sms(contact.phone, self._alert_sms(user, report))
            else:
                log.info("emergency.sms_skipped", reason="no_contact_phone")
        except Exception as exc:
            error = _error_text(exc)
            report.mark_failed(error)
            report.add_update("Alert delivery failed. Call local emergency services directly.", UpdateTag.ERROR)
            await self._reports.save_report(report)
            self._publish_report("emergency.status_changed", report)
            log.error("emergency.dispatch_failed", error=error)
            return DispatchOutcome(report=report, error=report.error_message)

        report.transition_to(ReportStatus.DISPATCHED)
        report.estimated_response = self._estimated_response
        report.add_update("Emergency services notified", UpdateTag.SUCCESS)
        await self._reports.save_report(report)
        self._publish_report("emergency.status_changed", report)
        log.info("emergency.dispatched", type=report.type.value, severity=report.severity.value)
        return DispatchOutcome(report=report, estimated_response=self._estimated_response)

    # ------------------------------------------------------------------
    # Safety check-in
    # ------------------------------------------------------------------

    async def check_in(
        self,
        caller_id: str,
        data: CheckInInput | Mapping[str, Any],
    ) -> CheckInOutcome:
        check = data if isinstance(data, CheckInInput) else validate(CheckInInput, dict(data)).unwrap()
        user = await self._users.require(caller_id)

        if check.coordinates is not None:
            user = await self._users.update_location(caller_id, check.coordinates)
            self._publish(
                contacts_topic(caller_id),
                make_event(
                    "location.updated",
                    user_id=caller_id,
                    coordinates=user.current_location.point.coordinates,
                ),
            )

        outcome = CheckInOutcome(
            status=check.status,
            message=check.message,
            location=user.current_location,
            timestamp=datetime.now(UTC),
        )
        if check.status != CheckInStatus.HELP_NEEDED:
            logger.info("checkin.recorded", user_id=caller_id, status=check.status.value)
            return outcome

        report = EmergencyReport(
            user_id=user.user_id,
            type=EmergencyType.GENERAL,
            severity=Severity.MEDIUM,
            priority=Severity.MEDIUM,
            message=check.message or CHECK_IN_HELP_MESSAGE,
            location=user.current_location.point,
            address=user.current_location.address,
        )
        await self._reports.create_report(report)
        self._publish_report("emergency.created", report)
        await self._notify_best_effort(user, report, check.message)

        logger.info("checkin.help_requested", user_id=caller_id, report_id=report.report_id)
        return CheckInOutcome(
            status=outcome.status,
            message=outcome.message,
            location=outcome.location,
            timestamp=outcome.timestamp,
            report=report,
        )

    async def _notify_best_effort(self, user: User, report: EmergencyReport, message: str | None) -> None:
        log = logger.bind(report_id=report.report_id, user_id=user.user_id)
        try:
            await self._dispatcher.send_emergency_alert(self._alert_payload(user, report))
        except Exception as exc:
            report.mark_failed(_error_text(exc))
            log.error("checkin.alert_failed", error=report.error_message)
        else:
            report.transition_to(ReportStatus.DISPATCHED)
            report.estimated_response = self._estimated_response

        contact = user.emergency_contact
        if contact is not None and contact.can_receive_sms:
            try:
                await self._dispatcher.send_sms(contact.phone, self._check_in_sms(user, message))
            except Exception as exc:
                log.warning("checkin.sms_failed", to=mask_phone(contact.phone), error=_error_text(exc))

        try:
            await self._reports.save_report(report)
        except Exception:
            # The report already exists as ``active``; only its status is stale.
            log.error("checkin.status_save_failed", exc_info=True)
            return
        self._publish_report("emergency.status_changed", report)

    # ------------------------------------------------------------------
    # Owner updates
    # ------------------------------------------------------------------

    async def update_report(
        self,
        caller_id: str,
        report_id: str,
        data: ReportUpdateInput | Mapping[str, Any],
    ) -> EmergencyReport:
        """Apply an owner's status and/or resolution change.

        Raises
        ------
        NotFound, Forbidden
            Before any mutation, for a missing or foreign report.
        InvalidTransition
            When the status change breaks the state machine.
        """
        change = data if isinstance(data, ReportUpdateInput) else validate(ReportUpdateInput, dict(data)).unwrap()
        report = await self._reports.get_owned_report(report_id, caller_id)

        status_changed = False
        if change.status is not None and change.status != report.status:
            try:
                report.transition_to(change.status)
            except TransitionRejected as exc:
                raise InvalidTransition(
                    f"Cannot change a {exc.current.value} report to {exc.requested.value}"
                ) from exc
            report.add_update(f"Status changed to {change.status.value}", _status_tag(change.status), caller_id)
            status_changed = True

        if change.resolution is not None:
            report.resolution = change.resolution
            report.add_update("Resolution recorded", UpdateTag.INFO, caller_id)

        await self._reports.save_report(report)
        if status_changed:
            self._publish_report("emergency.status_changed", report)
        logger.info("emergency.report_updated", report_id=report_id, status=report.status.value)
        return report

    async def add_update(
        self,
        caller_id: str,
        report_id: str,
        data: AuditNoteInput | Mapping[str, Any],
    ) -> ReportUpdate:
        """Append an audit note; allowed whatever the report's status."""
        note = data if isinstance(data, AuditNoteInput) else validate(AuditNoteInput, dict(data)).unwrap()
        report = await self._reports.get_owned_report(report_id, caller_id)
        entry = report.add_update(note.message, note.tag, caller_id)
        await self._reports.save_report(report)
        return entry

    async def list_reports(
        self,
        caller_id: str,
        *,
        status: ReportStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> ReportPage:
        return await self._reports.list_reports(caller_id, status=status, page=page, limit=limit)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _publish_report(self, name: str, report: EmergencyReport) -> None:
        event = make_event(
            name,
            report_id=report.report_id,
            user_id=report.user_id,
            type=report.type.value,
            severity=report.severity.value,
            status=report.status.value,
            coordinates=report.location.coordinates,
        )
        self._publish(EMERGENCY_RESPONDERS, event)
        self._publish(user_topic(report.user_id), event)

    def _publish(self, topic: str, event: dict[str, Any]) -> None:
        # The report is already stored; a relay failure must not change the outcome.
        try:
            self._events.publish(topic, event)
        except Exception:
            logger.error("emergency.publish_failed", topic=topic, event_name=event.get("event"), exc_info=True)

    @staticmethod
    def _alert_payload(user: User, report: EmergencyReport) -> EmergencyAlertPayload:
        return EmergencyAlertPayload(
            report_id=report.report_id,
            user_id=user.user_id,
            user_name=user.full_name,
            user_phone=user.phone,
            type=report.type.value,
            severity=report.severity.value,
            message=report.message or f"{report.type.value} emergency reported",
            coordinates=report.location.coordinates,
            address=report.address,
            emergency_contact=user.emergency_contact,
        )

    @staticmethod
    def _alert_sms(user: User, report: EmergencyReport) -> str:
        longitude, latitude = report.location.coordinates
        parts = [f"EMERGENCY ALERT: {user.full_name} has reported a {report.type.value} emergency."]
        if report.message:
            parts.append(report.message)
        parts.append(f"Location: {longitude}, {latitude}.")
        parts.append(f"Time: {report.created_at.strftime('%Y-%m-%d %H:%M UTC')}")
        return " ".join(parts)

    @staticmethod
    def _check_in_sms(user: User, message: str | None) -> str:
        longitude, latitude = user.current_location.point.coordinates
        return (
            f"SAFETY CHECK-IN ALERT: {user.full_name} has requested help. "
            f"Message: {message or 'No additional message'}. "
            f"Location: {longitude}, {latitude}. "
            f"Time: {datetime.now(UTC).strftime('%Y-%m-%d %H:%M UTC')}"
        )
