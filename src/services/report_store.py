"""Persistence for emergency reports, safety alerts and contact reference data.

Reports are never deleted: every mutation goes through
:meth:`EmergencyReport.transition_to` or
:meth:`EmergencyReport.add_update` and is then written back wholesale.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

import structlog

from src.models.emergency import EmergencyContact, EmergencyReport
from src.models.enums import CountryCode, ReportStatus
from src.models.safety import SafetyAlert
from src.services.errors import Forbidden, NotFound
from src.services.store import DocumentStore

logger = structlog.get_logger(__name__)

REPORTS: Final[str] = "emergency_reports"
ALERTS: Final[str] = "safety_alerts"
CONTACTS: Final[str] = "emergency_contacts"


@dataclass(frozen=True, slots=True)
class ReportPage:
    reports: list[EmergencyReport]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


class ReportStore:
    """Typed access to the report, alert and contact collections."""

    __slots__ = ("_store",)

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # -- Emergency reports -------------------------------------------------

    async def create_report(self, report: EmergencyReport) -> EmergencyReport:
        await self._store.insert(REPORTS, report.report_id, report.model_dump(mode="json"))
        logger.info(
            "reports.created",
            report_id=report.report_id,
            user_id=report.user_id,
            type=report.type.value,
            severity=report.severity.value,
        )
        return report

    async def save_report(self, report: EmergencyReport) -> EmergencyReport:
        await self._store.replace(REPORTS, report.report_id, report.model_dump(mode="json"))
        return report

    async def get_report(self, report_id: str) -> EmergencyReport | None:
        raw = await self._store.get(REPORTS, report_id)
        return EmergencyReport.model_validate(raw) if raw is not None else None

    async def get_owned_report(self, report_id: str, user_id: str) -> EmergencyReport:
        """Return the report if *user_id* owns it.

        Raises
        ------
        NotFound
            If no report has this id.
        Forbidden
            If the report belongs to someone else.
        """
        report = await self.get_report(report_id)
        if report is None:
            raise NotFound("Emergency report not found")
        if report.user_id != user_id:
            logger.warning("reports.ownership_denied", report_id=report_id, user_id=user_id)
            raise Forbidden("You can only modify your own emergency reports")
        return report

    async def list_reports(
        self,
        user_id: str,
        *,
        status: ReportStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> ReportPage:
        """One page of *user_id*'s reports, newest first."""

        def _match(doc: dict) -> bool:
            if doc.get("user_id") != user_id:
                return False
            return status is None or doc.get("status") == status.value

        reports = [EmergencyReport.model_validate(doc) for doc in await self._store.find(REPORTS, _match)]
        reports.sort(key=lambda r: r.created_at, reverse=True)
        start = (page - 1) * limit
        return ReportPage(
            reports=reports[start:start + limit],
            page=page,
            limit=limit,
            total=len(reports),
        )

    # -- Safety alerts -----------------------------------------------------

    async def create_alert(self, alert: SafetyAlert) -> SafetyAlert:
        await self._store.insert(ALERTS, alert.alert_id, alert.model_dump(mode="json"))
        logger.info(
            "alerts.created",
            alert_id=alert.alert_id,
            type=alert.type.value,
            severity=alert.severity.value,
        )
        return alert

    async def save_alert(self, alert: SafetyAlert) -> SafetyAlert:
        await self._store.replace(ALERTS, alert.alert_id, alert.model_dump(mode="json"))
        return alert

    async def get_alert(self, alert_id: str) -> SafetyAlert:
        raw = await self._store.get(ALERTS, alert_id)
        if raw is None:
            raise NotFound("Safety alert not found")
        return SafetyAlert.model_validate(raw)

    async def active_alerts(self) -> list[SafetyAlert]:
        """Alerts flagged active; expiry is checked by the caller."""
        docs = await self._store.find(ALERTS, lambda doc: bool(doc.get("is_active")))
        return [SafetyAlert.model_validate(doc) for doc in docs]

    # -- Emergency contacts ------------------------------------------------

    async def add_contact(self, contact: EmergencyContact) -> EmergencyContact:
        await self._store.insert(CONTACTS, contact.contact_id, contact.model_dump(mode="json"))
        return contact

    async def contacts_for_country(self, country: CountryCode) -> list[EmergencyContact]:
        """Active contacts of *country* ordered by (priority, name)."""
        docs = await self._store.find(
            CONTACTS,
            lambda doc: doc.get("country") == country.value and bool(doc.get("is_active")),
        )
        contacts = [EmergencyContact.model_validate(doc) for doc in docs]
        contacts.sort(key=lambda c: (c.priority, c.name))
        return contacts

    async def located_contacts(self) -> list[EmergencyContact]:
        """Active contacts carrying a service area, in any country."""
        docs = await self._store.find(
            CONTACTS,
            lambda doc: bool(doc.get("is_active")) and doc.get("service_area") is not None,
        )
        return [EmergencyContact.model_validate(doc) for doc in docs]

    async def contact_count(self) -> int:
        return await self._store.count(CONTACTS)
