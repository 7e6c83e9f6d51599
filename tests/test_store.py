"""Tests for the document store and the typed repositories on top of it."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from src.models.emergency import EmergencyContact, EmergencyReport
from src.models.enums import ContactType, CountryCode, EmergencyType, ReportStatus, Severity
from src.models.geo import GeoPoint
from src.models.user import User
from src.services.errors import Forbidden, NotFound
from src.services.report_store import ReportStore
from src.services.store import DocumentNotFound, DocumentStore, InMemoryDocumentStore, open_document_store
from src.services.users import UserRepository

PARIS = GeoPoint(longitude=2.3522, latitude=48.8566)


# ---------------------------------------------------------------------------
# InMemoryDocumentStore
# ---------------------------------------------------------------------------


class TestInMemoryDocumentStore:
    async def test_insert_and_get(self, store: InMemoryDocumentStore) -> None:
        await store.insert("things", "a", {"n": 1})
        assert await store.get("things", "a") == {"n": 1}
        assert await store.get("things", "missing") is None

    async def test_returned_documents_are_copies(self, store: InMemoryDocumentStore) -> None:
        await store.insert("things", "a", {"tags": ["x"]})
        doc = await store.get("things", "a")
        doc["tags"].append("y")
        assert await store.get("things", "a") == {"tags": ["x"]}

    async def test_duplicate_insert_rejected(self, store: InMemoryDocumentStore) -> None:
        await store.insert("things", "a", {})
        with pytest.raises(ValueError):
            await store.insert("things", "a", {})

    async def test_replace_requires_existing(self, store: InMemoryDocumentStore) -> None:
        with pytest.raises(DocumentNotFound):
            await store.replace("things", "nope", {})

    async def test_find_and_count(self, store: InMemoryDocumentStore) -> None:
        for i in range(5):
            await store.insert("things", str(i), {"n": i})
        odd = await store.find("things", lambda d: d["n"] % 2 == 1)
        assert sorted(d["n"] for d in odd) == [1, 3]
        assert await store.count("things") == 5
        assert await store.count("empty") == 0

    def test_satisfies_protocol(self, store: InMemoryDocumentStore) -> None:
        assert isinstance(store, DocumentStore)


class TestOpenDocumentStore:
    async def test_no_url_selects_memory(self) -> None:
        store = await open_document_store(None)
        assert isinstance(store, InMemoryDocumentStore)
        await store.close()


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class TestUserRepository:
    async def test_email_is_case_insensitive(self, users: UserRepository) -> None:
        await users.create(
            User(first_name="Mia", last_name="Chen", email="Mia@Example.com", phone="+1 555", country=CountryCode.US)
        )
        found = await users.get_by_email("  MIA@example.COM ")
        assert found is not None
        assert found.email == "mia@example.com"

    async def test_require_unknown(self, users: UserRepository) -> None:
        with pytest.raises(NotFound):
            await users.require("ghost")

    async def test_update_location_keeps_address(self, users: UserRepository, traveller: User) -> None:
        moved = await users.update_location(traveller.user_id, GeoPoint(longitude=2.29, latitude=48.86))
        assert moved.current_location.address == "Rue de Rivoli, Paris"
        stored = await users.require(traveller.user_id)
        assert stored.current_location.point.longitude == 2.29


class TestReportStore:
    async def _report(self, reports: ReportStore, user_id: str, minutes_ago: int = 0, **overrides) -> EmergencyReport:
        report = EmergencyReport(
            user_id=user_id,
            type=EmergencyType.MEDICAL,
            severity=Severity.HIGH,
            location=PARIS,
            created_at=datetime.now(UTC) - timedelta(minutes=minutes_ago),
            **overrides,
        )
        return await reports.create_report(report)

    async def test_owned_report(self, reports: ReportStore) -> None:
        report = await self._report(reports, "owner")
        assert (await reports.get_owned_report(report.report_id, "owner")).report_id == report.report_id

    async def test_foreign_report_is_forbidden(self, reports: ReportStore) -> None:
        report = await self._report(reports, "owner")
        with pytest.raises(Forbidden):
            await reports.get_owned_report(report.report_id, "intruder")

    async def test_missing_report(self, reports: ReportStore) -> None:
        with pytest.raises(NotFound):
            await reports.get_owned_report("nope", "owner")

    async def test_list_is_newest_first_and_paged(self, reports: ReportStore) -> None:
        for minutes in (30, 10, 20):
            await self._report(reports, "owner", minutes_ago=minutes)
        await self._report(reports, "someone-else")

        page = await reports.list_reports("owner", page=1, limit=2)
        assert page.total == 3
        assert page.pages == 2
        assert page.reports[0].created_at > page.reports[1].created_at

        second = await reports.list_reports("owner", page=2, limit=2)
        assert len(second.reports) == 1

    async def test_list_filters_by_status(self, reports: ReportStore) -> None:
        await self._report(reports, "owner")
        await self._report(reports, "owner", status=ReportStatus.CANCELLED)
        page = await reports.list_reports("owner", status=ReportStatus.CANCELLED)
        assert [r.status for r in page.reports] == [ReportStatus.CANCELLED]

    async def test_contacts_ordered_by_priority_then_name(self, reports: ReportStore) -> None:
        for name, priority in (("Zeta Clinic", 2), ("Alpha Police", 2), ("Embassy", 1)):
            await reports.add_contact(
                EmergencyContact(
                    name=name, type=ContactType.GENERAL, phone=name, country=CountryCode.FR, priority=priority
                )
            )
        await reports.add_contact(
            EmergencyContact(name="Inactive", type=ContactType.FIRE, phone="18", country=CountryCode.FR, is_active=False)
        )
        contacts = await reports.contacts_for_country(CountryCode.FR)
        assert [c.name for c in contacts] == ["Embassy", "Alpha Police", "Zeta Clinic"]
        assert await reports.contact_count() == 4
