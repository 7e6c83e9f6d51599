"""Tests for nearby contacts, safety alerts and safe routes."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from src.models.emergency import EmergencyContact
from src.models.enums import AlertType, ContactType, CountryCode, Severity, TravelMode
from src.models.geo import GeoPoint, ServiceArea
from src.models.safety import SafeRoute, SafetyAlert
from src.models.user import User
from src.services.community import CommunityStore
from src.services.proximity import ALERT_LIMIT, CONTACT_LIMIT, ProximityQueryService, dedupe_contacts
from src.services.report_store import ReportStore
from src.services.users import UserRepository

PARIS = GeoPoint(longitude=2.3522, latitude=48.8566)
VERSAILLES = GeoPoint(longitude=2.1301, latitude=48.8049)
LYON = GeoPoint(longitude=4.8357, latitude=45.7640)
TOKYO = GeoPoint(longitude=139.6917, latitude=35.6895)


@pytest.fixture
def proximity(reports: ReportStore, community: CommunityStore, users: UserRepository) -> ProximityQueryService:
    return ProximityQueryService(reports, community, users)


def _contact(name: str, phone: str, *, priority: int = 1, at: GeoPoint | None = None, **extra) -> EmergencyContact:
    return EmergencyContact(
        name=name,
        type=extra.pop("type", ContactType.POLICE),
        phone=phone,
        country=extra.pop("country", CountryCode.FR),
        priority=priority,
        service_area=ServiceArea(type="Point", coordinates=at.coordinates) if at else None,
        **extra,
    )


def _alert(severity: Severity, at: GeoPoint, *, age: timedelta = timedelta(0), **extra) -> SafetyAlert:
    return SafetyAlert(
        type=AlertType.CRIME,
        title="Street robbery reported",
        description="Tourists targeted near the station exit.",
        severity=severity,
        location=at,
        reported_by="reporter",
        created_at=datetime.now(UTC) - age,
        **extra,
    )


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class TestNearbyContacts:
    def test_dedupe_keeps_first_per_phone_and_type(self) -> None:
        contacts = [
            _contact("A", "17"),
            _contact("B", "17"),
            _contact("C", "17", type=ContactType.FIRE),
        ]
        assert [c.name for c in dedupe_contacts(contacts)] == ["A", "C"]

    async def test_country_only_is_deduped_and_capped(
        self, proximity: ProximityQueryService, reports: ReportStore
    ) -> None:
        for i in range(14):
            await reports.add_contact(_contact(f"Station {i:02d}", f"+33 1 {i:02d}"))
        await reports.add_contact(_contact("Duplicate", "+33 1 00"))

        contacts = await proximity.find_nearby_contacts(CountryCode.FR)
        assert len(contacts) == CONTACT_LIMIT
        assert len({c.dedupe_key for c in contacts}) == CONTACT_LIMIT

    async def test_located_contacts_come_first(self, proximity: ProximityQueryService, reports: ReportStore) -> None:
        await reports.add_contact(_contact("National police", "17"))
        await reports.add_contact(_contact("Paris prefecture", "+33 1 53 71 53 71", at=PARIS))
        await reports.add_contact(_contact("Lyon prefecture", "+33 4 78 00 00 00", at=LYON))

        contacts = await proximity.find_nearby_contacts(CountryCode.FR, VERSAILLES)
        names = [c.name for c in contacts]
        assert names[0] == "Paris prefecture"
        assert "National police" in names

    async def test_located_contacts_ordered_by_priority_then_distance(
        self, proximity: ProximityQueryService, reports: ReportStore
    ) -> None:
        await reports.add_contact(_contact("Far but urgent", "1", priority=1, at=VERSAILLES))
        await reports.add_contact(_contact("Next door", "2", priority=2, at=GeoPoint(longitude=2.3530, latitude=48.8566)))
        await reports.add_contact(_contact("On the spot", "3", priority=2, at=PARIS))

        contacts = await proximity.find_nearby_contacts(CountryCode.FR, PARIS)
        assert [c.name for c in contacts] == ["Far but urgent", "On the spot", "Next door"]

    async def test_duplicate_of_located_contact_is_dropped(
        self, proximity: ProximityQueryService, reports: ReportStore
    ) -> None:
        await reports.add_contact(_contact("Paris police (city)", "17", at=PARIS))
        await reports.add_contact(_contact("Police (national)", "17"))

        contacts = await proximity.find_nearby_contacts(CountryCode.FR, PARIS)
        assert [c.name for c in contacts] == ["Paris police (city)"]


# ---------------------------------------------------------------------------
# Safety alerts
# ---------------------------------------------------------------------------


class TestSafetyAlerts:
    async def test_expired_and_inactive_alerts_hidden(
        self, proximity: ProximityQueryService, reports: ReportStore
    ) -> None:
        await reports.create_alert(_alert(Severity.LOW, PARIS, age=timedelta(hours=30)))
        await reports.create_alert(_alert(Severity.HIGH, PARIS, is_active=False))
        live = await reports.create_alert(_alert(Severity.MEDIUM, PARIS))

        alerts = await proximity.find_safety_alerts("anyone", PARIS)
        assert [a.alert_id for a in alerts] == [live.alert_id]

    async def test_severity_then_recency(self, proximity: ProximityQueryService, reports: ReportStore) -> None:
        old_critical = await reports.create_alert(_alert(Severity.CRITICAL, PARIS, age=timedelta(hours=2)))
        new_critical = await reports.create_alert(_alert(Severity.CRITICAL, PARIS))
        low = await reports.create_alert(_alert(Severity.LOW, PARIS))

        alerts = await proximity.find_safety_alerts("anyone", PARIS)
        assert [a.alert_id for a in alerts] == [new_critical.alert_id, old_critical.alert_id, low.alert_id]

    async def test_radius_applies(self, proximity: ProximityQueryService, reports: ReportStore) -> None:
        await reports.create_alert(_alert(Severity.HIGH, LYON))
        near = await reports.create_alert(_alert(Severity.HIGH, VERSAILLES))

        alerts = await proximity.find_safety_alerts("anyone", PARIS, radius_km=25)
        assert [a.alert_id for a in alerts] == [near.alert_id]

    async def test_falls_back_to_stored_location(
        self, proximity: ProximityQueryService, reports: ReportStore, traveller: User
    ) -> None:
        await reports.create_alert(_alert(Severity.HIGH, TOKYO))
        near = await reports.create_alert(_alert(Severity.HIGH, VERSAILLES))

        alerts = await proximity.find_safety_alerts(traveller.user_id)
        assert [a.alert_id for a in alerts] == [near.alert_id]

    async def test_unset_location_means_no_geo_filter(
        self, proximity: ProximityQueryService, reports: ReportStore, stranger: User
    ) -> None:
        await reports.create_alert(_alert(Severity.HIGH, TOKYO))
        await reports.create_alert(_alert(Severity.HIGH, LYON))
        assert len(await proximity.find_safety_alerts(stranger.user_id)) == 2

    async def test_capped(self, proximity: ProximityQueryService, reports: ReportStore) -> None:
        for _ in range(ALERT_LIMIT + 5):
            await reports.create_alert(_alert(Severity.MEDIUM, PARIS))
        assert len(await proximity.find_safety_alerts("anyone", PARIS)) == ALERT_LIMIT

    async def test_route_alerts_only_high_and_critical(
        self, proximity: ProximityQueryService, reports: ReportStore
    ) -> None:
        await reports.create_alert(_alert(Severity.MEDIUM, PARIS))
        high = await reports.create_alert(_alert(Severity.HIGH, PARIS))
        await reports.create_alert(_alert(Severity.CRITICAL, LYON))

        alerts = await proximity.find_high_severity_alerts_near(PARIS)
        assert [a.alert_id for a in alerts] == [high.alert_id]


# ---------------------------------------------------------------------------
# Safe routes
# ---------------------------------------------------------------------------


class TestSafeRoutes:
    async def _route(self, community: CommunityStore, start: GeoPoint, end: GeoPoint, **extra) -> SafeRoute:
        return await community.create_route(
            SafeRoute(
                name=extra.pop("name", "Riverside route"),
                mode=extra.pop("mode", TravelMode.WALKING),
                start_point=start,
                end_point=end,
                created_by="u1",
                **extra,
            )
        )

    async def test_either_endpoint_within_a_kilometre(
        self, proximity: ProximityQueryService, community: CommunityStore
    ) -> None:
        near_start = await self._route(community, GeoPoint(longitude=2.353, latitude=48.857), LYON)
        near_end = await self._route(community, LYON, GeoPoint(longitude=2.131, latitude=48.805))
        await self._route(community, LYON, LYON)

        routes = await proximity.find_safe_routes(PARIS, VERSAILLES)
        assert {r.route_id for r in routes} == {near_start.route_id, near_end.route_id}

    async def test_mode_filter_and_rating_order(
        self, proximity: ProximityQueryService, community: CommunityStore
    ) -> None:
        ok = await self._route(community, PARIS, VERSAILLES, safety_rating=3)
        best = await self._route(community, PARIS, VERSAILLES, safety_rating=5)
        await self._route(community, PARIS, VERSAILLES, mode=TravelMode.DRIVING)

        routes = await proximity.find_safe_routes(PARIS, VERSAILLES, TravelMode.WALKING)
        assert [r.route_id for r in routes] == [best.route_id, ok.route_id]

    async def test_at_most_five(self, proximity: ProximityQueryService, community: CommunityStore) -> None:
        for _ in range(7):
            await self._route(community, PARIS, VERSAILLES)
        assert len(await proximity.find_safe_routes(PARIS, VERSAILLES)) == 5
