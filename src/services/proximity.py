"""Location-aware lookups for contacts, safety alerts and safe routes.

Ordering, deduplication and caps here are part of the API contract:

* contacts: location matches (<= 50 km, by priority) before the
  country list (by priority, then name); dedupe on ``(phone, type)``
  keeping the first; at most 10.
* alerts: live only; severity descending, then newest; at most 20.
* routes: either endpoint within 1 km of the requested one; safety
  rating descending, then newest; at most 5.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Final

import structlog

from src.models.emergency import EmergencyContact
from src.models.enums import CountryCode, Severity, TravelMode
from src.models.geo import GeoPoint
from src.models.safety import SafeRoute, SafetyAlert
from src.services import geo
from src.services.community import CommunityStore
from src.services.report_store import ReportStore
from src.services.users import UserRepository

logger = structlog.get_logger(__name__)

CONTACT_RADIUS_KM: Final[float] = 50.0
CONTACT_LIMIT: Final[int] = 10

DEFAULT_ALERT_RADIUS_KM: Final[float] = 50.0
ALERT_LIMIT: Final[int] = 20

ROUTE_ENDPOINT_RADIUS_M: Final[float] = 1000.0
ROUTE_LIMIT: Final[int] = 5

ROUTE_ALERT_RADIUS_KM: Final[float] = 10.0
_ROUTE_ALERT_SEVERITIES: Final[frozenset[Severity]] = frozenset({Severity.HIGH, Severity.CRITICAL})


def dedupe_contacts(contacts: list[EmergencyContact], limit: int = CONTACT_LIMIT) -> list[EmergencyContact]:
    """Keep the first contact per ``(phone, type)``, up to *limit*."""
    seen: set[tuple[str, str]] = set()
    unique: list[EmergencyContact] = []
    for contact in contacts:
        if contact.dedupe_key in seen:
            continue
        seen.add(contact.dedupe_key)
        unique.append(contact)
        if len(unique) == limit:
            break
    return unique


def _alert_order(alert: SafetyAlert) -> tuple[int, float]:
    return (-alert.severity.rank, -alert.created_at.timestamp())


class ProximityQueryService:
    __slots__ = ("_community", "_reports", "_users")

    def __init__(
        self,
        reports: ReportStore,
        community: CommunityStore,
        users: UserRepository,
    ) -> None:
        self._reports = reports
        self._community = community
        self._users = users

    async def find_nearby_contacts(
        self,
        country: CountryCode,
        coordinates: GeoPoint | None = None,
    ) -> list[EmergencyContact]:
        country_contacts = await self._reports.contacts_for_country(country)
        if coordinates is None:
            return dedupe_contacts(country_contacts)

        radius_m = CONTACT_RADIUS_KM * 1000
        located = geo.within_radius(
            await self._reports.located_contacts(),
            coordinates,
            radius_m,
            lambda c: geo.distance_to_area_km(coordinates, c.service_area) * 1000 if c.service_area else None,
        )
        # Stable sort keeps nearer contacts first among equal priorities.
        located.sort(key=lambda c: c.priority)

        contacts = dedupe_contacts(located + country_contacts)
        logger.info(
            "proximity.contacts_found",
            country=country.value,
            located=len(located),
            returned=len(contacts),
        )
        return contacts

    async def find_safety_alerts(
        self,
        caller_id: str,
        coordinates: GeoPoint | None = None,
        radius_km: float = DEFAULT_ALERT_RADIUS_KM,
        *,
        now: datetime | None = None,
    ) -> list[SafetyAlert]:
        now = now or datetime.now(UTC)
        alerts = [a for a in await self._reports.active_alerts() if a.is_live(now)]

        center = coordinates
        radius_m = radius_km * 1000
        if center is None:
            user = await self._users.get(caller_id)
            if user is not None and not user.current_location.point.is_unset:
                center = user.current_location.point
                radius_m = DEFAULT_ALERT_RADIUS_KM * 1000

        if center is not None:
            alerts = geo.points_within(alerts, center, radius_m, lambda a: a.location)

        alerts.sort(key=_alert_order)
        return alerts[:ALERT_LIMIT]

    async def find_safe_routes(
        self,
        start: GeoPoint,
        end: GeoPoint,
        mode: TravelMode = TravelMode.WALKING,
    ) -> list[SafeRoute]:
        routes = [
            route
            for route in await self._community.active_routes(mode)
            if geo.haversine_m(route.start_point, start) <= ROUTE_ENDPOINT_RADIUS_M
            or geo.haversine_m(route.end_point, end) <= ROUTE_ENDPOINT_RADIUS_M
        ]
        routes.sort(key=lambda r: (-r.safety_rating, -r.created_at.timestamp()))
        return routes[:ROUTE_LIMIT]

    async def find_high_severity_alerts_near(
        self,
        midpoint: GeoPoint,
        radius_km: float = ROUTE_ALERT_RADIUS_KM,
        *,
        now: datetime | None = None,
    ) -> list[SafetyAlert]:
        """High and critical active alerts on a spherical cap around *midpoint*.

        Advisory only: the cap around the midpoint does not follow the
        actual route corridor.
        """
        now = now or datetime.now(UTC)
        return [
            alert
            for alert in await self._reports.active_alerts()
            if alert.is_live(now)
            and alert.severity in _ROUTE_ALERT_SEVERITIES
            and geo.within_spherical_cap(alert.location, midpoint, radius_km)
        ]
