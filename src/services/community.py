"""Community content shared between travellers: safe routes and travel groups."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Final

import structlog

from src.models.enums import TravelMode
from src.models.safety import GroupFull, RouteRating, SafeRoute, TravelGroup
from src.services.errors import FieldError, NotFound, ValidationFailed
from src.services.store import DocumentStore

logger = structlog.get_logger(__name__)

ROUTES: Final[str] = "safe_routes"
GROUPS: Final[str] = "travel_groups"

_GROUP_LIST_LIMIT: Final[int] = 20


class CommunityStore:
    __slots__ = ("_store",)

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # -- Safe routes -------------------------------------------------------

    async def create_route(self, route: SafeRoute) -> SafeRoute:
        await self._store.insert(ROUTES, route.route_id, route.model_dump(mode="json"))
        logger.info("routes.created", route_id=route.route_id, mode=route.mode.value)
        return route

    async def get_route(self, route_id: str) -> SafeRoute:
        raw = await self._store.get(ROUTES, route_id)
        if raw is None:
            raise NotFound("Safe route not found")
        return SafeRoute.model_validate(raw)

    async def save_route(self, route: SafeRoute) -> SafeRoute:
        await self._store.replace(ROUTES, route.route_id, route.model_dump(mode="json"))
        return route

    async def rate_route(
        self,
        route_id: str,
        user_id: str,
        rating: int,
        comment: str | None = None,
    ) -> SafeRoute:
        """Record *user_id*'s rating, replacing an earlier one."""
        route = await self.get_route(route_id)
        route.ratings = [r for r in route.ratings if r.user_id != user_id]
        route.ratings.append(RouteRating(user_id=user_id, rating=rating, comment=comment))
        await self.save_route(route)
        return route

    async def active_routes(self, mode: TravelMode) -> list[SafeRoute]:
        docs = await self._store.find(
            ROUTES,
            lambda doc: doc.get("mode") == mode.value and bool(doc.get("is_active")),
        )
        return [SafeRoute.model_validate(doc) for doc in docs]

    # -- Travel groups -----------------------------------------------------

    async def create_group(self, group: TravelGroup) -> TravelGroup:
        await self._store.insert(GROUPS, group.group_id, group.model_dump(mode="json"))
        logger.info("groups.created", group_id=group.group_id, destination=group.destination)
        return group

    async def get_group(self, group_id: str) -> TravelGroup:
        raw = await self._store.get(GROUPS, group_id)
        if raw is None:
            raise NotFound("Travel group not found")
        return TravelGroup.model_validate(raw)

    async def save_group(self, group: TravelGroup) -> TravelGroup:
        await self._store.replace(GROUPS, group.group_id, group.model_dump(mode="json"))
        return group

    async def list_groups(
        self,
        *,
        destination: str | None = None,
        start_after: datetime | None = None,
        end_before: datetime | None = None,
    ) -> list[TravelGroup]:
        """Public, active groups, newest first.

        ``start_after`` defaults to now so past trips are hidden.
        """
        lower = _aware(start_after) if start_after else datetime.now(UTC)
        end_before = _aware(end_before) if end_before else None
        needle = destination.strip().lower() if destination else None

        docs = await self._store.find(
            GROUPS,
            lambda doc: bool(doc.get("is_active")) and bool(doc.get("is_public")),
        )
        groups: list[TravelGroup] = []
        for doc in docs:
            group = TravelGroup.model_validate(doc)
            if group.start_date < lower:
                continue
            if end_before is not None and group.end_date > end_before:
                continue
            if needle and needle not in group.destination.lower():
                continue
            groups.append(group)

        groups.sort(key=lambda g: g.created_at, reverse=True)
        return groups[:_GROUP_LIST_LIMIT]

    async def join_group(self, group_id: str, user_id: str) -> TravelGroup:
        group = await self.get_group(group_id)
        if not group.is_active:
            raise NotFound("Travel group not found")
        try:
            group.add_member(user_id)
        except GroupFull as exc:
            raise ValidationFailed([FieldError(field="group", message=str(exc))], "Group is full") from exc
        await self.save_group(group)
        logger.info("groups.member_joined", group_id=group_id, user_id=user_id)
        return group

    async def leave_group(self, group_id: str, user_id: str) -> TravelGroup:
        group = await self.get_group(group_id)
        if group.remove_member(user_id):
            await self.save_group(group)
            logger.info("groups.member_left", group_id=group_id, user_id=user_id)
        return group


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
