"""Community safety endpoints: alerts, safe routes, travel groups, location.

Reads need an authenticated caller; creating alerts, routes and groups
additionally needs a verified account.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Query, Request

from src.middleware.auth import current_user, verified_user
from src.models.enums import MemberStatus, TravelMode
from src.models.geo import GeoPoint
from src.models.request import (
    LocationUpdateInput,
    ReactionInput,
    RouteRatingInput,
    SafeRouteInput,
    SafetyAlertInput,
    TravelGroupInput,
)
from src.models.safety import GroupMember, SafeRoute, SafetyAlert, TravelGroup, Waypoint
from src.models.user import User
from src.services.community import CommunityStore
from src.services.errors import FieldError, ValidationFailed
from src.services.proximity import ProximityQueryService
from src.services.realtime import ALERTS, EventBroker, contacts_topic, make_event
from src.services.report_store import ReportStore
from src.services.users import UserRepository

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/safety", tags=["safety"])


def _alert_view(alert: SafetyAlert) -> dict:
    return alert.model_dump(mode="json", exclude={"reactions"})


# ---------------------------------------------------------------------------
# Safety alerts
# ---------------------------------------------------------------------------


@router.get("/alerts")
async def list_alerts(
    request: Request,
    latitude: float | None = Query(default=None, ge=-90, le=90),
    longitude: float | None = Query(default=None, ge=-180, le=180),
    radius: float = Query(default=50, gt=0, le=20000),
    user: User = Depends(current_user),
) -> dict:
    point = None
    if latitude is not None and longitude is not None:
        point = GeoPoint(longitude=longitude, latitude=latitude)

    proximity: ProximityQueryService = request.app.state.proximity
    alerts = await proximity.find_safety_alerts(user.user_id, point, radius)
    return {"success": True, "count": len(alerts), "alerts": [_alert_view(a) for a in alerts]}


@router.post("/alerts", status_code=201)
async def create_alert(
    body: SafetyAlertInput,
    request: Request,
    user: User = Depends(verified_user),
) -> dict:
    reports: ReportStore = request.app.state.reports
    alert = await reports.create_alert(
        SafetyAlert(
            type=body.type,
            title=body.title,
            description=body.description,
            severity=body.severity,
            location=GeoPoint(longitude=body.longitude, latitude=body.latitude),
            address=body.address,
            reported_by=user.user_id,
            media=body.media,
        )
    )

    events: EventBroker = request.app.state.events
    events.publish(
        ALERTS,
        make_event(
            "alert.created",
            alert_id=alert.alert_id,
            type=alert.type.value,
            severity=alert.severity.value,
            title=alert.title,
            coordinates=alert.location.coordinates,
        ),
    )
    return {"success": True, "message": "Safety alert reported successfully", "alert": _alert_view(alert)}


@router.post("/alerts/{alert_id}/reactions")
async def react_to_alert(
    alert_id: str,
    body: ReactionInput,
    request: Request,
    user: User = Depends(current_user),
) -> dict:
    reports: ReportStore = request.app.state.reports
    alert = await reports.get_alert(alert_id)
    alert.react(user.user_id, body.type)
    await reports.save_alert(alert)
    return {"success": True, "reaction_counts": alert.reaction_counts}


# ---------------------------------------------------------------------------
# Safe routes
# ---------------------------------------------------------------------------


@router.get("/routes")
async def find_routes(
    request: Request,
    start_lat: float | None = Query(default=None, alias="startLat", ge=-90, le=90),
    start_lng: float | None = Query(default=None, alias="startLng", ge=-180, le=180),
    end_lat: float | None = Query(default=None, alias="endLat", ge=-90, le=90),
    end_lng: float | None = Query(default=None, alias="endLng", ge=-180, le=180),
    mode: TravelMode = TravelMode.WALKING,
    user: User = Depends(current_user),
) -> dict:
    if start_lat is None or start_lng is None or end_lat is None or end_lng is None:
        raise ValidationFailed(
            [FieldError(field="coordinates", message="Start and end coordinates are required")],
            "Start and end coordinates are required",
        )

    start = GeoPoint(longitude=start_lng, latitude=start_lat)
    end = GeoPoint(longitude=end_lng, latitude=end_lat)
    proximity: ProximityQueryService = request.app.state.proximity
    routes = await proximity.find_safe_routes(start, end, mode)
    alerts = await proximity.find_high_severity_alerts_near(GeoPoint.midpoint(start, end))

    return {
        "success": True,
        "routes": [r.model_dump(mode="json", exclude={"ratings"}) for r in routes],
        "alerts": [_alert_view(a) for a in alerts],
        "routeInfo": {
            "start": {"lat": start_lat, "lng": start_lng},
            "end": {"lat": end_lat, "lng": end_lng},
            "mode": mode.value,
        },
    }


@router.post("/routes", status_code=201)
async def create_route(
    body: SafeRouteInput,
    request: Request,
    user: User = Depends(verified_user),
) -> dict:
    community: CommunityStore = request.app.state.community
    route = await community.create_route(
        SafeRoute(
            name=body.name,
            description=body.description,
            mode=body.mode,
            start_point=body.start_point.to_point(),
            end_point=body.end_point.to_point(),
            waypoints=[Waypoint(point=w.to_point(), description=w.description) for w in body.waypoints],
            distance_m=body.distance,
            estimated_duration_min=body.estimated_duration,
            tags=body.tags,
            created_by=user.user_id,
        )
    )
    return {"success": True, "message": "Safe route added successfully", "route": route.model_dump(mode="json")}


@router.post("/routes/{route_id}/ratings")
async def rate_route(
    route_id: str,
    body: RouteRatingInput,
    request: Request,
    user: User = Depends(current_user),
) -> dict:
    community: CommunityStore = request.app.state.community
    route = await community.rate_route(route_id, user.user_id, body.rating, body.comment)
    return {"success": True, "average_rating": route.average_rating, "ratings": len(route.ratings)}


# ---------------------------------------------------------------------------
# Travel groups
# ---------------------------------------------------------------------------


@router.get("/groups")
async def list_groups(
    request: Request,
    destination: str | None = None,
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    user: User = Depends(current_user),
) -> dict:
    community: CommunityStore = request.app.state.community
    groups = await community.list_groups(destination=destination, start_after=start_date, end_before=end_date)
    return {"success": True, "count": len(groups), "groups": [g.model_dump(mode="json") for g in groups]}


@router.post("/groups", status_code=201)
async def create_group(
    body: TravelGroupInput,
    request: Request,
    user: User = Depends(verified_user),
) -> dict:
    community: CommunityStore = request.app.state.community
    group = await community.create_group(
        TravelGroup(
            name=body.name,
            description=body.description,
            destination=body.destination,
            start_date=body.start_date,
            end_date=body.end_date,
            max_members=body.max_members,
            is_public=body.is_public,
            requirements=body.requirements,
            activities=body.activities,
            leader_id=user.user_id,
            members=[GroupMember(user_id=user.user_id, status=MemberStatus.ACTIVE)],
        )
    )
    return {"success": True, "message": "Travel group created successfully", "group": group.model_dump(mode="json")}


@router.post("/groups/{group_id}/join")
async def join_group(group_id: str, request: Request, user: User = Depends(current_user)) -> dict:
    community: CommunityStore = request.app.state.community
    group = await community.join_group(group_id, user.user_id)
    return {"success": True, "message": "Joined travel group", "group": group.model_dump(mode="json")}


@router.post("/groups/{group_id}/leave")
async def leave_group(group_id: str, request: Request, user: User = Depends(current_user)) -> dict:
    community: CommunityStore = request.app.state.community
    group = await community.leave_group(group_id, user.user_id)
    return {"success": True, "message": "Left travel group", "group": group.model_dump(mode="json")}


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------


@router.put("/location")
async def update_location(
    body: LocationUpdateInput,
    request: Request,
    user: User = Depends(current_user),
) -> dict:
    users: UserRepository = request.app.state.users
    updated = await users.update_location(user.user_id, body.to_point(), body.address)
    location = updated.current_location

    events: EventBroker = request.app.state.events
    events.publish(
        contacts_topic(user.user_id),
        make_event(
            "location.updated",
            user_id=user.user_id,
            coordinates=location.point.coordinates,
            address=location.address,
        ),
    )
    return {
        "success": True,
        "message": "Location updated successfully",
        "location": {
            "type": "Point",
            "coordinates": location.point.coordinates,
            "address": location.address,
            "last_updated": location.last_updated.isoformat(),
        },
    }
