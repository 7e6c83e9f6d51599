"""Emergency API endpoints.

Raising an alert always leaves a persisted report behind. When the
alert channels fail the endpoint answers 500 but still returns the
``emergencyId`` so the traveller can follow up.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import ORJSONResponse

from src.middleware.auth import current_user
from src.models.emergency import EmergencyContact, EmergencyReport
from src.models.enums import CountryCode, ReportStatus
from src.models.geo import GeoPoint
from src.models.request import AuditNoteInput, CheckInInput, EmergencyAlertInput, ReportUpdateInput
from src.models.user import User
from src.services.emergency_dispatch import CALLER_INSTRUCTIONS, EmergencyDispatchService, country_services
from src.services.errors import FieldError, ValidationFailed
from src.services.proximity import ProximityQueryService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/emergency", tags=["emergency"])


def _dispatch(request: Request) -> EmergencyDispatchService:
    return request.app.state.emergency_dispatch


def _contact_view(contact: EmergencyContact) -> dict:
    return {
        "id": contact.contact_id,
        "name": contact.name,
        "type": contact.type.value,
        "phone": contact.phone,
        "description": contact.description,
        "availability": contact.availability.value,
    }


def _report_view(report: EmergencyReport) -> dict:
    return report.model_dump(mode="json")


@router.post("/alert", status_code=201)
async def raise_alert(
    body: EmergencyAlertInput,
    request: Request,
    user: User = Depends(current_user),
) -> ORJSONResponse:
    outcome = await _dispatch(request).raise_emergency(user.user_id, body)

    if not outcome.dispatched:
        return ORJSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": (
                    "Emergency recorded but alert sending failed. "
                    "Please call local emergency services directly."
                ),
                "emergencyId": outcome.report_id,
            },
        )

    return ORJSONResponse(
        status_code=201,
        content={
            "success": True,
            "message": "Emergency alert sent successfully",
            "emergencyId": outcome.report_id,
            "estimatedResponse": outcome.estimated_response,
        },
    )


@router.get("/contacts")
async def nearby_contacts(
    request: Request,
    latitude: float | None = Query(default=None, ge=-90, le=90),
    longitude: float | None = Query(default=None, ge=-180, le=180),
    country: str | None = None,
    user: User = Depends(current_user),
) -> dict:
    """Ranked emergency contacts for a country, location matches first."""
    if country:
        try:
            search_country = CountryCode(country.strip().upper())
        except ValueError as exc:
            raise ValidationFailed([FieldError(field="country", message="Unsupported country code")]) from exc
    else:
        search_country = user.country

    point = None
    if latitude is not None and longitude is not None:
        point = GeoPoint(longitude=longitude, latitude=latitude)

    proximity: ProximityQueryService = request.app.state.proximity
    contacts = await proximity.find_nearby_contacts(search_country, point)
    return {
        "success": True,
        "country": search_country.value,
        "contacts": [_contact_view(c) for c in contacts],
    }


@router.get("/services/{country}")
async def emergency_services(country: str, user: User = Depends(current_user)) -> dict:
    code, services = country_services(country)
    return {
        "success": True,
        "country": code.value,
        "services": dict(services),
        "instructions": dict(CALLER_INSTRUCTIONS),
    }


@router.post("/check-in")
async def check_in(
    body: CheckInInput,
    request: Request,
    user: User = Depends(current_user),
) -> dict:
    outcome = await _dispatch(request).check_in(user.user_id, body)
    if outcome.report is None:
        return {
            "success": True,
            "message": "Safety check-in recorded successfully",
            "checkIn": outcome.as_dict(),
        }
    return {
        "success": True,
        "message": "Emergency check-in recorded. Help is being arranged.",
        "emergencyId": outcome.emergency_id,
        "checkIn": outcome.as_dict(),
    }


@router.get("/reports")
async def list_reports(
    request: Request,
    status: ReportStatus | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(current_user),
) -> dict:
    result = await _dispatch(request).list_reports(user.user_id, status=status, page=page, limit=limit)
    return {
        "success": True,
        "reports": [_report_view(r) for r in result.reports],
        "pagination": {"current": result.page, "pages": result.pages, "total": result.total},
    }


@router.put("/reports/{report_id}")
async def update_report(
    report_id: str,
    body: ReportUpdateInput,
    request: Request,
    user: User = Depends(current_user),
) -> dict:
    report = await _dispatch(request).update_report(user.user_id, report_id, body)
    return {
        "success": True,
        "message": "Emergency report updated successfully",
        "report": _report_view(report),
    }


@router.post("/reports/{report_id}/updates", status_code=201)
async def add_report_update(
    report_id: str,
    body: AuditNoteInput,
    request: Request,
    user: User = Depends(current_user),
) -> dict:
    entry = await _dispatch(request).add_update(user.user_id, report_id, body)
    return {"success": True, "update": entry.model_dump(mode="json")}
