"""Validated input structs, one per write operation.

Request bodies are parsed into these models by FastAPI and by
``src.services.validation.validate`` for direct service calls. String
fields are trimmed before length checks.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from src.models.enums import (
    AlertType,
    CheckInStatus,
    CountryCode,
    EmergencyType,
    ReactionType,
    ReportStatus,
    Severity,
    TravelMode,
    UpdateTag,
)
from src.models.geo import GeoPoint
from src.models.safety import GroupRequirements

_STRIP = {"str_strip_whitespace": True}


def _loose_point(latitude: float | None, longitude: float | None) -> GeoPoint | None:
    """Point from optional coordinates; ``None`` unless both are present and in range."""
    if latitude is None or longitude is None:
        return None
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        return None
    return GeoPoint(longitude=longitude, latitude=latitude)


class LatLng(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    def to_point(self) -> GeoPoint:
        return GeoPoint(longitude=self.longitude, latitude=self.latitude)


# ---------------------------------------------------------------------------
# Emergency
# ---------------------------------------------------------------------------


class EmergencyAlertInput(BaseModel):
    model_config = _STRIP

    type: EmergencyType
    severity: Severity
    message: str | None = Field(default=None, max_length=500)
    latitude: float | None = None
    longitude: float | None = None

    @property
    def coordinates(self) -> GeoPoint | None:
        return _loose_point(self.latitude, self.longitude)


class CheckInInput(BaseModel):
    model_config = _STRIP

    status: CheckInStatus
    message: str | None = Field(default=None, max_length=300)
    latitude: float | None = None
    longitude: float | None = None

    @property
    def coordinates(self) -> GeoPoint | None:
        return _loose_point(self.latitude, self.longitude)


class ReportUpdateInput(BaseModel):
    model_config = _STRIP

    status: ReportStatus | None = None
    resolution: str | None = Field(default=None, max_length=500)

    @field_validator("status")
    @classmethod
    def _not_failed(cls, value: ReportStatus | None) -> ReportStatus | None:
        # ``failed`` is set by the dispatch workflow only.
        if value == ReportStatus.FAILED:
            raise ValueError("Invalid status")
        return value


class AuditNoteInput(BaseModel):
    model_config = _STRIP

    message: str = Field(min_length=1, max_length=300)
    tag: UpdateTag = UpdateTag.INFO


# ---------------------------------------------------------------------------
# Safety
# ---------------------------------------------------------------------------


class SafetyAlertInput(BaseModel):
    model_config = _STRIP

    type: AlertType
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=10, max_length=500)
    severity: Severity
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str | None = Field(default=None, max_length=200)
    media: list[str] = Field(default_factory=list, max_length=10)


class ReactionInput(BaseModel):
    type: ReactionType


class WaypointInput(LatLng):
    description: str | None = None


class SafeRouteInput(BaseModel):
    model_config = _STRIP

    name: str = Field(min_length=5, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    mode: TravelMode
    start_point: LatLng
    end_point: LatLng
    waypoints: list[WaypointInput] = Field(default_factory=list)
    estimated_duration: float | None = Field(default=None, ge=0)
    distance: float | None = Field(default=None, ge=0)
    tags: list[str] = Field(default_factory=list)


class RouteRatingInput(BaseModel):
    model_config = _STRIP

    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=300)


class TravelGroupInput(BaseModel):
    model_config = _STRIP

    name: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=10, max_length=500)
    destination: str = Field(min_length=2, max_length=100)
    start_date: datetime
    end_date: datetime
    max_members: int = Field(ge=2, le=50)
    is_public: bool = True
    requirements: GroupRequirements | None = None
    activities: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_dates(self) -> TravelGroupInput:
        start = _aware(self.start_date)
        end = _aware(self.end_date)
        if start >= end:
            raise ValueError("End date must be after start date")
        if start < datetime.now(UTC):
            raise ValueError("Start date cannot be in the past")
        self.start_date, self.end_date = start, end
        return self


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class LocationUpdateInput(BaseModel):
    model_config = _STRIP

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str | None = Field(default=None, max_length=200)

    def to_point(self) -> GeoPoint:
        return GeoPoint(longitude=self.longitude, latitude=self.latitude)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class PersonalContactInput(BaseModel):
    model_config = _STRIP

    name: str = Field(min_length=1, max_length=100)
    phone: str = Field(default="", max_length=30)
    relationship: str = "Family"


class RegisterInput(BaseModel):
    model_config = _STRIP

    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    phone: str = Field(pattern=r"^\+?[\d\s\-()]+$")
    country: CountryCode
    emergency_contact: PersonalContactInput | None = None


class LoginInput(BaseModel):
    model_config = _STRIP

    email: EmailStr
    password: str = Field(min_length=1)


class VerifyAccountInput(BaseModel):
    model_config = _STRIP

    code: str = Field(min_length=1, max_length=128)
