"""Traveller accounts.

A user carries the personal emergency contact that receives SMS alerts
and the last known location that backs every "near me" query when the
caller does not send coordinates explicitly.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field

from src.models.enums import CountryCode, UserRole
from src.models.geo import CurrentLocation, GeoPoint


def _digits(phone: str) -> str:
    return "".join(ch for ch in phone if ch.isdigit())


class PersonalContact(BaseModel):
    """The person to text when the user raises an emergency."""

    name: str = ""
    phone: str = ""
    relationship: str = "Family"

    @property
    def can_receive_sms(self) -> bool:
        # A contact without a phone is kept on file but never texted.
        return bool(self.phone.strip())

    def matches_phone(self, phone: str) -> bool:
        """True when *phone* is this contact's number, ignoring formatting."""
        mine = _digits(self.phone)
        return bool(mine) and mine == _digits(phone)


class User(BaseModel):
    model_config = {"frozen": False}

    user_id: str = Field(default_factory=lambda: uuid4().hex)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: str
    phone: str
    country: CountryCode
    password_hash: str = ""

    emergency_contact: PersonalContact | None = None
    current_location: CurrentLocation = Field(default_factory=CurrentLocation)

    role: UserRole = UserRole.USER
    is_verified: bool = False
    # SHA-256 of the outstanding verification code; the code itself is never stored.
    verification_code_hash: str | None = None
    verification_expires: datetime | None = None
    is_active: bool = True
    safety_score: int = Field(default=50, ge=0, le=100)

    login_attempts: int = 0
    lock_until: datetime | None = None
    last_login: datetime | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_locked(self) -> bool:
        return self.lock_until is not None and self.lock_until > datetime.now(UTC)

    def update_location(self, point: GeoPoint, address: str | None = None) -> None:
        """Move the user, keeping the previous address when none is given."""
        self.current_location = CurrentLocation(
            point=point,
            address=address if address is not None else self.current_location.address,
            last_updated=datetime.now(UTC),
        )
        self.updated_at = datetime.now(UTC)

    def public_view(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "country": self.country.value,
            "role": self.role.value,
            "is_verified": self.is_verified,
            "emergency_contact": (
                self.emergency_contact.model_dump() if self.emergency_contact else None
            ),
            "current_location": {
                "coordinates": self.current_location.point.coordinates,
                "address": self.current_location.address,
                "last_updated": self.current_location.last_updated.isoformat(),
            },
        }
