"""Community safety data: alerts, shared safe routes, and travel groups."""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from typing import Final, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field, model_validator

from src.models.enums import (
    AlertType,
    GroupStatus,
    MemberStatus,
    ReactionType,
    RouteDifficulty,
    Severity,
    TravelMode,
    VerificationStatus,
)
from src.models.geo import GeoPoint

# ---------------------------------------------------------------------------
# Safety alerts
# ---------------------------------------------------------------------------

ALERT_LIFETIME_HOURS: Final = MappingProxyType({
    Severity.LOW: 24,
    Severity.MEDIUM: 48,
    Severity.HIGH: 72,
    Severity.CRITICAL: 168,
})


def alert_lifetime(severity: Severity) -> timedelta:
    """How long an alert of *severity* stays visible.

    Raises ``KeyError`` for a severity without a configured lifetime.
    """
    return timedelta(hours=ALERT_LIFETIME_HOURS[severity])


class AlertReaction(BaseModel):
    user_id: str
    type: ReactionType
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SafetyAlert(BaseModel):
    model_config = {"frozen": False}

    alert_id: str = Field(default_factory=lambda: uuid4().hex)
    type: AlertType
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=10, max_length=500)
    severity: Severity = Severity.MEDIUM
    location: GeoPoint
    address: str | None = Field(default=None, max_length=200)
    reported_by: str
    verification_status: VerificationStatus = VerificationStatus.PENDING
    verified_by: str | None = None
    verified_at: datetime | None = None
    affected_radius_m: int = 1000
    is_active: bool = True
    reactions: list[AlertReaction] = Field(default_factory=list)
    media: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def _default_expiry(self) -> SafetyAlert:
        if self.expires_at is None:
            self.expires_at = self.created_at + alert_lifetime(self.severity)
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def reaction_counts(self) -> dict[str, int]:
        counts = Counter(r.type.value for r in self.reactions)
        return {kind.value: counts.get(kind.value, 0) for kind in ReactionType}

    def is_live(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(UTC)
        return self.is_active and self.expires_at is not None and self.expires_at > now

    def react(self, user_id: str, reaction: ReactionType) -> None:
        """Record *user_id*'s reaction, replacing any earlier one."""
        self.reactions = [r for r in self.reactions if r.user_id != user_id]
        self.reactions.append(AlertReaction(user_id=user_id, type=reaction))


# ---------------------------------------------------------------------------
# Safe routes
# ---------------------------------------------------------------------------


class Waypoint(BaseModel):
    point: GeoPoint
    description: str | None = None


class RouteRating(BaseModel):
    user_id: str
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=300)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SafeRoute(BaseModel):
    model_config = {"frozen": False}

    route_id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = Field(min_length=5, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    mode: TravelMode
    start_point: GeoPoint
    end_point: GeoPoint
    waypoints: list[Waypoint] = Field(default_factory=list)
    distance_m: float | None = Field(default=None, ge=0)
    estimated_duration_min: float | None = Field(default=None, ge=0)
    safety_rating: int = Field(default=3, ge=1, le=5)
    difficulty: RouteDifficulty = RouteDifficulty.MODERATE
    created_by: str
    ratings: list[RouteRating] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    is_active: bool = True
    times_used: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def average_rating(self) -> float:
        if not self.ratings:
            return float(self.safety_rating)
        return round(sum(r.rating for r in self.ratings) / len(self.ratings), 1)


# ---------------------------------------------------------------------------
# Travel groups
# ---------------------------------------------------------------------------


class GroupFull(ValueError):
    """Raised when a join would exceed ``max_members``."""


class GroupMember(BaseModel):
    user_id: str
    status: MemberStatus = MemberStatus.ACTIVE
    joined_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class GroupMessage(BaseModel):
    sender_id: str | None = None
    message: str = Field(max_length=500)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    is_system_message: bool = False


class GroupRequirements(BaseModel):
    min_age: int | None = Field(default=None, ge=0, le=100)
    max_age: int | None = Field(default=None, ge=0, le=120)
    gender: Literal["any", "male", "female", "non-binary"] = "any"
    experience: Literal["beginner", "intermediate", "advanced", "any"] = "any"
    languages: list[str] = Field(default_factory=list)


class TravelGroup(BaseModel):
    model_config = {"frozen": False}

    group_id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=10, max_length=500)
    destination: str = Field(min_length=2, max_length=100)
    start_date: datetime
    end_date: datetime
    max_members: int = Field(ge=2, le=50)
    leader_id: str
    members: list[GroupMember] = Field(default_factory=list)
    is_public: bool = True
    requirements: GroupRequirements | None = None
    activities: list[str] = Field(default_factory=list)
    meeting_point: GeoPoint | None = None
    chat: list[GroupMessage] = Field(default_factory=list)
    is_active: bool = True
    status: GroupStatus = GroupStatus.PLANNING
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def current_members(self) -> int:
        return sum(1 for m in self.members if m.status == MemberStatus.ACTIVE)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def available_spots(self) -> int:
        return self.max_members - self.current_members

    @property
    def is_full(self) -> bool:
        return self.available_spots <= 0

    def _member(self, user_id: str) -> GroupMember | None:
        return next((m for m in self.members if m.user_id == user_id), None)

    def add_member(self, user_id: str) -> None:
        """Add or re-activate *user_id*.

        Raises
        ------
        GroupFull
            If no spot is available.
        """
        existing = self._member(user_id)
        if existing is not None and existing.status == MemberStatus.ACTIVE:
            return
        if self.is_full:
            raise GroupFull("Group is full")

        if existing is not None:
            existing.status = MemberStatus.ACTIVE
            existing.joined_at = datetime.now(UTC)
        else:
            self.members.append(GroupMember(user_id=user_id))
        self.chat.append(GroupMessage(message="A new member has joined the group", is_system_message=True))

    def remove_member(
        self,
        user_id: str,
        reason: MemberStatus = MemberStatus.LEFT,
    ) -> bool:
        if reason not in (MemberStatus.LEFT, MemberStatus.REMOVED):
            raise ValueError(f"{reason.value} is not a way to leave a group")
        member = self._member(user_id)
        if member is None or member.status != MemberStatus.ACTIVE:
            return False
        member.status = reason
        self.chat.append(GroupMessage(message=f"A member has {reason.value} the group", is_system_message=True))
        if user_id == self.leader_id:
            self._promote_next_leader()
        return True

    def _promote_next_leader(self) -> None:
        # The first active member in list order takes over.
        successor = next((m for m in self.members if m.status == MemberStatus.ACTIVE), None)
        if successor is None:
            return
        self.leader_id = successor.user_id
        self.chat.append(GroupMessage(message="The group has a new leader", is_system_message=True))
