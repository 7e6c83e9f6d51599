from __future__ import annotations

from enum import StrEnum


class EmergencyType(StrEnum):
    __slots__ = ()

    MEDICAL = "medical"
    CRIME = "crime"
    ACCIDENT = "accident"
    NATURAL_DISASTER = "natural_disaster"
    GENERAL = "general"


class Severity(StrEnum):
    __slots__ = ()

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordinal used for ``severity descending`` ordering."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class ReportStatus(StrEnum):
    __slots__ = ()

    ACTIVE = "active"
    DISPATCHED = "dispatched"
    RESPONDED = "responded"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    FALSE_ALARM = "false_alarm"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ReportStatus.RESOLVED, ReportStatus.CANCELLED, ReportStatus.FALSE_ALARM)


class UpdateTag(StrEnum):
    __slots__ = ()

    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    ERROR = "error"


class CheckInStatus(StrEnum):
    __slots__ = ()

    SAFE = "safe"
    CONCERN = "concern"
    HELP_NEEDED = "help_needed"


class AlertType(StrEnum):
    __slots__ = ()

    CRIME = "crime"
    NATURAL_DISASTER = "natural_disaster"
    HEALTH_EMERGENCY = "health_emergency"
    TRAFFIC = "traffic"
    PROTEST = "protest"
    TERRORISM = "terrorism"
    OTHER = "other"


class VerificationStatus(StrEnum):
    __slots__ = ()

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"


class ReactionType(StrEnum):
    __slots__ = ()

    HELPFUL = "helpful"
    CONFIRMED = "confirmed"
    OUTDATED = "outdated"
    SPAM = "spam"


class ContactType(StrEnum):
    __slots__ = ()

    POLICE = "police"
    FIRE = "fire"
    MEDICAL = "medical"
    COAST_GUARD = "coast_guard"
    MOUNTAIN_RESCUE = "mountain_rescue"
    GENERAL = "general"
    EMBASSY = "embassy"
    TOURIST_POLICE = "tourist_police"


class Availability(StrEnum):
    __slots__ = ()

    ALWAYS = "24/7"
    BUSINESS_HOURS = "business_hours"
    EMERGENCY_ONLY = "emergency_only"


class TravelMode(StrEnum):
    __slots__ = ()

    WALKING = "walking"
    DRIVING = "driving"
    CYCLING = "cycling"
    PUBLIC_TRANSPORT = "public_transport"


class RouteDifficulty(StrEnum):
    __slots__ = ()

    EASY = "easy"
    MODERATE = "moderate"
    DIFFICULT = "difficult"


class MemberStatus(StrEnum):
    __slots__ = ()

    ACTIVE = "active"
    PENDING = "pending"
    LEFT = "left"
    REMOVED = "removed"


class GroupStatus(StrEnum):
    __slots__ = ()

    PLANNING = "planning"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CountryCode(StrEnum):
    __slots__ = ()

    US = "US"
    UK = "UK"
    CA = "CA"
    AU = "AU"
    DE = "DE"
    FR = "FR"
    JP = "JP"
    IN = "IN"
    BR = "BR"
    MX = "MX"


class UserRole(StrEnum):
    """Account roles; ``responder`` and ``admin`` are granted by operators."""

    __slots__ = ()

    USER = "user"
    RESPONDER = "responder"
    ADMIN = "admin"

    @property
    def receives_emergencies(self) -> bool:
        return self in (UserRole.RESPONDER, UserRole.ADMIN)
