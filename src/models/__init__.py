from src.models.emergency import (
    ALLOWED_TRANSITIONS,
    EmergencyContact,
    EmergencyReport,
    ReportUpdate,
    TransitionRejected,
)
from src.models.enums import (
    AlertType,
    Availability,
    CheckInStatus,
    ContactType,
    CountryCode,
    EmergencyType,
    GroupStatus,
    MemberStatus,
    ReactionType,
    ReportStatus,
    RouteDifficulty,
    Severity,
    TravelMode,
    UpdateTag,
    UserRole,
    VerificationStatus,
)
from src.models.geo import CurrentLocation, GeoPoint, ServiceArea
from src.models.safety import (
    ALERT_LIFETIME_HOURS,
    AlertReaction,
    GroupFull,
    GroupMember,
    GroupMessage,
    GroupRequirements,
    RouteRating,
    SafeRoute,
    SafetyAlert,
    TravelGroup,
    Waypoint,
    alert_lifetime,
)
from src.models.user import PersonalContact, User

__all__ = [
    "ALERT_LIFETIME_HOURS",
    "ALLOWED_TRANSITIONS",
    "AlertReaction",
    "AlertType",
    "Availability",
    "CheckInStatus",
    "ContactType",
    "CountryCode",
    "CurrentLocation",
    "EmergencyContact",
    "EmergencyReport",
    "EmergencyType",
    "GeoPoint",
    "GroupFull",
    "GroupMember",
    "GroupMessage",
    "GroupRequirements",
    "GroupStatus",
    "MemberStatus",
    "PersonalContact",
    "ReactionType",
    "ReportStatus",
    "ReportUpdate",
    "RouteDifficulty",
    "RouteRating",
    "SafeRoute",
    "SafetyAlert",
    "ServiceArea",
    "Severity",
    "TransitionRejected",
    "TravelGroup",
    "TravelMode",
    "UpdateTag",
    "User",
    "UserRole",
    "VerificationStatus",
    "Waypoint",
    "alert_lifetime",
]
