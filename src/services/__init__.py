"""Travault service layer: persistence, dispatch, proximity and realtime relay.

``src.services.accounts`` is not re-exported here because it depends on
``src.middleware.auth``, which itself imports from this package.
"""

from __future__ import annotations

from src.services.community import CommunityStore
from src.services.emergency_dispatch import (
    COUNTRY_EMERGENCY_SERVICES,
    CheckInOutcome,
    DispatchOutcome,
    EmergencyDispatchService,
    country_services,
)
from src.services.errors import (
    DispatchError,
    FieldError,
    Forbidden,
    InternalError,
    InvalidTransition,
    NotFound,
    TravaultError,
    Unauthorized,
    ValidationFailed,
)
from src.services.notifications import Channel, DispatchReceipt, NotificationDispatcher
from src.services.proximity import ProximityQueryService
from src.services.realtime import EventBroker, Subscription
from src.services.report_store import ReportPage, ReportStore
from src.services.store import (
    DocumentStore,
    InMemoryDocumentStore,
    RedisDocumentStore,
    open_document_store,
)
from src.services.users import UserRepository
from src.services.validation import Validated, validate

__all__ = [
    "COUNTRY_EMERGENCY_SERVICES",
    "Channel",
    "CheckInOutcome",
    "CommunityStore",
    "DispatchError",
    "DispatchOutcome",
    "DispatchReceipt",
    "DocumentStore",
    "EmergencyDispatchService",
    "EventBroker",
    "FieldError",
    "Forbidden",
    "InMemoryDocumentStore",
    "InternalError",
    "InvalidTransition",
    "NotFound",
    "NotificationDispatcher",
    "ProximityQueryService",
    "RedisDocumentStore",
    "ReportPage",
    "ReportStore",
    "Subscription",
    "TravaultError",
    "Unauthorized",
    "UserRepository",
    "Validated",
    "ValidationFailed",
    "country_services",
    "open_document_store",
    "validate",
]
