"""Emergency reports, their audit trail, and reference emergency contacts.

A report is the durable record of an incident. Notification attempts
only move it through its status machine; nothing ever deletes it.

Status machine::

    active ──► dispatched ──► responded ──► resolved
      │            │              │
      └──► failed ◄┘              │
             │                    │
    (any non-terminal) ──► cancelled | false_alarm

``resolved``, ``cancelled`` and ``false_alarm`` are terminal.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Final
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field

from src.models.enums import (
    Availability,
    ContactType,
    CountryCode,
    EmergencyType,
    ReportStatus,
    Severity,
    UpdateTag,
)
from src.models.geo import GeoPoint, ServiceArea

_ERROR_MESSAGE_LIMIT: Final[int] = 200

ALLOWED_TRANSITIONS: Final[dict[ReportStatus, frozenset[ReportStatus]]] = {
    ReportStatus.ACTIVE: frozenset({
        ReportStatus.DISPATCHED,
        ReportStatus.FAILED,
        ReportStatus.CANCELLED,
        ReportStatus.FALSE_ALARM,
    }),
    ReportStatus.DISPATCHED: frozenset({
        ReportStatus.RESPONDED,
        ReportStatus.FAILED,
        ReportStatus.CANCELLED,
        ReportStatus.FALSE_ALARM,
    }),
    ReportStatus.RESPONDED: frozenset({
        ReportStatus.RESOLVED,
        ReportStatus.CANCELLED,
        ReportStatus.FALSE_ALARM,
    }),
    # Help can still arrive by other means after the alert channel failed.
    ReportStatus.FAILED: frozenset({
        ReportStatus.RESPONDED,
        ReportStatus.CANCELLED,
        ReportStatus.FALSE_ALARM,
    }),
    ReportStatus.RESOLVED: frozenset(),
    ReportStatus.CANCELLED: frozenset(),
    ReportStatus.FALSE_ALARM: frozenset(),
}


class TransitionRejected(ValueError):
    """Raised by :meth:`EmergencyReport.transition_to` on an illegal move."""

    def __init__(self, current: ReportStatus, requested: ReportStatus) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"cannot move report from {current.value} to {requested.value}")


class ReportUpdate(BaseModel):
    """One entry of a report's audit trail."""

    message: str = Field(min_length=1, max_length=300)
    tag: UpdateTag = UpdateTag.INFO
    author_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class EmergencyReport(BaseModel):
    model_config = {"frozen": False}

    report_id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    type: EmergencyType
    severity: Severity
    priority: Severity = Severity.MEDIUM
    message: str | None = Field(default=None, max_length=500)
    location: GeoPoint
    address: str | None = Field(default=None, max_length=200)
    status: ReportStatus = ReportStatus.ACTIVE

    responded_by: str | None = None
    dispatched_at: datetime | None = None
    responded_at: datetime | None = None
    resolved_at: datetime | None = None
    resolution: str | None = Field(default=None, max_length=500)
    error_message: str | None = None
    external_report_id: str | None = None
    estimated_response: str | None = None

    updates: list[ReportUpdate] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def response_time_minutes(self) -> int | None:
        if self.responded_at is None:
            return None
        return round((self.responded_at - self.created_at).total_seconds() / 60)

    def can_transition_to(self, status: ReportStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, status: ReportStatus, *, at: datetime | None = None) -> None:
        """Move to *status*, stamping the matching timestamp.

        Raises
        ------
        TransitionRejected
            If the move is not allowed from the current status.
        """
        if not self.can_transition_to(status):
            raise TransitionRejected(self.status, status)

        now = at or datetime.now(UTC)
        self.status = status
        if status == ReportStatus.DISPATCHED:
            self.dispatched_at = now
        elif status == ReportStatus.RESPONDED:
            self.responded_at = now
        elif status.is_terminal:
            self.resolved_at = now
        self.updated_at = now

    def mark_failed(self, error: str) -> None:
        self.transition_to(ReportStatus.FAILED)
        self.error_message = error[:_ERROR_MESSAGE_LIMIT]

    def add_update(
        self,
        message: str,
        tag: UpdateTag = UpdateTag.INFO,
        author_id: str | None = None,
    ) -> ReportUpdate:
        """Append to the audit trail; allowed in every state."""
        entry = ReportUpdate(message=message, tag=tag, author_id=author_id)
        self.updates.append(entry)
        self.updated_at = entry.timestamp
        return entry


class EmergencyContact(BaseModel):
    """Reference entry for a police station, hospital, embassy, etc."""

    contact_id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = Field(max_length=100)
    type: ContactType
    phone: str
    email: str | None = None
    country: CountryCode
    region: str | None = None
    city: str | None = None
    service_area: ServiceArea | None = None
    description: str | None = Field(default=None, max_length=300)
    availability: Availability = Availability.ALWAYS
    languages: list[str] = Field(default_factory=list)
    priority: int = Field(default=1, ge=1, le=10)
    is_active: bool = True
    last_verified: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def dedupe_key(self) -> tuple[str, str]:
        return (self.phone, self.type.value)
