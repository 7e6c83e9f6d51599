"""WebSocket relay for live updates.

Clients connect to ``/api/v1/ws?token=<bearer token>``. Each socket is
subscribed to the caller's personal topic and may send JSON frames::

    {"type": "location_update", "latitude": .., "longitude": .., "address": ..}
    {"type": "emergency_alert", "emergency_type": .., "severity": .., "message": ..}
    {"type": "join_group", "group_id": ..}
    {"type": "group_message", "group_id": .., "message": ..}
    {"type": "subscribe", "topic": "alerts"}
    {"type": "subscribe", "topic": "emergency_responders"}     responders and admins
    {"type": "subscribe", "topic": "contacts", "user_id": ..}  that user's emergency contact

Server frames are events ``{"event": .., "data": {..}, "timestamp": ..}``.
Each subscription is acknowledged with a ``subscribed`` event and bad
frames are answered with an ``error`` event.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Literal

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, ValidationError

from src.middleware.auth import user_from_token
from src.models.enums import EmergencyType, MemberStatus, Severity
from src.models.request import EmergencyAlertInput, LocationUpdateInput
from src.models.safety import GroupMessage
from src.models.user import User
from src.services.errors import TravaultError, Unauthorized
from src.services.realtime import (
    ALERTS,
    EMERGENCY_RESPONDERS,
    EventBroker,
    Subscription,
    contacts_topic,
    group_topic,
    make_event,
    user_topic,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["realtime"])

_POLICY_VIOLATION = 1008


class _GroupFrame(BaseModel):
    group_id: str = Field(min_length=1)


class _GroupMessageFrame(_GroupFrame):
    message: str = Field(min_length=1, max_length=500)


class _SubscribeFrame(BaseModel):
    topic: Literal["alerts", "emergency_responders", "contacts"]
    user_id: str | None = None


class _EmergencyFrame(BaseModel):
    emergency_type: EmergencyType
    severity: Severity
    message: str | None = Field(default=None, max_length=500)
    latitude: float | None = None
    longitude: float | None = None


async def _pump(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json(event)


class _Session:
    """One connected socket: its subscriptions and frame handlers."""

    def __init__(self, websocket: WebSocket, user: User, broker: EventBroker) -> None:
        self.websocket = websocket
        self.user = user
        self.broker = broker
        self._pumps: dict[str, tuple[Subscription, asyncio.Task[None]]] = {}

    def follow(self, topic: str) -> None:
        if topic in self._pumps:
            return
        subscription = self.broker.subscribe(topic)
        self._pumps[topic] = (subscription, asyncio.create_task(_pump(self.websocket, subscription)))

    async def close(self) -> None:
        for subscription, task in self._pumps.values():
            self.broker.unsubscribe(subscription)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._pumps.clear()

    async def error(self, message: str) -> None:
        await self.websocket.send_json(make_event("error", message=message))

    async def handle(self, frame: dict[str, Any]) -> None:
        kind = frame.get("type")
        state = self.websocket.app.state
        try:
            if kind == "location_update":
                await self._location_update(state, frame)
            elif kind == "emergency_alert":
                await self._emergency_alert(state, frame)
            elif kind == "join_group":
                await self._join_group(state, frame)
            elif kind == "group_message":
                await self._group_message(state, frame)
            elif kind == "subscribe":
                await self._subscribe(state, frame)
            else:
                await self.error(f"Unknown frame type: {kind!r}")
        except ValidationError as exc:
            await self.error(f"Invalid {kind} frame: {exc.error_count()} error(s)")
        except TravaultError as exc:
            await self.error(exc.message)

    async def _location_update(self, state: Any, frame: dict[str, Any]) -> None:
        update = LocationUpdateInput.model_validate(frame)
        user = await state.users.update_location(self.user.user_id, update.to_point(), update.address)
        self.broker.publish(
            contacts_topic(self.user.user_id),
            make_event(
                "location.updated",
                user_id=self.user.user_id,
                coordinates=user.current_location.point.coordinates,
                address=user.current_location.address,
            ),
        )

    async def _emergency_alert(self, state: Any, frame: dict[str, Any]) -> None:
        parsed = _EmergencyFrame.model_validate(frame)
        alert = EmergencyAlertInput(
            type=parsed.emergency_type,
            severity=parsed.severity,
            message=parsed.message,
            latitude=parsed.latitude,
            longitude=parsed.longitude,
        )
        outcome = await state.emergency_dispatch.raise_emergency(self.user.user_id, alert)
        await self.websocket.send_json(
            make_event(
                "emergency.ack",
                emergencyId=outcome.report_id,
                status=outcome.report.status.value,
                estimatedResponse=outcome.estimated_response,
            )
        )

    async def _subscribe(self, state: Any, frame: dict[str, Any]) -> None:
        parsed = _SubscribeFrame.model_validate(frame)
        if parsed.topic == "alerts":
            topic = ALERTS
        elif parsed.topic == "emergency_responders":
            if not self.user.role.receives_emergencies:
                await self.error("Only emergency responders can follow new emergencies")
                return
            topic = EMERGENCY_RESPONDERS
        else:
            if not parsed.user_id:
                await self.error("user_id is required to follow a traveller's location")
                return
            traveller = await state.users.require(parsed.user_id)
            contact = traveller.emergency_contact
            if contact is None or not contact.matches_phone(self.user.phone):
                await self.error("Only the traveller's emergency contact can follow their location")
                return
            topic = contacts_topic(traveller.user_id)

        self.follow(topic)
        await self.websocket.send_json(make_event("subscribed", topic=topic))

    async def _join_group(self, state: Any, frame: dict[str, Any]) -> None:
        parsed = _GroupFrame.model_validate(frame)
        group = await state.community.get_group(parsed.group_id)
        if not any(m.user_id == self.user.user_id and m.status == MemberStatus.ACTIVE for m in group.members):
            await self.error("Join the group before following its chat")
            return
        self.follow(group_topic(group.group_id))

    async def _group_message(self, state: Any, frame: dict[str, Any]) -> None:
        parsed = _GroupMessageFrame.model_validate(frame)
        group = await state.community.get_group(parsed.group_id)
        if not any(m.user_id == self.user.user_id and m.status == MemberStatus.ACTIVE for m in group.members):
            await self.error("Only group members can post messages")
            return
        entry = GroupMessage(sender_id=self.user.user_id, message=parsed.message)
        group.chat.append(entry)
        await state.community.save_group(group)
        self.broker.publish(
            group_topic(group.group_id),
            make_event(
                "group.message",
                group_id=group.group_id,
                sender_id=self.user.user_id,
                sender_name=self.user.full_name,
                message=entry.message,
            ),
        )


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str | None = None) -> None:
    state = websocket.app.state
    try:
        user = await user_from_token(token, state.users)
    except Unauthorized:
        await websocket.close(code=_POLICY_VIOLATION)
        return

    await websocket.accept()
    session = _Session(websocket, user, state.events)
    session.follow(user_topic(user.user_id))
    logger.info("realtime.connected", user_id=user.user_id)
    try:
        while True:
            frame = await websocket.receive_json()
            if not isinstance(frame, dict):
                await session.error("Frames must be JSON objects")
                continue
            await session.handle(frame)
    except WebSocketDisconnect:
        logger.info("realtime.disconnected", user_id=user.user_id)
    finally:
        await session.close()
