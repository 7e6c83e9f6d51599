"""User repository on top of the document store."""

from __future__ import annotations

from typing import Final

import structlog

from src.models.geo import GeoPoint
from src.models.user import User
from src.services.errors import NotFound
from src.services.store import DocumentStore

logger = structlog.get_logger(__name__)

USERS: Final[str] = "users"


class UserRepository:
    __slots__ = ("_store",)

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get(self, user_id: str) -> User | None:
        raw = await self._store.get(USERS, user_id)
        return User.model_validate(raw) if raw is not None else None

    async def require(self, user_id: str) -> User:
        user = await self.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def get_by_email(self, email: str) -> User | None:
        wanted = email.strip().lower()
        matches = await self._store.find(USERS, lambda doc: doc.get("email") == wanted)
        return User.model_validate(matches[0]) if matches else None

    async def create(self, user: User) -> User:
        user.email = user.email.strip().lower()
        await self._store.insert(USERS, user.user_id, user.model_dump(mode="json"))
        logger.info("users.created", user_id=user.user_id, country=user.country.value)
        return user

    async def save(self, user: User) -> User:
        await self._store.replace(USERS, user.user_id, user.model_dump(mode="json"))
        return user

    async def update_location(
        self,
        user_id: str,
        point: GeoPoint,
        address: str | None = None,
    ) -> User:
        user = await self.require(user_id)
        user.update_location(point, address)
        await self.save(user)
        logger.debug("users.location_updated", user_id=user_id)
        return user
