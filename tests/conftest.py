"""Shared fixtures: in-memory store, repositories and a few travellers.

All tests run WITHOUT network access.
"""

from __future__ import annotations

import os

# The HTTP suite makes far more requests than a real client would.
os.environ.setdefault("TRAVAULT_RATE_LIMIT_PER_MINUTE", "100000")
os.environ.setdefault("TRAVAULT_REDIS_URL", "")
os.environ.setdefault("TRAVAULT_LOG_FORMAT", "console")

import pytest

from src.models.enums import CountryCode
from src.models.geo import GeoPoint
from src.models.user import PersonalContact, User
from src.services.community import CommunityStore
from src.services.realtime import EventBroker
from src.services.report_store import ReportStore
from src.services.store import InMemoryDocumentStore
from src.services.users import UserRepository

PARIS = GeoPoint(longitude=2.3522, latitude=48.8566)
VERSAILLES = GeoPoint(longitude=2.1301, latitude=48.8049)
LYON = GeoPoint(longitude=4.8357, latitude=45.7640)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def users(store: InMemoryDocumentStore) -> UserRepository:
    return UserRepository(store)


@pytest.fixture
def reports(store: InMemoryDocumentStore) -> ReportStore:
    return ReportStore(store)


@pytest.fixture
def community(store: InMemoryDocumentStore) -> CommunityStore:
    return CommunityStore(store)


@pytest.fixture
def broker() -> EventBroker:
    return EventBroker(max_queue=10)


@pytest.fixture
async def traveller(users: UserRepository) -> User:
    """A verified traveller in Paris with a textable emergency contact."""
    user = User(
        first_name="Ana",
        last_name="Souza",
        email="ana@example.com",
        phone="+33 6 12 34 56 78",
        country=CountryCode.FR,
        is_verified=True,
        emergency_contact=PersonalContact(name="Rita Souza", phone="+55 11 98765 4321", relationship="Sister"),
    )
    user.update_location(PARIS, "Rue de Rivoli, Paris")
    return await users.create(user)


@pytest.fixture
async def stranger(users: UserRepository) -> User:
    """A traveller with no location yet and no emergency contact phone."""
    user = User(
        first_name="Kenji",
        last_name="Sato",
        email="kenji@example.com",
        phone="+81 90 1234 5678",
        country=CountryCode.JP,
        emergency_contact=PersonalContact(name="Yui Sato", phone=""),
    )
    return await users.create(user)
