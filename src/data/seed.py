"""Seeding of reference emergency contacts.

Loads the bundled ``contacts/reference_contacts.json`` (national numbers
per country plus a few city-level services with a service area) and
writes them into the report store. Designed to run once at application
startup, and only into an empty collection.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from src.models.emergency import EmergencyContact

if TYPE_CHECKING:
    from src.services.report_store import ReportStore

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_DATA_DIR: Path = Path(__file__).resolve().parent / "contacts"
_REFERENCE_CONTACTS_PATH: Path = _DATA_DIR / "reference_contacts.json"


def load_contacts(path: Path | None = None) -> list[EmergencyContact]:
    """Load reference emergency contacts from a JSON file.

    Entries that fail validation are logged and skipped.

    Raises
    ------
    FileNotFoundError
        If the JSON file does not exist.
    json.JSONDecodeError
        If the JSON is malformed.
    """
    file_path = path or _REFERENCE_CONTACTS_PATH

    if not file_path.exists():
        raise FileNotFoundError(f"Contact data file not found: {file_path}")

    with file_path.open("r", encoding="utf-8") as f:
        raw_contacts: list[dict] = json.load(f)

    contacts: list[EmergencyContact] = []
    for raw in raw_contacts:
        try:
            contacts.append(EmergencyContact.model_validate(raw))
        except ValueError:
            logger.warning("seed.parse_error", name=raw.get("name", "unknown"), exc_info=True)

    logger.info("seed.loaded_contacts", count=len(contacts), source=str(file_path))
    return contacts


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


async def seed_emergency_contacts(
    reports: ReportStore,
    *,
    path: Path | None = None,
) -> int:
    """Insert the reference contacts unless contacts already exist.

    Returns the number of contacts inserted.
    """
    if await reports.contact_count() > 0:
        logger.info("seed.contacts_present")
        return 0

    contacts = load_contacts(path)
    for contact in contacts:
        await reports.add_contact(contact)

    logger.info("seed.complete", inserted=len(contacts))
    return len(contacts)
