"""
Shared fixtures for Canvass Service tests.

Every test that touches the database gets its own temporary SQLite file,
fresh settings and a freshly created schema. Seed data is written through a
separate session and committed, so the objects handed to tests are detached
and keep their loaded attributes.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest

from services.canvass.models import (
    Contact,
    ContactAlias,
    ContactEmail,
    ContactPhone,
    User,
    UserRole,
)

FRONTEND_KEY = "test-frontend-key"
ADMIN_KEY = "test-admin-key"

# Fixed evaluation date for age-dependent tests
TODAY = date(2024, 6, 15)


@pytest.fixture
def canvass_env(tmp_path, monkeypatch):
    """Environment variables for a Canvass Service backed by a temp database."""
    from services.canvass.settings import reset_settings

    db_path = tmp_path / "canvass.db"
    monkeypatch.setenv("DB_URL_CANVASS", f"sqlite:///{db_path}")
    monkeypatch.setenv("API_FRONTEND_CANVASS_KEY", FRONTEND_KEY)
    monkeypatch.setenv("API_ADMIN_CANVASS_KEY", ADMIN_KEY)
    monkeypatch.setenv("FILTER_TOKEN_SECRET", "test-filter-secret")
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_FORMAT", "text")
    reset_settings()
    yield db_path
    reset_settings()


@pytest.fixture
async def db(canvass_env):
    """Create all tables in the temp database; dispose the engine afterwards."""
    from services.canvass.database import close_db, create_all_tables_for_testing

    await close_db()
    await create_all_tables_for_testing()
    yield
    await close_db()


@pytest.fixture
def session_factory(db):
    from services.canvass.database import get_async_session_factory

    return get_async_session_factory()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


def make_contact(system_id: str, first_name: str, last_name: str, **fields: Any) -> Contact:
    middle_name = fields.pop("middle_name", None)
    full_name = " ".join(p for p in (first_name, middle_name, last_name) if p)
    return Contact(
        system_id=system_id,
        first_name=first_name,
        middle_name=middle_name,
        last_name=last_name,
        full_name=full_name,
        **fields,
    )


@dataclass
class Directory:
    """Seeded users and contacts, keyed by a short name."""

    users: Dict[str, User] = field(default_factory=dict)
    contacts: Dict[str, Contact] = field(default_factory=dict)

    def contact_id(self, key: str) -> str:
        return self.contacts[key].id


async def seed_directory(session_factory, now: Optional[datetime] = None) -> Directory:
    """
    A small directory with one user per role and a handful of contacts.

    Contacts are given distinct updated_at values so the recency ordering is
    predictable: later entries in the list are more recently updated.
    """
    now = now or datetime.now(timezone.utc)
    directory = Directory()
    directory.users = {
        "admin": User(
            email="admin@example.org",
            first_name="Ada",
            last_name="Admin",
            role=UserRole.ADMIN.value,
        ),
        "editor": User(
            email="editor@example.org",
            first_name="Eddie",
            last_name="Editor",
            role=UserRole.EDITOR.value,
        ),
        "viewer": User(
            email="viewer@example.org",
            first_name="Vera",
            last_name="Viewer",
            role=UserRole.VIEWER.value,
        ),
        "inactive": User(
            email="former@example.org",
            first_name="Fran",
            last_name="Former",
            role=UserRole.EDITOR.value,
            is_active=False,
        ),
    }
    contacts = [
        (
            "jane",
            make_contact(
                "V0001",
                "Jane",
                "Smith",
                middle_name="Q",
                date_of_birth=date(1980, 3, 2),
                city="Springfield",
                zip_code="62701",
                party="DEM",
                supporter_status="confirmed-supporter",
            ),
        ),
        (
            "john",
            make_contact(
                "V0002",
                "John",
                "Smith",
                date_of_birth=date(1950, 11, 20),
                city="Springfield",
                zip_code="62702",
                party="REP",
                supporter_status="opposition",
            ),
        ),
        (
            "william",
            make_contact(
                "V0003",
                "William",
                "Jones",
                date_of_birth=date(2000, 1, 1),
                city="Shelbyville",
                zip_code="62565",
                party="DEM",
                supporter_status="likely-supporter",
            ),
        ),
        (
            "billie",
            make_contact(
                "V0004",
                "Billie",
                "Jonesboro",
                city="North Springfield",
                zip_code="62703",
                supporter_status="unknown",
            ),
        ),
        (
            "margaret",
            make_contact(
                "V0005",
                "Margaret",
                "Smithers",
                date_of_birth=date(2004, 7, 30),
                city="Capital City",
                zip_code="62704",
                party="IND",
                supporter_status="likely-supporter",
            ),
        ),
    ]
    for offset, (key, contact) in enumerate(contacts):
        contact.updated_at = now - timedelta(minutes=len(contacts) - offset)
        directory.contacts[key] = contact

    async with session_factory() as session:
        session.add_all(directory.users.values())
        session.add_all(directory.contacts.values())
        await session.flush()

        jane = directory.contacts["jane"]
        margaret = directory.contacts["margaret"]
        john = directory.contacts["john"]
        session.add_all(
            [
                ContactAlias(contact_id=jane.id, alias="Janie"),
                ContactAlias(contact_id=margaret.id, alias="Peggy"),
                ContactPhone(
                    contact_id=john.id,
                    phone_number="217-555-0101",
                    is_primary=True,
                    is_manually_added=False,
                ),
                ContactEmail(
                    contact_id=john.id,
                    email="john.smith@example.org",
                    is_primary=True,
                    is_manually_added=False,
                ),
                ContactEmail(
                    contact_id=margaret.id,
                    email="peggy@example.org",
                    is_manually_added=True,
                ),
            ]
        )
        await session.commit()
    return directory


@pytest.fixture
async def directory(session_factory) -> Directory:
    return await seed_directory(session_factory)
