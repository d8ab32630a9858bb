"""
Contact database models for the Canvass Service.

A contact is one voter-file record. Its baseline identity and address fields
come from the voter file import and are locked; canvassing fields are edited
by volunteers through the mutation gateway. Phones and emails carry a
provenance flag distinguishing baseline rows from volunteer-entered ones.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Index, func, text
from sqlmodel import Column, DateTime, Field, SQLModel


class SupporterStatus(str, Enum):
    """Where a contact stands on the campaign."""

    CONFIRMED_SUPPORTER = "confirmed-supporter"
    LIKELY_SUPPORTER = "likely-supporter"
    OPPOSITION = "opposition"
    UNKNOWN = "unknown"


class VolunteerStatus(str, Enum):
    """How likely a contact is to volunteer."""

    CONFIRMED_VOLUNTEER = "confirmed-volunteer"
    LIKELY_TO_VOLUNTEER = "likely-to-volunteer"
    WILL_NOT_VOLUNTEER = "will-not-volunteer"
    UNKNOWN = "unknown"


class PhoneType(str, Enum):
    MOBILE = "mobile"
    HOME = "home"
    WORK = "work"
    OTHER = "other"


class EmailType(str, Enum):
    PERSONAL = "personal"
    WORK = "work"
    OTHER = "other"


# Voter-file fields. Never writable through the API, whatever the role.
LOCKED_FIELDS = frozenset(
    {
        "full_name",
        "first_name",
        "middle_name",
        "last_name",
        "date_of_birth",
        "street_address",
        "city",
        "state",
        "zip_code",
    }
)

# Canvassing fields volunteers may change.
EDITABLE_FIELDS = frozenset(
    {
        "supporter_status",
        "volunteer_status",
        "notes",
        "district",
        "precinct",
        "party",
    }
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Contact(SQLModel, table=True):
    """A voter-file record with its canvassing state."""

    __tablename__ = "contacts"  # type: ignore[assignment]
    __table_args__ = (
        Index("idx_contacts_last_first_name", "last_name", "first_name"),
        Index("idx_contacts_updated_at", "updated_at"),
        Index("idx_contacts_zip_code", "zip_code"),
        Index("idx_contacts_supporter_status", "supporter_status"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    system_id: str = Field(
        unique=True, max_length=32, description="Human-facing voter record id"
    )

    # Baseline voter-file data (locked)
    full_name: str = Field(max_length=255)
    first_name: str = Field(max_length=100)
    middle_name: Optional[str] = Field(default=None, max_length=100)
    last_name: str = Field(max_length=100)
    date_of_birth: Optional[date] = Field(default=None)
    street_address: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=2)
    zip_code: Optional[str] = Field(default=None, max_length=10)
    voter_status: Optional[str] = Field(default=None, max_length=20)
    registration_date: Optional[date] = Field(default=None)

    # Canvassing data (editable)
    district: Optional[str] = Field(default=None, max_length=50)
    precinct: Optional[str] = Field(default=None, max_length=50)
    party: Optional[str] = Field(
        default=None, max_length=20, description="Party code, e.g. DEM"
    )
    supporter_status: str = Field(
        default=SupporterStatus.UNKNOWN.value, max_length=30
    )
    volunteer_status: str = Field(default=VolunteerStatus.UNKNOWN.value, max_length=30)
    notes: Optional[str] = Field(default=None)

    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now()),
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        ),
    )
    last_updated_by: Optional[str] = Field(default=None, max_length=64)


class ContactAlias(SQLModel, table=True):
    """An alternate name a contact goes by (e.g. "Peggy" for Margaret)."""

    __tablename__ = "contact_aliases"  # type: ignore[assignment]

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    contact_id: str = Field(
        foreign_key="contacts.id", ondelete="CASCADE", index=True, max_length=64
    )
    alias: str = Field(max_length=100)
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now()),
    )
    created_by: Optional[str] = Field(default=None, max_length=64)


class ContactPhone(SQLModel, table=True):
    """A phone number attached to a contact."""

    __tablename__ = "contact_phones"  # type: ignore[assignment]
    __table_args__ = (
        # One primary phone per contact
        Index(
            "uq_contact_phones_primary",
            "contact_id",
            unique=True,
            postgresql_where=text("is_primary"),
            sqlite_where=text("is_primary = 1"),
        ),
    )

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    contact_id: str = Field(
        foreign_key="contacts.id", ondelete="CASCADE", index=True, max_length=64
    )
    phone_number: str = Field(max_length=30)
    phone_type: str = Field(default=PhoneType.MOBILE.value, max_length=10)
    is_primary: bool = Field(default=False)
    is_manually_added: bool = Field(
        default=True, description="False for rows from the voter file import"
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now()),
    )
    created_by: Optional[str] = Field(default=None, max_length=64)


class ContactEmail(SQLModel, table=True):
    """An email address attached to a contact."""

    __tablename__ = "contact_emails"  # type: ignore[assignment]
    __table_args__ = (
        # One primary email per contact
        Index(
            "uq_contact_emails_primary",
            "contact_id",
            unique=True,
            postgresql_where=text("is_primary"),
            sqlite_where=text("is_primary = 1"),
        ),
    )

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    contact_id: str = Field(
        foreign_key="contacts.id", ondelete="CASCADE", index=True, max_length=64
    )
    email: str = Field(max_length=255)
    email_type: str = Field(default=EmailType.PERSONAL.value, max_length=10)
    is_primary: bool = Field(default=False)
    is_manually_added: bool = Field(
        default=True, description="False for rows from the voter file import"
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now()),
    )
    created_by: Optional[str] = Field(default=None, max_length=64)
