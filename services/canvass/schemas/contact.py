"""
Contact schemas for API requests and responses.

Child-row inputs (phones, emails, aliases) are validated here before the
mutation gateway touches the database.
"""

import re
from datetime import date, datetime
from typing import List, Optional

from pydantic import EmailStr, Field, field_validator

from services.canvass.models.contact import EmailType, PhoneType
from services.canvass.schemas.audit import AuditEntryResponse
from services.canvass.schemas.search import CamelModel

_PHONE_CHARS = re.compile(r"^[0-9+()\-.\s]+$")


def _check_phone_number(value: str) -> str:
    value = value.strip()
    if not _PHONE_CHARS.match(value):
        raise ValueError("Phone number may only contain digits, spaces and + ( ) - .")
    digits = sum(ch.isdigit() for ch in value)
    if not 7 <= digits <= 15:
        raise ValueError("Phone number must contain 7 to 15 digits")
    return value


class PhoneCreate(CamelModel):
    phone_number: str = Field(..., max_length=30)
    phone_type: PhoneType = PhoneType.MOBILE
    is_primary: bool = False

    @field_validator("phone_number")
    @classmethod
    def _validate_number(cls, value: str) -> str:
        return _check_phone_number(value)


class PhoneUpdate(CamelModel):
    phone_number: Optional[str] = Field(default=None, max_length=30)
    phone_type: Optional[PhoneType] = None
    is_primary: Optional[bool] = None

    @field_validator("phone_number")
    @classmethod
    def _validate_number(cls, value: Optional[str]) -> Optional[str]:
        return _check_phone_number(value) if value is not None else None


class EmailCreate(CamelModel):
    email: EmailStr
    email_type: EmailType = EmailType.PERSONAL
    is_primary: bool = False


class EmailUpdate(CamelModel):
    email: Optional[EmailStr] = None
    email_type: Optional[EmailType] = None
    is_primary: Optional[bool] = None


class AliasCreate(CamelModel):
    alias: str = Field(..., max_length=100)

    @field_validator("alias")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Alias must not be empty")
        return value


class PhoneResponse(CamelModel):
    id: str
    contact_id: str
    phone_number: str
    phone_type: str
    is_primary: bool
    is_manually_added: bool
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None


class EmailResponse(CamelModel):
    id: str
    contact_id: str
    email: str
    email_type: str
    is_primary: bool
    is_manually_added: bool
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None


class AliasResponse(CamelModel):
    id: str
    contact_id: str
    alias: str
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None


class ContactResponse(CamelModel):
    """A contact's own fields."""

    id: str
    system_id: str
    full_name: str
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    date_of_birth: Optional[date] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    voter_status: Optional[str] = None
    registration_date: Optional[date] = None
    district: Optional[str] = None
    precinct: Optional[str] = None
    party: Optional[str] = None
    supporter_status: str
    volunteer_status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_updated_by: Optional[str] = None


class ContactDetailResponse(ContactResponse):
    """A contact with its child rows and recent activity."""

    age: Optional[int] = None
    aliases: List[AliasResponse] = Field(default_factory=list)
    phones: List[PhoneResponse] = Field(default_factory=list)
    emails: List[EmailResponse] = Field(default_factory=list)
    audit_logs: List[AuditEntryResponse] = Field(default_factory=list)
