"""
Database models for the Canvass Service.
"""

from services.canvass.models.audit import AuditAction, AuditLogEntry, AuditTable
from services.canvass.models.contact import (
    EDITABLE_FIELDS,
    LOCKED_FIELDS,
    Contact,
    ContactAlias,
    ContactEmail,
    ContactPhone,
    EmailType,
    PhoneType,
    SupporterStatus,
    VolunteerStatus,
)
from services.canvass.models.user import User, UserRole

__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "AuditTable",
    "Contact",
    "ContactAlias",
    "ContactEmail",
    "ContactPhone",
    "EDITABLE_FIELDS",
    "EmailType",
    "LOCKED_FIELDS",
    "PhoneType",
    "SupporterStatus",
    "User",
    "UserRole",
    "VolunteerStatus",
]
