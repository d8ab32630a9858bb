"""
Schemas for the Canvass Service API.
"""

from services.canvass.schemas.audit import AuditEntryResponse, AuditUser
from services.canvass.schemas.contact import (
    AliasCreate,
    AliasResponse,
    ContactDetailResponse,
    ContactResponse,
    EmailCreate,
    EmailResponse,
    EmailUpdate,
    PhoneCreate,
    PhoneResponse,
    PhoneUpdate,
)
from services.canvass.schemas.search import (
    CamelModel,
    ContactSearchRow,
    SearchPage,
    SearchRequest,
)

__all__ = [
    "AliasCreate",
    "AliasResponse",
    "AuditEntryResponse",
    "AuditUser",
    "CamelModel",
    "ContactDetailResponse",
    "ContactResponse",
    "ContactSearchRow",
    "EmailCreate",
    "EmailResponse",
    "EmailUpdate",
    "PhoneCreate",
    "PhoneResponse",
    "PhoneUpdate",
    "SearchPage",
    "SearchRequest",
]
