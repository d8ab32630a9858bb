"""
Audit log schemas for API responses.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from services.canvass.schemas.search import CamelModel


class AuditUser(CamelModel):
    """Who made a change, as shown in the activity timeline."""

    id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class AuditEntryResponse(CamelModel):
    id: int
    contact_id: str
    table_name: str
    record_id: str
    field: str = Field(..., description="Changed field name")
    action: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    reverts_entry_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime
    user: AuditUser
