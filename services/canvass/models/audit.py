"""
Audit log model for the Canvass Service.

Entries are insert-only. Each one records a single field change on a contact
or on one of its child rows, who made it, and (for undo entries) which entry
it reverts.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Index, func
from sqlmodel import Column, DateTime, Field, SQLModel


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditTable(str, Enum):
    """Tables whose rows the audit log can refer to."""

    CONTACTS = "contacts"
    PHONES = "contact_phones"
    EMAILS = "contact_emails"
    ALIASES = "contact_aliases"


class AuditLogEntry(SQLModel, table=True):
    """One attributable, reversible change."""

    __tablename__ = "audit_logs"  # type: ignore[assignment]
    __table_args__ = (
        Index("idx_audit_logs_contact_created", "contact_id", "created_at"),
        Index(
            "idx_audit_logs_target", "table_name", "record_id", "field_name"
        ),
    )

    # Integer ids give entries a total order, even within one timestamp
    id: Optional[int] = Field(default=None, primary_key=True)
    contact_id: str = Field(foreign_key="contacts.id", max_length=64)
    user_id: str = Field(foreign_key="users.id", index=True, max_length=64)
    action: str = Field(max_length=10)
    table_name: str = Field(max_length=50)
    record_id: str = Field(max_length=64)
    field_name: str = Field(max_length=50)
    old_value: Optional[str] = Field(default=None)
    new_value: Optional[str] = Field(default=None)
    reverts_entry_id: Optional[int] = Field(default=None)
    details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        ),
    )
