"""
Canvasser accounts as seen by the Canvass Service.

Users are provisioned by the account system; this service only reads them to
resolve the acting user's role and to show who made each change.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import func
from sqlmodel import Column, DateTime, Field, SQLModel


class UserRole(str, Enum):
    """Canvasser roles, from most to least privileged."""

    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class User(SQLModel, table=True):
    """A canvasser who can search the directory and, unless a viewer, edit it."""

    __tablename__ = "users"  # type: ignore[assignment]

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=64
    )
    email: str = Field(unique=True, max_length=255)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    role: str = Field(default=UserRole.VIEWER.value, max_length=20)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now()),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now()),
    )

    @property
    def can_edit(self) -> bool:
        return self.is_active and self.role in (
            UserRole.ADMIN.value,
            UserRole.EDITOR.value,
        )

    @property
    def is_admin(self) -> bool:
        return self.is_active and self.role == UserRole.ADMIN.value
