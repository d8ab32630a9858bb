"""
Audit recorder for the Canvass Service.

Every accepted mutation is recorded here inside the caller's transaction, so
an edit and its audit entry are committed or rolled back together. Entries
are never updated or deleted; undo appends a new entry that points at the
one it reverts.
"""

from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import desc, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.canvass.models.audit import AuditAction, AuditLogEntry
from services.canvass.models.user import User
from services.canvass.schemas.audit import AuditEntryResponse, AuditUser
from services.common.http_errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
)
from services.common.logging_config import get_logger

if TYPE_CHECKING:
    from services.canvass.services.mutation_gateway import MutationGateway

logger = get_logger(__name__)


def audit_value(value: Any) -> Optional[str]:
    """Render a field value the way the audit log stores it."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class AuditRecorder:
    """Writes, lists and reverts audit entries."""

    async def record(
        self,
        session: AsyncSession,
        *,
        contact_id: str,
        user_id: str,
        table_name: str,
        record_id: str,
        field_name: str,
        action: AuditAction,
        old_value: Any = None,
        new_value: Any = None,
        details: Optional[Dict[str, Any]] = None,
        reverts_entry_id: Optional[int] = None,
    ) -> AuditLogEntry:
        """
        Add an audit entry to the current transaction.

        The entry is flushed (so it has an id) but not committed.

        Raises:
            StoreError: If the entry cannot be written
        """
        entry = AuditLogEntry(
            contact_id=contact_id,
            user_id=user_id,
            table_name=table_name,
            record_id=record_id,
            field_name=field_name,
            action=action.value,
            old_value=audit_value(old_value),
            new_value=audit_value(new_value),
            details=details,
            reverts_entry_id=reverts_entry_id,
        )
        try:
            session.add(entry)
            await session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to write audit entry",
                contact_id=contact_id,
                table_name=table_name,
                field_name=field_name,
                error=str(e),
            )
            raise StoreError("Failed to write audit entry", operation="audit_record")

        logger.info(
            "audit_event",
            entry_id=entry.id,
            contact_id=contact_id,
            user_id=user_id,
            table_name=table_name,
            record_id=record_id,
            field_name=field_name,
            action=entry.action,
            reverts_entry_id=reverts_entry_id,
        )
        return entry

    async def list_for_contact(
        self, session: AsyncSession, contact_id: str, limit: int = 50
    ) -> List[AuditEntryResponse]:
        """A contact's entries, newest first, with author names."""
        return await self._list(
            session, AuditLogEntry.contact_id == contact_id, limit
        )

    async def list_recent(
        self,
        session: AsyncSession,
        user_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEntryResponse]:
        """Entries across all contacts, newest first, optionally for one author."""
        condition = AuditLogEntry.user_id == user_id if user_id else None
        return await self._list(session, condition, limit)

    async def _list(
        self, session: AsyncSession, condition: Any, limit: int
    ) -> List[AuditEntryResponse]:
        query = select(AuditLogEntry, User.first_name, User.last_name).outerjoin(
            User, User.id == AuditLogEntry.user_id  # type: ignore[arg-type]
        )
        if condition is not None:
            query = query.where(condition)
        query = query.order_by(
            desc(AuditLogEntry.created_at), desc(AuditLogEntry.id)  # type: ignore[arg-type]
        ).limit(limit)

        try:
            result = await session.execute(query)
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Failed to read audit entries", error=str(e))
            raise StoreError("Failed to read audit entries", operation="audit_list")

        return [
            self.to_response(entry, first_name, last_name)
            for entry, first_name, last_name in rows
        ]

    @staticmethod
    def to_response(
        entry: AuditLogEntry,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> AuditEntryResponse:
        return AuditEntryResponse(
            id=entry.id,  # type: ignore[arg-type]
            contact_id=entry.contact_id,
            table_name=entry.table_name,
            record_id=entry.record_id,
            field=entry.field_name,
            action=entry.action,
            old_value=entry.old_value,
            new_value=entry.new_value,
            reverts_entry_id=entry.reverts_entry_id,
            details=entry.details,
            created_at=entry.created_at,
            user=AuditUser(
                id=entry.user_id, first_name=first_name, last_name=last_name
            ),
        )

    async def find_superseding(
        self, session: AsyncSession, entry: AuditLogEntry
    ) -> Optional[AuditLogEntry]:
        """
        The first later entry that changed the same value, if any.

        A later deletion of the same row supersedes entries on any of its
        fields, and any later change to a row supersedes its creation.
        """
        query = select(AuditLogEntry).where(
            AuditLogEntry.table_name == entry.table_name,
            AuditLogEntry.record_id == entry.record_id,
            AuditLogEntry.id > entry.id,  # type: ignore[operator]
        )
        if entry.action != AuditAction.CREATE.value:
            query = query.where(
                or_(
                    AuditLogEntry.field_name == entry.field_name,
                    AuditLogEntry.action == AuditAction.DELETE.value,
                )
            )
        result = await session.execute(query.order_by(AuditLogEntry.id).limit(1))
        return result.scalars().first()

    async def ensure_not_superseded(
        self, session: AsyncSession, entry: AuditLogEntry
    ) -> None:
        """
        Raises:
            ConflictError: a later entry changed the same value
        """
        superseding = await self.find_superseding(session, entry)
        if superseding is None:
            return
        logger.info(
            "Undo conflict",
            entry_id=entry.id,
            superseded_by=superseding.id,
        )
        raise ConflictError(
            "This change has been superseded by a later edit",
            details={
                "entry_id": entry.id,
                "superseded_by": superseding.id,
                "field": entry.field_name,
            },
        )

    async def undo(
        self,
        session: AsyncSession,
        entry_id: int,
        acting_user: User,
        gateway: "MutationGateway",
    ) -> AuditLogEntry:
        """
        Revert the change recorded by ``entry_id``.

        The reversal goes through the mutation gateway and is itself recorded
        as a new update entry whose new value is the reverted entry's old
        value. The gateway checks for a superseding entry again after it has
        locked the contact, so an edit committed in between is never
        overwritten.

        Raises:
            PermissionDeniedError: acting user is not an admin
            NotFoundError: no such entry
            ConflictError: a later entry changed the same value
        """
        if not acting_user.is_admin:
            logger.warning(
                "Undo refused", entry_id=entry_id, user_id=acting_user.id, role=acting_user.role
            )
            raise PermissionDeniedError(
                "Only admins can undo changes", role=acting_user.role
            )

        try:
            entry = await session.get(AuditLogEntry, entry_id)
            if entry is not None:
                await self.ensure_not_superseded(session, entry)
        except SQLAlchemyError as e:
            logger.error("Failed to load audit entry", entry_id=entry_id, error=str(e))
            raise StoreError("Failed to load audit entry", operation="audit_undo")

        if entry is None:
            raise NotFoundError("AuditLogEntry", str(entry_id))

        reversal = await gateway.apply_reversal(session, entry, acting_user)
        logger.info(
            "Audit entry reverted",
            entry_id=entry_id,
            reversal_id=reversal.id,
            user_id=acting_user.id,
        )
        return reversal
