"""
Mutation gateway for the Canvass Service.

The only write path for contact fields and their phones, emails and aliases.
Every operation:

- checks the acting user's role (viewers cannot edit)
- rejects locked voter-file fields for every role
- validates input before touching the database
- locks the contact row, so edits to one contact are serialized
- writes the change and its audit entry in one transaction, rolling both
  back on any failure

Concurrent edits to the same contact are last-writer-wins; both writes keep
their audit entries.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

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
from services.canvass.models.user import User
from services.canvass.schemas.contact import (
    AliasCreate,
    EmailCreate,
    EmailUpdate,
    PhoneCreate,
    PhoneUpdate,
)
from services.canvass.services.audit_recorder import AuditRecorder
from services.common.http_errors import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
)
from services.common.logging_config import get_logger

logger = get_logger(__name__)

InputModel = TypeVar("InputModel", bound=BaseModel)

DEFAULT_NOTES_MAX_LENGTH = 2000

_TEXT_FIELD_LIMITS = {"district": 50, "precinct": 50, "party": 20}


@dataclass(frozen=True)
class ChildKind:
    """How one kind of child row is audited and restored."""

    table: AuditTable
    model: Type[Any]
    label: str
    identity_field: str
    identity_label: str
    fields: Tuple[str, ...]
    has_primary: bool

    def audit_field(self, column: str) -> str:
        """Field name used in audit entries; the identity column has a short name."""
        return self.identity_label if column == self.identity_field else column

    def column_for(self, audit_field: str) -> str:
        return self.identity_field if audit_field == self.identity_label else audit_field


PHONES = ChildKind(
    table=AuditTable.PHONES,
    model=ContactPhone,
    label="ContactPhone",
    identity_field="phone_number",
    identity_label="phone",
    fields=("phone_number", "phone_type", "is_primary"),
    has_primary=True,
)
EMAILS = ChildKind(
    table=AuditTable.EMAILS,
    model=ContactEmail,
    label="ContactEmail",
    identity_field="email",
    identity_label="email",
    fields=("email", "email_type", "is_primary"),
    has_primary=True,
)
ALIASES = ChildKind(
    table=AuditTable.ALIASES,
    model=ContactAlias,
    label="ContactAlias",
    identity_field="alias",
    identity_label="alias",
    fields=("alias",),
    has_primary=False,
)
CHILD_KINDS: Dict[str, ChildKind] = {
    kind.table.value: kind for kind in (PHONES, EMAILS, ALIASES)
}


def _validate_input(
    model: Type[InputModel], data: Union[InputModel, Dict[str, Any]]
) -> InputModel:
    """Validate raw input, reporting the first failing field."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        errors = e.errors()
        first = errors[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise ValidationError(
            first["msg"],
            field=field,
            details={
                "errors": [
                    {
                        "field": ".".join(str(part) for part in error["loc"]),
                        "message": error["msg"],
                    }
                    for error in errors
                ]
            },
        )


class MutationGateway:
    """Validated, audited writes to contacts and their child rows."""

    def __init__(
        self,
        recorder: Optional[AuditRecorder] = None,
        notes_max_length: int = DEFAULT_NOTES_MAX_LENGTH,
    ) -> None:
        self.recorder = recorder or AuditRecorder()
        self.notes_max_length = notes_max_length

    # Guards

    @staticmethod
    def _require_editor(acting_user: User) -> None:
        if not acting_user.can_edit:
            logger.warning(
                "Edit refused for role",
                user_id=acting_user.id,
                role=acting_user.role,
                is_active=acting_user.is_active,
            )
            raise PermissionDeniedError(
                "Your role does not allow editing contacts", role=acting_user.role
            )

    def normalize_contact_value(self, field: str, value: Any) -> Any:
        """
        Validate a new value for a contact field.

        Raises:
            PermissionDeniedError: field is locked
            ValidationError: field is unknown or the value is invalid
        """
        if field in LOCKED_FIELDS:
            raise PermissionDeniedError(
                f"'{field}' comes from the voter file and cannot be edited",
                field=field,
                code=ErrorCode.FIELD_LOCKED,
            )
        if field not in EDITABLE_FIELDS:
            raise ValidationError(f"Unknown contact field '{field}'", field=field)

        if value is not None and not isinstance(value, str):
            raise ValidationError(f"'{field}' must be a string", field=field, value=value)

        if field == "supporter_status":
            allowed = [status.value for status in SupporterStatus]
            if value not in allowed:
                raise ValidationError(
                    f"Invalid supporter status '{value}'",
                    field=field,
                    value=value,
                    details={"allowed": allowed},
                )
            return value
        if field == "volunteer_status":
            allowed = [status.value for status in VolunteerStatus]
            if value not in allowed:
                raise ValidationError(
                    f"Invalid volunteer status '{value}'",
                    field=field,
                    value=value,
                    details={"allowed": allowed},
                )
            return value
        if field == "notes":
            if value is not None and len(value) > self.notes_max_length:
                raise ValidationError(
                    f"Notes cannot exceed {self.notes_max_length} characters",
                    field=field,
                    details={"max_length": self.notes_max_length},
                )
            return value

        # district, precinct, party: short codes, blank clears
        value = (value or "").strip() or None
        limit = _TEXT_FIELD_LIMITS[field]
        if value is not None and len(value) > limit:
            raise ValidationError(
                f"'{field}' cannot exceed {limit} characters",
                field=field,
                details={"max_length": limit},
            )
        return value

    # Transaction plumbing

    @asynccontextmanager
    async def _transaction(
        self, session: AsyncSession, operation: str, **context: Any
    ) -> AsyncIterator[None]:
        try:
            yield
            await session.commit()
        except Exception as e:
            await session.rollback()
            if isinstance(e, IntegrityError):
                logger.warning(
                    "Mutation conflicted with a concurrent change",
                    operation=operation,
                    error=str(e.orig),
                    **context,
                )
                raise ConflictError(
                    "The change conflicts with a concurrent edit; reload and retry",
                    details={"operation": operation},
                )
            if isinstance(e, SQLAlchemyError):
                logger.error(
                    "Mutation failed", operation=operation, error=str(e), **context
                )
                raise StoreError(f"Failed to {operation.replace('_', ' ')}", operation=operation)
            raise

    @staticmethod
    async def _lock_contact(session: AsyncSession, contact_id: str) -> Contact:
        result = await session.execute(
            select(Contact)
            .where(Contact.id == contact_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        contact = result.scalars().first()
        if contact is None:
            raise NotFoundError("Contact", contact_id)
        return contact

    @staticmethod
    async def _load_child(session: AsyncSession, kind: ChildKind, child_id: str) -> Any:
        row = await session.get(kind.model, child_id)
        if row is None:
            raise NotFoundError(kind.label, child_id)
        return row

    @staticmethod
    def _touch(contact: Contact, acting_user: User) -> None:
        contact.updated_at = datetime.now(timezone.utc)
        contact.last_updated_by = acting_user.id

    async def _demote_primary(
        self,
        session: AsyncSession,
        kind: ChildKind,
        contact: Contact,
        acting_user: User,
        except_id: Optional[str] = None,
    ) -> None:
        """Clear the flag on the contact's current primary, one audit entry per row."""
        model = kind.model
        query = select(model).where(
            model.contact_id == contact.id, model.is_primary.is_(True)
        )
        if except_id is not None:
            query = query.where(model.id != except_id)
        result = await session.execute(query)
        demoted = list(result.scalars().all())
        for row in demoted:
            await self.recorder.record(
                session,
                contact_id=contact.id,
                user_id=acting_user.id,
                table_name=kind.table.value,
                record_id=row.id,
                field_name="is_primary",
                action=AuditAction.UPDATE,
                old_value=True,
                new_value=False,
            )
            row.is_primary = False
        if demoted:
            # The partial primary index must see the demotion before the new primary
            await session.flush()
            logger.info(
                "Demoted previous primary",
                table_name=kind.table.value,
                contact_id=contact.id,
                record_ids=[row.id for row in demoted],
            )

    # Contact fields

    async def set_field(
        self,
        session: AsyncSession,
        contact_id: str,
        field: str,
        new_value: Any,
        acting_user: User,
    ) -> Contact:
        """Change one contact field. Setting the current value is a no-op."""
        return await self.update_fields(
            session, contact_id, {field: new_value}, acting_user
        )

    async def update_fields(
        self,
        session: AsyncSession,
        contact_id: str,
        updates: Dict[str, Any],
        acting_user: User,
    ) -> Contact:
        """
        Apply a partial update atomically, one audit entry per changed field.

        Raises:
            PermissionDeniedError: viewer role or a locked field
            ValidationError: empty update, unknown field or invalid value
            NotFoundError: no such contact
        """
        self._require_editor(acting_user)
        if not updates:
            raise ValidationError("No fields to update")
        normalized = {
            field: self.normalize_contact_value(field, value)
            for field, value in updates.items()
        }

        changed: List[str] = []
        async with self._transaction(
            session, "update_contact", contact_id=contact_id, user_id=acting_user.id
        ):
            contact = await self._lock_contact(session, contact_id)
            for field, value in normalized.items():
                current = getattr(contact, field)
                if current == value:
                    continue
                await self.recorder.record(
                    session,
                    contact_id=contact.id,
                    user_id=acting_user.id,
                    table_name=AuditTable.CONTACTS.value,
                    record_id=contact.id,
                    field_name=field,
                    action=AuditAction.UPDATE,
                    old_value=current,
                    new_value=value,
                )
                setattr(contact, field, value)
                changed.append(field)
            if changed:
                self._touch(contact, acting_user)

        if changed:
            logger.info(
                "Contact updated",
                contact_id=contact_id,
                user_id=acting_user.id,
                fields=changed,
            )
        return contact

    # Child rows

    async def _insert_child(
        self,
        session: AsyncSession,
        kind: ChildKind,
        contact: Contact,
        values: Dict[str, Any],
        acting_user: User,
        *,
        row_id: Optional[str] = None,
        action: AuditAction = AuditAction.CREATE,
        reverts_entry_id: Optional[int] = None,
    ) -> Tuple[Any, AuditLogEntry]:
        if kind.has_primary and values.get("is_primary"):
            await self._demote_primary(session, kind, contact, acting_user)

        row = kind.model(contact_id=contact.id, created_by=acting_user.id, **values)
        if row_id is not None:
            row.id = row_id
        session.add(row)
        # Surfaces primary-index violations before the audit entry is written
        await session.flush()

        entry = await self.recorder.record(
            session,
            contact_id=contact.id,
            user_id=acting_user.id,
            table_name=kind.table.value,
            record_id=row.id,
            field_name=kind.identity_label,
            action=action,
            old_value=None,
            new_value=values[kind.identity_field],
            details={k: v for k, v in values.items() if k != kind.identity_field},
            reverts_entry_id=reverts_entry_id,
        )
        self._touch(contact, acting_user)
        return row, entry

    async def _update_child(
        self,
        session: AsyncSession,
        kind: ChildKind,
        row: Any,
        contact: Contact,
        changes: Dict[str, Any],
        acting_user: User,
        reverts_entry_id: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        entries = []
        for field, value in changes.items():
            current = getattr(row, field)
            if current == value:
                continue
            if field == "is_primary" and value:
                await self._demote_primary(
                    session, kind, contact, acting_user, except_id=row.id
                )
            entries.append(
                await self.recorder.record(
                    session,
                    contact_id=contact.id,
                    user_id=acting_user.id,
                    table_name=kind.table.value,
                    record_id=row.id,
                    field_name=kind.audit_field(field),
                    action=AuditAction.UPDATE,
                    old_value=current,
                    new_value=value,
                    reverts_entry_id=reverts_entry_id,
                )
            )
            setattr(row, field, value)
        if entries:
            self._touch(contact, acting_user)
        return entries

    async def _delete_child(
        self,
        session: AsyncSession,
        kind: ChildKind,
        row: Any,
        contact: Contact,
        acting_user: User,
        *,
        action: AuditAction = AuditAction.DELETE,
        reverts_entry_id: Optional[int] = None,
    ) -> AuditLogEntry:
        # Everything needed to recreate the row on undo
        details: Dict[str, Any] = {
            field: getattr(row, field)
            for field in kind.fields
            if field != kind.identity_field
        }
        if hasattr(row, "is_manually_added"):
            details["is_manually_added"] = row.is_manually_added
        details["created_by"] = row.created_by

        entry = await self.recorder.record(
            session,
            contact_id=contact.id,
            user_id=acting_user.id,
            table_name=kind.table.value,
            record_id=row.id,
            field_name=kind.identity_label,
            action=action,
            old_value=getattr(row, kind.identity_field),
            new_value=None,
            details=details,
            reverts_entry_id=reverts_entry_id,
        )
        await session.delete(row)
        self._touch(contact, acting_user)
        return entry

    async def _add(
        self,
        session: AsyncSession,
        kind: ChildKind,
        contact_id: str,
        values: Dict[str, Any],
        acting_user: User,
    ) -> Any:
        async with self._transaction(
            session, f"add_{kind.identity_field}", contact_id=contact_id
        ):
            contact = await self._lock_contact(session, contact_id)
            if kind is ALIASES:
                await self._ensure_new_alias(session, contact_id, values["alias"])
            row, _ = await self._insert_child(session, kind, contact, values, acting_user)
        logger.info(
            "Child row added",
            table_name=kind.table.value,
            contact_id=contact_id,
            record_id=row.id,
            user_id=acting_user.id,
        )
        return row

    async def _update(
        self,
        session: AsyncSession,
        kind: ChildKind,
        child_id: str,
        changes: Dict[str, Any],
        acting_user: User,
    ) -> Any:
        if not changes:
            raise ValidationError("No fields to update")
        async with self._transaction(
            session, f"update_{kind.identity_field}", record_id=child_id
        ):
            row = await self._load_child(session, kind, child_id)
            contact = await self._lock_contact(session, row.contact_id)
            entries = await self._update_child(
                session, kind, row, contact, changes, acting_user
            )
        if entries:
            logger.info(
                "Child row updated",
                table_name=kind.table.value,
                record_id=child_id,
                fields=[entry.field_name for entry in entries],
                user_id=acting_user.id,
            )
        return row

    async def _delete(
        self,
        session: AsyncSession,
        kind: ChildKind,
        child_id: str,
        acting_user: User,
    ) -> None:
        async with self._transaction(
            session, f"delete_{kind.identity_field}", record_id=child_id
        ):
            row = await self._load_child(session, kind, child_id)
            contact = await self._lock_contact(session, row.contact_id)
            await self._delete_child(session, kind, row, contact, acting_user)
        logger.info(
            "Child row deleted",
            table_name=kind.table.value,
            record_id=child_id,
            user_id=acting_user.id,
        )

    @staticmethod
    async def _ensure_new_alias(
        session: AsyncSession, contact_id: str, alias: str
    ) -> None:
        result = await session.execute(
            select(ContactAlias.id).where(
                ContactAlias.contact_id == contact_id,
                func.lower(ContactAlias.alias) == alias.lower(),
            )
        )
        if result.first() is not None:
            raise ConflictError(
                f"Alias '{alias}' already exists for this contact",
                code=ErrorCode.ALREADY_EXISTS,
                details={"field": "alias"},
            )

    async def add_phone(
        self,
        session: AsyncSession,
        contact_id: str,
        data: Union[PhoneCreate, Dict[str, Any]],
        acting_user: User,
    ) -> ContactPhone:
        """Add a volunteer-entered phone; a new primary demotes the old one."""
        self._require_editor(acting_user)
        payload = _validate_input(PhoneCreate, data)
        values = {
            "phone_number": payload.phone_number,
            "phone_type": payload.phone_type.value,
            "is_primary": payload.is_primary,
            "is_manually_added": True,
        }
        return await self._add(session, PHONES, contact_id, values, acting_user)

    async def update_phone(
        self,
        session: AsyncSession,
        phone_id: str,
        data: Union[PhoneUpdate, Dict[str, Any]],
        acting_user: User,
    ) -> ContactPhone:
        self._require_editor(acting_user)
        payload = _validate_input(PhoneUpdate, data)
        changes = payload.model_dump(exclude_none=True, mode="json")
        return await self._update(session, PHONES, phone_id, changes, acting_user)

    async def delete_phone(
        self, session: AsyncSession, phone_id: str, acting_user: User
    ) -> None:
        self._require_editor(acting_user)
        await self._delete(session, PHONES, phone_id, acting_user)

    async def add_email(
        self,
        session: AsyncSession,
        contact_id: str,
        data: Union[EmailCreate, Dict[str, Any]],
        acting_user: User,
    ) -> ContactEmail:
        """Add a volunteer-entered email; a new primary demotes the old one."""
        self._require_editor(acting_user)
        payload = _validate_input(EmailCreate, data)
        values = {
            "email": str(payload.email),
            "email_type": payload.email_type.value,
            "is_primary": payload.is_primary,
            "is_manually_added": True,
        }
        return await self._add(session, EMAILS, contact_id, values, acting_user)

    async def update_email(
        self,
        session: AsyncSession,
        email_id: str,
        data: Union[EmailUpdate, Dict[str, Any]],
        acting_user: User,
    ) -> ContactEmail:
        self._require_editor(acting_user)
        payload = _validate_input(EmailUpdate, data)
        changes = payload.model_dump(exclude_none=True, mode="json")
        return await self._update(session, EMAILS, email_id, changes, acting_user)

    async def delete_email(
        self, session: AsyncSession, email_id: str, acting_user: User
    ) -> None:
        self._require_editor(acting_user)
        await self._delete(session, EMAILS, email_id, acting_user)

    async def add_alias(
        self,
        session: AsyncSession,
        contact_id: str,
        data: Union[AliasCreate, Dict[str, Any], str],
        acting_user: User,
    ) -> ContactAlias:
        """Add an alternate name; aliases are matched by name search."""
        self._require_editor(acting_user)
        if isinstance(data, str):
            data = {"alias": data}
        payload = _validate_input(AliasCreate, data)
        return await self._add(
            session, ALIASES, contact_id, {"alias": payload.alias}, acting_user
        )

    async def delete_alias(
        self, session: AsyncSession, alias_id: str, acting_user: User
    ) -> None:
        self._require_editor(acting_user)
        await self._delete(session, ALIASES, alias_id, acting_user)

    # Undo support

    @staticmethod
    def _coerce_child_value(kind: ChildKind, field: str, raw: Optional[str]) -> Any:
        if field not in kind.fields:
            raise ValidationError(f"Unknown {kind.label} field '{field}'", field=field)
        if field == "is_primary":
            return raw == "true"
        try:
            if field == "phone_type":
                return PhoneType(raw).value
            if field == "email_type":
                return EmailType(raw).value
        except ValueError:
            raise ValidationError(f"Invalid value for '{field}'", field=field, value=raw)
        return raw

    @staticmethod
    def _restore_values(kind: ChildKind, entry: AuditLogEntry) -> Dict[str, Any]:
        details = entry.details or {}
        values: Dict[str, Any] = {kind.identity_field: entry.old_value}
        for field in kind.fields:
            if field != kind.identity_field and field in details:
                values[field] = details[field]
        if "is_manually_added" in details:
            values["is_manually_added"] = bool(details["is_manually_added"])
        return values

    async def apply_reversal(
        self, session: AsyncSession, entry: AuditLogEntry, acting_user: User
    ) -> AuditLogEntry:
        """
        Put the value recorded in ``entry`` back to its old value.

        Child rows are reverted by value: reverting a creation deletes the
        row, reverting a deletion recreates it with its original id.
        The reversal is recorded as an update entry pointing at ``entry``.

        Raises:
            ConflictError: a later entry changed the same value; checked
                again once the contact row is locked
        """
        self._require_editor(acting_user)

        async with self._transaction(
            session, "undo_change", entry_id=entry.id, contact_id=entry.contact_id
        ):
            contact = await self._lock_contact(session, entry.contact_id)
            await self.recorder.ensure_not_superseded(session, entry)

            if entry.table_name == AuditTable.CONTACTS.value:
                reversal = await self._revert_contact_field(
                    session, entry, contact, acting_user
                )
            else:
                reversal = await self._revert_child(
                    session, entry, contact, acting_user
                )
        return reversal

    async def _revert_contact_field(
        self,
        session: AsyncSession,
        entry: AuditLogEntry,
        contact: Contact,
        acting_user: User,
    ) -> AuditLogEntry:
        value = self.normalize_contact_value(entry.field_name, entry.old_value)
        current = getattr(contact, entry.field_name)
        reversal = await self.recorder.record(
            session,
            contact_id=contact.id,
            user_id=acting_user.id,
            table_name=entry.table_name,
            record_id=entry.record_id,
            field_name=entry.field_name,
            action=AuditAction.UPDATE,
            old_value=current,
            new_value=value,
            details={"reverted_action": entry.action},
            reverts_entry_id=entry.id,
        )
        setattr(contact, entry.field_name, value)
        self._touch(contact, acting_user)
        return reversal

    async def _revert_child(
        self,
        session: AsyncSession,
        entry: AuditLogEntry,
        contact: Contact,
        acting_user: User,
    ) -> AuditLogEntry:
        kind = CHILD_KINDS.get(entry.table_name)
        if kind is None:
            raise ValidationError(
                f"Cannot undo changes to '{entry.table_name}'",
                field="table_name",
            )
        row = await session.get(kind.model, entry.record_id)
        column = kind.column_for(entry.field_name)
        is_identity = column == kind.identity_field

        if is_identity and entry.old_value is None:
            if row is None:
                raise NotFoundError(kind.label, entry.record_id)
            return await self._delete_child(
                session,
                kind,
                row,
                contact,
                acting_user,
                action=AuditAction.UPDATE,
                reverts_entry_id=entry.id,
            )
        if row is None:
            if not is_identity:
                raise NotFoundError(kind.label, entry.record_id)
            _, reversal = await self._insert_child(
                session,
                kind,
                contact,
                self._restore_values(kind, entry),
                acting_user,
                row_id=entry.record_id,
                action=AuditAction.UPDATE,
                reverts_entry_id=entry.id,
            )
            return reversal

        value = self._coerce_child_value(kind, column, entry.old_value)
        entries = await self._update_child(
            session,
            kind,
            row,
            contact,
            {column: value},
            acting_user,
            reverts_entry_id=entry.id,
        )
        if not entries:
            raise ConflictError(
                "The value already matches the state before this change",
                details={"entry_id": entry.id},
            )
        return entries[0]
