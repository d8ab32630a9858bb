"""
Contact detail and edit endpoints for the Canvass Service.

Every write goes through the MutationGateway, which enforces roles and
locked fields and records the audit trail. Request and response bodies use
camelCase.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Path, Response
from pydantic.alias_generators import to_snake
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.canvass.auth import get_acting_user, service_permission_required
from services.canvass.database import get_async_session
from services.canvass.models.contact import (
    Contact,
    ContactAlias,
    ContactEmail,
    ContactPhone,
)
from services.canvass.models.user import User
from services.canvass.schemas.audit import AuditEntryResponse
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
from services.canvass.services.audit_recorder import AuditRecorder
from services.canvass.services.filter_compiler import calculate_age, utc_today
from services.canvass.services.mutation_gateway import MutationGateway
from services.canvass.settings import get_settings
from services.common.http_errors import NotFoundError, StoreError, ValidationError
from services.common.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["contacts"])


async def get_audit_recorder() -> AuditRecorder:
    """Get audit recorder instance."""
    return AuditRecorder()


async def get_mutation_gateway(
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> MutationGateway:
    """Get mutation gateway instance."""
    return MutationGateway(
        recorder, notes_max_length=get_settings().NOTES_MAX_LENGTH
    )


async def _get_contact(session: AsyncSession, contact_id: str) -> Contact:
    try:
        contact = await session.get(Contact, contact_id)
    except SQLAlchemyError as e:
        logger.error("Failed to load contact", contact_id=contact_id, error=str(e))
        raise StoreError("Failed to load contact", operation="get_contact")
    if contact is None:
        raise NotFoundError("Contact", contact_id)
    return contact


async def _children(
    session: AsyncSession, model: Any, contact_id: str, *order_by: Any
) -> List[Any]:
    result = await session.execute(
        select(model).where(model.contact_id == contact_id).order_by(*order_by)
    )
    return list(result.scalars().all())


@router.get("/contacts/{contact_id}", response_model=ContactDetailResponse)
async def get_contact(
    contact_id: str = Path(..., description="Contact ID"),
    session: AsyncSession = Depends(get_async_session),
    recorder: AuditRecorder = Depends(get_audit_recorder),
    authenticated_service: str = Depends(
        service_permission_required(["read_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> ContactDetailResponse:
    """Get a contact with its aliases, phones, emails and recent activity."""
    contact = await _get_contact(session, contact_id)
    try:
        aliases = await _children(
            session, ContactAlias, contact_id, ContactAlias.alias
        )
        phones = await _children(
            session,
            ContactPhone,
            contact_id,
            ContactPhone.is_primary.desc(),  # type: ignore[attr-defined]
            ContactPhone.created_at,
        )
        emails = await _children(
            session,
            ContactEmail,
            contact_id,
            ContactEmail.is_primary.desc(),  # type: ignore[attr-defined]
            ContactEmail.created_at,
        )
    except SQLAlchemyError as e:
        logger.error("Failed to load contact details", contact_id=contact_id, error=str(e))
        raise StoreError("Failed to load contact details", operation="get_contact")

    audit_logs = await recorder.list_for_contact(
        session, contact_id, limit=get_settings().CONTACT_AUDIT_LIMIT
    )
    return ContactDetailResponse(
        **contact.model_dump(),
        age=(
            calculate_age(contact.date_of_birth, utc_today())
            if contact.date_of_birth
            else None
        ),
        aliases=[AliasResponse(**alias.model_dump()) for alias in aliases],
        phones=[PhoneResponse(**phone.model_dump()) for phone in phones],
        emails=[EmailResponse(**email.model_dump()) for email in emails],
        audit_logs=audit_logs,
    )


@router.patch("/contacts/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: str = Path(..., description="Contact ID"),
    updates: Dict[str, Any] = Body(..., description="Fields to change"),
    session: AsyncSession = Depends(get_async_session),
    gateway: MutationGateway = Depends(get_mutation_gateway),
    authenticated_service: str = Depends(
        service_permission_required(["write_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> ContactResponse:
    """Update editable contact fields; locked voter-file fields are rejected."""
    if not isinstance(updates, dict):
        raise ValidationError("Request body must be an object")
    contact = await gateway.update_fields(
        session,
        contact_id,
        {to_snake(key): value for key, value in updates.items()},
        acting_user,
    )
    return ContactResponse(**contact.model_dump())


@router.get("/contacts/{contact_id}/audit", response_model=List[AuditEntryResponse])
async def get_contact_audit(
    contact_id: str = Path(..., description="Contact ID"),
    session: AsyncSession = Depends(get_async_session),
    recorder: AuditRecorder = Depends(get_audit_recorder),
    authenticated_service: str = Depends(service_permission_required(["read_audit"])),
    acting_user: User = Depends(get_acting_user),
) -> List[AuditEntryResponse]:
    """Activity timeline for a contact, newest first."""
    await _get_contact(session, contact_id)
    return await recorder.list_for_contact(
        session, contact_id, limit=get_settings().CONTACT_AUDIT_LIMIT
    )


# Phones


@router.post(
    "/contacts/{contact_id}/phones", response_model=PhoneResponse, status_code=201
)
async def add_phone(
    contact_id: str = Path(..., description="Contact ID"),
    phone: PhoneCreate = Body(...),
    session: AsyncSession = Depends(get_async_session),
    gateway: MutationGateway = Depends(get_mutation_gateway),
    authenticated_service: str = Depends(
        service_permission_required(["write_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> PhoneResponse:
    row = await gateway.add_phone(session, contact_id, phone, acting_user)
    return PhoneResponse(**row.model_dump())


@router.patch("/phones/{phone_id}", response_model=PhoneResponse)
async def update_phone(
    phone_id: str = Path(..., description="Phone ID"),
    phone: PhoneUpdate = Body(...),
    session: AsyncSession = Depends(get_async_session),
    gateway: MutationGateway = Depends(get_mutation_gateway),
    authenticated_service: str = Depends(
        service_permission_required(["write_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> PhoneResponse:
    row = await gateway.update_phone(session, phone_id, phone, acting_user)
    return PhoneResponse(**row.model_dump())


@router.delete("/phones/{phone_id}", status_code=204, response_class=Response)
async def delete_phone(
    phone_id: str = Path(..., description="Phone ID"),
    session: AsyncSession = Depends(get_async_session),
    gateway: MutationGateway = Depends(get_mutation_gateway),
    authenticated_service: str = Depends(
        service_permission_required(["write_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> Response:
    await gateway.delete_phone(session, phone_id, acting_user)
    return Response(status_code=204)


# Emails


@router.post(
    "/contacts/{contact_id}/emails", response_model=EmailResponse, status_code=201
)
async def add_email(
    contact_id: str = Path(..., description="Contact ID"),
    email: EmailCreate = Body(...),
    session: AsyncSession = Depends(get_async_session),
    gateway: MutationGateway = Depends(get_mutation_gateway),
    authenticated_service: str = Depends(
        service_permission_required(["write_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> EmailResponse:
    row = await gateway.add_email(session, contact_id, email, acting_user)
    return EmailResponse(**row.model_dump())


@router.patch("/emails/{email_id}", response_model=EmailResponse)
async def update_email(
    email_id: str = Path(..., description="Email ID"),
    email: EmailUpdate = Body(...),
    session: AsyncSession = Depends(get_async_session),
    gateway: MutationGateway = Depends(get_mutation_gateway),
    authenticated_service: str = Depends(
        service_permission_required(["write_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> EmailResponse:
    row = await gateway.update_email(session, email_id, email, acting_user)
    return EmailResponse(**row.model_dump())


@router.delete("/emails/{email_id}", status_code=204, response_class=Response)
async def delete_email(
    email_id: str = Path(..., description="Email ID"),
    session: AsyncSession = Depends(get_async_session),
    gateway: MutationGateway = Depends(get_mutation_gateway),
    authenticated_service: str = Depends(
        service_permission_required(["write_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> Response:
    await gateway.delete_email(session, email_id, acting_user)
    return Response(status_code=204)


# Aliases


@router.post(
    "/contacts/{contact_id}/aliases", response_model=AliasResponse, status_code=201
)
async def add_alias(
    contact_id: str = Path(..., description="Contact ID"),
    alias: AliasCreate = Body(...),
    session: AsyncSession = Depends(get_async_session),
    gateway: MutationGateway = Depends(get_mutation_gateway),
    authenticated_service: str = Depends(
        service_permission_required(["write_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> AliasResponse:
    row = await gateway.add_alias(session, contact_id, alias, acting_user)
    return AliasResponse(**row.model_dump())


@router.delete("/aliases/{alias_id}", status_code=204, response_class=Response)
async def delete_alias(
    alias_id: str = Path(..., description="Alias ID"),
    session: AsyncSession = Depends(get_async_session),
    gateway: MutationGateway = Depends(get_mutation_gateway),
    authenticated_service: str = Depends(
        service_permission_required(["write_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> Response:
    await gateway.delete_alias(session, alias_id, acting_user)
    return Response(status_code=204)
