"""
Audit feed and undo endpoints for the Canvass Service.

Both endpoints are restricted to admins.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from services.canvass.auth import get_acting_user, service_permission_required
from services.canvass.database import get_async_session
from services.canvass.models.user import User
from services.canvass.routers.contacts import get_audit_recorder, get_mutation_gateway
from services.canvass.schemas.audit import AuditEntryResponse
from services.canvass.services.audit_recorder import AuditRecorder
from services.canvass.services.mutation_gateway import MutationGateway
from services.common.http_errors import PermissionDeniedError
from services.common.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=List[AuditEntryResponse])
async def list_audit_entries(
    user_id: Optional[str] = Query(None, alias="userId", description="Filter by author"),
    limit: int = Query(100, ge=1, le=500, description="Maximum entries to return"),
    session: AsyncSession = Depends(get_async_session),
    recorder: AuditRecorder = Depends(get_audit_recorder),
    authenticated_service: str = Depends(service_permission_required(["read_audit"])),
    acting_user: User = Depends(get_acting_user),
) -> List[AuditEntryResponse]:
    """Recent changes across the directory, newest first."""
    if not acting_user.is_admin:
        raise PermissionDeniedError(
            "Only admins can view the audit feed", role=acting_user.role
        )
    return await recorder.list_recent(session, user_id=user_id, limit=limit)


@router.post("/{entry_id}/undo", response_model=AuditEntryResponse)
async def undo_audit_entry(
    entry_id: int = Path(..., description="Audit entry to revert"),
    session: AsyncSession = Depends(get_async_session),
    recorder: AuditRecorder = Depends(get_audit_recorder),
    gateway: MutationGateway = Depends(get_mutation_gateway),
    authenticated_service: str = Depends(service_permission_required(["undo_audit"])),
    acting_user: User = Depends(get_acting_user),
) -> AuditEntryResponse:
    """Revert one change; fails with 409 if a later edit superseded it."""
    reversal = await recorder.undo(session, entry_id, acting_user, gateway)
    return recorder.to_response(
        reversal, acting_user.first_name, acting_user.last_name
    )
