"""Audit API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.modules.audit.schemas import AuditLogRead
from app.modules.audit.service import AuditService, get_audit_service
from app.modules.profiles.service import get_current_user
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/my-activity", response_model=Page[AuditLogRead])
async def list_my_activity(
    pagination=Depends(get_pagination_params),
    service: AuditService = Depends(get_audit_service),
    current_user=Depends(get_current_user),
) -> Page[AuditLogRead]:
    """List audit entries produced by the current user."""
    items, total = await service.list_my_activity(current_user, pagination.limit, pagination.offset)
    serialized = [AuditLogRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)
