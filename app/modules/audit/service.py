"""Audit business logic layer."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.modules.audit.models import AuditLog
from app.modules.audit.repository import AuditRepository
from app.modules.profiles.models import Profile


class AuditService:
    """Read side of the audit log."""

    def __init__(self, repository: AuditRepository) -> None:
        self.repository = repository

    async def list_my_activity(self, actor: Profile, limit: int, offset: int) -> tuple[list[AuditLog], int]:
        return await self.repository.list_audit_logs_for_actor(actor.id, limit=limit, offset=offset)


async def get_audit_service(session: AsyncSession = Depends(get_db_session)) -> AuditService:
    """Dependency provider for audit service."""
    return AuditService(AuditRepository(session))
