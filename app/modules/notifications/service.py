"""Notifications business logic layer."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import NotificationStatusEnum
from app.modules.notifications.models import Notification
from app.modules.notifications.repository import NotificationsRepository
from app.modules.profiles.models import Profile
from app.shared.exceptions import NotFoundException, UnauthorizedException
from app.shared.utils import utc_now


class NotificationsService:
    """Recipient-facing side of notifications."""

    def __init__(self, repository: NotificationsRepository) -> None:
        self.repository = repository

    async def list_my_notifications(
        self,
        actor: Profile,
        limit: int,
        offset: int,
        unread_only: bool = False,
    ) -> tuple[list[Notification], int]:
        return await self.repository.list_notifications_for_user(actor.id, limit, offset, unread_only)

    async def mark_read(self, notification_id: UUID, actor: Profile) -> Notification:
        """Mark notification read; only its recipient may do so."""
        notification = await self.repository.get_notification_by_id(notification_id)
        if notification is None:
            raise NotFoundException("Notification not found")
        if notification.user_id != actor.id:
            raise UnauthorizedException("Only the recipient can update this notification")
        if notification.status == NotificationStatusEnum.READ:
            return notification
        return await self.repository.set_status(notification, NotificationStatusEnum.READ, utc_now())


async def get_notifications_service(session: AsyncSession = Depends(get_db_session)) -> NotificationsService:
    """Dependency provider for notifications service."""
    return NotificationsService(repository=NotificationsRepository(session))
