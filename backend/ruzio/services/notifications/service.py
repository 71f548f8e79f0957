"""
In-app notification service.

Order services hand finished notifications to a NotificationSink after their
transaction has committed. NotificationService is the persisting sink: it
writes each notification through a session of its own, so a failure here can
never affect the order write that triggered it.
"""

import uuid
from typing import Optional, Protocol, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ruzio.core.logging import get_logger
from ruzio.database.models.notification import Notification, NotificationKind

logger = get_logger(__name__)


class NotificationServiceError(Exception):
    """Base exception for notification service errors."""

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class NotificationSink(Protocol):
    """Receiver of order notifications."""

    async def notify(
        self,
        user_id: uuid.UUID,
        kind: NotificationKind,
        title: str,
        body: str,
        related_order_id: Optional[uuid.UUID] = None,
    ) -> None:
        ...


class NotificationService:
    """
    Persists in-app notifications and serves them back to their recipients.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize notification service.

        Args:
            session_factory: Factory for the service's own sessions
        """
        self.session_factory = session_factory

    async def notify(
        self,
        user_id: uuid.UUID,
        kind: NotificationKind,
        title: str,
        body: str,
        related_order_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Store a notification for a user.

        Raises:
            NotificationServiceError: If the notification cannot be stored
        """
        async with self.session_factory() as session:
            try:
                session.add(
                    Notification(
                        user_id=user_id,
                        kind=kind,
                        title=title,
                        message=body,
                        order_id=related_order_id,
                    )
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise NotificationServiceError(
                    "Failed to store notification",
                    user_id=str(user_id),
                    kind=kind.value,
                    error=str(e),
                ) from e

        logger.info(
            "Notification stored",
            user_id=str(user_id),
            kind=kind.value,
            order_id=str(related_order_id) if related_order_id else None,
        )

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> Sequence[Notification]:
        """
        List a user's notifications, newest first.

        Raises:
            NotificationServiceError: If the query fails
        """
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)

        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
            except SQLAlchemyError as e:
                raise NotificationServiceError(
                    "Failed to list notifications",
                    user_id=str(user_id),
                    error=str(e),
                ) from e
            return result.scalars().all()

    async def mark_read(
        self, notification_id: uuid.UUID, user_id: uuid.UUID
    ) -> bool:
        """
        Mark one of a user's notifications as read.

        Returns:
            False if the user has no such notification

        Raises:
            NotificationServiceError: If the update fails
        """
        stmt = (
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )

        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise NotificationServiceError(
                    "Failed to update notification",
                    notification_id=str(notification_id),
                    error=str(e),
                ) from e

        return result.rowcount == 1
