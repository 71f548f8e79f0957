"""
Notification API endpoints.

Every actor reads the in-app notifications addressed to them and marks them
read. Notifications are written by the order services after each commit.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Response, status

from ruzio.api.deps import CurrentActor, NotificationServiceDep
from ruzio.core.logging import get_logger
from ruzio.schemas.notifications import NotificationResponse
from ruzio.services.notifications.service import NotificationServiceError
from ruzio.services.orders.exceptions import UpstreamUnavailableError

logger = get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=list[NotificationResponse], summary="List notifications")
async def list_notifications(
    actor: CurrentActor,
    notifications: NotificationServiceDep,
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
) -> list[NotificationResponse]:
    """The caller's notifications, newest first."""
    try:
        stored = await notifications.list_for_user(
            actor.id, unread_only=unread_only, limit=limit
        )
    except NotificationServiceError as e:
        raise UpstreamUnavailableError(e.message, **e.context) from e

    return [NotificationResponse.model_validate(item) for item in stored]


@router.post(
    "/{notification_id}/read",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Mark notification read",
)
async def mark_notification_read(
    notification_id: UUID,
    actor: CurrentActor,
    notifications: NotificationServiceDep,
) -> Response:
    try:
        updated = await notifications.mark_read(notification_id, actor.id)
    except NotificationServiceError as e:
        raise UpstreamUnavailableError(e.message, **e.context) from e

    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )

    logger.info("Notification read", notification_id=str(notification_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
