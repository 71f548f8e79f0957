"""
Notification Pydantic schemas.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ruzio.database.models.notification import NotificationKind


class NotificationResponse(BaseModel):
    """In-app notification as shown to its recipient."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: NotificationKind
    title: str
    message: str
    order_id: Optional[UUID] = None
    is_read: bool
    created_at: datetime
