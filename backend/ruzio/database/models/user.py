"""
User model for the actors that act on orders.

Accounts are created and approved by the auth and admin services; the order
engine only reads role, activity and approval flags.
"""

from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ruzio.database.base import BaseModel
from ruzio.services.orders.enums import ActorRole


class User(BaseModel):
    """
    Marketplace user: customer, restaurant owner, delivery partner or admin.

    Attributes:
        name: Display name
        phone: Contact phone, shown to the counterpart of a delivery
        role: Actor role
        is_active: False once an admin blocks the account
        is_approved: Admin approval, required for restaurant owners and
            delivery partners
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    role: Mapped[ActorRole] = mapped_column(
        SQLEnum(
            ActorRole,
            name="actor_role",
            values_callable=lambda roles: [r.value for r in roles],
            create_constraint=True,
        ),
        nullable=False,
        index=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_users_role_approved", "role", "is_approved"),)

    @property
    def can_deliver(self) -> bool:
        """Check if the user may take delivery assignments."""
        return self.role == ActorRole.DELIVERY and self.is_active and self.is_approved
