"""
Platform settings model holding the rates used to price orders.

A single row exists. The admin service edits it and bumps ``version``;
orders record the version they were priced with.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Integer, Numeric, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ruzio.database.base import BaseModel


class PlatformSettings(BaseModel):
    """
    Singleton platform rate configuration.

    Attributes:
        commission_percentage: Default commission taken from the items total
        platform_fee_percentage: Fee charged to the customer on the items total
        base_delivery_charge: Flat delivery charge
        per_km_rate: Delivery charge per kilometer
        version: Incremented on every change
        updated_by: Admin who made the last change
    """

    __tablename__ = "platform_settings"

    commission_percentage: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2), nullable=False
    )

    platform_fee_percentage: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2), nullable=False
    )

    base_delivery_charge: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2), nullable=False
    )

    per_km_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2), nullable=False
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "commission_percentage >= 0 AND commission_percentage <= 100",
            name="ck_platform_settings_commission_range",
        ),
        CheckConstraint(
            "platform_fee_percentage >= 0 AND platform_fee_percentage <= 100",
            name="ck_platform_settings_fee_range",
        ),
        CheckConstraint(
            "base_delivery_charge >= 0 AND per_km_rate >= 0",
            name="ck_platform_settings_delivery_non_negative",
        ),
    )
