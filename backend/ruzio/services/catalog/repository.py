"""
Catalog read repository.

Loads the restaurant, menu item, user and platform rate records the order
engine consumes and converts them to immutable snapshots. Database failures
surface as UpstreamUnavailableError so callers never act on a partial read.
"""

import uuid
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ruzio.core.config import get_settings
from ruzio.core.logging import get_logger
from ruzio.database.models.platform_settings import PlatformSettings
from ruzio.database.models.restaurant import MenuItem, Restaurant
from ruzio.database.models.user import User
from ruzio.services.orders.exceptions import UpstreamUnavailableError
from ruzio.services.pricing.pricing_engine import (
    MenuItemSnapshot,
    PlatformRates,
    RestaurantSnapshot,
)

logger = get_logger(__name__)


def restaurant_snapshot(restaurant: Restaurant) -> RestaurantSnapshot:
    return RestaurantSnapshot(
        id=restaurant.id,
        is_open=restaurant.is_open,
        is_approved=restaurant.is_approved,
        commission_override=restaurant.commission_percentage,
        owner_id=restaurant.owner_id,
    )


def menu_item_snapshot(item: MenuItem) -> MenuItemSnapshot:
    return MenuItemSnapshot(
        id=item.id,
        restaurant_id=item.restaurant_id,
        name=item.name,
        price=item.price,
        is_available=item.is_available,
        is_active=item.is_active,
    )


def platform_rates(row: PlatformSettings) -> PlatformRates:
    return PlatformRates(
        base_delivery_charge=row.base_delivery_charge,
        per_km_rate=row.per_km_rate,
        platform_fee_percentage=row.platform_fee_percentage,
        default_commission_percentage=row.commission_percentage,
        version=row.version,
    )


class CatalogRepository:
    """
    Read-side access to the records owned by the catalog and admin services.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize catalog repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def get_restaurant(
        self, restaurant_id: uuid.UUID
    ) -> Optional[RestaurantSnapshot]:
        """
        Get a restaurant snapshot by ID.

        Raises:
            UpstreamUnavailableError: If the query fails
        """
        try:
            restaurant = await self.session.get(Restaurant, restaurant_id)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch restaurant",
                restaurant_id=str(restaurant_id),
                error=str(e),
            )
            raise UpstreamUnavailableError(
                "Restaurant lookup failed", restaurant_id=str(restaurant_id)
            ) from e

        return restaurant_snapshot(restaurant) if restaurant else None

    async def get_restaurant_by_owner(
        self, owner_id: uuid.UUID
    ) -> Optional[RestaurantSnapshot]:
        """
        Get the restaurant owned by a restaurant-role user.

        Raises:
            UpstreamUnavailableError: If the query fails
        """
        try:
            result = await self.session.execute(
                select(Restaurant).where(Restaurant.owner_id == owner_id)
            )
            restaurant = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch restaurant by owner",
                owner_id=str(owner_id),
                error=str(e),
            )
            raise UpstreamUnavailableError(
                "Restaurant lookup failed", owner_id=str(owner_id)
            ) from e

        return restaurant_snapshot(restaurant) if restaurant else None

    async def get_menu_items(
        self, menu_item_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, MenuItemSnapshot]:
        """
        Get live menu items keyed by ID.

        Unknown IDs are simply absent from the result.

        Raises:
            UpstreamUnavailableError: If the query fails
        """
        ids = list(set(menu_item_ids))
        if not ids:
            return {}

        try:
            result = await self.session.execute(
                select(MenuItem).where(MenuItem.id.in_(ids))
            )
            items = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch menu items",
                item_count=len(ids),
                error=str(e),
            )
            raise UpstreamUnavailableError(
                "Menu lookup failed", item_count=len(ids)
            ) from e

        return {item.id: menu_item_snapshot(item) for item in items}

    async def get_rates(self) -> PlatformRates:
        """
        Get the current platform rates.

        The settings row is created from configured defaults on first use.

        Raises:
            UpstreamUnavailableError: If the query fails
        """
        try:
            row = await self._get_settings_row()
            if row is None:
                row = await self._create_default_settings()
        except SQLAlchemyError as e:
            logger.error("Failed to load platform settings", error=str(e))
            raise UpstreamUnavailableError("Platform settings lookup failed") from e

        return platform_rates(row)

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        """
        Get a user by ID.

        Raises:
            UpstreamUnavailableError: If the query fails
        """
        try:
            return await self.session.get(User, user_id)
        except SQLAlchemyError as e:
            logger.error("Failed to fetch user", user_id=str(user_id), error=str(e))
            raise UpstreamUnavailableError(
                "User lookup failed", user_id=str(user_id)
            ) from e

    async def _get_settings_row(self) -> Optional[PlatformSettings]:
        result = await self.session.execute(
            select(PlatformSettings).order_by(PlatformSettings.created_at).limit(1)
        )
        return result.scalar_one_or_none()

    async def _create_default_settings(self) -> PlatformSettings:
        settings = get_settings()
        row = PlatformSettings(
            commission_percentage=settings.default_commission_percentage,
            platform_fee_percentage=settings.default_platform_fee_percentage,
            base_delivery_charge=settings.default_base_delivery_charge,
            per_km_rate=settings.default_per_km_rate,
            version=1,
        )
        self.session.add(row)
        await self.session.flush()

        logger.info(
            "Platform settings initialized from defaults",
            commission_percentage=str(row.commission_percentage),
            base_delivery_charge=str(row.base_delivery_charge),
            per_km_rate=str(row.per_km_rate),
        )
        return row

    async def update_rates(
        self,
        updated_by: Optional[uuid.UUID] = None,
        commission_percentage: Optional[Decimal] = None,
        platform_fee_percentage: Optional[Decimal] = None,
        base_delivery_charge: Optional[Decimal] = None,
        per_km_rate: Optional[Decimal] = None,
    ) -> PlatformRates:
        """
        Change platform rates and bump their version.

        Already placed orders keep the values they were priced with.

        Raises:
            UpstreamUnavailableError: If the write fails
        """
        try:
            row = await self._get_settings_row()
            if row is None:
                row = await self._create_default_settings()

            if commission_percentage is not None:
                row.commission_percentage = commission_percentage
            if platform_fee_percentage is not None:
                row.platform_fee_percentage = platform_fee_percentage
            if base_delivery_charge is not None:
                row.base_delivery_charge = base_delivery_charge
            if per_km_rate is not None:
                row.per_km_rate = per_km_rate
            row.version = row.version + 1
            row.updated_by = updated_by

            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to update platform settings", error=str(e))
            raise UpstreamUnavailableError("Platform settings update failed") from e

        logger.info(
            "Platform rates updated",
            version=row.version,
            updated_by=str(updated_by) if updated_by else None,
        )
        return platform_rates(row)
