"""
Order pricing engine.

This module implements the PricingEngine that computes the financial
breakdown of an order: items total, distance based delivery charge, platform
fee, commission and restaurant payout. The engine is a pure function of its
inputs. Menu prices, the restaurant's commission override and the platform
rate snapshot are all passed in, so the same inputs always produce an equal
breakdown, whether for a quote or for placement.
"""

import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Sequence

from ruzio.core.logging import get_logger
from ruzio.services.orders.exceptions import (
    EmptyOrderError,
    ItemUnavailableError,
    OrderValidationError,
    RestaurantUnavailableError,
)

logger = get_logger(__name__)

MONEY_QUANTUM = Decimal("0.01")
HUNDRED = Decimal("100")


def round_money(value: Decimal) -> Decimal:
    """Round to two decimal places, halves away from zero."""
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field_name: str) -> Decimal:
    """
    Convert a numeric input to Decimal without binary float artifacts.

    Raises:
        OrderValidationError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise OrderValidationError(f"{field_name} must be a number", field=field_name)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise OrderValidationError(
            f"{field_name} must be a number", field=field_name
        ) from e
    if not result.is_finite():
        raise OrderValidationError(f"{field_name} must be finite", field=field_name)
    return result


@dataclass(frozen=True)
class PlatformRates:
    """Versioned snapshot of the platform rate configuration."""

    base_delivery_charge: Decimal
    per_km_rate: Decimal
    platform_fee_percentage: Decimal
    default_commission_percentage: Decimal
    version: int = 1


@dataclass(frozen=True)
class RestaurantSnapshot:
    """What pricing needs to know about a restaurant."""

    id: uuid.UUID
    is_open: bool
    is_approved: bool
    commission_override: Optional[Decimal] = None
    owner_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class MenuItemSnapshot:
    """Live menu item as read at pricing time."""

    id: uuid.UUID
    restaurant_id: uuid.UUID
    name: str
    price: Decimal
    is_available: bool = True
    is_active: bool = True


@dataclass(frozen=True)
class RequestedLine:
    """One line of an order request."""

    menu_item_id: uuid.UUID
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    """Line snapshot stored on the order."""

    menu_item_id: uuid.UUID
    name: str
    unit_price: Decimal
    quantity: int
    line_subtotal: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    """Frozen monetary breakdown of an order."""

    lines: tuple[PricedLine, ...]
    distance_km: Decimal
    items_total: Decimal
    delivery_charge: Decimal
    platform_fee: Decimal
    total_amount: Decimal
    commission_percentage_applied: Decimal
    admin_commission_amount: Decimal
    restaurant_earning_amount: Decimal
    base_delivery_charge: Decimal
    per_km_rate: Decimal
    rates_version: int


class PricingEngine:
    """
    Pure pricing calculations for food orders.

    Formulas:
        delivery_charge = round(base_delivery_charge + distance_km * per_km_rate)
        platform_fee = round(items_total * platform_fee_percentage / 100)
        admin_commission = round(items_total * commission_percentage / 100)
        restaurant_earning = items_total - admin_commission
        total_amount = items_total + delivery_charge + platform_fee

    All rounding is to cents, half-up.
    """

    def __init__(self, min_distance_km: Decimal = Decimal("0.1")):
        """
        Initialize pricing engine.

        Args:
            min_distance_km: Smallest delivery distance accepted
        """
        self.min_distance_km = min_distance_km

    def price(
        self,
        restaurant: Optional[RestaurantSnapshot],
        menu: Mapping[uuid.UUID, MenuItemSnapshot],
        lines: Sequence[RequestedLine],
        distance_km: Any,
        rates: PlatformRates,
    ) -> PriceBreakdown:
        """
        Price an order request.

        Args:
            restaurant: Restaurant the order is placed with, None if it does
                not exist
            menu: Live menu items keyed by id; ids missing from the mapping
                are treated as unavailable
            lines: Requested lines, in order
            distance_km: Delivery distance in kilometers
            rates: Platform rate snapshot

        Returns:
            The frozen breakdown

        Raises:
            EmptyOrderError: If there are no lines
            RestaurantUnavailableError: If the restaurant is absent, closed
                or not approved
            OrderValidationError: If a quantity or the distance is invalid
            ItemUnavailableError: If any line cannot be resolved
        """
        if not lines:
            raise EmptyOrderError("Order must contain at least one item")

        if restaurant is None or not (restaurant.is_open and restaurant.is_approved):
            raise RestaurantUnavailableError(
                "Restaurant not found or currently closed",
                restaurant_id=str(restaurant.id) if restaurant else None,
            )

        distance = self.validate_distance(distance_km)
        priced_lines = tuple(
            self.price_line(restaurant, menu, line) for line in lines
        )

        items_total = round_money(
            sum((line.line_subtotal for line in priced_lines), start=Decimal("0"))
        )
        delivery_charge = self.calculate_delivery_charge(distance, rates)
        platform_fee = self.calculate_platform_fee(items_total, rates)
        commission_percentage = self.resolve_commission_percentage(restaurant, rates)
        admin_commission = self.calculate_commission(items_total, commission_percentage)

        breakdown = PriceBreakdown(
            lines=priced_lines,
            distance_km=distance,
            items_total=items_total,
            delivery_charge=delivery_charge,
            platform_fee=platform_fee,
            total_amount=items_total + delivery_charge + platform_fee,
            commission_percentage_applied=commission_percentage,
            admin_commission_amount=admin_commission,
            restaurant_earning_amount=items_total - admin_commission,
            base_delivery_charge=rates.base_delivery_charge,
            per_km_rate=rates.per_km_rate,
            rates_version=rates.version,
        )

        logger.debug(
            "Order priced",
            restaurant_id=str(restaurant.id),
            line_count=len(priced_lines),
            items_total=str(breakdown.items_total),
            total_amount=str(breakdown.total_amount),
            rates_version=rates.version,
        )

        return breakdown

    def validate_distance(self, distance_km: Any) -> Decimal:
        """
        Validate the delivery distance.

        Raises:
            OrderValidationError: If the distance is below the minimum
        """
        distance = to_decimal(distance_km, "distance_km")
        if distance < self.min_distance_km:
            raise OrderValidationError(
                f"Distance must be at least {self.min_distance_km} km",
                distance_km=str(distance),
            )
        return distance

    def price_line(
        self,
        restaurant: RestaurantSnapshot,
        menu: Mapping[uuid.UUID, MenuItemSnapshot],
        line: RequestedLine,
    ) -> PricedLine:
        """
        Resolve and price a single line.

        Raises:
            OrderValidationError: If the quantity is not a positive integer
            ItemUnavailableError: If the item is missing, unavailable or
                belongs to another restaurant, or was withdrawn from the menu
        """
        quantity = line.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise OrderValidationError(
                "Quantity must be a positive integer",
                menu_item_id=str(line.menu_item_id),
                quantity=quantity,
            )

        item = menu.get(line.menu_item_id)
        if (
            item is None
            or not item.is_available
            or not item.is_active
            or item.restaurant_id != restaurant.id
        ):
            raise ItemUnavailableError(
                f"Menu item {line.menu_item_id} not available",
                menu_item_id=str(line.menu_item_id),
                restaurant_id=str(restaurant.id),
            )

        unit_price = round_money(item.price)
        return PricedLine(
            menu_item_id=item.id,
            name=item.name,
            unit_price=unit_price,
            quantity=quantity,
            line_subtotal=unit_price * quantity,
        )

    def calculate_delivery_charge(
        self, distance_km: Decimal, rates: PlatformRates
    ) -> Decimal:
        """Base charge plus the per kilometer charge."""
        return round_money(rates.base_delivery_charge + distance_km * rates.per_km_rate)

    def calculate_platform_fee(
        self, items_total: Decimal, rates: PlatformRates
    ) -> Decimal:
        """Platform fee on the items total."""
        return round_money(items_total * rates.platform_fee_percentage / HUNDRED)

    def resolve_commission_percentage(
        self, restaurant: RestaurantSnapshot, rates: PlatformRates
    ) -> Decimal:
        """Restaurant override when set, else the platform default."""
        if restaurant.commission_override is not None:
            return restaurant.commission_override
        return rates.default_commission_percentage

    def calculate_commission(
        self, items_total: Decimal, commission_percentage: Decimal
    ) -> Decimal:
        """Platform share of the items total."""
        return round_money(items_total * commission_percentage / HUNDRED)
