"""
Pytest configuration and shared test fixtures.

Every test that touches the database gets a fresh SQLite file database
through aiosqlite, created from the ORM metadata and seeded with a small
marketplace: customers, restaurant owners and their restaurants, delivery
partners, an admin, a menu and the platform rates of the pricing example.
"""

import os
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import AsyncGenerator, Optional

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"

# Settings are cached on first use, so the environment is set before any
# ruzio import.
os.environ["APP_ENVIRONMENT"] = "test"
os.environ["APP_SECRET_KEY"] = TEST_SECRET_KEY
os.environ["APP_RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("APP_DATABASE_URL", "sqlite+aiosqlite:///./ruzio-test.db")

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ruzio.database.connection import create_engine, create_schema, create_session_factory
from ruzio.database.models import (
    MenuItem,
    NotificationKind,
    PlatformSettings,
    Restaurant,
    User,
)
from ruzio.database.models.order import Order
from ruzio.services.orders.enums import ActorRole, OrderStatus
from ruzio.services.orders.repository import OrderRepository
from ruzio.services.orders.service import OrderService
from ruzio.services.pricing.pricing_engine import RequestedLine


@dataclass
class Marketplace:
    """Identifiers of the seeded records."""

    customer_id: uuid.UUID
    other_customer_id: uuid.UUID
    owner_id: uuid.UUID
    other_owner_id: uuid.UUID
    restaurant_id: uuid.UUID
    other_restaurant_id: uuid.UUID
    closed_restaurant_id: uuid.UUID
    partner_id: uuid.UUID
    second_partner_id: uuid.UUID
    unapproved_partner_id: uuid.UUID
    admin_id: uuid.UUID
    burger_id: uuid.UUID
    pizza_id: uuid.UUID
    sold_out_id: uuid.UUID
    other_menu_item_id: uuid.UUID

    def example_lines(self) -> list[RequestedLine]:
        """One burger (100.00) and one pizza (150.00)."""
        return [
            RequestedLine(menu_item_id=self.burger_id, quantity=1),
            RequestedLine(menu_item_id=self.pizza_id, quantity=1),
        ]


class RecordingSink:
    """Notification sink remembering every notification it receives."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.notifications: list[dict] = []

    async def notify(
        self,
        user_id: uuid.UUID,
        kind: NotificationKind,
        title: str,
        body: str,
        related_order_id: Optional[uuid.UUID] = None,
    ) -> None:
        if self.fail:
            raise ConnectionError("notification backend down")
        self.notifications.append(
            {
                "user_id": user_id,
                "kind": kind,
                "title": title,
                "body": body,
                "related_order_id": related_order_id,
            }
        )

    def kinds_for(self, user_id: uuid.UUID) -> list[NotificationKind]:
        return [n["kind"] for n in self.notifications if n["user_id"] == user_id]


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Fresh SQLite database file with the full schema.

    A file rather than an in-memory database lets several sessions run
    concurrently against the same data.
    """
    db_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ruzio.db'}")
    await create_schema(db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
async def marketplace(
    session_factory: async_sessionmaker[AsyncSession],
) -> Marketplace:
    """
    Seed users, restaurants, menu items and platform rates.

    Rates: base delivery 30, 8 per km, platform fee 2.4%, commission 10%.
    """
    def user(role: ActorRole, name: str, approved: bool = True) -> User:
        return User(id=uuid.uuid4(), name=name, role=role, is_active=True, is_approved=approved)

    customer = user(ActorRole.CUSTOMER, "Asha")
    other_customer = user(ActorRole.CUSTOMER, "Ben")
    owner = user(ActorRole.RESTAURANT, "Chef Dana")
    other_owner = user(ActorRole.RESTAURANT, "Chef Eli")
    closed_owner = user(ActorRole.RESTAURANT, "Chef Fay")
    partner = user(ActorRole.DELIVERY, "Gus")
    second_partner = user(ActorRole.DELIVERY, "Hana")
    unapproved_partner = user(ActorRole.DELIVERY, "Ivo", approved=False)
    admin = user(ActorRole.ADMIN, "Admin")

    restaurant = Restaurant(
        id=uuid.uuid4(), owner_id=owner.id, name="Spice Route",
        is_open=True, is_approved=True,
    )
    other_restaurant = Restaurant(
        id=uuid.uuid4(), owner_id=other_owner.id, name="Noodle Bar",
        is_open=True, is_approved=True, commission_percentage=Decimal("15.00"),
    )
    closed_restaurant = Restaurant(
        id=uuid.uuid4(), owner_id=closed_owner.id, name="Closed Kitchen",
        is_open=False, is_approved=True,
    )

    burger = MenuItem(
        id=uuid.uuid4(), restaurant_id=restaurant.id, name="Burger",
        price=Decimal("100.00"), is_available=True,
    )
    pizza = MenuItem(
        id=uuid.uuid4(), restaurant_id=restaurant.id, name="Pizza",
        price=Decimal("150.00"), is_available=True,
    )
    sold_out = MenuItem(
        id=uuid.uuid4(), restaurant_id=restaurant.id, name="Biryani",
        price=Decimal("220.00"), is_available=False,
    )
    other_menu_item = MenuItem(
        id=uuid.uuid4(), restaurant_id=other_restaurant.id, name="Ramen",
        price=Decimal("180.00"), is_available=True,
    )

    rates = PlatformSettings(
        commission_percentage=Decimal("10.00"),
        platform_fee_percentage=Decimal("2.40"),
        base_delivery_charge=Decimal("30.00"),
        per_km_rate=Decimal("8.00"),
        version=1,
    )

    async with session_factory() as db_session:
        db_session.add_all(
            [
                customer, other_customer, owner, other_owner, closed_owner,
                partner, second_partner, unapproved_partner, admin,
            ]
        )
        await db_session.flush()
        db_session.add_all([restaurant, other_restaurant, closed_restaurant])
        await db_session.flush()
        db_session.add_all([burger, pizza, sold_out, other_menu_item, rates])
        await db_session.commit()

    return Marketplace(
        customer_id=customer.id,
        other_customer_id=other_customer.id,
        owner_id=owner.id,
        other_owner_id=other_owner.id,
        restaurant_id=restaurant.id,
        other_restaurant_id=other_restaurant.id,
        closed_restaurant_id=closed_restaurant.id,
        partner_id=partner.id,
        second_partner_id=second_partner.id,
        unapproved_partner_id=unapproved_partner.id,
        admin_id=admin.id,
        burger_id=burger.id,
        pizza_id=pizza.id,
        sold_out_id=sold_out.id,
        other_menu_item_id=other_menu_item.id,
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


HAPPY_PATH = (
    OrderStatus.ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.ASSIGNED,
    OrderStatus.PICKED_UP,
    OrderStatus.DELIVERED,
)


class OrderDriver:
    """
    Places orders and walks them along the happy path, one short session per
    step, the way separate API requests would.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        marketplace: Marketplace,
        sink: RecordingSink,
    ):
        self.session_factory = session_factory
        self.marketplace = marketplace
        self.sink = sink

    async def place(
        self,
        customer_id: Optional[uuid.UUID] = None,
        lines: Optional[list[RequestedLine]] = None,
        distance_km: Decimal = Decimal("4"),
        customer_note: Optional[str] = None,
    ) -> Order:
        async with self.session_factory() as db_session:
            service = OrderService(db_session, notification_sink=self.sink)
            return await service.place_order(
                customer_id=customer_id or self.marketplace.customer_id,
                restaurant_id=self.marketplace.restaurant_id,
                lines=lines or self.marketplace.example_lines(),
                delivery_address="12 Lake Road, Pune",
                distance_km=distance_km,
                customer_note=customer_note,
            )

    async def advance(
        self,
        order_id: uuid.UUID,
        target: OrderStatus,
        partner_id: Optional[uuid.UUID] = None,
    ) -> Order:
        """Move the order through every happy path status up to ``target``."""
        partner_id = partner_id or self.marketplace.partner_id
        async with self.session_factory() as db_session:
            order = await OrderRepository(db_session).get_order(order_id)
        start = HAPPY_PATH.index(order.status) + 1 if order.status in HAPPY_PATH else 0

        for status in HAPPY_PATH[start : HAPPY_PATH.index(target) + 1]:
            if status in (OrderStatus.ACCEPTED, OrderStatus.PREPARING, OrderStatus.READY):
                actor_id, role = self.marketplace.owner_id, ActorRole.RESTAURANT
            else:
                actor_id, role = partner_id, ActorRole.DELIVERY
            async with self.session_factory() as db_session:
                service = OrderService(db_session, notification_sink=self.sink)
                order = await service.transition(order_id, actor_id, role, status)
        return order


@pytest.fixture
def driver(
    session_factory: async_sessionmaker[AsyncSession],
    marketplace: Marketplace,
    sink: RecordingSink,
) -> OrderDriver:
    return OrderDriver(session_factory, marketplace, sink)


@pytest.fixture
def failing_sink() -> RecordingSink:
    return RecordingSink(fail=True)
