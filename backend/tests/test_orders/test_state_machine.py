"""
Test suite for OrderStateMachine.

Tests cover the transition graph, actor scoping per transition, the fixed
validation order and the notification plan of every status.
"""

import uuid
from types import SimpleNamespace
from typing import Optional

import pytest

from ruzio.database.models.notification import NotificationKind
from ruzio.services.orders.enums import (
    TERMINAL_STATUSES,
    ActorRole,
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from ruzio.services.orders.exceptions import (
    InvalidTransitionError,
    UnauthorizedActorError,
)
from ruzio.services.orders.state_machine import (
    ActorContext,
    OrderStateMachine,
    Recipient,
    get_order_state_machine,
)

CUSTOMER_ID = uuid.uuid4()
RESTAURANT_ID = uuid.uuid4()
OWNER_ID = uuid.uuid4()
PARTNER_ID = uuid.uuid4()


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def state_machine() -> OrderStateMachine:
    return OrderStateMachine()


def make_order(
    status: OrderStatus, delivery_partner_id: Optional[uuid.UUID] = None
) -> SimpleNamespace:
    """Order stand-in with the fields the state machine reads."""
    return SimpleNamespace(
        id=uuid.uuid4(),
        status=status,
        customer_id=CUSTOMER_ID,
        restaurant_id=RESTAURANT_ID,
        delivery_partner_id=delivery_partner_id,
    )


customer = ActorContext(CUSTOMER_ID, ActorRole.CUSTOMER)
other_customer = ActorContext(uuid.uuid4(), ActorRole.CUSTOMER)
owner = ActorContext(OWNER_ID, ActorRole.RESTAURANT, restaurant_id=RESTAURANT_ID)
other_owner = ActorContext(uuid.uuid4(), ActorRole.RESTAURANT, restaurant_id=uuid.uuid4())
partner = ActorContext(PARTNER_ID, ActorRole.DELIVERY)
other_partner = ActorContext(uuid.uuid4(), ActorRole.DELIVERY)
admin = ActorContext(uuid.uuid4(), ActorRole.ADMIN)


# ============================================================================
# Transition Graph Tests
# ============================================================================


class TestTransitionGraph:
    """Test the status graph itself."""

    @pytest.mark.parametrize(
        "current,target,actor,partner_id",
        [
            (OrderStatus.PENDING, OrderStatus.ACCEPTED, owner, None),
            (OrderStatus.PENDING, OrderStatus.REJECTED, owner, None),
            (OrderStatus.PENDING, OrderStatus.CANCELLED, customer, None),
            (OrderStatus.ACCEPTED, OrderStatus.PREPARING, owner, None),
            (OrderStatus.PREPARING, OrderStatus.READY, owner, None),
            (OrderStatus.READY, OrderStatus.ASSIGNED, partner, None),
            (OrderStatus.ASSIGNED, OrderStatus.PICKED_UP, partner, PARTNER_ID),
            (OrderStatus.PICKED_UP, OrderStatus.DELIVERED, partner, PARTNER_ID),
        ],
    )
    def test_every_edge_is_allowed_for_its_actor(
        self, state_machine, current, target, actor, partner_id
    ) -> None:
        order = make_order(current, partner_id)

        rule = state_machine.validate_transition(order, target, actor)

        assert (rule.source, rule.target) == (current, target)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES))
    def test_terminal_statuses_have_no_exits(self, state_machine, terminal) -> None:
        assert get_allowed_order_transitions(terminal) == set()
        for target in OrderStatus:
            with pytest.raises(InvalidTransitionError):
                state_machine.get_rule(terminal, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.PREPARING),
            (OrderStatus.ACCEPTED, OrderStatus.CANCELLED),
            (OrderStatus.ACCEPTED, OrderStatus.REJECTED),
            (OrderStatus.READY, OrderStatus.DELIVERED),
            (OrderStatus.ASSIGNED, OrderStatus.READY),
            (OrderStatus.PREPARING, OrderStatus.PREPARING),
            (OrderStatus.DELIVERED, OrderStatus.PENDING),
        ],
    )
    def test_non_edges_are_invalid(self, state_machine, current, target) -> None:
        assert not validate_order_status_transition(current, target)
        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.get_rule(current, target)

        assert exc_info.value.context["current_status"] == current.value
        assert exc_info.value.status_code == 409

    def test_pending_is_never_a_target(self, state_machine) -> None:
        for current in OrderStatus:
            with pytest.raises(InvalidTransitionError):
                state_machine.get_rule(current, OrderStatus.PENDING)


# ============================================================================
# Actor Scoping Tests
# ============================================================================


class TestActorScoping:
    """Test who may make each move."""

    @pytest.mark.parametrize("actor", [other_owner, customer, partner, admin])
    def test_only_owning_restaurant_accepts(self, state_machine, actor) -> None:
        with pytest.raises(UnauthorizedActorError):
            state_machine.validate_transition(
                make_order(OrderStatus.PENDING), OrderStatus.ACCEPTED, actor
            )

    @pytest.mark.parametrize("actor", [other_customer, owner, admin])
    def test_only_placing_customer_cancels(self, state_machine, actor) -> None:
        with pytest.raises(UnauthorizedActorError):
            state_machine.validate_transition(
                make_order(OrderStatus.PENDING), OrderStatus.CANCELLED, actor
            )

    def test_restaurant_without_restaurant_is_refused(self, state_machine) -> None:
        orphan = ActorContext(uuid.uuid4(), ActorRole.RESTAURANT)

        with pytest.raises(UnauthorizedActorError):
            state_machine.validate_transition(
                make_order(OrderStatus.PENDING), OrderStatus.ACCEPTED, orphan
            )

    def test_only_assigned_partner_picks_up(self, state_machine) -> None:
        order = make_order(OrderStatus.ASSIGNED, PARTNER_ID)

        with pytest.raises(UnauthorizedActorError):
            state_machine.validate_transition(order, OrderStatus.PICKED_UP, other_partner)

    def test_assigned_order_cannot_be_taken_again(self, state_machine) -> None:
        order = make_order(OrderStatus.READY, PARTNER_ID)

        with pytest.raises(UnauthorizedActorError):
            state_machine.validate_transition(order, OrderStatus.ASSIGNED, other_partner)

    def test_status_is_checked_before_actor(self, state_machine) -> None:
        """Test a wrong actor on a non-edge still gets InvalidTransitionError."""
        with pytest.raises(InvalidTransitionError):
            state_machine.validate_transition(
                make_order(OrderStatus.DELIVERED), OrderStatus.ACCEPTED, other_customer
            )

    def test_allowed_transitions_per_actor(self, state_machine) -> None:
        pending = make_order(OrderStatus.PENDING)

        assert state_machine.get_allowed_transitions(pending, owner) == {
            OrderStatus.ACCEPTED,
            OrderStatus.REJECTED,
        }
        assert state_machine.get_allowed_transitions(pending, customer) == {
            OrderStatus.CANCELLED
        }
        assert state_machine.get_allowed_transitions(pending, admin) == set()


# ============================================================================
# Notification Plan Tests
# ============================================================================


class TestNotificationPlan:
    """Test who hears about each status."""

    def test_new_order_goes_to_restaurant_owner(self, state_machine) -> None:
        plan = state_machine.plan_notification(OrderStatus.PENDING)

        assert plan.recipient == Recipient.RESTAURANT_OWNER
        assert plan.kind == NotificationKind.NEW_ORDER

    def test_cancellation_goes_to_restaurant_owner(self, state_machine) -> None:
        plan = state_machine.plan_notification(OrderStatus.CANCELLED)

        assert plan.recipient == Recipient.RESTAURANT_OWNER
        assert plan.kind == NotificationKind.ORDER_CANCELLED

    @pytest.mark.parametrize(
        "status,kind",
        [
            (OrderStatus.ACCEPTED, NotificationKind.ORDER_UPDATE),
            (OrderStatus.REJECTED, NotificationKind.ORDER_CANCELLED),
            (OrderStatus.PREPARING, NotificationKind.ORDER_UPDATE),
            (OrderStatus.READY, NotificationKind.ORDER_READY),
            (OrderStatus.ASSIGNED, NotificationKind.ORDER_ASSIGNED),
            (OrderStatus.PICKED_UP, NotificationKind.ORDER_UPDATE),
            (OrderStatus.DELIVERED, NotificationKind.ORDER_UPDATE),
        ],
    )
    def test_progress_goes_to_customer(self, state_machine, status, kind) -> None:
        plan = state_machine.plan_notification(status)

        assert plan.recipient == Recipient.CUSTOMER
        assert plan.kind == kind

    def test_shared_instance(self) -> None:
        assert get_order_state_machine() is get_order_state_machine()
