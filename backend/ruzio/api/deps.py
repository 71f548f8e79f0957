"""
FastAPI dependencies for the caller identity, role checks and services.

Tokens are issued by the platform's auth service. This module only decodes
them: ``sub`` carries the actor id and ``role`` the actor role. The order
engine receives the resulting opaque actor and never looks at the token.
"""

from dataclasses import dataclass
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from ruzio.core.config import get_settings
from ruzio.core.logging import bind_actor, get_logger
from ruzio.database.connection import get_db, get_session_factory
from ruzio.services.delivery.assignment import AssignmentArbiter
from ruzio.services.notifications.service import NotificationService, NotificationSink
from ruzio.services.orders.enums import ActorRole
from ruzio.services.orders.exceptions import UnauthorizedActorError
from ruzio.services.orders.service import OrderService
from ruzio.services.settlement.ledger import SettlementLedger

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller."""

    id: UUID
    role: ActorRole


async def get_current_actor(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Actor:
    """
    Decode the bearer token into the calling actor.

    Raises:
        HTTPException: 401 if the token is missing, invalid or lacks claims
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    settings = get_settings()

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.warning("Authentication failed: Invalid token", error=str(e))
        raise credentials_exception from e

    subject = payload.get("sub")
    role = payload.get("role")
    if subject is None or role is None:
        logger.warning("Authentication failed: Token missing claims")
        raise credentials_exception

    try:
        actor = Actor(id=UUID(str(subject)), role=ActorRole.from_string(str(role)))
    except ValueError as e:
        logger.warning(
            "Authentication failed: Malformed claims",
            subject=str(subject),
            role=str(role),
        )
        raise credentials_exception from e

    bind_actor(str(actor.id), actor.role.value)
    return actor


def require_role(*allowed_roles: ActorRole):
    """
    Create a dependency that requires one of the given actor roles.

    Example:
        @router.get("/", dependencies=[Depends(require_role(ActorRole.ADMIN))])
    """

    async def role_checker(
        actor: Annotated[Actor, Depends(get_current_actor)],
    ) -> Actor:
        if actor.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                actor_id=str(actor.id),
                actor_role=actor.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise UnauthorizedActorError(
                "Insufficient permissions",
                actor_role=actor.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
        return actor

    return role_checker


def get_notification_service() -> NotificationService:
    """Notification store backed by its own sessions."""
    return NotificationService(get_session_factory())


def get_notification_sink() -> NotificationSink:
    """Persisting notification sink backed by its own sessions."""
    return NotificationService(get_session_factory())


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
CustomerActor = Annotated[Actor, Depends(require_role(ActorRole.CUSTOMER))]
RestaurantActor = Annotated[Actor, Depends(require_role(ActorRole.RESTAURANT))]
DeliveryActor = Annotated[Actor, Depends(require_role(ActorRole.DELIVERY))]
AdminActor = Annotated[Actor, Depends(require_role(ActorRole.ADMIN))]
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
Sink = Annotated[NotificationSink, Depends(get_notification_sink)]


def get_order_service(db: DatabaseSession, sink: Sink) -> OrderService:
    return OrderService(db, notification_sink=sink)


def get_assignment_arbiter(db: DatabaseSession, sink: Sink) -> AssignmentArbiter:
    return AssignmentArbiter(db, notification_sink=sink)


def get_settlement_ledger(db: DatabaseSession) -> SettlementLedger:
    return SettlementLedger(db)


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
ArbiterDep = Annotated[AssignmentArbiter, Depends(get_assignment_arbiter)]
LedgerDep = Annotated[SettlementLedger, Depends(get_settlement_ledger)]
NotificationServiceDep = Annotated[
    NotificationService, Depends(get_notification_service)
]
