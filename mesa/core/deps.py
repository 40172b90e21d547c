"""
Request dependencies: the authenticated caller.

The identity provider signs a bearer token; we trust its claims and enforce
role-based rules on top of them.
"""
import enum
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mesa.core.errors import PermissionDenied
from mesa.core.security import decode_token

bearer_scheme = HTTPBearer(auto_error=False)


class ActorRole(str, enum.Enum):
    CUSTOMER = "customer"
    RESTAURANT_STAFF = "restaurant_staff"
    RESTAURANT_ADMIN = "restaurant_admin"
    SUPER_ADMIN = "super_admin"


STAFF_ROLES = (ActorRole.RESTAURANT_STAFF, ActorRole.RESTAURANT_ADMIN, ActorRole.SUPER_ADMIN)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller."""
    user_id: str
    role: ActorRole
    restaurant_id: Optional[UUID] = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def can_manage(self, restaurant_id: UUID) -> bool:
        """Staff of this restaurant, or a super admin."""
        if self.role == ActorRole.SUPER_ADMIN:
            return True
        return self.is_staff and self.restaurant_id == restaurant_id

    @property
    def label(self) -> str:
        return "staff" if self.is_staff else "customer"


SYSTEM_ACTOR = Actor(user_id="system", role=ActorRole.SUPER_ADMIN)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """Resolve the bearer token into an Actor, 401 if missing or invalid."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") != "access" or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        role = ActorRole(payload.get("role", ActorRole.CUSTOMER.value))
        restaurant_id = UUID(payload["restaurant_id"]) if payload.get("restaurant_id") else None
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token claims",
        )

    return Actor(user_id=str(payload["sub"]), role=role, restaurant_id=restaurant_id)


def get_current_staff(actor: Actor = Depends(get_current_user)) -> Actor:
    """Staff-only endpoints; the restaurant claim is required except for super admins."""
    if not actor.is_staff:
        raise PermissionDenied("Staff access required")
    if actor.restaurant_id is None and actor.role != ActorRole.SUPER_ADMIN:
        raise PermissionDenied("Staff token has no restaurant")
    return actor


def resolve_restaurant_id(actor: Actor, requested: Optional[UUID] = None) -> UUID:
    """
    Restaurant a staff request applies to.

    Staff act on the restaurant in their token; super admins name it explicitly.
    """
    if actor.role == ActorRole.SUPER_ADMIN and actor.restaurant_id is None:
        if requested is None:
            raise PermissionDenied("restaurantId is required for this account")
        return requested
    if requested is not None and requested != actor.restaurant_id and actor.role != ActorRole.SUPER_ADMIN:
        raise PermissionDenied("Staff can only act on their own restaurant")
    return requested or actor.restaurant_id


def require_admin(actor: Actor) -> None:
    if actor.role not in (ActorRole.RESTAURANT_ADMIN, ActorRole.SUPER_ADMIN):
        raise PermissionDenied("Restaurant admin access required")
