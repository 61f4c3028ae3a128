"""Who may do what to an order.

Staff and admins may always mutate an order. Customers may mutate their
own order only while it is still PENDING. Status transitions are staff
only.
"""
from pydantic import BaseModel
from enum import Enum

from order_service.core.errors import Forbidden
from order_service.db.models import Order, OrderStatus


class Role(str, Enum):
    USER = "USER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class Principal(BaseModel):
    user_id: int
    role: Role


def is_staff(principal: Principal) -> bool:
    return principal.role in (Role.STAFF, Role.ADMIN)


def is_admin(principal: Principal) -> bool:
    return principal.role == Role.ADMIN


def can_mutate(principal: Principal, order: Order) -> bool:
    if is_staff(principal):
        return True
    return order.user_id == principal.user_id and order.status == OrderStatus.PENDING


def can_view(principal: Principal, order: Order) -> bool:
    return is_staff(principal) or order.user_id == principal.user_id


def can_transition(principal: Principal) -> bool:
    return is_staff(principal)


def require_staff(principal: Principal) -> None:
    if not is_staff(principal):
        raise Forbidden("Staff or admin required")


def require_admin(principal: Principal) -> None:
    if not is_admin(principal):
        raise Forbidden("Admin required")
