"""Order lifecycle: creation, line-item edits, status transitions, deletion.

Every public function here is one transaction. The order row is read with
SELECT ... FOR UPDATE before it is changed, totals are recomputed from the
full line-item collection in the same transaction, and stock or voucher
counters are only touched through the conditional updates in
``inventory`` and ``vouchers``. Any exception rolls the whole request back.
"""
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from order_service.core.errors import EmptyOrder, Forbidden, InvalidStatus, NotFound
from order_service.core.logging import get_logger
from order_service.db.models import Order, OrderItem, OrderStatus, utcnow
from order_service.db.session import atomic
from order_service.services import inventory, pricing, vouchers
from order_service.services.policy import Principal, can_mutate, can_transition, can_view, require_staff

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    (OrderStatus.PENDING, OrderStatus.PAID),
    (OrderStatus.PAID, OrderStatus.CANCELLED),
}


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().upper())
    except ValueError:
        raise InvalidStatus(f"Unknown status {value!r}")


def check_transition(current: OrderStatus, requested: OrderStatus) -> None:
    if (current, requested) not in ALLOWED_TRANSITIONS:
        raise InvalidStatus(f"Cannot move order from {current.value} to {requested.value}")


def _lock_order(db: Session, order_id: int) -> Order:
    order = db.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not order:
        raise NotFound("Order not found")
    return order


def _require_mutable(principal: Principal, order: Order) -> None:
    if not can_mutate(principal, order):
        raise Forbidden("Not allowed to modify this order")


def _find_item(order: Order, item_id: int) -> OrderItem:
    for it in order.items:
        if it.id == item_id:
            return it
    raise NotFound("Item not found in order")


def _recompute(order: Order) -> int:
    order.total_cents = pricing.compute_total(order.items, pricing.voucher_discount(order.voucher))
    order.updated_at = utcnow()
    return order.total_cents


# --- reads ---

def _with_children(stmt):
    return stmt.options(selectinload(Order.items), selectinload(Order.voucher))


def list_orders_for_user(db: Session, principal: Principal) -> List[Order]:
    stmt = select(Order).where(Order.user_id == principal.user_id).order_by(Order.id)
    return db.execute(_with_children(stmt)).scalars().all()


def list_all_orders(db: Session, principal: Principal, status: Optional[str] = None) -> List[Order]:
    require_staff(principal)
    stmt = select(Order).order_by(Order.id)
    if status is not None:
        stmt = stmt.where(Order.status == parse_status(status))
    return db.execute(_with_children(stmt)).scalars().all()


def get_order(db: Session, principal: Principal, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if not order:
        raise NotFound("Order not found")
    if not can_view(principal, order):
        raise Forbidden("Not allowed to view this order")
    return order


# --- creation ---

def create_order(
    db: Session,
    principal: Principal,
    items: Iterable,
    voucher_code: Optional[str] = None,
    customer_name: str = "",
    phone: str = "",
    address: str = "",
    note: str = "",
) -> Order:
    """Create a PENDING order owned by ``principal``.

    ``items`` are objects with ``variant_id`` and ``qty``. Prices are copied
    from the catalog now and never re-read. A voucher code is redeemed in
    the same transaction as the insert, so a failed insert gives the use back.
    """
    items = list(items)
    if not items:
        raise EmptyOrder()

    with atomic(db):
        variants = inventory.load_variants(db, [it.variant_id for it in items])
        lines = [
            OrderItem(variant_id=it.variant_id, qty=it.qty, unit_price_cents=variants[it.variant_id].price_cents)
            for it in items
        ]
        voucher = vouchers.redeem(db, voucher_code) if voucher_code else None

        order = Order(
            user_id=principal.user_id,
            customer_name=customer_name or "",
            phone=phone or "",
            address=address or "",
            note=note or "",
            status=OrderStatus.PENDING,
            voucher_id=voucher.id if voucher else None,
            total_cents=pricing.compute_total(lines, pricing.voucher_discount(voucher)),
            items=lines,
        )
        db.add(order)
        db.flush()
        order_id = order.id

    logger.info("order.created", order_id=order_id, user_id=principal.user_id,
                items=len(items), voucher=voucher_code, total_cents=order.total_cents)
    db.refresh(order)
    return order


# --- line items ---

def add_item(db: Session, principal: Principal, order_id: int, variant_id: int, qty: int) -> Tuple[OrderItem, int]:
    with atomic(db):
        order = _lock_order(db, order_id)
        _require_mutable(principal, order)
        variant = inventory.get_variant(db, variant_id)
        item = OrderItem(variant_id=variant.id, qty=qty, unit_price_cents=variant.price_cents)
        order.items.append(item)
        total = _recompute(order)
        db.flush()
        item_id = item.id

    logger.info("order.item_added", order_id=order_id, item_id=item_id, variant_id=variant_id,
                qty=qty, total_cents=total)
    db.refresh(item)
    return item, total


def update_item(
    db: Session,
    principal: Principal,
    order_id: int,
    item_id: int,
    variant_id: Optional[int] = None,
    qty: Optional[int] = None,
) -> Tuple[OrderItem, int]:
    with atomic(db):
        order = _lock_order(db, order_id)
        _require_mutable(principal, order)
        item = _find_item(order, item_id)
        if variant_id is not None:
            variant = inventory.get_variant(db, variant_id)
            if variant.id != item.variant_id:
                # a different variant is a different price
                item.variant_id = variant.id
                item.unit_price_cents = variant.price_cents
        if qty is not None:
            item.qty = qty
        total = _recompute(order)

    logger.info("order.item_updated", order_id=order_id, item_id=item_id, total_cents=total)
    db.refresh(item)
    return item, total


def remove_item(db: Session, principal: Principal, order_id: int, item_id: int) -> int:
    with atomic(db):
        order = _lock_order(db, order_id)
        _require_mutable(principal, order)
        item = _find_item(order, item_id)
        if len(order.items) == 1:
            raise EmptyOrder("Cannot remove the last line item; delete the order instead")
        order.items.remove(item)
        total = _recompute(order)

    logger.info("order.item_removed", order_id=order_id, item_id=item_id, total_cents=total)
    return total


# --- status ---

def set_status(db: Session, principal: Principal, order_id: int, new_status) -> Order:
    """Move an order along PENDING -> PAID -> CANCELLED.

    PAID takes stock for every line, CANCELLED puts it back. The status
    column is compare-and-set against the value read under the row lock, so
    two concurrent PAID requests cannot both take stock.
    """
    if not can_transition(principal):
        raise Forbidden("Staff or admin required")
    requested = parse_status(new_status)

    with atomic(db):
        order = _lock_order(db, order_id)
        current = order.status
        check_transition(current, requested)

        res = db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current)
            .values(status=requested, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise InvalidStatus("Order status changed concurrently")

        if requested == OrderStatus.PAID:
            inventory.decrement_many(db, order.items)
        elif requested == OrderStatus.CANCELLED:
            inventory.increment_many(db, order.items)

    logger.info("order.status_changed", order_id=order_id, old=current.value, new=requested.value,
                by=principal.user_id)
    db.refresh(order)
    return order


# --- deletion ---

def delete_order(db: Session, principal: Principal, order_id: int) -> None:
    # No stock or voucher reversal: a deleted order simply disappears.
    with atomic(db):
        order = _lock_order(db, order_id)
        _require_mutable(principal, order)
        db.delete(order)

    logger.info("order.deleted", order_id=order_id, by=principal.user_id)
