"""Stock reads and adjustments against product_variants.

Adjustments are single conditional UPDATE statements so the database,
not application code, decides whether enough stock is left. None of
these functions commit: they run inside the caller's transaction, which
is what makes a multi-item decrement all-or-nothing.
"""
from collections import defaultdict
from typing import Dict, Iterable, List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from order_service.core.errors import InsufficientStock, VariantNotFound
from order_service.core.logging import get_logger
from order_service.db.models import ProductVariant

logger = get_logger(__name__)


def get_variant(db: Session, variant_id: int) -> ProductVariant:
    variant = db.get(ProductVariant, variant_id)
    if not variant:
        raise VariantNotFound(variant_id)
    return variant


def load_variants(db: Session, variant_ids: Iterable[int]) -> Dict[int, ProductVariant]:
    wanted = set(variant_ids)
    rows = db.execute(select(ProductVariant).where(ProductVariant.id.in_(wanted))).scalars().all()
    found = {v.id: v for v in rows}
    missing = sorted(wanted - found.keys())
    if missing:
        raise VariantNotFound(missing[0])
    return found


def decrement(db: Session, variant_id: int, qty: int) -> None:
    res = db.execute(
        update(ProductVariant)
        .where(ProductVariant.id == variant_id, ProductVariant.in_stock >= qty)
        .values(in_stock=ProductVariant.in_stock - qty)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        logger.warning("inventory.insufficient_stock", variant_id=variant_id, requested=qty)
        raise InsufficientStock(variant_id)


def increment(db: Session, variant_id: int, qty: int) -> None:
    db.execute(
        update(ProductVariant)
        .where(ProductVariant.id == variant_id)
        .values(in_stock=ProductVariant.in_stock + qty)
        .execution_options(synchronize_session=False)
    )


def _aggregate(items: Iterable) -> List[tuple]:
    totals: Dict[int, int] = defaultdict(int)
    for it in items:
        totals[it.variant_id] += it.qty
    # stable order keeps row locks acquired in the same sequence across requests
    return sorted(totals.items())


def decrement_many(db: Session, items: Iterable) -> None:
    for variant_id, qty in _aggregate(items):
        decrement(db, variant_id, qty)


def increment_many(db: Session, items: Iterable) -> None:
    for variant_id, qty in _aggregate(items):
        increment(db, variant_id, qty)
