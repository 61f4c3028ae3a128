"""Read-only order reporting for staff dashboards.

Revenue and sales figures count PAID orders only. Cancelled orders have
had their stock returned and pending ones have not been paid yet.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from order_service.db.models import Order, OrderItem, OrderStatus, ProductVariant
from order_service.services.policy import Principal, require_staff


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def summary(db: Session, principal: Principal) -> Dict[str, int]:
    require_staff(principal)
    orders = db.execute(select(func.count(Order.id))).scalar_one()
    variants = db.execute(select(func.count(ProductVariant.id))).scalar_one()
    revenue = db.execute(
        select(func.coalesce(func.sum(Order.total_cents), 0)).where(Order.status == OrderStatus.PAID)
    ).scalar_one()
    return {"orders": orders, "variants": variants, "revenue_cents": int(revenue)}


def orders_by_status(db: Session, principal: Principal) -> List[dict]:
    """Order count per status; statuses with no orders are reported as 0."""
    require_staff(principal)
    rows = db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status)).all()
    counts = {status: n for status, n in rows}
    return [{"status": s, "count": counts.get(s, 0)} for s in OrderStatus]


def revenue_by_date(db: Session, principal: Principal, date_from: date, date_to: date) -> List[dict]:
    """PAID revenue per UTC calendar day, both ends inclusive.

    Days without revenue are omitted.
    """
    require_staff(principal)
    rows = db.execute(
        select(Order.created_at, Order.total_cents)
        .where(
            Order.status == OrderStatus.PAID,
            Order.created_at >= _day_start(date_from),
            Order.created_at < _day_start(date_to + timedelta(days=1)),
        )
        .order_by(Order.created_at)
    ).all()

    per_day = {}
    for created_at, total in rows:
        if created_at.tzinfo is not None:
            created_at = created_at.astimezone(timezone.utc)
        day = created_at.date()
        per_day[day] = per_day.get(day, 0) + total
    return [{"day": d, "revenue_cents": cents} for d, cents in per_day.items()]


def top_variants(db: Session, principal: Principal, limit: int = 5) -> List[dict]:
    """Best-selling variants by quantity on PAID orders; ties go to the lower id."""
    require_staff(principal)
    sold = func.sum(OrderItem.qty).label("sold")
    rows = db.execute(
        select(ProductVariant.id, ProductVariant.sku, ProductVariant.title, sold)
        .join(OrderItem, OrderItem.variant_id == ProductVariant.id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.status == OrderStatus.PAID)
        .group_by(ProductVariant.id, ProductVariant.sku, ProductVariant.title)
        .order_by(sold.desc(), ProductVariant.id)
        .limit(limit)
    ).all()
    return [{"variant_id": vid, "sku": sku, "title": title, "sold": int(n)} for vid, sku, title, n in rows]
