"""Voucher ledger: redemption plus the staff-facing CRUD."""
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from order_service.core.errors import Conflict, NotFound, VoucherInvalid
from order_service.core.logging import get_logger
from order_service.db.models import Voucher
from order_service.db.session import atomic
from order_service.services.policy import Principal, require_admin, require_staff

logger = get_logger(__name__)


def redeem(db: Session, code: str) -> Voucher:
    """Take one use off ``code`` and return the refreshed voucher.

    Runs inside the caller's transaction; a rollback there gives the use back.
    """
    res = db.execute(
        update(Voucher)
        .where(Voucher.code == code, Voucher.is_active.is_(True), Voucher.quantity > 0)
        .values(quantity=Voucher.quantity - 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise VoucherInvalid(code)
    voucher = db.execute(
        select(Voucher).where(Voucher.code == code).execution_options(populate_existing=True)
    ).scalar_one()
    logger.info("voucher.redeemed", voucher_id=voucher.id, code=code, remaining=voucher.quantity)
    return voucher


def release(db: Session, voucher_id: int) -> None:
    # Not wired to cancellation or deletion: a cancelled order keeps its use.
    db.execute(
        update(Voucher)
        .where(Voucher.id == voucher_id)
        .values(quantity=Voucher.quantity + 1)
        .execution_options(synchronize_session=False)
    )


def list_vouchers(db: Session) -> List[Voucher]:
    return db.execute(select(Voucher).order_by(Voucher.id)).scalars().all()


def get_voucher_by_code(db: Session, code: str) -> Voucher:
    voucher = db.execute(select(Voucher).where(Voucher.code == code)).scalar_one_or_none()
    if not voucher:
        raise NotFound("Voucher not found")
    return voucher


def _get(db: Session, voucher_id: int) -> Voucher:
    voucher = db.get(Voucher, voucher_id)
    if not voucher:
        raise NotFound("Voucher not found")
    return voucher


def _code_taken(db: Session, code: str, voucher_id: Optional[int]) -> bool:
    stmt = select(Voucher.id).where(Voucher.code == code)
    if voucher_id is not None:
        stmt = stmt.where(Voucher.id != voucher_id)
    return db.execute(stmt).first() is not None


def _save(db: Session, voucher: Voucher) -> Voucher:
    code, voucher_id = voucher.code, voucher.id
    try:
        with atomic(db):
            db.add(voucher)
            db.flush()
    except IntegrityError:
        # only a clash on the unique code is a conflict; anything else is a store failure
        if code is not None and _code_taken(db, code, voucher_id):
            raise Conflict(f"Voucher code {code!r} already exists")
        raise
    db.refresh(voucher)
    return voucher


def create_voucher(db: Session, principal: Principal, code: str, discount_cents: int,
                   quantity: int, is_active: Optional[bool] = None) -> Voucher:
    require_staff(principal)
    voucher = Voucher(code=code, discount_cents=discount_cents, quantity=quantity,
                      is_active=True if is_active is None else is_active)
    voucher = _save(db, voucher)
    logger.info("voucher.created", voucher_id=voucher.id, code=code, by=principal.user_id)
    return voucher


def update_voucher(db: Session, principal: Principal, voucher_id: int, changes: dict) -> Voucher:
    """Staff edit: discount, quantity and active flag. The code is admin-only."""
    require_staff(principal)
    changes = _editable(changes, ("discount_cents", "quantity", "is_active"))
    return _apply(db, principal, voucher_id, changes)


def admin_update_voucher(db: Session, principal: Principal, voucher_id: int, changes: dict) -> Voucher:
    require_admin(principal)
    changes = _editable(changes, ("code", "discount_cents", "quantity", "is_active"))
    return _apply(db, principal, voucher_id, changes)


def _editable(changes: dict, fields) -> dict:
    # every voucher column is NOT NULL, so None means "leave as is"
    return {k: v for k, v in changes.items() if k in fields and v is not None}


def _apply(db: Session, principal: Principal, voucher_id: int, changes: dict) -> Voucher:
    voucher = _get(db, voucher_id)
    for k, v in changes.items():
        setattr(voucher, k, v)
    voucher = _save(db, voucher)
    logger.info("voucher.updated", voucher_id=voucher_id, fields=sorted(changes), by=principal.user_id)
    return voucher


def delete_voucher(db: Session, principal: Principal, voucher_id: int) -> None:
    require_admin(principal)
    with atomic(db):
        db.delete(_get(db, voucher_id))
    logger.info("voucher.deleted", voucher_id=voucher_id, by=principal.user_id)
