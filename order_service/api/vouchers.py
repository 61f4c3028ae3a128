from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy.orm import Session
from order_service.api.deps import get_db
from order_service.api.schemas import VoucherRead, VoucherCreate, VoucherUpdate, VoucherAdminUpdate
from order_service.core.auth import get_current_principal
from order_service.services import vouchers
from order_service.services.policy import Principal

router = APIRouter()

@router.get("/v1/vouchers", response_model=List[VoucherRead])
def list_vouchers(db: Session = Depends(get_db)):
    return [VoucherRead.model_validate(v) for v in vouchers.list_vouchers(db)]

@router.get("/v1/vouchers/{code}", response_model=VoucherRead)
def get_voucher(code: str, db: Session = Depends(get_db)):
    return VoucherRead.model_validate(vouchers.get_voucher_by_code(db, code))

@router.post("/v1/vouchers", response_model=VoucherRead, status_code=201)
def create_voucher(payload: VoucherCreate, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    v = vouchers.create_voucher(db, principal, payload.code, payload.discount_cents, payload.quantity, payload.is_active)
    return VoucherRead.model_validate(v)

@router.put("/v1/vouchers/admin/{voucher_id}", response_model=VoucherRead)
def admin_update_voucher(voucher_id: int, payload: VoucherAdminUpdate, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    v = vouchers.admin_update_voucher(db, principal, voucher_id, payload.model_dump(exclude_unset=True))
    return VoucherRead.model_validate(v)

@router.put("/v1/vouchers/{voucher_id}", response_model=VoucherRead)
def update_voucher(voucher_id: int, payload: VoucherUpdate, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    v = vouchers.update_voucher(db, principal, voucher_id, payload.model_dump(exclude_unset=True))
    return VoucherRead.model_validate(v)

@router.delete("/v1/vouchers/{voucher_id}")
def delete_voucher(voucher_id: int, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    vouchers.delete_voucher(db, principal, voucher_id)
    return {"status": "deleted", "voucher_id": voucher_id}
