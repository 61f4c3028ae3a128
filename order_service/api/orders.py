from fastapi import APIRouter, Depends
from typing import List, Optional
from sqlalchemy.orm import Session
from order_service.api.deps import get_db
from order_service.api.schemas import (
    OrderCreate, OrderRead, StatusUpdate, LineItemIn, ItemUpdate, ItemResult, ItemRemoved, OrderItemRead,
)
from order_service.core.auth import get_current_principal
from order_service.services import orders
from order_service.services.policy import Principal

router = APIRouter()

@router.post("/v1/orders", response_model=OrderRead, status_code=201)
def create_order(payload: OrderCreate, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    order = orders.create_order(
        db, principal, payload.items,
        voucher_code=payload.voucher_code,
        customer_name=payload.customer_name,
        phone=payload.phone,
        address=payload.address,
        note=payload.note,
    )
    return OrderRead.model_validate(order)

@router.get("/v1/orders/my", response_model=List[OrderRead])
def my_orders(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return [OrderRead.model_validate(o) for o in orders.list_orders_for_user(db, principal)]

@router.get("/v1/orders", response_model=List[OrderRead])
def all_orders(status: Optional[str] = None, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return [OrderRead.model_validate(o) for o in orders.list_all_orders(db, principal, status=status)]

@router.get("/v1/orders/{order_id}", response_model=OrderRead)
def get_order(order_id: int, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return OrderRead.model_validate(orders.get_order(db, principal, order_id))

@router.put("/v1/orders/{order_id}/status", response_model=OrderRead)
def set_status(order_id: int, payload: StatusUpdate, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return OrderRead.model_validate(orders.set_status(db, principal, order_id, payload.status))

@router.post("/v1/orders/{order_id}/items", response_model=ItemResult, status_code=201)
def add_item(order_id: int, payload: LineItemIn, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    item, total = orders.add_item(db, principal, order_id, payload.variant_id, payload.qty)
    return ItemResult(item=OrderItemRead.model_validate(item), new_total_cents=total)

@router.put("/v1/orders/{order_id}/items/{item_id}", response_model=ItemResult)
def update_item(order_id: int, item_id: int, payload: ItemUpdate, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    item, total = orders.update_item(db, principal, order_id, item_id, variant_id=payload.variant_id, qty=payload.qty)
    return ItemResult(item=OrderItemRead.model_validate(item), new_total_cents=total)

@router.delete("/v1/orders/{order_id}/items/{item_id}", response_model=ItemRemoved)
def remove_item(order_id: int, item_id: int, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    total = orders.remove_item(db, principal, order_id, item_id)
    return ItemRemoved(item_id=item_id, new_total_cents=total)

@router.delete("/v1/orders/{order_id}")
def delete_order(order_id: int, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    orders.delete_order(db, principal, order_id)
    return {"status": "deleted", "order_id": order_id}
