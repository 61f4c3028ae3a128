from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Optional
from datetime import date, datetime
from order_service.db.models import OrderStatus

class LineItemIn(BaseModel):
    variant_id: int
    qty: int = Field(gt=0)

class OrderCreate(BaseModel):
    items: List[LineItemIn]
    voucher_code: Optional[str] = None
    customer_name: str = ""
    phone: str = ""
    address: str = ""
    note: str = ""

class ItemUpdate(BaseModel):
    variant_id: Optional[int] = None
    qty: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _not_empty(self):
        if self.variant_id is None and self.qty is None:
            raise ValueError("variant_id or qty is required")
        return self

class StatusUpdate(BaseModel):
    status: str

class VoucherRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    code: str
    discount_cents: int
    quantity: int
    is_active: bool

class VoucherCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    discount_cents: int = Field(ge=0)
    quantity: int = Field(ge=0)
    is_active: Optional[bool] = None

class VoucherUpdate(BaseModel):
    discount_cents: Optional[int] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _no_nulls(self):
        nulls = sorted(k for k in self.model_fields_set if getattr(self, k) is None)
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self

class VoucherAdminUpdate(VoucherUpdate):
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)

class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_id: int
    variant_id: int
    qty: int
    unit_price_cents: int

class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: int
    customer_name: str
    phone: str
    address: str
    note: str
    total_cents: int
    status: OrderStatus
    voucher_id: Optional[int] = None
    voucher: Optional[VoucherRead] = None
    created_at: datetime
    items: List[OrderItemRead] = []

class ItemResult(BaseModel):
    item: OrderItemRead
    new_total_cents: int

class ItemRemoved(BaseModel):
    item_id: int
    new_total_cents: int

class StatusCount(BaseModel):
    status: OrderStatus
    count: int

class DailyRevenue(BaseModel):
    day: date
    revenue_cents: int

class TopVariant(BaseModel):
    variant_id: int
    sku: str
    title: str
    sold: int

class ReportSummary(BaseModel):
    orders: int
    variants: int
    revenue_cents: int
