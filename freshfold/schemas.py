from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator

from freshfold.models import OrderStatus


class StrictRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class PromoApplyRequest(StrictRequest):
    code: str = Field(min_length=1, max_length=64)
    amount: Decimal = Field(ge=0, max_digits=10, decimal_places=2)


class PromoApplyResponse(BaseModel):
    valid: bool
    discount: float = 0
    final_amount: Optional[float] = None
    message: Optional[str] = None


class PromoCodeCreate(StrictRequest):
    code: str = Field(min_length=1, max_length=64)
    discount_percent: int = Field(gt=0, le=100)
    max_discount: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    valid_from: AwareDatetime
    valid_until: AwareDatetime
    usage_limit: int = Field(ge=0)
    is_active: bool = True

    @model_validator(mode="after")
    def check_window(self):
        if self.valid_until < self.valid_from:
            raise ValueError("valid_until must not be before valid_from")
        return self


class PromoCodeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    discount_percent: int
    usage_limit: int
    usage_count: int
    is_active: bool


class OrderCreate(StrictRequest):
    laundromat_id: str = Field(min_length=1)
    service_id: str = Field(min_length=1)
    service_name: str = Field(min_length=1)
    base_price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    promo_code: Optional[str] = Field(default=None, max_length=64)
    customer_id: str = Field(min_length=1)
    pickup_address: str = Field(min_length=1)
    pickup_latitude: float = Field(default=0, ge=-90, le=90)
    pickup_longitude: float = Field(default=0, ge=-180, le=180)
    scheduled_pickup: datetime
    notes: Optional[str] = Field(default=None, max_length=2000)


class PriceBreakdownOut(BaseModel):
    service: float
    discount: float
    final_price: float
    platform_fee: float
    laundromat_payout: float


class OrderCreated(BaseModel):
    order_id: str
    payment_id: str
    client_secret: str
    total: float
    breakdown: PriceBreakdownOut


class OrderStatusUpdate(StrictRequest):
    status: OrderStatus


class DriverAssignment(StrictRequest):
    driver_id: str = Field(min_length=1)


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    laundromat_id: str
    driver_id: Optional[str] = None
    status: str
    service_name: str
    scheduled_pickup: datetime


class LaundromatOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    address: str
    latitude: float
    longitude: float
    delivery_radius: float


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: Optional[str] = None
    kind: str
    title: str
    message: str
    is_read: bool
    created_at: datetime
