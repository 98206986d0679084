import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text

from freshfold.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PICKED_UP = "picked_up"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Fulfilment order; cancellation sits outside it.
ORDER_PROGRESSION = [
    OrderStatus.PENDING,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_PROGRESS,
    OrderStatus.DELIVERED,
]


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: set(),
    PaymentStatus.FAILED: set(),
}


class NotificationKind(str, enum.Enum):
    ORDER_STATUS = "order_status"
    PAYMENT = "payment"
    PROMO = "promo"
    SYSTEM = "system"


class Laundromat(Base):
    __tablename__ = "laundromats"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    latitude = Column(Float, nullable=False, default=0)
    longitude = Column(Float, nullable=False, default=0)
    delivery_radius = Column(Float, nullable=False)  # miles
    email = Column(String, nullable=False, default="")
    stripe_account_id = Column(String, nullable=True)  # Connect payout account
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True)
    customer_id = Column(String, nullable=False, index=True)
    laundromat_id = Column(String, ForeignKey("laundromats.id"), nullable=False, index=True)
    driver_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value)
    pickup_address = Column(String, nullable=False)
    pickup_latitude = Column(Float, nullable=False, default=0)
    pickup_longitude = Column(Float, nullable=False, default=0)
    delivery_address = Column(String, nullable=False)
    delivery_latitude = Column(Float, nullable=False, default=0)
    delivery_longitude = Column(Float, nullable=False, default=0)
    scheduled_pickup = Column(DateTime(timezone=True), nullable=False)
    service_id = Column(String, nullable=False)
    service_name = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False)          # final price, after discount
    platform_fee_cents = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True)
    order_id = Column(String, ForeignKey("orders.id"), unique=True, index=True, nullable=False)
    amount_cents = Column(Integer, nullable=False)          # final price
    total_charge_cents = Column(Integer, nullable=False)    # amount + platform fee
    platform_fee_cents = Column(Integer, nullable=False)
    payout_cents = Column(Integer, nullable=False)          # amount - platform fee
    discount_cents = Column(Integer, nullable=False, default=0)
    promo_code = Column(String, nullable=True)
    stripe_payment_intent_id = Column(String, nullable=True, unique=True, index=True)
    status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(String, primary_key=True)
    code = Column(String, unique=True, nullable=False, index=True)  # stored upper-case
    discount_percent = Column(Integer, nullable=False)
    max_discount_cents = Column(Integer, nullable=False)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    usage_limit = Column(Integer, nullable=False)
    usage_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class PromoReservation(Base):
    __tablename__ = "promo_reservations"

    id = Column(String, primary_key=True)
    promo_code_id = Column(String, ForeignKey("promo_codes.id"), nullable=False, index=True)
    order_id = Column(String, unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    released_at = Column(DateTime(timezone=True), nullable=True)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    order_id = Column(String, nullable=True)
    kind = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
