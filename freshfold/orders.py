import logging
import uuid
from dataclasses import dataclass

from freshfold import stripe_service
from freshfold.errors import (
    InvalidStatusTransition,
    LaundromatNotFound,
    OrderNotFound,
    PaymentInitiationFailed,
    PayoutAccountMissing,
    PromoCodeInvalid,
)
from freshfold.models import (
    ORDER_PROGRESSION,
    Laundromat,
    Order,
    OrderStatus,
    Payment,
    PaymentStatus,
)
from freshfold.notifications import notify_order_status, notify_payment_failed
from freshfold.payments import fail_payment
from freshfold.pricing import PriceBreakdown, from_cents, quote, to_cents
from freshfold.promos import reserve_promo_code, validate_promo_code

logger = logging.getLogger(__name__)


@dataclass
class CreatedOrder:
    order: Order
    payment: Payment
    breakdown: PriceBreakdown
    client_secret: str


def _new_id() -> str:
    return str(uuid.uuid4())


def quote_and_create_order(db, request, now=None) -> CreatedOrder:
    """Price an order, persist it with a pending payment and start the charge.

    The order, its payment and the promo reservation commit together. The
    Stripe call happens after that commit; if it fails the payment is failed,
    the order cancelled and the promo use handed back before
    PaymentInitiationFailed is raised.
    """
    laundromat = db.query(Laundromat).filter_by(id=request.laundromat_id).first()
    if laundromat is None or not laundromat.is_active:
        raise LaundromatNotFound(request.laundromat_id)
    if not laundromat.stripe_account_id:
        raise PayoutAccountMissing(laundromat.id)

    # Minted up front so the promo reservation can be keyed on them.
    order_id = _new_id()
    payment_id = _new_id()

    try:
        promo = None
        if request.promo_code:
            validation = validate_promo_code(db, request.promo_code, now, for_update=True)
            if not validation.valid:
                raise PromoCodeInvalid(validation.message)
            promo = validation.promo
            reserve_promo_code(db, promo, order_id)

        if promo is not None:
            breakdown = quote(request.base_price, promo.discount_percent, from_cents(promo.max_discount_cents))
        else:
            breakdown = quote(request.base_price)

        order = Order(
            id=order_id,
            customer_id=request.customer_id,
            laundromat_id=laundromat.id,
            driver_id=None,
            status=OrderStatus.PENDING.value,
            pickup_address=request.pickup_address,
            pickup_latitude=request.pickup_latitude,
            pickup_longitude=request.pickup_longitude,
            delivery_address=request.pickup_address,
            delivery_latitude=request.pickup_latitude,
            delivery_longitude=request.pickup_longitude,
            scheduled_pickup=request.scheduled_pickup,
            service_id=request.service_id,
            service_name=request.service_name,
            notes=request.notes or None,
            price_cents=to_cents(breakdown.final_price),
            platform_fee_cents=to_cents(breakdown.platform_fee),
        )
        payment = Payment(
            id=payment_id,
            order_id=order_id,
            amount_cents=to_cents(breakdown.final_price),
            total_charge_cents=to_cents(breakdown.total_charge),
            platform_fee_cents=to_cents(breakdown.platform_fee),
            payout_cents=to_cents(breakdown.laundromat_payout),
            discount_cents=to_cents(breakdown.discount),
            promo_code=promo.code if promo is not None else None,
            stripe_payment_intent_id=None,
            status=PaymentStatus.PENDING.value,
        )
        db.add(order)
        db.add(payment)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Order %s created for customer %s at laundromat %s (total %s)",
        order_id, request.customer_id, laundromat.id, breakdown.total_charge,
    )

    metadata = {
        "order_id": order_id,
        "payment_id": payment_id,
        "customer_id": request.customer_id,
        "laundromat_id": laundromat.id,
        "promo_code": promo.code if promo is not None else "",
    }
    try:
        intent = stripe_service.create_charge(
            amount_cents=to_cents(breakdown.total_charge),
            platform_fee_cents=to_cents(breakdown.platform_fee),
            destination_account=laundromat.stripe_account_id,
            metadata=metadata,
            idempotency_key=f"payment-{payment_id}",
        )
    except Exception as exc:
        logger.exception("Payment initiation failed for order %s", order_id)
        _abandon(db, payment)
        raise PaymentInitiationFailed(order_id, payment_id) from exc

    payment.stripe_payment_intent_id = intent.id
    db.commit()

    return CreatedOrder(order=order, payment=payment, breakdown=breakdown, client_secret=intent.client_secret)


def _abandon(db, payment: Payment):
    if fail_payment(db, payment):
        order = db.get(Order, payment.order_id)
        notify_payment_failed(db, order.customer_id, order.id)
    db.commit()


def get_order(db, order_id: str, for_update: bool = False) -> Order:
    query = db.query(Order).filter_by(id=order_id)
    if for_update:
        query = query.with_for_update()
    order = query.first()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def advance_order_status(db, order_id: str, status: OrderStatus) -> Order:
    """Staff-driven status change.

    Fulfilment only moves forward and a cancelled order stays cancelled.
    Setting the status an order already has changes nothing.
    """
    order = get_order(db, order_id, for_update=True)
    current = OrderStatus(order.status)

    if current == status:
        return order
    if current == OrderStatus.CANCELLED:
        raise InvalidStatusTransition("Order is already cancelled")

    if status == OrderStatus.CANCELLED:
        if current == OrderStatus.DELIVERED:
            raise InvalidStatusTransition("A delivered order cannot be cancelled")
        payment = db.query(Payment).filter_by(order_id=order.id).with_for_update().first()
        if payment is not None and payment.status == PaymentStatus.PENDING.value:
            # Nobody will pay for a cancelled order; free its promo use too.
            fail_payment(db, payment)
        order.status = OrderStatus.CANCELLED.value
    else:
        if ORDER_PROGRESSION.index(status) < ORDER_PROGRESSION.index(current):
            raise InvalidStatusTransition(f"Cannot move order from {current.value} back to {status.value}")
        order.status = status.value

    notify_order_status(db, order.customer_id, order.id, status)
    db.commit()
    logger.info("Order %s: %s -> %s", order.id, current.value, status.value)
    return order


def assign_driver(db, order_id: str, driver_id: str) -> Order:
    order = get_order(db, order_id, for_update=True)
    if order.driver_id == driver_id:
        return order
    if order.driver_id is not None:
        raise InvalidStatusTransition("Order already has a driver")
    if order.status != OrderStatus.PENDING.value:
        raise InvalidStatusTransition("Only pending orders can be assigned a driver")

    order.driver_id = driver_id
    db.commit()
    logger.info("Driver %s assigned to order %s", driver_id, order.id)
    return order
