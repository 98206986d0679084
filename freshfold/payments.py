import logging

from sqlalchemy import update

from freshfold.models import (
    PAYMENT_TRANSITIONS,
    Order,
    OrderStatus,
    Payment,
    PaymentStatus,
    utcnow,
)
from freshfold.promos import release_promo_reservation

logger = logging.getLogger(__name__)


def transition_payment(db, payment_id: str, target: PaymentStatus) -> bool:
    """Move a payment to `target` if the current status allows it.

    The check and the write are a single conditional UPDATE, so two callers
    racing on the same payment cannot both win. Returns True only for the
    caller that actually changed the row.
    """
    sources = [status.value for status, targets in PAYMENT_TRANSITIONS.items() if target in targets]
    result = db.execute(
        update(Payment)
        .where(Payment.id == payment_id, Payment.status.in_(sources))
        .values(status=target.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    payment = db.get(Payment, payment_id)
    if payment is not None:
        db.expire(payment, ["status", "updated_at"])

    if result.rowcount == 1:
        logger.info("Payment %s -> %s", payment_id, target.value)
        return True
    return False


def cancel_order(db, order_id: str) -> bool:
    result = db.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.status.notin_([OrderStatus.CANCELLED.value, OrderStatus.DELIVERED.value]),
        )
        .values(status=OrderStatus.CANCELLED.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    order = db.get(Order, order_id)
    if order is not None:
        db.expire(order, ["status", "updated_at"])

    if result.rowcount == 1:
        logger.info("Order %s cancelled", order_id)
        return True
    return False


def fail_payment(db, payment: Payment) -> bool:
    """Fail the payment, cancel its order and give back its promo use.

    Each step is idempotent on its own, so the whole thing can be replayed.
    Returns True if this call moved the payment out of `pending`.
    """
    transitioned = transition_payment(db, payment.id, PaymentStatus.FAILED)
    if PaymentStatus(payment.status) != PaymentStatus.FAILED:
        logger.warning(
            "Payment %s is %s, not failing it or cancelling order %s",
            payment.id, payment.status, payment.order_id,
        )
        return False
    cancel_order(db, payment.order_id)
    release_promo_reservation(db, payment.order_id)
    return transitioned
