import logging
from dataclasses import dataclass
from typing import Optional

from freshfold.models import Order, Payment, PaymentStatus
from freshfold.notifications import notify_payment_confirmed, notify_payment_failed
from freshfold.payments import fail_payment, transition_payment

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
PAYMENT_CANCELED = "payment_intent.canceled"

# Outcomes
COMPLETED = "completed"
FAILED = "failed"
DUPLICATE = "duplicate"
IGNORED = "ignored"
UNKNOWN_PAYMENT = "unknown_payment"


@dataclass
class ReconcileResult:
    event_type: str
    outcome: str
    payment_id: Optional[str] = None


def _field(obj, key):
    # Works for plain dicts and StripeObjects alike.
    if obj is None or key not in obj:
        return None
    return obj[key]


def find_payment(db, intent) -> Optional[Payment]:
    """Resolve the payment an intent refers to, locking its row.

    Correlation metadata is authoritative; the intent id is the fallback
    for events whose metadata was lost.
    """
    metadata = _field(intent, "metadata")
    payment_id = _field(metadata, "payment_id")
    intent_id = _field(intent, "id")

    payment = None
    if payment_id:
        payment = db.query(Payment).filter_by(id=payment_id).with_for_update().first()
    if payment is None and intent_id:
        payment = db.query(Payment).filter_by(stripe_payment_intent_id=intent_id).with_for_update().first()
    if payment is None:
        return None

    order_id = _field(metadata, "order_id")
    if order_id and order_id != payment.order_id:
        logger.error(
            "Intent %s says order %s but payment %s belongs to order %s",
            intent_id, order_id, payment.id, payment.order_id,
        )
        return None

    recorded = payment.stripe_payment_intent_id
    if recorded and intent_id and intent_id != recorded:
        logger.error(
            "Intent %s claims payment %s, which is recorded against intent %s",
            intent_id, payment.id, recorded,
        )
        return None
    return payment


def _handle_succeeded(db, payment: Payment, intent) -> str:
    intent_id = _field(intent, "id")
    if intent_id and not payment.stripe_payment_intent_id:
        # The callback beat the orchestrator to recording the reference.
        payment.stripe_payment_intent_id = intent_id

    if transition_payment(db, payment.id, PaymentStatus.COMPLETED):
        # The order stays pending: it now waits on the laundromat, not on payment.
        order = db.get(Order, payment.order_id)
        notify_payment_confirmed(db, order.customer_id, order.id)
        return COMPLETED

    if payment.status == PaymentStatus.COMPLETED.value:
        logger.info("Payment %s already completed, skipping duplicate event", payment.id)
        return DUPLICATE

    logger.warning("Ignoring success for payment %s in status %s", payment.id, payment.status)
    return IGNORED


def _handle_failed(db, payment: Payment, intent) -> str:
    if fail_payment(db, payment):
        order = db.get(Order, payment.order_id)
        notify_payment_failed(db, order.customer_id, order.id)
        return FAILED

    if payment.status == PaymentStatus.FAILED.value:
        logger.info("Payment %s already failed, skipping duplicate event", payment.id)
        return DUPLICATE
    return IGNORED


HANDLERS = {
    PAYMENT_SUCCEEDED: _handle_succeeded,
    PAYMENT_FAILED: _handle_failed,
    PAYMENT_CANCELED: _handle_failed,
}


def handle_event(db, event) -> ReconcileResult:
    """Apply a verified Stripe event to payment, order and promo state.

    The end state depends only on what is stored and on the event, so a
    redelivered event leaves everything as the first delivery did and
    triggers no second notification.
    """
    event_type = _field(event, "type") or ""
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.debug("Unhandled webhook event type: %s", event_type)
        return ReconcileResult(event_type, IGNORED)

    intent = event["data"]["object"]
    payment = find_payment(db, intent)
    if payment is None:
        # A data problem, not a transient one: retrying would not help.
        logger.error(
            "Dropping %s event %s: no payment matches intent %s",
            event_type, _field(event, "id"), _field(intent, "id"),
        )
        db.rollback()
        return ReconcileResult(event_type, UNKNOWN_PAYMENT)

    try:
        outcome = handler(db, payment, intent)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Processed %s for payment %s: %s", event_type, payment.id, outcome)
    return ReconcileResult(event_type, outcome, payment.id)
