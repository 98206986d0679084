import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError

from freshfold.models import Notification, NotificationKind, OrderStatus

logger = logging.getLogger(__name__)

ORDER_STATUS_MESSAGES = {
    OrderStatus.PENDING: "Your order has been received and is pending pickup",
    OrderStatus.PICKED_UP: "Your laundry has been picked up",
    OrderStatus.IN_PROGRESS: "Your laundry is being processed",
    OrderStatus.DELIVERED: "Your laundry has been delivered!",
    OrderStatus.CANCELLED: "Your order has been cancelled",
}


def notify(db, user_id: str, order_id, kind: NotificationKind, title: str, message: str):
    """Record an in-app notification without risking the caller's transaction.

    The insert runs in a savepoint; if it fails only the savepoint is rolled
    back and the state change that triggered it still commits.
    """
    try:
        with db.begin_nested():
            notification = Notification(
                id=str(uuid.uuid4()),
                user_id=user_id,
                order_id=order_id,
                kind=kind.value,
                title=title,
                message=message,
            )
            db.add(notification)
        return notification
    except SQLAlchemyError:
        logger.exception("Failed to record %s notification for user %s (order %s)", kind.value, user_id, order_id)
        return None


def notify_order_status(db, user_id: str, order_id: str, status: OrderStatus):
    message = ORDER_STATUS_MESSAGES.get(status, "Your order status has been updated")
    return notify(db, user_id, order_id, NotificationKind.ORDER_STATUS, "Order Update", message)


def notify_payment_confirmed(db, user_id: str, order_id: str):
    return notify(
        db,
        user_id,
        order_id,
        NotificationKind.PAYMENT,
        "Payment confirmed",
        "Your payment was successful. Your laundry pickup is confirmed!",
    )


def notify_payment_failed(db, user_id: str, order_id: str):
    return notify(
        db,
        user_id,
        order_id,
        NotificationKind.PAYMENT,
        "Payment failed",
        "We couldn't process your payment, so your order has been cancelled. "
        "Any promo code you used is available again.",
    )


def list_notifications(db, user_id: str, unread_only: bool = False):
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc()).all()


def mark_all_read(db, user_id: str):
    db.query(Notification).filter(
        Notification.user_id == user_id, Notification.is_read.is_(False)
    ).update({Notification.is_read: True}, synchronize_session=False)
    db.commit()
