import logging
import uuid
from dataclasses import dataclass
from datetime import timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from freshfold.errors import PromoCodeInvalid
from freshfold.models import PromoCode, PromoReservation, utcnow
from freshfold.pricing import discount_amount, from_cents, to_cents, to_money

logger = logging.getLogger(__name__)

INVALID_CODE = "Invalid promo code"
NOT_YET_ACTIVE = "Promo code not yet active"
EXPIRED = "Promo code expired"
LIMIT_REACHED = "Promo code usage limit reached"


@dataclass
class PromoValidation:
    valid: bool
    promo: Optional[PromoCode] = None
    message: Optional[str] = None


@dataclass
class PromoPreview:
    valid: bool
    discount: Decimal
    final_amount: Decimal
    message: Optional[str] = None


def _as_utc(value):
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_code(code: str) -> str:
    return code.strip().upper()


def validate_promo_code(db, code: str, now=None, for_update: bool = False) -> PromoValidation:
    now = _as_utc(now or utcnow())
    query = db.query(PromoCode).filter(
        func.upper(PromoCode.code) == normalize_code(code),
        PromoCode.is_active.is_(True),
    )
    if for_update:
        query = query.with_for_update()
    promo = query.first()

    if promo is None:
        return PromoValidation(False, message=INVALID_CODE)
    if now < _as_utc(promo.valid_from):
        return PromoValidation(False, promo, NOT_YET_ACTIVE)
    if now > _as_utc(promo.valid_until):
        return PromoValidation(False, promo, EXPIRED)
    if promo.usage_count >= promo.usage_limit:
        return PromoValidation(False, promo, LIMIT_REACHED)
    return PromoValidation(True, promo)


def promo_discount(promo: PromoCode, base_price: Decimal) -> Decimal:
    return discount_amount(base_price, promo.discount_percent, from_cents(promo.max_discount_cents))


def preview_discount(db, code: str, base_price: Decimal, now=None) -> PromoPreview:
    """Discount a code would give right now. Consumes no usage."""
    base_price = to_money(base_price)
    validation = validate_promo_code(db, code, now)
    if not validation.valid:
        return PromoPreview(False, Decimal("0.00"), base_price, validation.message)
    discount = promo_discount(validation.promo, base_price)
    return PromoPreview(True, discount, base_price - discount)


def reserve_promo_code(db, promo: PromoCode, order_id: str) -> PromoReservation:
    """Consume one use of `promo` on behalf of `order_id`.

    Replaying a reservation for the same order returns the existing one.
    Raises PromoCodeInvalid if the usage limit was reached in the meantime.
    """
    reservation = PromoReservation(id=str(uuid.uuid4()), promo_code_id=promo.id, order_id=order_id)
    try:
        with db.begin_nested():
            db.add(reservation)
    except IntegrityError:
        logger.info("Promo reservation for order %s already exists", order_id)
        return db.query(PromoReservation).filter_by(order_id=order_id).one()

    result = db.execute(
        update(PromoCode)
        .where(PromoCode.id == promo.id, PromoCode.usage_count < PromoCode.usage_limit)
        .values(usage_count=PromoCode.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.delete(reservation)
        db.flush()
        raise PromoCodeInvalid(LIMIT_REACHED)

    db.expire(promo, ["usage_count"])
    logger.info("Reserved promo code %s for order %s", promo.code, order_id)
    return reservation


def release_promo_reservation(db, order_id: str) -> bool:
    """Give back the use reserved by `order_id`.

    Returns False when there is nothing to release (no reservation, or it was
    already released), so replays are harmless.
    """
    result = db.execute(
        update(PromoReservation)
        .where(PromoReservation.order_id == order_id, PromoReservation.released_at.is_(None))
        .values(released_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    promo_code_id = db.execute(
        select(PromoReservation.promo_code_id).where(PromoReservation.order_id == order_id)
    ).scalar_one()
    db.execute(
        update(PromoCode)
        .where(PromoCode.id == promo_code_id, PromoCode.usage_count > 0)
        .values(usage_count=PromoCode.usage_count - 1)
        .execution_options(synchronize_session=False)
    )

    reservation = db.query(PromoReservation).filter_by(order_id=order_id).first()
    if reservation is not None:
        db.expire(reservation, ["released_at"])
    promo = db.get(PromoCode, promo_code_id)
    if promo is not None:
        db.expire(promo, ["usage_count"])
    logger.info("Released promo reservation for order %s", order_id)
    return True


def create_promo_code(
    db,
    code: str,
    discount_percent: int,
    max_discount: Decimal,
    valid_from,
    valid_until,
    usage_limit: int,
    is_active: bool = True,
) -> PromoCode:
    code = normalize_code(code)
    existing = db.query(PromoCode).filter(func.upper(PromoCode.code) == code).first()
    if existing is not None:
        raise PromoCodeInvalid(f"Promo code {code} already exists")

    promo = PromoCode(
        id=str(uuid.uuid4()),
        code=code,
        discount_percent=discount_percent,
        max_discount_cents=to_cents(max_discount),
        valid_from=valid_from,
        valid_until=valid_until,
        usage_limit=usage_limit,
        usage_count=0,
        is_active=is_active,
    )
    db.add(promo)
    db.commit()
    db.refresh(promo)
    return promo
