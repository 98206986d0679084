from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from freshfold.errors import PromoCodeInvalid
from freshfold.models import PromoCode, PromoReservation
from freshfold.promos import (
    create_promo_code,
    preview_discount,
    release_promo_reservation,
    reserve_promo_code,
    validate_promo_code,
)


def _usage(db, promo_id):
    db.expire_all()
    return db.get(PromoCode, promo_id).usage_count


def test_validate_is_case_insensitive(db, make_promo):
    make_promo(db, code="SAVE20")
    result = validate_promo_code(db, "save20")
    assert result.valid
    assert result.promo.code == "SAVE20"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"is_active": False}, "Invalid promo code"),
        ({"valid_from": datetime.now(timezone.utc) + timedelta(days=1)}, "Promo code not yet active"),
        ({"valid_until": datetime.now(timezone.utc) - timedelta(days=1)}, "Promo code expired"),
        ({"usage_limit": 3, "usage_count": 3}, "Promo code usage limit reached"),
    ],
)
def test_validate_rejections(db, make_promo, overrides, message):
    make_promo(db, code="SAVE20", **overrides)
    result = validate_promo_code(db, "SAVE20")
    assert not result.valid
    assert result.message == message


def test_validate_unknown_code(db):
    result = validate_promo_code(db, "NOPE")
    assert not result.valid
    assert result.message == "Invalid promo code"


def test_preview_does_not_consume_usage(db, make_promo):
    promo_id = make_promo(db, code="SAVE20")

    preview = preview_discount(db, "SAVE20", Decimal("30.00"))

    assert preview.valid
    assert preview.discount == Decimal("5.00")
    assert preview.final_amount == Decimal("25.00")
    assert _usage(db, promo_id) == 0


def test_reserve_increments_once_per_order(db, make_promo):
    promo_id = make_promo(db, code="SAVE20")
    promo = db.get(PromoCode, promo_id)

    reserve_promo_code(db, promo, "order-1")
    reserve_promo_code(db, promo, "order-1")
    db.commit()

    assert _usage(db, promo_id) == 1
    assert db.query(PromoReservation).filter_by(order_id="order-1").count() == 1


def test_reserve_at_limit_fails_without_side_effects(db, make_promo):
    promo_id = make_promo(db, code="LAST", usage_limit=1, usage_count=1)
    promo = db.get(PromoCode, promo_id)

    with pytest.raises(PromoCodeInvalid):
        reserve_promo_code(db, promo, "order-1")
    db.commit()

    assert _usage(db, promo_id) == 1
    assert db.query(PromoReservation).count() == 0


def test_release_gives_back_usage_once(db, make_promo):
    promo_id = make_promo(db, code="SAVE20")
    reserve_promo_code(db, db.get(PromoCode, promo_id), "order-1")
    db.commit()

    assert release_promo_reservation(db, "order-1") is True
    assert release_promo_reservation(db, "order-1") is False
    db.commit()

    assert _usage(db, promo_id) == 0


def test_release_without_reservation_is_noop(db, make_promo):
    promo_id = make_promo(db, code="SAVE20", usage_count=4)

    assert release_promo_reservation(db, "never-reserved") is False
    db.commit()

    assert _usage(db, promo_id) == 4


def test_usage_stays_within_bounds_over_a_sequence(db, make_promo):
    promo_id = make_promo(db, code="TWO", usage_limit=2)
    promo = db.get(PromoCode, promo_id)
    steps = [
        ("reserve", "a"), ("reserve", "b"), ("reserve", "c"),
        ("release", "a"), ("release", "a"), ("reserve", "c"),
        ("release", "b"), ("release", "c"), ("release", "z"),
        ("reserve", "d"),
    ]

    for action, order_id in steps:
        if action == "reserve":
            try:
                reserve_promo_code(db, promo, order_id)
            except PromoCodeInvalid:
                pass
        else:
            release_promo_reservation(db, order_id)
        db.commit()
        assert 0 <= _usage(db, promo_id) <= 2

    # d is the only live reservation left
    assert _usage(db, promo_id) == 1


def test_create_promo_code_normalizes_and_rejects_duplicates(db):
    now = datetime.now(timezone.utc)
    promo = create_promo_code(
        db,
        code=" welcome10 ",
        discount_percent=10,
        max_discount=Decimal("8.00"),
        valid_from=now,
        valid_until=now + timedelta(days=7),
        usage_limit=50,
    )
    assert promo.code == "WELCOME10"
    assert promo.max_discount_cents == 800

    with pytest.raises(PromoCodeInvalid):
        create_promo_code(
            db,
            code="Welcome10",
            discount_percent=5,
            max_discount=Decimal("1"),
            valid_from=now,
            valid_until=now,
            usage_limit=1,
        )
