import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from freshfold.models import Laundromat

PLATFORM_FEE_PERCENT = 15
EARTH_RADIUS_MILES = 3959

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Round to the cent, half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def platform_fee(final_price: Decimal) -> Decimal:
    return to_money(Decimal(final_price) * PLATFORM_FEE_PERCENT / 100)


def discount_amount(base_price: Decimal, percent, cap: Decimal) -> Decimal:
    base_price = to_money(base_price)
    discount = min(to_money(base_price * Decimal(percent) / 100), to_money(cap))
    return max(ZERO, min(discount, base_price))


def laundromat_payout(final_price: Decimal, fee: Decimal) -> Decimal:
    return to_money(final_price) - to_money(fee)


@dataclass(frozen=True)
class PriceBreakdown:
    service_price: Decimal
    discount: Decimal
    final_price: Decimal
    platform_fee: Decimal
    laundromat_payout: Decimal
    total_charge: Decimal


def quote(base_price: Decimal, percent=None, cap: Decimal = None) -> PriceBreakdown:
    """Price an order. The fee is charged on top of the final price.

    Every figure is derived from the already-rounded discount and fee, so
    the total shown to the customer is exactly what gets charged.
    """
    service_price = to_money(base_price)
    discount = ZERO
    if percent is not None and cap is not None:
        discount = discount_amount(service_price, percent, cap)
    final_price = max(ZERO, service_price - discount)
    fee = platform_fee(final_price)
    return PriceBreakdown(
        service_price=service_price,
        discount=discount,
        final_price=final_price,
        platform_fee=fee,
        laundromat_payout=laundromat_payout(final_price, fee),
        total_charge=final_price + fee,
    )


def distance_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def nearest_laundromat(laundromats, latitude: float, longitude: float):
    """Closest laundromat whose own delivery radius covers the point.

    Ties keep the first one seen.
    """
    nearest = None
    min_distance = math.inf
    for laundromat in laundromats:
        distance = distance_miles(latitude, longitude, laundromat.latitude, laundromat.longitude)
        if distance <= laundromat.delivery_radius and distance < min_distance:
            nearest = laundromat
            min_distance = distance
    return nearest


def find_nearest_laundromat(db, latitude: float, longitude: float):
    active = (
        db.query(Laundromat)
        .filter(Laundromat.is_active.is_(True))
        .order_by(Laundromat.created_at, Laundromat.id)
        .all()
    )
    return nearest_laundromat(active, latitude, longitude)
