import logging
import os
from typing import List

import stripe
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from freshfold import stripe_service
from freshfold.auth import current_user_id, require_admin, require_customer, require_staff, verify_token
from freshfold.database import get_db
from freshfold.errors import FreshFoldError
from freshfold.models import Laundromat
from freshfold.notifications import list_notifications, mark_all_read
from freshfold.orders import advance_order_status, assign_driver, get_order, quote_and_create_order
from freshfold.pricing import find_nearest_laundromat
from freshfold.promos import create_promo_code, preview_discount
from freshfold.schemas import (
    DriverAssignment,
    LaundromatOut,
    NotificationOut,
    OrderCreate,
    OrderCreated,
    OrderOut,
    OrderStatusUpdate,
    PriceBreakdownOut,
    PromoApplyRequest,
    PromoApplyResponse,
    PromoCodeCreate,
    PromoCodeOut,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _client_error(exc: FreshFoldError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


@router.post("/promo-codes/apply", response_model=PromoApplyResponse)
def apply_promo_code(
    request: PromoApplyRequest,
    db: Session = Depends(get_db),
    claims=Depends(verify_token),
):
    preview = preview_discount(db, request.code, request.amount)
    if not preview.valid:
        return PromoApplyResponse(valid=False, message=preview.message)
    return PromoApplyResponse(valid=True, discount=preview.discount, final_amount=preview.final_amount)


@router.post("/promo-codes", response_model=PromoCodeOut, status_code=201)
def create_promo_code_api(
    request: PromoCodeCreate,
    db: Session = Depends(get_db),
    claims=Depends(verify_token),
):
    require_admin(claims)
    try:
        return create_promo_code(db, **request.model_dump())
    except FreshFoldError as exc:
        raise _client_error(exc)


@router.get("/laundromats/nearest", response_model=LaundromatOut)
def nearest_laundromat_api(
    latitude: float = Query(ge=-90, le=90),
    longitude: float = Query(ge=-180, le=180),
    db: Session = Depends(get_db),
    claims=Depends(verify_token),
):
    laundromat = find_nearest_laundromat(db, latitude, longitude)
    if laundromat is None:
        raise HTTPException(status_code=404, detail="No laundromat delivers to this address yet")
    return laundromat


def _get_laundromat(db, laundromat_id: str) -> Laundromat:
    laundromat = db.query(Laundromat).filter_by(id=laundromat_id).first()
    if laundromat is None:
        raise HTTPException(status_code=404, detail="Laundromat not found")
    return laundromat


@router.get("/laundromats/{laundromat_id}/connect")
def connect_onboarding_link(
    laundromat_id: str,
    db: Session = Depends(get_db),
    claims=Depends(verify_token),
):
    """Stripe Connect onboarding link, creating the payout account on first use."""
    require_staff(claims)
    laundromat = _get_laundromat(db, laundromat_id)
    base_url = os.getenv("SITE_URL", "http://localhost:4000")

    try:
        if not laundromat.stripe_account_id:
            account = stripe_service.create_connect_account(laundromat.email)
            laundromat.stripe_account_id = account.id
            db.commit()
            logger.info("Created Connect account %s for laundromat %s", account.id, laundromat_id)

        link = stripe_service.create_onboarding_link(
            laundromat.stripe_account_id,
            refresh_url=f"{base_url}/laundromat?stripe=refresh&id={laundromat_id}",
            return_url=f"{base_url}/laundromat?stripe=success&id={laundromat_id}",
        )
    except stripe.StripeError:
        logger.exception("Stripe Connect onboarding failed for laundromat %s", laundromat_id)
        raise HTTPException(status_code=502, detail="Failed to create onboarding link")

    return {"url": link.url}


@router.get("/laundromats/{laundromat_id}/connect/status")
def connect_status(
    laundromat_id: str,
    db: Session = Depends(get_db),
    claims=Depends(verify_token),
):
    laundromat = _get_laundromat(db, laundromat_id)
    if not laundromat.stripe_account_id:
        return {"connected": False}

    try:
        connected = stripe_service.account_is_connected(laundromat.stripe_account_id)
    except stripe.StripeError:
        logger.exception("Could not fetch Connect account for laundromat %s", laundromat_id)
        connected = False
    return {"connected": connected, "account_id": laundromat.stripe_account_id}


@router.post("/orders", response_model=OrderCreated)
def create_order_api(
    request: OrderCreate,
    db: Session = Depends(get_db),
    claims=Depends(verify_token),
):
    require_customer(claims, request.customer_id)
    try:
        created = quote_and_create_order(db, request)
    except FreshFoldError as exc:
        raise _client_error(exc)

    breakdown = created.breakdown
    return OrderCreated(
        order_id=created.order.id,
        payment_id=created.payment.id,
        client_secret=created.client_secret,
        total=breakdown.total_charge,
        breakdown=PriceBreakdownOut(
            service=breakdown.service_price,
            discount=breakdown.discount,
            final_price=breakdown.final_price,
            platform_fee=breakdown.platform_fee,
            laundromat_payout=breakdown.laundromat_payout,
        ),
    )


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order_api(order_id: str, db: Session = Depends(get_db), claims=Depends(verify_token)):
    try:
        return get_order(db, order_id)
    except FreshFoldError as exc:
        raise _client_error(exc)


@router.patch("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status_api(
    order_id: str,
    request: OrderStatusUpdate,
    db: Session = Depends(get_db),
    claims=Depends(verify_token),
):
    require_staff(claims)
    try:
        return advance_order_status(db, order_id, request.status)
    except FreshFoldError as exc:
        raise _client_error(exc)


@router.post("/orders/{order_id}/driver", response_model=OrderOut)
def assign_driver_api(
    order_id: str,
    request: DriverAssignment,
    db: Session = Depends(get_db),
    claims=Depends(verify_token),
):
    require_staff(claims)
    try:
        return assign_driver(db, order_id, request.driver_id)
    except FreshFoldError as exc:
        raise _client_error(exc)


@router.get("/notifications", response_model=List[NotificationOut])
def notifications_api(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    claims=Depends(verify_token),
):
    return list_notifications(db, current_user_id(claims), unread_only=unread_only)


@router.post("/notifications/read-all")
def read_all_notifications(db: Session = Depends(get_db), claims=Depends(verify_token)):
    mark_all_read(db, current_user_id(claims))
    return {"ok": True}
