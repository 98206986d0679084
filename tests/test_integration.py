from freshfold.database import SessionLocal
from freshfold.models import Order, Payment, PromoCode, PromoReservation


def test_full_order_lifecycle_integration(client, db, make_laundromat, make_promo, mocker):
    """
    Test the full lifecycle:
    1. Preview a promo code (API, no usage consumed)
    2. Create the order (API -> DB + Stripe mocked)
    3. Webhook success (Stripe -> API -> DB), delivered twice
    4. Laundromat staff move the order through fulfilment
    """
    laundromat_id = make_laundromat(db, stripe_account_id="acct_integration")
    promo_id = make_promo(db, code="SAVE20", discount_percent=20, max_discount_cents=500, usage_limit=10)

    # --- 1. PREVIEW ---
    preview = client.post("/promo-codes/apply", json={"code": "SAVE20", "amount": "30.00"})
    assert preview.json()["discount"] == 5.0

    # --- 2. CREATE ORDER ---
    mock_pi = mocker.Mock()
    mock_pi.id = "pi_integration_test_123"
    mock_pi.client_secret = "secret_test_456"
    create_intent = mocker.patch("stripe.PaymentIntent.create", return_value=mock_pi)

    payload = {
        "laundromat_id": laundromat_id,
        "service_id": "svc-1",
        "service_name": "Wash & Fold",
        "base_price": "30.00",
        "promo_code": "SAVE20",
        "customer_id": "customer-1",
        "pickup_address": "99 Elm St",
        "pickup_latitude": 40.01,
        "pickup_longitude": -74.01,
        "scheduled_pickup": "2026-10-20T09:00:00+00:00",
        "notes": "Leave at the door",
    }
    response = client.post("/orders", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["client_secret"] == "secret_test_456"
    assert body["total"] == 28.75
    assert create_intent.call_count == 1

    check = SessionLocal()
    payment = check.query(Payment).filter_by(order_id=body["order_id"]).one()
    assert payment.status == "pending"
    assert payment.stripe_payment_intent_id == "pi_integration_test_123"
    assert check.get(PromoCode, promo_id).usage_count == 1
    assert check.query(PromoReservation).filter_by(order_id=body["order_id"]).count() == 1
    check.close()

    # --- 3. WEBHOOK SUCCESS (twice) ---
    mock_event = {
        "id": "evt_test",
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": "pi_integration_test_123",
                "metadata": {"order_id": body["order_id"], "payment_id": body["payment_id"]},
            }
        },
    }
    mocker.patch("stripe.Webhook.construct_event", return_value=mock_event)

    for _ in range(2):
        webhook_response = client.post(
            "/webhook",
            content="raw_stripe_payload",
            headers={"stripe-signature": "test_signature"},
        )
        assert webhook_response.status_code == 200

    check = SessionLocal()
    assert check.get(Payment, body["payment_id"]).status == "completed"
    assert check.get(Order, body["order_id"]).status == "pending"
    # one use per order, however many success events arrive
    assert check.get(PromoCode, promo_id).usage_count == 1
    check.close()

    # --- 4. FULFILMENT ---
    for status in ("picked_up", "in_progress", "delivered"):
        step = client.patch(f"/orders/{body['order_id']}/status", json={"status": status})
        assert step.status_code == 200

    notifications = client.get("/notifications").json()
    assert sorted(n["title"] for n in notifications) == [
        "Order Update",
        "Order Update",
        "Order Update",
        "Payment confirmed",
    ]

    cancel = client.patch(f"/orders/{body['order_id']}/status", json={"status": "cancelled"})
    assert cancel.status_code == 409
