import logging
import os
from pathlib import Path
from dotenv import load_dotenv
import stripe

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

stripe.api_key = os.getenv("STRIPE_SECRET_KEY")

CURRENCY = os.getenv("CURRENCY", "usd")

logger = logging.getLogger(__name__)


def create_charge(
    amount_cents: int,
    platform_fee_cents: int,
    destination_account: str,
    metadata: dict,
    idempotency_key: str,
):
    """Create a PaymentIntent split between the platform and a laundromat.

    `application_fee_amount` stays with the platform; Stripe transfers the
    rest to `destination_account`. The idempotency key makes a retried
    request return the intent Stripe may already have created.
    """
    intent = stripe.PaymentIntent.create(
        amount=amount_cents,
        currency=CURRENCY,
        application_fee_amount=platform_fee_cents,
        transfer_data={"destination": destination_account},
        automatic_payment_methods={"enabled": True},
        metadata=metadata,
        idempotency_key=idempotency_key,
    )
    logger.info("Created PaymentIntent %s for %s cents (fee %s)", intent.id, amount_cents, platform_fee_cents)
    return intent


def construct_webhook_event(payload: bytes, signature: str):
    """Verify the Stripe signature and parse the event.

    Raises ValueError for a malformed payload or a missing webhook secret,
    and stripe.SignatureVerificationError for a bad signature.
    """
    secret = os.getenv("STRIPE_WEBHOOK_SECRET")
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        raise ValueError("Webhook secret not configured")
    return stripe.Webhook.construct_event(payload, signature, secret)


def create_connect_account(email: str = ""):
    params = {
        "type": "express",
        "capabilities": {
            "card_payments": {"requested": True},
            "transfers": {"requested": True},
        },
        "business_type": "individual",
    }
    if email:
        params["email"] = email
    return stripe.Account.create(**params)


def create_onboarding_link(account_id: str, refresh_url: str, return_url: str):
    return stripe.AccountLink.create(
        account=account_id,
        refresh_url=refresh_url,
        return_url=return_url,
        type="account_onboarding",
    )


def account_is_connected(account_id: str) -> bool:
    account = stripe.Account.retrieve(account_id)
    return bool(account.charges_enabled and account.payouts_enabled and account.details_submitted)
