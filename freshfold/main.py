import logging
import os
from pathlib import Path

import stripe
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from sqlalchemy.orm import Session

from freshfold.database import Base, engine, get_db
from freshfold.reconciler import UNKNOWN_PAYMENT, handle_event
from freshfold.routes import router
from freshfold.stripe_service import construct_webhook_event

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="FreshFold Payments")

app.include_router(router)

Base.metadata.create_all(bind=engine)


@app.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    payload = await request.body()

    if not stripe_signature:
        logger.warning("Rejected webhook without Stripe-Signature header")
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    try:
        event = construct_webhook_event(payload, stripe_signature)
    except ValueError:
        logger.warning("Rejected webhook with invalid payload")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        logger.warning("Rejected webhook with invalid signature")
        raise HTTPException(status_code=400, detail="Invalid signature")

    result = handle_event(db, event)

    # Unknown payments are acknowledged so Stripe stops redelivering them.
    response = {"received": True, "outcome": result.outcome}
    if result.outcome == UNKNOWN_PAYMENT:
        response["dropped"] = True
    return response
