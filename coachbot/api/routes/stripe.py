"""
Stripe Checkout and webhook routes.
"""
import logging
import os

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from coachbot.core.entitlements import PAID_PLANS, Plan
from coachbot.core.errors import InvalidRequestError
from coachbot.db.session import get_db
from coachbot.dependencies.session import get_identity
from coachbot.schemas.chat import CheckoutRequest, CheckoutResponse
from coachbot.services.identity_resolver import IdentityResolution
from coachbot.services.payment_reconciler import construct_event, process_event
from coachbot.services.stripe_client import create_checkout_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/checkout", response_model=CheckoutResponse)
def start_checkout(
    body: CheckoutRequest,
    identity: IdentityResolution = Depends(get_identity),
):
    """Create a Checkout Session for a paid plan and return its URL."""
    try:
        plan = Plan(body.plan)
    except ValueError:
        plan = None
    if plan not in PAID_PLANS:
        raise InvalidRequestError("Invalid plan")

    try:
        checkout = create_checkout_session(identity.session_id, plan)
    except RuntimeError as e:
        logger.error("Stripe checkout misconfigured: %s", e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to start checkout")
    except stripe.StripeError as e:
        logger.error("Stripe error creating checkout session for %s: %s", identity.session_id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to start checkout")

    return {"url": checkout["url"]}


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe webhook. Unverifiable events are rejected with 400; a failure while
    applying a verified event returns 500 so Stripe retries it.
    """
    secret = os.getenv("STRIPE_WEBHOOK_SECRET")
    if not secret:
        logger.error("Stripe webhook: missing STRIPE_WEBHOOK_SECRET")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook not configured")

    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing signature")

    payload = await request.body()
    try:
        event = construct_event(payload, signature, secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("Stripe webhook: signature verification failed: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    try:
        process_event(db, event)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Stripe webhook handler error for event %s (%s)", event.get("id"), event.get("type"))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Handler error")

    return {"received": True}
