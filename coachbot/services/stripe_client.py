"""
Thin wrapper over the Stripe SDK calls the core needs.
"""
import logging
import os
from typing import Dict, List, Optional

import stripe

from coachbot.core.entitlements import PAID_PLANS, Plan, coerce_plan

logger = logging.getLogger(__name__)

# Initialize Stripe
stripe.api_key = os.getenv("STRIPE_SECRET_KEY")

PRICE_ENV_BY_PLAN = {
    Plan.STARTER: "STRIPE_PRICE_STARTER",
    Plan.PRO: "STRIPE_PRICE_PRO",
    Plan.ELITE: "STRIPE_PRICE_ELITE",
}


def stripe_configured() -> bool:
    return bool(stripe.api_key)


def as_dict(obj) -> dict:
    """Stripe objects -> plain dicts so handlers work the same on SDK results and raw payloads."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    for attr in ("to_dict_recursive", "to_dict"):
        method = getattr(obj, attr, None)
        if callable(method):
            return method()
    return dict(obj)


def price_to_plan() -> Dict[str, Plan]:
    """Configured price ids -> plan. Read at call time so deployments can rotate prices."""
    mapping = {}
    for plan, env_name in PRICE_ENV_BY_PLAN.items():
        price_id = (os.getenv(env_name) or "").strip()
        if price_id:
            mapping[price_id] = plan
    return mapping


def get_price_id(plan) -> str:
    plan = coerce_plan(plan)
    if plan not in PAID_PLANS:
        raise ValueError(f"No price for plan: {plan.value}")
    price_id = (os.getenv(PRICE_ENV_BY_PLAN[plan]) or "").strip()
    if not price_id:
        raise RuntimeError(f"Missing Stripe price env for plan: {plan.value}")
    return price_id


def list_customer_ids_by_email(email: str) -> List[str]:
    """Stripe customers registered under `email`. Empty when Stripe is not configured."""
    if not stripe_configured() or not email:
        return []
    customers = stripe.Customer.list(email=email, limit=10)
    ids = [as_dict(customer).get("id") for customer in customers.data]
    return [customer_id for customer_id in ids if customer_id]


def retrieve_subscription(subscription_id: str) -> dict:
    subscription = stripe.Subscription.retrieve(subscription_id, expand=["items.data.price"])
    return as_dict(subscription)


def create_checkout_session(session_id: str, plan) -> dict:
    """
    Create a subscription Checkout Session tagged with the session id so the
    webhook can find the account again. Returns {"url", "id"}.
    """
    plan = coerce_plan(plan)
    price_id = get_price_id(plan)
    site_url = (os.getenv("SITE_URL") or "").rstrip("/")
    if not site_url:
        raise RuntimeError("Missing SITE_URL")

    checkout_session = stripe.checkout.Session.create(
        mode="subscription",
        line_items=[{"price": price_id, "quantity": 1}],
        allow_promotion_codes=True,
        success_url=f"{site_url}/chat?upgraded={plan.value}",
        cancel_url=f"{site_url}/pricing",
        metadata={"sessionId": session_id, "plan": plan.value},
        subscription_data={"metadata": {"sessionId": session_id, "plan": plan.value}},
        client_reference_id=session_id,
    )
    data = as_dict(checkout_session)
    logger.info("Created Stripe Checkout Session %s for account %s (%s)", data.get("id"), session_id, plan.value)
    return {"url": data.get("url"), "id": data.get("id")}


def object_id(value) -> Optional[str]:
    """Stripe expands some references into objects; accept either form."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    return as_dict(value).get("id")
