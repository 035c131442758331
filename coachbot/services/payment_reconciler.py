"""
Stripe webhook reconciliation.

Resolves the target account (metadata session id first, then Stripe customer
id), derives the plan from the price id, and merges billing fields onto the
account. Stripe does not guarantee delivery order, so each account remembers
the `created` time of the last event applied to it and strictly older events
are dropped. Re-delivering the same event re-applies the same values.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import stripe
from sqlalchemy.orm import Session

from coachbot.core.entitlements import PAID_PLANS, Plan
from coachbot.services.accounts import (
    find_account_by_customer_id,
    get_or_create_account,
    merge_account_fields,
)
from coachbot.services.email_links import link_email_to_session
from coachbot.services.stripe_client import (
    as_dict,
    object_id,
    price_to_plan,
    retrieve_subscription,
)
from coachbot.utils.session_keys import normalize_email, sanitize_session_id

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

HANDLED_EVENTS = (CHECKOUT_COMPLETED, SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED, SUBSCRIPTION_DELETED)


def construct_event(payload: bytes, signature: str, secret: str) -> dict:
    """
    Verify the Stripe-Signature header and parse the payload.
    Signatures older than the SDK default tolerance (five minutes) are rejected.
    Raises stripe.SignatureVerificationError or ValueError; nothing is processed on failure.
    """
    body = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
    stripe.WebhookSignature.verify_header(body, signature, secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE)
    event = json.loads(body)
    if not isinstance(event, dict) or not event.get("type"):
        raise ValueError("Malformed Stripe event")
    return event


def _from_timestamp(value) -> Optional[datetime]:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return None


def plan_from_price(price_id: Optional[str]) -> Optional[Plan]:
    if not price_id:
        return None
    return price_to_plan().get(price_id)


def plan_from_hint(value) -> Optional[Plan]:
    """Checkout metadata plan hint; only paid plan names count."""
    if not isinstance(value, str):
        return None
    try:
        plan = Plan(value.strip().lower())
    except ValueError:
        return None
    return plan if plan in PAID_PLANS else None


def first_price_id(subscription: dict) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return object_id(as_dict(items[0]).get("price"))


def current_period_end(subscription: dict) -> Optional[datetime]:
    """Latest item period end; newer API versions only carry it per item."""
    items = (subscription.get("items") or {}).get("data") or []
    ends = [as_dict(item).get("current_period_end") for item in items]
    ends = [end for end in ends if isinstance(end, (int, float))]
    if ends:
        return _from_timestamp(max(ends))
    return _from_timestamp(subscription.get("current_period_end"))


def session_id_from_metadata(obj: dict) -> Optional[str]:
    meta = obj.get("metadata") or {}
    candidate = (
        meta.get("sessionId")
        or meta.get("session_id")
        or meta.get("client_reference_id")
        or obj.get("client_reference_id")
    )
    if not isinstance(candidate, str):
        return None
    return sanitize_session_id(candidate) or None


def resolve_target_session(db: Session, obj: dict, customer_id: Optional[str]) -> Optional[str]:
    session_id = session_id_from_metadata(obj)
    if session_id:
        return session_id
    account = find_account_by_customer_id(db, customer_id)
    return account.id if account else None


def _apply(db: Session, event: dict, session_id: str, fields: dict, buyer_email: Optional[str] = None) -> bool:
    """Merge `fields` onto the account unless a newer event was already applied."""
    event_time = _from_timestamp(event.get("created"))
    account = get_or_create_account(db, session_id, touch=False)

    last_applied = account.stripe_event_created
    if event_time and last_applied and event_time < last_applied:
        logger.warning(
            "Stripe webhook: dropping stale event %s (%s) for account %s: created %s < last applied %s",
            event.get("id"), event.get("type"), session_id, event_time.isoformat(), last_applied.isoformat(),
        )
        return False

    fields = dict(fields)
    fields["stripe_event_created"] = event_time
    if buyer_email and not account.auth_email:
        fields["auth_email"] = buyer_email
    merge_account_fields(db, account, fields, commit=False)

    if buyer_email:
        link_email_to_session(db, buyer_email, session_id, commit=False)
    return True


def handle_checkout_session(db: Session, event: dict, session: dict) -> Optional[str]:
    customer_id = object_id(session.get("customer"))
    subscription_id = object_id(session.get("subscription"))
    buyer_email = normalize_email(
        (session.get("customer_details") or {}).get("email") or session.get("customer_email")
    )

    session_id = resolve_target_session(db, session, customer_id)
    if not session_id:
        logger.error(
            "Stripe webhook: could not resolve account for event %s (%s), customer=%s",
            event.get("id"), event.get("type"), customer_id,
        )
        return None

    plan = None
    status = None
    period_end = None
    if subscription_id:
        subscription = retrieve_subscription(subscription_id)
        status = subscription.get("status")
        period_end = current_period_end(subscription)
        plan = plan_from_price(first_price_id(subscription))

    if plan is None:
        plan = plan_from_hint((session.get("metadata") or {}).get("plan"))

    if plan is None:
        logger.error(
            "Stripe webhook: could not resolve plan for event %s, account=%s subscription=%s customer=%s",
            event.get("id"), session_id, subscription_id, customer_id,
        )

    logger.info(
        "Stripe webhook %s (%s): account=%s customer=%s subscription=%s plan=%s",
        event.get("id"), event.get("type"), session_id, customer_id, subscription_id, plan.value if plan else None,
    )

    applied = _apply(db, event, session_id, {
        "plan": plan.value if plan else None,
        "stripe_customer_id": customer_id,
        "stripe_subscription_id": subscription_id,
        "stripe_subscription_status": status,
        "stripe_current_period_end": period_end,
    }, buyer_email=buyer_email)
    return session_id if applied else None


def handle_subscription_change(db: Session, event: dict, subscription: dict, cancelled: bool = False) -> Optional[str]:
    customer_id = object_id(subscription.get("customer"))
    session_id = resolve_target_session(db, subscription, customer_id)
    if not session_id:
        logger.error(
            "Stripe webhook: could not resolve account for event %s (%s), customer=%s",
            event.get("id"), event.get("type"), customer_id,
        )
        return None

    plan = Plan.FREE if cancelled else plan_from_price(first_price_id(subscription))
    if plan is None:
        logger.warning(
            "Stripe webhook: unknown price on event %s for account %s, keeping current plan",
            event.get("id"), session_id,
        )

    logger.info(
        "Stripe webhook %s (%s): account=%s customer=%s subscription=%s plan=%s",
        event.get("id"), event.get("type"), session_id, customer_id, subscription.get("id"),
        plan.value if plan else None,
    )

    applied = _apply(db, event, session_id, {
        "plan": plan.value if plan else None,
        "stripe_customer_id": customer_id,
        "stripe_subscription_id": subscription.get("id"),
        "stripe_subscription_status": subscription.get("status"),
        "stripe_current_period_end": current_period_end(subscription),
    })
    return session_id if applied else None


def process_event(db: Session, event: dict) -> Optional[str]:
    """
    Apply one verified Stripe event. Returns the account id it was applied to,
    or None when the event was ignored or dropped. The caller commits.
    """
    event_type = event.get("type")
    if event_type not in HANDLED_EVENTS:
        logger.debug("Stripe webhook: ignoring event %s (%s)", event.get("id"), event_type)
        return None

    obj = as_dict((event.get("data") or {}).get("object"))
    if event_type == CHECKOUT_COMPLETED:
        return handle_checkout_session(db, event, obj)
    if event_type in (SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED):
        return handle_subscription_change(db, event, obj)
    return handle_subscription_change(db, event, obj, cancelled=True)
