import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from coachbot.core.entitlements import get_entitlements
from coachbot.db.session import get_db
from coachbot.dependencies.auth import get_auth_identity
from coachbot.dependencies.session import clear_session_cookie, get_identity, read_session_cookie, require_identity
from coachbot.models.account import Account
from coachbot.schemas.account import MeResponse, OkResponse, OnboardingRequest
from coachbot.services.accounts import erase_account, get_account, update_onboarding
from coachbot.services.email_links import get_linked_session_id, unlink_email
from coachbot.services.identity_resolver import AuthIdentity, IdentityResolution
from coachbot.services.usage_meter import get_daily_usage
from coachbot.utils.session_keys import sanitize_session_id, utc_date_key

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me", response_model=MeResponse)
def get_me(
    identity: IdentityResolution = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Plan, entitlements, today's usage and billing state for the resolved account."""
    account = identity.account
    plan = account.plan_tier
    return {
        "session_id": identity.session_id,
        "plan": plan.value,
        "auth_email": account.auth_email,
        "entitlements": get_entitlements(plan).to_dict(),
        "usage": get_daily_usage(db, identity.session_id, utc_date_key()),
        "stripe": {
            "customer_id": account.stripe_customer_id,
            "subscription_id": account.stripe_subscription_id,
            "status": account.stripe_subscription_status,
            "current_period_end": account.stripe_current_period_end,
        },
        "profile": {
            "name": account.name,
            "primary_focus": account.primary_focus,
            "preferred_mode": account.preferred_mode,
            "goal30": account.goal30,
            "onboarding_complete": bool(account.onboarding_complete),
            "onboarding_skipped": bool(account.onboarding_skipped),
        },
    }


@router.post("/onboarding", response_model=OkResponse)
def save_onboarding(
    body: OnboardingRequest,
    identity: IdentityResolution = Depends(require_identity),
    db: Session = Depends(get_db),
):
    update_onboarding(db, identity.session_id, {
        "name": body.name or "",
        "primary_focus": body.primary_focus or "",
        "preferred_mode": body.preferred_mode,
        "goal30": body.goal30 or "",
        "onboarding_complete": True,
        "onboarding_skipped": body.onboarding_skipped,
    })
    return {"ok": True}


@router.post("/account/delete", response_model=OkResponse)
def delete_account(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    auth: AuthIdentity = Depends(get_auth_identity),
):
    """Erase every account tied to the signed-in email, plus this browser's anonymous one."""
    if auth is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not signed in")

    session_ids = {row.id for row in db.query(Account.id).filter(Account.auth_email == auth.email)}
    linked = get_linked_session_id(db, auth.email)
    if linked:
        session_ids.add(linked)

    cookie = read_session_cookie(request)
    if cookie:
        cookie_account = get_account(db, sanitize_session_id(cookie))
        if cookie_account and cookie_account.auth_email in (None, auth.email):
            session_ids.add(cookie_account.id)

    for session_id in sorted(session_ids):
        erase_account(db, session_id)
    unlink_email(db, auth.email)
    logger.info("Account erasure for %s removed %d account(s)", auth.email, len(session_ids))

    clear_session_cookie(response)
    return {"ok": True}
