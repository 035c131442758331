"""
Identity resolution: maps the anonymous session token, the authenticated
email and Stripe customer records onto one canonical Account key.

Precedence, applied in one place (`choose_canonical_session`):

* anonymous-token account is paid -> anonymous token wins, even when the
  linked account is paid too (it is the device in use);
* otherwise the linked account wins when there is one;
* otherwise the anonymous token.

After that, if the chosen account is still unpaid, Stripe is asked for
customers registered under the email and a paid account carrying one of
those customer ids takes over. Lookup errors propagate.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from coachbot.core.errors import SessionRequiredError
from coachbot.models.account import Account
from coachbot.services.accounts import get_account, get_or_create_account, is_paid
from coachbot.services.email_links import (
    get_linked_session_id,
    link_email_to_session,
    unlink_email,
)
from coachbot.services.stripe_client import list_customer_ids_by_email
from coachbot.utils.session_keys import (
    generate_session_id,
    normalize_email,
    sanitize_session_id,
    utc_now,
)

logger = logging.getLogger(__name__)

CustomerLookup = Callable[[str], List[str]]


@dataclass
class AuthIdentity:
    email: Optional[str]
    user_id: Optional[str] = None
    provider: Optional[str] = None


@dataclass
class IdentityResolution:
    session_id: str
    cookie_session_id: Optional[str]
    should_set_cookie: bool
    account: Account
    auth_email: Optional[str] = None


def _clean(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    return sanitize_session_id(token) or None


def choose_canonical_session(
    anon_session_id: str,
    anon_account: Optional[Account],
    linked_session_id: Optional[str],
    linked_account: Optional[Account],
) -> str:
    if is_paid(anon_account):
        return anon_session_id
    if linked_session_id and linked_account is not None:
        return linked_session_id
    return anon_session_id


def find_paid_session_for_email(
    db: Session,
    email: str,
    customer_lookup: Optional[CustomerLookup] = None,
) -> Optional[str]:
    """Most recently updated paid account whose Stripe customer is registered under `email`."""
    lookup = customer_lookup or list_customer_ids_by_email
    customer_ids = lookup(email)
    if not customer_ids:
        return None
    candidates = (
        db.query(Account)
        .filter(Account.stripe_customer_id.in_(customer_ids))
        .order_by(Account.updated_at.desc())
        .all()
    )
    for account in candidates:
        if is_paid(account):
            return account.id
    return None


def bind_auth_identity(db: Session, account: Account, email: str, auth_user_id: Optional[str], provider: Optional[str]) -> Account:
    now = utc_now()
    account.auth_email = email
    if auth_user_id:
        account.auth_user_id = auth_user_id
    if provider:
        account.auth_provider = provider
    account.updated_at = now
    account.last_seen_at = now
    db.commit()
    return account


def resolve_identity(
    db: Session,
    cookie_token: Optional[str] = None,
    auth: Optional[AuthIdentity] = None,
    header_token: Optional[str] = None,
    allow_header: bool = True,
    generate_if_missing: bool = True,
    customer_lookup: Optional[CustomerLookup] = None,
) -> IdentityResolution:
    cookie_session_id = _clean(cookie_token)

    if cookie_session_id:
        anon_session_id = cookie_session_id
        marker_stale = cookie_session_id != cookie_token
    elif allow_header and _clean(header_token):
        anon_session_id = _clean(header_token)
        marker_stale = True
    elif generate_if_missing:
        anon_session_id = generate_session_id()
        marker_stale = True
    else:
        raise SessionRequiredError()

    email = normalize_email(auth.email) if auth else None

    if not email:
        account = get_or_create_account(db, anon_session_id)
        return IdentityResolution(
            session_id=anon_session_id,
            cookie_session_id=cookie_session_id,
            should_set_cookie=marker_stale,
            account=account,
        )

    anon_account = get_account(db, anon_session_id)
    linked_session_id = get_linked_session_id(db, email)
    linked_account = None
    if linked_session_id and linked_session_id != anon_session_id:
        linked_account = get_account(db, linked_session_id)
        if linked_account is None:
            logger.warning("Email link for %s points at missing account %s, removing it", email, linked_session_id)
            unlink_email(db, email)
            linked_session_id = None
    elif linked_session_id == anon_session_id:
        linked_account = anon_account

    selected = choose_canonical_session(anon_session_id, anon_account, linked_session_id, linked_account)
    selected_account = anon_account if selected == anon_session_id else linked_account

    if not is_paid(selected_account):
        recovered = find_paid_session_for_email(db, email, customer_lookup)
        if recovered and recovered != selected:
            logger.info("Recovered paid account %s for %s via Stripe customer lookup (was %s)", recovered, email, selected)
            selected = recovered

    account = get_or_create_account(db, selected)
    bind_auth_identity(db, account, email, auth.user_id, auth.provider)
    link_email_to_session(db, email, selected, auth.user_id)

    return IdentityResolution(
        session_id=selected,
        cookie_session_id=cookie_session_id,
        should_set_cookie=marker_stale or selected != cookie_session_id,
        account=account,
        auth_email=email,
    )
