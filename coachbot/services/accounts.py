"""
Account records: lazy creation, field-level merges, onboarding and erasure.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coachbot.core.entitlements import Plan
from coachbot.core.errors import ErrorCode, InvalidRequestError
from coachbot.core.modes import coerce_mode
from coachbot.models.account import Account
from coachbot.models.email_link import EmailLink
from coachbot.models.memory_turn import MemoryTurn
from coachbot.models.subject import Subject, SubjectMessage
from coachbot.models.usage_counter import UsageCounter
from coachbot.utils.session_keys import utc_now

logger = logging.getLogger(__name__)

# Onboarding fields a client may set, mapped from request names to columns
PROFILE_FIELDS = (
    "name",
    "primary_focus",
    "preferred_mode",
    "goal30",
    "onboarding_complete",
    "onboarding_skipped",
)


def get_account(db: Session, session_id: str) -> Optional[Account]:
    if not session_id:
        return None
    return db.query(Account).filter(Account.id == session_id).first()


def get_or_create_account(db: Session, session_id: str, touch: bool = True) -> Account:
    """
    Return the Account for `session_id`, creating it on first sight.
    A concurrent request creating the same row is resolved by re-reading it.
    """
    now = utc_now()
    account = get_account(db, session_id)
    if account:
        if touch:
            account.last_seen_at = now
            db.commit()
        return account

    account = Account(
        id=session_id,
        plan=Plan.FREE.value,
        created_at=now,
        updated_at=now,
        last_seen_at=now,
    )
    db.add(account)
    try:
        db.commit()
        logger.info("Created account %s", session_id)
    except IntegrityError:
        db.rollback()
        logger.info("Account %s created by a concurrent request, re-reading", session_id)
        account = get_account(db, session_id)
        if account is None:
            raise
    return account


def get_account_plan(db: Session, session_id: str) -> Plan:
    account = get_account(db, session_id)
    if not account:
        return Plan.FREE
    return account.plan_tier


def is_paid(account: Optional[Account]) -> bool:
    """Paid means a non-free plan or any Stripe customer id on record."""
    return bool(account) and account.is_paid


def find_account_by_customer_id(db: Session, customer_id: Optional[str]) -> Optional[Account]:
    if not customer_id:
        return None
    return (
        db.query(Account)
        .filter(Account.stripe_customer_id == customer_id)
        .order_by(Account.updated_at.desc())
        .first()
    )


def merge_account_fields(db: Session, account: Account, fields: dict, commit: bool = True) -> Account:
    """Write only the provided, non-None fields; everything else is left alone."""
    changed = False
    for key, value in fields.items():
        if value is None:
            continue
        if not hasattr(Account, key):
            raise AttributeError(f"Account has no field {key!r}")
        setattr(account, key, value)
        changed = True
    if changed:
        account.updated_at = utc_now()
    if commit:
        db.commit()
    else:
        db.flush()
    return account


def update_onboarding(db: Session, session_id: str, profile: dict) -> Account:
    fields = {key: profile.get(key) for key in PROFILE_FIELDS if key in profile}
    if fields.get("preferred_mode"):
        mode = coerce_mode(fields["preferred_mode"])
        if mode is None:
            raise InvalidRequestError("Unknown mode.", ErrorCode.INVALID_MODE)
        fields["preferred_mode"] = mode.value
    else:
        fields.pop("preferred_mode", None)

    account = get_or_create_account(db, session_id, touch=False)
    if "onboarding_complete" not in fields:
        fields["onboarding_complete"] = True
    return merge_account_fields(db, account, fields)


def erase_account(db: Session, session_id: str) -> bool:
    """
    User-initiated erasure: removes the account and everything keyed by it.
    Returns False when there was nothing to erase.
    """
    account = get_account(db, session_id)
    subject_ids = [row.id for row in db.query(Subject.id).filter(Subject.user_id == session_id)]
    if subject_ids:
        db.query(SubjectMessage).filter(SubjectMessage.subject_id.in_(subject_ids)).delete(synchronize_session=False)
    db.query(Subject).filter(Subject.user_id == session_id).delete(synchronize_session=False)
    db.query(UsageCounter).filter(UsageCounter.session_id == session_id).delete(synchronize_session=False)
    db.query(MemoryTurn).filter(MemoryTurn.session_id == session_id).delete(synchronize_session=False)
    db.query(EmailLink).filter(EmailLink.session_id == session_id).delete(synchronize_session=False)
    if account:
        db.delete(account)
    db.commit()
    logger.info("Erased account %s (%d subjects)", session_id, len(subject_ids))
    return account is not None
