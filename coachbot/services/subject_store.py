"""
Topic threads ("subjects") and their message histories.

Ownership failures are reported as NOT_FOUND so a caller cannot discover
other accounts' subjects.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coachbot.core.entitlements import assert_entitlement, coerce_plan, get_entitlements
from coachbot.core.errors import EntitlementError, ErrorCode, InvalidRequestError, NotFoundError
from coachbot.core.modes import coerce_mode
from coachbot.models.subject import Subject, SubjectMessage
from coachbot.services.accounts import get_account_plan
from coachbot.utils.session_keys import utc_now

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 120
DEFAULT_MESSAGE_PAGE = 50
MESSAGE_ROLES = ("user", "assistant")


def _new_id() -> str:
    return uuid.uuid4().hex


def _clean_title(title: Optional[str]) -> str:
    cleaned = (title or "").strip() if isinstance(title, str) else ""
    if not cleaned:
        raise InvalidRequestError("Title is required.", ErrorCode.INVALID_TITLE)
    return cleaned


def _clean_mode(mode) -> str:
    resolved = coerce_mode(mode)
    if resolved is None:
        raise InvalidRequestError("Mode is required.", ErrorCode.INVALID_MODE)
    return resolved.value


def count_subjects(db: Session, session_id: str) -> int:
    return db.query(Subject).filter(Subject.user_id == session_id).count()


def check_subject_capacity(db: Session, session_id: str, plan) -> tuple[bool, str]:
    """
    Non-raising quota check.

    Returns:
        (is_allowed, error_code) - error_code is "" when allowed
    """
    ent = get_entitlements(plan)
    if ent.max_subjects <= 0:
        return False, ErrorCode.UPGRADE_REQUIRED.value
    if count_subjects(db, session_id) >= ent.max_subjects:
        return False, ErrorCode.LIMIT_REACHED.value
    return True, ""


def create_subject(db: Session, session_id: str, title: str, mode, plan=None) -> Subject:
    plan = coerce_plan(plan) if plan is not None else get_account_plan(db, session_id)
    ent = get_entitlements(plan)

    assert_entitlement(ent.max_subjects > 0, ErrorCode.UPGRADE_REQUIRED, "Subjects are available on Pro.")

    title = _clean_title(title)
    mode = _clean_mode(mode)

    current_count = count_subjects(db, session_id)
    if current_count >= ent.max_subjects:
        raise EntitlementError(ErrorCode.LIMIT_REACHED, "Subject limit reached for this plan.")

    now = utc_now()
    subject = Subject(
        id=_new_id(),
        title=title,
        mode=mode,
        user_id=session_id,
        created_at=now,
        updated_at=now,
    )
    db.add(subject)
    db.commit()
    db.refresh(subject)
    logger.info("Created subject %s for %s (%d/%d)", subject.id, session_id, current_count + 1, ent.max_subjects)
    return subject


def list_subjects(db: Session, session_id: str) -> List[Subject]:
    return (
        db.query(Subject)
        .filter(Subject.user_id == session_id)
        .order_by(Subject.updated_at.desc(), Subject.created_at.desc())
        .all()
    )


def get_subject(db: Session, session_id: str, subject_id: str) -> Subject:
    subject = db.query(Subject).filter(Subject.id == subject_id).first() if subject_id else None
    if subject is None or subject.user_id != session_id:
        raise NotFoundError("Subject not found.")
    return subject


def update_subject(db: Session, session_id: str, subject_id: str, title: Optional[str] = None, mode=None) -> Subject:
    subject = get_subject(db, session_id, subject_id)
    if title is None and mode is None:
        raise InvalidRequestError("Nothing to update.", ErrorCode.NO_UPDATES)

    if title is not None:
        subject.title = _clean_title(title)
    if mode is not None:
        subject.mode = _clean_mode(mode)
    subject.updated_at = utc_now()
    db.commit()
    db.refresh(subject)
    return subject


def delete_subject(db: Session, session_id: str, subject_id: str) -> None:
    get_subject(db, session_id, subject_id)

    try:
        deleted = (
            db.query(SubjectMessage)
            .filter(SubjectMessage.subject_id == subject_id)
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info("Deleted %d messages of subject %s", deleted, subject_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to delete messages of subject %s for %s; deleting subject anyway", subject_id, session_id)

    db.query(Subject).filter(Subject.id == subject_id, Subject.user_id == session_id).delete(synchronize_session=False)
    db.commit()


def _next_message_time(db: Session, subject_id: str, requested: Optional[datetime]) -> datetime:
    """Keep created_at strictly increasing per subject; it is the only sort key."""
    created_at = requested or utc_now()
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    latest = (
        db.query(SubjectMessage.created_at)
        .filter(SubjectMessage.subject_id == subject_id)
        .order_by(SubjectMessage.created_at.desc())
        .first()
    )
    if latest and latest[0] is not None and created_at <= latest[0]:
        created_at = latest[0] + timedelta(microseconds=1)
    return created_at


def add_message(
    db: Session,
    subject_id: str,
    role: str,
    content: str,
    created_at: Optional[datetime] = None,
) -> SubjectMessage:
    """
    Append a message, then refresh the parent's updated_at and preview.
    The two writes are separate commits; the message lands first.
    """
    if role not in MESSAGE_ROLES:
        raise InvalidRequestError(f"Invalid message role: {role}")

    message = SubjectMessage(
        id=_new_id(),
        subject_id=subject_id,
        role=role,
        content=content,
        created_at=_next_message_time(db, subject_id, created_at),
    )
    db.add(message)
    db.commit()

    subject = db.query(Subject).filter(Subject.id == subject_id).first()
    if subject is None:
        logger.warning("Message %s added to missing subject %s", message.id, subject_id)
        return message
    subject.updated_at = max(utc_now(), message.created_at)
    subject.last_message_preview = (content or "")[:PREVIEW_LENGTH]
    db.commit()
    return message


def list_messages(db: Session, session_id: str, subject_id: str, limit: int = DEFAULT_MESSAGE_PAGE) -> List[SubjectMessage]:
    """Most recent `limit` messages, returned oldest first."""
    get_subject(db, session_id, subject_id)
    newest_first = (
        db.query(SubjectMessage)
        .filter(SubjectMessage.subject_id == subject_id)
        .order_by(SubjectMessage.created_at.desc())
        .limit(limit)
        .all()
    )
    return sorted(newest_first, key=lambda m: m.created_at)
