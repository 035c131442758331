"""
Email -> Account index used by the identity resolver and the payment reconciler.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coachbot.models.email_link import EmailLink
from coachbot.utils.session_keys import (
    encode_email_key,
    normalize_email,
    sanitize_session_id,
    utc_now,
)

logger = logging.getLogger(__name__)


def get_linked_session_id(db: Session, email: str) -> Optional[str]:
    if not normalize_email(email):
        return None
    link = db.query(EmailLink).filter(EmailLink.id == encode_email_key(email)).first()
    if not link or not link.session_id:
        return None
    return sanitize_session_id(link.session_id)


def link_email_to_session(
    db: Session,
    email: str,
    session_id: str,
    auth_user_id: Optional[str] = None,
    commit: bool = True,
) -> EmailLink:
    """Upsert the link for `email`. Repeating the call converges on the same row."""
    normalized = normalize_email(email)
    if not normalized:
        raise ValueError("email is required")
    key = encode_email_key(normalized)
    session_id = sanitize_session_id(session_id)

    for attempt in range(2):
        now = utc_now()
        link = db.query(EmailLink).filter(EmailLink.id == key).first()
        if link:
            link.session_id = session_id
            link.email = normalized
            if auth_user_id:
                link.auth_user_id = auth_user_id
            link.updated_at = now
        else:
            link = EmailLink(
                id=key,
                email=normalized,
                session_id=session_id,
                auth_user_id=auth_user_id,
                created_at=now,
                updated_at=now,
            )
            db.add(link)
        try:
            if commit:
                db.commit()
            else:
                db.flush()
            return link
        except IntegrityError:
            # Inside a caller's transaction the rollback would discard its work too
            if not commit:
                raise
            # Another request inserted the same email first; update that row instead
            db.rollback()
            if attempt == 1:
                raise
            logger.info("Email link for %s inserted concurrently, retrying as update", normalized)
    raise RuntimeError("unreachable")


def unlink_email(db: Session, email: str, commit: bool = True) -> None:
    if not normalize_email(email):
        return
    db.query(EmailLink).filter(EmailLink.id == encode_email_key(email)).delete(synchronize_session=False)
    if commit:
        db.commit()
