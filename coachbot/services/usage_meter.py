"""
Per-account, per-UTC-day message counter with a hard ceiling.

The increment is one conditional UPDATE (`count < limit`) so the database
serializes concurrent senders on the row; the first message of the day
inserts the row instead, and losing that insert race retries as an update.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coachbot.core.errors import EntitlementError, ErrorCode
from coachbot.models.usage_counter import UsageCounter
from coachbot.utils.session_keys import sanitize_session_id, utc_now

logger = logging.getLogger(__name__)

MAX_INSERT_RETRIES = 5


def usage_doc_id(session_id: str, date_key: str) -> str:
    return f"{sanitize_session_id(session_id)}_{date_key}"


def get_daily_usage(db: Session, session_id: str, date_key: str) -> int:
    count = db.execute(
        select(UsageCounter.count).where(UsageCounter.id == usage_doc_id(session_id, date_key))
    ).scalar_one_or_none()
    return count or 0


def check_daily_limit(db: Session, session_id: str, date_key: str, limit: Optional[int]) -> Tuple[bool, Optional[int]]:
    """
    Non-raising check.

    Returns:
        (is_allowed, remaining) - remaining is None for unlimited plans
    """
    if limit is None:
        return True, None
    used = get_daily_usage(db, session_id, date_key)
    remaining = max(0, limit - used)
    return remaining > 0, remaining


def _limit_reached() -> EntitlementError:
    return EntitlementError(ErrorCode.LIMIT_REACHED, "Daily message limit reached.")


def increment_daily_usage(db: Session, session_id: str, date_key: str, limit: Optional[int] = None) -> int:
    """
    Count one message for (session_id, date_key) and return the new count.
    Raises EntitlementError(LIMIT_REACHED) without writing anything when the
    count would exceed `limit`. `limit=None` means unlimited.
    """
    doc_id = usage_doc_id(session_id, date_key)

    for attempt in range(MAX_INSERT_RETRIES):
        now = utc_now()
        stmt = update(UsageCounter).where(UsageCounter.id == doc_id)
        if limit is not None:
            stmt = stmt.where(UsageCounter.count < limit)
        stmt = stmt.values(count=UsageCounter.count + 1, updated_at=now).execution_options(
            synchronize_session=False
        )

        try:
            result = db.execute(stmt)
            if result.rowcount == 1:
                count = db.execute(
                    select(UsageCounter.count).where(UsageCounter.id == doc_id)
                ).scalar_one()
                db.commit()
                return count

            current = db.execute(
                select(UsageCounter.count).where(UsageCounter.id == doc_id)
            ).scalar_one_or_none()
            if current is not None:
                if limit is not None and current >= limit:
                    db.rollback()
                    logger.info("Daily limit %s reached for %s on %s", limit, session_id, date_key)
                    raise _limit_reached()
                # Row committed by another request after our UPDATE ran; update it instead
                logger.debug("Usage row %s appeared concurrently (attempt %d), retrying", doc_id, attempt + 1)
                continue

            if limit is not None and limit < 1:
                db.rollback()
                raise _limit_reached()

            db.add(UsageCounter(
                id=doc_id,
                session_id=sanitize_session_id(session_id),
                date_key=date_key,
                count=1,
                created_at=now,
                updated_at=now,
            ))
            db.commit()
            return 1
        except IntegrityError:
            # Another request created today's row first
            db.rollback()
            logger.debug("Usage row %s created concurrently (attempt %d), retrying", doc_id, attempt + 1)
        except EntitlementError:
            raise
        except Exception:
            db.rollback()
            logger.exception("Usage increment failed for %s on %s", session_id, date_key)
            raise

    raise RuntimeError(f"Could not increment usage for {doc_id} after {MAX_INSERT_RETRIES} attempts")
