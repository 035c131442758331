"""
One chat round-trip: entitlement gate, usage metering, history, completion, persistence.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from coachbot.core.entitlements import assert_entitlement, get_entitlements
from coachbot.core.errors import ErrorCode, InvalidRequestError
from coachbot.core.modes import DEFAULT_MODE, Mode, coerce_mode
from coachbot.models.account import Account
from coachbot.services import memory, subject_store
from coachbot.services.completion import COMPLETION_MAX_TOKENS, CompletionFn, build_messages, openai_complete
from coachbot.services.usage_meter import increment_daily_usage
from coachbot.utils.session_keys import utc_date_key, utc_now

logger = logging.getLogger(__name__)

SUBJECT_HISTORY_LIMIT = 20
FALLBACK_REPLY = "I couldn't generate a reply."


@dataclass
class ChatReply:
    reply: str
    usage: int
    daily_limit: Optional[int]
    mode: Mode
    subject_id: Optional[str] = None


def _profile(account: Account) -> dict:
    return {
        "name": account.name,
        "primary focus": account.primary_focus,
        "30-day goal": account.goal30,
    }


def send_message(
    db: Session,
    account: Account,
    message: str,
    subject_id: Optional[str] = None,
    mode=None,
    complete: Optional[CompletionFn] = None,
    date_key: Optional[str] = None,
) -> ChatReply:
    text = message.strip() if isinstance(message, str) else ""
    if not text:
        raise InvalidRequestError("Message is required.")

    ent = get_entitlements(account.plan_tier)

    selected_mode = None
    if mode is not None:
        selected_mode = coerce_mode(mode)
        if selected_mode is None:
            raise InvalidRequestError("Unknown mode.", ErrorCode.INVALID_MODE)
        assert_entitlement(ent.can_use_modes, ErrorCode.UPGRADE_REQUIRED, "Coaching modes are available on Pro.")

    subject = None
    if subject_id:
        assert_entitlement(ent.max_subjects > 0, ErrorCode.UPGRADE_REQUIRED, "Subjects are available on Pro.")
        subject = subject_store.get_subject(db, account.id, subject_id)
        selected_mode = selected_mode or coerce_mode(subject.mode)

    if selected_mode is None and ent.can_use_modes:
        selected_mode = coerce_mode(account.preferred_mode)
    selected_mode = selected_mode or DEFAULT_MODE

    usage = increment_daily_usage(db, account.id, date_key or utc_date_key(), ent.daily_message_limit)

    if subject is not None:
        history = [
            {"role": m.role, "content": m.content}
            for m in subject_store.list_messages(db, account.id, subject.id, SUBJECT_HISTORY_LIMIT)
        ]
    elif ent.can_use_persistent_memory:
        history = memory.get_recent_turns(db, account.id)
    else:
        history = []

    prompt = build_messages(history, text, selected_mode, _profile(account))
    reply = ((complete or openai_complete)(prompt, COMPLETION_MAX_TOKENS) or "").strip() or FALLBACK_REPLY

    if subject is not None:
        sent_at = utc_now()
        subject_store.add_message(db, subject.id, "user", text, created_at=sent_at)
        subject_store.add_message(db, subject.id, "assistant", reply, created_at=sent_at + timedelta(milliseconds=1))
    elif ent.can_use_persistent_memory:
        memory.append_turns(db, account.id, [
            {"role": "user", "content": text},
            {"role": "assistant", "content": reply},
        ])

    logger.info("Chat reply for %s (usage %s/%s, subject=%s)", account.id, usage, ent.daily_message_limit, subject_id)
    return ChatReply(
        reply=reply,
        usage=usage,
        daily_limit=ent.daily_message_limit,
        mode=selected_mode,
        subject_id=subject.id if subject is not None else None,
    )
