"""
Helpers that turn client-supplied identifiers into storage-safe keys.

Session ids double as primary keys, so anything that could break a path or
a composite key is replaced before use.
"""
import base64
import hashlib
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

_UNSAFE_KEY_CHARS = re.compile(r"[/\\?#%\s\x00-\x1f\x7f]")

MAX_SESSION_ID_LENGTH = 128


def sanitize_session_id(session_id: str) -> str:
    """Oversized ids are replaced by a digest so distinct tokens never share a key."""
    cleaned = _UNSAFE_KEY_CHARS.sub("_", session_id.strip())
    if len(cleaned) > MAX_SESSION_ID_LENGTH:
        return "sha256_" + hashlib.sha256(cleaned.encode("utf-8")).hexdigest()
    return cleaned


def generate_session_id() -> str:
    return sanitize_session_id(str(uuid.uuid4()))


def normalize_email(email: Optional[str]) -> Optional[str]:
    normalized = (email or "").strip().lower()
    return normalized or None


def encode_email_key(email: str) -> str:
    """URL-safe base64 of the normalized email, without padding."""
    normalized = normalize_email(email)
    if not normalized:
        raise ValueError("email is required")
    encoded = base64.urlsafe_b64encode(normalized.encode("utf-8")).decode("ascii")
    return encoded.rstrip("=")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_date_key(now: Optional[datetime] = None) -> str:
    now = now or utc_now()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%d")
