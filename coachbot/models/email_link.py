"""
Secondary index from a normalized email to the currently preferred Account.
"""
from sqlalchemy import Column, String
from coachbot.db.base import Base
from coachbot.db.types import UTCDateTime
from coachbot.utils.session_keys import utc_now


class EmailLink(Base):
    __tablename__ = "email_links"

    id = Column(String, primary_key=True)  # url-safe base64 of the normalized email
    email = Column(String, nullable=False, index=True)
    session_id = Column(String(128), nullable=False, index=True)
    auth_user_id = Column(String, nullable=True)
    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, nullable=False)
