from sqlalchemy import Column, Integer, String
from coachbot.db.base import Base
from coachbot.db.types import UTCDateTime
from coachbot.utils.session_keys import utc_now


class UsageCounter(Base):
    """Messages sent by one account on one UTC day."""

    __tablename__ = "usage_counters"

    id = Column(String, primary_key=True)  # "<session_id>_<YYYY-MM-DD>"
    session_id = Column(String(128), nullable=False, index=True)
    date_key = Column(String(10), nullable=False)
    count = Column(Integer, default=0, nullable=False)
    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, nullable=False)
