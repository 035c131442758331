"""
Turns of the single persistent thread used by plans without subjects.
"""
from sqlalchemy import Column, Integer, String, Text
from coachbot.db.base import Base
from coachbot.db.types import UTCDateTime
from coachbot.utils.session_keys import utc_now


class MemoryTurn(Base):
    __tablename__ = "memory_turns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(128), nullable=False, index=True)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, default=utc_now, nullable=False, index=True)
