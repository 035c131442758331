"""
Named, mode-tagged conversation threads and their messages.
"""
from sqlalchemy import Column, String, Text
from coachbot.db.base import Base
from coachbot.db.types import UTCDateTime
from coachbot.utils.session_keys import utc_now


class Subject(Base):
    __tablename__ = "subjects"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    mode = Column(String, nullable=False)
    user_id = Column(String(128), nullable=False, index=True)  # Owning account id
    last_message_preview = Column(String, nullable=True)
    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, nullable=False, index=True)

    def __repr__(self):
        return f"<Subject(id={self.id}, user_id={self.user_id}, title={self.title[:30]})>"


class SubjectMessage(Base):
    __tablename__ = "subject_messages"

    id = Column(String, primary_key=True)
    # No FK: messages are removed best-effort before the parent row
    subject_id = Column(String, nullable=False, index=True)
    role = Column(String(16), nullable=False)  # "user" | "assistant"
    content = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, default=utc_now, nullable=False, index=True)
