from datetime import datetime
from typing import List, Optional

from coachbot.schemas.account import CamelModel, EntitlementsResponse


class SubjectCreate(CamelModel):
    title: Optional[str] = None
    mode: Optional[str] = None


class SubjectUpdate(CamelModel):
    title: Optional[str] = None
    mode: Optional[str] = None


class SubjectResponse(CamelModel):
    id: str
    title: str
    mode: str
    user_id: str
    created_at: datetime
    updated_at: datetime
    last_message_preview: Optional[str] = None


class SubjectMessageResponse(CamelModel):
    role: str
    content: str
    created_at: datetime


class SubjectEnvelope(CamelModel):
    subject: SubjectResponse
    plan: str
    entitlements: EntitlementsResponse


class SubjectListResponse(CamelModel):
    subjects: List[SubjectResponse]
    plan: str
    entitlements: EntitlementsResponse


class SubjectMessagesResponse(CamelModel):
    messages: List[SubjectMessageResponse]
    plan: str
    entitlements: EntitlementsResponse
