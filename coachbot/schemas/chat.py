from typing import Optional

from coachbot.schemas.account import CamelModel


class ChatRequest(CamelModel):
    message: str
    subject_id: Optional[str] = None
    mode: Optional[str] = None


class ChatResponse(CamelModel):
    reply: str
    usage: int
    daily_limit: Optional[int] = None
    mode: str
    subject_id: Optional[str] = None


class CheckoutRequest(CamelModel):
    plan: str


class CheckoutResponse(CamelModel):
    url: str
