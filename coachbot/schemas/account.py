from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class EntitlementsResponse(CamelModel):
    daily_message_limit: Optional[int] = None
    max_subjects: int
    can_use_modes: bool
    can_use_persistent_memory: bool


class StripeStatus(CamelModel):
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    status: Optional[str] = None
    current_period_end: Optional[datetime] = None


class ProfileResponse(CamelModel):
    name: Optional[str] = None
    primary_focus: Optional[str] = None
    preferred_mode: Optional[str] = None
    goal30: Optional[str] = None
    onboarding_complete: bool = False
    onboarding_skipped: bool = False


class MeResponse(CamelModel):
    session_id: str
    plan: str
    auth_email: Optional[str] = None
    entitlements: EntitlementsResponse
    usage: int
    stripe: StripeStatus
    profile: ProfileResponse


class SessionResponse(CamelModel):
    session_id: str


class OnboardingRequest(CamelModel):
    name: Optional[str] = ""
    primary_focus: Optional[str] = ""
    preferred_mode: Optional[str] = None
    goal30: Optional[str] = ""
    onboarding_skipped: bool = False


class OkResponse(BaseModel):
    ok: bool = True
