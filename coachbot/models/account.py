from sqlalchemy import Column, String, Boolean
from coachbot.db.base import Base
from coachbot.db.types import UTCDateTime
from coachbot.core.entitlements import Plan, coerce_plan
from coachbot.utils.session_keys import utc_now


class Account(Base):
    """Canonical per-user record. The primary key is the sanitized session id."""

    __tablename__ = "accounts"

    id = Column(String(128), primary_key=True, index=True)
    plan = Column(String, default=Plan.FREE.value, nullable=False)

    # Identity fields (owned by the identity resolver)
    auth_email = Column(String, nullable=True, index=True)
    auth_user_id = Column(String, nullable=True)
    auth_provider = Column(String, nullable=True)

    # Billing fields (owned by the payment reconciler)
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True)
    stripe_subscription_status = Column(String, nullable=True)
    stripe_current_period_end = Column(UTCDateTime, nullable=True)
    stripe_event_created = Column(UTCDateTime, nullable=True)  # Last applied Stripe event

    # Onboarding profile
    name = Column(String, nullable=True)
    primary_focus = Column(String, nullable=True)
    preferred_mode = Column(String, nullable=True)
    goal30 = Column(String, nullable=True)
    onboarding_complete = Column(Boolean, default=False, nullable=False)
    onboarding_skipped = Column(Boolean, default=False, nullable=False)

    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, nullable=False)
    last_seen_at = Column(UTCDateTime, default=utc_now, nullable=True)

    @property
    def plan_tier(self) -> Plan:
        """Stored plan coerced to the closed enum; anything unknown reads as free."""
        return coerce_plan(self.plan)

    @property
    def is_paid(self) -> bool:
        return self.plan_tier != Plan.FREE or bool((self.stripe_customer_id or "").strip())

    def __repr__(self):
        return f"<Account(id={self.id}, plan={self.plan}, auth_email={self.auth_email})>"
