import hashlib
import hmac
import json
import os
import time

import jwt


class FakeCompletion:
    """Records every prompt and answers with a fixed reply."""

    def __init__(self, reply="Take one small step today."):
        self.reply = reply
        self.calls = []

    def __call__(self, messages, max_tokens):
        self.calls.append(messages)
        return self.reply


def make_token(email, sub="user-1"):
    return jwt.encode({"email": email, "sub": sub}, os.environ["AUTH_JWT_SECRET"], algorithm="HS256")


def sign_payload(payload: str, secret: str = None, timestamp: int = None) -> str:
    """Build a Stripe-Signature header for `payload`."""
    secret = secret or os.environ["STRIPE_WEBHOOK_SECRET"]
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type, obj, created=1_700_000_000, event_id="evt_1"):
    return {"id": event_id, "type": event_type, "created": created, "data": {"object": obj}}


def subscription_payload(price_id="price_pro", status="active", period_end=1_800_000_000, **extra):
    payload = {
        "id": "sub_1",
        "object": "subscription",
        "customer": "cus_1",
        "status": status,
        "items": {"data": [{"price": {"id": price_id}, "current_period_end": period_end}]},
    }
    payload.update(extra)
    return payload


def dumps(event) -> str:
    return json.dumps(event)
