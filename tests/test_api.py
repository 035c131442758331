import pytest

import coachbot.api.routes.stripe as stripe_routes
from coachbot.models.account import Account
from coachbot.models.email_link import EmailLink
from coachbot.models.usage_counter import UsageCounter
from tests.helpers import dumps, make_token, sign_payload, stripe_event, subscription_payload


def start_session(client):
    response = client.get("/api/session")
    assert response.status_code == 200
    return response.json()["sessionId"]


def upgrade(db, session_id, plan="pro"):
    account = db.get(Account, session_id)
    account.plan = plan
    db.commit()


def error_code(response):
    return response.json()["error"]["code"]


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_session_cookie_round_trip(client):
    session_id = start_session(client)
    assert client.cookies.get("mc_session_id") == session_id
    assert start_session(client) == session_id


def test_session_reset_starts_over(client):
    session_id = start_session(client)
    assert client.post("/api/session/reset").json() == {"ok": True}
    assert start_session(client) != session_id


def test_session_header_fallback(client):
    response = client.get("/api/session", headers={"x-session-id": "from-header"})
    assert response.json()["sessionId"] == "from-header"
    assert client.cookies.get("mc_session_id") == "from-header"


def test_me_for_new_visitor(client):
    body = client.get("/api/me").json()
    assert body["plan"] == "free"
    assert body["usage"] == 0
    assert body["authEmail"] is None
    assert body["entitlements"] == {
        "dailyMessageLimit": 10,
        "maxSubjects": 0,
        "canUseModes": False,
        "canUsePersistentMemory": True,
    }
    assert body["profile"]["onboardingComplete"] is False


def test_chat_counts_usage(client, completion):
    response = client.post("/api/chat", json={"message": "I can't focus"})
    assert response.status_code == 200
    body = response.json()
    assert body["reply"] == completion.reply
    assert body["usage"] == 1
    assert body["dailyLimit"] == 10
    assert body["mode"] == "grounding"
    assert client.get("/api/me").json()["usage"] == 1


def test_chat_limit_reached(client):
    for _ in range(10):
        assert client.post("/api/chat", json={"message": "again"}).status_code == 200
    response = client.post("/api/chat", json={"message": "again"})
    assert response.status_code == 403
    assert error_code(response) == "LIMIT_REACHED"


def test_chat_mode_requires_upgrade(client):
    response = client.post("/api/chat", json={"message": "hi", "mode": "business"})
    assert response.status_code == 403
    assert error_code(response) == "UPGRADE_REQUIRED"


def test_onboarding_requires_session(client):
    response = client.post("/api/onboarding", json={"name": "Sam"})
    assert response.status_code == 401
    assert error_code(response) == "SESSION_REQUIRED"


def test_onboarding_saves_profile(client):
    start_session(client)
    response = client.post("/api/onboarding", json={
        "name": "Sam",
        "primaryFocus": "sleep",
        "preferredMode": "discipline",
        "goal30": "in bed by eleven",
    })
    assert response.status_code == 200
    profile = client.get("/api/me").json()["profile"]
    assert profile["name"] == "Sam"
    assert profile["primaryFocus"] == "sleep"
    assert profile["goal30"] == "in bed by eleven"
    assert profile["onboardingComplete"] is True


def test_onboarding_rejects_unknown_mode(client):
    start_session(client)
    response = client.post("/api/onboarding", json={"name": "Sam", "preferredMode": "direct"})
    assert response.status_code == 400
    assert error_code(response) == "INVALID_MODE"
    assert client.get("/api/me").json()["profile"]["onboardingComplete"] is False


def test_subjects_require_session(client):
    response = client.get("/api/subjects")
    assert response.status_code == 401
    assert error_code(response) == "SESSION_REQUIRED"


def test_subjects_require_upgrade(client):
    start_session(client)
    response = client.get("/api/subjects")
    assert response.status_code == 403
    assert error_code(response) == "UPGRADE_REQUIRED"


def test_subject_lifecycle(client, db, completion):
    session_id = start_session(client)
    upgrade(db, session_id)

    created = client.post("/api/subjects", json={"title": "Career", "mode": "business"})
    assert created.status_code == 200
    subject = created.json()["subject"]
    assert subject["title"] == "Career"
    assert subject["userId"] == session_id
    assert created.json()["entitlements"]["maxSubjects"] == 20

    renamed = client.patch(f"/api/subjects/{subject['id']}", json={"title": "Next job"})
    assert renamed.json()["subject"]["title"] == "Next job"

    empty = client.patch(f"/api/subjects/{subject['id']}", json={"title": "  "})
    assert empty.status_code == 400
    assert error_code(empty) == "NO_UPDATES"

    chat = client.post("/api/chat", json={"message": "Should I apply?", "subjectId": subject["id"]})
    assert chat.status_code == 200
    assert chat.json()["mode"] == "business"
    assert chat.json()["subjectId"] == subject["id"]

    messages = client.get(f"/api/subjects/{subject['id']}/messages").json()["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[0]["content"] == "Should I apply?"

    listed = client.get("/api/subjects").json()["subjects"]
    assert [s["id"] for s in listed] == [subject["id"]]
    assert listed[0]["lastMessagePreview"] == completion.reply

    assert client.delete(f"/api/subjects/{subject['id']}").json() == {"ok": True}
    assert client.get("/api/subjects").json()["subjects"] == []


def test_subject_validation_errors(client, db):
    session_id = start_session(client)
    upgrade(db, session_id)

    response = client.post("/api/subjects", json={"title": "", "mode": "business"})
    assert response.status_code == 400
    assert error_code(response) == "INVALID_TITLE"

    response = client.post("/api/subjects", json={"title": "Work", "mode": "loud"})
    assert error_code(response) == "INVALID_MODE"

    response = client.get("/api/subjects/does-not-exist/messages")
    assert response.status_code == 404
    assert error_code(response) == "NOT_FOUND"


def test_invalid_bearer_token_is_rejected(client):
    response = client.get("/api/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_sign_in_binds_email(client, db):
    session_id = start_session(client)
    headers = {"Authorization": f"Bearer {make_token('Person@Example.com')}"}
    body = client.get("/api/me", headers=headers).json()
    assert body["sessionId"] == session_id
    assert body["authEmail"] == "person@example.com"
    assert db.query(EmailLink).filter(EmailLink.session_id == session_id).count() == 1


def test_account_delete_requires_sign_in(client):
    start_session(client)
    assert client.post("/api/account/delete").status_code == 401


def test_account_delete_erases_everything(client, db):
    headers = {"Authorization": f"Bearer {make_token('person@example.com')}"}
    session_id = client.get("/api/me", headers=headers).json()["sessionId"]
    client.post("/api/chat", json={"message": "hello"}, headers=headers)

    response = client.post("/api/account/delete", headers=headers)
    assert response.status_code == 200
    assert db.query(Account).filter(Account.id == session_id).count() == 0
    assert db.query(UsageCounter).filter(UsageCounter.session_id == session_id).count() == 0
    assert db.query(EmailLink).count() == 0
    assert client.cookies.get("mc_session_id") is None


def post_webhook(client, event, secret=None):
    payload = dumps(event)
    return client.post(
        "/api/stripe/webhook",
        content=payload,
        headers={"stripe-signature": sign_payload(payload, secret=secret), "content-type": "application/json"},
    )


def test_webhook_upgrades_plan(client):
    session_id = start_session(client)
    event = stripe_event("customer.subscription.created", subscription_payload(metadata={"sessionId": session_id}))

    response = post_webhook(client, event)
    assert response.status_code == 200
    assert response.json() == {"received": True}

    body = client.get("/api/me").json()
    assert body["plan"] == "pro"
    assert body["stripe"]["customerId"] == "cus_1"
    assert body["stripe"]["status"] == "active"


def test_webhook_rejects_missing_signature(client):
    response = client.post("/api/stripe/webhook", content="{}")
    assert response.status_code == 400


def test_webhook_rejects_bad_signature(client, db):
    event = stripe_event("customer.subscription.created", subscription_payload(metadata={"sessionId": "x"}))
    response = post_webhook(client, event, secret="whsec_wrong")
    assert response.status_code == 400
    assert db.query(Account).count() == 0


def test_webhook_without_secret_is_server_error(client, monkeypatch):
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET")
    event = stripe_event("invoice.paid", {"id": "in_1"})
    payload = dumps(event)
    response = client.post(
        "/api/stripe/webhook",
        content=payload,
        headers={"stripe-signature": sign_payload(payload, secret="whsec_test_secret")},
    )
    assert response.status_code == 500


def test_webhook_handler_failure_asks_for_retry(client, monkeypatch):
    def boom(db, event):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(stripe_routes, "process_event", boom)
    response = post_webhook(client, stripe_event("invoice.paid", {"id": "in_1"}))
    assert response.status_code == 500


def test_checkout_rejects_unknown_plan(client):
    response = client.post("/api/stripe/checkout", json={"plan": "free"})
    assert response.status_code == 400
    assert error_code(response) == "BAD_REQUEST"


def test_checkout_returns_url(client, monkeypatch):
    calls = []

    def fake_checkout(session_id, plan):
        calls.append((session_id, plan.value))
        return {"url": "https://checkout.stripe.test/cs_1", "id": "cs_1"}

    monkeypatch.setattr(stripe_routes, "create_checkout_session", fake_checkout)
    session_id = start_session(client)

    response = client.post("/api/stripe/checkout", json={"plan": "elite"})
    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.test/cs_1"}
    assert calls == [(session_id, "elite")]


@pytest.mark.parametrize("error", [RuntimeError("Missing SITE_URL"), stripe_routes.stripe.StripeError("boom")])
def test_checkout_failures_are_server_errors(client, monkeypatch, error):
    def failing_checkout(session_id, plan):
        raise error

    monkeypatch.setattr(stripe_routes, "create_checkout_session", failing_checkout)
    response = client.post("/api/stripe/checkout", json={"plan": "pro"})
    assert response.status_code == 500
