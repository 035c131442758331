import pytest

from coachbot.core.entitlements import Plan
from coachbot.core.errors import SessionRequiredError
from coachbot.models.account import Account
from coachbot.services.email_links import get_linked_session_id, link_email_to_session
from coachbot.services.identity_resolver import AuthIdentity, choose_canonical_session, resolve_identity


def no_customers(email):
    return []


def test_new_visitor_gets_a_fresh_session(db):
    result = resolve_identity(db, customer_lookup=no_customers)
    assert result.session_id
    assert result.cookie_session_id is None
    assert result.should_set_cookie is True
    assert db.get(Account, result.session_id) is not None


def test_returning_visitor_keeps_cookie_session(db, make_account):
    make_account("anon-1")
    result = resolve_identity(db, cookie_token="anon-1", customer_lookup=no_customers)
    assert result.session_id == "anon-1"
    assert result.should_set_cookie is False


def test_unsafe_cookie_is_sanitized_and_rewritten(db):
    result = resolve_identity(db, cookie_token="abc/def", customer_lookup=no_customers)
    assert result.session_id == "abc_def"
    assert result.should_set_cookie is True


def test_header_token_is_used_when_cookie_is_missing(db):
    result = resolve_identity(db, header_token="from-header", customer_lookup=no_customers)
    assert result.session_id == "from-header"
    assert result.should_set_cookie is True


def test_header_token_ignored_when_not_allowed(db):
    with pytest.raises(SessionRequiredError):
        resolve_identity(db, header_token="from-header", allow_header=False, generate_if_missing=False)


def test_session_required_without_any_marker(db):
    with pytest.raises(SessionRequiredError):
        resolve_identity(db, generate_if_missing=False)


def test_first_sign_in_links_email_to_anonymous_account(db, make_account):
    make_account("anon-1")
    auth = AuthIdentity(email=" Person@Example.com ", user_id="u1", provider="google")
    result = resolve_identity(db, cookie_token="anon-1", auth=auth, customer_lookup=no_customers)

    assert result.session_id == "anon-1"
    assert result.auth_email == "person@example.com"
    assert result.should_set_cookie is False
    assert get_linked_session_id(db, "person@example.com") == "anon-1"

    account = db.get(Account, "anon-1")
    assert account.auth_email == "person@example.com"
    assert account.auth_user_id == "u1"
    assert account.auth_provider == "google"


def test_second_device_adopts_linked_account(db, make_account):
    make_account("laptop")
    link_email_to_session(db, "person@example.com", "laptop")

    auth = AuthIdentity(email="person@example.com")
    result = resolve_identity(db, cookie_token="phone", auth=auth, customer_lookup=no_customers)

    assert result.session_id == "laptop"
    assert result.should_set_cookie is True


def test_paid_anonymous_account_wins_over_linked(db, make_account):
    make_account("linked", Plan.PRO, stripe_customer_id="cus_old")
    make_account("paid-here", Plan.STARTER, stripe_customer_id="cus_new")
    link_email_to_session(db, "person@example.com", "linked")

    auth = AuthIdentity(email="person@example.com")
    result = resolve_identity(db, cookie_token="paid-here", auth=auth, customer_lookup=no_customers)

    assert result.session_id == "paid-here"
    assert get_linked_session_id(db, "person@example.com") == "paid-here"


def test_dangling_link_is_removed(db, make_account):
    link_email_to_session(db, "person@example.com", "deleted-account")

    auth = AuthIdentity(email="person@example.com")
    result = resolve_identity(db, cookie_token="anon-1", auth=auth, customer_lookup=no_customers)

    assert result.session_id == "anon-1"
    assert get_linked_session_id(db, "person@example.com") == "anon-1"


def test_paid_account_recovered_through_stripe_customers(db, make_account):
    make_account("bought-elsewhere", Plan.PRO, stripe_customer_id="cus_42")
    lookups = []

    def lookup(email):
        lookups.append(email)
        return ["cus_42"]

    auth = AuthIdentity(email="buyer@example.com")
    result = resolve_identity(db, cookie_token="fresh-device", auth=auth, customer_lookup=lookup)

    assert lookups == ["buyer@example.com"]
    assert result.session_id == "bought-elsewhere"
    assert result.should_set_cookie is True
    assert get_linked_session_id(db, "buyer@example.com") == "bought-elsewhere"


def test_stripe_not_consulted_when_selection_is_paid(db, make_account):
    make_account("paid", Plan.ELITE)

    def lookup(email):
        raise AssertionError("should not be called")

    result = resolve_identity(db, cookie_token="paid", auth=AuthIdentity(email="a@b.co"), customer_lookup=lookup)
    assert result.session_id == "paid"


def test_stripe_lookup_failure_propagates(db):
    def lookup(email):
        raise RuntimeError("stripe down")

    with pytest.raises(RuntimeError):
        resolve_identity(db, cookie_token="anon", auth=AuthIdentity(email="a@b.co"), customer_lookup=lookup)


def test_choose_canonical_session_without_accounts():
    assert choose_canonical_session("anon", None, None, None) == "anon"
    assert choose_canonical_session("anon", None, "linked", None) == "anon"


def test_choose_canonical_session_prefers_paid_side(make_account):
    anon_pro = make_account("anon-pro", Plan.PRO)
    linked_free = make_account("linked-free")
    assert choose_canonical_session("anon-pro", anon_pro, "linked-free", linked_free) == "anon-pro"

    anon_free = make_account("anon-free")
    linked_pro = make_account("linked-pro", Plan.PRO)
    assert choose_canonical_session("anon-free", anon_free, "linked-pro", linked_pro) == "linked-pro"


def test_anonymous_pro_plan_wins_over_linked_free(db, make_account):
    make_account("linked", Plan.FREE)
    make_account("anon-pro", Plan.PRO)
    link_email_to_session(db, "person@example.com", "linked")

    auth = AuthIdentity(email="person@example.com")
    result = resolve_identity(db, cookie_token="anon-pro", auth=auth, customer_lookup=no_customers)

    assert result.session_id == "anon-pro"
    assert get_linked_session_id(db, "person@example.com") == "anon-pro"


def test_linked_paid_account_wins_over_anonymous_free(db, make_account):
    make_account("linked", Plan.PRO, stripe_customer_id="cus_1")
    make_account("anon-free")
    link_email_to_session(db, "person@example.com", "linked")

    auth = AuthIdentity(email="person@example.com")
    result = resolve_identity(db, cookie_token="anon-free", auth=auth, customer_lookup=no_customers)

    assert result.session_id == "linked"
    assert result.should_set_cookie is True
    assert get_linked_session_id(db, "person@example.com") == "linked"
