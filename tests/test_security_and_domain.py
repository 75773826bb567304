from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from smokefree.core.clock import FrozenClock, as_utc
from smokefree.core.logging import _mask_sensitive
from smokefree.core.security import SecretHasher, generate_token, token_digest
from smokefree.domain.identifiers import classify_identifier, normalize_email, normalize_phone
from smokefree.domain.memberships import days_remaining, grants_access, renewal_end, subscription_end
from smokefree.domain.roles import Role, demote_on_lapse, promote_on_subscription


@pytest.fixture(scope="module")
def hasher():
    return SecretHasher(time_cost=1, memory_cost=1024)


def test_hash_is_salted_and_never_plaintext(hasher):
    first = hasher.hash("s3cret-pass")
    second = hasher.hash("s3cret-pass")
    assert "s3cret-pass" not in first
    assert first != second
    assert hasher.verify("s3cret-pass", first)
    assert not hasher.verify("wrong-pass", first)


@pytest.mark.parametrize("stored", [None, "", "plain-text", "argon2$garbage", "argon2$" + "x" * 500])
def test_verify_rejects_garbage_hashes(hasher, stored):
    assert hasher.verify("anything", stored) is False


def test_tokens_are_random_and_digests_stable():
    a, b = generate_token(), generate_token()
    assert a != b
    assert len(a) >= 40
    assert token_digest(a) == token_digest(a)
    assert token_digest(a) != token_digest(b)
    assert len(token_digest(a)) == 64


def test_identifier_normalization():
    assert normalize_email("  User@Example.COM ") == "user@example.com"
    assert normalize_email("not-an-email") is None
    assert normalize_phone("+84 (90) 123-4567") == "+84901234567"
    assert normalize_phone("12") is None
    assert classify_identifier("USER@example.com") == ("email", "user@example.com")
    assert classify_identifier("0901 234 567") == ("phone", "0901234567")
    assert classify_identifier("nonsense") is None


def test_role_transitions_leave_staff_roles_alone():
    assert promote_on_subscription(Role.GUEST) is Role.MEMBER
    assert promote_on_subscription(Role.MEMBER) is Role.MEMBER
    assert promote_on_subscription(Role.COACH) is Role.COACH
    assert promote_on_subscription(Role.ADMIN) is Role.ADMIN
    assert demote_on_lapse(Role.MEMBER) is Role.GUEST
    assert demote_on_lapse(Role.COACH) is Role.COACH
    assert demote_on_lapse(Role.ADMIN) is Role.ADMIN
    assert Role.parse(" Member ") is Role.MEMBER
    with pytest.raises(ValueError):
        Role.parse("superuser")


def test_renewal_extends_from_later_of_end_and_now():
    now = datetime(2025, 1, 10, tzinfo=timezone.utc)
    early_end = now + timedelta(days=5)
    lapsed_end = now - timedelta(days=3)
    assert renewal_end(early_end, now, 30) == early_end + timedelta(days=30)
    assert renewal_end(lapsed_end, now, 30) == now + timedelta(days=30)
    assert subscription_end(now, 30) == now + timedelta(days=30)


def test_access_and_days_remaining():
    now = datetime(2025, 1, 10, tzinfo=timezone.utc)
    end = now + timedelta(days=2, hours=3)
    assert grants_access("active", end, now)
    assert grants_access("cancelled", end, now)
    assert not grants_access("expired", end, now)
    assert not grants_access("active", end, end)
    assert days_remaining(end, now) == 2
    assert days_remaining(now - timedelta(days=1), now) == 0


def test_frozen_clock_and_naive_datetimes():
    clock = FrozenClock(datetime(2025, 1, 1))
    assert clock.now().tzinfo is timezone.utc
    assert clock.advance(days=1) == datetime(2025, 1, 2, tzinfo=timezone.utc)
    assert as_utc(datetime(2025, 1, 1, 12)) == datetime(2025, 1, 1, 12, tzinfo=timezone.utc)
    assert as_utc(None) is None


def test_log_masking_covers_login_identifiers():
    event = _mask_sensitive(
        None,
        "info",
        {"event": "login_failed", "identifier": "quitter@example.com", "ip_address": "192.0.2.1", "email": "a@b.cd"},
    )
    assert event["identifier"] == "qu***om"
    assert event["email"] == "a@***cd"
    assert event["ip_address"] == "192.0.2.1"
