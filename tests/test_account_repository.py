"""
Credential store behaviour against a temporary SQLite database.
"""
from __future__ import annotations

from datetime import timedelta

import pytest

from smokefree.core.errors import IdentifierTaken, ValidationError
from smokefree.core.security import token_digest


def _create(container, clock, **kwargs):
    defaults = dict(
        email="owner@example.com",
        phone_number=None,
        password_hash="argon2$placeholder",
        is_active=True,
        now=clock.now(),
    )
    defaults.update(kwargs)
    return container.accounts.create_account(**defaults)


def test_create_account_requires_an_identifier(container, clock):
    with pytest.raises(ValidationError):
        _create(container, clock, email=None, phone_number=None)


def test_duplicate_email_or_phone_is_rejected(container, clock):
    _create(container, clock, email="owner@example.com", phone_number="0901234567")
    with pytest.raises(IdentifierTaken):
        _create(container, clock, email="owner@example.com", phone_number=None)
    with pytest.raises(IdentifierTaken):
        _create(container, clock, email="other@example.com", phone_number="0901234567")


def test_register_normalizes_before_uniqueness_check(container):
    container.auth.register(email="Mixed@Example.com", password="long-enough-1", require_activation=False)
    with pytest.raises(IdentifierTaken):
        container.auth.register(email="  mixed@example.COM ", password="long-enough-1", require_activation=False)


def test_find_by_identifier_accepts_email_or_phone(container, clock):
    account = _create(container, clock, email="owner@example.com", phone_number="+84901234567")
    assert container.accounts.find_by_identifier("OWNER@example.com").id == account.id
    assert container.accounts.find_by_identifier("+84 90 123 4567").id == account.id
    assert container.accounts.find_by_identifier("nobody@example.com") is None


def test_refresh_token_store_overwrites_previous(container, clock):
    account = _create(container, clock)
    expires = clock.now() + timedelta(days=7)
    container.accounts.store_refresh_token(account.id, token_digest("first"), expires, remember=False)
    container.accounts.store_refresh_token(account.id, token_digest("second"), expires, remember=True)

    assert container.accounts.find_by_refresh_token(token_digest("first")) is None
    stored = container.accounts.find_by_refresh_token(token_digest("second"))
    assert stored.id == account.id
    assert stored.refresh_token_remember is True


def test_swap_refresh_token_only_succeeds_once(container, clock):
    account = _create(container, clock)
    now = clock.now()
    container.accounts.store_refresh_token(account.id, "a" * 64, now + timedelta(days=1), remember=False)

    swapped = container.accounts.swap_refresh_token("a" * 64, "b" * 64, now + timedelta(days=7), now=now)
    assert swapped is not None and swapped.id == account.id
    assert container.accounts.swap_refresh_token("a" * 64, "c" * 64, now + timedelta(days=7), now=now) is None


def test_swap_refresh_token_rejects_expired(container, clock):
    account = _create(container, clock)
    now = clock.now()
    container.accounts.store_refresh_token(account.id, "a" * 64, now + timedelta(minutes=1), remember=False)
    later = now + timedelta(minutes=2)
    assert container.accounts.swap_refresh_token("a" * 64, "b" * 64, later + timedelta(days=7), now=later) is None
