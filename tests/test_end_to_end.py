"""
Full lifecycle scenarios driven through the services with a frozen clock.
"""
from __future__ import annotations

from datetime import timedelta

import pytest

from smokefree.core.errors import AccountNotActivated, InvalidCredentials, RateLimited
from conftest import PASSWORD


def test_register_activate_subscribe_and_expire(container, clock, plans, mailer):
    registered = container.auth.register(email="quitter@example.com", password=PASSWORD, first_name="Minh")
    assert registered.pending_activation is True

    with pytest.raises(AccountNotActivated):
        container.auth.login("quitter@example.com", PASSWORD)

    container.auth.activate(mailer.last_token())
    session = container.auth.login("quitter@example.com", PASSWORD, ip_address="192.0.2.1")
    account_id = container.auth.authenticate(session.tokens.access_token).account_id

    entry = container.subscriptions.subscribe(account_id, plans[30].id)
    assert entry.membership.end_at == entry.membership.start_at + timedelta(days=30)
    assert container.accounts.get_account(account_id).role == "member"

    clock.advance(days=31)
    container.reconciler.sweep()

    assert [m.status for m in container.memberships.memberships_for(account_id)] == ["expired"]
    assert container.accounts.get_account(account_id).role == "guest"
    assert container.subscriptions.has_access(account_id) is False


def test_five_failures_in_five_minutes_lock_out_correct_password(container, clock, make_account):
    make_account(email="user@x.com")
    for _ in range(5):
        with pytest.raises(InvalidCredentials):
            container.auth.login("user@x.com", "guessing-123", ip_address="198.51.100.9")
        clock.advance(minutes=1)

    with pytest.raises(RateLimited):
        container.auth.login("user@x.com", PASSWORD, ip_address="198.51.100.9")
