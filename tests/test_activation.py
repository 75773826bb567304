"""
Activation flow: Unverified -> Active, one way.
"""
from __future__ import annotations

import pytest

from smokefree.core.errors import AccountNotActivated, AlreadyActivated, TokenInvalidOrExpired
from smokefree.core.security import token_digest
from conftest import PASSWORD


def _register_pending(container, email="new@example.com"):
    return container.auth.register(email=email, password=PASSWORD, first_name="Lan")


def test_email_registration_is_pending_and_sends_link(container, mailer):
    result = _register_pending(container)

    assert result.pending_activation is True
    assert result.tokens is None
    assert result.account.is_active is False
    assert result.email_sent is True
    assert mailer.sent[-1]["to"] == "new@example.com"
    assert mailer.last_token() == result.activation_token
    # only the digest is stored
    stored = container.accounts.get_account(result.account.id)
    assert stored.activation_token_hash == token_digest(result.activation_token)


def test_activation_succeeds_once_then_token_is_gone(container, notifier):
    result = _register_pending(container)

    account = container.auth.activate(result.activation_token)
    assert account.is_active is True
    assert account.activation_token_hash is None
    assert "Welcome aboard" in notifier.titles_for(account.id)

    with pytest.raises(TokenInvalidOrExpired):
        container.auth.activate(result.activation_token)


def test_already_active_account_with_stored_token_is_a_no_op(container, clock, notifier):
    result = _register_pending(container)
    container.auth.activate(result.activation_token)
    # a token still on file for an active account (e.g. written by an older release)
    container.accounts.set_activation_token(result.account.id, token_digest("left-over"), clock.now().replace(year=2030))

    account = container.auth.activate("left-over")
    assert account.is_active is True
    assert notifier.titles_for(account.id).count("Welcome aboard") == 1


def test_expired_activation_token_is_rejected(container, clock):
    result = _register_pending(container)
    clock.advance(hours=24, seconds=1)

    with pytest.raises(TokenInvalidOrExpired):
        container.auth.activate(result.activation_token)
    assert container.accounts.get_account(result.account.id).is_active is False


@pytest.mark.parametrize("token", ["", "   ", "made-up-token"])
def test_unknown_activation_token_is_rejected(container, token):
    with pytest.raises(TokenInvalidOrExpired):
        container.auth.activate(token)


def test_resend_overwrites_previous_token(container, mailer):
    result = _register_pending(container)

    assert container.auth.resend_activation("NEW@example.com") is True
    fresh = mailer.last_token()
    assert fresh != result.activation_token

    with pytest.raises(TokenInvalidOrExpired):
        container.auth.activate(result.activation_token)
    assert container.auth.activate(fresh).is_active is True


def test_resend_for_active_account_fails(container):
    result = _register_pending(container)
    container.auth.activate(result.activation_token)
    with pytest.raises(AlreadyActivated):
        container.auth.resend_activation("new@example.com")


def test_resend_for_unknown_identifier_reveals_nothing(container, mailer):
    assert container.auth.resend_activation("nobody@example.com") is False
    assert mailer.sent == []


def test_mail_failure_does_not_undo_registration(container, mailer):
    mailer.fail = True
    result = _register_pending(container)

    assert result.email_sent is False
    assert container.accounts.find_by_identifier("new@example.com") is not None
    with pytest.raises(AccountNotActivated):
        container.auth.login("new@example.com", PASSWORD)


def test_activation_racing_a_completed_activation_welcomes_once(container, clock, notifier, monkeypatch):
    result = _register_pending(container)
    digest = token_digest(result.activation_token)
    stale = container.accounts.find_by_activation_token(digest)
    container.auth.activate(result.activation_token)

    # the losing caller read the row before the winner committed
    monkeypatch.setattr(container.accounts, "find_by_activation_token", lambda _digest: stale)
    account = container.auth.activate(result.activation_token)

    assert account.is_active is True
    assert notifier.titles_for(account.id).count("Welcome aboard") == 1
    assert container.accounts.mark_activated(account.id, digest, clock.now()) is None


def test_activation_with_a_superseded_token_is_rejected(container, monkeypatch):
    result = _register_pending(container)
    stale = container.accounts.find_by_activation_token(token_digest(result.activation_token))
    container.auth.resend_activation("new@example.com")

    monkeypatch.setattr(container.accounts, "find_by_activation_token", lambda _digest: stale)
    with pytest.raises(TokenInvalidOrExpired):
        container.auth.activate(result.activation_token)
    assert container.accounts.get_account(result.account.id).is_active is False
