from __future__ import annotations

import dataclasses
import threading

import pytest
from jose import jwt

from smokefree.core.errors import RefreshInvalid, TokenExpired, TokenInvalid
from smokefree.domain.roles import Role
from smokefree.services.token_service import ALGORITHM, TokenService
from conftest import PASSWORD


def test_access_token_carries_id_role_and_expiry(container, clock, make_account):
    account = make_account()
    token, expires_at = container.tokens.issue_access_token(account)
    claims = container.tokens.verify_access_token(token)

    assert claims.account_id == account.id
    assert claims.role is Role.GUEST
    assert int((expires_at - clock.now()).total_seconds()) == 3600


def test_remember_me_lengthens_both_tokens(container, clock, make_account):
    account = make_account()
    short = container.tokens.issue_pair(account, remember_me=False)
    long = container.tokens.issue_pair(account, remember_me=True)
    assert long.access_expires_at - clock.now() > short.access_expires_at - clock.now()
    assert (long.refresh_expires_at - clock.now()).days == 30
    assert (short.refresh_expires_at - clock.now()).days == 7


def test_expired_and_invalid_tokens_are_distinguished(container, clock, make_account):
    account = make_account()
    token, _ = container.tokens.issue_access_token(account)

    with pytest.raises(TokenInvalid):
        container.tokens.verify_access_token(token.rsplit(".", 1)[0] + ".not-the-signature")
    with pytest.raises(TokenInvalid):
        container.tokens.verify_access_token("not-a-jwt")

    forged = jwt.encode({"sub": str(account.id), "role": "admin", "type": "access", "exp": 4102444800}, "other", ALGORITHM)
    with pytest.raises(TokenInvalid):
        container.tokens.verify_access_token(forged)

    clock.advance(hours=1, seconds=1)
    with pytest.raises(TokenExpired):
        container.tokens.verify_access_token(token)


def test_only_latest_refresh_token_is_valid(container, make_account):
    account = make_account()
    first = container.tokens.issue_pair(account)
    second = container.tokens.issue_pair(account)

    with pytest.raises(RefreshInvalid):
        container.tokens.redeem_refresh_token(first.refresh_token)
    assert container.tokens.redeem_refresh_token(second.refresh_token).account.id == account.id


def test_second_login_invalidates_first_session(container, make_account):
    make_account(email="twice@example.com")
    first = container.auth.login("twice@example.com", PASSWORD)
    second = container.auth.login("twice@example.com", PASSWORD)

    with pytest.raises(RefreshInvalid):
        container.auth.refresh(first.tokens.refresh_token)
    assert container.auth.refresh(second.tokens.refresh_token).access_token


def test_rotation_revokes_presented_token(container, make_account):
    account = make_account()
    pair = container.tokens.issue_pair(account)

    rotated = container.tokens.redeem_refresh_token(pair.refresh_token)
    assert rotated.refresh_token != pair.refresh_token
    assert container.tokens.verify_access_token(rotated.access_token).account_id == account.id

    with pytest.raises(RefreshInvalid):
        container.tokens.redeem_refresh_token(pair.refresh_token)
    assert container.tokens.redeem_refresh_token(rotated.refresh_token).account.id == account.id


def test_reuse_until_expiry_when_rotation_disabled(container, clock, make_account):
    account = make_account()
    tokens = TokenService(container.accounts, dataclasses.replace(container.settings, refresh_rotate_on_use=False), clock)
    pair = tokens.issue_pair(account)

    first = tokens.redeem_refresh_token(pair.refresh_token)
    second = tokens.redeem_refresh_token(pair.refresh_token)
    assert first.refresh_token == second.refresh_token == pair.refresh_token
    assert first.refresh_expires_at == pair.refresh_expires_at


def test_expired_refresh_token_is_rejected(container, clock, make_account):
    account = make_account()
    pair = container.tokens.issue_pair(account)
    clock.advance(days=7, seconds=1)
    with pytest.raises(RefreshInvalid):
        container.tokens.redeem_refresh_token(pair.refresh_token)


@pytest.mark.parametrize("value", ["", "unknown-token"])
def test_unknown_refresh_token_is_rejected(container, value):
    with pytest.raises(RefreshInvalid):
        container.tokens.redeem_refresh_token(value)


def test_concurrent_redemptions_of_one_token_yield_one_winner(container, make_account):
    account = make_account()
    pair = container.tokens.issue_pair(account)
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def redeem():
        barrier.wait()
        try:
            container.tokens.redeem_refresh_token(pair.refresh_token)
            result = "ok"
        except RefreshInvalid:
            result = "rejected"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=redeem) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["ok", "rejected"]
