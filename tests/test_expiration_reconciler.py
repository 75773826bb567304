from __future__ import annotations

import asyncio
from datetime import timedelta

from smokefree.core.errors import StorageError
from smokefree.domain.roles import Role
from smokefree.services.expiration_reconciler import ReconcilerWorker


def _statuses(container, account_id):
    return [m.status for m in container.memberships.memberships_for(account_id)]


def _role(container, account_id):
    return container.accounts.get_account(account_id).role


def test_sweep_expires_lapsed_membership_and_demotes(container, clock, plans, notifier, make_account):
    account = make_account()
    container.subscriptions.subscribe(account.id, plans[30].id)
    clock.advance(days=31)

    report = container.reconciler.sweep()

    assert _statuses(container, account.id) == ["expired"]
    assert _role(container, account.id) == "guest"
    assert report.demoted_accounts == [account.id]
    assert len(report.expired_memberships) == 1
    assert notifier.titles_for(account.id)[-1] == "Subscription Expired"


def test_sweep_leaves_current_memberships_alone(container, clock, plans, make_account):
    account = make_account()
    container.subscriptions.subscribe(account.id, plans[30].id)
    clock.advance(days=29)

    report = container.reconciler.sweep()
    assert report.expired_memberships == []
    assert _statuses(container, account.id) == ["active"]
    assert _role(container, account.id) == "member"


def test_no_active_membership_past_its_end_after_sweep(container, clock, plans, make_account):
    accounts = [make_account() for _ in range(4)]
    for account, days in zip(accounts, (30, 90, 30, 180)):
        container.subscriptions.subscribe(account.id, plans[days].id)
    clock.advance(days=40)

    container.reconciler.sweep()
    now = clock.now()
    for account in accounts:
        for membership in container.memberships.memberships_for(account.id):
            if membership.status == "active":
                assert membership.end_at.replace(tzinfo=now.tzinfo) > now


def test_cancelled_member_keeps_role_until_end(container, clock, plans, make_account):
    account = make_account()
    container.subscriptions.subscribe(account.id, plans[30].id)
    container.subscriptions.cancel(account.id)

    clock.advance(days=15)
    container.reconciler.sweep()
    assert _role(container, account.id) == "member"

    clock.advance(days=16)
    report = container.reconciler.sweep()
    assert _role(container, account.id) == "guest"
    assert _statuses(container, account.id) == ["cancelled"]
    assert report.demoted_accounts == [account.id]


def test_staff_roles_are_never_demoted(container, clock, plans, make_account):
    coach = make_account(role=Role.COACH)
    container.subscriptions.subscribe(coach.id, plans[30].id)
    clock.advance(days=31)

    container.reconciler.sweep()
    assert _statuses(container, coach.id) == ["expired"]
    assert _role(container, coach.id) == "coach"


def test_sweep_is_idempotent(container, clock, plans, notifier, make_account):
    account = make_account()
    container.subscriptions.subscribe(account.id, plans[30].id)
    clock.advance(days=31)

    container.reconciler.sweep()
    second = container.reconciler.sweep()
    assert second.expired_memberships == []
    assert second.demoted_accounts == []
    assert notifier.titles_for(account.id).count("Subscription Expired") == 1


def test_sweep_continues_past_a_failing_account(container, clock, plans, make_account, monkeypatch):
    broken, healthy = make_account(), make_account()
    container.subscriptions.subscribe(broken.id, plans[30].id)
    container.subscriptions.subscribe(healthy.id, plans[30].id)
    clock.advance(days=31)

    real_reconcile = container.reconciler._reconcile_account

    def flaky(account_id, now):
        if account_id == broken.id:
            raise StorageError()
        return real_reconcile(account_id, now)

    monkeypatch.setattr(container.reconciler, "_reconcile_account", flaky)
    report = container.reconciler.sweep()

    assert report.failed_accounts == [broken.id]
    assert _statuses(container, healthy.id) == ["expired"]
    assert _role(container, healthy.id) == "guest"
    assert _statuses(container, broken.id) == ["active"]

    monkeypatch.undo()
    container.reconciler.sweep()
    assert _statuses(container, broken.id) == ["expired"]


def test_renewal_after_sweep_restores_membership(container, clock, plans, make_account):
    account = make_account()
    container.subscriptions.subscribe(account.id, plans[30].id)
    clock.advance(days=31)
    container.reconciler.sweep()

    entry = container.subscriptions.subscribe(account.id, plans[30].id)
    assert entry.role is Role.MEMBER
    assert sorted(_statuses(container, account.id)) == ["active", "expired"]


def test_worker_runs_sweep_in_background(container, clock, plans, make_account):
    account = make_account()
    container.subscriptions.subscribe(account.id, plans[30].id)
    clock.advance(days=31)
    worker = ReconcilerWorker(container.reconciler, interval_seconds=3600, startup_delay_seconds=0)

    async def scenario():
        await worker.start()
        for _ in range(200):
            if worker.last_report is not None:
                break
            await asyncio.sleep(0.01)
        await worker.stop()

    asyncio.run(scenario())
    assert worker.last_report is not None
    assert worker.running is False
    assert _role(container, account.id) == "guest"
