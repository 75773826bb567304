"""Background reconciliation of membership expiry against the clock.

The sweep expires ``active`` memberships whose ``end_at`` has passed and
demotes members that no longer hold an entitlement. Each account is handled
in its own transaction, so a failure on one account leaves every other
account's committed changes in place.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from smokefree.core.clock import Clock, SystemClock
from smokefree.core.logging import get_logger
from smokefree.db.session import Database
from smokefree.domain.roles import Role, demote_on_lapse
from smokefree.repositories.account_repository import AccountRepository
from smokefree.repositories.membership_repository import MembershipRepository
from smokefree.services.notifier import Notifier

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 24 * 60 * 60
DEFAULT_STARTUP_DELAY_SECONDS = 5
MAX_BACKOFF_SECONDS = 3600


@dataclass
class ReconcileReport:
    started_at: datetime
    expired_memberships: list[int] = field(default_factory=list)
    demoted_accounts: list[int] = field(default_factory=list)
    failed_accounts: list[int] = field(default_factory=list)


class ExpirationReconciler:
    def __init__(
        self,
        db: Database,
        accounts: AccountRepository,
        memberships: MembershipRepository,
        notifier: Notifier,
        clock: Clock | None = None,
    ) -> None:
        self.db = db
        self.accounts = accounts
        self.memberships = memberships
        self.notifier = notifier
        self.clock = clock or SystemClock()

    def _reconcile_account(self, account_id: int, now: datetime) -> tuple[list[int], bool]:
        def work(session: Session) -> tuple[list[int], bool]:
            account = self.accounts.lock(session, account_id)
            if account is None:
                return [], False
            expired = self.memberships.expire_lapsed(session, account_id, now)
            demoted = False
            if not self.memberships.has_entitlement(session, account_id, now):
                current = Role.parse(account.role)
                target = demote_on_lapse(current)
                if target is not current:
                    account.role = target.value
                    demoted = True
            return expired, demoted

        return self.db.run(work)

    def sweep(self) -> ReconcileReport:
        now = self.clock.now()
        report = ReconcileReport(started_at=now)
        logger.info("reconciler_sweep_started", now=now.isoformat())

        # lapsed memberships first, then members left without any entitlement
        candidates = dict.fromkeys(self.memberships.lapsed_account_ids(now))
        candidates.update(dict.fromkeys(self.memberships.unentitled_member_ids(now)))
        for account_id in candidates:
            try:
                expired, demoted = self._reconcile_account(account_id, now)
            except Exception as exc:
                report.failed_accounts.append(account_id)
                logger.error(
                    "reconciler_account_failed",
                    account_id=account_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue

            report.expired_memberships.extend(expired)
            if expired:
                logger.info("membership_expired", account_id=account_id, membership_ids=expired)
                self.notifier.notify(
                    account_id,
                    "Subscription Expired",
                    "Your subscription has expired. Renew to keep your member features.",
                    "subscription",
                )
            if demoted:
                report.demoted_accounts.append(account_id)
                logger.info("member_demoted", account_id=account_id)

        logger.info(
            "reconciler_sweep_finished",
            expired=len(report.expired_memberships),
            demoted=len(report.demoted_accounts),
            failed=len(report.failed_accounts),
        )
        return report


class ReconcilerWorker:
    """Runs ``ExpirationReconciler.sweep`` on a fixed interval.

    The sweep is blocking database work, so every run is pushed to a thread
    and the event loop keeps serving requests meanwhile.
    """

    def __init__(
        self,
        reconciler: ExpirationReconciler,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        startup_delay_seconds: float = DEFAULT_STARTUP_DELAY_SECONDS,
    ) -> None:
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[ReconcileReport] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("reconciler_worker_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "reconciler_worker_started",
            interval_seconds=self.interval_seconds,
            startup_delay_seconds=self.startup_delay_seconds,
        )

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("reconciler_worker_stopped")

    async def run_once(self) -> ReconcileReport:
        self.last_report = await asyncio.to_thread(self.reconciler.sweep)
        return self.last_report

    async def _run_loop(self) -> None:
        if self.startup_delay_seconds > 0:
            await asyncio.sleep(self.startup_delay_seconds)
        consecutive_errors = 0
        while self._running:
            try:
                await self.run_once()
                consecutive_errors = 0
            except Exception as exc:
                consecutive_errors += 1
                logger.error(
                    "reconciler_loop_error",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    consecutive_errors=consecutive_errors,
                )
                # retry sooner than the regular interval, backing off on repeats
                backoff = min(MAX_BACKOFF_SECONDS, self.interval_seconds, 60 * (2 ** (consecutive_errors - 1)))
                await asyncio.sleep(backoff)
                continue
            await asyncio.sleep(self.interval_seconds)
