"""
Subscription ledger: purchases, renewals and cancellations of membership plans.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from smokefree.core.clock import Clock, SystemClock, as_utc
from smokefree.core.errors import AccountNotFound, NoActiveSubscription, PlanNotFound, StorageError
from smokefree.core.logging import get_logger
from smokefree.db.models import Membership, MembershipPlan
from smokefree.db.session import Database
from smokefree.domain.memberships import MembershipStatus, days_remaining, renewal_end, subscription_end
from smokefree.domain.roles import Role, promote_on_subscription
from smokefree.repositories.account_repository import AccountRepository
from smokefree.repositories.membership_repository import MembershipRepository
from smokefree.services.notifier import Notifier
from smokefree.services.payment_gateway import ChargeResult, PaymentGateway
from smokefree.services.plan_catalog import PlanCatalog

logger = get_logger(__name__)

DEFAULT_PAYMENT_METHOD = "credit_card"


@dataclass(frozen=True)
class MembershipView:
    membership_id: int
    account_id: int
    plan_id: int
    plan_name: str
    start_at: datetime
    end_at: datetime
    status: str
    days_remaining: int


@dataclass(frozen=True)
class MemberStatus:
    account_id: int
    role: Role
    is_member: bool
    has_active_subscription: bool
    subscription: Optional[MembershipView] = None


@dataclass(frozen=True)
class LedgerEntry:
    """Outcome of a subscribe/renew: the membership as committed plus its payment."""

    membership: MembershipView
    transaction_id: Optional[str]
    role: Role


class SubscriptionService:
    def __init__(
        self,
        db: Database,
        accounts: AccountRepository,
        memberships: MembershipRepository,
        catalog: PlanCatalog,
        payments: PaymentGateway,
        notifier: Notifier,
        clock: Clock | None = None,
    ) -> None:
        self.db = db
        self.accounts = accounts
        self.memberships = memberships
        self.catalog = catalog
        self.payments = payments
        self.notifier = notifier
        self.clock = clock or SystemClock()

    # -------------------------------------- helpers --------------------------------------
    def _view(self, membership: Membership, now: datetime, plan_name: Optional[str] = None) -> MembershipView:
        if plan_name is None:
            try:
                plan_name = self.catalog.get(membership.plan_id).name
            except PlanNotFound:
                plan_name = ""
        end_at = as_utc(membership.end_at)
        return MembershipView(
            membership_id=membership.id,
            account_id=membership.account_id,
            plan_id=membership.plan_id,
            plan_name=plan_name,
            start_at=as_utc(membership.start_at),
            end_at=end_at,
            status=membership.status,
            days_remaining=days_remaining(end_at, now),
        )

    def _lock_account(self, session: Session, account_id: int):
        account = self.accounts.lock(session, account_id)
        if not account:
            raise AccountNotFound()
        return account

    def _charge(
        self,
        session: Session,
        account_id: int,
        plan: MembershipPlan,
        method: str,
        purpose: str,
        charges: list[ChargeResult],
    ) -> str:
        """Record the payment row; the gateway is charged at most once per call even if the transaction retries."""
        amount = Decimal(plan.price)
        if not charges:
            charges.append(self.payments.charge(account_id, amount, method, purpose=purpose))
        charge = charges[0]
        self.memberships.add_payment(
            session,
            account_id=account_id,
            amount=amount,
            method=method,
            transaction_id=charge.transaction_id,
        )
        return charge.transaction_id

    def _run_paid(self, work, account_id: int, charges: list[ChargeResult]):
        try:
            return self.db.run(work)
        except StorageError:
            if charges:
                logger.error(
                    "payment_unrecorded",
                    account_id=account_id,
                    transaction_id=charges[0].transaction_id,
                )
            raise

    @staticmethod
    def _promote(account) -> Role:
        role = promote_on_subscription(Role.parse(account.role))
        if role.value != account.role:
            account.role = role.value
        return role

    # -------------------------------------- plans --------------------------------------
    def list_plans(self) -> list[MembershipPlan]:
        return self.catalog.list_plans()

    def get_plan(self, plan_id: int) -> MembershipPlan:
        return self.catalog.get(plan_id)

    # -------------------------------------- mutations --------------------------------------
    def subscribe(self, account_id: int, plan_id: int, payment_method: str = DEFAULT_PAYMENT_METHOD) -> LedgerEntry:
        """Buy ``plan_id``; an existing active membership is replaced, not stacked."""
        plan = self.catalog.get(plan_id)
        method = (payment_method or DEFAULT_PAYMENT_METHOD).strip()

        def work(session: Session) -> LedgerEntry:
            now = self.clock.now()
            account = self._lock_account(session, account_id)
            end_at = subscription_end(now, plan.duration_days)
            membership = self.memberships.current_active(session, account_id)
            if membership is None:
                membership = Membership(
                    account_id=account_id,
                    plan_id=plan.id,
                    start_at=now,
                    end_at=end_at,
                    status=MembershipStatus.ACTIVE.value,
                )
                session.add(membership)
            else:
                membership.plan_id = plan.id
                membership.start_at = now
                membership.end_at = end_at
            transaction_id = self._charge(session, account_id, plan, method, "subscription", charges)
            role = self._promote(account)
            session.flush()
            return LedgerEntry(self._view(membership, now, plan.name), transaction_id, role)

        charges: list[ChargeResult] = []
        entry = self._run_paid(work, account_id, charges)
        logger.info("subscription_created", account_id=account_id, plan_id=plan.id, end_at=entry.membership.end_at)
        self.notifier.notify(
            account_id,
            "Subscription Activated",
            f"Your {plan.name} subscription is active until {entry.membership.end_at:%Y-%m-%d}.",
            "subscription",
        )
        return entry

    def renew(self, account_id: int, payment_method: str = DEFAULT_PAYMENT_METHOD) -> LedgerEntry:
        """Extend the current plan from max(end, now) so early renewals never lose days."""
        method = (payment_method or DEFAULT_PAYMENT_METHOD).strip()

        def work(session: Session) -> tuple[LedgerEntry, str]:
            now = self.clock.now()
            account = self._lock_account(session, account_id)
            membership = self.memberships.current_active(session, account_id)
            if membership is None:
                raise NoActiveSubscription()
            plan = self.catalog.get(membership.plan_id)
            membership.end_at = renewal_end(membership.end_at, now, plan.duration_days)
            transaction_id = self._charge(session, account_id, plan, method, "renewal", charges)
            role = self._promote(account)
            session.flush()
            return LedgerEntry(self._view(membership, now, plan.name), transaction_id, role), plan.name

        charges: list[ChargeResult] = []
        entry, plan_name = self._run_paid(work, account_id, charges)
        logger.info("subscription_renewed", account_id=account_id, end_at=entry.membership.end_at)
        self.notifier.notify(
            account_id,
            "Subscription Renewed",
            f"Your {plan_name} subscription now runs until {entry.membership.end_at:%Y-%m-%d}.",
            "subscription",
        )
        return entry

    def cancel(self, account_id: int) -> MembershipView:
        """Stop the subscription from renewing; access lasts until end_at."""

        def work(session: Session) -> MembershipView:
            now = self.clock.now()
            self._lock_account(session, account_id)
            membership = self.memberships.current_active(session, account_id)
            if membership is None or as_utc(membership.end_at) <= now:
                raise NoActiveSubscription()
            membership.status = MembershipStatus.CANCELLED.value
            session.flush()
            return self._view(membership, now)

        view = self.db.run(work)
        logger.info("subscription_cancelled", account_id=account_id, end_at=view.end_at)
        self.notifier.notify(
            account_id,
            "Subscription Cancelled",
            f"Your subscription was cancelled. You keep access until {view.end_at:%Y-%m-%d}.",
            "subscription",
        )
        return view

    # -------------------------------------- reads --------------------------------------
    def active_subscription(self, account_id: int) -> Optional[MembershipView]:
        now = self.clock.now()
        membership = self.memberships.active_membership(account_id, now)
        return self._view(membership, now) if membership else None

    def has_access(self, account_id: int, at: Optional[datetime] = None) -> bool:
        """True while an active or cancelled membership has not reached its end."""
        return self.memberships.account_has_access(account_id, as_utc(at) if at else self.clock.now())

    def member_status(self, account_id: int) -> MemberStatus:
        account = self.accounts.get_account(account_id)
        if not account:
            raise AccountNotFound()
        role = Role.parse(account.role)
        subscription = self.active_subscription(account_id)
        return MemberStatus(
            account_id=account_id,
            role=role,
            is_member=role is Role.MEMBER,
            has_active_subscription=subscription is not None,
            subscription=subscription,
        )
