"""Plans, memberships, payments and notifications."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, exists, select, update
from sqlalchemy.orm import Session

from smokefree.db.models import Account, Membership, MembershipPlan, Notification, Payment
from smokefree.db.session import Database
from smokefree.domain.memberships import ENTITLED_STATUSES, MembershipStatus
from smokefree.domain.roles import Role


class MembershipRepository:
    """Owns every query over the subscription tables."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # -------------------------- plans --------------------------
    def list_plans(self) -> list[MembershipPlan]:
        with self.db.session() as session:
            stmt = select(MembershipPlan).order_by(MembershipPlan.price.asc(), MembershipPlan.id.asc())
            return session.execute(stmt).scalars().all()

    def get_plan(self, plan_id: int) -> Optional[MembershipPlan]:
        with self.db.session() as session:
            return session.get(MembershipPlan, plan_id)

    def create_plan(
        self,
        name: str,
        duration_days: int,
        price: Decimal | int | float = 0,
        description: str = "",
        features: Optional[list[str]] = None,
    ) -> MembershipPlan:
        def work(session: Session) -> MembershipPlan:
            plan = MembershipPlan(
                name=name,
                description=description or "",
                price=Decimal(str(price)),
                duration_days=int(duration_days),
                features=list(features or []),
            )
            session.add(plan)
            session.flush()
            return plan

        return self.db.run(work)

    def update_plan(self, plan_id: int, **fields) -> Optional[MembershipPlan]:
        allowed = {"name", "description", "price", "duration_days", "features"}
        values = {key: value for key, value in fields.items() if key in allowed and value is not None}
        if "price" in values:
            values["price"] = Decimal(str(values["price"]))

        def work(session: Session) -> Optional[MembershipPlan]:
            plan = session.get(MembershipPlan, plan_id)
            if not plan:
                return None
            for key, value in values.items():
                setattr(plan, key, value)
            return plan

        return self.db.run(work)

    # -------------------------- memberships --------------------------
    @staticmethod
    def current_active(session: Session, account_id: int) -> Optional[Membership]:
        """Latest membership still flagged active, whether or not end_at has passed."""
        stmt = (
            select(Membership)
            .where(Membership.account_id == account_id, Membership.status == MembershipStatus.ACTIVE.value)
            .order_by(Membership.end_at.desc())
            .limit(1)
            .with_for_update()
        )
        return session.execute(stmt).scalars().first()

    @staticmethod
    def current_entitled(session: Session, account_id: int, now: datetime) -> Optional[Membership]:
        """Active membership whose end_at is still in the future."""
        stmt = (
            select(Membership)
            .where(
                Membership.account_id == account_id,
                Membership.status == MembershipStatus.ACTIVE.value,
                Membership.end_at > now,
            )
            .order_by(Membership.end_at.desc())
            .limit(1)
        )
        return session.execute(stmt).scalars().first()

    @staticmethod
    def has_entitlement(session: Session, account_id: int, now: datetime) -> bool:
        stmt = select(
            exists().where(
                Membership.account_id == account_id,
                Membership.status.in_(ENTITLED_STATUSES),
                Membership.end_at > now,
            )
        )
        return bool(session.execute(stmt).scalar())

    def active_membership(self, account_id: int, now: datetime) -> Optional[Membership]:
        with self.db.session() as session:
            return self.current_entitled(session, account_id, now)

    def account_has_access(self, account_id: int, at: datetime) -> bool:
        with self.db.session() as session:
            return self.has_entitlement(session, account_id, at)

    def memberships_for(self, account_id: int) -> list[Membership]:
        with self.db.session() as session:
            stmt = select(Membership).where(Membership.account_id == account_id).order_by(Membership.id.asc())
            return session.execute(stmt).scalars().all()

    @staticmethod
    def add_payment(
        session: Session,
        *,
        account_id: int,
        amount: Decimal,
        method: str,
        transaction_id: str,
        status: str = "completed",
    ) -> Payment:
        payment = Payment(
            account_id=account_id,
            amount=amount,
            method=method,
            status=status,
            transaction_id=transaction_id,
        )
        session.add(payment)
        return payment

    def payments_for(self, account_id: int) -> list[Payment]:
        with self.db.session() as session:
            stmt = select(Payment).where(Payment.account_id == account_id).order_by(Payment.id.asc())
            return session.execute(stmt).scalars().all()

    # -------------------------- reconciler queries --------------------------
    def lapsed_account_ids(self, now: datetime) -> list[int]:
        with self.db.session() as session:
            stmt = (
                select(Membership.account_id)
                .where(Membership.status == MembershipStatus.ACTIVE.value, Membership.end_at <= now)
                .distinct()
                .order_by(Membership.account_id)
            )
            return list(session.execute(stmt).scalars().all())

    @staticmethod
    def expire_lapsed(session: Session, account_id: int, now: datetime) -> list[int]:
        """Flip the account's active-but-ended memberships to expired; returns their ids."""
        stmt = (
            select(Membership.id)
            .where(
                Membership.account_id == account_id,
                Membership.status == MembershipStatus.ACTIVE.value,
                Membership.end_at <= now,
            )
            .with_for_update()
        )
        ids = list(session.execute(stmt).scalars().all())
        if ids:
            session.execute(
                update(Membership)
                .where(Membership.id.in_(ids), Membership.status == MembershipStatus.ACTIVE.value)
                .values(status=MembershipStatus.EXPIRED.value)
            )
        return ids

    def unentitled_member_ids(self, now: datetime) -> list[int]:
        with self.db.session() as session:
            entitled = exists().where(
                and_(
                    Membership.account_id == Account.id,
                    Membership.status.in_(ENTITLED_STATUSES),
                    Membership.end_at > now,
                )
            )
            stmt = select(Account.id).where(Account.role == Role.MEMBER.value, ~entitled).order_by(Account.id)
            return list(session.execute(stmt).scalars().all())

    # -------------------------- notifications --------------------------
    def add_notification(self, account_id: int, title: str, message: str, type_: str, at: datetime) -> None:
        def work(session: Session) -> None:
            session.add(
                Notification(
                    account_id=account_id,
                    title=title,
                    message=message,
                    type=type_,
                    is_read=False,
                    created_at=at,
                )
            )

        self.db.run(work)

    def notifications_for(self, account_id: int) -> list[Notification]:
        with self.db.session() as session:
            stmt = (
                select(Notification)
                .where(Notification.account_id == account_id)
                .order_by(Notification.created_at.asc(), Notification.id.asc())
            )
            return session.execute(stmt).scalars().all()
