"""Credential store: account rows, hashed secrets and token material."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from smokefree.core.clock import as_utc
from smokefree.core.errors import IdentifierTaken, ValidationError
from smokefree.db.models import Account, LoginHistory
from smokefree.db.session import Database
from smokefree.domain.identifiers import classify_identifier
from smokefree.domain.roles import Role

T = TypeVar("T")


class AccountRepository:
    """Queries over the accounts table.

    Mutating methods take an optional ``session`` so callers can compose them
    inside one transaction; without it each call commits on its own.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def _write(self, session: Optional[Session], work: Callable[[Session], T]) -> T:
        if session is not None:
            return work(session)
        return self.db.run(work)

    # -------------------------- reads --------------------------
    def get_account(self, account_id: int) -> Optional[Account]:
        with self.db.session() as session:
            return session.get(Account, account_id)

    def find_by_identifier(self, identifier: str) -> Optional[Account]:
        parsed = classify_identifier(identifier)
        if not parsed:
            return None
        kind, value = parsed
        column = Account.email if kind == "email" else Account.phone_number
        with self.db.session() as session:
            return session.execute(select(Account).where(column == value)).scalar_one_or_none()

    def find_by_activation_token(self, token_hash: str) -> Optional[Account]:
        with self.db.session() as session:
            stmt = select(Account).where(Account.activation_token_hash == token_hash)
            return session.execute(stmt).scalar_one_or_none()

    def find_by_refresh_token(self, token_hash: str) -> Optional[Account]:
        with self.db.session() as session:
            stmt = select(Account).where(Account.refresh_token_hash == token_hash)
            return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def lock(session: Session, account_id: int) -> Optional[Account]:
        """Load the account row for a read-modify-write (row lock where supported)."""
        stmt = select(Account).where(Account.id == account_id).with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    # -------------------------- creation --------------------------
    def create_account(
        self,
        *,
        email: Optional[str],
        phone_number: Optional[str],
        password_hash: str,
        first_name: str = "",
        last_name: str = "",
        role: Role = Role.GUEST,
        is_active: bool = False,
        activation_token_hash: Optional[str] = None,
        activation_expires_at: Optional[datetime] = None,
        now: datetime,
    ) -> Account:
        if not email and not phone_number:
            raise ValidationError("Email or phone number is required")

        def work(session: Session) -> Account:
            clauses = []
            if email:
                clauses.append(Account.email == email)
            if phone_number:
                clauses.append(Account.phone_number == phone_number)
            existing = session.execute(select(Account.id).where(or_(*clauses)).limit(1)).first()
            if existing:
                raise IdentifierTaken()
            account = Account(
                email=email,
                phone_number=phone_number,
                password_hash=password_hash,
                first_name=first_name or "",
                last_name=last_name or "",
                role=role.value,
                is_active=is_active,
                activation_token_hash=activation_token_hash,
                activation_expires_at=activation_expires_at,
                refresh_token_remember=False,
                created_at=now,
                updated_at=now,
            )
            session.add(account)
            try:
                session.flush()
            except IntegrityError as exc:
                # lost the race against a concurrent registration
                raise IdentifierTaken() from exc
            return account

        return self.db.run(work)

    # -------------------------- refresh tokens --------------------------
    def store_refresh_token(
        self,
        account_id: int,
        token_hash: str,
        expires_at: datetime,
        *,
        remember: bool,
        session: Optional[Session] = None,
    ) -> None:
        """Overwrite whatever refresh token the account had."""

        def work(s: Session) -> None:
            s.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(
                    refresh_token_hash=token_hash,
                    refresh_token_expires_at=expires_at,
                    refresh_token_remember=remember,
                )
            )

        self._write(session, work)

    def swap_refresh_token(
        self,
        old_hash: str,
        new_hash: Optional[str],
        new_expires_at: Optional[datetime],
        *,
        now: datetime,
    ) -> Optional[Account]:
        """Compare-and-swap the stored refresh token.

        Returns the account when ``old_hash`` was the current, unexpired token
        and has been replaced by ``new_hash`` (``None`` keeps it in place);
        returns None otherwise.
        """

        def work(session: Session) -> Optional[Account]:
            stmt = select(Account).where(Account.refresh_token_hash == old_hash).with_for_update()
            account = session.execute(stmt).scalar_one_or_none()
            if not account:
                return None
            expires = as_utc(account.refresh_token_expires_at)
            if not expires or expires <= now:
                return None
            if new_hash is None:
                return account
            result = session.execute(
                update(Account)
                .where(Account.id == account.id, Account.refresh_token_hash == old_hash)
                .values(refresh_token_hash=new_hash, refresh_token_expires_at=new_expires_at)
            )
            if result.rowcount != 1:
                return None
            account.refresh_token_hash = new_hash
            account.refresh_token_expires_at = new_expires_at
            return account

        return self.db.run(work)

    def clear_refresh_token(self, account_id: int, *, session: Optional[Session] = None) -> None:
        def work(s: Session) -> None:
            s.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(refresh_token_hash=None, refresh_token_expires_at=None, refresh_token_remember=False)
            )

        self._write(session, work)

    # -------------------------- activation --------------------------
    def set_activation_token(self, account_id: int, token_hash: str, expires_at: datetime) -> None:
        def work(session: Session) -> None:
            session.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(activation_token_hash=token_hash, activation_expires_at=expires_at)
            )

        self.db.run(work)

    def mark_activated(self, account_id: int, token_hash: str, now: datetime) -> Optional[Account]:
        """Activate only if ``token_hash`` is still the pending token; None otherwise."""

        def work(session: Session) -> Optional[Account]:
            result = session.execute(
                update(Account)
                .where(
                    Account.id == account_id,
                    Account.is_active.is_(False),
                    Account.activation_token_hash == token_hash,
                )
                .values(is_active=True, activation_token_hash=None, activation_expires_at=None, updated_at=now)
            )
            if result.rowcount != 1:
                return None
            return session.get(Account, account_id)

        return self.db.run(work)

    # -------------------------- bookkeeping --------------------------
    def record_login(
        self,
        account_id: int,
        *,
        ip_address: str,
        user_agent: str,
        now: datetime,
        session: Optional[Session] = None,
    ) -> None:
        def work(s: Session) -> None:
            s.add(
                LoginHistory(
                    account_id=account_id,
                    ip_address=ip_address or "unknown",
                    user_agent=(user_agent or "unknown")[:512],
                    status="success",
                    logged_in_at=now,
                )
            )
            s.execute(update(Account).where(Account.id == account_id).values(last_login_at=now))

        self._write(session, work)

    def login_history(self, account_id: int) -> list[LoginHistory]:
        with self.db.session() as session:
            stmt = (
                select(LoginHistory)
                .where(LoginHistory.account_id == account_id)
                .order_by(LoginHistory.logged_in_at.desc())
            )
            return session.execute(stmt).scalars().all()

    def update_password(self, account_id: int, password_hash: str, now: datetime) -> None:
        def work(session: Session) -> None:
            session.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(password_hash=password_hash, updated_at=now)
            )

        self.db.run(work)

    def set_role(self, account_id: int, role: Role, *, session: Optional[Session] = None) -> None:
        def work(s: Session) -> None:
            s.execute(update(Account).where(Account.id == account_id).values(role=role.value))

        self._write(session, work)
