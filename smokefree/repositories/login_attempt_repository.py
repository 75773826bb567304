"""Append-only log of authentication attempts."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from smokefree.db.models import LoginAttempt
from smokefree.db.session import Database


class LoginAttemptRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def count_failures(self, identifier: str, ip_address: str, since: datetime) -> int:
        """Failed attempts for the identifier OR the IP at/after ``since``."""
        with self.db.session() as session:
            stmt = (
                select(func.count(LoginAttempt.id))
                .where(or_(LoginAttempt.identifier == identifier, LoginAttempt.ip_address == ip_address))
                .where(LoginAttempt.success.is_(False))
                .where(LoginAttempt.attempted_at > since)
            )
            return int(session.execute(stmt).scalar_one() or 0)

    def record(
        self,
        identifier: str,
        ip_address: str,
        success: bool,
        at: datetime,
        *,
        session: Optional[Session] = None,
    ) -> None:
        entity = LoginAttempt(
            identifier=identifier,
            ip_address=ip_address or "unknown",
            success=success,
            attempted_at=at,
        )
        if session is not None:
            session.add(entity)
            return
        self.db.run(lambda s: s.add(entity))

    def list_for_identifier(self, identifier: str) -> list[LoginAttempt]:
        with self.db.session() as session:
            stmt = (
                select(LoginAttempt)
                .where(LoginAttempt.identifier == identifier)
                .order_by(LoginAttempt.attempted_at.asc())
            )
            return session.execute(stmt).scalars().all()
