"""In-app notifications; delivery failures are logged and swallowed."""
from __future__ import annotations

from typing import Protocol

from smokefree.core.clock import Clock, SystemClock
from smokefree.core.logging import get_logger
from smokefree.repositories.membership_repository import MembershipRepository

logger = get_logger(__name__)


class Notifier(Protocol):
    def notify(self, account_id: int, title: str, message: str, type_: str = "system") -> None: ...


class DatabaseNotifier:
    """Stores a Notification row the front end polls for."""

    def __init__(self, repository: MembershipRepository, clock: Clock | None = None) -> None:
        self.repository = repository
        self.clock = clock or SystemClock()

    def notify(self, account_id: int, title: str, message: str, type_: str = "system") -> None:
        try:
            self.repository.add_notification(account_id, title, message, type_, self.clock.now())
        except Exception as exc:  # fire-and-forget: never fail the caller
            logger.warning("notification_failed", account_id=account_id, title=title, error=str(exc))
