"""Brute-force protection over the login attempt log.

The window slides: every check recounts failures from timestamps, so there is
no bucket to reset and no background job.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from smokefree.core.clock import Clock, SystemClock
from smokefree.core.logging import get_logger
from smokefree.repositories.login_attempt_repository import LoginAttemptRepository

logger = get_logger(__name__)


class LoginGuard:
    def __init__(
        self,
        attempts: LoginAttemptRepository,
        *,
        threshold: int = 5,
        window_seconds: int = 1800,
        clock: Clock | None = None,
    ) -> None:
        self.attempts = attempts
        self.threshold = threshold
        self.window = timedelta(seconds=window_seconds)
        self.clock = clock or SystemClock()

    def too_many_failures(self, identifier: str, ip_address: str) -> bool:
        since = self.clock.now() - self.window
        failures = self.attempts.count_failures(identifier, ip_address or "unknown", since)
        if failures >= self.threshold:
            logger.warning("login_locked_out", identifier=identifier, ip_address=ip_address, failures=failures)
            return True
        return False

    def record_attempt(
        self,
        identifier: str,
        ip_address: str,
        success: bool,
        *,
        session: Optional[Session] = None,
    ) -> None:
        self.attempts.record(identifier, ip_address, success, self.clock.now(), session=session)
