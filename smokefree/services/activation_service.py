"""
Account activation: Unverified -> Active, one way.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

from smokefree.core.clock import Clock, SystemClock, as_utc
from smokefree.core.config import Settings
from smokefree.core.errors import AlreadyActivated, TokenInvalidOrExpired
from smokefree.core.logging import get_logger
from smokefree.core.mailer import send_email as smtp_send_email
from smokefree.core.security import generate_token, token_digest
from smokefree.db.models import Account
from smokefree.repositories.account_repository import AccountRepository
from smokefree.services.notifier import Notifier

logger = get_logger(__name__)

SendEmail = Callable[..., bool]


class ActivationService:
    """Generates/validates activation tokens and flips accounts to active."""

    def __init__(
        self,
        accounts: AccountRepository,
        settings: Settings,
        *,
        notifier: Notifier,
        send_email: SendEmail = smtp_send_email,
        clock: Clock | None = None,
    ) -> None:
        self.accounts = accounts
        self.settings = settings
        self.notifier = notifier
        self.send_email = send_email
        self.clock = clock or SystemClock()

    # -------------------------------------- helpers --------------------------------------
    def new_token(self) -> tuple[str, str, datetime]:
        """Return (plaintext, stored digest, expiry) for a fresh activation token."""
        token = generate_token(32)
        expires_at = self.clock.now() + timedelta(seconds=self.settings.activation_ttl_seconds)
        return token, token_digest(token), expires_at

    def activation_url(self, token: str) -> str:
        return f"{self.settings.public_base_url.rstrip('/')}/activate/{token}"

    def _activation_email_html(self, account: Account, activation_url: str) -> str:
        name = account.first_name or "there"
        return f"""
        <p>Hello {name},</p>
        <p>Thanks for signing up. Confirm your email to start your smoke-free journey:</p>
        <p><a href="{activation_url}" style="background:#4CAF50;color:#fff;padding:12px 24px;border-radius:4px;text-decoration:none;">Activate my account</a></p>
        <p>The link expires in 24 hours. If the button does not work, copy this address into your browser:</p>
        <p><a href="{activation_url}">{activation_url}</a></p>
        """

    def send_activation_email(self, account: Account, token: str) -> bool:
        """Fire-and-forget; a delivery failure never undoes the registration."""
        if not account.email:
            return False
        url = self.activation_url(token)
        try:
            return bool(
                self.send_email(
                    "Activate your account",
                    account.email,
                    self._activation_email_html(account, url),
                    f"Activate your account: {url}",
                )
            )
        except Exception as exc:
            logger.warning("activation_email_failed", account_id=account.id, error=str(exc))
            return False

    # -------------------------------------- operations --------------------------------------
    def activate(self, token: str) -> Account:
        token_value = (token or "").strip()
        if not token_value:
            raise TokenInvalidOrExpired()
        digest = token_digest(token_value)
        account = self.accounts.find_by_activation_token(digest)
        now = self.clock.now()
        if not account:
            raise TokenInvalidOrExpired()
        expires_at = as_utc(account.activation_expires_at)
        if expires_at is not None and expires_at <= now:
            raise TokenInvalidOrExpired()
        if account.is_active:
            return account

        activated = self.accounts.mark_activated(account.id, digest, now)
        if not activated:
            # a concurrent call with the same token got there first
            current = self.accounts.get_account(account.id)
            if current and current.is_active:
                return current
            raise TokenInvalidOrExpired()
        logger.info("account_activated", account_id=account.id)
        self.notifier.notify(
            account.id,
            "Welcome aboard",
            "Your account is active. Set up your quit plan to get started.",
            "account",
        )
        return activated

    def regenerate_activation_token(self, identifier: str) -> bool:
        """Issue a fresh token (overwriting the old one) and resend the email.

        Unknown identifiers return False without revealing anything.
        """
        account = self.accounts.find_by_identifier(identifier)
        if not account:
            return False
        if account.is_active:
            raise AlreadyActivated()
        token, digest, expires_at = self.new_token()
        self.accounts.set_activation_token(account.id, digest, expires_at)
        self.send_activation_email(account, token)
        return True
