"""
Authentication and identity related use cases.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from smokefree.core.clock import Clock, SystemClock
from smokefree.core.config import Settings
from smokefree.core.errors import (
    AccountNotActivated,
    AccountNotFound,
    InvalidCredentials,
    RateLimited,
    ValidationError,
)
from smokefree.core.logging import get_logger
from smokefree.core.security import SecretHasher, token_digest
from smokefree.db.models import Account
from smokefree.db.session import Database
from smokefree.domain.identifiers import classify_identifier, normalize_email, normalize_phone
from smokefree.domain.roles import Role
from smokefree.repositories.account_repository import AccountRepository
from smokefree.services.activation_service import ActivationService
from smokefree.services.login_guard import LoginGuard
from smokefree.services.token_service import AccessClaims, RefreshResult, TokenPair, TokenService

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 256


@dataclass
class RegisterResult:
    account: Account
    pending_activation: bool
    tokens: Optional[TokenPair] = None
    email_sent: bool = False
    activation_token: Optional[str] = None


@dataclass
class LoginSuccess:
    account: Account
    tokens: TokenPair


def _validate_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password too short. Use at least {MIN_PASSWORD_LENGTH} characters")
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValidationError("Password too long")


@dataclass
class AuthService:
    """Handles registration, login, refresh, logout and password changes."""

    db: Database
    accounts: AccountRepository
    guard: LoginGuard
    tokens: TokenService
    activation: ActivationService
    settings: Settings
    hasher: SecretHasher
    clock: Clock = None

    def __post_init__(self):
        if self.clock is None:
            self.clock = SystemClock()

    # -------------------------------------- registration --------------------------------------
    def register(
        self,
        *,
        password: str,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        first_name: str = "",
        last_name: str = "",
        require_activation: Optional[bool] = None,
    ) -> RegisterResult:
        email_value = normalize_email(email) if (email or "").strip() else None
        if (email or "").strip() and not email_value:
            raise ValidationError("Invalid email address")
        phone_value = normalize_phone(phone_number) if (phone_number or "").strip() else None
        if (phone_number or "").strip() and not phone_value:
            raise ValidationError("Invalid phone number")
        if not email_value and not phone_value:
            raise ValidationError("Email or phone number is required")
        _validate_password(password)

        if require_activation is None:
            require_activation = self.settings.require_activation
        # phone-only registrations have nothing to confirm
        needs_activation = bool(email_value) and require_activation

        token = digest = expires_at = None
        if needs_activation:
            token, digest, expires_at = self.activation.new_token()

        account = self.accounts.create_account(
            email=email_value,
            phone_number=phone_value,
            password_hash=self.hasher.hash(password),
            first_name=(first_name or "").strip(),
            last_name=(last_name or "").strip(),
            role=Role.GUEST,
            is_active=not needs_activation,
            activation_token_hash=digest,
            activation_expires_at=expires_at,
            now=self.clock.now(),
        )
        logger.info("account_registered", account_id=account.id, pending_activation=needs_activation)

        if needs_activation:
            email_sent = self.activation.send_activation_email(account, token)
            return RegisterResult(
                account=account,
                pending_activation=True,
                email_sent=email_sent,
                activation_token=token,
            )

        pair = self.db.run(lambda session: self.tokens.issue_pair(account, session=session))
        return RegisterResult(account=account, pending_activation=False, tokens=pair)

    def activate(self, token: str) -> Account:
        return self.activation.activate(token)

    def resend_activation(self, identifier: str) -> bool:
        return self.activation.regenerate_activation_token(identifier)

    # -------------------------------------- login --------------------------------------
    def _fail_login(self, key: str, ip_address: str) -> InvalidCredentials:
        self.guard.record_attempt(key, ip_address, False)
        logger.info("login_failed", identifier=key, ip_address=ip_address)
        return InvalidCredentials()

    def login(
        self,
        identifier: str,
        password: str,
        *,
        remember_me: bool = False,
        ip_address: str = "unknown",
        user_agent: str = "unknown",
    ) -> LoginSuccess:
        parsed = classify_identifier(identifier)
        key = parsed[1] if parsed else (identifier or "").strip().lower()
        ip = (ip_address or "").strip() or "unknown"
        if not key:
            raise InvalidCredentials()

        if self.guard.too_many_failures(key, ip):
            raise RateLimited()

        account = self.accounts.find_by_identifier(key) if parsed else None
        if account is None:
            self.hasher.burn(password)
            raise self._fail_login(key, ip)
        if not self.hasher.verify(password, account.password_hash):
            raise self._fail_login(key, ip)

        if not account.is_active:
            self.guard.record_attempt(key, ip, True)
            raise AccountNotActivated()

        if self.hasher.needs_rehash(account.password_hash):
            self.accounts.update_password(account.id, self.hasher.hash(password), self.clock.now())

        def work(session) -> TokenPair:
            pair = self.tokens.issue_pair(account, remember_me, session=session)
            self.accounts.record_login(
                account.id, ip_address=ip, user_agent=user_agent, now=self.clock.now(), session=session
            )
            # recorded in the same transaction, so a timed-out login never logs a success
            self.guard.record_attempt(key, ip, True, session=session)
            return pair

        pair = self.db.run(work)
        logger.info("login_succeeded", account_id=account.id, remember_me=remember_me)
        return LoginSuccess(account=account, tokens=pair)

    # -------------------------------------- tokens --------------------------------------
    def refresh(self, refresh_token: str) -> RefreshResult:
        return self.tokens.redeem_refresh_token(refresh_token)

    def authenticate(self, access_token: str) -> AccessClaims:
        return self.tokens.verify_access_token(access_token)

    def current_account(self, access_token: str) -> Account:
        claims = self.authenticate(access_token)
        account = self.accounts.get_account(claims.account_id)
        if not account:
            raise AccountNotFound()
        return account

    def logout(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None) -> None:
        """Make sure no valid refresh token remains; idempotent, never raises on bad tokens."""
        claims = self.tokens.peek_access_token(access_token)
        if claims:
            self.tokens.revoke_refresh_token(claims.account_id)
            logger.info("logout", account_id=claims.account_id)
            return
        if refresh_token:
            account = self.accounts.find_by_refresh_token(token_digest(refresh_token))
            if account:
                self.tokens.revoke_refresh_token(account.id)
                logger.info("logout", account_id=account.id)

    # -------------------------------------- account maintenance --------------------------------------
    def change_password(self, account_id: int, current_password: str, new_password: str) -> None:
        account = self.accounts.get_account(account_id)
        if not account or not self.hasher.verify(current_password, account.password_hash):
            raise InvalidCredentials()
        _validate_password(new_password)
        self.accounts.update_password(account_id, self.hasher.hash(new_password), self.clock.now())
        self.tokens.revoke_refresh_token(account_id)
        logger.info("password_changed", account_id=account_id)

    def set_role(self, account_id: int, role: str | Role) -> Account:
        """Administrative role assignment (the only way to grant coach/admin)."""
        try:
            target = Role.parse(role)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if not self.accounts.get_account(account_id):
            raise AccountNotFound()
        self.accounts.set_role(account_id, target)
        logger.info("role_changed", account_id=account_id, role=target.value)
        return self.accounts.get_account(account_id)
