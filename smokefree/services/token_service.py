"""Access/refresh token issuance, verification and rotation."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from smokefree.core.clock import Clock, SystemClock, as_utc
from smokefree.core.config import Settings
from smokefree.core.errors import RefreshInvalid, TokenExpired, TokenInvalid
from smokefree.core.logging import get_logger
from smokefree.core.security import generate_token, token_digest
from smokefree.db.models import Account
from smokefree.domain.roles import Role
from smokefree.repositories.account_repository import AccountRepository

ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccessClaims:
    account_id: int
    role: Role
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime
    token_type: str = "bearer"


@dataclass(frozen=True)
class RefreshResult:
    account: Account
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime


class TokenService:
    """Mints short-lived signed access tokens and long-lived opaque refresh tokens.

    Access tokens are self-contained (id, role, exp) and never stored. Each
    account holds at most one refresh token; issuing a new one overwrites the
    stored digest, which is the single place that invariant is enforced.
    """

    def __init__(self, accounts: AccountRepository, settings: Settings, clock: Clock | None = None) -> None:
        self.accounts = accounts
        self.settings = settings
        self.clock = clock or SystemClock()

    # -------------------------------------- TTLs --------------------------------------
    def _access_ttl(self, remember_me: bool) -> timedelta:
        seconds = (
            self.settings.access_token_remember_ttl_seconds if remember_me else self.settings.access_token_ttl_seconds
        )
        return timedelta(seconds=max(60, seconds))

    def _refresh_ttl(self, remember_me: bool) -> timedelta:
        days = self.settings.refresh_token_remember_ttl_days if remember_me else self.settings.refresh_token_ttl_days
        return timedelta(days=max(1, days))

    # -------------------------------------- access tokens --------------------------------------
    def issue_access_token(self, account: Account, remember_me: bool = False) -> tuple[str, datetime]:
        now = self.clock.now()
        expires_at = now + self._access_ttl(remember_me)
        payload = {
            "sub": str(account.id),
            "role": Role.parse(account.role).value,
            "type": ACCESS_TOKEN_TYPE,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(payload, self.settings.jwt_secret, algorithm=ALGORITHM), expires_at

    def _decode(self, token: str) -> AccessClaims:
        try:
            payload = jwt.decode(
                token or "",
                self.settings.jwt_secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as exc:
            raise TokenInvalid() from exc
        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise TokenInvalid()
        try:
            account_id = int(payload["sub"])
            role = Role.parse(payload.get("role"))
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalid() from exc
        return AccessClaims(account_id=account_id, role=role, expires_at=expires_at)

    def verify_access_token(self, token: str) -> AccessClaims:
        """Raise TokenInvalid on a bad signature/shape and TokenExpired once exp passed."""
        claims = self._decode(token)
        if claims.expires_at <= self.clock.now():
            raise TokenExpired()
        return claims

    def peek_access_token(self, token: Optional[str]) -> Optional[AccessClaims]:
        """Signature-checked claims regardless of expiry, or None."""
        if not token:
            return None
        try:
            return self._decode(token)
        except TokenInvalid:
            return None

    # -------------------------------------- refresh tokens --------------------------------------
    def issue_refresh_token(
        self,
        account_id: int,
        remember_me: bool = False,
        *,
        session: Optional[Session] = None,
    ) -> tuple[str, datetime]:
        token = generate_token(40)
        expires_at = self.clock.now() + self._refresh_ttl(remember_me)
        self.accounts.store_refresh_token(
            account_id, token_digest(token), expires_at, remember=remember_me, session=session
        )
        return token, expires_at

    def issue_pair(self, account: Account, remember_me: bool = False, *, session: Optional[Session] = None) -> TokenPair:
        access, access_exp = self.issue_access_token(account, remember_me)
        refresh, refresh_exp = self.issue_refresh_token(account.id, remember_me, session=session)
        return TokenPair(
            access_token=access,
            access_expires_at=access_exp,
            refresh_token=refresh,
            refresh_expires_at=refresh_exp,
        )

    def redeem_refresh_token(self, token: str) -> RefreshResult:
        """Exchange a refresh token for a new access token.

        With rotation on (the default) the presented token is replaced by a
        fresh one in a compare-and-swap, so a replayed or concurrently redeemed
        token fails with RefreshInvalid.
        """
        if not token:
            raise RefreshInvalid()
        now = self.clock.now()
        old_hash = token_digest(token)
        current = self.accounts.find_by_refresh_token(old_hash)
        if not current:
            raise RefreshInvalid()
        remember = bool(current.refresh_token_remember)

        if self.settings.refresh_rotate_on_use:
            new_token = generate_token(40)
            new_expires = now + self._refresh_ttl(remember)
            account = self.accounts.swap_refresh_token(old_hash, token_digest(new_token), new_expires, now=now)
        else:
            account = self.accounts.swap_refresh_token(old_hash, None, None, now=now)
            new_token = token
            new_expires = as_utc(account.refresh_token_expires_at) if account else None
        if not account:
            logger.info("refresh_rejected", account_id=current.id)
            raise RefreshInvalid()

        access, access_exp = self.issue_access_token(account, remember)
        return RefreshResult(
            account=account,
            access_token=access,
            access_expires_at=access_exp,
            refresh_token=new_token,
            refresh_expires_at=new_expires,
        )

    def revoke_refresh_token(self, account_id: int, *, session: Optional[Session] = None) -> None:
        self.accounts.clear_refresh_token(account_id, session=session)
