"""Security helpers (hashing, verification and opaque token material)."""

from __future__ import annotations

import hashlib
import secrets

from argon2 import PasswordHasher, exceptions as argon_exc

_PREFIX = "argon2$"


class SecretHasher:
    """Argon2 hasher with a tunable work factor."""

    def __init__(self, time_cost: int = 3, memory_cost: int = 65536) -> None:
        self._ph = PasswordHasher(time_cost=time_cost, memory_cost=memory_cost)
        # verified against when the account does not exist, so both paths cost the same
        self._dummy = self.hash("not-a-real-password")

    def hash(self, password: str) -> str:
        """Create a modern Argon2 hash with a prefix for detection."""
        return f"{_PREFIX}{self._ph.hash(password)}"

    def verify(self, password: str, stored_hash: str | None) -> bool:
        stored = stored_hash or ""
        if not stored.startswith(_PREFIX):
            self.burn(password)
            return False
        try:
            return self._ph.verify(stored[len(_PREFIX) :], password or "")
        except (argon_exc.VerifyMismatchError, argon_exc.VerificationError, argon_exc.InvalidHashError):
            return False

    def burn(self, password: str) -> None:
        """Spend one verification on the dummy hash."""
        try:
            self._ph.verify(self._dummy[len(_PREFIX) :], password or "")
        except (argon_exc.VerifyMismatchError, argon_exc.VerificationError, argon_exc.InvalidHashError):
            pass

    def needs_rehash(self, stored_hash: str) -> bool:
        if not stored_hash.startswith(_PREFIX):
            return True
        try:
            return self._ph.check_needs_rehash(stored_hash[len(_PREFIX) :])
        except argon_exc.InvalidHashError:
            return True


def generate_token(nbytes: int = 32) -> str:
    """High-entropy opaque token for refresh/activation links."""
    return secrets.token_urlsafe(nbytes)


def token_digest(token: str) -> str:
    """Stored form of an opaque token; the plaintext never reaches the database."""
    return hashlib.sha256((token or "").encode("utf-8")).hexdigest()
