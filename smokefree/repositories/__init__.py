"""
Persistence adapters.

Each repository owns the queries of one component (credential store, login
attempt log, subscription ledger) so invariants such as "one refresh token per
account" live in exactly one place. Services depend on these classes rather
than issuing SQL themselves.
"""

from .account_repository import AccountRepository
from .login_attempt_repository import LoginAttemptRepository
from .membership_repository import MembershipRepository

__all__ = ["AccountRepository", "LoginAttemptRepository", "MembershipRepository"]
