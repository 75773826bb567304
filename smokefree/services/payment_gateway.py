"""Payment collaborator used by the subscription ledger."""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from smokefree.core.clock import Clock, SystemClock
from smokefree.core.errors import PaymentFailed


@dataclass(frozen=True)
class ChargeResult:
    transaction_id: str


class PaymentGateway(Protocol):
    def charge(self, account_id: int, amount: Decimal, method: str, *, purpose: str = "subscription") -> ChargeResult:
        """Collect ``amount``; raise PaymentFailed to abort the surrounding transaction."""
        ...


class MockPaymentGateway:
    """Always succeeds, handing out txn_<ms>_<rand> style ids."""

    SUPPORTED_METHODS = frozenset({"credit_card", "debit_card", "bank_transfer", "e_wallet", "momo", "free"})

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or SystemClock()

    def charge(self, account_id: int, amount: Decimal, method: str, *, purpose: str = "subscription") -> ChargeResult:
        if method not in self.SUPPORTED_METHODS:
            raise PaymentFailed(f"Unsupported payment method: {method}")
        if amount < 0:
            raise PaymentFailed("Amount must not be negative")
        prefix = "renewal" if purpose == "renewal" else "txn"
        millis = int(self.clock.now().timestamp() * 1000)
        return ChargeResult(transaction_id=f"{prefix}_{millis}_{secrets.randbelow(1_000_000)}")
