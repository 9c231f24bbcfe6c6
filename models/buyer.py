"""
Buyer and wallet ledger models.

Each buyer has a single scalar wallet balance (``None`` until the wallet
is first touched, then never negative). Every balance change is also
recorded as a LedgerEntry so wallet history is an explicit record rather
than a log line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .listing import utcnow


@dataclass
class Buyer:
    """An account that can buy listings (and, with is_admin, verify codes)."""

    id: str
    name: str = ""
    email: str = ""
    is_admin: bool = False
    wallet_balance: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "isAdmin": self.is_admin,
            "walletBalance": self.wallet_balance or 0.0,
        }


class LedgerKind(Enum):
    """Kind of wallet mutation."""

    CREDIT = "credit"
    """Top-up from an external payment."""

    DEBIT = "debit"
    """Spend at checkout."""

    REFUND = "refund"
    """Compensation for a debit whose order could not be completed."""


@dataclass(frozen=True)
class LedgerEntry:
    """
    A single wallet ledger entry.

    Immutable record of one balance change and the balance it left.
    """

    buyer_id: str
    """Wallet owner."""

    kind: LedgerKind
    """Credit, debit or refund."""

    amount: float
    """Absolute amount moved (always positive)."""

    balance_after: float
    """Balance right after this entry was applied."""

    reference: str = ""
    """Payment reference or order number."""

    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buyer": self.buyer_id,
            "kind": self.kind.value,
            "amount": self.amount,
            "balanceAfter": self.balance_after,
            "reference": self.reference,
            "createdAt": self.created_at.isoformat(),
        }
