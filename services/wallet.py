"""
Wallet ledger.

One non-negative scalar balance per buyer. Every mutation goes through
this service, holds the buyer's lock for the whole read-check-write and
appends a LedgerEntry, so concurrent debits can never both pass the
sufficiency check against a stale balance.

Usage:
    ledger = WalletLedger(stores.buyers, stores.ledger)
    ledger.credit(buyer_id, 500, reference="PSK-123")

    result = ledger.debit(buyer_id, 300, reference=order_number)
    if not result.ok:
        raise result.error
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.exceptions import (
    BuyerNotFoundError,
    CredentialMarketError,
    InsufficientBalanceError,
    InvalidAmountError,
)
from core.locks import KeyedLocks
from models.buyer import Buyer, LedgerEntry, LedgerKind
from models.listing import utcnow
from services.stores import BuyerStore, LedgerStore
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)


def _money(value: float) -> float:
    return round(float(value), 2)


def _as_amount(value: Any) -> Optional[float]:
    """Parse an amount; None for anything that is not a finite number."""
    if isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) else None


@dataclass(frozen=True)
class DebitResult:
    """Outcome of a debit: the ledger entry written, or why nothing was written."""

    buyer_id: str
    amount: float
    entry: Optional[LedgerEntry] = None
    error: Optional[CredentialMarketError] = None

    @property
    def ok(self) -> bool:
        return self.entry is not None

    @property
    def balance(self) -> Optional[float]:
        """Balance after the debit, when it succeeded."""
        return self.entry.balance_after if self.entry else None

    @classmethod
    def succeeded(cls, entry: LedgerEntry) -> "DebitResult":
        return cls(buyer_id=entry.buyer_id, amount=entry.amount, entry=entry)

    @classmethod
    def failed(cls, buyer_id: str, amount: float, error: CredentialMarketError) -> "DebitResult":
        return cls(buyer_id=buyer_id, amount=amount, error=error)


@dataclass(frozen=True)
class TransactionPage:
    """One page of wallet history, newest first."""

    entries: List[LedgerEntry]
    page: int
    total: int
    total_pages: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactions": [entry.to_dict() for entry in self.entries],
            "totalPages": self.total_pages,
            "currentPage": self.page,
            "total": self.total,
        }


class WalletLedger:
    """
    Credits, debits and refunds against buyers' stored balances.

    Attributes:
        min_funding: Smallest accepted top-up (inclusive)
        max_funding: Largest accepted top-up (inclusive)
    """

    def __init__(
        self,
        buyer_store: BuyerStore,
        ledger_store: LedgerStore,
        locks: Optional[KeyedLocks] = None,
        min_funding: float = 100,
        max_funding: float = 1_000_000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._buyers = buyer_store
        self._ledger = ledger_store
        self._locks = locks or KeyedLocks("wallet")
        self.min_funding = min_funding
        self.max_funding = max_funding
        self._clock = clock

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def balance(self, buyer_id: str) -> float:
        """Current balance; initializes a missing balance to zero."""
        with self._locks.hold(buyer_id):
            return self._load(buyer_id).wallet_balance

    def credit(
        self,
        buyer_id: str,
        amount: Any,
        reference: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> float:
        """
        Top up a wallet.

        Args:
            buyer_id: Wallet owner
            amount: Positive number within [min_funding, max_funding]
            reference: External payment reference for the top-up
            payment_method: Rail the top-up was paid through (logged only)

        Returns:
            New balance

        Raises:
            InvalidAmountError: Amount missing, not positive or out of bounds
            BuyerNotFoundError: Unknown buyer
        """
        value = self._validate_funding(amount)

        with self._locks.hold(buyer_id):
            buyer = self._load(buyer_id)
            entry = self._apply(buyer, LedgerKind.CREDIT, value, reference or "")

        logger.info(
            f"Wallet credit: buyer {buyer_id} +{value:.2f} via {payment_method or 'unknown'}, "
            f"balance {entry.balance_after:.2f}"
        )
        return entry.balance_after

    def debit(self, buyer_id: str, amount: float, reference: str = "") -> DebitResult:
        """
        Spend from a wallet. Check and write happen under one lock.

        Returns:
            DebitResult; failures are InsufficientBalanceError,
            InvalidAmountError (amount not a positive number) or
            BuyerNotFoundError
        """
        value = _as_amount(amount)
        if value is None or _money(value) <= 0:
            return DebitResult.failed(
                buyer_id,
                0.0,
                InvalidAmountError(
                    amount, 0, self.max_funding, reason="Invalid debit amount"
                ),
            )
        value = _money(value)

        with self._locks.hold(buyer_id):
            try:
                buyer = self._load(buyer_id)
            except BuyerNotFoundError as e:
                return DebitResult.failed(buyer_id, value, e)

            if buyer.wallet_balance < value:
                logger.info(
                    f"Wallet debit refused: buyer {buyer_id} has "
                    f"{buyer.wallet_balance:.2f}, needs {value:.2f}"
                )
                return DebitResult.failed(
                    buyer_id, value, InsufficientBalanceError(buyer.wallet_balance, value)
                )

            entry = self._apply(buyer, LedgerKind.DEBIT, value, reference)

        logger.info(
            f"Wallet debit: buyer {buyer_id} -{value:.2f} for {reference or 'n/a'}, "
            f"balance {entry.balance_after:.2f}"
        )
        return DebitResult.succeeded(entry)

    def refund(self, buyer_id: str, amount: float, reference: str = "") -> float:
        """
        Return a debit that did not produce an order.

        Compensation only: funding bounds do not apply.

        Returns:
            New balance
        """
        value = _as_amount(amount)
        if value is None or value < 0:
            raise InvalidAmountError(amount, 0, self.max_funding, reason="Invalid refund amount")

        with self._locks.hold(buyer_id):
            buyer = self._load(buyer_id)
            entry = self._apply(buyer, LedgerKind.REFUND, _money(value), reference)

        logger.warning(
            f"Wallet refund: buyer {buyer_id} +{entry.amount:.2f} for {reference or 'n/a'}, "
            f"balance {entry.balance_after:.2f}"
        )
        return entry.balance_after

    def transactions(self, buyer_id: str, page: int = 1, limit: int = 20) -> TransactionPage:
        """Paged wallet history for one buyer, newest first."""
        page = max(1, int(page))
        limit = max(1, int(limit))

        entries = self._ledger.for_buyer(buyer_id)
        total = len(entries)
        start = (page - 1) * limit

        return TransactionPage(
            entries=entries[start:start + limit],
            page=page,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        )

    # =========================================================================
    # INTERNAL
    # =========================================================================

    def _validate_funding(self, amount: Any) -> float:
        value = _as_amount(amount)
        if value is None or value <= 0:
            raise InvalidAmountError(
                amount, self.min_funding, self.max_funding, reason="Invalid funding amount"
            )
        if value < self.min_funding:
            raise InvalidAmountError(
                amount,
                self.min_funding,
                self.max_funding,
                reason=f"Minimum funding amount is {self.min_funding:,.0f}",
            )
        if value > self.max_funding:
            raise InvalidAmountError(
                amount,
                self.min_funding,
                self.max_funding,
                reason=f"Maximum funding amount is {self.max_funding:,.0f}",
            )
        return _money(value)

    def _load(self, buyer_id: str) -> Buyer:
        """Load a buyer, persisting a zero balance on first wallet access. Caller holds the lock."""
        buyer = self._buyers.find(buyer_id)
        if buyer is None:
            raise BuyerNotFoundError(buyer_id)

        if buyer.wallet_balance is None:
            buyer.wallet_balance = 0.0
            self._buyers.save(buyer)

        return buyer

    def _apply(self, buyer: Buyer, kind: LedgerKind, amount: float, reference: str) -> LedgerEntry:
        """Write the new balance and its ledger entry. Caller holds the lock."""
        if kind is LedgerKind.DEBIT:
            new_balance = _money(buyer.wallet_balance - amount)
        else:
            new_balance = _money(buyer.wallet_balance + amount)

        buyer.wallet_balance = new_balance
        self._buyers.save(buyer)

        entry = LedgerEntry(
            buyer_id=buyer.id,
            kind=kind,
            amount=amount,
            balance_after=new_balance,
            reference=reference,
            created_at=self._clock(),
        )
        self._ledger.append(entry)
        return entry
