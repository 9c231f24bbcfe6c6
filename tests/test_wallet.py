"""
Unit tests for the wallet ledger.

Tests funding bounds, atomic debits, refunds and wallet history.
"""

import threading
import pytest

from core.exceptions import BuyerNotFoundError, InsufficientBalanceError, InvalidAmountError
from core.locks import KeyedLocks
from models.buyer import Buyer, LedgerKind
from services.stores import BuyerStore, LedgerStore
from services.wallet import WalletLedger


# Fixtures

@pytest.fixture
def buyers():
    """Buyer store with one buyer whose wallet was never touched."""
    store = BuyerStore()
    store.save(Buyer(id="buyer-1", name="Ada", email="ada@example.com"))
    return store


@pytest.fixture
def ledger_store():
    return LedgerStore()


@pytest.fixture
def wallet(buyers, ledger_store):
    """Create a wallet ledger with the reference funding bounds."""
    return WalletLedger(buyers, ledger_store)


# Tests

class TestBalance:
    def test_missing_balance_starts_at_zero(self, wallet, buyers):
        assert wallet.balance("buyer-1") == 0.0
        assert buyers.find("buyer-1").wallet_balance == 0.0

    def test_unknown_buyer(self, wallet):
        with pytest.raises(BuyerNotFoundError):
            wallet.balance("nobody")

    def test_unknown_buyers_leave_no_locks(self, buyers, ledger_store):
        locks = KeyedLocks("wallet")
        wallet = WalletLedger(buyers, ledger_store, locks=locks)

        for i in range(50):
            with pytest.raises(BuyerNotFoundError):
                wallet.balance(f"ghost-{i}")
        wallet.balance("buyer-1")

        assert len(locks) == 0


class TestCredit:
    """Top-ups within the funding bounds."""

    def test_credit_returns_new_balance(self, wallet):
        assert wallet.credit("buyer-1", 500, reference="PSK-1") == 500.0
        assert wallet.credit("buyer-1", "250.5", reference="PSK-2") == 750.5

    @pytest.mark.parametrize("amount", [100, 1_000_000])
    def test_bounds_are_inclusive(self, wallet, amount):
        assert wallet.credit("buyer-1", amount) == float(amount)

    @pytest.mark.parametrize(
        "amount, message",
        [
            (99.99, "Minimum funding amount is 100"),
            (1_000_000.01, "Maximum funding amount is 1,000,000"),
            (0, "Invalid funding amount"),
            (-50, "Invalid funding amount"),
            ("abc", "Invalid funding amount"),
            (None, "Invalid funding amount"),
            (True, "Invalid funding amount"),
            (float("nan"), "Invalid funding amount"),
        ],
    )
    def test_out_of_bounds_is_rejected(self, wallet, amount, message):
        with pytest.raises(InvalidAmountError) as exc_info:
            wallet.credit("buyer-1", amount)

        assert exc_info.value.message == message
        assert wallet.balance("buyer-1") == 0.0

    def test_custom_bounds(self, buyers, ledger_store):
        wallet = WalletLedger(buyers, ledger_store, min_funding=10, max_funding=20)

        assert wallet.credit("buyer-1", 10) == 10.0
        with pytest.raises(InvalidAmountError):
            wallet.credit("buyer-1", 21)


class TestDebit:
    """Spending from the stored balance."""

    def test_debit_to_zero(self, wallet):
        wallet.credit("buyer-1", 500)

        result = wallet.debit("buyer-1", 500, reference="ORD-1")

        assert result.ok
        assert result.balance == 0.0
        assert wallet.balance("buyer-1") == 0.0

    def test_insufficient_balance_writes_nothing(self, wallet, ledger_store):
        wallet.credit("buyer-1", 200)

        result = wallet.debit("buyer-1", 200.01)

        assert not result.ok
        assert isinstance(result.error, InsufficientBalanceError)
        assert result.error.balance == 200.0
        assert result.error.required == 200.01
        assert wallet.balance("buyer-1") == 200.0
        assert len(ledger_store.for_buyer("buyer-1")) == 1

    def test_debit_on_untouched_wallet(self, wallet):
        result = wallet.debit("buyer-1", 1)

        assert isinstance(result.error, InsufficientBalanceError)
        assert result.error.balance == 0.0

    def test_unknown_buyer_is_a_failed_result(self, wallet):
        result = wallet.debit("nobody", 10)

        assert isinstance(result.error, BuyerNotFoundError)

    @pytest.mark.parametrize("amount", [-5, 0, 0.001, "0"])
    def test_non_positive_amount(self, wallet, ledger_store, amount):
        result = wallet.debit("buyer-1", amount)

        assert isinstance(result.error, InvalidAmountError)
        assert ledger_store.for_buyer("buyer-1") == []

    def test_credit_then_debit_restores_balance(self, wallet):
        wallet.credit("buyer-1", 300)

        wallet.credit("buyer-1", 123.45)
        wallet.debit("buyer-1", 123.45)

        assert wallet.balance("buyer-1") == 300.0

    def test_concurrent_debits_never_overdraw(self, wallet):
        wallet.credit("buyer-1", 1000)
        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def spend():
            barrier.wait()
            result = wallet.debit("buyer-1", 300)
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=spend) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert sum(1 for r in results if r.ok) == 3
        assert wallet.balance("buyer-1") == 100.0


class TestRefundAndHistory:
    def test_refund_ignores_funding_bounds(self, wallet):
        wallet.credit("buyer-1", 100)
        wallet.debit("buyer-1", 60)

        assert wallet.refund("buyer-1", 60, reference="ORD-9") == 100.0

    def test_refund_rejects_negative(self, wallet):
        with pytest.raises(InvalidAmountError):
            wallet.refund("buyer-1", -1)

    def test_every_mutation_is_recorded(self, wallet, ledger_store):
        wallet.credit("buyer-1", 500, reference="PSK-1")
        wallet.debit("buyer-1", 200, reference="ORD-1")
        wallet.refund("buyer-1", 200, reference="ORD-1")

        entries = ledger_store.for_buyer("buyer-1")

        assert [e.kind for e in entries] == [LedgerKind.REFUND, LedgerKind.DEBIT, LedgerKind.CREDIT]
        assert [e.balance_after for e in entries] == [500.0, 300.0, 500.0]

    def test_transactions_are_paged(self, wallet):
        for i in range(5):
            wallet.credit("buyer-1", 100, reference=f"PSK-{i}")

        page = wallet.transactions("buyer-1", page=2, limit=2)

        assert page.total == 5
        assert page.total_pages == 3
        assert [e.reference for e in page.entries] == ["PSK-2", "PSK-1"]
        data = page.to_dict()
        assert data["currentPage"] == 2
        assert data["transactions"][0]["kind"] == "credit"

    def test_empty_history(self, wallet):
        page = wallet.transactions("buyer-1")

        assert page.total == 0
        assert page.total_pages == 0
        assert page.entries == []
