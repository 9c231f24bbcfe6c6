"""
Unit tests for the order factory and order history.

Tests checkout on every instant rail, stale carts, all-or-nothing
allocation with compensation, gateway verification through a mocked
oracle, and the buyer-facing history views.
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from core.exceptions import (
    InsufficientBalanceError,
    InsufficientInventoryError,
    InvalidCartError,
    InvariantViolationError,
    OrderNotFoundError,
    PaymentVerificationFailedError,
    StaleCartItemsError,
    UserError,
)
from core.payment_gateway import GatewayVerification
from models.buyer import Buyer
from models.cart import CartLine
from models.listing import CredentialRecord, Listing
from models.order import (
    DeliveryStatus,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from services.allocation import AllocationEngine
from services.orders import OrderFactory, OrderHistory, parse_cart, parse_total_amount
from services.stores import Stores
from services.wallet import WalletLedger


NOW = datetime(2026, 3, 15, 14, 0, tzinfo=timezone.utc)


# Fixtures

@pytest.fixture
def stores():
    """Stores with two opaque listings, one structured listing and one buyer."""
    stores = Stores()
    stores.listings.save(
        Listing(id="ig", title="Instagram 5k", description="", price=250.0,
                seller_id="seller-1", credentials=["blockA", "blockB"])
    )
    stores.listings.save(
        Listing(id="vpn", title="VPN 1 year", description="", price=50.0,
                seller_id="seller-1", credentials=["vpn-1"])
    )
    stores.listings.save(
        Listing(id="gmail", title="Gmail", description="", price=5.0, seller_id="seller-1",
                credentials_inventory=[CredentialRecord(email="g@x.com", password="pw")])
    )
    stores.buyers.save(Buyer(id="buyer-1", name="Ada", email="ada@example.com"))
    return stores


@pytest.fixture
def wallet(stores):
    return WalletLedger(stores.buyers, stores.ledger, clock=lambda: NOW)


@pytest.fixture
def engine(stores):
    return AllocationEngine(stores.listings, clock=lambda: NOW)


@pytest.fixture
def factory(stores, engine, wallet):
    """Create an order factory without a gateway oracle."""
    return OrderFactory(stores.listings, stores.orders, engine, wallet, clock=lambda: NOW)


@pytest.fixture
def oracle():
    """Mock payment oracle that confirms any reference for 1,000."""
    mock_oracle = MagicMock()
    mock_oracle.verify.return_value = GatewayVerification(
        success=True, amount=1000.0, reference="PSK-1"
    )
    return mock_oracle


def cart(*pairs):
    return [CartLine(listing_id=listing_id, quantity=qty) for listing_id, qty in pairs]


# Tests for parsing helpers

class TestRequestParsing:
    def test_parse_cart_accepts_catalog_ids(self):
        lines = parse_cart([{"_id": "ig", "quantity": "2", "title": "Instagram"}])

        assert lines == [CartLine(listing_id="ig", quantity=2, title="Instagram")]

    def test_parse_cart_rejects_non_list(self):
        with pytest.raises(InvalidCartError):
            parse_cart({"_id": "ig"})

    def test_parse_cart_rejects_malformed_item(self):
        with pytest.raises(InvalidCartError):
            parse_cart(["ig"])

    @pytest.mark.parametrize("value", [None, "abc", -1, 0, "0", 0.004, True, float("inf")])
    def test_parse_total_rejects_bad_values(self, value):
        with pytest.raises(UserError):
            parse_total_amount(value)

    def test_parse_total_rounds(self):
        assert parse_total_amount("99.999") == 100.0


# Tests for checkout

class TestCheckout:
    """Instant sales."""

    def test_single_block_goes_to_order(self, factory, stores):
        order = factory.checkout("buyer-1", cart(("ig", 1)), "crypto-usdt", "TX-1", 250)

        assert order.items[0].credentials == ("blockA",)
        assert order.items[0].price == 250.0
        assert order.items[0].title == "Instagram 5k"
        assert order.payment_status is PaymentStatus.COMPLETED
        assert order.order_status is OrderStatus.COMPLETED
        assert order.delivery_status is DeliveryStatus.DELIVERED
        assert stores.listings.find("ig").credentials == ["blockB"]
        assert stores.orders.get(order.order_number) == order

    def test_last_block_sells_out_listing(self, factory, stores):
        factory.checkout("buyer-1", cart(("vpn", 1)), "crypto-bitcoin", "TX-2", 50)

        listing = stores.listings.find("vpn")
        assert listing.credentials == []
        assert listing.is_sold is True

    def test_stored_balance_checkout(self, factory, wallet):
        wallet.credit("buyer-1", 500)

        order = factory.checkout("buyer-1", cart(("ig", 2)), "storedBalance", "", 500)

        assert order.payment_method is PaymentMethod.WALLET
        assert order.payment_reference == order.order_number
        assert wallet.balance("buyer-1") == 0.0
        assert order.items[0].credentials == ("blockA", "blockB")

    def test_structured_credentials_delivered_without_markers(self, factory):
        order = factory.checkout("buyer-1", cart(("gmail", 1)), "crypto-usdt", "TX-3", 5)

        delivered = order.to_dict()["items"][0]["credentials"][0]
        assert delivered["email"] == "g@x.com"
        assert "isSold" not in delivered

    def test_order_number_format(self, factory):
        order = factory.checkout("buyer-1", cart(("ig", 1)), "crypto-usdt", "TX-4", 250)

        prefix, millis, suffix = order.order_number.split("-")
        assert prefix == "ORD"
        assert millis == str(int(NOW.timestamp() * 1000))
        assert len(suffix) == 6

    def test_reference_required_off_wallet(self, factory, stores):
        with pytest.raises(UserError, match="Payment reference is required"):
            factory.checkout("buyer-1", cart(("ig", 1)), "crypto-usdt", "  ", 250)

        assert stores.listings.find("ig").credentials == ["blockA", "blockB"]

    def test_bank_transfer_is_not_an_instant_rail(self, factory):
        with pytest.raises(UserError, match="payment code"):
            factory.checkout("buyer-1", cart(("ig", 1)), "whatsapp-bank", "X", 250)

    def test_unsupported_method(self, factory):
        with pytest.raises(UserError, match="Unsupported payment method"):
            factory.checkout("buyer-1", cart(("ig", 1)), "cheque", "X", 250)

    @pytest.mark.parametrize("total", [0, "0", -250])
    def test_free_wallet_checkout_is_rejected(self, factory, stores, wallet, total):
        with pytest.raises(UserError, match="greater than zero"):
            factory.checkout("buyer-1", cart(("ig", 1)), "wallet", "", total)

        assert stores.listings.find("ig").credentials == ["blockA", "blockB"]
        assert stores.orders.find() == []
        assert wallet.balance("buyer-1") == 0.0


class TestCartValidation:
    """Rejections before any allocation."""

    def test_empty_cart(self, factory):
        with pytest.raises(InvalidCartError):
            factory.checkout("buyer-1", [], "crypto-usdt", "TX", 250)

    def test_quantity_below_one(self, factory):
        with pytest.raises(InvalidCartError):
            factory.checkout("buyer-1", cart(("ig", 0)), "crypto-usdt", "TX", 250)

    def test_every_stale_item_is_listed(self, factory, stores):
        lines = [
            CartLine(listing_id="ig", quantity=1),
            CartLine(listing_id="gone-1", quantity=1, title="Old TikTok"),
            CartLine(listing_id="gone-2", quantity=1, title="Old Snapchat"),
        ]

        with pytest.raises(StaleCartItemsError) as exc_info:
            factory.checkout("buyer-1", lines, "crypto-usdt", "TX", 300)

        assert exc_info.value.invalid_items == [
            {"id": "gone-1", "title": "Old TikTok"},
            {"id": "gone-2", "title": "Old Snapchat"},
        ]
        assert exc_info.value.http_status == 400
        assert stores.listings.find("ig").credentials == ["blockA", "blockB"]


class TestCompensation:
    """A failed sale leaves inventory and balance as they were."""

    def test_later_line_short_releases_earlier_lines(self, factory, stores):
        with pytest.raises(InsufficientInventoryError) as exc_info:
            factory.checkout(
                "buyer-1", cart(("ig", 1), ("gmail", 1), ("vpn", 2)), "crypto-usdt", "TX", 400
            )

        assert exc_info.value.available == 1
        assert exc_info.value.title == "VPN 1 year"
        assert stores.listings.find("ig").credentials == ["blockA", "blockB"]
        assert stores.listings.find("gmail").credentials_inventory[0].sold is False
        assert stores.orders.find() == []

    def test_insufficient_balance_releases_allocations(self, factory, stores, wallet):
        wallet.credit("buyer-1", 100)

        with pytest.raises(InsufficientBalanceError):
            factory.checkout("buyer-1", cart(("ig", 2)), "wallet", "", 500)

        assert stores.listings.find("ig").credentials == ["blockA", "blockB"]
        assert wallet.balance("buyer-1") == 100.0
        assert stores.orders.find() == []

    def test_failed_order_write_refunds_and_releases(self, factory, stores, wallet):
        wallet.credit("buyer-1", 500)

        with patch.object(stores.orders, "save", side_effect=RuntimeError("store down")):
            with pytest.raises(RuntimeError):
                factory.checkout("buyer-1", cart(("ig", 1), ("vpn", 1)), "wallet", "", 300)

        assert wallet.balance("buyer-1") == 500.0
        assert stores.listings.find("ig").credentials == ["blockA", "blockB"]
        assert stores.listings.find("vpn").is_sold is False

    def test_failed_release_does_not_strand_other_lines(self, factory, stores, engine):
        real_release = engine.release
        released = []

        def flaky_release(allocation):
            if allocation.listing_id == "gmail":
                raise InvariantViolationError("Could not return blocks")
            released.append(allocation.listing_id)
            return real_release(allocation)

        with patch.object(engine, "release", side_effect=flaky_release):
            with pytest.raises(InsufficientInventoryError):
                factory.checkout(
                    "buyer-1",
                    cart(("ig", 1), ("gmail", 1), ("vpn", 1), ("vpn", 1)),
                    "crypto-usdt",
                    "TX",
                    400,
                )

        assert released == ["vpn", "ig"]
        assert stores.listings.find("ig").credentials == ["blockA", "blockB"]
        assert stores.listings.find("vpn").credentials == ["vpn-1"]
        assert stores.orders.find() == []

    def test_retry_after_failure_gets_same_blocks(self, factory, wallet):
        wallet.credit("buyer-1", 100)
        with pytest.raises(InsufficientBalanceError):
            factory.checkout("buyer-1", cart(("ig", 1)), "wallet", "", 250)

        wallet.credit("buyer-1", 150)
        order = factory.checkout("buyer-1", cart(("ig", 1)), "wallet", "", 250)

        assert order.items[0].credentials == ("blockA",)


class TestGatewayVerification:
    """Paystack rail with an oracle installed."""

    def test_verified_payment(self, stores, engine, wallet, oracle):
        factory = OrderFactory(stores.listings, stores.orders, engine, wallet, oracle=oracle)

        order = factory.checkout("buyer-1", cart(("ig", 1)), "paystack", "PSK-1", 250)

        oracle.verify.assert_called_once_with("PSK-1")
        assert order.payment_method is PaymentMethod.PAYSTACK

    def test_unpaid_reference_allocates_nothing(self, stores, engine, wallet, oracle):
        oracle.verify.return_value = GatewayVerification(success=False, reference="PSK-1")
        factory = OrderFactory(stores.listings, stores.orders, engine, wallet, oracle=oracle)

        with pytest.raises(PaymentVerificationFailedError) as exc_info:
            factory.checkout("buyer-1", cart(("ig", 1)), "paystack", "PSK-1", 250)

        assert exc_info.value.http_status == 402
        assert stores.listings.find("ig").credentials == ["blockA", "blockB"]

    def test_underpayment_is_rejected(self, stores, engine, wallet, oracle):
        oracle.verify.return_value = GatewayVerification(success=True, amount=249.0)
        factory = OrderFactory(stores.listings, stores.orders, engine, wallet, oracle=oracle)

        with pytest.raises(PaymentVerificationFailedError, match="less than the order total"):
            factory.checkout("buyer-1", cart(("ig", 1)), "paystack", "PSK-1", 250)

    def test_other_rails_skip_the_oracle(self, stores, engine, wallet, oracle):
        factory = OrderFactory(stores.listings, stores.orders, engine, wallet, oracle=oracle)

        factory.checkout("buyer-1", cart(("ig", 1)), "crypto-usdt", "TX", 250)

        oracle.verify.assert_not_called()


# Tests for order history

class TestOrderHistory:
    """Buyer-facing reads."""

    @pytest.fixture
    def history(self, stores):
        return OrderHistory(stores.orders, clock=lambda: NOW)

    def test_orders_for_buyer(self, factory, history):
        order = factory.checkout("buyer-1", cart(("ig", 1)), "crypto-usdt", "TX", 250)

        assert history.orders_for("buyer-1") == [order]
        assert history.orders_for("buyer-2") == []

    def test_foreign_order_is_not_found(self, factory, history):
        order = factory.checkout("buyer-1", cart(("ig", 1)), "crypto-usdt", "TX", 250)

        assert history.find_order(order.order_number, "buyer-1") == order
        with pytest.raises(OrderNotFoundError):
            history.find_order(order.order_number, "buyer-2")
        with pytest.raises(OrderNotFoundError):
            history.find_order("ORD-0-AAAAAA", "buyer-1")

    def test_buyer_stats(self, factory, history, stores):
        factory.checkout("buyer-1", cart(("ig", 2)), "crypto-usdt", "TX-1", 500)
        stores.orders.save(
            Order(
                order_number="ORD-OLD",
                buyer_id="buyer-1",
                items=(OrderItem("vpn", "VPN 1 year", 1, 50.0, ("old-key",)),),
                total_amount=50.0,
                payment_method=PaymentMethod.PAYSTACK,
                payment_reference="PSK-OLD",
                created_at=NOW - timedelta(days=30),
            )
        )

        stats = history.buyer_stats("buyer-1").to_dict()

        assert stats["totalSpent"] == 550.0
        assert stats["totalPurchases"] == 3
        assert stats["totalOrders"] == 2
        assert stats["recentOrdersCount"] == 1
        assert len(stats["recentTransactions"]) == 2
        assert "credentials" not in stats["recentTransactions"][0]["items"][0]
