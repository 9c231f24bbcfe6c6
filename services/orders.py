"""
Order factory and order history.

OrderFactory is the single point where a sale becomes final. It validates
the cart, verifies gateway payments, allocates every line through the
allocation engine, debits the wallet for stored-balance payments and
persists the order.

Sale flow:
    1. Validate every cart line resolves to a listing (StaleCartItemsError)
    2. Gateway rail: verify the payment reference through the oracle
    3. Allocate line by line (each listing locked only for its own line)
    4. Stored-balance rail: debit the wallet
    5. Persist the order (completed / completed / delivered)

Compensation:
    A failure at step 3, 4 or 5 releases every allocation already made,
    and a failure at step 5 also refunds the debit. An order is written
    whole or not at all.

OrderHistory is the read side: a buyer's own orders (with credentials)
and purchase statistics (without).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from core.exceptions import (
    InvalidCartError,
    InvariantViolationError,
    OrderNotFoundError,
    PaymentVerificationFailedError,
    StaleCartItemsError,
    UserError,
)
from core.payment_gateway import PaymentOracle
from models.cart import CartLine, PricedLine
from models.listing import utcnow
from models.order import Order, OrderItem, PaymentMethod, credentials_delivered
from modules.references import generate_order_number
from services.allocation import Allocation, AllocationEngine
from services.stores import ListingStore, OrderStore
from services.wallet import DebitResult, WalletLedger
from logging_config import get_logger, get_request_logger


# Module logger
logger = get_logger(__name__)


def parse_cart(raw_items: Any) -> List[CartLine]:
    """Build cart lines from a request payload (list of dicts)."""
    if not isinstance(raw_items, list):
        raise InvalidCartError("Cart items must be a list")

    lines = []
    for item in raw_items:
        if isinstance(item, CartLine):
            lines.append(item)
        elif isinstance(item, dict):
            lines.append(CartLine.from_dict(item))
        else:
            raise InvalidCartError("Malformed cart item", {"item": repr(item)[:100]})
    return lines


def parse_total_amount(total_amount: Any) -> float:
    """Order total from a request payload; must be a positive number."""
    try:
        total = float(total_amount)
    except (TypeError, ValueError):
        raise UserError("Total amount must be a number", {"total_amount": total_amount})
    if isinstance(total_amount, bool) or not math.isfinite(total) or round(total, 2) <= 0:
        raise UserError("Total amount must be greater than zero", {"total_amount": total_amount})
    return round(total, 2)


class OrderFactory:
    """
    Turns a paid cart into a persisted order.

    Attributes:
        oracle: Gateway verifier for the paystack rail; None skips verification
    """

    def __init__(
        self,
        listing_store: ListingStore,
        order_store: OrderStore,
        allocation_engine: AllocationEngine,
        wallet_ledger: WalletLedger,
        oracle: Optional[PaymentOracle] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._listings = listing_store
        self._orders = order_store
        self._engine = allocation_engine
        self._wallet = wallet_ledger
        self.oracle = oracle
        self._clock = clock

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def validate_lines(self, cart_lines: Iterable[CartLine]) -> List[CartLine]:
        """
        Check a cart before any allocation.

        Raises:
            InvalidCartError: Empty cart or a quantity below 1
            StaleCartItemsError: One or more listings no longer exist (all listed)
        """
        lines = list(cart_lines)
        if not lines:
            raise InvalidCartError("Cart is empty")

        for line in lines:
            if not line.listing_id:
                raise InvalidCartError("Cart item is missing a listing id")
            if line.quantity < 1:
                raise InvalidCartError(
                    f"Quantity must be at least 1 (got {line.quantity})",
                    {"listing_id": line.listing_id, "quantity": line.quantity},
                )

        invalid_items = [
            {"id": line.listing_id, "title": line.title}
            for line in lines
            if self._listings.find(line.listing_id) is None
        ]
        if invalid_items:
            logger.info(f"Cart rejected: {len(invalid_items)} stale item(s)")
            raise StaleCartItemsError(invalid_items)

        return lines

    def checkout(
        self,
        buyer_id: str,
        cart_lines: Iterable[CartLine],
        payment_method: Any,
        payment_reference: str,
        total_amount: Any,
    ) -> Order:
        """
        Complete an instant sale (gateway, crypto or stored balance).

        Args:
            buyer_id: Buyer placing the order
            cart_lines: Requested listing / quantity pairs
            payment_method: PaymentMethod or its string tag
            payment_reference: Gateway or client reference for the payment
            total_amount: Amount charged for the whole cart

        Returns:
            The persisted order, credentials included

        Raises:
            UserError subclasses for anything the buyer can fix;
            InfrastructureError / InvariantViolationError otherwise
        """
        method = self._parse_method(payment_method)
        if method is PaymentMethod.BANK_TRANSFER:
            raise UserError(
                "Bank transfer orders are created when an admin verifies the payment code",
                {"payment_method": method.value},
            )

        total = parse_total_amount(total_amount)
        lines = self.validate_lines(cart_lines)

        order_number = generate_order_number(self._clock())
        reference = (payment_reference or "").strip()
        if not reference:
            if method is not PaymentMethod.WALLET:
                raise UserError("Payment reference is required", {"payment_method": method.value})
            reference = order_number

        request_log = get_request_logger(order_number)
        request_log.info(
            f"Checkout for buyer {buyer_id}: {len(lines)} line(s), "
            f"{method.value}, total {total:.2f}"
        )

        if method is PaymentMethod.PAYSTACK and self.oracle is not None:
            self._verify_gateway_payment(reference, total, request_log)

        priced = [PricedLine(listing_id=l.listing_id, quantity=l.quantity) for l in lines]
        return self.fulfill(
            buyer_id, priced, method, reference, total, order_number=order_number
        )

    def fulfill(
        self,
        buyer_id: str,
        lines: Sequence[PricedLine],
        payment_method: PaymentMethod,
        payment_reference: str,
        total_amount: float,
        order_number: Optional[str] = None,
    ) -> Order:
        """
        Allocate every line and persist the order, all or nothing.

        Shared by checkout and payment-code verification. Lines with a
        price / title use them (payment-code snapshot); otherwise the
        listing's current values are used.
        """
        order_number = order_number or generate_order_number(self._clock())
        request_log = get_request_logger(order_number)

        allocations: List[Allocation] = []
        debit: Optional[DebitResult] = None
        order_saved = False

        try:
            for line in lines:
                result = self._engine.allocate(line.listing_id, line.quantity, buyer_id)
                if not result.ok:
                    request_log.info(
                        f"Line {line.listing_id} failed: {result.error.message}"
                    )
                allocations.append(result.unwrap())

            items = self._build_items(lines, allocations)

            if payment_method is PaymentMethod.WALLET:
                debit = self._wallet.debit(buyer_id, total_amount, order_number)
                if not debit.ok:
                    raise debit.error

            order = Order(
                order_number=order_number,
                buyer_id=buyer_id,
                items=tuple(items),
                total_amount=total_amount,
                payment_method=payment_method,
                payment_reference=payment_reference,
                created_at=self._clock(),
            )
            self._orders.save(order)
            order_saved = True

        except Exception:
            if not order_saved:
                self._compensate(allocations, debit, buyer_id, order_number, request_log)
            raise

        request_log.info(
            f"Order {order_number} completed: {order.item_count} credential(s) "
            f"delivered to buyer {buyer_id}"
        )
        return order

    # =========================================================================
    # INTERNAL
    # =========================================================================

    @staticmethod
    def _parse_method(payment_method: Any) -> PaymentMethod:
        try:
            return PaymentMethod.parse(payment_method)
        except ValueError:
            raise UserError(
                f"Unsupported payment method: {payment_method}",
                {"payment_method": str(payment_method)},
            )

    def _verify_gateway_payment(self, reference: str, total: float, request_log) -> None:
        verification = self.oracle.verify(reference)

        if not verification.success:
            request_log.warning(f"Gateway reports reference {reference} as not paid")
            raise PaymentVerificationFailedError(reference)

        if verification.amount < total:
            request_log.warning(
                f"Gateway amount {verification.amount:.2f} below order total {total:.2f}"
            )
            raise PaymentVerificationFailedError(
                reference,
                f"Paid amount {verification.amount:.2f} is less than the order total {total:.2f}",
            )

        request_log.info(f"Gateway payment {reference} verified ({verification.amount:.2f})")

    @staticmethod
    def _build_items(
        lines: Sequence[PricedLine], allocations: List[Allocation]
    ) -> List[OrderItem]:
        if len(allocations) != len(lines):
            raise InvariantViolationError(
                f"{len(allocations)} allocations for {len(lines)} cart lines"
            )

        items = []
        for line, allocation in zip(lines, allocations):
            if allocation.quantity != line.quantity or allocation.listing_id != line.listing_id:
                raise InvariantViolationError(
                    f"Allocation returned {allocation.quantity} blocks for "
                    f"{line.listing_id}, {line.quantity} requested",
                    {"listing_id": line.listing_id},
                )
            items.append(
                OrderItem(
                    listing_id=line.listing_id,
                    title=line.title or allocation.title,
                    quantity=line.quantity,
                    price=allocation.price if line.price is None else line.price,
                    credentials=allocation.payloads,
                )
            )

        if credentials_delivered(items) != sum(line.quantity for line in lines):
            raise InvariantViolationError("Delivered credentials do not match cart quantities")
        return items

    def _compensate(
        self,
        allocations: List[Allocation],
        debit: Optional[DebitResult],
        buyer_id: str,
        order_number: str,
        request_log,
    ) -> None:
        """
        Undo a failed sale: refund the debit, return every allocated block.

        Never raises. Each step is attempted on its own, so one failed
        release does not strand the others, and the caller re-raises the
        error that aborted the sale.
        """
        if debit is not None and debit.ok:
            try:
                self._wallet.refund(buyer_id, debit.amount, order_number)
            except Exception as e:
                request_log.error(
                    f"Order {order_number}: refund of {debit.amount:.2f} to buyer "
                    f"{buyer_id} failed: {e}",
                    exc_info=True,
                )

        released = 0
        # Reverse order so opaque blocks land back at the head in their original order
        for allocation in reversed(allocations):
            try:
                self._engine.release(allocation)
                released += 1
            except Exception as e:
                request_log.error(
                    f"Order {order_number}: could not release {allocation.quantity} "
                    f"block(s) on {allocation.listing_id}: {e}",
                    exc_info=True,
                )

        if allocations:
            request_log.warning(
                f"Order {order_number} aborted: released {released} of "
                f"{len(allocations)} allocation(s)"
            )


# =============================================================================
# ORDER HISTORY
# =============================================================================

@dataclass(frozen=True)
class BuyerStats:
    """Purchase statistics for one buyer. Never carries credentials."""

    total_spent: float
    total_purchases: int
    recent_orders_count: int
    total_orders: int
    recent_transactions: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalSpent": self.total_spent,
            "totalPurchases": self.total_purchases,
            "recentOrdersCount": self.recent_orders_count,
            "totalOrders": self.total_orders,
            "recentTransactions": self.recent_transactions,
        }


class OrderHistory:
    """Read-only views over a buyer's own orders."""

    RECENT_TRANSACTIONS = 5

    def __init__(self, order_store: OrderStore, clock: Callable[[], datetime] = utcnow):
        self._orders = order_store
        self._clock = clock

    def orders_for(self, buyer_id: str) -> List[Order]:
        """A buyer's orders, newest first, credentials included."""
        return self._orders.find_by_buyer(buyer_id)

    def find_order(self, order_number: str, buyer_id: str) -> Order:
        """One order; another buyer's order is reported as not found."""
        order = self._orders.get(order_number)
        if order is None or order.buyer_id != buyer_id:
            raise OrderNotFoundError(order_number)
        return order

    def buyer_stats(self, buyer_id: str) -> BuyerStats:
        orders = self.orders_for(buyer_id)
        month_start = self._clock().replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        return BuyerStats(
            total_spent=round(sum(order.total_amount for order in orders), 2),
            total_purchases=sum(order.item_count for order in orders),
            recent_orders_count=sum(1 for order in orders if order.created_at >= month_start),
            total_orders=len(orders),
            recent_transactions=[
                order.to_summary_dict() for order in orders[: self.RECENT_TRANSACTIONS]
            ],
        )
