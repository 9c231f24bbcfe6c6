"""
Payment code registry for the bank transfer rail.

A buyer generates a time-boxed code for a cart snapshot, transfers the
money quoting the code, and an admin verifies the transfer. Verification
is the only transition that creates an order.

State machine:
    PENDING -> VERIFIED   admin verify (creates the order)
    PENDING -> EXPIRED    first access past expires_at, or the sweeper
    PENDING -> CANCELLED  buyer cancel

Thread Safety:
    Every transition holds the code's lock for its whole check-and-write,
    so verifying the same code twice concurrently produces exactly one
    order; the second caller sees CodeAlreadyResolvedError.

    A failed verification (e.g. insufficient inventory on any line)
    releases everything it allocated and leaves the code PENDING so the
    admin can retry after a restock.

PaymentCodeSweeper runs ``sweep`` on a background thread: overdue pending
codes are expired and codes long past expiry are purged.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from core.exceptions import (
    BankTransferUnavailableError,
    CodeAlreadyResolvedError,
    CodeExpiredError,
    CodeGenerationExhaustedError,
    CodeNotFoundError,
    InvalidSettingsError,
    ListingNotFoundError,
    UserError,
)
from core.locks import KeyedLocks
from models.cart import CartLine, PricedLine
from models.listing import utcnow
from models.order import Order, PaymentMethod
from models.payment_code import (
    BankTransferSettings,
    CartSnapshotLine,
    CodeSnapshot,
    PaymentCode,
    PaymentCodeStatus,
)
from modules.references import generate_payment_code
from modules.sanitize import as_flag, sanitize_text
from services.orders import OrderFactory, parse_total_amount
from services.stores import ListingStore, OrderStore, PaymentCodeStore, SettingsStore
from logging_config import get_logger, get_request_logger, set_thread_name


# Module logger
logger = get_logger(__name__)

# Settings field limits
MAX_BANK_FIELD_LENGTH = 200
MAX_INSTRUCTIONS_LENGTH = 1000


@dataclass(frozen=True)
class SweepReport:
    """What one sweep did."""

    expired: int
    """Pending codes moved to EXPIRED."""

    purged: int
    """Codes removed from the store."""

    ran_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expired": self.expired,
            "purged": self.purged,
            "ranAt": self.ran_at.isoformat(),
        }


class PaymentCodeRegistry:
    """
    Issues, looks up and transitions payment codes.

    Attributes:
        ttl: Lifetime of a new code
        max_attempts: Code generation attempts before giving up
        purge_after: How long past expiry a code is kept
    """

    def __init__(
        self,
        code_store: PaymentCodeStore,
        settings_store: SettingsStore,
        listing_store: ListingStore,
        order_store: OrderStore,
        order_factory: OrderFactory,
        locks: Optional[KeyedLocks] = None,
        ttl_hours: float = 24,
        max_attempts: int = 10,
        purge_after_hours: float = 24,
        clock: Callable[[], datetime] = utcnow,
        code_generator: Callable[[datetime], str] = generate_payment_code,
    ):
        self._codes = code_store
        self._settings = settings_store
        self._listings = listing_store
        self._orders = order_store
        self._factory = order_factory
        self._locks = locks or KeyedLocks("payment_code")
        self.ttl = timedelta(hours=ttl_hours)
        self.max_attempts = max(1, max_attempts)
        self.purge_after = timedelta(hours=purge_after_hours)
        self._clock = clock
        self._generate_code = code_generator

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_settings(self) -> BankTransferSettings:
        return self._settings.get_bank_transfer()

    def update_settings(
        self,
        admin_id: str,
        bank_name: Optional[str] = None,
        account_name: Optional[str] = None,
        account_number: Optional[str] = None,
        instructions: Optional[str] = None,
        is_enabled: Optional[Any] = None,
    ) -> BankTransferSettings:
        """
        Update the bank transfer settings. Fields left as None are unchanged.

        Raises:
            InvalidSettingsError: Enabling the rail without complete bank details
        """
        settings = self._settings.get_bank_transfer()

        if bank_name is not None:
            settings.bank_name = sanitize_text(bank_name, MAX_BANK_FIELD_LENGTH)
        if account_name is not None:
            settings.account_name = sanitize_text(account_name, MAX_BANK_FIELD_LENGTH)
        if account_number is not None:
            settings.account_number = sanitize_text(account_number, MAX_BANK_FIELD_LENGTH)
        if instructions is not None:
            settings.instructions = sanitize_text(instructions, MAX_INSTRUCTIONS_LENGTH)
        if is_enabled is not None:
            settings.is_enabled = as_flag(is_enabled)

        if settings.is_enabled and not settings.has_bank_details:
            raise InvalidSettingsError(
                "Bank name, account name, and account number are required "
                "when enabling bank transfer payment"
            )

        settings.updated_at = self._clock()
        self._settings.save_bank_transfer(settings)

        logger.info(
            f"Bank transfer settings updated by {admin_id} "
            f"(enabled: {settings.is_enabled})"
        )
        return settings

    # =========================================================================
    # CODE LIFECYCLE
    # =========================================================================

    def generate(
        self, buyer_id: str, cart_lines: Iterable[CartLine], total_amount: Any
    ) -> PaymentCode:
        """
        Issue a pending code for a cart.

        Prices and titles are snapshotted from the listings now, so later
        listing edits do not change what this code charges or shows.

        Raises:
            BankTransferUnavailableError: Rail disabled or not configured
            StaleCartItemsError / InvalidCartError: Bad cart
            CodeGenerationExhaustedError: No free code after max_attempts
        """
        settings = self._settings.get_bank_transfer()
        if not settings.is_enabled:
            raise BankTransferUnavailableError("Bank transfer payment is currently disabled")
        if not settings.has_bank_details:
            raise BankTransferUnavailableError(
                "Bank transfer payment is not properly configured. Please contact support."
            )

        total = parse_total_amount(total_amount)
        lines = self._factory.validate_lines(cart_lines)
        snapshot = []
        for line in lines:
            listing = self._listings.find(line.listing_id)
            if listing is None:
                raise ListingNotFoundError(line.listing_id)
            snapshot.append(
                CartSnapshotLine(
                    listing_id=listing.id,
                    quantity=line.quantity,
                    price=listing.price,
                    title=listing.title,
                )
            )

        now = self._clock()
        for attempt in range(1, self.max_attempts + 1):
            payment_code = PaymentCode(
                code=self._generate_code(now),
                buyer_id=buyer_id,
                cart_items=snapshot,
                total_amount=total,
                expires_at=now + self.ttl,
                created_at=now,
            )
            if self._codes.insert_if_absent(payment_code):
                logger.info(
                    f"Payment code {payment_code.code} issued to buyer {buyer_id} "
                    f"for {total:.2f} ({len(snapshot)} line(s))"
                )
                return payment_code

            logger.debug(f"Payment code collision on attempt {attempt}")

        logger.error(f"Payment code generation exhausted after {self.max_attempts} attempts")
        raise CodeGenerationExhaustedError(self.max_attempts)

    def verify(self, code: str, admin_id: str) -> Order:
        """
        Confirm a bank transfer and create its order.

        Raises:
            CodeNotFoundError: Unknown code
            CodeAlreadyResolvedError: Code is not pending (includes a concurrent
                verification that won)
            CodeExpiredError: Code was past expires_at (it is now EXPIRED)
            InsufficientInventoryError / ListingNotFoundError: A line could not be
                allocated; nothing is allocated and the code stays PENDING
        """
        code = _normalize_code(code)

        with self._locks.hold(code):
            payment_code = self._load_pending(code)
            request_log = get_request_logger(code)

            lines = [
                PricedLine(
                    listing_id=line.listing_id,
                    quantity=line.quantity,
                    price=line.price,
                    title=line.title,
                )
                for line in payment_code.cart_items
            ]

            try:
                order = self._factory.fulfill(
                    payment_code.buyer_id,
                    lines,
                    PaymentMethod.BANK_TRANSFER,
                    payment_code.code,
                    payment_code.total_amount,
                )
            except UserError as e:
                request_log.warning(
                    f"Verification of {code} by {admin_id} failed, code stays pending: "
                    f"{e.message}"
                )
                raise

            payment_code.mark_verified(admin_id, self._clock(), order.order_number)
            self._codes.save(payment_code)

        request_log.info(
            f"Payment code {code} verified by {admin_id}: order {order.order_number}"
        )
        return order

    def status(self, code: str, buyer_id: str) -> CodeSnapshot:
        """
        Status of a code for the buyer who generated it.

        Another buyer's code is reported as not found. A pending code past
        its expiry is expired on this read.
        """
        code = _normalize_code(code)

        with self._locks.hold(code):
            payment_code = self._codes.find(code)
            if payment_code is None or payment_code.buyer_id != buyer_id:
                raise CodeNotFoundError(code)
            self._expire_if_overdue(payment_code)

        order = None
        if payment_code.status is PaymentCodeStatus.VERIFIED and payment_code.order_number:
            order = self._orders.get(payment_code.order_number)

        return CodeSnapshot(
            code=payment_code.code,
            status=payment_code.status,
            total_amount=payment_code.total_amount,
            created_at=payment_code.created_at,
            expires_at=payment_code.expires_at,
            verified_at=payment_code.verified_at,
            order_number=payment_code.order_number,
            order=order,
        )

    def cancel(self, code: str, buyer_id: str) -> PaymentCode:
        """Buyer withdraws a pending code."""
        code = _normalize_code(code)

        with self._locks.hold(code):
            payment_code = self._codes.find(code)
            if payment_code is None or payment_code.buyer_id != buyer_id:
                raise CodeNotFoundError(code)
            payment_code = self._load_pending(code, payment_code)

            payment_code.mark_cancelled(self._clock())
            self._codes.save(payment_code)

        logger.info(f"Payment code {code} cancelled by buyer {buyer_id}")
        return payment_code

    def pending_codes(self) -> List[PaymentCode]:
        """Pending codes still inside their validity window, newest first."""
        return self._codes.pending(self._clock())

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Expire overdue pending codes and purge codes long past expiry.

        Idempotent; safe to run on any cadence.
        """
        now = now or self._clock()

        expired = 0
        for code in self._codes.overdue_pending(now):
            with self._locks.hold(code):
                payment_code = self._codes.find(code)
                if payment_code and self._expire_if_overdue(payment_code, now):
                    expired += 1

        purged = self._codes.purge_expired(now - self.purge_after)

        report = SweepReport(expired=expired, purged=purged, ran_at=now)
        if expired or purged:
            logger.info(f"Payment code sweep: {expired} expired, {purged} purged")
        return report

    # =========================================================================
    # INTERNAL
    # =========================================================================

    def _load_pending(self, code: str, payment_code: Optional[PaymentCode] = None) -> PaymentCode:
        """Fetch a code that can still transition. Caller holds the code's lock."""
        if payment_code is None:
            payment_code = self._codes.find(code)
        if payment_code is None:
            raise CodeNotFoundError(code)

        if payment_code.status is not PaymentCodeStatus.PENDING:
            raise CodeAlreadyResolvedError(code, payment_code.status.value)

        if self._expire_if_overdue(payment_code):
            raise CodeExpiredError(code)

        return payment_code

    def _expire_if_overdue(self, payment_code: PaymentCode, now: Optional[datetime] = None) -> bool:
        """Lazy expiry. Caller holds the code's lock."""
        if payment_code.status is not PaymentCodeStatus.PENDING:
            return False
        if not payment_code.is_overdue(now or self._clock()):
            return False

        payment_code.mark_expired()
        self._codes.save(payment_code)
        logger.info(f"Payment code {payment_code.code} expired")
        return True


def _normalize_code(code: Any) -> str:
    return str(code or "").strip().upper()


# =============================================================================
# BACKGROUND SWEEPER
# =============================================================================

class PaymentCodeSweeper:
    """
    Background thread that runs PaymentCodeRegistry.sweep periodically.

    Usage:
        sweeper = PaymentCodeSweeper(registry, interval_seconds=300)
        sweeper.start()
        ...
        sweeper.stop()
    """

    THREAD_NAME = "PaymentCodeSweeper"

    def __init__(self, registry: PaymentCodeRegistry, interval_seconds: float = 300.0):
        self._registry = registry
        self._interval = interval_seconds

        # Thread control
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._is_running = False

        # Track consecutive failures for logging
        self._consecutive_failures = 0
        self.last_report: Optional[SweepReport] = None

        logger.info(f"PaymentCodeSweeper initialized (interval: {interval_seconds}s)")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def interval_seconds(self) -> float:
        return self._interval

    def start(self) -> None:
        """Start the sweep thread. Safe to call multiple times."""
        if self._is_running:
            logger.warning("PaymentCodeSweeper already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._sweep_loop,
            name=self.THREAD_NAME,
            daemon=True,
        )
        self._is_running = True
        self._thread.start()

        logger.info("Payment code sweep thread started")

    def stop(self) -> None:
        """Signal the thread to stop and wait for it. Safe to call multiple times."""
        if not self._is_running:
            return

        self._stop_event.set()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

            if self._thread.is_alive():
                logger.warning("Payment code sweep thread did not stop cleanly")

        self._is_running = False
        self._thread = None

        logger.info("Payment code sweep thread stopped")

    def run_once(self) -> bool:
        """Run one sweep in the calling thread. Returns True on success."""
        try:
            self.last_report = self._registry.sweep()
        except Exception as e:
            self._consecutive_failures += 1

            if self._consecutive_failures == 1:
                logger.warning(f"Payment code sweep failed: {e}")
            elif self._consecutive_failures <= 3 or self._consecutive_failures % 5 == 0:
                logger.error(
                    f"Payment code sweep failed ({self._consecutive_failures} consecutive): {e}"
                )
            return False

        if self._consecutive_failures > 0:
            logger.info(
                f"Payment code sweep recovered after {self._consecutive_failures} failures"
            )
        self._consecutive_failures = 0
        return True

    def _sweep_loop(self) -> None:
        set_thread_name(self.THREAD_NAME)
        logger.info("Payment code sweep loop starting")

        self.run_once()

        while not self._stop_event.wait(timeout=self._interval):
            self.run_once()

        logger.info("Payment code sweep loop exiting")
