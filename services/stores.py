"""
Thread-safe in-memory stores.

These implement the collaborator contracts the engine consumes (listing,
order, payment code, buyer and settings stores). Each store guards its
dict with a ``threading.Lock`` and hands out deep copies: a caller can
only change shared state by calling ``save``.

Thread Safety:
    - Every public method takes the store's lock
    - Reads return copies, writes store copies
    - ListingStore.save is a compare-and-set on ``version`` when
      ``expected_version`` is given

The listing store is also where the derived sold / available flags are
recomputed, in the same step as the pool write, so they cannot drift.
"""

from __future__ import annotations

import threading
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.exceptions import ConcurrentModificationError, InvariantViolationError
from models.buyer import Buyer, LedgerEntry
from models.crypto_settings import CryptoSettings
from models.listing import Listing, clean_text_blocks, utcnow
from models.order import Order
from models.payment_code import BankTransferSettings, PaymentCode, PaymentCodeStatus
from services.normalizer import CredentialRecordNormalizer
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)


class ListingStore:
    """
    Listing store with versioned writes.

    Usage:
        listing = store.find(listing_id)
        ... mutate the copy ...
        store.save(listing, expected_version=listing.version)
    """

    def __init__(self, normalizer: Optional[CredentialRecordNormalizer] = None):
        self._listings: Dict[str, Listing] = {}
        self._lock = threading.Lock()
        self._normalizer = normalizer or CredentialRecordNormalizer()

    def find(self, listing_id: str) -> Optional[Listing]:
        with self._lock:
            listing = self._listings.get(listing_id)
            return deepcopy(listing) if listing else None

    def save(self, listing: Listing, expected_version: Optional[int] = None) -> Listing:
        """
        Persist a listing and recompute its derived flags.

        Blank text blocks are dropped, an inventory shadowed by text blocks
        is dropped, ``is_sold`` / ``is_available`` are derived from the pool
        and ``version`` is bumped, all as one write.

        Args:
            listing: Listing to store (a copy is stored)
            expected_version: Version the caller read; None skips the check

        Returns:
            Copy of the stored listing (with its new version)

        Raises:
            ConcurrentModificationError: If the stored version moved on
        """
        with self._lock:
            current = self._listings.get(listing.id)
            current_version = current.version if current else 0

            if expected_version is not None and expected_version != current_version:
                raise ConcurrentModificationError(
                    "Listing", listing.id, expected_version, current_version
                )

            stored = deepcopy(listing)
            stored.credentials = clean_text_blocks(stored.credentials)
            if stored.credentials and stored.credentials_inventory:
                logger.warning(
                    f"Listing {stored.id}: dropping {len(stored.credentials_inventory)} "
                    f"structured record(s) shadowed by text blocks"
                )
                stored.credentials_inventory = []

            pool = self._normalizer.normalize(stored)
            stored.is_sold = pool.is_sold_out
            stored.is_available = not pool.is_sold_out

            stored.version = current_version + 1
            stored.updated_at = utcnow()
            self._listings[stored.id] = stored

            return deepcopy(stored)

    def insert_document(self, document: Dict[str, Any]) -> Listing:
        """Load a raw persisted document (any historical shape) into the store."""
        return self.save(Listing.from_document(document))

    def delete(self, listing_id: str) -> bool:
        with self._lock:
            return self._listings.pop(listing_id, None) is not None

    def count(self, predicate: Optional[Callable[[Listing], bool]] = None) -> int:
        with self._lock:
            if predicate is None:
                return len(self._listings)
            return sum(1 for listing in self._listings.values() if predicate(listing))

    def all(self) -> List[Listing]:
        """All listings, newest first."""
        with self._lock:
            listings = [deepcopy(listing) for listing in self._listings.values()]
        return sorted(listings, key=lambda l: l.created_at, reverse=True)


class OrderStore:
    """Insert-once order store. Orders are frozen, so no copies are needed."""

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._lock = threading.Lock()

    def save(self, order: Order) -> None:
        with self._lock:
            if order.order_number in self._orders:
                raise InvariantViolationError(
                    f"Order {order.order_number} already exists",
                    {"order_number": order.order_number},
                )
            self._orders[order.order_number] = order
            logger.debug(f"Stored order {order.order_number}")

    def get(self, order_number: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_number)

    def find(self, predicate: Optional[Callable[[Order], bool]] = None) -> List[Order]:
        """Orders matching ``predicate``, newest first."""
        with self._lock:
            orders = [o for o in self._orders.values() if predicate is None or predicate(o)]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def find_by_buyer(self, buyer_id: str) -> List[Order]:
        return self.find(lambda order: order.buyer_id == buyer_id)


class PaymentCodeStore:
    """
    Payment code store.

    ``insert_if_absent`` is the uniqueness guard for code generation;
    ``purge_expired`` is the TTL removal the sweeper relies on.
    """

    def __init__(self):
        self._codes: Dict[str, PaymentCode] = {}
        self._lock = threading.Lock()

    def find(self, code: str) -> Optional[PaymentCode]:
        with self._lock:
            payment_code = self._codes.get(code)
            return deepcopy(payment_code) if payment_code else None

    def insert_if_absent(self, payment_code: PaymentCode) -> bool:
        """Store a new code. Returns False (and stores nothing) on collision."""
        with self._lock:
            if payment_code.code in self._codes:
                return False
            self._codes[payment_code.code] = deepcopy(payment_code)
            return True

    def save(self, payment_code: PaymentCode) -> None:
        with self._lock:
            self._codes[payment_code.code] = deepcopy(payment_code)

    def pending(self, now: datetime) -> List[PaymentCode]:
        """Pending codes not yet past their expiry, newest first."""
        with self._lock:
            codes = [
                deepcopy(c)
                for c in self._codes.values()
                if c.status is PaymentCodeStatus.PENDING and not c.is_overdue(now)
            ]
        return sorted(codes, key=lambda c: c.created_at, reverse=True)

    def overdue_pending(self, now: datetime) -> List[str]:
        with self._lock:
            return [
                c.code
                for c in self._codes.values()
                if c.status is PaymentCodeStatus.PENDING and c.is_overdue(now)
            ]

    def purge_expired(self, cutoff: datetime) -> int:
        """Remove every code whose ``expires_at`` is before ``cutoff``."""
        with self._lock:
            stale = [code for code, c in self._codes.items() if c.expires_at < cutoff]
            for code in stale:
                del self._codes[code]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._codes)


class BuyerStore:
    def __init__(self):
        self._buyers: Dict[str, Buyer] = {}
        self._lock = threading.Lock()

    def find(self, buyer_id: str) -> Optional[Buyer]:
        with self._lock:
            buyer = self._buyers.get(buyer_id)
            return deepcopy(buyer) if buyer else None

    def save(self, buyer: Buyer) -> None:
        with self._lock:
            self._buyers[buyer.id] = deepcopy(buyer)

    def count(self) -> int:
        with self._lock:
            return len(self._buyers)


class LedgerStore:
    """Append-only wallet history."""

    def __init__(self):
        self._entries: List[LedgerEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: LedgerEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def for_buyer(self, buyer_id: str) -> List[LedgerEntry]:
        """Entries for one buyer, newest first."""
        with self._lock:
            entries = [e for e in self._entries if e.buyer_id == buyer_id]
        return list(reversed(entries))


class SettingsStore:
    """Holds the single bank transfer and crypto settings records."""

    def __init__(
        self,
        bank_transfer: Optional[BankTransferSettings] = None,
        crypto: Optional[CryptoSettings] = None,
    ):
        self._bank_transfer = deepcopy(bank_transfer) if bank_transfer else BankTransferSettings()
        self._crypto = deepcopy(crypto) if crypto else CryptoSettings()
        self._lock = threading.Lock()

    def get_bank_transfer(self) -> BankTransferSettings:
        with self._lock:
            return deepcopy(self._bank_transfer)

    def save_bank_transfer(self, settings: BankTransferSettings) -> None:
        with self._lock:
            self._bank_transfer = deepcopy(settings)

    def get_crypto(self) -> CryptoSettings:
        with self._lock:
            return deepcopy(self._crypto)

    def save_crypto(self, settings: CryptoSettings) -> None:
        with self._lock:
            self._crypto = deepcopy(settings)


@dataclass
class Stores:
    """All stores the engine needs, wired together once per application."""

    listings: ListingStore = field(default_factory=ListingStore)
    orders: OrderStore = field(default_factory=OrderStore)
    payment_codes: PaymentCodeStore = field(default_factory=PaymentCodeStore)
    buyers: BuyerStore = field(default_factory=BuyerStore)
    ledger: LedgerStore = field(default_factory=LedgerStore)
    settings: SettingsStore = field(default_factory=SettingsStore)
