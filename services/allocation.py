"""
Allocation engine.

Reserves a quantity of credential blocks on one listing for one buyer,
marks them consumed and returns the secret payload. This is the only
place a payload leaves a listing's pool.

CONCURRENCY:
    Two guards, used together:
    1. A per-listing exclusive lock (single writer per listing)
    2. A compare-and-set on the listing's version when saving, retried a
       bounded number of times, so a writer that bypasses the lock still
       cannot make two allocations succeed on the same blocks

    Two concurrent allocate() calls on the same listing are therefore
    linearizable: if only enough inventory exists for one, the other sees
    the reduced pool and fails with InsufficientInventoryError.

Selection is FIFO: the oldest blocks in pool order are sold first.

Consumption depends on the stored shape:
    - opaque text blocks are removed from the pool
    - structured records are flagged sold and stamped soldAt / soldTo

Failures are returned as AllocationResult values, not raised, so the
order factory can decide to abort and compensate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Set, Tuple

from core.exceptions import (
    ConcurrentModificationError,
    CredentialMarketError,
    InsufficientInventoryError,
    InvalidCartError,
    InvariantViolationError,
    ListingNotFoundError,
)
from core.locks import KeyedLocks
from models.listing import (
    CredentialBlock,
    CredentialPayload,
    Listing,
    PoolShape,
    clean_text_blocks,
    utcnow,
)
from services.normalizer import CredentialRecordNormalizer, NormalizedPool
from services.stores import ListingStore
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)


@dataclass(frozen=True)
class Allocation:
    """Blocks taken from one listing for one buyer."""

    listing_id: str
    """Listing the blocks came from."""

    title: str
    """Listing title at allocation time."""

    price: float
    """Listing unit price at allocation time."""

    buyer_id: str
    """Buyer the blocks were stamped with."""

    shape: PoolShape
    """Pool shape the blocks were taken from (needed to release them)."""

    blocks: Tuple[CredentialBlock, ...]
    """Allocated blocks in pool order."""

    @property
    def quantity(self) -> int:
        return len(self.blocks)

    @property
    def payloads(self) -> Tuple[CredentialPayload, ...]:
        return tuple(block.payload for block in self.blocks)


@dataclass(frozen=True)
class AllocationResult:
    """
    Outcome of one allocate() call.

    Exactly one of ``allocation`` / ``error`` is set.
    """

    listing_id: str
    requested: int
    allocation: Optional[Allocation] = None
    error: Optional[CredentialMarketError] = None

    @property
    def ok(self) -> bool:
        return self.allocation is not None

    @classmethod
    def succeeded(cls, allocation: Allocation) -> "AllocationResult":
        return cls(
            listing_id=allocation.listing_id,
            requested=allocation.quantity,
            allocation=allocation,
        )

    @classmethod
    def failed(
        cls, listing_id: str, requested: int, error: CredentialMarketError
    ) -> "AllocationResult":
        return cls(listing_id=listing_id, requested=requested, error=error)

    def unwrap(self) -> Allocation:
        """Return the allocation, or raise the error it failed with."""
        if self.allocation is None:
            raise self.error or InvariantViolationError(
                "Allocation result carries neither allocation nor error"
            )
        return self.allocation


class AllocationEngine:
    """
    Allocates and releases credential blocks.

    Attributes:
        max_retries: Optimistic write attempts per call
    """

    def __init__(
        self,
        listing_store: ListingStore,
        locks: Optional[KeyedLocks] = None,
        normalizer: Optional[CredentialRecordNormalizer] = None,
        max_retries: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = listing_store
        self._locks = locks or KeyedLocks("listing")
        self._normalizer = normalizer or CredentialRecordNormalizer()
        self.max_retries = max(1, max_retries)
        self._clock = clock

    @property
    def locks(self) -> KeyedLocks:
        """Per-listing locks; other listing writers must share them."""
        return self._locks

    def allocate(self, listing_id: str, quantity: int, buyer_id: str) -> AllocationResult:
        """
        Take ``quantity`` available blocks from a listing.

        Args:
            listing_id: Listing to allocate from
            quantity: Number of blocks (must be >= 1)
            buyer_id: Buyer stamped on structured records

        Returns:
            AllocationResult; on failure the pool is unchanged and the error
            is InvalidCartError, ListingNotFoundError,
            InsufficientInventoryError or ConcurrentModificationError
        """
        if quantity < 1:
            return AllocationResult.failed(
                listing_id,
                quantity,
                InvalidCartError(
                    f"Quantity must be at least 1 (got {quantity})",
                    {"listing_id": listing_id, "quantity": quantity},
                ),
            )

        last_conflict: Optional[ConcurrentModificationError] = None

        with self._locks.hold(listing_id):
            for attempt in range(1, self.max_retries + 1):
                listing = self._store.find(listing_id)
                if listing is None:
                    return AllocationResult.failed(
                        listing_id, quantity, ListingNotFoundError(listing_id)
                    )

                pool = self._normalizer.normalize(listing)
                if pool.available_count < quantity:
                    logger.info(
                        f"Allocation refused on {listing_id}: "
                        f"{pool.available_count} available, {quantity} requested"
                    )
                    return AllocationResult.failed(
                        listing_id,
                        quantity,
                        InsufficientInventoryError(
                            listing_id, pool.available_count, quantity, listing.title
                        ),
                    )

                taken = pool.available_blocks[:quantity]
                if len(taken) != quantity:
                    raise InvariantViolationError(
                        f"Allocation on {listing_id} produced {len(taken)} blocks, "
                        f"{quantity} promised",
                        {"listing_id": listing_id},
                    )

                self._consume(listing, pool, taken, buyer_id)

                try:
                    self._store.save(listing, expected_version=listing.version)
                except ConcurrentModificationError as e:
                    last_conflict = e
                    logger.warning(
                        f"Listing {listing_id} changed during allocation "
                        f"(attempt {attempt}/{self.max_retries}), retrying"
                    )
                    continue

                logger.info(
                    f"Allocated {quantity} of {pool.available_count} blocks on "
                    f"{listing_id} ({pool.shape.value}) to buyer {buyer_id}"
                )
                return AllocationResult.succeeded(
                    Allocation(
                        listing_id=listing_id,
                        title=listing.title,
                        price=listing.price,
                        buyer_id=buyer_id,
                        shape=pool.shape,
                        blocks=taken,
                    )
                )

        logger.error(f"Allocation on {listing_id} gave up after {self.max_retries} conflicts")
        return AllocationResult.failed(listing_id, quantity, last_conflict)

    def release(self, allocation: Allocation) -> bool:
        """
        Return allocated blocks to their listing (compensation).

        Opaque blocks go back to the head of the pool in their original
        order, so FIFO order is preserved. Structured records are
        un-flagged if they are still stamped with this buyer.

        Returns:
            True if the blocks were returned, False if the listing is gone
        """
        with self._locks.hold(allocation.listing_id):
            for attempt in range(1, self.max_retries + 1):
                listing = self._store.find(allocation.listing_id)
                if listing is None:
                    logger.error(
                        f"Cannot return {allocation.quantity} blocks: "
                        f"listing {allocation.listing_id} no longer exists"
                    )
                    return False

                self._restore(listing, allocation)

                try:
                    self._store.save(listing, expected_version=listing.version)
                except ConcurrentModificationError:
                    logger.warning(
                        f"Listing {allocation.listing_id} changed during release "
                        f"(attempt {attempt}/{self.max_retries}), retrying"
                    )
                    continue

                logger.info(
                    f"Returned {allocation.quantity} blocks to {allocation.listing_id}"
                )
                return True

        raise InvariantViolationError(
            f"Could not return {allocation.quantity} blocks to {allocation.listing_id}",
            {"listing_id": allocation.listing_id},
        )

    # -------------------------------------------------------------------------
    # Pool mutation
    # -------------------------------------------------------------------------

    def _consume(
        self,
        listing: Listing,
        pool: NormalizedPool,
        taken: Tuple[CredentialBlock, ...],
        buyer_id: str,
    ) -> None:
        positions: Set[int] = {block.position for block in taken}

        if pool.shape is PoolShape.OPAQUE:
            blocks = clean_text_blocks(listing.credentials)
            listing.credentials = [b for i, b in enumerate(blocks) if i not in positions]
            return

        sold_at = self._clock()
        for position in sorted(positions):
            listing.credentials_inventory[position].mark_sold(buyer_id, sold_at)

    def _restore(self, listing: Listing, allocation: Allocation) -> None:
        if allocation.shape is PoolShape.OPAQUE:
            returned = [block.text or "" for block in allocation.blocks]
            listing.credentials = returned + clean_text_blocks(listing.credentials)
            return

        inventory = listing.credentials_inventory
        for block in allocation.blocks:
            if block.position >= len(inventory):
                logger.error(
                    f"Record {block.position} missing from {allocation.listing_id}, "
                    "cannot un-flag it"
                )
                continue
            record = inventory[block.position]
            if record.sold and record.sold_to == allocation.buyer_id:
                record.mark_unsold()
            else:
                logger.error(
                    f"Record {block.position} on {allocation.listing_id} is not "
                    f"stamped with buyer {allocation.buyer_id}, leaving it as is"
                )
