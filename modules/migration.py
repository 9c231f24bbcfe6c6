"""
One-time migration of legacy credential shapes.

Rewrites every listing into the canonical shape (opaque text blocks):

    - single-record and inventory listings: each *unsold* record becomes a
      ``Label: value`` text block, in inventory order; sold records are
      dropped from the pool (their copies live in the orders that sold them)
    - listings carrying both fields: the inventory is shadowed by the text
      blocks and is cleared

Runs under each listing's lock, off the hot path. Idempotent: a second run
finds nothing to migrate.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List

from core.exceptions import ConcurrentModificationError
from core.locks import KeyedLocks
from models.listing import Listing, SourceShape
from logging_config import get_logger

if TYPE_CHECKING:
    from services.stores import ListingStore


# Module logger
logger = get_logger(__name__)


@dataclass
class MigrationReport:
    """Counts from one migration run."""

    scanned: int = 0
    migrated: int = 0
    already_canonical: int = 0
    records_converted: int = 0
    sold_records_dropped: int = 0
    by_source_shape: Dict[str, int] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scanned": self.scanned,
            "migratedCount": self.migrated,
            "alreadyCanonical": self.already_canonical,
            "recordsConverted": self.records_converted,
            "soldRecordsDropped": self.sold_records_dropped,
            "bySourceShape": dict(self.by_source_shape),
            "failed": list(self.failed),
        }


def needs_migration(listing: Listing) -> bool:
    """Any structured records left means the listing is not canonical yet."""
    return bool(listing.credentials_inventory)


def migrate_listing(listing: Listing) -> Dict[str, int]:
    """
    Convert one listing in place. Returns converted / dropped record counts.

    Does not persist; the caller saves.
    """
    converted = 0
    dropped = 0

    if not listing.credentials:
        blocks = []
        for record in listing.credentials_inventory:
            if record.sold:
                dropped += 1
                continue
            blocks.append(record.as_text_block())
            converted += 1
        listing.credentials = blocks
    else:
        dropped = len(listing.credentials_inventory)

    listing.credentials_inventory = []
    listing.source_shape = SourceShape.TEXT_BLOCKS if listing.credentials else SourceShape.EMPTY
    return {"converted": converted, "dropped": dropped}


def migrate_legacy_listings(listing_store: ListingStore, locks: KeyedLocks) -> MigrationReport:
    """
    Migrate every listing in the store to text blocks.

    Args:
        listing_store: Store to migrate
        locks: The per-listing locks shared with the allocation engine

    Returns:
        MigrationReport; listings that changed concurrently are listed in
        ``failed`` and can be picked up by running the migration again
    """
    logger.info("Starting listing credentials migration...")

    report = MigrationReport()
    by_shape: Counter = Counter()

    for snapshot in listing_store.all():
        report.scanned += 1

        with locks.hold(snapshot.id):
            listing = listing_store.find(snapshot.id)
            if listing is None:
                continue

            if not needs_migration(listing):
                report.already_canonical += 1
                continue

            source = listing.source_shape
            counts = migrate_listing(listing)

            try:
                listing_store.save(listing, expected_version=listing.version)
            except ConcurrentModificationError as e:
                logger.warning(f"Skipping listing {listing.id}: {e}")
                report.failed.append(listing.id)
                continue

        report.migrated += 1
        report.records_converted += counts["converted"]
        report.sold_records_dropped += counts["dropped"]
        by_shape[source.value] += 1

        logger.info(
            f"Migrated listing {listing.id} from {source.value}: "
            f"{counts['converted']} block(s), {counts['dropped']} sold record(s) dropped"
        )

    report.by_source_shape = dict(by_shape)
    logger.info(
        f"Listing credentials migration completed: {report.migrated} of "
        f"{report.scanned} listing(s) migrated"
    )
    return report
