"""
Credential record normalizer.

Turns a listing's stored pool (opaque text blocks or structured inventory)
into one canonical view: the ordered available blocks plus a count of
consumed ones. The allocation engine only ever works on this view.

Invariant, for every listing at every observation point:
    available_count + consumed_count == total_count

The pool is ground truth. A stored ``is_sold`` flag is ignored here; the
listing store derives it from this view on every write.

Pure read: normalize() never mutates the listing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from models.listing import CredentialBlock, Listing, PoolShape, clean_text_blocks


@dataclass(frozen=True)
class NormalizedPool:
    """Canonical view of a listing's credential pool."""

    shape: PoolShape
    """Shape the pool is stored in."""

    available_blocks: Tuple[CredentialBlock, ...]
    """Blocks that can still be sold, in pool order (oldest first)."""

    consumed_count: int
    """Blocks already sold that are still in the pool (structured shape only)."""

    @property
    def available_count(self) -> int:
        return len(self.available_blocks)

    @property
    def total_count(self) -> int:
        return self.available_count + self.consumed_count

    @property
    def is_sold_out(self) -> bool:
        return self.available_count == 0


class CredentialRecordNormalizer:
    """Stateless; one shared instance is enough."""

    def normalize(self, listing: Listing) -> NormalizedPool:
        shape = listing.shape

        if shape is PoolShape.OPAQUE:
            # Opaque blocks are consumed by removal, so nothing consumed remains
            blocks = tuple(
                CredentialBlock(position=index, text=text)
                for index, text in enumerate(clean_text_blocks(listing.credentials))
            )
            return NormalizedPool(shape=shape, available_blocks=blocks, consumed_count=0)

        if shape is PoolShape.STRUCTURED:
            available = []
            consumed = 0
            for index, record in enumerate(listing.credentials_inventory):
                if record.sold:
                    consumed += 1
                else:
                    available.append(CredentialBlock(position=index, record=record.delivered()))
            return NormalizedPool(
                shape=shape, available_blocks=tuple(available), consumed_count=consumed
            )

        return NormalizedPool(shape=PoolShape.EMPTY, available_blocks=(), consumed_count=0)
