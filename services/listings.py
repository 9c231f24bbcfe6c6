"""
Listing service.

Seller-facing listing management and the public, payload-free views of
listings. Writes to a listing's pool take the same per-listing lock the
allocation engine uses, so a restock can never interleave with a sale.

New listings are written in the canonical shape (opaque text blocks)
unless the seller supplies structured records.
"""

from __future__ import annotations

import math
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional

from core.exceptions import (
    InvalidCredentialsError,
    ListingNotFoundError,
    PermissionDeniedError,
    UserError,
)
from core.locks import KeyedLocks
from models.cart import CartLine, CartValidation
from models.listing import PRODUCT_TYPES, CredentialRecord, Listing, PoolShape
from modules.sanitize import sanitize_text
from services.normalizer import CredentialRecordNormalizer
from services.stores import BuyerStore, ListingStore
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

# Field limits
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 5000
MAX_PLATFORM_LENGTH = 100


def _new_listing_id() -> str:
    return uuid.uuid4().hex


class ListingService:
    """Create, edit, restock and summarize listings."""

    def __init__(
        self,
        listing_store: ListingStore,
        buyer_store: BuyerStore,
        locks: Optional[KeyedLocks] = None,
        normalizer: Optional[CredentialRecordNormalizer] = None,
        id_factory: Callable[[], str] = _new_listing_id,
    ):
        self._listings = listing_store
        self._buyers = buyer_store
        self._locks = locks or KeyedLocks("listing")
        self._normalizer = normalizer or CredentialRecordNormalizer()
        self._new_id = id_factory

    # =========================================================================
    # SELLER OPERATIONS
    # =========================================================================

    def create_listing(
        self,
        seller_id: str,
        title: Any,
        description: Any,
        price: Any,
        platform: Any = "",
        product_type: Any = "social_account",
        credentials: Any = None,
        credentials_inventory: Any = None,
    ) -> Listing:
        """
        Create a listing.

        Args:
            credentials: Text blocks (list of strings, or a single string)
            credentials_inventory: Structured records (list of dicts); only
                used when no text blocks are given

        Raises:
            UserError: Missing title, bad price or product type
            InvalidCredentialsError: Malformed credential blocks
        """
        clean_title = sanitize_text(title, MAX_TITLE_LENGTH)
        if not clean_title:
            raise UserError("Title is required")

        listing = Listing(
            id=self._new_id(),
            title=clean_title,
            description=sanitize_text(description, MAX_DESCRIPTION_LENGTH),
            price=_parse_price(price),
            seller_id=seller_id,
            platform=sanitize_text(platform, MAX_PLATFORM_LENGTH),
            product_type=_parse_product_type(product_type),
        )

        if credentials is not None:
            listing.credentials = _parse_text_blocks(credentials)
        if not listing.credentials and credentials_inventory is not None:
            listing.credentials_inventory = _parse_records(credentials_inventory)

        stored = self._listings.save(listing)
        logger.info(
            f"Listing {stored.id} created by seller {seller_id} ({stored.shape.value}, "
            f"{self._normalizer.normalize(stored).available_count} available)"
        )
        return stored

    def update_listing(self, listing_id: str, actor_id: str, **fields: Any) -> Listing:
        """
        Update descriptive fields and, optionally, replace the credential pool.

        Supported fields: title, description, price, platform, product_type,
        credentials, credentials_inventory. A new pool replaces the old one
        whole, in one shape; text blocks win if both fields are sent.
        Replacing the pool re-derives the sold flag, so a restocked listing
        is un-sold.
        """
        with self._locks.hold(listing_id):
            listing = self._load(listing_id)
            self._authorize(listing, actor_id)

            if fields.get("title"):
                listing.title = sanitize_text(fields["title"], MAX_TITLE_LENGTH) or listing.title
            if fields.get("description"):
                listing.description = sanitize_text(fields["description"], MAX_DESCRIPTION_LENGTH)
            if fields.get("price") is not None:
                listing.price = _parse_price(fields["price"])
            if fields.get("platform"):
                listing.platform = sanitize_text(fields["platform"], MAX_PLATFORM_LENGTH)
            if fields.get("product_type"):
                listing.product_type = _parse_product_type(fields["product_type"])

            text_blocks = records = None
            if fields.get("credentials") is not None:
                text_blocks = _parse_text_blocks(fields["credentials"])
            if fields.get("credentials_inventory") is not None:
                records = _parse_records(fields["credentials_inventory"])

            if text_blocks:
                listing.credentials = text_blocks
                listing.credentials_inventory = []
            elif records is not None:
                listing.credentials = []
                listing.credentials_inventory = records
            elif text_blocks is not None:
                listing.credentials = []
                listing.credentials_inventory = []

            was_sold = listing.is_sold
            stored = self._listings.save(listing, expected_version=listing.version)

        if was_sold and not stored.is_sold:
            logger.info(f"Listing {listing_id} restocked and marked available")
        logger.info(f"Listing {listing_id} updated by {actor_id}")
        return stored

    def add_credentials(self, listing_id: str, actor_id: str, blocks: Any) -> Dict[str, Any]:
        """
        Append credential blocks to a listing's pool, keeping its shape.

        Text blocks for opaque (or empty) pools, record dicts for
        structured pools. A sold-out listing becomes available again.

        Returns:
            The listing's public summary

        Raises:
            InvalidCredentialsError: Blocks missing, malformed or of the other shape
        """
        if isinstance(blocks, (str, dict)):
            blocks = [blocks]
        if not isinstance(blocks, list) or not blocks:
            raise InvalidCredentialsError("At least one credential block is required")

        with self._locks.hold(listing_id):
            listing = self._load(listing_id)
            self._authorize(listing, actor_id)

            if listing.shape is PoolShape.STRUCTURED:
                new_records = _parse_records(blocks)
                listing.credentials_inventory.extend(new_records)
                added = len(new_records)
            else:
                if any(isinstance(block, dict) for block in blocks):
                    raise InvalidCredentialsError(
                        "This listing stores text credential blocks; structured records "
                        "cannot be added to it",
                        {"listing_id": listing_id},
                    )
                new_blocks = _parse_text_blocks(blocks)
                listing.credentials = list(listing.credentials) + new_blocks
                added = len(new_blocks)

            if added == 0:
                raise InvalidCredentialsError("All supplied credential blocks were empty")

            stored = self._listings.save(listing, expected_version=listing.version)

        logger.info(f"Added {added} credential block(s) to listing {listing_id}")
        return self._summary(stored)

    def delete_listing(self, listing_id: str, actor_id: str) -> None:
        with self._locks.hold(listing_id):
            listing = self._load(listing_id)
            self._authorize(listing, actor_id)
            self._listings.delete(listing_id)

        logger.info(f"Listing {listing_id} deleted by {actor_id}")

    # =========================================================================
    # PUBLIC VIEWS
    # =========================================================================

    def get_summary(self, listing_id: str) -> Dict[str, Any]:
        return self._summary(self._load(listing_id))

    def list_summaries(
        self,
        include_unavailable: bool = False,
        platform: Optional[str] = None,
        product_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Listing summaries, newest first. Sold-out listings are hidden by default."""
        platform_filter = (platform or "").strip().lower()

        summaries = []
        for listing in self._listings.all():
            if not include_unavailable and not listing.is_available:
                continue
            if platform_filter and platform_filter not in listing.platform.lower():
                continue
            if product_type and listing.product_type != product_type:
                continue
            summaries.append(self._summary(listing))
        return summaries

    def inventory_stats(self) -> Dict[str, int]:
        return {
            "totalListings": self._listings.count(),
            "availableListings": self._listings.count(lambda l: l.is_available),
            "soldOutListings": self._listings.count(lambda l: l.is_sold),
        }

    def validate_cart(self, cart_lines: Iterable[CartLine]) -> CartValidation:
        """Report which cart lines still resolve to a listing. Never raises for stale items."""
        valid_items: List[CartLine] = []
        invalid_items: List[Dict[str, Any]] = []

        for line in cart_lines:
            if line.listing_id and self._listings.find(line.listing_id) is not None:
                valid_items.append(line)
            else:
                invalid_items.append(
                    {"id": line.listing_id, "title": line.title or "Unknown Item"}
                )

        return CartValidation(valid_items=valid_items, invalid_items=invalid_items)

    # =========================================================================
    # INTERNAL
    # =========================================================================

    def _load(self, listing_id: str) -> Listing:
        listing = self._listings.find(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    def _authorize(self, listing: Listing, actor_id: str) -> None:
        if listing.seller_id == actor_id:
            return
        actor = self._buyers.find(actor_id)
        if actor is not None and actor.is_admin:
            return
        raise PermissionDeniedError(
            "Only the listing's seller can change it", {"listing_id": listing.id}
        )

    def _summary(self, listing: Listing) -> Dict[str, Any]:
        pool = self._normalizer.normalize(listing)
        return listing.to_summary_dict(pool.available_count, pool.total_count)


def _parse_price(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise UserError("Price must be a number", {"price": value})
    if isinstance(value, bool) or not math.isfinite(price) or price < 0:
        raise UserError("Price must be a non-negative number", {"price": value})
    return round(price, 2)


def _parse_product_type(value: Any) -> str:
    product_type = str(value or "social_account").strip()
    if product_type not in PRODUCT_TYPES:
        raise UserError(
            f"Unknown product type: {product_type}",
            {"product_type": product_type, "allowed": list(PRODUCT_TYPES)},
        )
    return product_type


def _parse_text_blocks(raw: Any) -> List[str]:
    """Text blocks are kept verbatim; blank ones are dropped."""
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        raise InvalidCredentialsError("Credentials must be a list of text blocks")
    if any(not isinstance(block, str) for block in raw):
        raise InvalidCredentialsError("Every credential block must be text")
    return [block for block in raw if block.strip()]


def _parse_records(raw: Any) -> List[CredentialRecord]:
    """New structured records; incoming sale markers are ignored."""
    if not isinstance(raw, list):
        raise InvalidCredentialsError("Credential records must be a list")

    records = []
    for index, entry in enumerate(raw):
        if not CredentialRecord.is_valid_document(entry):
            raise InvalidCredentialsError(
                "Every credential record needs an email and a password",
                {"index": index},
            )
        record = CredentialRecord.from_document(entry)
        record.mark_unsold()
        records.append(record)
    return records
