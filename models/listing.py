"""
Listing and credential data models.

A listing owns a pool of credential blocks that are consumed exactly once
per sale. Persisted listings come in three historical shapes:

    1. ``credentials`` as one structured object {email, password, ...}
       (oldest; the whole listing was a single login)
    2. ``credentialsInventory``: a list of structured records, each with its
       own isSold / soldAt / soldTo marker
    3. ``credentials`` as a list of free-text blocks, consumed by removal
       (current shape)

``Listing.from_document`` resolves shape 1 into shape 2 at the store
boundary, so everything past the store sees at most two shapes, reported
by ``Listing.shape``. A listing uses exactly one shape at a time: whichever
field is non-empty, text blocks first.

The sold / available flags are derived from the pool and are recomputed
by the listing store on every write. They are never authoritative.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


PRODUCT_TYPES = (
    "social_account",
    "vpn",
    "dating_app",
    "texting_app",
    "proxy",
    "apple_service",
    "other",
)


class PoolShape(Enum):
    """Storage shape of a listing's credential pool."""

    OPAQUE = "opaque"
    """Free-text blocks; a sold block is removed from the pool."""

    STRUCTURED = "structured"
    """Structured records; a sold record stays in the pool, flagged."""

    EMPTY = "empty"
    """Nothing stored in either field."""


class SourceShape(Enum):
    """Which persisted shape a listing was read from (for migration reports)."""

    TEXT_BLOCKS = "text_blocks"
    SINGLE_RECORD = "single_record"
    INVENTORY = "inventory"
    EMPTY = "empty"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Accept a datetime or an ISO 8601 string; anything else is None."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def clean_text_blocks(blocks: Any) -> List[str]:
    """
    Normalize raw opaque credentials into a list of non-blank strings.

    A single string becomes a one-block list. Non-string and blank
    entries are dropped; every other block is kept verbatim.
    """
    if isinstance(blocks, str):
        blocks = [blocks]
    if not isinstance(blocks, (list, tuple)):
        return []
    return [block for block in blocks if isinstance(block, str) and block.strip()]


# =============================================================================
# DELIVERED CREDENTIALS
# =============================================================================

@dataclass(frozen=True)
class DeliveredCredential:
    """
    Structured credential as copied into an order.

    Immutable: an order is the permanent receipt of what was delivered.
    Carries no sale markers.
    """

    email: str
    password: str
    username: str = ""
    phone: str = ""
    recovery_email: str = ""
    additional_info: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "email": self.email,
            "password": self.password,
            "username": self.username,
            "phone": self.phone,
            "recoveryEmail": self.recovery_email,
            "additionalInfo": self.additional_info,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeliveredCredential":
        return cls(
            email=data.get("email", ""),
            password=data.get("password", ""),
            username=data.get("username", "") or "",
            phone=data.get("phone", "") or "",
            recovery_email=data.get("recoveryEmail", data.get("recovery_email", "")) or "",
            additional_info=data.get("additionalInfo", data.get("additional_info", "")) or "",
        )


CredentialPayload = Union[str, DeliveredCredential]


def payload_to_json(payload: CredentialPayload) -> Union[str, Dict[str, str]]:
    """JSON form of one delivered block: the text itself, or the record dict."""
    if isinstance(payload, DeliveredCredential):
        return payload.to_dict()
    return payload


def payload_from_json(data: Any) -> CredentialPayload:
    if isinstance(data, dict):
        return DeliveredCredential.from_dict(data)
    return str(data)


# =============================================================================
# STRUCTURED RECORDS
# =============================================================================

@dataclass
class CredentialRecord:
    """
    One structured credential in a listing's inventory.

    ``sold`` / ``sold_at`` / ``sold_to`` are stamped by the allocation
    engine when the record is delivered.
    """

    email: str
    password: str
    username: str = ""
    phone: str = ""
    recovery_email: str = ""
    additional_info: str = ""
    sold: bool = False
    sold_at: Optional[datetime] = None
    sold_to: Optional[str] = None

    def delivered(self) -> DeliveredCredential:
        """Copy of the secret fields, without sale markers."""
        return DeliveredCredential(
            email=self.email,
            password=self.password,
            username=self.username,
            phone=self.phone,
            recovery_email=self.recovery_email,
            additional_info=self.additional_info,
        )

    def mark_sold(self, buyer_id: str, at: datetime) -> None:
        self.sold = True
        self.sold_at = at
        self.sold_to = buyer_id

    def mark_unsold(self) -> None:
        self.sold = False
        self.sold_at = None
        self.sold_to = None

    def as_text_block(self) -> str:
        """Render as a free-text block, one ``Label: value`` line per non-empty field."""
        lines = [
            ("Email", self.email),
            ("Password", self.password),
            ("Username", self.username),
            ("Phone", self.phone),
            ("Recovery Email", self.recovery_email),
            ("Additional Info", self.additional_info),
        ]
        return "\n".join(f"{label}: {value}" for label, value in lines if value)

    def to_document(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "password": self.password,
            "username": self.username,
            "phone": self.phone,
            "recoveryEmail": self.recovery_email,
            "additionalInfo": self.additional_info,
            "isSold": self.sold,
            "soldAt": _isoformat(self.sold_at),
            "soldTo": self.sold_to,
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any], sold_default: bool = False) -> "CredentialRecord":
        """
        Build a record from its persisted form.

        Args:
            data: Record dict (camelCase or snake_case keys)
            sold_default: Sold marker when the document has none (used for
                the single-record shape, whose marker was the listing's isSold)
        """
        sold = data.get("isSold", data.get("sold", sold_default))
        return cls(
            email=data.get("email", "") or "",
            password=data.get("password", "") or "",
            username=data.get("username", "") or "",
            phone=data.get("phone", "") or "",
            recovery_email=data.get("recoveryEmail", data.get("recovery_email", "")) or "",
            additional_info=data.get("additionalInfo", data.get("additional_info", "")) or "",
            sold=bool(sold),
            sold_at=parse_datetime(data.get("soldAt", data.get("sold_at"))),
            sold_to=data.get("soldTo", data.get("sold_to")),
        )

    @staticmethod
    def is_valid_document(data: Any) -> bool:
        """Email and password are required for a structured record."""
        return (
            isinstance(data, dict)
            and bool(str(data.get("email", "") or "").strip())
            and bool(str(data.get("password", "") or "").strip())
        )


# =============================================================================
# CANONICAL BLOCK
# =============================================================================

@dataclass(frozen=True)
class CredentialBlock:
    """
    One available block in the canonical (shape-independent) view.

    Attributes:
        position: Index of the block in its underlying pool field
        text: Block contents for the opaque shape
        record: Secret fields for the structured shape
    """

    position: int
    text: Optional[str] = None
    record: Optional[DeliveredCredential] = None

    @property
    def payload(self) -> CredentialPayload:
        if self.record is not None:
            return self.record
        return self.text or ""


# =============================================================================
# LISTING
# =============================================================================

@dataclass
class Listing:
    """
    A sellable product with its credential pool stored inline.

    ``version`` is managed by the listing store and used for
    compare-and-set writes; callers never change it.
    """

    id: str
    title: str
    description: str
    price: float
    seller_id: str
    platform: str = ""
    product_type: str = "social_account"
    credentials: List[str] = field(default_factory=list)
    credentials_inventory: List[CredentialRecord] = field(default_factory=list)
    is_sold: bool = False
    is_available: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0
    source_shape: SourceShape = SourceShape.EMPTY

    @property
    def shape(self) -> PoolShape:
        """
        Shape in use.

        A stored listing holds one shape only: the store drops an inventory
        shadowed by text blocks. An unsaved listing holding both reads as
        OPAQUE.
        """
        if clean_text_blocks(self.credentials):
            return PoolShape.OPAQUE
        if self.credentials_inventory:
            return PoolShape.STRUCTURED
        return PoolShape.EMPTY

    def to_document(self) -> Dict[str, Any]:
        """Persisted form, always in the current (two-field) shape."""
        return {
            "_id": self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "seller": self.seller_id,
            "platform": self.platform,
            "productType": self.product_type,
            "credentials": list(self.credentials),
            "credentialsInventory": [r.to_document() for r in self.credentials_inventory],
            "isSold": self.is_sold,
            "isAvailable": self.is_available,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Listing":
        """
        Read a persisted listing in any of the three historical shapes.

        A single structured ``credentials`` object is converted into a
        one-record inventory whose sold marker is the document's isSold,
        unless the document already carries an inventory. Non-blank text
        blocks win: an inventory stored beside them is dropped, so it can
        never resurface once the blocks sell out.
        """
        raw_credentials = doc.get("credentials")
        raw_inventory = doc.get("credentialsInventory", doc.get("credentials_inventory")) or []
        if not isinstance(raw_inventory, list):
            raw_inventory = []

        inventory = [
            CredentialRecord.from_document(entry)
            for entry in raw_inventory
            if CredentialRecord.is_valid_document(entry)
        ]

        if isinstance(raw_credentials, dict):
            text_blocks: List[str] = []
            if not inventory and CredentialRecord.is_valid_document(raw_credentials):
                inventory = [
                    CredentialRecord.from_document(
                        raw_credentials, sold_default=bool(doc.get("isSold", False))
                    )
                ]
                source = SourceShape.SINGLE_RECORD
            else:
                source = SourceShape.INVENTORY if inventory else SourceShape.EMPTY
        else:
            text_blocks = clean_text_blocks(raw_credentials)
            if text_blocks:
                inventory = []
                source = SourceShape.TEXT_BLOCKS
            elif inventory:
                source = SourceShape.INVENTORY
            else:
                source = SourceShape.EMPTY

        return cls(
            id=str(doc.get("_id", doc.get("id", ""))),
            title=doc.get("title", ""),
            description=doc.get("description", ""),
            price=float(doc.get("price", 0) or 0),
            seller_id=str(doc.get("seller", doc.get("seller_id", ""))),
            platform=doc.get("platform", "") or "",
            product_type=doc.get("productType", doc.get("product_type", "social_account")),
            credentials=text_blocks,
            credentials_inventory=inventory,
            is_sold=bool(doc.get("isSold", False)),
            is_available=bool(doc.get("isAvailable", True)),
            created_at=parse_datetime(doc.get("createdAt")) or utcnow(),
            updated_at=parse_datetime(doc.get("updatedAt")) or utcnow(),
            version=int(doc.get("version", 0) or 0),
            source_shape=source,
        )

    def to_summary_dict(self, available_count: int, total_count: int) -> Dict[str, Any]:
        """Public view: counts only, never the credential payload."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "platform": self.platform,
            "productType": self.product_type,
            "seller": self.seller_id,
            "isSold": self.is_sold,
            "isAvailable": self.is_available,
            "availableCredentialsCount": available_count,
            "totalCredentialsCount": total_count,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }
