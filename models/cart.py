"""
Cart line models.

A checkout request or a payment-code request carries a cart: listing id +
quantity pairs. Clients send the listing id as ``_id`` (the catalog's
document id); ``id`` and ``listing_id`` are accepted too.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class CartLine:
    """One requested listing and quantity."""

    listing_id: str
    quantity: int = 1
    title: str = ""
    """Title as the buyer saw it; only used to describe stale items."""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        listing_id = data.get("_id", data.get("id", data.get("listing_id", "")))
        quantity = data.get("quantity", 1)
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            quantity = 0
        return cls(
            listing_id=str(listing_id or ""),
            quantity=quantity,
            title=str(data.get("title", "") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"_id": self.listing_id, "quantity": self.quantity, "title": self.title}


@dataclass(frozen=True)
class PricedLine:
    """
    A validated cart line with the price and title fixed for the sale.

    Checkout prices lines from the listing at allocation time; payment
    codes carry the prices snapshotted when the code was generated.
    """

    listing_id: str
    quantity: int
    price: Optional[float] = None
    title: str = ""


@dataclass(frozen=True)
class CartValidation:
    """Outcome of checking a cart against the listing store."""

    valid_items: List[CartLine]
    invalid_items: List[Dict[str, Any]]

    @property
    def valid(self) -> bool:
        return not self.invalid_items

    def to_dict(self) -> Dict[str, Any]:
        if self.valid:
            return {"valid": True, "message": "All cart items are valid"}
        return {
            "valid": False,
            "invalidItems": self.invalid_items,
            "validItems": [line.to_dict() for line in self.valid_items],
            "message": "Some items in your cart are no longer available",
        }
