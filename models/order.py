"""
Order data models.

An order is created exactly once per successful checkout or verified
payment code, and is the permanent receipt of what was delivered. Both
``Order`` and ``OrderItem`` are frozen: the allocated credential blocks
cannot change after creation.

This system models instant digital delivery, so every persisted order is
completed / delivered; there is no shipping phase.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Tuple

from .listing import (
    CredentialPayload,
    parse_datetime,
    payload_from_json,
    payload_to_json,
    utcnow,
)


class PaymentMethod(Enum):
    """Payment rails. The tag is stored on the order."""

    PAYSTACK = "paystack"
    """Instant gateway rail, verified through the payment oracle."""

    CRYPTO_BITCOIN = "crypto-bitcoin"
    CRYPTO_USDT = "crypto-usdt"

    WALLET = "wallet"
    """Stored balance."""

    BANK_TRANSFER = "whatsapp-bank"
    """Asynchronous, human-verified transfer through a payment code."""

    @classmethod
    def parse(cls, value: Any) -> "PaymentMethod":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        aliases = {"storedbalance": cls.WALLET, "stored_balance": cls.WALLET}
        if text in aliases:
            return aliases[text]
        return cls(text)


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderStatus(Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DeliveryStatus(Enum):
    PENDING = "pending"
    DELIVERED = "delivered"


@dataclass(frozen=True)
class OrderItem:
    """One line of an order with the credential blocks it consumed."""

    listing_id: str
    """Listing the blocks were allocated from."""

    title: str
    """Listing title at the time of sale."""

    quantity: int
    """Number of blocks delivered (always len(credentials))."""

    price: float
    """Unit price charged."""

    credentials: Tuple[CredentialPayload, ...] = ()
    """Allocated blocks, verbatim."""

    def to_dict(self, include_credentials: bool = True) -> Dict[str, Any]:
        data = {
            "account": self.listing_id,
            "title": self.title,
            "quantity": self.quantity,
            "price": self.price,
        }
        if include_credentials:
            data["credentials"] = [payload_to_json(p) for p in self.credentials]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderItem":
        return cls(
            listing_id=str(data.get("account", data.get("listing_id", ""))),
            title=data.get("title", ""),
            quantity=int(data.get("quantity", 0)),
            price=float(data.get("price", 0.0)),
            credentials=tuple(payload_from_json(p) for p in data.get("credentials", [])),
        )


@dataclass(frozen=True)
class Order:
    """
    A completed sale.

    Lifecycle:
        Built by the order factory after every line was allocated (and the
        wallet debited, for stored-balance payments), then saved once.
    """

    order_number: str
    buyer_id: str
    items: Tuple[OrderItem, ...]
    total_amount: float
    payment_method: PaymentMethod
    payment_reference: str
    payment_status: PaymentStatus = PaymentStatus.COMPLETED
    order_status: OrderStatus = OrderStatus.COMPLETED
    delivery_status: DeliveryStatus = DeliveryStatus.DELIVERED
    created_at: datetime = field(default_factory=utcnow)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def to_dict(self, include_credentials: bool = True) -> Dict[str, Any]:
        """
        Convert to a JSON-ready dict.

        Credentials are included only when the caller is the order's buyer.
        """
        return {
            "orderNumber": self.order_number,
            "buyer": self.buyer_id,
            "items": [item.to_dict(include_credentials) for item in self.items],
            "totalAmount": self.total_amount,
            "paymentMethod": self.payment_method.value,
            "paymentReference": self.payment_reference,
            "paymentStatus": self.payment_status.value,
            "orderStatus": self.order_status.value,
            "deliveryStatus": self.delivery_status.value,
            "createdAt": self.created_at.isoformat(),
        }

    def to_summary_dict(self) -> Dict[str, Any]:
        """Transaction summary for statistics: no credentials."""
        return {
            "orderNumber": self.order_number,
            "amount": self.total_amount,
            "date": self.created_at.isoformat(),
            "status": self.order_status.value,
            "itemCount": self.item_count,
            "items": [
                {"title": item.title, "quantity": item.quantity, "price": item.price}
                for item in self.items
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        return cls(
            order_number=data.get("orderNumber", ""),
            buyer_id=str(data.get("buyer", "")),
            items=tuple(OrderItem.from_dict(i) for i in data.get("items", [])),
            total_amount=float(data.get("totalAmount", 0.0)),
            payment_method=PaymentMethod.parse(data.get("paymentMethod")),
            payment_reference=data.get("paymentReference", ""),
            payment_status=PaymentStatus(data.get("paymentStatus", "completed")),
            order_status=OrderStatus(data.get("orderStatus", "completed")),
            delivery_status=DeliveryStatus(data.get("deliveryStatus", "delivered")),
            created_at=parse_datetime(data.get("createdAt")) or utcnow(),
        )


def credentials_delivered(items: List[OrderItem]) -> int:
    return sum(len(item.credentials) for item in items)
