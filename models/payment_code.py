"""
Payment code models for the bank transfer rail.

A buyer generates a code, pays by bank transfer quoting it, and an admin
later verifies the transfer. The code snapshots the cart (prices and
titles) at generation time so later listing edits cannot change an
in-flight code.

State machine:
    PENDING -> VERIFIED | EXPIRED | CANCELLED

PENDING is the only non-terminal state. VERIFIED is the only transition
that also creates an order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .listing import utcnow
from .order import Order


class PaymentCodeStatus(Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentCodeStatus.PENDING


@dataclass(frozen=True)
class CartSnapshotLine:
    """Cart line frozen at code generation time."""

    listing_id: str
    quantity: int
    price: float
    title: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.listing_id,
            "quantity": self.quantity,
            "price": self.price,
            "title": self.title,
        }


@dataclass
class PaymentCode:
    """
    A time-boxed token for an unpaid bank transfer order.

    Attributes:
        code: Opaque alphanumeric code quoted by the buyer
        buyer_id: Buyer who generated it (only they may read its status)
        cart_items: Snapshot of the cart at generation time
        total_amount: Amount the buyer must transfer
        expires_at: After this instant the code can no longer be verified
    """

    code: str
    buyer_id: str
    cart_items: List[CartSnapshotLine]
    total_amount: float
    expires_at: datetime
    status: PaymentCodeStatus = PaymentCodeStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    order_number: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    def is_overdue(self, now: datetime) -> bool:
        """True once ``now`` is past ``expires_at``."""
        return now > self.expires_at

    def mark_expired(self) -> None:
        self.status = PaymentCodeStatus.EXPIRED

    def mark_cancelled(self, at: datetime) -> None:
        self.status = PaymentCodeStatus.CANCELLED
        self.cancelled_at = at

    def mark_verified(self, admin_id: str, at: datetime, order_number: str) -> None:
        self.status = PaymentCodeStatus.VERIFIED
        self.verified_by = admin_id
        self.verified_at = at
        self.order_number = order_number

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "buyer": self.buyer_id,
            "cartItems": [line.to_dict() for line in self.cart_items],
            "totalAmount": self.total_amount,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "verifiedBy": self.verified_by,
            "verifiedAt": self.verified_at.isoformat() if self.verified_at else None,
            "orderNumber": self.order_number,
        }


@dataclass(frozen=True)
class CodeSnapshot:
    """Read-only status of a code, as shown to the buyer who generated it."""

    code: str
    status: PaymentCodeStatus
    total_amount: float
    created_at: datetime
    expires_at: datetime
    verified_at: Optional[datetime] = None
    order_number: Optional[str] = None
    order: Optional[Order] = None
    """Resolved order, present only when the code is verified."""

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "code": self.code,
            "status": self.status.value,
            "totalAmount": self.total_amount,
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "verifiedAt": self.verified_at.isoformat() if self.verified_at else None,
        }
        if self.order_number:
            data["orderNumber"] = self.order_number
        if self.order is not None:
            data["order"] = self.order.to_dict(include_credentials=True)
        return data


# =============================================================================
# BANK TRANSFER SETTINGS
# =============================================================================

DEFAULT_INSTRUCTIONS = (
    "Transfer the exact amount to the account details above, then provide "
    "the generated payment code to complete your order."
)


@dataclass
class BankTransferSettings:
    """Admin-managed settings for the bank transfer rail (single record)."""

    bank_name: str = ""
    account_name: str = ""
    account_number: str = ""
    instructions: str = DEFAULT_INSTRUCTIONS
    is_enabled: bool = False
    updated_at: Optional[datetime] = None

    @property
    def has_bank_details(self) -> bool:
        return all(
            value.strip()
            for value in (self.bank_name, self.account_name, self.account_number)
        )

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "bankName": self.bank_name,
            "accountName": self.account_name,
            "accountNumber": self.account_number,
            "instructions": self.instructions,
            "isEnabled": self.is_enabled,
        }
