"""
Data models for the credential market.

This module contains dataclasses for:
- Listing: A sellable product and its credential pool (three stored shapes)
- CartLine / PricedLine: Requested listing + quantity pairs
- Order / OrderItem: Frozen receipt of a completed sale
- PaymentCode / CodeSnapshot: Bank transfer codes and their state machine
- BankTransferSettings: Admin-managed bank details
- CryptoSettings: Admin-managed crypto receiving addresses
- Buyer / LedgerEntry: Wallet owner and wallet history

Orders, order items, ledger entries and credential blocks are frozen so
they can be handed between request threads without copying.
"""

from .listing import (
    Listing,
    CredentialRecord,
    CredentialBlock,
    DeliveredCredential,
    PoolShape,
    SourceShape,
)
from .cart import CartLine, PricedLine, CartValidation
from .order import (
    Order,
    OrderItem,
    PaymentMethod,
    PaymentStatus,
    OrderStatus,
    DeliveryStatus,
)
from .payment_code import (
    PaymentCode,
    PaymentCodeStatus,
    CartSnapshotLine,
    CodeSnapshot,
    BankTransferSettings,
)
from .crypto_settings import CryptoSettings, WalletAddress
from .buyer import Buyer, LedgerEntry, LedgerKind

__all__ = [
    # Listing models
    "Listing",
    "CredentialRecord",
    "CredentialBlock",
    "DeliveredCredential",
    "PoolShape",
    "SourceShape",
    # Cart models
    "CartLine",
    "PricedLine",
    "CartValidation",
    # Order models
    "Order",
    "OrderItem",
    "PaymentMethod",
    "PaymentStatus",
    "OrderStatus",
    "DeliveryStatus",
    # Payment code models
    "PaymentCode",
    "PaymentCodeStatus",
    "CartSnapshotLine",
    "CodeSnapshot",
    "BankTransferSettings",
    "CryptoSettings",
    "WalletAddress",
    # Wallet models
    "Buyer",
    "LedgerEntry",
    "LedgerKind",
]
