"""
Services layer for the credential market.

This module contains the engine:
- CredentialRecordNormalizer: Canonical view of a listing's pool
- AllocationEngine: Linearizable per-listing allocation and release
- WalletLedger: Stored balances with check-and-act debits
- OrderFactory / OrderHistory: Sale orchestration and order reads
- PaymentCodeRegistry / PaymentCodeSweeper: Bank transfer codes
- CryptoSettingsService: Receiving addresses for the crypto rails
- ListingService: Seller operations and public summaries
- Stores: Thread-safe in-memory collaborator stores

Thread Model:
    Main Thread (Flask)
    ├── Request threads (one checkout / verification each)
    └── PaymentCodeSweeper thread (periodic expiry and purge)

Shared state is only reached through the stores, under per-listing,
per-buyer and per-code locks.
"""

from .normalizer import CredentialRecordNormalizer, NormalizedPool
from .stores import (
    ListingStore,
    OrderStore,
    PaymentCodeStore,
    BuyerStore,
    LedgerStore,
    SettingsStore,
    Stores,
)
from .allocation import Allocation, AllocationEngine, AllocationResult
from .wallet import WalletLedger, DebitResult, TransactionPage
from .orders import OrderFactory, OrderHistory, BuyerStats
from .payment_codes import PaymentCodeRegistry, PaymentCodeSweeper, SweepReport
from .crypto_settings import CryptoSettingsService
from .listings import ListingService
from .market import MarketServices, build_services

__all__ = [
    "CredentialRecordNormalizer",
    "NormalizedPool",
    "ListingStore",
    "OrderStore",
    "PaymentCodeStore",
    "BuyerStore",
    "LedgerStore",
    "SettingsStore",
    "Stores",
    "Allocation",
    "AllocationEngine",
    "AllocationResult",
    "WalletLedger",
    "DebitResult",
    "TransactionPage",
    "OrderFactory",
    "OrderHistory",
    "BuyerStats",
    "PaymentCodeRegistry",
    "PaymentCodeSweeper",
    "SweepReport",
    "CryptoSettingsService",
    "ListingService",
    "MarketServices",
    "build_services",
]
