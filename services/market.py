"""
Service wiring.

Builds every engine component over one set of stores, sharing the
per-listing lock registry between the allocation engine, the listing
service and the migration so they all serialize on the same listing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from core.locks import KeyedLocks
from core.payment_gateway import PaymentOracle
from models.listing import utcnow
from models.crypto_settings import CryptoSettings, WalletAddress
from models.payment_code import BankTransferSettings
from modules.migration import MigrationReport, migrate_legacy_listings
from services.allocation import AllocationEngine
from services.crypto_settings import CryptoSettingsService
from services.listings import ListingService
from services.normalizer import CredentialRecordNormalizer
from services.orders import OrderFactory, OrderHistory
from services.payment_codes import PaymentCodeRegistry
from services.stores import SettingsStore, Stores
from services.wallet import WalletLedger


@dataclass
class MarketServices:
    """Everything the routes need, built once per application."""

    stores: Stores
    listing_locks: KeyedLocks
    normalizer: CredentialRecordNormalizer
    allocation: AllocationEngine
    wallet: WalletLedger
    orders: OrderFactory
    history: OrderHistory
    payment_codes: PaymentCodeRegistry
    crypto_settings: CryptoSettingsService
    listings: ListingService

    def migrate_listings(self) -> MigrationReport:
        return migrate_legacy_listings(self.stores.listings, self.listing_locks)


def seed_bank_transfer_settings(settings: Mapping[str, Any]) -> BankTransferSettings:
    """Initial bank transfer settings from configuration."""
    return BankTransferSettings(
        bank_name=settings.get("BANK_NAME", ""),
        account_name=settings.get("BANK_ACCOUNT_NAME", ""),
        account_number=settings.get("BANK_ACCOUNT_NUMBER", ""),
        is_enabled=bool(settings.get("BANK_TRANSFER_ENABLED", False)),
    )


def seed_crypto_settings(settings: Mapping[str, Any]) -> CryptoSettings:
    """Initial crypto settings from configuration."""
    return CryptoSettings(
        bitcoin=WalletAddress(address=settings.get("CRYPTO_BITCOIN_ADDRESS", "")),
        usdt=WalletAddress(address=settings.get("CRYPTO_USDT_ADDRESS", "")),
        usdt_network=str(settings.get("CRYPTO_USDT_NETWORK") or "TRC20").upper(),
    )


def build_services(
    settings: Mapping[str, Any],
    stores: Optional[Stores] = None,
    oracle: Optional[PaymentOracle] = None,
    clock: Callable[[], datetime] = utcnow,
) -> MarketServices:
    """
    Wire the engine.

    Args:
        settings: Flask config (or any mapping with the Config keys)
        stores: Existing stores; a fresh in-memory set by default
        oracle: Gateway verifier; None disables gateway verification
        clock: Time source shared by every component
    """
    normalizer = CredentialRecordNormalizer()
    if stores is None:
        stores = Stores(
            settings=SettingsStore(
                seed_bank_transfer_settings(settings), seed_crypto_settings(settings)
            )
        )

    listing_locks = KeyedLocks("listing")

    allocation = AllocationEngine(
        stores.listings,
        locks=listing_locks,
        normalizer=normalizer,
        max_retries=int(settings.get("ALLOCATION_MAX_RETRIES", 3)),
        clock=clock,
    )
    wallet = WalletLedger(
        stores.buyers,
        stores.ledger,
        locks=KeyedLocks("wallet"),
        min_funding=float(settings.get("WALLET_MIN_FUNDING", 100)),
        max_funding=float(settings.get("WALLET_MAX_FUNDING", 1_000_000)),
        clock=clock,
    )
    orders = OrderFactory(
        stores.listings,
        stores.orders,
        allocation,
        wallet,
        oracle=oracle,
        clock=clock,
    )
    payment_codes = PaymentCodeRegistry(
        stores.payment_codes,
        stores.settings,
        stores.listings,
        stores.orders,
        orders,
        locks=KeyedLocks("payment_code"),
        ttl_hours=float(settings.get("PAYMENT_CODE_TTL_HOURS", 24)),
        max_attempts=int(settings.get("PAYMENT_CODE_MAX_ATTEMPTS", 10)),
        purge_after_hours=float(settings.get("PAYMENT_CODE_PURGE_AFTER_HOURS", 24)),
        clock=clock,
    )
    listings = ListingService(
        stores.listings,
        stores.buyers,
        locks=listing_locks,
        normalizer=normalizer,
    )

    return MarketServices(
        stores=stores,
        listing_locks=listing_locks,
        normalizer=normalizer,
        allocation=allocation,
        wallet=wallet,
        orders=orders,
        history=OrderHistory(stores.orders, clock=clock),
        payment_codes=payment_codes,
        crypto_settings=CryptoSettingsService(stores.settings, clock=clock),
        listings=listings,
    )
