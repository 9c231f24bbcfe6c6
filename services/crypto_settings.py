"""
Crypto payment settings.

Admins publish the bitcoin and USDT receiving addresses buyers pay into
before checking out on a crypto rail. Reads are public; the payment
itself is confirmed by the reference the buyer submits at checkout.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional

from core.exceptions import InvalidSettingsError
from models.crypto_settings import USDT_NETWORKS, CryptoSettings
from models.listing import utcnow
from modules.sanitize import sanitize_text
from services.stores import SettingsStore
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

# Field limits
MAX_ADDRESS_LENGTH = 200
MAX_LINK_LENGTH = 500
MAX_INSTRUCTIONS_LENGTH = 1000


class CryptoSettingsService:
    """Read and update the single crypto settings record."""

    def __init__(self, settings_store: SettingsStore, clock: Callable[[], datetime] = utcnow):
        self._settings = settings_store
        self._clock = clock

    def get_settings(self) -> CryptoSettings:
        return self._settings.get_crypto()

    def update_settings(
        self,
        admin_id: str,
        bitcoin_address: Optional[Any] = None,
        bitcoin_qr_code: Optional[Any] = None,
        usdt_address: Optional[Any] = None,
        usdt_qr_code: Optional[Any] = None,
        usdt_network: Optional[Any] = None,
        community_link: Optional[Any] = None,
        instructions: Optional[Any] = None,
    ) -> CryptoSettings:
        """
        Update the crypto settings. Fields left as None are unchanged.

        QR codes are stored as sent (base64 image or URL); every other
        field has markup stripped.

        Raises:
            InvalidSettingsError: USDT network is not TRC20, ERC20 or BEP20
        """
        settings = self._settings.get_crypto()

        if usdt_network is not None:
            network = str(usdt_network).strip().upper()
            if network not in USDT_NETWORKS:
                raise InvalidSettingsError(
                    f"Unsupported USDT network: {usdt_network}",
                    {"usdt_network": str(usdt_network), "allowed": list(USDT_NETWORKS)},
                )
            settings.usdt_network = network

        if bitcoin_address is not None:
            settings.bitcoin.address = sanitize_text(bitcoin_address, MAX_ADDRESS_LENGTH)
        if bitcoin_qr_code is not None:
            settings.bitcoin.qr_code = str(bitcoin_qr_code).strip()
        if usdt_address is not None:
            settings.usdt.address = sanitize_text(usdt_address, MAX_ADDRESS_LENGTH)
        if usdt_qr_code is not None:
            settings.usdt.qr_code = str(usdt_qr_code).strip()
        if community_link is not None:
            settings.community_link = sanitize_text(community_link, MAX_LINK_LENGTH)
        if instructions is not None:
            settings.instructions = sanitize_text(instructions, MAX_INSTRUCTIONS_LENGTH)

        settings.updated_at = self._clock()
        self._settings.save_crypto(settings)

        logger.info(f"Crypto settings updated by {admin_id} (USDT on {settings.usdt_network})")
        return settings
