"""
Admin-managed settings for the crypto rails.

Buyers paying with bitcoin or USDT send funds to these addresses and
quote the transaction as their payment reference at checkout. A single
record exists; it is created with defaults on first read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


USDT_NETWORKS = ("TRC20", "ERC20", "BEP20")

DEFAULT_COMMUNITY_LINK = "https://chat.whatsapp.com/your-community-link"

DEFAULT_CRYPTO_INSTRUCTIONS = (
    "After making payment, join our WhatsApp community and send the "
    "transaction screenshot to receive your credentials."
)


@dataclass
class WalletAddress:
    """One receiving address and its optional QR code (base64 image or URL)."""

    address: str = ""
    qr_code: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "qrCode": self.qr_code}


@dataclass
class CryptoSettings:
    bitcoin: WalletAddress = field(default_factory=WalletAddress)
    usdt: WalletAddress = field(default_factory=WalletAddress)
    usdt_network: str = "TRC20"
    community_link: str = DEFAULT_COMMUNITY_LINK
    instructions: str = DEFAULT_CRYPTO_INSTRUCTIONS
    updated_at: Optional[datetime] = None

    def to_public_dict(self) -> Dict[str, Any]:
        usdt = self.usdt.to_dict()
        usdt["network"] = self.usdt_network
        return {
            "bitcoin": self.bitcoin.to_dict(),
            "usdt": usdt,
            "whatsappCommunityLink": self.community_link,
            "instructions": self.instructions,
        }
