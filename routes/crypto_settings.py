"""
Crypto settings routes.

Handles:
- /api/crypto-settings - Public receiving addresses (GET), admin update (PUT)
"""

from flask import Blueprint

from logging_config import get_logger
from routes.common import get_services, json_body, require_admin, success


# Module logger
logger = get_logger(__name__)

crypto_settings_bp = Blueprint("crypto_settings", __name__, url_prefix="/api/crypto-settings")


@crypto_settings_bp.route("", methods=["GET"])
def get_settings():
    settings = get_services().crypto_settings.get_settings()
    return success(settings=settings.to_public_dict())


@crypto_settings_bp.route("", methods=["PUT"])
def update_settings():
    admin = require_admin()
    body = json_body()

    settings = get_services().crypto_settings.update_settings(
        admin.id,
        bitcoin_address=body.get("bitcoinAddress"),
        bitcoin_qr_code=body.get("bitcoinQrCode"),
        usdt_address=body.get("usdtAddress"),
        usdt_qr_code=body.get("usdtQrCode"),
        usdt_network=body.get("usdtNetwork"),
        community_link=body.get("whatsappCommunityLink"),
        instructions=body.get("instructions"),
    )
    return success(
        message="Crypto settings updated successfully",
        settings=settings.to_public_dict(),
    )
