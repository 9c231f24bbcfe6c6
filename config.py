"""
Configuration for the credential market.

Values come from the environment (optionally from a .env file). Money
amounts are plain currency units; the reference funding bounds are
100 - 1,000,000.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"
    TESTING = False
    JSON_SORT_KEYS = False

    # ==========================================================================
    # Wallet (stored balance)
    # ==========================================================================
    # Bounds apply to top-ups only. Debits are bounded by the balance itself.
    WALLET_MIN_FUNDING = float(os.environ.get("WALLET_MIN_FUNDING", "100"))
    WALLET_MAX_FUNDING = float(os.environ.get("WALLET_MAX_FUNDING", "1000000"))

    # ==========================================================================
    # Payment codes (bank transfer rail)
    # ==========================================================================
    PAYMENT_CODE_TTL_HOURS = float(os.environ.get("PAYMENT_CODE_TTL_HOURS", "24"))
    PAYMENT_CODE_MAX_ATTEMPTS = int(os.environ.get("PAYMENT_CODE_MAX_ATTEMPTS", "10"))
    PAYMENT_CODE_PURGE_AFTER_HOURS = float(
        os.environ.get("PAYMENT_CODE_PURGE_AFTER_HOURS", "24")
    )
    PAYMENT_CODE_SWEEP_INTERVAL_SECONDS = float(
        os.environ.get("PAYMENT_CODE_SWEEP_INTERVAL_SECONDS", "300")
    )
    PAYMENT_CODE_SWEEPER_ENABLED = _env_flag("PAYMENT_CODE_SWEEPER_ENABLED", "1")

    # Seed values for the admin-managed bank transfer settings
    BANK_TRANSFER_ENABLED = _env_flag("BANK_TRANSFER_ENABLED", "0")
    BANK_NAME = os.environ.get("BANK_NAME", "")
    BANK_ACCOUNT_NAME = os.environ.get("BANK_ACCOUNT_NAME", "")
    BANK_ACCOUNT_NUMBER = os.environ.get("BANK_ACCOUNT_NUMBER", "")

    # Seed values for the admin-managed crypto settings
    CRYPTO_BITCOIN_ADDRESS = os.environ.get("CRYPTO_BITCOIN_ADDRESS", "")
    CRYPTO_USDT_ADDRESS = os.environ.get("CRYPTO_USDT_ADDRESS", "")
    CRYPTO_USDT_NETWORK = os.environ.get("CRYPTO_USDT_NETWORK", "TRC20")

    # ==========================================================================
    # Allocation
    # ==========================================================================
    # Optimistic write retries when a listing's pool changed underneath us
    ALLOCATION_MAX_RETRIES = int(os.environ.get("ALLOCATION_MAX_RETRIES", "3"))

    # ==========================================================================
    # Payment gateway (Paystack)
    # ==========================================================================
    # Leave the secret empty to run without gateway verification
    PAYSTACK_SECRET_KEY = os.environ.get("PAYSTACK_SECRET_KEY", "")
    PAYSTACK_BASE_URL = os.environ.get("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_TIMEOUT_SECONDS = float(os.environ.get("PAYSTACK_TIMEOUT_SECONDS", "10"))


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    ENVIRONMENT = "production"


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    ENVIRONMENT = "testing"
    PAYMENT_CODE_SWEEPER_ENABLED = False
    PAYSTACK_SECRET_KEY = ""
