"""
Flask route blueprints for the credential market.

This module contains all route handlers organized by functionality:
- orders: Checkout, cart validation, order history and statistics
- wallet: Stored balance, top-ups and wallet history
- payment_codes: Bank transfer settings and payment code lifecycle
- crypto_settings: Receiving addresses for the crypto rails
- listings: Listing management and payload-free summaries
- admin: Statistics, migration and manual sweeps
- api: Health check

Each blueprint is registered with the Flask app in create_app().
"""

from .orders import orders_bp
from .wallet import wallet_bp
from .payment_codes import payment_codes_bp
from .crypto_settings import crypto_settings_bp
from .listings import listings_bp
from .admin import admin_bp
from .api import api_bp

__all__ = [
    "orders_bp",
    "wallet_bp",
    "payment_codes_bp",
    "crypto_settings_bp",
    "listings_bp",
    "admin_bp",
    "api_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(orders_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(payment_codes_bp)
    app.register_blueprint(crypto_settings_bp)
    app.register_blueprint(listings_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(api_bp)
