"""
Credential market - Flask Application Entry Point.

This is a slim app factory that:
1. Loads configuration and sets up logging
2. Wires stores and engine services (optional Paystack oracle)
3. Starts the payment code sweeper (separate thread)
4. Registers route blueprints
5. Sets up JSON error handlers

ARCHITECTURE:
    Main Thread
    ├── Flask request handling (one thread per request)
    └── Cleanup on shutdown (sweeper stop)

    PaymentCodeSweeper Thread (background)
    └── Periodic expiry and purge of payment codes

Requests reach shared state only through the stores, under per-listing,
per-buyer and per-code locks.
"""

from __future__ import annotations

import atexit
import logging
import os
from typing import Any, Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from logging_config import setup_logging, get_logger
from core.exceptions import (
    CredentialMarketError,
    InfrastructureError,
    InvariantViolationError,
)
from core.payment_gateway import PaystackGateway
from services.market import MarketServices, build_services
from services.payment_codes import PaymentCodeSweeper
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def create_app(
    config_object: Optional[Any] = None,
    services: Optional[MarketServices] = None,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Config class or import path (default "config.Config")
        services: Pre-built services (tests); built from config otherwise

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    app.config.from_object(config_object or "config.Config")

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        app_name="credential_market",
        log_level=log_level,
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting credential market in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    if services is None:
        oracle = None
        secret_key = app.config.get("PAYSTACK_SECRET_KEY")
        if secret_key:
            oracle = PaystackGateway(
                secret_key=secret_key,
                base_url=app.config.get("PAYSTACK_BASE_URL", "https://api.paystack.co"),
                timeout_seconds=app.config.get("PAYSTACK_TIMEOUT_SECONDS", 10.0),
            )
            logger.info("Paystack payment verification enabled")
        else:
            logger.warning("PAYSTACK_SECRET_KEY not set - gateway payments are not verified")

        services = build_services(app.config, oracle=oracle)

    app.config["MARKET_SERVICES"] = services
    logger.info("Market services initialized")

    # Payment code sweeper (background thread)
    sweeper = None
    if app.config.get("PAYMENT_CODE_SWEEPER_ENABLED"):
        sweeper = PaymentCodeSweeper(
            services.payment_codes,
            interval_seconds=app.config.get("PAYMENT_CODE_SWEEP_INTERVAL_SECONDS", 300.0),
        )
        sweeper.start()
        logger.info("Payment code sweeper started")
    app.config["PAYMENT_CODE_SWEEPER"] = sweeper

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")

        if sweeper:
            sweeper.stop()

        logger.info("Shutdown complete")

    atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(CredentialMarketError)
    def handle_market_error(e: CredentialMarketError):
        if isinstance(e, (InfrastructureError, InvariantViolationError)):
            logger.error(f"{type(e).__name__}: {e}", exc_info=True)
            body = {"success": False, "error": type(e).__name__, "message": e.user_message}
        else:
            logger.info(f"Request rejected ({type(e).__name__}): {e.message}")
            body = {
                "success": False,
                "error": type(e).__name__,
                "message": e.user_message,
                "details": e.details,
            }
        return jsonify(body), e.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"success": False, "message": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_server_error(e: Exception):
        logger.error(f"500 error: {e}", exc_info=True)
        return jsonify({"success": False, "message": "Server error"}), 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode)
