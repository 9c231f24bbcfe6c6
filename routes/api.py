"""
Service routes.

Handles:
- /health - Health check endpoint
"""

from flask import Blueprint, current_app

from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {}
    }

    # Check engine services
    services = current_app.config.get("MARKET_SERVICES")
    if services:
        health_status["checks"]["services"] = "ok"
    else:
        health_status["checks"]["services"] = "not_available"
        health_status["status"] = "degraded"

    # Check payment code sweeper
    sweeper = current_app.config.get("PAYMENT_CODE_SWEEPER")
    if not current_app.config.get("PAYMENT_CODE_SWEEPER_ENABLED"):
        health_status["checks"]["payment_code_sweeper"] = "disabled"
    elif sweeper and sweeper.is_running:
        health_status["checks"]["payment_code_sweeper"] = "ok"
    else:
        health_status["checks"]["payment_code_sweeper"] = "not_running"
        health_status["status"] = "degraded"

    # Gateway verification is optional
    if services and services.orders.oracle is not None:
        health_status["checks"]["payment_gateway"] = "configured"
    else:
        health_status["checks"]["payment_gateway"] = "not_configured"

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code
