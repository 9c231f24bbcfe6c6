"""
Shared helpers for the JSON blueprints.

Authentication happens upstream: the auth layer forwards the caller's id
in the ``X-Buyer-Id`` header. Admin endpoints additionally require the
buyer record to be flagged ``is_admin``.
"""

from __future__ import annotations

from typing import Any, Dict

from flask import current_app, jsonify, request

from core.exceptions import AuthenticationRequiredError, PermissionDeniedError
from models.buyer import Buyer
from services.market import MarketServices


BUYER_ID_HEADER = "X-Buyer-Id"


def get_services() -> MarketServices:
    return current_app.config["MARKET_SERVICES"]


def current_buyer_id() -> str:
    buyer_id = (request.headers.get(BUYER_ID_HEADER) or "").strip()
    if not buyer_id:
        raise AuthenticationRequiredError()
    return buyer_id


def require_admin() -> Buyer:
    """The calling buyer, if it is an admin."""
    buyer_id = current_buyer_id()
    buyer = get_services().stores.buyers.find(buyer_id)
    if buyer is None or not buyer.is_admin:
        raise PermissionDeniedError("Admin access required")
    return buyer


def json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def success(status: int = 200, **payload: Any):
    """``{"success": true, ...payload}`` with the given status."""
    return jsonify({"success": True, **payload}), status


def failure(message: str, status: int = 400, **payload: Any):
    return jsonify({"success": False, "message": message, **payload}), status
