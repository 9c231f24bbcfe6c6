"""
Bank transfer routes.

Handles:
- /api/bank-transfer/settings - Public bank details (GET), admin update (PUT)
- /api/bank-transfer/generate-code - Issue a payment code for a cart
- /api/bank-transfer/pending-codes - Codes awaiting verification (admin)
- /api/bank-transfer/verify-code - Confirm a transfer and create the order (admin)
- /api/bank-transfer/code-status/<code> - Status for the buyer who generated it
- /api/bank-transfer/codes/<code>/cancel - Buyer withdraws a pending code
"""

from flask import Blueprint

from services.orders import parse_cart
from logging_config import get_logger
from routes.common import (
    current_buyer_id,
    failure,
    get_services,
    json_body,
    require_admin,
    success,
)


# Module logger
logger = get_logger(__name__)

payment_codes_bp = Blueprint("payment_codes", __name__, url_prefix="/api/bank-transfer")


@payment_codes_bp.route("/settings", methods=["GET"])
def get_settings():
    settings = get_services().payment_codes.get_settings()
    return success(settings=settings.to_public_dict())


@payment_codes_bp.route("/settings", methods=["PUT"])
def update_settings():
    admin = require_admin()
    body = json_body()

    settings = get_services().payment_codes.update_settings(
        admin.id,
        bank_name=body.get("bankName"),
        account_name=body.get("accountName"),
        account_number=body.get("accountNumber"),
        instructions=body.get("instructions"),
        is_enabled=body.get("isEnabled"),
    )
    return success(
        message="Bank transfer settings updated successfully",
        settings=settings.to_public_dict(),
    )


@payment_codes_bp.route("/generate-code", methods=["POST"])
def generate_code():
    buyer_id = current_buyer_id()
    body = json_body()

    if not body.get("cartItems") or body.get("totalAmount") in (None, ""):
        return failure("Cart items and total amount are required")

    payment_code = get_services().payment_codes.generate(
        buyer_id, parse_cart(body["cartItems"]), body["totalAmount"]
    )
    return success(
        201,
        message="Payment code generated successfully",
        data={
            "code": payment_code.code,
            "totalAmount": payment_code.total_amount,
            "expiresAt": payment_code.expires_at.isoformat(),
        },
    )


@payment_codes_bp.route("/pending-codes", methods=["GET"])
def pending_codes():
    require_admin()
    services = get_services()

    data = []
    for payment_code in services.payment_codes.pending_codes():
        entry = payment_code.to_dict()
        buyer = services.stores.buyers.find(payment_code.buyer_id)
        if buyer is not None:
            entry["buyerName"] = buyer.name
            entry["buyerEmail"] = buyer.email
        data.append(entry)

    return success(data=data)


@payment_codes_bp.route("/verify-code", methods=["POST"])
def verify_code():
    admin = require_admin()
    code = json_body().get("code")

    if not code:
        return failure("Payment code is required")

    services = get_services()
    order = services.payment_codes.verify(code, admin.id)
    buyer = services.stores.buyers.find(order.buyer_id)

    return success(
        message="Payment verified and order created successfully",
        data={
            "orderNumber": order.order_number,
            "buyerName": buyer.name if buyer else "",
            "buyerEmail": buyer.email if buyer else "",
            "totalAmount": order.total_amount,
            "itemCount": len(order.items),
        },
    )


@payment_codes_bp.route("/code-status/<code>", methods=["GET"])
def code_status(code: str):
    buyer_id = current_buyer_id()
    snapshot = get_services().payment_codes.status(code, buyer_id)
    return success(data=snapshot.to_dict())


@payment_codes_bp.route("/codes/<code>/cancel", methods=["POST"])
def cancel_code(code: str):
    buyer_id = current_buyer_id()
    payment_code = get_services().payment_codes.cancel(code, buyer_id)
    return success(message="Payment code cancelled", data=payment_code.to_dict())
