"""
Wallet routes.

Handles:
- /api/wallet/balance - Current stored balance
- /api/wallet/add-funds - Top up after an external payment
- /api/wallet/transactions - Paged wallet history
"""

from flask import Blueprint, request

from logging_config import get_logger
from routes.common import current_buyer_id, failure, get_services, json_body, success


# Module logger
logger = get_logger(__name__)

wallet_bp = Blueprint("wallet", __name__, url_prefix="/api/wallet")


@wallet_bp.route("/balance", methods=["GET"])
def balance():
    buyer_id = current_buyer_id()
    return success(balance=get_services().wallet.balance(buyer_id))


@wallet_bp.route("/add-funds", methods=["POST"])
def add_funds():
    buyer_id = current_buyer_id()
    body = json_body()

    amount = body.get("amount")
    payment_reference = body.get("paymentReference")
    payment_method = body.get("paymentMethod")

    if amount in (None, "") or not payment_reference or not payment_method:
        return failure("Amount, payment reference, and payment method are required")

    new_balance = get_services().wallet.credit(
        buyer_id, amount, reference=payment_reference, payment_method=payment_method
    )
    return success(
        message="Funds added successfully",
        newBalance=new_balance,
        amountAdded=float(amount),
        paymentReference=payment_reference,
        paymentMethod=payment_method,
    )


@wallet_bp.route("/transactions", methods=["GET"])
def transactions():
    buyer_id = current_buyer_id()
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", 20, type=int)

    result = get_services().wallet.transactions(buyer_id, page=page, limit=limit)
    return success(**result.to_dict())
