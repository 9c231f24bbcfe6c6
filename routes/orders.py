"""
Order routes.

Handles:
- /api/orders/checkout - Complete an instant sale
- /api/orders/validate-cart - Check a cart for stale items before paying
- /api/orders/mine - The caller's orders, credentials included
- /api/orders/stats - The caller's purchase statistics
- /api/orders/<order_number> - One of the caller's orders
"""

from flask import Blueprint

from models.cart import CartLine
from services.orders import parse_cart
from logging_config import get_logger
from routes.common import current_buyer_id, failure, get_services, json_body, success


# Module logger
logger = get_logger(__name__)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.route("/checkout", methods=["POST"])
def checkout():
    """
    Create an order for a paid cart.

    Body: cartItems, paymentMethod, paymentReference, totalAmount.
    """
    buyer_id = current_buyer_id()
    body = json_body()

    missing = [
        name
        for name in ("cartItems", "paymentMethod", "totalAmount")
        if body.get(name) in (None, "", [])
    ]
    if missing:
        return failure("Missing required fields", missing=missing)

    order = get_services().orders.checkout(
        buyer_id,
        parse_cart(body["cartItems"]),
        body["paymentMethod"],
        body.get("paymentReference", ""),
        body["totalAmount"],
    )
    return success(201, message="Order created successfully", order=order.to_dict())


@orders_bp.route("/validate-cart", methods=["POST"])
def validate_cart():
    current_buyer_id()
    cart_items = json_body().get("cartItems")

    if not isinstance(cart_items, list):
        return failure("Invalid cart items", valid=False)

    lines = [CartLine.from_dict(item) for item in cart_items if isinstance(item, dict)]
    validation = get_services().listings.validate_cart(lines)
    return success(**validation.to_dict())


@orders_bp.route("/mine", methods=["GET"])
def my_orders():
    buyer_id = current_buyer_id()
    orders = get_services().history.orders_for(buyer_id)
    return success(orders=[order.to_dict() for order in orders])


@orders_bp.route("/stats", methods=["GET"])
def my_stats():
    buyer_id = current_buyer_id()
    stats = get_services().history.buyer_stats(buyer_id)
    return success(stats=stats.to_dict())


@orders_bp.route("/<order_number>", methods=["GET"])
def order_detail(order_number: str):
    buyer_id = current_buyer_id()
    order = get_services().history.find_order(order_number, buyer_id)
    return success(order=order.to_dict())
