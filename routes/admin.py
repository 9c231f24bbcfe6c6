"""
Admin routes.

Handles:
- /api/admin/stats - Inventory, order and payment code counts
- /api/admin/migrate-listings - One-time legacy credential migration
- /api/admin/sweep-codes - Run the payment code sweep now
"""

from flask import Blueprint

from logging_config import get_logger
from routes.common import get_services, require_admin, success


# Module logger
logger = get_logger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.route("/stats", methods=["GET"])
def stats():
    require_admin()
    services = get_services()

    orders = services.stores.orders.find()
    data = services.listings.inventory_stats()
    data.update(
        {
            "totalUsers": services.stores.buyers.count(),
            "totalOrders": len(orders),
            "totalRevenue": round(sum(order.total_amount for order in orders), 2),
            "pendingPaymentCodes": len(services.payment_codes.pending_codes()),
        }
    )
    return success(stats=data)


@admin_bp.route("/migrate-listings", methods=["POST"])
def migrate_listings():
    admin = require_admin()
    logger.info(f"Listing migration requested by {admin.id}")

    report = get_services().migrate_listings()
    return success(
        message=f"Successfully migrated {report.migrated} listings",
        report=report.to_dict(),
    )


@admin_bp.route("/sweep-codes", methods=["POST"])
def sweep_codes():
    require_admin()
    report = get_services().payment_codes.sweep()
    return success(report=report.to_dict())
