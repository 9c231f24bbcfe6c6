"""
Listing routes.

Handles:
- /api/listings - Browse summaries (GET), create a listing (POST)
- /api/listings/<id> - Summary (GET), edit (PUT), delete (DELETE)
- /api/listings/<id>/credentials - Restock a listing's pool (POST)

Responses never include credential payloads, only counts.
"""

from flask import Blueprint, request

from modules.sanitize import as_flag
from logging_config import get_logger
from routes.common import current_buyer_id, failure, get_services, json_body, success


# Module logger
logger = get_logger(__name__)

listings_bp = Blueprint("listings", __name__, url_prefix="/api/listings")


@listings_bp.route("", methods=["GET"])
def list_listings():
    summaries = get_services().listings.list_summaries(
        include_unavailable=as_flag(request.args.get("includeUnavailable", "")),
        platform=request.args.get("platform"),
        product_type=request.args.get("productType"),
    )
    return success(listings=summaries)


@listings_bp.route("/<listing_id>", methods=["GET"])
def get_listing(listing_id: str):
    return success(listing=get_services().listings.get_summary(listing_id))


@listings_bp.route("", methods=["POST"])
def create_listing():
    seller_id = current_buyer_id()
    body = json_body()
    services = get_services()

    listing = services.listings.create_listing(
        seller_id,
        title=body.get("title"),
        description=body.get("description", ""),
        price=body.get("price"),
        platform=body.get("platform", ""),
        product_type=body.get("productType", "social_account"),
        credentials=body.get("credentials"),
        credentials_inventory=body.get("credentialsInventory"),
    )
    return success(201, listing=services.listings.get_summary(listing.id))


@listings_bp.route("/<listing_id>", methods=["PUT"])
def update_listing(listing_id: str):
    actor_id = current_buyer_id()
    body = json_body()
    services = get_services()

    services.listings.update_listing(
        listing_id,
        actor_id,
        title=body.get("title"),
        description=body.get("description"),
        price=body.get("price"),
        platform=body.get("platform"),
        product_type=body.get("productType"),
        credentials=body.get("credentials"),
        credentials_inventory=body.get("credentialsInventory"),
    )
    return success(listing=services.listings.get_summary(listing_id))


@listings_bp.route("/<listing_id>/credentials", methods=["POST"])
def add_credentials(listing_id: str):
    actor_id = current_buyer_id()
    blocks = json_body().get("credentials")

    if blocks in (None, "", []):
        return failure("At least one credential block is required")

    summary = get_services().listings.add_credentials(listing_id, actor_id, blocks)
    return success(message="Credentials added", listing=summary)


@listings_bp.route("/<listing_id>", methods=["DELETE"])
def delete_listing(listing_id: str):
    actor_id = current_buyer_id()
    get_services().listings.delete_listing(listing_id, actor_id)
    return success(message="Listing deleted successfully")
