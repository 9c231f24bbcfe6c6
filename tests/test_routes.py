"""
Route-level tests using the Flask test client.

The app is built with TestingConfig and pre-built services so every test
starts from fresh in-memory stores.
"""

import pytest
from unittest.mock import patch

from app import create_app
from config import TestingConfig
from core.exceptions import ConcurrentModificationError
from models.buyer import Buyer
from models.listing import Listing
from services.market import build_services


BANK_SETTINGS = {
    "BANK_TRANSFER_ENABLED": True,
    "BANK_NAME": "GTBank",
    "BANK_ACCOUNT_NAME": "Credential Market Ltd",
    "BANK_ACCOUNT_NUMBER": "0123456789",
}


# Fixtures

@pytest.fixture
def services():
    """Services with one listing, one buyer and one admin."""
    services = build_services(BANK_SETTINGS)
    services.stores.listings.save(
        Listing(id="ig", title="Instagram 5k", description="Aged", price=250.0,
                seller_id="seller-1", platform="Instagram",
                credentials=["blockA", "blockB"])
    )
    services.stores.buyers.save(Buyer(id="buyer-1", name="Ada", email="ada@example.com"))
    services.stores.buyers.save(Buyer(id="admin-1", name="Root", is_admin=True))
    return services


@pytest.fixture
def app(services):
    return create_app(TestingConfig, services=services)


@pytest.fixture
def client(app):
    return app.test_client()


def as_buyer(buyer_id="buyer-1"):
    return {"X-Buyer-Id": buyer_id}


def checkout_body(quantity=1, method="crypto-usdt", total=250, listing_id="ig"):
    return {
        "cartItems": [{"_id": listing_id, "quantity": quantity, "title": "Instagram 5k"}],
        "paymentMethod": method,
        "paymentReference": "TX-1",
        "totalAmount": total,
    }


# Tests

class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "ok"
        assert data["environment"] == "testing"
        assert data["checks"]["payment_code_sweeper"] == "disabled"
        assert data["checks"]["payment_gateway"] == "not_configured"

    def test_unknown_route_is_json(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.get_json()["success"] is False


class TestCheckoutRoutes:
    def test_requires_identity(self, client):
        response = client.post("/api/orders/checkout", json=checkout_body())

        assert response.status_code == 401
        assert response.get_json()["error"] == "AuthenticationRequiredError"

    def test_missing_fields(self, client):
        response = client.post(
            "/api/orders/checkout", json={"cartItems": []}, headers=as_buyer()
        )

        assert response.status_code == 400
        assert response.get_json()["missing"] == ["cartItems", "paymentMethod", "totalAmount"]

    def test_checkout_delivers_credentials(self, client, services):
        response = client.post("/api/orders/checkout", json=checkout_body(), headers=as_buyer())

        assert response.status_code == 201
        order = response.get_json()["order"]
        assert order["items"][0]["credentials"] == ["blockA"]
        assert order["orderStatus"] == "completed"
        assert services.stores.listings.find("ig").credentials == ["blockB"]

    def test_wallet_checkout(self, client):
        funded = client.post(
            "/api/wallet/add-funds",
            json={"amount": 500, "paymentReference": "PSK-9", "paymentMethod": "paystack"},
            headers=as_buyer(),
        )
        assert funded.get_json()["newBalance"] == 500.0

        response = client.post(
            "/api/orders/checkout",
            json=checkout_body(quantity=2, method="wallet", total=500),
            headers=as_buyer(),
        )

        assert response.status_code == 201
        assert client.get("/api/wallet/balance", headers=as_buyer()).get_json()["balance"] == 0.0

    def test_zero_total_wallet_checkout(self, client, services):
        response = client.post(
            "/api/orders/checkout",
            json=checkout_body(method="wallet", total=0),
            headers=as_buyer(),
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "Total amount must be greater than zero"
        assert services.stores.listings.find("ig").credentials == ["blockA", "blockB"]

    def test_insufficient_inventory_details(self, client):
        response = client.post(
            "/api/orders/checkout", json=checkout_body(quantity=3, total=750), headers=as_buyer()
        )

        assert response.status_code == 400
        data = response.get_json()
        assert data["error"] == "InsufficientInventoryError"
        assert data["details"]["available"] == 2
        assert data["details"]["requested"] == 3

    def test_stale_cart(self, client):
        response = client.post(
            "/api/orders/checkout", json=checkout_body(listing_id="gone"), headers=as_buyer()
        )

        assert response.status_code == 400
        assert response.get_json()["details"]["invalid_items"] == [
            {"id": "gone", "title": "Instagram 5k"}
        ]

    def test_infrastructure_error_is_generic(self, client, services):
        conflict = ConcurrentModificationError("Listing", "ig", 1, 2)

        with patch.object(services.orders, "checkout", side_effect=conflict):
            response = client.post(
                "/api/orders/checkout", json=checkout_body(), headers=as_buyer()
            )

        assert response.status_code == 500
        data = response.get_json()
        assert data["message"] == "Server error. Please try again later."
        assert "details" not in data

    def test_validate_cart(self, client):
        response = client.post(
            "/api/orders/validate-cart",
            json={"cartItems": [{"_id": "ig"}, {"_id": "gone", "title": "Old"}]},
            headers=as_buyer(),
        )

        data = response.get_json()
        assert data["valid"] is False
        assert data["invalidItems"] == [{"id": "gone", "title": "Old"}]

    def test_order_history(self, client):
        created = client.post(
            "/api/orders/checkout", json=checkout_body(), headers=as_buyer()
        ).get_json()["order"]

        mine = client.get("/api/orders/mine", headers=as_buyer()).get_json()["orders"]
        stats = client.get("/api/orders/stats", headers=as_buyer()).get_json()["stats"]
        detail = client.get(f"/api/orders/{created['orderNumber']}", headers=as_buyer())
        foreign = client.get(f"/api/orders/{created['orderNumber']}", headers=as_buyer("admin-1"))

        assert [o["orderNumber"] for o in mine] == [created["orderNumber"]]
        assert stats["totalOrders"] == 1
        assert detail.status_code == 200
        assert foreign.status_code == 404


class TestWalletRoutes:
    def test_out_of_bounds_top_up(self, client):
        response = client.post(
            "/api/wallet/add-funds",
            json={"amount": 50, "paymentReference": "PSK-1", "paymentMethod": "paystack"},
            headers=as_buyer(),
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "Minimum funding amount is 100"

    def test_transactions(self, client):
        client.post(
            "/api/wallet/add-funds",
            json={"amount": 100, "paymentReference": "PSK-1", "paymentMethod": "paystack"},
            headers=as_buyer(),
        )

        data = client.get("/api/wallet/transactions?limit=5", headers=as_buyer()).get_json()

        assert data["total"] == 1
        assert data["transactions"][0]["reference"] == "PSK-1"


class TestBankTransferRoutes:
    def _generate(self, client):
        response = client.post(
            "/api/bank-transfer/generate-code",
            json={"cartItems": [{"_id": "ig", "quantity": 1}], "totalAmount": 250},
            headers=as_buyer(),
        )
        assert response.status_code == 201
        return response.get_json()["data"]["code"]

    def test_public_settings(self, client):
        settings = client.get("/api/bank-transfer/settings").get_json()["settings"]

        assert settings["bankName"] == "GTBank"
        assert settings["isEnabled"] is True

    def test_settings_update_requires_admin(self, client):
        response = client.put(
            "/api/bank-transfer/settings", json={"isEnabled": False}, headers=as_buyer()
        )

        assert response.status_code == 403

    def test_code_flow(self, client, services):
        code = self._generate(client)

        pending = client.get("/api/bank-transfer/pending-codes", headers=as_buyer("admin-1"))
        assert pending.get_json()["data"][0]["buyerName"] == "Ada"

        denied = client.post(
            "/api/bank-transfer/verify-code", json={"code": code}, headers=as_buyer()
        )
        assert denied.status_code == 403

        verified = client.post(
            "/api/bank-transfer/verify-code", json={"code": code}, headers=as_buyer("admin-1")
        )
        assert verified.status_code == 200
        assert verified.get_json()["data"]["itemCount"] == 1

        again = client.post(
            "/api/bank-transfer/verify-code", json={"code": code}, headers=as_buyer("admin-1")
        )
        assert again.status_code == 409

        status = client.get(f"/api/bank-transfer/code-status/{code}", headers=as_buyer())
        data = status.get_json()["data"]
        assert data["status"] == "verified"
        assert data["order"]["items"][0]["credentials"] == ["blockA"]

    def test_status_of_foreign_code(self, client):
        code = self._generate(client)

        response = client.get(
            f"/api/bank-transfer/code-status/{code}", headers=as_buyer("admin-1")
        )

        assert response.status_code == 404

    def test_cancel(self, client):
        code = self._generate(client)

        response = client.post(f"/api/bank-transfer/codes/{code}/cancel", headers=as_buyer())

        assert response.get_json()["data"]["status"] == "cancelled"


class TestCryptoSettingsRoutes:
    def test_public_read(self, client):
        settings = client.get("/api/crypto-settings").get_json()["settings"]

        assert settings["usdt"]["network"] == "TRC20"

    def test_update_requires_admin(self, client):
        response = client.put(
            "/api/crypto-settings", json={"usdtAddress": "TXyz"}, headers=as_buyer()
        )

        assert response.status_code == 403

    def test_admin_update(self, client):
        response = client.put(
            "/api/crypto-settings",
            json={"usdtAddress": "TXyz", "usdtNetwork": "BEP20"},
            headers=as_buyer("admin-1"),
        )

        assert response.status_code == 200
        usdt = client.get("/api/crypto-settings").get_json()["settings"]["usdt"]
        assert usdt["address"] == "TXyz"
        assert usdt["network"] == "BEP20"

    def test_bad_network(self, client):
        response = client.put(
            "/api/crypto-settings",
            json={"usdtNetwork": "SOL"},
            headers=as_buyer("admin-1"),
        )

        assert response.status_code == 400


class TestListingAndAdminRoutes:
    def test_browse_without_payloads(self, client):
        listings = client.get("/api/listings").get_json()["listings"]

        assert listings[0]["availableCredentialsCount"] == 2
        assert "credentials" not in listings[0]

    def test_create_and_restock(self, client):
        created = client.post(
            "/api/listings",
            json={"title": "VPN", "description": "1 year", "price": 50, "productType": "vpn",
                  "credentials": ["k1"]},
            headers=as_buyer("seller-2"),
        )
        assert created.status_code == 201
        listing_id = created.get_json()["listing"]["id"]

        restocked = client.post(
            f"/api/listings/{listing_id}/credentials",
            json={"credentials": ["k2"]},
            headers=as_buyer("seller-2"),
        )
        assert restocked.get_json()["listing"]["availableCredentialsCount"] == 2

        foreign = client.delete(f"/api/listings/{listing_id}", headers=as_buyer("buyer-1"))
        assert foreign.status_code == 403

    def test_admin_stats(self, client):
        client.post("/api/orders/checkout", json=checkout_body(), headers=as_buyer())

        stats = client.get("/api/admin/stats", headers=as_buyer("admin-1")).get_json()["stats"]

        assert stats["totalListings"] == 1
        assert stats["totalOrders"] == 1
        assert stats["totalRevenue"] == 250.0

    def test_migration_and_sweep(self, client):
        migrated = client.post("/api/admin/migrate-listings", headers=as_buyer("admin-1"))
        swept = client.post("/api/admin/sweep-codes", headers=as_buyer("admin-1"))

        assert migrated.get_json()["report"]["alreadyCanonical"] == 1
        assert swept.get_json()["report"]["expired"] == 0
