"""
Unit tests for the Paystack payment oracle.

The HTTP session is mocked; no request leaves the process.
"""

import pytest
import requests
from unittest.mock import MagicMock

from core.exceptions import GatewayUnavailableError
from core.payment_gateway import PaystackGateway


# Fixtures

@pytest.fixture
def session():
    """Mock requests session."""
    return MagicMock(spec=requests.Session)


@pytest.fixture
def gateway(session):
    return PaystackGateway(
        secret_key="sk_test_123",
        base_url="https://api.paystack.test/",
        timeout_seconds=3.0,
        session=session,
    )


def paystack_response(body, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


# Tests

class TestPaystackGateway:
    def test_requires_secret(self):
        with pytest.raises(ValueError):
            PaystackGateway(secret_key="")

    def test_successful_transaction(self, gateway, session):
        session.get.return_value = paystack_response(
            {
                "status": True,
                "message": "Verification successful",
                "data": {"status": "success", "amount": 2500000, "reference": "T1",
                         "channel": "card"},
            }
        )

        verification = gateway.verify("T1")

        session.get.assert_called_once_with(
            "https://api.paystack.test/transaction/verify/T1",
            headers={"Authorization": "Bearer sk_test_123"},
            timeout=3.0,
        )
        assert verification.success is True
        assert verification.amount == 25000.0
        assert verification.reference == "T1"
        assert verification.metadata["channel"] == "card"

    def test_abandoned_transaction(self, gateway, session):
        session.get.return_value = paystack_response(
            {"status": True, "data": {"status": "abandoned", "amount": 2500000}}
        )

        assert gateway.verify("T2").success is False

    def test_unknown_reference(self, gateway, session):
        session.get.return_value = paystack_response(
            {"status": False, "message": "Transaction reference not found"}, status_code=400
        )

        verification = gateway.verify("T3")

        assert verification.success is False
        assert verification.amount == 0.0
        assert verification.reference == "T3"

    def test_connection_error(self, gateway, session):
        session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(GatewayUnavailableError) as exc_info:
            gateway.verify("T4")

        assert exc_info.value.http_status == 503

    def test_invalid_json(self, gateway, session):
        response = paystack_response(None, status_code=502)
        response.json.side_effect = ValueError("not json")
        session.get.return_value = response

        with pytest.raises(GatewayUnavailableError):
            gateway.verify("T5")
