"""
External payment oracle for the instant gateway rail.

The engine treats gateway signature and transaction checks as an opaque
oracle: ``verify(reference)`` says whether the reference was paid and for
how much. Any non-success is a terminal verification failure; the engine
never retries it.

PaystackGateway talks to Paystack's transaction verification endpoint.
Paystack reports amounts in the minor unit (kobo), converted here to
currency units so callers compare against order totals directly.

Usage:
    gateway = PaystackGateway(secret_key="sk_live_...")
    verification = gateway.verify("T123456789")
    if not verification.success:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from .exceptions import GatewayUnavailableError


@dataclass(frozen=True)
class GatewayVerification:
    """Outcome of verifying one payment reference."""

    success: bool
    """Whether the gateway reports the transaction as paid."""

    amount: float = 0.0
    """Amount paid, in currency units."""

    reference: str = ""
    """Reference that was verified."""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Gateway-specific extras (channel, customer, raw status)."""


class PaymentOracle:
    """Interface for gateway verification. Subclasses implement ``verify``."""

    def verify(self, reference: str) -> GatewayVerification:
        raise NotImplementedError


class PaystackGateway(PaymentOracle):
    """
    Paystack implementation of the payment oracle.

    Attributes:
        base_url: API root (default https://api.paystack.co)
        timeout_seconds: Per-request timeout
    """

    KOBO_PER_UNIT = 100

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout_seconds: float = 10.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if not secret_key:
            raise ValueError("Paystack secret key is required")

        self._secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._logger = logger or logging.getLogger("credential_market.core.payment_gateway")

    def verify(self, reference: str) -> GatewayVerification:
        """
        Verify a transaction reference with Paystack.

        Args:
            reference: Transaction reference returned to the buyer's browser

        Returns:
            GatewayVerification (success False for any non-"success" status)

        Raises:
            GatewayUnavailableError: If Paystack cannot be reached or the
                response is not valid JSON
        """
        url = f"{self.base_url}/transaction/verify/{reference}"
        headers = {"Authorization": f"Bearer {self._secret_key}"}

        try:
            response = self._session.get(url, headers=headers, timeout=self.timeout_seconds)
        except requests.exceptions.RequestException as e:
            self._logger.error(f"Error connecting to Paystack for {reference}: {e}")
            raise GatewayUnavailableError(
                "Error connecting to Paystack", {"payment_reference": reference}
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            self._logger.error(
                f"Error parsing Paystack response for {reference} (HTTP {response.status_code})"
            )
            raise GatewayUnavailableError(
                "Error parsing Paystack response", {"payment_reference": reference}
            ) from e

        data = body.get("data") or {}
        if not isinstance(data, dict):
            data = {}

        success = bool(body.get("status")) and data.get("status") == "success"
        amount = float(data.get("amount") or 0) / self.KOBO_PER_UNIT

        if success:
            self._logger.info(f"Paystack verified {reference}: {amount:.2f}")
        else:
            self._logger.warning(
                f"Paystack rejected {reference}: status={data.get('status')!r} "
                f"message={body.get('message')!r}"
            )

        return GatewayVerification(
            success=success,
            amount=amount,
            reference=data.get("reference", reference),
            metadata={
                "gateway": "paystack",
                "status": data.get("status"),
                "channel": data.get("channel"),
                "message": body.get("message"),
            },
        )
