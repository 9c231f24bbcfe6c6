"""
Custom exceptions for the credential market.

Exception Hierarchy:
    CredentialMarketError (base)
    ├── UserError                        - caller can act on it (4xx)
    │   ├── InvalidCartError
    │   ├── StaleCartItemsError          - listings deleted since browsing
    │   ├── ListingNotFoundError
    │   ├── OrderNotFoundError
    │   ├── BuyerNotFoundError
    │   ├── InsufficientInventoryError   - not enough credential blocks
    │   ├── InsufficientBalanceError     - wallet cannot cover the total
    │   ├── InvalidAmountError           - top-up outside funding bounds
    │   ├── InvalidCredentialsError      - blocks do not fit the listing's shape
    │   ├── InvalidSettingsError
    │   ├── PaymentVerificationFailedError
    │   ├── AuthenticationRequiredError  - no caller identity
    │   ├── PermissionDeniedError
    │   └── PaymentCodeError
    │       ├── CodeNotFoundError
    │       ├── CodeExpiredError
    │       └── CodeAlreadyResolvedError
    ├── ConfigurationError               - a payment path is switched off
    │   └── BankTransferUnavailableError
    ├── InfrastructureError              - generic failure to the buyer (5xx)
    │   ├── ConcurrentModificationError
    │   ├── CodeGenerationExhaustedError
    │   └── GatewayUnavailableError
    └── InvariantViolationError          - fatal, aborts the sale

Usage:
    User errors carry enough detail for the buyer to fix the request
    (which item, how many are left). Infrastructure errors and invariant
    violations are logged in full but surfaced with a generic message.
"""

from typing import Any, Dict, List, Optional


class CredentialMarketError(Exception):
    """
    Base exception for all credential market errors.

    Attributes:
        message: Human-readable error message
        details: Extra context, safe to return for user errors
        http_status: Status the Flask layer responds with
    """

    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def user_message(self) -> str:
        """Message that may be shown to a buyer."""
        return self.message

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# USER ERRORS - expected outcomes, reported back with actionable detail
# =============================================================================

class UserError(CredentialMarketError):
    """An error the caller caused and can correct."""

    http_status = 400


class InvalidCartError(UserError):
    """Cart is empty or a line is malformed (e.g. quantity < 1)."""


class StaleCartItemsError(UserError):
    """
    One or more cart lines point at listings that no longer exist.

    Listings can be deleted between browsing and checkout, so this is a
    normal outcome. Every invalid line is enumerated.
    """

    def __init__(self, invalid_items: List[Dict[str, Any]]):
        message = "Some items in your cart are no longer available"
        details = {
            "invalid_items": invalid_items,
            "resolution": "Please remove these items from your cart and try again",
        }
        super().__init__(message, details)
        self.invalid_items = invalid_items


class ListingNotFoundError(UserError):
    http_status = 404

    def __init__(self, listing_id: str):
        super().__init__(f"Listing not found: {listing_id}", {"listing_id": listing_id})
        self.listing_id = listing_id


class OrderNotFoundError(UserError):
    """Unknown order number, or an order that belongs to another buyer."""

    http_status = 404

    def __init__(self, order_number: str):
        super().__init__("Order not found", {"order_number": order_number})
        self.order_number = order_number


class BuyerNotFoundError(UserError):
    http_status = 404

    def __init__(self, buyer_id: str):
        super().__init__(f"User not found: {buyer_id}", {"buyer_id": buyer_id})
        self.buyer_id = buyer_id


class InsufficientInventoryError(UserError):
    """
    A listing has fewer available credential blocks than requested.

    Recoverable: the buyer can lower the quantity or wait for a restock.
    """

    def __init__(
        self,
        listing_id: str,
        available: int,
        requested: int,
        title: str = "",
    ):
        name = title or listing_id
        message = (
            f"Not enough credentials available for {name}. "
            f"Available: {available}, Requested: {requested}"
        )
        details = {
            "listing_id": listing_id,
            "title": title,
            "available": available,
            "requested": requested,
        }
        super().__init__(message, details)
        self.listing_id = listing_id
        self.title = title
        self.available = available
        self.requested = requested


class InsufficientBalanceError(UserError):
    """Wallet balance is below the amount to debit."""

    def __init__(self, balance: float, required: float):
        message = f"Insufficient wallet balance: need {required:.2f}, have {balance:.2f}"
        details = {
            "balance": balance,
            "required": required,
            "resolution": "Add funds to your wallet or choose another payment method",
        }
        super().__init__(message, details)
        self.balance = balance
        self.required = required


class InvalidAmountError(UserError):
    """Top-up amount is not a positive number within the funding bounds."""

    def __init__(self, amount: Any, minimum: float, maximum: float, reason: str = ""):
        message = reason or (
            f"Funding amount must be between {minimum:,.0f} and {maximum:,.0f}"
        )
        details = {"amount": amount, "minimum": minimum, "maximum": maximum}
        super().__init__(message, details)
        self.amount = amount
        self.minimum = minimum
        self.maximum = maximum


class InvalidCredentialsError(UserError):
    """Credential blocks supplied by a seller do not fit the listing's pool."""


class InvalidSettingsError(UserError):
    """Payment rail settings rejected (e.g. enabling bank transfer without details)."""


class PaymentVerificationFailedError(UserError):
    """The payment gateway reported the reference as not paid."""

    http_status = 402

    def __init__(self, reference: str, reason: str = "Payment verification failed"):
        super().__init__(reason, {"payment_reference": reference})
        self.reference = reference


class AuthenticationRequiredError(UserError):
    """No caller identity was supplied by the upstream auth layer."""

    http_status = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class PermissionDeniedError(UserError):
    http_status = 403


# -----------------------------------------------------------------------------
# Payment code errors
# -----------------------------------------------------------------------------

class PaymentCodeError(UserError):
    """Base class for payment code lookups and transitions."""

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        error_details = details or {}
        error_details["code"] = code
        super().__init__(message, error_details)
        self.code = code


class CodeNotFoundError(PaymentCodeError):
    http_status = 404

    def __init__(self, code: str):
        super().__init__("Payment code not found", code)


class CodeExpiredError(PaymentCodeError):
    def __init__(self, code: str):
        super().__init__("Payment code has expired", code)


class CodeAlreadyResolvedError(PaymentCodeError):
    """The code left the pending state already (verified, expired or cancelled)."""

    http_status = 409

    def __init__(self, code: str, state: str):
        super().__init__(f"Payment code is already {state}", code, {"state": state})
        self.state = state


# =============================================================================
# CONFIGURATION ERRORS - a payment path is unavailable
# =============================================================================

class ConfigurationError(CredentialMarketError):
    """A payment path is disabled or incompletely configured."""

    http_status = 400


class BankTransferUnavailableError(ConfigurationError):
    def __init__(self, reason: str):
        super().__init__(reason, {"payment_method": "whatsapp-bank"})


# =============================================================================
# INFRASTRUCTURE ERRORS - logged, surfaced generically
# =============================================================================

class InfrastructureError(CredentialMarketError):
    """A store or external service failed."""

    http_status = 500

    @property
    def user_message(self) -> str:
        return "Server error. Please try again later."


class ConcurrentModificationError(InfrastructureError):
    """A versioned write lost against a concurrent writer."""

    def __init__(self, entity: str, entity_id: str, expected: int, actual: int):
        message = (
            f"{entity} {entity_id} was modified concurrently "
            f"(expected version {expected}, found {actual})"
        )
        super().__init__(message, {"entity": entity, "id": entity_id})
        self.expected = expected
        self.actual = actual


class CodeGenerationExhaustedError(InfrastructureError):
    def __init__(self, attempts: int):
        super().__init__(
            f"Failed to generate unique payment code after {attempts} attempts",
            {"attempts": attempts},
        )
        self.attempts = attempts


class GatewayUnavailableError(InfrastructureError):
    http_status = 503


# =============================================================================
# INVARIANT VIOLATIONS - never produce a partially delivered order
# =============================================================================

class InvariantViolationError(CredentialMarketError):
    """Internal consistency check failed; the operation was aborted."""

    @property
    def user_message(self) -> str:
        return "Server error. Please try again later."
