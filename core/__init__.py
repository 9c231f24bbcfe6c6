"""
Core module for the credential market.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- locks: Per-key exclusive locks for listings, wallets and payment codes
- payment_gateway: External payment oracle (Paystack)
"""

from .exceptions import (
    CredentialMarketError,
    UserError,
    InvalidCartError,
    StaleCartItemsError,
    ListingNotFoundError,
    OrderNotFoundError,
    BuyerNotFoundError,
    InsufficientInventoryError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidCredentialsError,
    InvalidSettingsError,
    PaymentVerificationFailedError,
    AuthenticationRequiredError,
    PermissionDeniedError,
    PaymentCodeError,
    CodeNotFoundError,
    CodeExpiredError,
    CodeAlreadyResolvedError,
    ConfigurationError,
    BankTransferUnavailableError,
    InfrastructureError,
    ConcurrentModificationError,
    CodeGenerationExhaustedError,
    GatewayUnavailableError,
    InvariantViolationError,
)
from .locks import KeyedLocks
from .payment_gateway import GatewayVerification, PaymentOracle, PaystackGateway

__all__ = [
    "CredentialMarketError",
    "UserError",
    "InvalidCartError",
    "StaleCartItemsError",
    "ListingNotFoundError",
    "OrderNotFoundError",
    "BuyerNotFoundError",
    "InsufficientInventoryError",
    "InsufficientBalanceError",
    "InvalidAmountError",
    "InvalidCredentialsError",
    "InvalidSettingsError",
    "PaymentVerificationFailedError",
    "AuthenticationRequiredError",
    "PermissionDeniedError",
    "PaymentCodeError",
    "CodeNotFoundError",
    "CodeExpiredError",
    "CodeAlreadyResolvedError",
    "ConfigurationError",
    "BankTransferUnavailableError",
    "InfrastructureError",
    "ConcurrentModificationError",
    "CodeGenerationExhaustedError",
    "GatewayUnavailableError",
    "InvariantViolationError",
    "KeyedLocks",
    "GatewayVerification",
    "PaymentOracle",
    "PaystackGateway",
]
