"""Custom exception hierarchy for propchain.

Contract failures carry a ``reason`` that matches the revert string a
caller would see on-chain, so callers can branch on the exception type
and still surface the human-readable reason.
"""

from typing import Optional


class PropchainError(Exception):
    """Base exception for all propchain errors."""


class ContractError(PropchainError):
    """Raised when a contract call is rejected.

    The whole call is rolled back before this reaches the caller.
    """

    default_reason = "Contract call reverted"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class UnauthorizedError(ContractError):
    """Raised when the sender holds the wrong role or is not a party."""

    default_reason = "Unauthorized"


class InvalidStateError(ContractError):
    """Raised when the operation is not valid for the current lifecycle stage."""

    default_reason = "Invalid state"


class InvalidArgumentError(ContractError, ValueError):
    """Raised on zero addresses, self references, bad amounts or empty fields."""

    default_reason = "Invalid argument"


class AlreadyExistsError(ContractError):
    """Raised on duplicate creation."""

    default_reason = "Already exists"


# Unauthorized


class NotAuthorizedError(UnauthorizedError):
    default_reason = "Not authorized"


class NotOwnerError(UnauthorizedError):
    default_reason = "Not property owner"


class OnlyBuyerError(UnauthorizedError):
    default_reason = "Only buyer"


class OnlySellerError(UnauthorizedError):
    default_reason = "Only seller"


class NotWitnessError(UnauthorizedError):
    default_reason = "Not a witness for this will"


class NotExecutorError(UnauthorizedError):
    default_reason = "Not authorized executor"


# Invalid state


class AlreadySignedError(InvalidStateError):
    default_reason = "Already signed"


class NotCertifiedError(InvalidStateError):
    default_reason = "Property not fully signed"


class IncompleteOwnershipError(InvalidStateError):
    default_reason = "Must own 100% of fractions"


class EscrowIncompleteError(InvalidStateError):
    default_reason = "Escrow not complete"


class NoActiveEscrowError(InvalidStateError):
    default_reason = "No active escrow"


class AlreadyDepositedError(InvalidStateError):
    default_reason = "Already deposited"


class AlreadyWitnessedError(InvalidStateError):
    default_reason = "Already witnessed"


class NoActiveWillError(InvalidStateError):
    default_reason = "No active will for this property"


class WillNotReadyError(InvalidStateError):
    default_reason = "Will not fully witnessed"


class NotApprovedError(InvalidStateError):
    default_reason = "Not approved"


class InsufficientFundsError(InvalidStateError):
    default_reason = "Insufficient funds"


class WrongAssetKindError(InvalidStateError):
    default_reason = "Wrong escrow type"


class ListingInactiveError(InvalidStateError):
    default_reason = "Listing not active"


# Invalid argument


class IncorrectPaymentError(InvalidArgumentError):
    default_reason = "Incorrect payment"


# Already exists


class AlreadyFractionalizedError(AlreadyExistsError):
    default_reason = "Fraction token already exists"


class WillAlreadyExistsError(AlreadyExistsError):
    default_reason = "Will already exists for this property"


# Lookups


class NotFoundError(PropchainError):
    """Raised when a referenced record does not exist."""


class TokenNotFoundError(NotFoundError):
    """Raised when a property token id has not been minted."""


class WillNotFoundError(NotFoundError):
    """Raised when no will was ever created for a property."""


class ListingNotFoundError(NotFoundError):
    """Raised when a marketplace listing id is unknown."""


class ContractNotFoundError(NotFoundError):
    """Raised when no contract is deployed at an address."""


class ConfigurationError(PropchainError):
    """Raised when configuration is invalid or missing."""


class DeploymentError(PropchainError):
    """Raised when a deployment manifest cannot be written, read or decrypted."""
