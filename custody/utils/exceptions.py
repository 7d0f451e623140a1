"""
Exception handling utilities.

Defines categorized exception types for reconciliation error handling.
"""

from sqlalchemy.exc import OperationalError
from web3.exceptions import Web3Exception


class ReconciliationError(Exception):
    """Base class for engine errors."""
    pass


class ConfigurationError(ReconciliationError):
    """
    Missing or invalid process configuration.

    Aborts the whole pass before any record is mutated.
    """
    pass


class TransientChainError(ReconciliationError):
    """
    Node timeout, rate limit or unavailability.

    No definitive answer was received; the record is retried next pass.
    """

    def __init__(self, message: str, tx_reference: str | None = None) -> None:
        super().__init__(message)
        # Hash of a signed transaction that may have reached the node
        self.tx_reference = tx_reference


class ValidationError(ReconciliationError):
    """A single record can never be settled as requested."""
    pass


class InvalidAmountError(ValidationError, ValueError):
    """Amount is negative, zero where not allowed, or not a number."""
    pass


class AmountPrecisionError(InvalidAmountError):
    """Amount is not representable at the token's precision."""
    pass


class InvalidAddressError(ValidationError, ValueError):
    """Destination address is malformed."""
    pass


class MalformedChainDataError(ReconciliationError):
    """Node returned a response that cannot be decoded."""
    pass


class AttemptClaimLostError(ReconciliationError):
    """
    Another pass claimed the withdrawal first.

    Raised before anything is sent; the record belongs to the other pass.
    """
    pass


# Exception categories based on handling strategy

# Retry on next pass, never mutate the record
TRANSIENT = (
    TransientChainError,
    OperationalError,  # Database connectivity
    Web3Exception,     # Unclassified RPC errors
    TimeoutError,
    ConnectionError,
)


def is_transient(exc: Exception) -> bool:
    """
    Check if exception means "try again later".

    Args:
        exc: Exception to check

    Returns:
        True if the record must be left untouched for the next pass
    """
    return isinstance(exc, TRANSIENT)
