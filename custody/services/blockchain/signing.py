"""
Hot wallet signing.

The private key is loaded when a settlement pass opens a signing session
and dropped when the session closes. Nothing outside the settler ever
receives a SigningContext.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from eth_account import Account
from eth_utils import to_checksum_address
from loguru import logger

from custody.utils.exceptions import ConfigurationError
from custody.utils.security import mask_address, mask_private_key


class SigningContext:
    """Short-lived signing capability for one settlement pass."""

    def __init__(self, private_key: str, address: str) -> None:
        self._private_key: str | None = private_key
        self.address = address

    @property
    def is_open(self) -> bool:
        return self._private_key is not None

    def sign_transaction(self, transaction: dict[str, Any]) -> Any:
        """
        Sign a transaction dict.

        Args:
            transaction: Fully built transaction (nonce, gas, chainId...)

        Returns:
            eth_account SignedTransaction

        Raises:
            ConfigurationError: If the context was already closed
        """
        if self._private_key is None:
            raise ConfigurationError("Signing context is closed")

        # SECURITY: Account object lives only for the signature
        account = Account.from_key(self._private_key)
        try:
            return account.sign_transaction(transaction)
        finally:
            del account

    def close(self) -> None:
        """Drop the key reference."""
        self._private_key = None

    def __repr__(self) -> str:
        return (
            f"<SigningContext(address={mask_address(self.address)}, "
            f"key={mask_private_key(self._private_key)})>"
        )


class HotWalletSigner:
    """
    Factory for per-pass signing contexts.

    Args:
        key_loader: Returns the hot wallet private key, or None if absent
        expected_address: Configured hot wallet address the key must control
    """

    def __init__(
        self,
        key_loader: Callable[[], str | None],
        expected_address: str,
    ) -> None:
        self._key_loader = key_loader
        self.expected_address = to_checksum_address(expected_address)

    @contextmanager
    def session(self) -> Iterator[SigningContext]:
        """
        Open a signing context for the duration of a pass.

        Raises:
            ConfigurationError: If the key is missing, malformed, or does
                not control the configured hot wallet
        """
        private_key = self._key_loader()
        if not private_key:
            raise ConfigurationError("Hot wallet private key is not configured")

        try:
            derived_address = Account.from_key(private_key).address
        except Exception as e:
            raise ConfigurationError("Hot wallet private key is malformed") from e

        if derived_address != self.expected_address:
            raise ConfigurationError(
                f"Hot wallet key controls {mask_address(derived_address)}, "
                f"expected {mask_address(self.expected_address)}"
            )

        context = SigningContext(private_key, derived_address)
        del private_key
        logger.debug(f"Signing session opened for {mask_address(derived_address)}")
        try:
            yield context
        finally:
            context.close()
            logger.debug("Signing session closed")
