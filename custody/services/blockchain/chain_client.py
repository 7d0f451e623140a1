"""
Chain client interface.

What the reconciliation engine needs from the external ledger, independent
of the node transport behind it.
"""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from custody.services.blockchain.signing import SigningContext


@dataclass(frozen=True)
class TransferEvent:
    """Decoded token Transfer log."""

    contract: str
    to: str
    amount_raw: int
    sender: str | None = None


@dataclass(frozen=True)
class TransactionInfo:
    """
    Transaction as seen by the node.

    success is False for reverted transactions; logs is the raw log list
    the client decodes transfer events from.
    """

    reference: str
    success: bool
    block_number: int | None = None
    logs: Sequence[Any] = field(default_factory=tuple, repr=False)


@dataclass(frozen=True)
class BroadcastResult:
    """
    Definitive broadcast answer.

    accepted=True means the node took the transaction into its pool.
    accepted=False means the node refused it (execution or validation
    failure). Ambiguous outcomes raise TransientChainError instead.
    """

    accepted: bool
    tx_reference: str | None = None
    error: str | None = None


# Called with the signed transaction hash right before it is sent;
# raising aborts the send.
BeforeSend = Callable[[str], Awaitable[None]]


class ChainClient(Protocol):
    """External ledger operations used by verifier and settler."""

    async def get_transaction(self, reference: str) -> TransactionInfo | None:
        """Return transaction details, or None if the node does not know it."""
        ...

    def decode_transfer_events(self, tx: TransactionInfo) -> list[TransferEvent]:
        """Extract token Transfer events from a transaction."""
        ...

    async def get_confirmations(self, reference: str) -> int:
        """Number of blocks including and after the transaction's block."""
        ...

    async def is_known(self, reference: str) -> bool:
        """Whether the node has the transaction, mined or still in its pool."""
        ...

    async def broadcast_transfer(
        self,
        token_contract: str,
        to_address: str,
        amount_raw: int,
        signer: SigningContext,
        before_send: BeforeSend | None = None,
    ) -> BroadcastResult:
        """Sign and submit a token transfer."""
        ...

    def is_valid_address(self, address: str) -> bool:
        """Whether address is well-formed for this chain."""
        ...

    def canonical_address(self, address: str) -> str:
        """Normalized form used for address equality."""
        ...
