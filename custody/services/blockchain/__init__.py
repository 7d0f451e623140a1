"""
Blockchain access.

- amount_codec.py - Decimal <-> token unit conversion
- chain_client.py - ChainClient interface and result types
- web3_client.py - AsyncWeb3 implementation
- signing.py - Per-pass hot wallet signing sessions
- rpc_wrapper.py - Node call timeouts
"""

from .amount_codec import AmountCodec
from .chain_client import BroadcastResult, ChainClient, TransactionInfo, TransferEvent
from .signing import HotWalletSigner, SigningContext
from .web3_client import Web3ChainClient

__all__ = [
    "AmountCodec",
    "BroadcastResult",
    "ChainClient",
    "HotWalletSigner",
    "SigningContext",
    "TransactionInfo",
    "TransferEvent",
    "Web3ChainClient",
]
