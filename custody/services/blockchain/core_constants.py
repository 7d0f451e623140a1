"""
Core blockchain constants.

This module contains token ABI fragments and event signatures.
"""

from eth_utils import keccak

# Token ABI (ERC-20 / TRC-20 standard functions used by the engine)
USDT_ABI = [
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    },
]

# topic0 of Transfer(address,address,uint256)
TRANSFER_EVENT_TOPIC = keccak(text="Transfer(address,address,uint256)")

# Transfer logs carry topic0 + indexed from + indexed to
TRANSFER_TOPIC_COUNT = 3
