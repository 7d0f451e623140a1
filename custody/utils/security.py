"""
Log masking for chain identifiers and key material.

Addresses and transaction hashes are shortened, never dropped, so log
lines stay correlatable with explorers. Keys are never shown.
"""


def mask_address(address: str | None) -> str:
    """
    Shorten an address to its first 6 and last 4 characters.

    >>> mask_address("0x1234567890abcdef1234567890abcdef12345678")
    '0x1234...5678'
    """
    if not address or len(address) < 10:
        return "***"
    return f"{address[:6]}...{address[-4:]}"


def mask_tx_hash(tx_hash: str | None) -> str:
    """
    Shorten a transaction hash to its first 10 and last 6 characters.

    References too short to be hashes are returned as-is.
    """
    if not tx_hash:
        return "***"
    if len(tx_hash) < 16:
        return tx_hash
    return f"{tx_hash[:10]}...{tx_hash[-6:]}"


def mask_private_key(key: str | None) -> str:
    """Placeholder for a private key; no part of the key is kept."""
    return "***MASKED***" if key else "***"
