"""
Status enumerations for ledger records.
"""

from enum import StrEnum


class DepositStatus(StrEnum):
    """Deposit status enumeration."""

    PENDING = "pending"  # Submitted, awaiting chain match
    CONFIRMED = "confirmed"  # Matched on chain, immutable


class WithdrawalStatus(StrEnum):
    """Withdrawal status enumeration."""

    PENDING = "pending"  # Requested by user
    APPROVED = "approved"  # Approved by reviewer, eligible for settlement
    SENT = "sent"  # Broadcast accepted, terminal
    REJECTED = "rejected"  # Broadcast refused or invalid, terminal


class LedgerEntity(StrEnum):
    """Record kinds held by the ledger store."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
