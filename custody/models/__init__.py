"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from custody.models.base import Base
from custody.models.deposit import Deposit
from custody.models.enums import DepositStatus, LedgerEntity, WithdrawalStatus
from custody.models.withdrawal import Withdrawal

__all__ = [
    "Base",
    "Deposit",
    "DepositStatus",
    "LedgerEntity",
    "Withdrawal",
    "WithdrawalStatus",
]
