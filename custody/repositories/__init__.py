"""Data access layer."""

from custody.repositories.deposit_repository import DepositRepository
from custody.repositories.ledger import LedgerStore, SqlLedgerStore
from custody.repositories.withdrawal_repository import WithdrawalRepository

__all__ = [
    "DepositRepository",
    "LedgerStore",
    "SqlLedgerStore",
    "WithdrawalRepository",
]
