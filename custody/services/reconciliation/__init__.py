"""
Reconciliation and settlement engine.

- deposit_verifier.py - Pending deposits vs chain transfers
- withdrawal_settler.py - Approved withdrawals to chain broadcasts
- scheduler.py - Guarded interval/triggered passes
- results.py - Per-record results and pass summaries
- factory.py - Wiring from settings
"""

from .deposit_verifier import DepositVerifier
from .factory import create_scheduler
from .results import (
    DepositCheck,
    DepositOutcome,
    MismatchReason,
    PassReport,
    SettlementOutcome,
    SettlementResult,
    SettlementSummary,
    VerificationSummary,
)
from .scheduler import ReconciliationScheduler
from .withdrawal_settler import WithdrawalSettler

__all__ = [
    "DepositCheck",
    "DepositOutcome",
    "DepositVerifier",
    "MismatchReason",
    "PassReport",
    "ReconciliationScheduler",
    "SettlementOutcome",
    "SettlementResult",
    "SettlementSummary",
    "VerificationSummary",
    "WithdrawalSettler",
    "create_scheduler",
]
