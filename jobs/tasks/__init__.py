"""
Dramatiq actors.

Run a worker with: dramatiq jobs.tasks
"""

from jobs.broker import broker  # noqa: F401  (registers the broker before actors)

from .reconciliation import run_job, settle_withdrawals, verify_deposits

__all__ = ["run_job", "settle_withdrawals", "verify_deposits"]
