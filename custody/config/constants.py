"""
Application constants.

Centralized constants for the reconciliation engine.
"""

# ========================================================================
# TOKEN CONSTANTS
# ========================================================================

# USDT (ERC-20 on Ethereum, TRC-20 on TRON) uses 6 decimals
USDT_DECIMALS = 6

# ========================================================================
# BLOCKCHAIN CONSTANTS
# ========================================================================

BLOCKCHAIN_TIMEOUT = 30.0  # Standard node calls (get_transaction, etc.)
GAS_LIMIT_MULTIPLIER = 1.2  # Safety buffer for gas estimation

# ========================================================================
# SCHEDULER CONSTANTS
# ========================================================================

DEFAULT_INTERVAL_SECONDS = 60

# Job names double as guard keys
JOB_VERIFY_DEPOSITS = "verify_deposits"
JOB_SETTLE_WITHDRAWALS = "settle_withdrawals"

# Redis lock timeouts (seconds)
JOB_LOCK_TIMEOUT = 300
# A pass is cancelled before its guard key can expire
JOB_PASS_TIMEOUT = JOB_LOCK_TIMEOUT - 30
JOB_LOCK_KEY_PREFIX = "reconciliation_job"

# Dramatiq actor time limit (milliseconds)
DRAMATIQ_TIME_LIMIT_STANDARD = 300_000
