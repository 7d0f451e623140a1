"""
Engine wiring.

Builds verifier, settler and scheduler from settings. Components are
constructed per process and injected; there are no module-level clients.
"""

from typing import Any

from custody.config.constants import JOB_SETTLE_WITHDRAWALS, JOB_VERIFY_DEPOSITS
from custody.config.settings import Settings
from custody.repositories.ledger import LedgerStore
from custody.services.blockchain.amount_codec import AmountCodec
from custody.services.blockchain.chain_client import ChainClient
from custody.services.blockchain.signing import HotWalletSigner
from custody.utils.distributed_lock import DistributedLock

from .deposit_verifier import DepositVerifier
from .scheduler import ReconciliationScheduler
from .withdrawal_settler import WithdrawalSettler


def create_deposit_verifier(
    settings: Settings, store: LedgerStore, chain: ChainClient
) -> DepositVerifier:
    """Deposit verifier; deliberately built without any signer."""
    return DepositVerifier(
        store=store,
        chain=chain,
        codec=AmountCodec(settings.usdt_decimals),
        token_contract=settings.usdt_contract_address,
        hot_wallet_address=settings.hot_wallet_address,
        min_confirmations=settings.min_confirmations,
        concurrency=settings.reconciliation_concurrency,
    )


def create_withdrawal_settler(
    settings: Settings, store: LedgerStore, chain: ChainClient
) -> WithdrawalSettler:
    """Withdrawal settler; the key is read from settings once per pass."""
    signer = HotWalletSigner(
        key_loader=lambda: settings.hot_wallet_private_key,
        expected_address=settings.hot_wallet_address,
    )
    return WithdrawalSettler(
        store=store,
        chain=chain,
        codec=AmountCodec(settings.usdt_decimals),
        token_contract=settings.usdt_contract_address,
        signer=signer,
        concurrency=settings.reconciliation_concurrency,
    )


def create_scheduler(
    settings: Settings,
    store: LedgerStore,
    chain: ChainClient,
    redis_client: Any = None,
) -> ReconciliationScheduler:
    """
    Scheduler with both reconciliation jobs registered.

    Args:
        settings: Application settings
        store: Ledger store
        chain: Chain client
        redis_client: Redis client for cross-instance guards (optional)

    Returns:
        Configured scheduler (not started)
    """
    verifier = create_deposit_verifier(settings, store, chain)
    settler = create_withdrawal_settler(settings, store, chain)

    scheduler = ReconciliationScheduler(lock=DistributedLock(redis_client=redis_client))
    scheduler.register(
        JOB_VERIFY_DEPOSITS,
        verifier.run_pass,
        interval_seconds=settings.deposit_verify_interval_seconds,
    )
    scheduler.register(
        JOB_SETTLE_WITHDRAWALS,
        settler.run_pass,
        interval_seconds=settings.withdrawal_settle_interval_seconds,
    )
    return scheduler
