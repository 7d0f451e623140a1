"""
Engine runtime.

Builds everything one process needs (database, chain client, scheduler)
from settings, and tears it down again. Used by the long-running service,
the HTTP trigger surface and the Dramatiq actors alike.
"""

from dataclasses import dataclass
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from custody.config.database import create_engine, create_session_maker
from custody.config.settings import Settings, get_settings
from custody.repositories.ledger import LedgerStore, SqlLedgerStore
from custody.services.blockchain.chain_client import ChainClient
from custody.services.blockchain.web3_client import Web3ChainClient
from custody.services.reconciliation.factory import create_scheduler
from custody.services.reconciliation.scheduler import ReconciliationScheduler
from custody.utils.redis_utils import get_redis_client, get_redis_url_masked


@dataclass
class EngineRuntime:
    """Per-process engine components."""

    settings: Settings
    store: LedgerStore
    chain: ChainClient
    scheduler: ReconciliationScheduler
    engine: AsyncEngine | None = None
    redis_client: Any = None

    async def close(self) -> None:
        """Release connections held by the runtime."""
        self.scheduler.shutdown()

        close_chain = getattr(self.chain, "close", None)
        if close_chain is not None:
            await close_chain()

        if self.redis_client is not None:
            try:
                await self.redis_client.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis client: {e}")

        if self.engine is not None:
            await self.engine.dispose()
            logger.debug("Database connections cleaned up")


async def build_runtime(
    settings: Settings | None = None,
    store: LedgerStore | None = None,
    chain: ChainClient | None = None,
) -> EngineRuntime:
    """
    Build engine runtime.

    Args:
        settings: Settings (loaded from environment if omitted)
        store: Ledger store override (SQL store from DATABASE_URL otherwise)
        chain: Chain client override (Web3 client from CHAIN_RPC_URL otherwise)

    Returns:
        EngineRuntime with scheduler jobs registered but not started
    """
    settings = settings or get_settings()

    engine = None
    if store is None:
        engine = create_engine(settings.database_url, echo=settings.database_echo)
        store = SqlLedgerStore(create_session_maker(engine))

    if chain is None:
        chain = Web3ChainClient.from_settings(settings)

    redis_client = None
    if settings.use_redis_lock:
        redis_client = get_redis_client(settings)
        logger.info(f"Job guards use Redis at {get_redis_url_masked(settings)}")

    scheduler = create_scheduler(settings, store, chain, redis_client=redis_client)

    return EngineRuntime(
        settings=settings,
        store=store,
        chain=chain,
        scheduler=scheduler,
        engine=engine,
        redis_client=redis_client,
    )
