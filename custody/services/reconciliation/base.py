"""
Base reconciliation service.

Shared wiring for the deposit and withdrawal passes: bound logger and a
bounded worker pool for independent records.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from loguru import logger

from custody.repositories.ledger import LedgerStore
from custody.services.blockchain.amount_codec import AmountCodec
from custody.services.blockchain.chain_client import ChainClient

T = TypeVar("T")
R = TypeVar("R")


async def process_concurrently(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 1,
) -> list[R]:
    """
    Run worker over items with at most `concurrency` in flight.

    The worker must not raise; each record's failure is its own result.

    Args:
        items: Records to process
        worker: Coroutine function producing one result per record
        concurrency: Maximum parallel workers

    Returns:
        Results in input order
    """
    if concurrency <= 1:
        return [await worker(item) for item in items]

    semaphore = asyncio.Semaphore(concurrency)

    async def bounded(item: T) -> R:
        async with semaphore:
            return await worker(item)

    return list(await asyncio.gather(*(bounded(item) for item in items)))


class ReconciliationService:
    """
    Base class for reconciliation passes.

    Holds no state between passes; every pass re-reads the ledger.
    """

    def __init__(
        self,
        store: LedgerStore,
        chain: ChainClient,
        codec: AmountCodec,
        token_contract: str,
        concurrency: int = 1,
    ) -> None:
        """
        Initialize service.

        Args:
            store: Ledger store
            chain: Chain client
            codec: Token amount codec
            token_contract: Stablecoin contract address
            concurrency: Records processed in parallel per pass
        """
        self.store = store
        self.chain = chain
        self.codec = codec
        self.token_contract = chain.canonical_address(token_contract)
        self.concurrency = max(1, concurrency)
        self.logger = logger.bind(service=self.__class__.__name__)
