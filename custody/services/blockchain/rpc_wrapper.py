"""
RPC wrapper with timeout handling.

Every node call goes through with_timeout so a hung node surfaces as a
TransientChainError instead of stalling a pass.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import aiohttp
from loguru import logger

from custody.config.constants import BLOCKCHAIN_TIMEOUT
from custody.utils.exceptions import TransientChainError

T = TypeVar("T")


async def with_timeout(
    coro: Awaitable[T],
    timeout: float = BLOCKCHAIN_TIMEOUT,
    operation_name: str = "RPC call",
) -> T:
    """
    Execute async coroutine with timeout.

    Args:
        coro: Coroutine to execute
        timeout: Timeout in seconds (default: BLOCKCHAIN_TIMEOUT)
        operation_name: Operation name for logging

    Returns:
        Result of the coroutine

    Raises:
        TransientChainError: If operation times out or the node is unreachable
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError as e:
        error_msg = f"{operation_name} timed out after {timeout}s"
        logger.error(error_msg)
        raise TransientChainError(error_msg) from e
    except (ConnectionError, OSError, aiohttp.ClientError) as e:
        error_msg = f"{operation_name} failed: node unreachable ({e})"
        logger.error(error_msg)
        raise TransientChainError(error_msg) from e
