"""
Event loop bridge for Dramatiq actors.

Actors are synchronous and run on worker threads. Each thread keeps one
event loop for its lifetime, so async engines and clients created during
a pass are never awaited from a loop other than their own.
"""

import asyncio
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")

_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """Return this thread's loop, creating it on first use or after close."""
    loop: asyncio.AbstractEventLoop | None = getattr(_thread_local, "loop", None)
    if loop is not None and not loop.is_closed():
        return loop

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    _thread_local.loop = loop
    logger.debug(f"Event loop created for worker thread {threading.current_thread().name}")
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine to completion on this thread's loop.

    Args:
        coro: Coroutine to run

    Returns:
        Its result (exceptions propagate to the actor)
    """
    return get_event_loop().run_until_complete(coro)
