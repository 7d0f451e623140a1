"""
Reconciliation tasks.

Queue-triggered passes. Each message builds a runtime, runs one guarded
pass through the scheduler and tears the runtime down again. Every
message gets a fresh runtime, so only the Redis guard is shared between
them and with the HTTP service; actors refuse to run without it.
"""

from typing import Any

import dramatiq
from loguru import logger

from custody.config.constants import (
    DRAMATIQ_TIME_LIMIT_STANDARD,
    JOB_SETTLE_WITHDRAWALS,
    JOB_VERIFY_DEPOSITS,
)
from custody.config.settings import get_settings
from custody.utils.exceptions import ConfigurationError
from jobs.async_runner import run_async
from jobs.runtime import build_runtime


async def run_job(name: str) -> dict[str, Any]:
    """
    Run one pass of a job in a fresh runtime.

    Args:
        name: Job name

    Returns:
        Pass report as a dict

    Raises:
        ConfigurationError: USE_REDIS_LOCK is off
    """
    settings = get_settings()
    if not settings.use_redis_lock:
        raise ConfigurationError(
            f"Queued '{name}' pass needs USE_REDIS_LOCK; without it passes overlap"
        )

    runtime = await build_runtime(settings)
    try:
        report = await runtime.scheduler.run(name)
    finally:
        await runtime.close()

    if report.skipped:
        logger.info(f"Queued '{name}' pass skipped, another pass is running")
    elif not report.ok:
        logger.error(f"Queued '{name}' pass failed: {report.error}")
    return report.to_dict()


@dramatiq.actor(max_retries=0, time_limit=DRAMATIQ_TIME_LIMIT_STANDARD)
def verify_deposits() -> None:
    """Run one deposit verification pass."""
    run_async(run_job(JOB_VERIFY_DEPOSITS))


@dramatiq.actor(max_retries=0, time_limit=DRAMATIQ_TIME_LIMIT_STANDARD)
def settle_withdrawals() -> None:
    """
    Run one withdrawal settlement pass.

    Not retried by the broker: records left approved are picked up by the
    next pass, which re-reads them first.
    """
    run_async(run_job(JOB_SETTLE_WITHDRAWALS))
