"""
Engine main entry point.

Starts interval passes and the HTTP trigger surface, then runs until
SIGINT/SIGTERM. Run with: python -m jobs.main
"""

import asyncio
import signal
import sys

from loguru import logger

from custody.config.logging import setup_logging
from custody.config.settings import get_settings
from jobs.runtime import build_runtime
from jobs.server import create_app, start_server, stop_server


async def main() -> None:
    """Initialize and run the reconciliation engine."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)

    runtime = await build_runtime(settings)
    app = create_app(runtime.scheduler, cron_token=settings.cron_trigger_token)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    runner = None
    try:
        runtime.scheduler.start()
        runner = await start_server(app, settings.http_host, settings.http_port)
        await stop_event.wait()
        logger.info("Shutdown signal received")
    finally:
        if runner is not None:
            await stop_server(runner)
        await runtime.close()
        logger.info("Reconciliation engine stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Engine stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Engine crashed: {e}")
        sys.exit(1)
