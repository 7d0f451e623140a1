"""
HTTP trigger surface.

External cron hits the /cron endpoints to run a guarded pass on demand;
health endpoints report scheduler state and the last pass of each job.
"""

import asyncio
import hmac

from aiohttp import web
from loguru import logger

from custody.config.constants import JOB_SETTLE_WITHDRAWALS, JOB_VERIFY_DEPOSITS
from custody.services.reconciliation.scheduler import ReconciliationScheduler

CRON_TOKEN_HEADER = "X-Cron-Token"

SCHEDULER_KEY = web.AppKey("scheduler", ReconciliationScheduler)
CRON_TOKEN_KEY = web.AppKey("cron_token", str)


def _authorized(request: web.Request) -> bool:
    expected = request.app.get(CRON_TOKEN_KEY)
    if not expected:
        return True
    provided = request.headers.get(CRON_TOKEN_HEADER, "")
    return hmac.compare_digest(provided.encode(), expected.encode())


async def _run_job(request: web.Request, name: str) -> web.Response:
    if not _authorized(request):
        logger.warning(f"Rejected trigger for '{name}' from {request.remote}: bad token")
        return web.json_response({"ok": False, "error": "unauthorized"}, status=401)

    scheduler = request.app[SCHEDULER_KEY]
    report = await scheduler.run(name)
    return web.json_response(report.to_dict(), status=report.http_status)


async def verify_deposits_handler(request: web.Request) -> web.Response:
    """Run one deposit verification pass."""
    return await _run_job(request, JOB_VERIFY_DEPOSITS)


async def process_withdrawals_handler(request: web.Request) -> web.Response:
    """Run one withdrawal settlement pass."""
    return await _run_job(request, JOB_SETTLE_WITHDRAWALS)


async def health_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Returns:
        JSON response with scheduler status and last pass per job
    """
    scheduler = request.app[SCHEDULER_KEY]
    next_runs = scheduler.next_run_times()

    jobs = []
    for name in scheduler.job_names:
        last = scheduler.last_report(name)
        jobs.append(
            {
                "name": name,
                "running": scheduler.is_running(name),
                "next_run_time": next_runs.get(name),
                "last_report": last.to_dict() if last else None,
            }
        )

    return web.json_response(
        {
            "ok": True,
            "status": "healthy",
            "scheduler_running": scheduler.running,
            "jobs": jobs,
        }
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """
    Readiness check endpoint.

    Returns:
        503 until interval runs have been started
    """
    if not request.app[SCHEDULER_KEY].running:
        return web.json_response({"status": "not_ready", "ready": False}, status=503)
    return web.json_response({"status": "ready", "ready": True})


async def liveness_handler(request: web.Request) -> web.Response:
    """Liveness check endpoint."""
    return web.json_response({"status": "alive", "alive": True})


def create_app(
    scheduler: ReconciliationScheduler,
    cron_token: str | None = None,
) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        scheduler: Scheduler with both jobs registered
        cron_token: Shared secret required on trigger requests (optional)

    Returns:
        Application (not started)
    """
    app = web.Application()
    app[SCHEDULER_KEY] = scheduler
    if cron_token:
        app[CRON_TOKEN_KEY] = cron_token

    app.router.add_post("/cron/verify-deposits", verify_deposits_handler)
    app.router.add_post("/cron/process-withdrawals", process_withdrawals_handler)
    app.router.add_get("/health", health_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/liveness", liveness_handler)
    return app


async def start_server(
    app: web.Application,
    host: str = "0.0.0.0",
    port: int = 4000,
) -> web.AppRunner:
    """
    Start the HTTP server.

    Args:
        app: Application from create_app
        host: Host to bind to
        port: Port to bind to

    Returns:
        AppRunner for cleanup
    """
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"HTTP server started on {host}:{port}")
    logger.info(f"  - Verify deposits: POST http://{host}:{port}/cron/verify-deposits")
    logger.info(f"  - Settle withdrawals: POST http://{host}:{port}/cron/process-withdrawals")
    logger.info(f"  - Health: http://{host}:{port}/health")

    return runner


async def stop_server(runner: web.AppRunner, timeout: int = 5) -> None:
    """
    Stop the HTTP server gracefully.

    Args:
        runner: AppRunner to cleanup
        timeout: Maximum time to wait for cleanup in seconds
    """
    logger.info("Stopping HTTP server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("HTTP server stopped successfully")
    except TimeoutError:
        logger.warning(f"HTTP server cleanup timed out after {timeout}s")
