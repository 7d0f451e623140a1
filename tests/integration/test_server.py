"""Integration tests for the HTTP trigger surface."""

import asyncio

import pytest
from aiohttp.test_utils import TestClient, TestServer

from custody.config.constants import JOB_SETTLE_WITHDRAWALS, JOB_VERIFY_DEPOSITS
from custody.services.reconciliation.results import SettlementSummary, VerificationSummary
from custody.services.reconciliation.scheduler import ReconciliationScheduler
from custody.utils.exceptions import ConfigurationError
from jobs.server import create_app


def _scheduler(verify=None, settle=None) -> ReconciliationScheduler:
    async def default_verify():
        return VerificationSummary(checked=2, confirmed=1, not_found=1)

    async def default_settle():
        return SettlementSummary(checked=1, settled=1)

    scheduler = ReconciliationScheduler()
    scheduler.register(JOB_VERIFY_DEPOSITS, verify or default_verify)
    scheduler.register(JOB_SETTLE_WITHDRAWALS, settle or default_settle)
    return scheduler


class TestCronEndpoints:
    """Manual/cron triggers."""

    @pytest.mark.asyncio
    async def test_verify_deposits(self):
        async with TestClient(TestServer(create_app(_scheduler()))) as client:
            resp = await client.post("/cron/verify-deposits")
            body = await resp.json()

        assert resp.status == 200
        assert body["ok"] is True
        assert body["checked"] == 2
        assert body["confirmed"] == 1

    @pytest.mark.asyncio
    async def test_process_withdrawals(self):
        async with TestClient(TestServer(create_app(_scheduler()))) as client:
            resp = await client.post("/cron/process-withdrawals")
            body = await resp.json()

        assert resp.status == 200
        assert body["ok"] is True
        assert body["settled"] == 1

    @pytest.mark.asyncio
    async def test_configuration_error_returns_500(self):
        async def failing_settle():
            raise ConfigurationError("Hot wallet private key is not configured")

        app = create_app(_scheduler(settle=failing_settle))
        async with TestClient(TestServer(app)) as client:
            resp = await client.post("/cron/process-withdrawals")
            body = await resp.json()

        assert resp.status == 500
        assert body["ok"] is False
        assert "configuration" in body["error"]

    @pytest.mark.asyncio
    async def test_overlapping_trigger_returns_409(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_verify():
            started.set()
            await release.wait()
            return VerificationSummary(checked=1)

        app = create_app(_scheduler(verify=slow_verify))
        async with TestClient(TestServer(app)) as client:
            first = asyncio.ensure_future(client.post("/cron/verify-deposits"))
            await started.wait()

            second = await client.post("/cron/verify-deposits")
            second_body = await second.json()
            release.set()
            first_resp = await first

        assert second.status == 409
        assert second_body["skipped"] is True
        assert first_resp.status == 200

    @pytest.mark.asyncio
    async def test_get_not_allowed(self):
        async with TestClient(TestServer(create_app(_scheduler()))) as client:
            resp = await client.get("/cron/verify-deposits")

        assert resp.status == 405


class TestCronToken:
    """Optional shared secret."""

    @pytest.mark.asyncio
    async def test_missing_token_rejected(self):
        app = create_app(_scheduler(), cron_token="s3cret")
        async with TestClient(TestServer(app)) as client:
            resp = await client.post("/cron/verify-deposits")

        assert resp.status == 401

    @pytest.mark.asyncio
    async def test_wrong_token_rejected(self):
        app = create_app(_scheduler(), cron_token="s3cret")
        async with TestClient(TestServer(app)) as client:
            resp = await client.post(
                "/cron/verify-deposits", headers={"X-Cron-Token": "guess"}
            )

        assert resp.status == 401

    @pytest.mark.asyncio
    async def test_valid_token_accepted(self):
        app = create_app(_scheduler(), cron_token="s3cret")
        async with TestClient(TestServer(app)) as client:
            resp = await client.post(
                "/cron/verify-deposits", headers={"X-Cron-Token": "s3cret"}
            )

        assert resp.status == 200


class TestHealthEndpoints:
    """Health, readiness, liveness."""

    @pytest.mark.asyncio
    async def test_health_reports_last_pass(self):
        scheduler = _scheduler()
        await scheduler.run(JOB_VERIFY_DEPOSITS)

        async with TestClient(TestServer(create_app(scheduler))) as client:
            resp = await client.get("/health")
            body = await resp.json()

        assert resp.status == 200
        assert body["ok"] is True
        jobs = {job["name"]: job for job in body["jobs"]}
        assert jobs[JOB_VERIFY_DEPOSITS]["last_report"]["checked"] == 2
        assert jobs[JOB_SETTLE_WITHDRAWALS]["last_report"] is None

    @pytest.mark.asyncio
    async def test_readiness_follows_scheduler(self):
        scheduler = _scheduler()

        async with TestClient(TestServer(create_app(scheduler))) as client:
            not_ready = await client.get("/readiness")
            scheduler.start()
            try:
                ready = await client.get("/readiness")
            finally:
                scheduler.shutdown()

        assert not_ready.status == 503
        assert ready.status == 200

    @pytest.mark.asyncio
    async def test_liveness(self):
        async with TestClient(TestServer(create_app(_scheduler()))) as client:
            resp = await client.get("/liveness")

        assert resp.status == 200
