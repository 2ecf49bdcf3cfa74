"""Background job registration and execution tests."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from src.database.models import PaymentStatus
from src.modules.billing.payments import PaymentService
from src.modules.scheduling.jobs import (
    payment_cleanup_job,
    payment_poll_job,
    proxy_health_check_job,
    quota_reset_job,
    register_jobs,
)
from src.modules.scheduling.scheduler import TaskScheduler
from src.utils.dates import utcnow
from tests.factories import PaymentFactory


def test_register_jobs():
    scheduler = TaskScheduler(timezone="UTC")

    register_jobs(scheduler)

    assert sorted(scheduler.job_ids()) == [
        "payment_cleanup",
        "payment_poll",
        "provider_quota_reset",
        "proxy_health_check",
    ]
    assert scheduler.running is False


def test_registering_twice_replaces_jobs():
    scheduler = TaskScheduler(timezone="UTC")
    register_jobs(scheduler)
    register_jobs(scheduler)
    assert sorted(scheduler.job_ids()) == [
        "payment_cleanup",
        "payment_poll",
        "provider_quota_reset",
        "proxy_health_check",
    ]


@pytest.mark.asyncio
async def test_cleanup_job_expires_stale_payments(db_session, session_factory):
    payment = await PaymentFactory.create_async(
        db_session, expired_at=utcnow() - timedelta(minutes=5)
    )

    await payment_cleanup_job(session_factory)

    refreshed = await PaymentService(db_session).get_payment(payment.id)
    assert refreshed.status == PaymentStatus.EXPIRED


@pytest.mark.asyncio
async def test_jobs_swallow_failures(session_factory):
    with patch(
        "src.modules.scheduling.jobs.PaymentService.reconcile_pending_payments",
        AsyncMock(side_effect=RuntimeError("boom")),
    ):
        await payment_poll_job(session_factory)

    with patch(
        "src.modules.scheduling.jobs.ProviderRegistryService.reset_all_daily_quotas",
        AsyncMock(side_effect=RuntimeError("boom")),
    ):
        await quota_reset_job(session_factory)


@pytest.mark.asyncio
async def test_health_job_with_empty_pool(session_factory):
    await proxy_health_check_job(session_factory)
