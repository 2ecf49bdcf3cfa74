"""Background jobs. Each opens its own session and never raises."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database.connection import get_async_db
from src.modules.billing.payments import PaymentService
from src.modules.providers.registry import ProviderRegistryService
from src.modules.proxies.health import ProxyHealthChecker
from src.modules.scheduling.scheduler import TaskScheduler
from src.utils.logger import get_logger
from src.utils.settings.scheduler import SchedulerSettings

logger = get_logger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


async def proxy_health_check_job(session_factory: SessionFactory | None = None) -> None:
    try:
        async with get_async_db(session_factory) as db:
            await ProxyHealthChecker(db).perform_health_check()
    except Exception as e:
        logger.error("Proxy health check job failed", error=str(e))


async def quota_reset_job(session_factory: SessionFactory | None = None) -> None:
    try:
        async with get_async_db(session_factory) as db:
            await ProviderRegistryService(db).reset_all_daily_quotas()
    except Exception as e:
        logger.error("Quota reset job failed", error=str(e))


async def payment_cleanup_job(session_factory: SessionFactory | None = None) -> None:
    try:
        async with get_async_db(session_factory) as db:
            await PaymentService(db).cleanup_expired_payments()
    except Exception as e:
        logger.error("Payment cleanup job failed", error=str(e))


async def payment_poll_job(session_factory: SessionFactory | None = None) -> None:
    try:
        async with get_async_db(session_factory) as db:
            completed = await PaymentService(db).reconcile_pending_payments()
        if completed:
            logger.info("Pending payments completed by polling", count=completed)
    except Exception as e:
        logger.error("Payment poll job failed", error=str(e))


def register_jobs(
    scheduler: TaskScheduler,
    session_factory: SessionFactory | None = None,
    settings: SchedulerSettings | None = None,
) -> None:
    settings = settings or SchedulerSettings()
    scheduler.add_interval_job(
        proxy_health_check_job,
        minutes=settings.PROXY_HEALTH_CHECK_INTERVAL_MINUTES,
        job_id="proxy_health_check",
        session_factory=session_factory,
    )
    scheduler.add_cron_job(
        quota_reset_job,
        hour=settings.QUOTA_RESET_HOUR,
        job_id="provider_quota_reset",
        session_factory=session_factory,
    )
    scheduler.add_interval_job(
        payment_cleanup_job,
        minutes=settings.PAYMENT_CLEANUP_INTERVAL_MINUTES,
        job_id="payment_cleanup",
        session_factory=session_factory,
    )
    scheduler.add_interval_job(
        payment_poll_job,
        seconds=settings.PAYMENT_POLL_INTERVAL_SECONDS,
        job_id="payment_poll",
        session_factory=session_factory,
    )
