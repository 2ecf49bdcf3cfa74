"""In-process job scheduler on APScheduler's asyncio backend."""

from typing import Any, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from src.utils.logger import get_logger
from src.utils.settings.scheduler import SchedulerSettings

logger = get_logger(__name__)


class TaskScheduler:
    _instance: "TaskScheduler | None" = None

    def __init__(self, timezone: str | None = None) -> None:
        self.timezone = timezone or SchedulerSettings().SCHEDULER_TIMEZONE
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        self._started = False

    @classmethod
    def get_instance(cls) -> "TaskScheduler":
        if cls._instance is None:
            cls._instance = TaskScheduler()
        return cls._instance

    @property
    def running(self) -> bool:
        return self._started

    def _drop_existing(self, job_id: str) -> None:
        # replace_existing only applies once started; pending jobs pile up before that
        if self.scheduler.get_job(job_id) is not None:
            self.scheduler.remove_job(job_id)

    def add_cron_job(
        self,
        func: Callable[..., Any],
        hour: int | str,
        minute: int = 0,
        job_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        job_id = job_id or func.__name__
        self._drop_existing(job_id)
        self.scheduler.add_job(
            func,
            CronTrigger(hour=hour, minute=minute, timezone=self.timezone),
            id=job_id,
            name=job_id,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            kwargs=kwargs,
        )
        logger.info(
            "Cron job registered",
            job_id=job_id,
            at=f"{hour}:{minute:02d}",
            timezone=self.timezone,
        )

    def add_interval_job(
        self,
        func: Callable[..., Any],
        seconds: int | None = None,
        minutes: int | None = None,
        job_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        trigger_kwargs = {}
        if seconds is not None:
            trigger_kwargs["seconds"] = seconds
        if minutes is not None:
            trigger_kwargs["minutes"] = minutes

        job_id = job_id or func.__name__
        self._drop_existing(job_id)
        self.scheduler.add_job(
            func,
            IntervalTrigger(**trigger_kwargs),
            id=job_id,
            name=job_id,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            kwargs=kwargs,
        )
        logger.info("Interval job registered", job_id=job_id, **trigger_kwargs)

    def job_ids(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def start(self) -> None:
        if self._started:
            logger.warning("Scheduler already running")
            return
        self.scheduler.start()
        self._started = True
        for job in self.scheduler.get_jobs():
            logger.info("Job scheduled", job_id=job.id, next_run=str(job.next_run_time))

    def stop(self) -> None:
        if not self._started:
            return
        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Scheduler stopped")
