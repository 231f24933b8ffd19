import logging
from datetime import date
from typing import Callable, ContextManager, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from config import get_settings
from database import session_scope
from periods import local_today, previous_day
from services import ReportService, owners_with_activity


logger = logging.getLogger(__name__)


def generate_reports_for_day(session: Session, day: date) -> int:
    owners = owners_with_activity(session, day)
    for owner in owners:
        ReportService(session, owner).generate(day)
    return len(owners)


class SchedulerManager:
    def __init__(
        self, scope: Callable[[], ContextManager[Session]] = session_scope
    ) -> None:
        settings = get_settings()
        self.settings = settings
        self.scope = scope
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual", day: Optional[date] = None) -> int:
        target = day or previous_day(local_today(self.settings.timezone))
        logger.info(f"scheduler_run: source={source} date={target}")
        with self.scope() as session:
            count = generate_reports_for_day(session, target)
        logger.info(f"scheduler_run: source={source} date={target} reports={count}")
        return count

    def start(self) -> None:
        if not self.settings.scheduler_enabled:
            logger.info("Scheduler disabled by configuration")
            return

        trigger = CronTrigger(hour=0, minute=10)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["daily_00:10"],
            id="daily_reports",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info("Scheduler started with daily report generation at 00:10")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
