import logging
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from services import Workspace, get_workspace


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(
        self, workspace_factory: Optional[Callable[[], Workspace]] = None
    ) -> None:
        settings = get_settings()
        self.interval_hours = settings.recurring_interval_hours
        self.workspace_factory = workspace_factory or get_workspace
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> int:
        logger.info(f"scheduler_run: source={source}")
        workspace = self.workspace_factory()
        generated = workspace.recurring.catch_up()
        logger.info(f"scheduler_run: source={source} expenses_generated={len(generated)}")
        return len(generated)

    def start(self) -> None:
        self._run_job("startup")

        trigger = IntervalTrigger(hours=self.interval_hours)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["interval"],
            id="recurring_expenses",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started with recurring expense check every {self.interval_hours}h"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
