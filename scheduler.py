import logging
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional
from uuid import uuid4

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STALE_EXPORT_AGE = timedelta(hours=1)


def delete_file(path: str) -> bool:
    """Remove one generated file. Failures are logged, never raised."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning(f"export_cleanup_failed: path={path} error={exc}")
        return False
    logger.info(f"export_cleanup: path={path}")
    return True


def sweep_stale_exports(export_dir: Path, max_age: timedelta = STALE_EXPORT_AGE) -> int:
    cutoff = time.time() - max_age.total_seconds()
    removed = 0
    for path in Path(export_dir).glob("*"):
        try:
            is_stale = path.is_file() and path.stat().st_mtime < cutoff
        except OSError as exc:
            logger.warning(f"export_cleanup_failed: path={path} error={exc}")
            continue
        if is_stale and delete_file(str(path)):
            removed += 1
    return removed


class ExportCleanupScheduler:
    def __init__(self, export_dir: Optional[Path] = None) -> None:
        settings = get_settings()
        self.export_dir = Path(export_dir or settings.export_dir)
        self.delay_secs = settings.export_cleanup_delay_secs
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _sweep(self, source: str = "manual") -> None:
        removed = sweep_stale_exports(self.export_dir)
        logger.info(f"export_sweep: source={source} removed={removed}")

    def schedule_cleanup(self, path: str, delay_secs: Optional[float] = None) -> None:
        """Delete ``path`` once the delay has passed."""
        delay = self.delay_secs if delay_secs is None else delay_secs
        if not self.scheduler.running:
            # Without a running scheduler the job would never fire.
            delete_file(path)
            return
        run_at = datetime.now(self.scheduler.timezone) + timedelta(seconds=delay)
        self.scheduler.add_job(
            delete_file,
            DateTrigger(run_date=run_at),
            args=[path],
            id=f"export_cleanup_{uuid4().hex}",
            misfire_grace_time=3600,
        )

    def start(self) -> None:
        self._sweep("startup")

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._sweep,
            trigger,
            args=["hourly_safety_net"],
            id="export_sweep_hourly",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with hourly export sweep")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
