import logging
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from config import Settings, get_settings
from database import Store
from integrity import AuditReport, IntegrityAuditor

logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, store: Store, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.scheduler = BackgroundScheduler(timezone=self.settings.timezone)
        self.last_report: Optional[AuditReport] = None

    def _run_audit(self, source: str = "manual") -> AuditReport:
        logger.info(f"integrity_audit: source={source}")
        report = IntegrityAuditor(self.store).run()
        self.last_report = report
        logger.info(
            f"integrity_audit: source={source} months={report.months_checked} "
            f"repaired={report.repaired} full_regeneration={report.full_regeneration}"
        )
        return report

    def start(self) -> None:
        if not self.settings.audit_enabled:
            logger.info("Scheduler disabled, integrity audit not scheduled")
            return

        run_at = datetime.now(ZoneInfo(self.settings.timezone)) + timedelta(
            seconds=self.settings.audit_delay_secs
        )
        self.scheduler.add_job(
            self._run_audit,
            DateTrigger(run_date=run_at),
            args=["startup"],
            id="integrity_audit",
            replace_existing=True,
            misfire_grace_time=300,
        )
        self.scheduler.start()
        logger.info(
            f"Scheduler started, integrity audit in {self.settings.audit_delay_secs}s"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
