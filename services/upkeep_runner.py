"""
Upkeep runner
Pure coordinator: maintenance, health collection, report rendering, email and persistence
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from models.health import RunSummary
from models.settings import UpkeepSettings
from services.backup_compliance import BackupComplianceService
from services.health_service import HealthAggregationService
from services.index_maintenance import IndexMaintenanceService
from services.notification_sender import ReportMailer
from services.report_renderer import ReportRenderer
from services.status_store import StatusStore

logger = logging.getLogger(__name__)


class UpkeepRunner:
    """Runs one sequential upkeep pass over the configured instances"""

    def __init__(self, settings: UpkeepSettings, toolkit, mailer: Optional[ReportMailer] = None,
                 renderer: Optional[ReportRenderer] = None, status_store: Optional[StatusStore] = None):
        self.settings = settings
        self.toolkit = toolkit

        # Initialize specialized services
        self.maintenance = IndexMaintenanceService(toolkit, settings.thresholds)
        self.backup_compliance = BackupComplianceService(toolkit, settings.thresholds.backup_compliance_hours)
        self.health = HealthAggregationService(toolkit, self.backup_compliance)
        self.renderer = renderer or ReportRenderer(settings.paths.template_dir)
        self.mailer = mailer or ReportMailer(settings.email)
        if status_store is None and settings.paths.status_file:
            status_store = StatusStore(settings.paths.status_file)
        self.status_store = status_store

    def run(self, now: Optional[datetime] = None, with_index_maintenance: Optional[bool] = None,
            send_email: bool = True) -> RunSummary:
        """Start -> (maintenance) -> health -> render -> email -> persist -> finish"""
        started_at = now or datetime.now()
        summary = RunSummary(started_at=started_at)
        instances = self.settings.instances
        logger.info(f"Starting SQL Server upkeep for {len(instances)} instance(s)")

        if with_index_maintenance is None:
            with_index_maintenance = self.settings.index_maintenance.enabled
        if with_index_maintenance:
            logger.info("Running index maintenance")
            summary.maintenance = self.maintenance.run_all(instances)

        summary.records = self.health.collect_all(instances, now=started_at)
        summary.html = self.renderer.render(summary.records, started_at, summary.maintenance)

        if send_email:
            subject = self.settings.email.render_subject(started_at)
            result = self.mailer.send(subject, summary.html)
            summary.email_sent = result.success
            summary.email_error = result.error_message

        summary.report_path = self._write_report(summary.html)
        summary.finished_at = datetime.now()
        self._record_status(summary)

        failed = sum(1 for record in summary.records if record.status.value == 'failed')
        logger.info(f"SQL Server upkeep finished: {len(summary.records)} instance(s), {failed} with failed checks")
        return summary

    def _write_report(self, html: str) -> str:
        """Overwrite the report file with the rendered HTML"""
        report_path = Path(self.settings.paths.report_file)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(html, encoding='utf-8')
        logger.info(f"Report saved to {report_path}")
        return str(report_path)

    def _record_status(self, summary: RunSummary):
        """Persist per-instance status when a status file is configured"""
        if self.status_store is None:
            return
        try:
            self.status_store.record_run(summary.records, summary.finished_at)
        except OSError as e:
            logger.error(f"Could not write status file {self.status_store.status_file}: {e}")
