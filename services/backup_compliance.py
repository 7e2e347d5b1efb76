"""
Backup compliance service
Flags databases whose last full backup is older than the compliance window
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from models.health import BackupComplianceResult, BackupStatus

logger = logging.getLogger(__name__)


def find_stale_databases(statuses: Iterable[BackupStatus], cutoff: datetime) -> List[str]:
    """Databases never backed up or backed up strictly before the cutoff"""
    return [
        status.database
        for status in statuses
        if status.last_full_backup is None or status.last_full_backup < cutoff
    ]


class BackupComplianceService:
    """Checks last full backup age per instance"""

    def __init__(self, toolkit, compliance_hours: float):
        self.toolkit = toolkit
        self.compliance_hours = compliance_hours

    def check(self, instance: str, now: Optional[datetime] = None) -> BackupComplianceResult:
        """Return the stale databases, or a failed result if the check errored"""
        cutoff = (now or datetime.now()) - timedelta(hours=self.compliance_hours)

        try:
            statuses = self.toolkit.get_last_backup_status(instance)
        except Exception as e:
            logger.error(f"Backup verification failed on {instance}: {e}")
            return BackupComplianceResult.failed(str(e))

        stale = find_stale_databases(statuses, cutoff)
        for database in stale:
            logger.warning(f"ALERT: {instance} - database '{database}' has no full backup in the last {self.compliance_hours:g} hours")
        return BackupComplianceResult.ok(stale)
