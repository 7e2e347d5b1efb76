"""
Health aggregation service
Builds one health record per instance from failed jobs and backup compliance
"""
import logging
from datetime import datetime
from typing import List, Optional

from models.health import HealthRecord
from services.backup_compliance import BackupComplianceService

logger = logging.getLogger(__name__)


class HealthAggregationService:
    """Collects per-instance health; never raises for a single instance"""

    def __init__(self, toolkit, backup_compliance: BackupComplianceService):
        self.toolkit = toolkit
        self.backup_compliance = backup_compliance

    def collect(self, instance: str, now: Optional[datetime] = None) -> HealthRecord:
        """Failed SQL Agent jobs plus backup compliance for one instance"""
        record = HealthRecord(instance=instance)

        try:
            record.failed_jobs = ", ".join(self.toolkit.list_failed_jobs(instance))
        except Exception as e:
            record.errors.append(f"Failed job check: {e}")
            logger.error(f"Failed job check failed on {instance}: {e}")

        record.backup_compliance = self.backup_compliance.check(instance, now=now)
        if record.backup_compliance.is_failure:
            record.errors.append(f"Backup verification: {record.backup_compliance.error_message}")

        return record

    def collect_all(self, instances: List[str], now: Optional[datetime] = None) -> List[HealthRecord]:
        """Records in configuration order"""
        records = []
        for instance in instances:
            logger.info(f"Collecting health for {instance}")
            records.append(self.collect(instance, now=now))
        return records
