"""
Per-run health and maintenance records
Transient data structures shared by the upkeep services and the report renderer
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


VERIFICATION_FAILED = "Verification Failed"


class MaintenanceAction(str, Enum):
    """Index maintenance actions understood by ALTER INDEX"""
    REORGANIZE = "REORGANIZE"
    REBUILD = "REBUILD"


class InstanceStatus(str, Enum):
    """Outcome of the checks for one instance"""
    OK = "ok"
    FAILED = "failed"


@dataclass(frozen=True)
class IndexFragmentation:
    """Fragmentation reading for one index"""
    database: str
    schema_name: str
    table_name: str
    index_name: str
    fragmentation_percent: float


@dataclass(frozen=True)
class BackupStatus:
    """Most recent full backup of a database (None = never backed up)"""
    database: str
    last_full_backup: Optional[datetime] = None


@dataclass(frozen=True)
class BackupComplianceResult:
    """Tagged result of a backup compliance check"""
    success: bool
    stale_databases: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    @classmethod
    def ok(cls, stale_databases: Optional[List[str]] = None) -> 'BackupComplianceResult':
        """Check ran; list the databases outside the compliance window"""
        return cls(success=True, stale_databases=list(stale_databases or []))

    @classmethod
    def failed(cls, reason: str) -> 'BackupComplianceResult':
        """Check itself could not be performed"""
        return cls(success=False, error_message=reason)

    @property
    def compliant(self) -> bool:
        return self.success and not self.stale_databases

    @property
    def is_failure(self) -> bool:
        return not self.success

    def display(self) -> str:
        """Report cell text: stale names, empty when compliant, sentinel on failure"""
        if not self.success:
            return VERIFICATION_FAILED
        return ", ".join(self.stale_databases)


@dataclass
class HealthRecord:
    """One report row per configured instance"""
    instance: str
    failed_jobs: str = ""
    backup_compliance: BackupComplianceResult = field(default_factory=BackupComplianceResult.ok)
    errors: List[str] = field(default_factory=list)

    @property
    def status(self) -> InstanceStatus:
        if self.errors or self.backup_compliance.is_failure:
            return InstanceStatus.FAILED
        return InstanceStatus.OK

    @property
    def needs_attention(self) -> bool:
        """True when anything on the row requires an operator"""
        return bool(self.failed_jobs) or not self.backup_compliance.compliant or bool(self.errors)


@dataclass(frozen=True)
class IndexMaintenanceAction:
    """An index repair that was issued"""
    index: IndexFragmentation
    action: MaintenanceAction


@dataclass
class InstanceMaintenanceResult:
    """Result of index maintenance on one instance"""
    instance: str
    success: bool = True
    actions: List[IndexMaintenanceAction] = field(default_factory=list)
    error_message: Optional[str] = None
    duration_seconds: float = 0.0


@dataclass
class RunSummary:
    """Everything one upkeep run produced"""
    started_at: datetime
    records: List[HealthRecord] = field(default_factory=list)
    maintenance: List[InstanceMaintenanceResult] = field(default_factory=list)
    html: str = ""
    report_path: Optional[str] = None
    email_sent: bool = False
    email_error: Optional[str] = None
    finished_at: Optional[datetime] = None
