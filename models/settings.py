"""
Upkeep settings schema
Validated, immutable view of the YAML configuration passed to every service
"""
from datetime import datetime
from typing import List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import validators
from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FrozenModel(BaseModel):
    """Base for settings sections - loaded once, never mutated"""
    model_config = ConfigDict(frozen=True, extra='forbid')


class ConnectionSettings(FrozenModel):
    """ODBC connection parameters shared by all instances"""
    driver: str = "ODBC Driver 18 for SQL Server"
    trusted_connection: bool = True
    username: str = ""
    password: str = ""
    encrypt: bool = True
    trust_server_certificate: bool = True
    login_timeout: int = Field(default=15, gt=0)     # seconds for pyodbc.connect
    query_timeout: int = Field(default=1800, ge=0)   # seconds per statement, 0 = no limit

    @model_validator(mode='after')
    def _require_credentials(self) -> 'ConnectionSettings':
        if not self.trusted_connection and not self.username:
            raise ValueError("username is required when trusted_connection is false")
        return self


class EmailSettings(FrozenModel):
    """SMTP delivery of the rendered report"""
    enabled: bool = True
    smtp_server: str = "localhost"
    smtp_port: int = 25
    use_tls: bool = False
    use_ssl: bool = False
    username: str = ""
    password: str = ""
    from_email: str
    to_email: List[str]
    subject: str = "SQL Server Health Report - {date}"
    send_timeout: int = Field(default=60, gt=0)

    @field_validator('to_email', mode='before')
    @classmethod
    def _split_recipients(cls, value: Union[str, List[str]]) -> List[str]:
        if isinstance(value, str):
            return [address.strip() for address in value.split(',') if address.strip()]
        return value

    @field_validator('to_email')
    @classmethod
    def _validate_recipients(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("at least one recipient is required")
        invalid = [address for address in value if not validators.email(address)]
        if invalid:
            raise ValueError(f"invalid recipient address: {', '.join(invalid)}")
        return value

    @field_validator('from_email')
    @classmethod
    def _validate_sender(cls, value: str) -> str:
        if not validators.email(value):
            raise ValueError(f"invalid sender address: {value}")
        return value

    def render_subject(self, run_date: datetime) -> str:
        """Expand {date} in the subject template"""
        return self.subject.replace('{date}', run_date.strftime('%Y-%m-%d'))


class PathSettings(FrozenModel):
    """Output locations"""
    log_file: str = "logs/sql_upkeep.log"
    report_file: str = "reports/sql_health_report.html"
    status_file: Optional[str] = None
    template_dir: Optional[str] = None


class ThresholdSettings(FrozenModel):
    """Fragmentation and backup age limits"""
    reorganize_percent: float = Field(default=10, ge=0, le=100)
    rebuild_percent: float = Field(default=30, ge=0, le=100)
    backup_compliance_hours: float = Field(default=26, gt=0)

    @model_validator(mode='after')
    def _check_order(self) -> 'ThresholdSettings':
        if self.reorganize_percent > self.rebuild_percent:
            raise ValueError("reorganize_percent must not exceed rebuild_percent")
        return self


class IndexMaintenanceSettings(FrozenModel):
    """Index maintenance is opt-in"""
    enabled: bool = False


class ScheduleSettings(FrozenModel):
    """Crontab used by the 'schedule' command"""
    cron: str = "0 6 * * *"
    timezone: Optional[str] = None

    @field_validator('cron')
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        try:
            croniter(value)
        except ValueError as e:
            raise ValueError(f"Invalid cron expression: {str(e)}")
        return value

    @field_validator('timezone')
    @classmethod
    def _validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value} ({str(e)})")
        return value

    def next_run(self, after: datetime) -> datetime:
        """Next scheduled run after the given time"""
        return croniter(self.cron, after).get_next(datetime)


class UpkeepSettings(FrozenModel):
    """Complete configuration for one upkeep run"""
    instances: List[str]
    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    email: EmailSettings
    paths: PathSettings = Field(default_factory=PathSettings)
    thresholds: ThresholdSettings = Field(default_factory=ThresholdSettings)
    index_maintenance: IndexMaintenanceSettings = Field(default_factory=IndexMaintenanceSettings)
    schedule: ScheduleSettings = Field(default_factory=ScheduleSettings)

    @field_validator('instances')
    @classmethod
    def _clean_instances(cls, value: List[str]) -> List[str]:
        cleaned = [instance.strip() for instance in value if instance and instance.strip()]
        if not cleaned:
            raise ValueError("at least one instance must be configured")
        return cleaned
