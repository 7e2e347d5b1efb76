"""
SQL Server administration toolkit
Thin pyodbc wrapper exposing the calls the upkeep tasks need
"""
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List

import pyodbc

from models.health import BackupStatus, IndexFragmentation, MaintenanceAction
from models.settings import ConnectionSettings

logger = logging.getLogger(__name__)

SYSTEM_DATABASES = ('master', 'model', 'msdb', 'tempdb')

LIST_DATABASES_SQL = """
    SELECT name
    FROM sys.databases
    WHERE state_desc = 'ONLINE'
      AND source_database_id IS NULL
    ORDER BY name
"""

LIST_INDEXES_SQL = """
    SELECT
        s.name AS schema_name,
        t.name AS table_name,
        i.name AS index_name,
        ps.avg_fragmentation_in_percent
    FROM sys.dm_db_index_physical_stats(DB_ID(), NULL, NULL, NULL, 'LIMITED') ps
    INNER JOIN sys.indexes i ON ps.object_id = i.object_id AND ps.index_id = i.index_id
    INNER JOIN sys.tables t ON i.object_id = t.object_id
    INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
    WHERE i.name IS NOT NULL
      AND ps.alloc_unit_type_desc = 'IN_ROW_DATA'
    ORDER BY ps.avg_fragmentation_in_percent DESC
"""

LAST_BACKUP_SQL = """
    SELECT
        d.name AS database_name,
        MAX(b.backup_finish_date) AS last_full_backup
    FROM sys.databases d
    LEFT JOIN msdb.dbo.backupset b
        ON b.database_name = d.name AND b.type = 'D'
    WHERE d.name <> 'tempdb'
      AND d.source_database_id IS NULL
    GROUP BY d.name
    ORDER BY d.name
"""

FAILED_JOBS_SQL = """
    SELECT j.name
    FROM msdb.dbo.sysjobs j
    INNER JOIN msdb.dbo.sysjobservers js ON j.job_id = js.job_id
    WHERE j.enabled = 1
      AND js.last_run_outcome = 0
      AND js.last_run_date > 0
    ORDER BY j.name
"""


class ToolkitUnavailableError(Exception):
    """The ODBC driver needed to reach SQL Server is not installed"""


def quote_identifier(name: str) -> str:
    """Bracket-quote a SQL Server identifier"""
    return "[" + name.replace("]", "]]") + "]"


class SqlServerToolkit:
    """High-level SQL Server calls used by maintenance and health checks"""

    def __init__(self, settings: ConnectionSettings):
        self.settings = settings

    def ensure_available(self):
        """Fail fast when the configured ODBC driver is missing"""
        installed = pyodbc.drivers()
        if self.settings.driver not in installed:
            available = ", ".join(installed) if installed else "none"
            raise ToolkitUnavailableError(
                f"ODBC driver '{self.settings.driver}' is not installed (available: {available})"
            )

    def build_connection_string(self, instance: str, database: str = "master") -> str:
        """Build the ODBC connection string for an instance"""
        parts = [
            f"DRIVER={{{self.settings.driver}}}",
            f"SERVER={instance}",
            f"DATABASE={database}",
        ]
        if self.settings.trusted_connection:
            parts.append("Trusted_Connection=yes")
        else:
            parts.append(f"UID={self.settings.username}")
            parts.append(f"PWD={{{self.settings.password.replace('}', '}}')}}}")
        parts.append(f"Encrypt={'yes' if self.settings.encrypt else 'no'}")
        if self.settings.trust_server_certificate:
            parts.append("TrustServerCertificate=yes")
        return ";".join(parts) + ";"

    @contextmanager
    def connect(self, instance: str, database: str = "master") -> Iterator[pyodbc.Connection]:
        """Open a bounded connection (login and query timeouts applied)"""
        connection = pyodbc.connect(
            self.build_connection_string(instance, database),
            timeout=self.settings.login_timeout,
            autocommit=True,
        )
        try:
            connection.timeout = self.settings.query_timeout
            yield connection
        finally:
            connection.close()

    def list_databases(self, instance: str, exclude_system: bool = True) -> List[str]:
        """Online databases on the instance, optionally without system databases"""
        with self.connect(instance) as connection:
            rows = connection.cursor().execute(LIST_DATABASES_SQL).fetchall()
        names = [row[0] for row in rows]
        if exclude_system:
            names = [name for name in names if name.lower() not in SYSTEM_DATABASES]
        return names

    def list_indexes(self, instance: str, database: str) -> List[IndexFragmentation]:
        """Fragmentation of every named index in a database, one entry per index"""
        with self.connect(instance, database) as connection:
            rows = connection.cursor().execute(LIST_INDEXES_SQL).fetchall()

        # Partitioned indexes report one row per partition; ALTER INDEX acts on the whole index
        indexes: Dict[tuple, IndexFragmentation] = {}
        for row in rows:
            key = (row.schema_name, row.table_name, row.index_name)
            fragmentation = float(row.avg_fragmentation_in_percent or 0.0)
            current = indexes.get(key)
            if current is None or fragmentation > current.fragmentation_percent:
                indexes[key] = IndexFragmentation(
                    database=database,
                    schema_name=row.schema_name,
                    table_name=row.table_name,
                    index_name=row.index_name,
                    fragmentation_percent=fragmentation,
                )
        return list(indexes.values())

    def repair_index(self, instance: str, index: IndexFragmentation, action: MaintenanceAction):
        """Run ALTER INDEX ... REBUILD or REORGANIZE"""
        statement = (
            f"ALTER INDEX {quote_identifier(index.index_name)} "
            f"ON {quote_identifier(index.schema_name)}.{quote_identifier(index.table_name)} "
            f"{MaintenanceAction(action).value}"
        )
        logger.debug(f"{instance}: {statement}")
        with self.connect(instance, index.database) as connection:
            connection.cursor().execute(statement)

    def get_last_backup_status(self, instance: str) -> List[BackupStatus]:
        """Most recent full backup per database (None when never backed up)"""
        with self.connect(instance, "msdb") as connection:
            rows = connection.cursor().execute(LAST_BACKUP_SQL).fetchall()
        return [BackupStatus(database=row.database_name, last_full_backup=row.last_full_backup) for row in rows]

    def list_failed_jobs(self, instance: str) -> List[str]:
        """Enabled SQL Agent jobs whose last run failed"""
        with self.connect(instance, "msdb") as connection:
            rows = connection.cursor().execute(FAILED_JOBS_SQL).fetchall()
        return [row[0] for row in rows]
