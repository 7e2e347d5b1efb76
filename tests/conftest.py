"""
Shared fixtures: project root on sys.path, settings factory and an in-memory toolkit
"""
import os
import sys
from typing import Dict, List

import pytest

# Add project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.health import BackupStatus, IndexFragmentation  # noqa: E402
from models.settings import EmailSettings, PathSettings, UpkeepSettings  # noqa: E402
from services.run_logging import reset_run_logging  # noqa: E402


class FakeToolkit:
    """In-memory stand-in for SqlServerToolkit"""

    def __init__(self, databases: Dict[str, List[str]] = None, indexes: Dict[tuple, List[IndexFragmentation]] = None,
                 backups: Dict[str, List[BackupStatus]] = None, failed_jobs: Dict[str, List[str]] = None,
                 errors: Dict[tuple, Exception] = None):
        self.databases = databases or {}
        self.indexes = indexes or {}
        self.backups = backups or {}
        self.failed_jobs = failed_jobs or {}
        self.errors = errors or {}
        self.repairs = []
        self.calls = []

    def _call(self, *key):
        self.calls.append(key)
        error = self.errors.get(key)
        if error is not None:
            raise error

    def list_databases(self, instance, exclude_system=True):
        self._call('list_databases', instance)
        return list(self.databases.get(instance, []))

    def list_indexes(self, instance, database):
        self._call('list_indexes', instance, database)
        return list(self.indexes.get((instance, database), []))

    def repair_index(self, instance, index, action):
        self._call('repair_index', instance, index.index_name)
        self.repairs.append((instance, index.database, index.index_name, action))

    def get_last_backup_status(self, instance):
        self._call('get_last_backup_status', instance)
        return list(self.backups.get(instance, []))

    def list_failed_jobs(self, instance):
        self._call('list_failed_jobs', instance)
        return list(self.failed_jobs.get(instance, []))


def make_index(database, index_name, fragmentation, table="Orders"):
    return IndexFragmentation(
        database=database,
        schema_name="dbo",
        table_name=table,
        index_name=index_name,
        fragmentation_percent=fragmentation,
    )


@pytest.fixture
def make_settings(tmp_path):
    """Build UpkeepSettings writing into tmp_path"""
    def factory(instances=("SQL-A", "SQL-B"), **overrides):
        values = {
            "instances": list(instances),
            "email": EmailSettings(from_email="upkeep@example.com", to_email=["dba@example.com"]),
            "paths": PathSettings(
                log_file=str(tmp_path / "logs" / "upkeep.log"),
                report_file=str(tmp_path / "reports" / "report.html"),
            ),
        }
        values.update(overrides)
        return UpkeepSettings(**values)
    return factory


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_run_logging()
