"""
End-to-end tests for one upkeep run against an in-memory toolkit
"""
import logging
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import yaml

from conftest import FakeToolkit, make_index
from models.health import BackupStatus, InstanceStatus, MaintenanceAction
from models.settings import IndexMaintenanceSettings, PathSettings
from services.status_store import StatusStore
from services.upkeep_runner import UpkeepRunner

NOW = datetime(2026, 10, 19, 6, 0, 0)


@pytest.fixture
def fleet():
    """SQL-A healthy; SQL-B with one stale database and one failed job"""
    return FakeToolkit(
        databases={"SQL-A": ["Sales"], "SQL-B": ["StaleDb"]},
        indexes={("SQL-A", "Sales"): [make_index("Sales", "IX_Orders_Date", 45.0)]},
        backups={
            "SQL-A": [BackupStatus("master", NOW - timedelta(hours=3)), BackupStatus("Sales", NOW - timedelta(hours=5))],
            "SQL-B": [BackupStatus("master", NOW - timedelta(hours=3)), BackupStatus("StaleDb", NOW - timedelta(hours=30))],
        },
        failed_jobs={"SQL-B": ["NightlyETL"]},
    )


@pytest.fixture
def notifier():
    """Patched notifiers email provider returning a successful response"""
    with patch('services.notification_sender.get_notifier') as get_notifier:
        email_notifier = Mock()
        email_notifier.notify.return_value = Mock(ok=True, errors=None)
        get_notifier.return_value = email_notifier
        yield email_notifier


class TestUpkeepRunner:
    """Full run: health collection, report, email and persistence"""

    def test_two_instance_scenario(self, make_settings, fleet, notifier):
        """Healthy and unhealthy instance both appear with the right cells"""
        settings = make_settings()

        summary = UpkeepRunner(settings, fleet).run(now=NOW)

        assert [r.instance for r in summary.records] == ["SQL-A", "SQL-B"]
        a, b = summary.records
        assert a.failed_jobs == "" and a.backup_compliance.display() == ""
        assert b.failed_jobs == "NightlyETL"
        assert b.backup_compliance.display() == "StaleDb"
        assert "<td>NightlyETL</td>" in summary.html
        assert "<td>StaleDb</td>" in summary.html
        assert summary.email_sent is True

    def test_report_file_matches_emailed_body(self, make_settings, fleet, notifier):
        """Saved file, rendered HTML and email message are identical"""
        settings = make_settings()

        summary = UpkeepRunner(settings, fleet).run(now=NOW)

        saved = Path(settings.paths.report_file).read_text(encoding='utf-8')
        sent = notifier.notify.call_args.kwargs
        assert saved == summary.html == sent["message"]
        assert sent["subject"] == "SQL Server Health Report - 2026-10-19"
        assert sent["to"] == ["dba@example.com"]
        assert sent["html"] is True

    def test_email_failure_still_writes_report(self, make_settings, fleet, caplog):
        """SMTP errors are logged and the report file is still written"""
        settings = make_settings()

        with patch('services.notification_sender.get_notifier', side_effect=ConnectionRefusedError("smtp down")):
            summary = UpkeepRunner(settings, fleet).run(now=NOW)

        assert summary.email_sent is False
        assert "smtp down" in summary.email_error
        assert Path(settings.paths.report_file).read_text(encoding='utf-8') == summary.html
        assert "Email delivery failed" in caplog.text

    def test_report_is_overwritten_each_run(self, make_settings, fleet, notifier):
        """Each run replaces the previous report"""
        settings = make_settings()
        report = Path(settings.paths.report_file)
        report.parent.mkdir(parents=True)
        report.write_text("old report", encoding='utf-8')

        UpkeepRunner(settings, fleet).run(now=NOW)

        assert "old report" not in report.read_text(encoding='utf-8')

    def test_no_email_skips_sending(self, make_settings, fleet, notifier):
        """send_email=False writes the file without calling the provider"""
        summary = UpkeepRunner(make_settings(), fleet).run(now=NOW, send_email=False)

        notifier.notify.assert_not_called()
        assert summary.email_sent is False
        assert Path(summary.report_path).exists()

    def test_index_maintenance_is_off_by_default(self, make_settings, fleet, notifier):
        """No repairs unless enabled in settings or requested"""
        summary = UpkeepRunner(make_settings(), fleet).run(now=NOW)

        assert fleet.repairs == []
        assert summary.maintenance == []
        assert "Index Maintenance" not in summary.html

    def test_index_maintenance_when_enabled(self, make_settings, fleet, notifier):
        """Settings flag runs maintenance before the health checks"""
        settings = make_settings(index_maintenance=IndexMaintenanceSettings(enabled=True))

        summary = UpkeepRunner(settings, fleet).run(now=NOW)

        assert fleet.repairs == [("SQL-A", "Sales", "IX_Orders_Date", MaintenanceAction.REBUILD)]
        assert fleet.calls.index(('repair_index', 'SQL-A', 'IX_Orders_Date')) < fleet.calls.index(('list_failed_jobs', 'SQL-A'))
        assert "Index Maintenance" in summary.html

    def test_unreachable_instance_still_gets_a_row(self, make_settings, notifier):
        """One failing instance does not stop the others"""
        toolkit = FakeToolkit(errors={
            ("list_failed_jobs", "SQL-A"): ConnectionError("login timeout expired"),
            ("get_last_backup_status", "SQL-A"): ConnectionError("login timeout expired"),
        })

        summary = UpkeepRunner(make_settings(), toolkit).run(now=NOW)

        assert [r.status for r in summary.records] == [InstanceStatus.FAILED, InstanceStatus.OK]
        assert "Verification Failed" in summary.html

    def test_status_file_records_each_instance(self, make_settings, fleet, notifier, tmp_path):
        """Optional status file keeps the last outcome per instance"""
        status_file = tmp_path / "status.yaml"
        settings = make_settings(paths=PathSettings(
            log_file=str(tmp_path / "upkeep.log"),
            report_file=str(tmp_path / "report.html"),
            status_file=str(status_file),
        ))

        UpkeepRunner(settings, fleet).run(now=NOW)

        data = yaml.safe_load(status_file.read_text(encoding='utf-8'))
        assert set(data) == {"SQL-A", "SQL-B"}
        assert data["SQL-B"]["status"] == "ok"
        assert data["SQL-B"]["message"] == ""
        assert StatusStore(str(status_file)).get_status("SQL-A")["last_run"] == data["SQL-A"]["last_run"]

    def test_status_file_records_failure_message(self, make_settings, notifier, tmp_path):
        """Failed checks are stored with their error text"""
        status_file = tmp_path / "status.yaml"
        settings = make_settings(instances=["SQL-A"], paths=PathSettings(
            log_file=str(tmp_path / "upkeep.log"),
            report_file=str(tmp_path / "report.html"),
            status_file=str(status_file),
        ))
        toolkit = FakeToolkit(errors={("list_failed_jobs", "SQL-A"): RuntimeError("agent stopped")})

        UpkeepRunner(settings, toolkit).run(now=NOW)

        status = StatusStore(str(status_file)).get_status("SQL-A")
        assert status["status"] == "failed"
        assert status["message"] == "Failed job check: agent stopped"

    def test_run_logs_start_and_finish(self, make_settings, fleet, notifier, caplog):
        """Start and finish lines bracket the run"""
        with caplog.at_level(logging.INFO):
            UpkeepRunner(make_settings(), fleet).run(now=NOW)

        assert "Starting SQL Server upkeep for 2 instance(s)" in caplog.text
        assert "SQL Server upkeep finished: 2 instance(s), 0 with failed checks" in caplog.text

    def test_one_reference_time_for_the_whole_run(self, make_settings, fleet, notifier):
        """Every instance's compliance cutoff uses the run start time"""
        runner = UpkeepRunner(make_settings(), fleet)
        runner.health.collect = Mock(wraps=runner.health.collect)

        summary = runner.run()

        assert [c.kwargs["now"] for c in runner.health.collect.call_args_list] == [summary.started_at] * 2
