#!/usr/bin/env python3
"""
SQL fleet upkeep
Command-line entry point: single run, scheduled runs, configuration check
"""
import argparse
import logging
import sys
from datetime import datetime
from typing import List, Optional

import yaml

from config import UpkeepConfigError, get_config_template, load_settings
from services.run_logging import configure_run_logging
from services.scheduling import SchedulerManager, schedule_upkeep
from services.sql_toolkit import SqlServerToolkit, ToolkitUnavailableError
from services.upkeep_runner import UpkeepRunner

EXIT_OK = 0
EXIT_TOOLKIT_UNAVAILABLE = 1
EXIT_CONFIG_ERROR = 2
EXIT_RUN_FAILED = 3

logger = logging.getLogger(__name__)


class UpkeepServices:
    """Container for shared services, built once per process"""

    def __init__(self, settings):
        self.settings = settings
        self.toolkit = SqlServerToolkit(settings.connection)
        self.runner = None

    def initialize(self):
        """Check the toolkit precondition, then set up logging and the runner"""
        if self.runner is not None:
            return  # Already initialized

        self.toolkit.ensure_available()
        configure_run_logging(self.settings.paths.log_file)
        self.runner = UpkeepRunner(self.settings, self.toolkit)


def build_parser() -> argparse.ArgumentParser:
    """CLI with run / schedule / check-config subcommands"""
    parser = argparse.ArgumentParser(
        prog="sql-upkeep",
        description="SQL Server fleet upkeep: index maintenance, backup compliance and failed job report",
    )
    parser.add_argument("--config", default=None, help="Path to the YAML config (default: $UPKEEP_CONFIG or config/upkeep.yaml)")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run upkeep once and send the report")
    run.add_argument("--with-index-maintenance", action="store_true", help="Run index maintenance before the health checks")
    run.add_argument("--no-email", action="store_true", help="Write the report file without emailing it")

    sub.add_parser("schedule", help="Run upkeep on the configured crontab schedule")

    check = sub.add_parser("check-config", help="Validate the configuration and list instances")
    check.add_argument("--template", action="store_true", help="Print an example configuration instead")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "check-config" and args.template:
        print(yaml.safe_dump(get_config_template(), default_flow_style=False, sort_keys=False))
        return EXIT_OK

    try:
        settings = load_settings(args.config)
    except UpkeepConfigError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if args.command == "check-config":
        print("Configuration OK")
        for instance in settings.instances:
            print(f"- {instance}")
        print(f"Next scheduled run: {settings.schedule.next_run(datetime.now()):%Y-%m-%d %H:%M} ({settings.schedule.cron})")
        return EXIT_OK

    services = UpkeepServices(settings)
    try:
        services.initialize()
    except ToolkitUnavailableError as e:
        print(f"FATAL: {e}. Aborting run.", file=sys.stderr)
        return EXIT_TOOLKIT_UNAVAILABLE

    if args.command == "run":
        try:
            services.runner.run(
                with_index_maintenance=True if args.with_index_maintenance else None,
                send_email=not args.no_email,
            )
        except Exception as e:
            logger.error(f"Upkeep run failed: {e}")
            print(f"FATAL: upkeep run failed: {e}", file=sys.stderr)
            return EXIT_RUN_FAILED
        return EXIT_OK

    scheduler = SchedulerManager()
    schedule_upkeep(scheduler, services.runner.run, settings.schedule.cron, settings.schedule.timezone)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
