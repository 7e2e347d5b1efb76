#!/usr/bin/env python3
"""
Configuration manager for SQL fleet upkeep
Loads the YAML config, merges dotenv secrets and validates into UpkeepSettings
"""
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import dotenv_values
from pydantic import ValidationError

from models.settings import UpkeepSettings

DEFAULT_CONFIG_PATH = "config/upkeep.yaml"
CONFIG_PATH_ENV = "UPKEEP_CONFIG"
DEFAULT_SECRETS_NAME = "secrets.env"

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class UpkeepConfigError(Exception):
    """Configuration could not be loaded or failed validation"""


class UpkeepConfig:
    """Loads upkeep configuration from YAML plus a dotenv secrets file"""

    def __init__(self, config_file: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        self.environ = dict(os.environ) if environ is None else environ
        self.config_file = Path(config_file or self.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
        self.raw = self._load_yaml()
        self.secrets_file = self._resolve_secrets_file()
        self.config = self._merge_secrets(self.raw, self._load_secrets())
        self.settings = self._validate(self.config)

    def _load_yaml(self) -> Dict[str, Any]:
        """Read the YAML file into a dict"""
        if not self.config_file.exists():
            raise UpkeepConfigError(f"Config file not found: {self.config_file}")

        try:
            content = self.config_file.read_text(encoding='utf-8').strip()
            data = yaml.safe_load(content) if content else None
        except (yaml.YAMLError, OSError) as e:
            raise UpkeepConfigError(f"Could not read {self.config_file}: {e}") from e

        if not isinstance(data, dict):
            raise UpkeepConfigError(f"Config file {self.config_file} must contain a mapping")
        return data

    def _resolve_secrets_file(self) -> Path:
        """Secrets path from the config, else secrets.env beside it"""
        configured = self.raw.pop('secrets_file', None)
        if configured:
            secrets_path = Path(configured)
            if not secrets_path.is_absolute():
                secrets_path = self.config_file.parent / secrets_path
            return secrets_path
        return self.config_file.parent / DEFAULT_SECRETS_NAME

    def _load_secrets(self) -> Dict[str, str]:
        """Load dotenv secrets if the file exists"""
        if not self.secrets_file.exists():
            return {}
        return {key: value for key, value in dotenv_values(self.secrets_file).items() if value is not None}

    def _merge_secrets(self, config, secrets: Dict[str, str]):
        """Replace ${VAR} placeholders from secrets, then from the environment"""
        def lookup(match):
            name = match.group(1)
            if name in secrets:
                return secrets[name]
            if name in self.environ:
                return self.environ[name]
            raise UpkeepConfigError(f"Unresolved placeholder ${{{name}}} in {self.config_file}")

        def replace_vars(obj):
            if isinstance(obj, str):
                return _PLACEHOLDER.sub(lookup, obj)
            elif isinstance(obj, dict):
                return {k: replace_vars(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [replace_vars(item) for item in obj]
            else:
                return obj

        return replace_vars(config)

    def _validate(self, config: Dict[str, Any]) -> UpkeepSettings:
        """Validate the merged config into the immutable settings model"""
        try:
            return UpkeepSettings.model_validate(config)
        except ValidationError as e:
            raise UpkeepConfigError(f"Invalid configuration in {self.config_file}:\n{e}") from e


def load_settings(config_file: Optional[str] = None) -> UpkeepSettings:
    """Load and validate settings once at startup"""
    return UpkeepConfig(config_file).settings


def get_config_template() -> Dict[str, Any]:
    """Example configuration written by 'check-config --template'"""
    return {
        "instances": ["SQL01", "SQL02\\REPORTING"],
        "connection": {
            "driver": "ODBC Driver 18 for SQL Server",
            "trusted_connection": False,
            "username": "upkeep",
            "password": "${SQL_PASSWORD}",  # resolved from secrets.env
            "login_timeout": 15,
            "query_timeout": 1800,
        },
        "email": {
            "enabled": True,
            "smtp_server": "smtp.example.com",
            "smtp_port": 25,
            "from_email": "sql-upkeep@example.com",
            "to_email": ["dba-team@example.com"],
            "subject": "SQL Server Health Report - {date}",
            "send_timeout": 60,
        },
        "paths": {
            "log_file": "logs/sql_upkeep.log",
            "report_file": "reports/sql_health_report.html",
            "status_file": "logs/upkeep_status.yaml",
        },
        "thresholds": {
            "reorganize_percent": 10,
            "rebuild_percent": 30,
            "backup_compliance_hours": 26,
        },
        "index_maintenance": {"enabled": False},
        "schedule": {"cron": "0 6 * * *", "timezone": None},
    }
