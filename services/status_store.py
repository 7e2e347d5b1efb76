"""
Run status tracking
Keeps the last run outcome per instance in a YAML file
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

import yaml

from models.health import HealthRecord

logger = logging.getLogger(__name__)


class YAMLFileManager:
    """YAML file operations with error handling"""

    @staticmethod
    def load_yaml_file(file_path: Path, default_value: Dict[str, Any] = None) -> Dict[str, Any]:
        """Generic YAML file loader with error handling"""
        if default_value is None:
            default_value = {}

        if not file_path.exists():
            return default_value

        try:
            content = file_path.read_text(encoding='utf-8').strip()
            if not content:
                return default_value

            data = yaml.safe_load(content)
            return data if isinstance(data, dict) else default_value

        except (yaml.YAMLError, IOError) as e:
            logger.warning(f"Could not load {file_path.name}: {e}")
            return default_value

    @staticmethod
    def save_yaml_file(file_path: Path, data: Dict[str, Any]):
        """Generic YAML file saver; errors propagate to the caller"""
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(yaml.safe_dump(data, default_flow_style=False, indent=2), encoding='utf-8')


class StatusStore:
    """Last-run status per instance"""

    def __init__(self, status_file: str):
        self.status_file = Path(status_file)
        self.yaml_manager = YAMLFileManager()

    def record_run(self, records: List[HealthRecord], finished_at: datetime):
        """Store the outcome of every instance checked in this run"""
        status_data = self.get_all()
        timestamp = finished_at.isoformat(timespec='seconds')

        for record in records:
            status_data[record.instance] = {
                'last_run': timestamp,
                'status': record.status.value,
                'message': "; ".join(record.errors),
            }

        self.yaml_manager.save_yaml_file(self.status_file, status_data)

    def get_all(self) -> Dict[str, Any]:
        """Get all instance status entries"""
        return self.yaml_manager.load_yaml_file(self.status_file)

    def get_status(self, instance: str) -> Dict[str, Any]:
        """Get status for one instance"""
        return self.get_all().get(instance, {})
