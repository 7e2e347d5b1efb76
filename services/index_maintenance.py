"""
Index maintenance service
Reorganizes or rebuilds fragmented indexes on every user database of an instance
"""
import logging
from time import time
from typing import List, Optional

from models.health import IndexMaintenanceAction, InstanceMaintenanceResult, MaintenanceAction
from models.settings import ThresholdSettings

logger = logging.getLogger(__name__)


def choose_action(fragmentation_percent: float, thresholds: ThresholdSettings) -> Optional[MaintenanceAction]:
    """Pick REBUILD / REORGANIZE from the fragmentation thresholds, None below both"""
    if fragmentation_percent >= thresholds.rebuild_percent:
        return MaintenanceAction.REBUILD
    if fragmentation_percent >= thresholds.reorganize_percent:
        return MaintenanceAction.REORGANIZE
    return None


class IndexMaintenanceService:
    """Runs index maintenance instance by instance"""

    def __init__(self, toolkit, thresholds: ThresholdSettings):
        self.toolkit = toolkit
        self.thresholds = thresholds

    def run_for_instance(self, instance: str) -> InstanceMaintenanceResult:
        """Maintain all user databases; the first error stops this instance"""
        result = InstanceMaintenanceResult(instance=instance)
        start_time = time()

        try:
            for database in self.toolkit.list_databases(instance, exclude_system=True):
                for index in self.toolkit.list_indexes(instance, database):
                    action = choose_action(index.fragmentation_percent, self.thresholds)
                    if action is None:
                        continue

                    self.toolkit.repair_index(instance, index, action)
                    result.actions.append(IndexMaintenanceAction(index=index, action=action))
                    logger.info(
                        f"Instance: {instance} | DB: {database} | Index: {index.index_name} "
                        f"| Action: {action.value} | Fragmentation: {index.fragmentation_percent:.2f}%"
                    )
        except Exception as e:
            result.success = False
            result.error_message = str(e)
            logger.error(f"Index maintenance failed on {instance}: {e}")

        result.duration_seconds = time() - start_time
        if result.success:
            logger.info(f"Index maintenance on {instance} finished in {result.duration_seconds:.1f}s, {len(result.actions)} index(es) repaired")
        return result

    def run_all(self, instances: List[str]) -> List[InstanceMaintenanceResult]:
        """One result per instance, in the given order"""
        return [self.run_for_instance(instance) for instance in instances]
