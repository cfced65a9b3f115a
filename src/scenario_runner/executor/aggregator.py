import logging
from collections import Counter
from typing import Dict, List, Optional

from ..core.base import Status
from .results import ScenarioExecutionResult

logger = logging.getLogger(__name__)


class ResultAggregator:
    """
    Collects scenario attempt records, possibly from several workers.

    Records are grouped by (feature, scenario name). The record with the latest
    end time is the final one for its group; on equal end times the record
    added last wins. Retried attempts stay available through ``attempts``.
    """

    def __init__(self):
        self._final: Dict[str, ScenarioExecutionResult] = {}
        self._attempts: Dict[str, List[ScenarioExecutionResult]] = {}

    def add(self, record: ScenarioExecutionResult):
        identity = record.identity
        self._attempts.setdefault(identity, []).append(record)

        current = self._final.get(identity)
        if current is None or record.end_time >= current.end_time:
            self._final[identity] = record
        else:
            logger.debug(f"Ignoring older record for {identity}")

    def get(self, identity: str) -> Optional[ScenarioExecutionResult]:
        return self._final.get(identity)

    def final_results(self) -> List[ScenarioExecutionResult]:
        """One result per scenario, in first-reported order"""
        return list(self._final.values())

    def counts(self) -> Dict[str, int]:
        summary = {'passed': 0, 'failed': 0, 'skipped': 0, 'total': len(self._final)}
        for record in self._final.values():
            summary[record.status.value] += 1
        return summary

    def has_failures(self) -> bool:
        return any(r.status == Status.FAILED for r in self._final.values())

    def attempts(self, identity: str) -> List[ScenarioExecutionResult]:
        """Every record reported for a scenario, including discarded retries"""
        return list(self._attempts.get(identity, []))

    def worker_load(self) -> Dict[int, int]:
        """Number of final results produced by each worker"""
        return dict(Counter(r.worker_id for r in self._final.values() if r.worker_id is not None))

    def __len__(self) -> int:
        return len(self._final)
