from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..core.base import Status


@dataclass
class StepResult:
    keyword: str
    text: str
    status: Status
    duration: float = 0.0
    error: Optional[str] = None
    attempts: int = 1

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'keyword': self.keyword,
            'name': self.text,
            'status': self.status.value,
            'duration': round(self.duration, 4),
        }
        if self.error:
            result['error'] = self.error
        if self.attempts > 1:
            result['attempts'] = self.attempts
        return result


@dataclass
class ScenarioExecutionResult:
    """Record of one scenario attempt; the last attempt is the scenario's result"""
    feature: str
    name: str
    status: Status
    duration: float = 0.0
    steps: List[StepResult] = field(default_factory=list)
    error: Optional[BaseException] = None
    failed_step: Optional[str] = None
    retry_attempt: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime = field(default_factory=datetime.now)
    tags: List[str] = field(default_factory=list)
    worker_id: Optional[int] = None
    example_data: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, str]:
        return self.feature, self.name

    @property
    def identity(self) -> str:
        return f"{self.feature}::{self.name}"

    @property
    def passed(self) -> bool:
        return self.status == Status.PASSED

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'feature': self.feature,
            'name': self.name,
            'status': self.status.value,
            'duration': round(self.duration, 4),
            'tags': list(self.tags),
            'retry_attempt': self.retry_attempt,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'steps': [step.to_dict() for step in self.steps],
        }
        if self.error is not None:
            result['error'] = str(self.error)
            result['error_type'] = type(self.error).__name__
        if self.failed_step:
            result['failed_step'] = self.failed_step
        if self.worker_id is not None:
            result['worker_id'] = self.worker_id
        if self.example_data:
            result['example_data'] = dict(self.example_data)
        return result


@dataclass
class RunResult:
    """Final outcome of a run: one result per scenario instance"""
    results: List[ScenarioExecutionResult] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    plan: Optional[List[Dict[str, Any]]] = None

    @property
    def counts(self) -> Dict[str, int]:
        summary = {'passed': 0, 'failed': 0, 'skipped': 0, 'total': len(self.results)}
        for result in self.results:
            summary[result.status.value] += 1
        return summary

    def has_failures(self) -> bool:
        return any(r.status == Status.FAILED for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'summary': self.counts,
            'start_time': self.start_time.isoformat(),
            'end_time': (self.end_time or datetime.now()).isoformat(),
            'scenarios': [r.to_dict() for r in self.results],
        }
        if self.plan is not None:
            data['plan'] = self.plan
        return data


def result_for(instance, status: Status, error: Optional[BaseException] = None,
               worker_id: Optional[int] = None) -> ScenarioExecutionResult:
    """Result for an instance that never ran its steps; every step is recorded skipped"""
    steps = [
        StepResult(step.keyword, step.text, Status.SKIPPED)
        for step in list(instance.background) + list(instance.steps)
    ]
    return ScenarioExecutionResult(
        feature=instance.feature_name,
        name=instance.name,
        status=status,
        steps=steps,
        error=error,
        tags=list(instance.tags),
        worker_id=worker_id,
        example_data=dict(instance.example_data),
    )
