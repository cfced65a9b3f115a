from typing import Dict, Any, Optional
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


@dataclass
class ScenarioContext:
    """
    Runtime context for one scenario
    Holds scenario variables and is handed to every step and scenario hook
    """
    feature: Any = None
    scenario: Any = None
    config: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, Any] = field(default_factory=dict)
    current_step: Optional[Any] = None
    attempt: int = 1

    @property
    def tags(self):
        return list(getattr(self.scenario, 'tags', []) or [])

    @property
    def example_data(self) -> Dict[str, Any]:
        return dict(getattr(self.scenario, 'example_data', {}) or {})

    def store_data(self, key: str, value: Any):
        """Store data for use in later steps"""
        self.variables[key] = value

    def get_data(self, key: str, default: Any = None) -> Any:
        """Retrieve stored data"""
        return self.variables.get(key, default)

    def reset(self):
        """Drop per-attempt state before a scenario retry"""
        logger.debug(f"Resetting context for retry of {getattr(self.scenario, 'name', '')}")
        self.variables.clear()
        self.current_step = None
        self.attempt += 1


@dataclass
class FeatureContext:
    """Context handed to feature-level hooks"""
    feature: Any = None
    config: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, Any] = field(default_factory=dict)
