"""
Scenario Runner - executes Gherkin scenarios against registered step definitions
"""

__version__ = "0.1.0"
__author__ = "Scenario Runner Contributors"

from .core import ConfigManager, Status
from .executor import (
    Executor,
    ExecutorConfig,
    RegistryBuilder,
    RegistryContext,
    given,
    when,
    then,
    step,
    before_feature,
    after_feature,
    before_scenario,
    after_scenario,
    before_step,
    after_step,
)

__all__ = [
    "ConfigManager",
    "Status",
    "Executor",
    "ExecutorConfig",
    "RegistryBuilder",
    "RegistryContext",
    "given",
    "when",
    "then",
    "step",
    "before_feature",
    "after_feature",
    "before_scenario",
    "after_scenario",
    "before_step",
    "after_step",
]
