from .base import (
    Status,
    RetryContext,
    RetryStrategy,
    AlwaysRetry,
    NonRetryablePatternStrategy,
)
from .config import ConfigManager
from .exceptions import (
    ScenarioRunnerError,
    ConfigurationError,
    DataSourceError,
    FeatureLoadError,
    StepDefinitionError,
    ExecutionError,
    StepNotFoundError,
    StepTimeoutError,
    StepFailureError,
    HookFailureError,
    RetryExhaustedError,
    HandlerTimeoutError,
)

__all__ = [
    # Base classes
    "Status",
    "RetryContext",
    "RetryStrategy",
    "AlwaysRetry",
    "NonRetryablePatternStrategy",

    # Configuration
    "ConfigManager",

    # Exceptions
    "ScenarioRunnerError",
    "ConfigurationError",
    "DataSourceError",
    "FeatureLoadError",
    "StepDefinitionError",
    "ExecutionError",
    "StepNotFoundError",
    "StepTimeoutError",
    "StepFailureError",
    "HookFailureError",
    "RetryExhaustedError",
    "HandlerTimeoutError",
]
