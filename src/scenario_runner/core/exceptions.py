from typing import Optional


class ScenarioRunnerError(Exception):
    """Base exception for Scenario Runner"""
    pass


class ConfigurationError(ScenarioRunnerError):
    """Configuration-related errors"""
    pass


class DataSourceError(ScenarioRunnerError):
    """External example data could not be loaded"""
    pass


class FeatureLoadError(ScenarioRunnerError):
    """Feature file missing or not valid Gherkin"""
    pass


class StepDefinitionError(ScenarioRunnerError):
    """Invalid step or hook registration"""
    pass


class ExecutionError(ScenarioRunnerError):
    """Error during scenario execution"""

    def __init__(self, message: str, step_text: Optional[str] = None):
        super().__init__(message)
        self.step_text = step_text


class StepNotFoundError(ExecutionError):
    """No step definition matches the step text"""

    def __init__(self, step_text: str):
        super().__init__(f"No step definition found for: {step_text}", step_text)


class StepTimeoutError(ExecutionError):
    """Step handler exceeded its time budget"""

    def __init__(self, step_text: str, timeout_ms: int):
        super().__init__(f"Step timed out after {timeout_ms}ms: {step_text}", step_text)
        self.timeout_ms = timeout_ms


class StepFailureError(ExecutionError):
    """Step handler raised"""

    def __init__(self, step_text: str, cause: BaseException):
        super().__init__(f"{type(cause).__name__}: {cause}", step_text)
        self.cause = cause


class HookFailureError(ExecutionError):
    """Lifecycle hook raised"""

    def __init__(self, phase: str, hook_name: str, cause: BaseException):
        super().__init__(f"Hook {phase} '{hook_name}' failed: {type(cause).__name__}: {cause}")
        self.phase = phase
        self.hook_name = hook_name
        self.cause = cause


class RetryExhaustedError(ExecutionError):
    """Scenario retries were consumed without success"""

    def __init__(self, attempts: int, last_error: BaseException):
        step_text = getattr(last_error, "step_text", None)
        super().__init__(f"Failed after {attempts} attempts: {last_error}", step_text)
        self.attempts = attempts
        self.last_error = last_error


class HandlerTimeoutError(TimeoutError):
    """A step handler or hook ran past its time budget"""

    def __init__(self, timeout_ms: Optional[int]):
        super().__init__(f"Timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms
