from scenario_runner.core.base import AlwaysRetry, NonRetryablePatternStrategy, RetryContext, Status
from scenario_runner.core.exceptions import (
    ExecutionError,
    RetryExhaustedError,
    ScenarioRunnerError,
    StepFailureError,
    StepNotFoundError,
    StepTimeoutError,
)


def retry_context():
    return RetryContext(feature='F', scenario='S', attempt=1, remaining_retries=1)


class TestRetryStrategies:
    """Test retry strategies"""

    def test_always_retry(self):
        strategy = AlwaysRetry()
        assert strategy.should_retry(RuntimeError("x"), retry_context())
        assert strategy.name == 'AlwaysRetry'

    def test_non_retryable_patterns(self, caplog):
        strategy = NonRetryablePatternStrategy()

        assert not strategy.should_retry(RuntimeError("502 Bad Gateway"), retry_context())
        assert not strategy.should_retry(OSError("Connection refused"), retry_context())
        assert strategy.should_retry(AssertionError("element not visible"), retry_context())
        assert 'non-retryable pattern' in caplog.text

    def test_custom_patterns(self):
        strategy = NonRetryablePatternStrategy([r'quota exceeded'])

        assert not strategy.should_retry(RuntimeError("Quota Exceeded for today"), retry_context())
        assert strategy.should_retry(RuntimeError("connection refused"), retry_context())


class TestExceptions:
    """Test exception hierarchy"""

    def test_hierarchy(self):
        for error in (StepNotFoundError('x'), StepTimeoutError('x', 10), StepFailureError('x', ValueError())):
            assert isinstance(error, ExecutionError)
            assert isinstance(error, ScenarioRunnerError)
            assert error.step_text == 'x'

    def test_failure_message_names_cause(self):
        error = StepFailureError('I pay', ValueError('card declined'))
        assert str(error) == 'ValueError: card declined'

    def test_retry_exhausted_keeps_last_error(self):
        last = StepTimeoutError('I wait', 500)
        error = RetryExhaustedError(3, last)

        assert error.last_error is last
        assert error.step_text == 'I wait'
        assert 'Failed after 3 attempts' in str(error)

    def test_status_values(self):
        assert [s.value for s in Status] == ['passed', 'failed', 'skipped']
