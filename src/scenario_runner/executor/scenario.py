"""
Scenario orchestration.

One ``ScenarioRunner.run`` call drives a single scenario instance through::

    INIT -> RUNNING_BEFORE -> RUNNING_BACKGROUND -> RUNNING_STEPS -> DECIDING
         -> RETRYING -> RUNNING_BEFORE ...
         -> FINALIZED

Before hooks that fail end the scenario without a retry. After hooks run once,
when the scenario is finalized, and cannot change its status.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..bdd.model import ScenarioInstance, Step
from ..core.base import AlwaysRetry, RetryContext, RetryStrategy, Status
from ..core.exceptions import (
    ExecutionError,
    HandlerTimeoutError,
    HookFailureError,
    RetryExhaustedError,
    StepFailureError,
    StepNotFoundError,
    StepTimeoutError,
)
from .context import ScenarioContext
from .hooks import HookPhase
from .invoke import invoke, run_hooks, run_teardown_hooks
from .registry import RegistryContext
from .results import ScenarioExecutionResult, StepResult

logger = logging.getLogger(__name__)

AttemptCallback = Callable[[ScenarioExecutionResult], None]


class ScenarioState(str, Enum):
    INIT = "init"
    RUNNING_BEFORE = "running_before"
    RUNNING_BACKGROUND = "running_background"
    RUNNING_STEPS = "running_steps"
    DECIDING = "deciding"
    RETRYING = "retrying"
    FINALIZED = "finalized"


@dataclass
class RunOptions:
    """Execution knobs shared by the scenario, feature and worker runners"""
    retry: int = 0
    step_timeout: int = 30000
    step_retry_delay: float = 1.0
    fail_fast: bool = False
    parallel_workers: int = 1
    config: Dict[str, Any] = field(default_factory=dict)


class ScenarioRunner:
    """Runs one scenario instance at a time, with scenario-level retries"""

    def __init__(
            self,
            registry: RegistryContext,
            options: Optional[RunOptions] = None,
            retry_strategy: Optional[RetryStrategy] = None,
            resolver: Optional[Callable] = None,
            fallback: Optional[Callable] = None,
            on_attempt: Optional[AttemptCallback] = None,
            worker_id: Optional[int] = None
    ):
        self.registry = registry
        self.options = options or RunOptions()
        self.retry_strategy = retry_strategy or AlwaysRetry()
        self.resolver = resolver
        self.fallback = fallback
        self.on_attempt = on_attempt
        self.worker_id = worker_id
        self.state = ScenarioState.INIT

    def _transition(self, state: ScenarioState):
        logger.debug(f"Scenario state {self.state.value} -> {state.value}")
        self.state = state

    async def run(self, instance: ScenarioInstance, feature: Any = None) -> ScenarioExecutionResult:
        """Execute a scenario instance and return its final result"""
        self.state = ScenarioState.INIT
        logger.info(f"Executing scenario: {instance.name}")

        context = ScenarioContext(feature=feature, scenario=instance, config=self.options.config)
        retries_used = 0

        while True:
            record = await self._attempt(instance, context, retries_used)
            self._transition(ScenarioState.DECIDING)

            if record.status == Status.PASSED or not self._retryable(record.error):
                break

            remaining = self.options.retry - retries_used
            if remaining <= 0:
                if self.options.retry > 0:
                    record.error = RetryExhaustedError(retries_used + 1, record.error)
                break

            retry_context = RetryContext(
                feature=instance.feature_name,
                scenario=instance.name,
                attempt=retries_used + 1,
                remaining_retries=remaining,
                failed_step=record.failed_step,
                step_results=list(record.steps),
            )
            if not self.retry_strategy.should_retry(record.error, retry_context):
                logger.info(f"Retry strategy {self.retry_strategy.name} declined retry of '{instance.name}'")
                break

            self._transition(ScenarioState.RETRYING)
            self._report(record)
            retries_used += 1
            logger.warning(
                f"Scenario failed, retrying ({retries_used}/{self.options.retry}): {instance.name}: {record.error}"
            )
            context.reset()

        self._transition(ScenarioState.FINALIZED)
        failures = await run_teardown_hooks(
            self.registry.hooks, HookPhase.AFTER, instance.tags, (context,), self.options.step_timeout
        )
        if failures:
            logger.error(f"{failures} after hook(s) failed for '{instance.name}'; status stays {record.status.value}")

        record.end_time = datetime.now()
        self._report(record)
        logger.info(f"Scenario {record.status.value}: {instance.name}")
        return record

    def _retryable(self, error: Optional[BaseException]) -> bool:
        if isinstance(error, StepNotFoundError):
            return False
        if isinstance(error, HookFailureError) and error.phase == HookPhase.BEFORE.value:
            return False
        return True

    def _report(self, record: ScenarioExecutionResult):
        if self.on_attempt is not None:
            self.on_attempt(record)

    async def _attempt(
            self,
            instance: ScenarioInstance,
            context: ScenarioContext,
            retries_used: int
    ) -> ScenarioExecutionResult:
        start_time = datetime.now()
        started = time.perf_counter()
        step_results: List[StepResult] = []
        error: Optional[BaseException] = None
        failed_step: Optional[str] = None

        self._transition(ScenarioState.RUNNING_BEFORE)
        try:
            await run_hooks(
                self.registry.hooks, HookPhase.BEFORE, instance.tags, (context,), self.options.step_timeout
            )
        except HookFailureError as e:
            logger.error(f"Before hook failed for '{instance.name}': {e}")
            error = e

        phases = [
            (ScenarioState.RUNNING_BACKGROUND, instance.background),
            (ScenarioState.RUNNING_STEPS, instance.steps),
        ]
        for state, steps in phases:
            if steps and error is None:
                self._transition(state)
            for step in steps:
                if error is not None:
                    step_results.append(StepResult(step.keyword, step.text, Status.SKIPPED))
                    continue
                result, step_error = await self._run_step(step, context, instance.tags)
                step_results.append(result)
                if step_error is not None:
                    error = step_error
                    failed_step = step.line

        return ScenarioExecutionResult(
            feature=instance.feature_name,
            name=instance.name,
            status=Status.FAILED if error is not None else Status.PASSED,
            duration=time.perf_counter() - started,
            steps=step_results,
            error=error,
            failed_step=failed_step,
            retry_attempt=retries_used,
            start_time=start_time,
            end_time=datetime.now(),
            tags=list(instance.tags),
            worker_id=self.worker_id,
            example_data=dict(instance.example_data),
        )

    async def _run_step(
            self,
            step: Step,
            context: ScenarioContext,
            tags: List[str]
    ) -> Tuple[StepResult, Optional[BaseException]]:
        """Execute a single step with its hooks"""
        context.current_step = step
        result = StepResult(step.keyword, step.text, Status.PASSED)
        started = time.perf_counter()
        error = None

        try:
            await run_hooks(
                self.registry.hooks, HookPhase.BEFORE_STEP, tags, (context, step), self.options.step_timeout
            )
            await self._invoke_step(step, context, result)
            await run_hooks(
                self.registry.hooks, HookPhase.AFTER_STEP, tags, (context, step), self.options.step_timeout
            )
        except ExecutionError as e:
            error = e
            result.status = Status.FAILED
            result.error = str(e)
            logger.error(f"Step failed: {step.line}: {e}")

        result.duration = time.perf_counter() - started
        return result, error

    async def _invoke_step(self, step: Step, context: ScenarioContext, result: StepResult):
        try:
            match = self.registry.steps.resolve(step.text, self.resolver, context)
        except StepNotFoundError as not_found:
            if self.fallback is None:
                raise
            logger.info(f"No step definition for '{step.text}', using fallback executor")
            handled = await self._call(self.fallback, (context, step), self.options.step_timeout, step.text)
            if handled is False:
                raise not_found
            return
        except Exception as e:
            # A raising argument resolver fails the step
            raise StepFailureError(step.text, e) from e

        args = [context, *match.args]
        if step.data_table is not None:
            args.append(step.data_table)
        if step.doc_string is not None:
            args.append(step.doc_string)

        max_retries = match.definition.options.max_retries
        timeout_ms = match.definition.options.timeout_ms or self.options.step_timeout

        for attempt in range(max_retries + 1):
            result.attempts = attempt + 1
            try:
                await self._call(match.handler, args, timeout_ms, step.text)
                return
            except ExecutionError as e:
                if attempt >= max_retries:
                    raise
                logger.warning(f"Step failed, retrying ({attempt + 1}/{max_retries}): {e}")
                await asyncio.sleep(self.options.step_retry_delay)

    async def _call(self, handler: Callable, args, timeout_ms: int, step_text: str):
        try:
            return await invoke(handler, args, timeout_ms)
        except HandlerTimeoutError:
            raise StepTimeoutError(step_text, timeout_ms) from None
        except ExecutionError:
            raise
        except Exception as e:
            raise StepFailureError(step_text, e) from e
