import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..bdd.expander import ExamplesExpander
from ..bdd.model import Feature, ScenarioInstance
from ..core.base import RetryStrategy, Status
from ..core.exceptions import HookFailureError
from .aggregator import ResultAggregator
from .context import FeatureContext
from .hooks import HookPhase
from .invoke import run_hooks, run_teardown_hooks
from .registry import RegistryContext
from .results import ScenarioExecutionResult, result_for
from .scenario import RunOptions, ScenarioRunner
from .worker_pool import ExecutionUnit, WorkerPool

logger = logging.getLogger(__name__)

FeatureBatch = Tuple[Feature, List[ScenarioInstance]]


class FeatureRunner:
    """
    Runs the scenarios of features between their feature hooks.

    Sequential runs go feature by feature in document order. With
    ``parallel_workers > 1`` the instances of every feature go to one WorkerPool
    queue; a feature's after hooks run as soon as its last instance finishes.
    Results of every attempt go to the shared aggregator.
    """

    def __init__(
            self,
            registry: RegistryContext,
            options: Optional[RunOptions] = None,
            expander: Optional[ExamplesExpander] = None,
            retry_strategy: Optional[RetryStrategy] = None,
            resolver: Optional[Callable] = None,
            fallback: Optional[Callable] = None,
            aggregator: Optional[ResultAggregator] = None,
            stop_event: Optional[asyncio.Event] = None
    ):
        self.registry = registry
        self.options = options or RunOptions()
        self.expander = expander or ExamplesExpander()
        self.retry_strategy = retry_strategy
        self.resolver = resolver
        self.fallback = fallback
        self.aggregator = aggregator if aggregator is not None else ResultAggregator()
        self.stop_event = stop_event if stop_event is not None else asyncio.Event()

    def instances(self, feature: Feature) -> List[ScenarioInstance]:
        """Expand every scenario of the feature, in document order"""
        expanded = []
        for scenario in feature.scenarios:
            expanded.extend(self.expander.expand(scenario, feature))
        return expanded

    async def run(
            self,
            feature: Feature,
            options: Optional[RunOptions] = None,
            instances: Optional[List[ScenarioInstance]] = None
    ) -> List[ScenarioExecutionResult]:
        """Execute a feature and return one final result per scenario instance"""
        if instances is None:
            instances = self.instances(feature)
        await self.run_all([(feature, instances)], options)
        return self.collect(instances)

    async def run_all(self, batches: Sequence[FeatureBatch], options: Optional[RunOptions] = None):
        """Execute several features, each with the instances selected from it"""
        options = options or self.options
        if options.parallel_workers > 1:
            await self._run_parallel(batches, options)
        else:
            for feature, instances in batches:
                await self._run_sequential(feature, instances, options)

    def collect(self, instances: Sequence[ScenarioInstance]) -> List[ScenarioExecutionResult]:
        """Final results for the given instances, in their order, one per identity"""
        results = []
        seen = set()
        for instance in instances:
            if instance.identity in seen:
                continue
            seen.add(instance.identity)
            record = self.aggregator.get(instance.identity)
            if record is not None:
                results.append(record)
        return results

    async def _before_feature(
            self,
            feature: Feature,
            instances: List[ScenarioInstance],
            context: FeatureContext,
            options: RunOptions
    ) -> bool:
        logger.info(f"Executing feature: {feature.name} ({len(instances)} scenario(s))")
        try:
            await run_hooks(
                self.registry.hooks, HookPhase.BEFORE_FEATURE, feature.tags, (context,), options.step_timeout
            )
        except HookFailureError as e:
            logger.error(f"Before feature hook failed for '{feature.name}': {e}")
            for instance in instances:
                self.aggregator.add(result_for(instance, Status.FAILED, error=e))
            return False
        return True

    async def _after_feature(self, feature: Feature, context: FeatureContext, options: RunOptions):
        await run_teardown_hooks(
            self.registry.hooks, HookPhase.AFTER_FEATURE, feature.tags, (context,), options.step_timeout
        )

    async def _run_sequential(self, feature: Feature, instances: List[ScenarioInstance], options: RunOptions):
        feature_context = FeatureContext(feature=feature, config=options.config)
        if await self._before_feature(feature, instances, feature_context, options):
            runner = ScenarioRunner(
                self.registry,
                options,
                retry_strategy=self.retry_strategy,
                resolver=self.resolver,
                fallback=self.fallback,
                on_attempt=self.aggregator.add,
            )

            for instance in instances:
                if self.stop_event.is_set():
                    logger.info(f"Skipping scenario after fail-fast stop: {instance.name}")
                    self.aggregator.add(result_for(instance, Status.SKIPPED))
                    continue

                try:
                    result = await runner.run(instance, feature)
                except Exception as e:
                    logger.error(f"Scenario '{instance.identity}' crashed: {type(e).__name__}: {e}")
                    result = result_for(instance, Status.FAILED, error=e)
                    self.aggregator.add(result)

                if result.status == Status.FAILED and options.fail_fast:
                    logger.info(f"Fail-fast: stopping after '{instance.name}'")
                    self.stop_event.set()

        await self._after_feature(feature, feature_context, options)

    async def _run_parallel(self, batches: Sequence[FeatureBatch], options: RunOptions):
        contexts: Dict[int, FeatureContext] = {}
        pending: Dict[int, int] = {}
        units = []

        for index, (feature, instances) in enumerate(batches):
            feature_context = FeatureContext(feature=feature, config=options.config)
            started = await self._before_feature(feature, instances, feature_context, options)
            if not started or not instances:
                await self._after_feature(feature, feature_context, options)
                continue
            contexts[index] = feature_context
            pending[index] = len(instances)
            units.extend(ExecutionUnit(instance, feature, index) for instance in instances)

        async def unit_done(unit: ExecutionUnit):
            pending[unit.batch] -= 1
            if pending[unit.batch] == 0:
                await self._after_feature(unit.feature, contexts[unit.batch], options)

        pool = WorkerPool(
            self.registry,
            options,
            retry_strategy=self.retry_strategy,
            resolver=self.resolver,
            fallback=self.fallback,
            aggregator=self.aggregator,
            stop_event=self.stop_event,
            on_unit_done=unit_done,
        )
        await pool.execute(units)
