import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from ..bdd.model import ScenarioInstance
from ..core.base import RetryStrategy, Status
from .aggregator import ResultAggregator
from .registry import RegistryContext
from .results import ScenarioExecutionResult, result_for
from .scenario import RunOptions, ScenarioRunner

logger = logging.getLogger(__name__)

UnitCallback = Callable[["ExecutionUnit"], Awaitable[None]]


@dataclass
class ExecutionUnit:
    """A scenario instance scheduled on the pool, with the feature it belongs to"""
    instance: ScenarioInstance
    feature: Any = None
    batch: int = 0

    @property
    def identity(self) -> str:
        return self.instance.identity


class WorkerPool:
    """
    Runs execution units on N asyncio workers.

    Every unit goes on one shared queue and idle workers pull the next one, so a
    long scenario never holds back work another worker could take. A worker that
    crashes reports its current unit failed and retires while the others carry
    on; units still queued once no worker is left are recorded skipped.
    """

    def __init__(
            self,
            registry: RegistryContext,
            options: Optional[RunOptions] = None,
            retry_strategy: Optional[RetryStrategy] = None,
            resolver: Optional[Callable] = None,
            fallback: Optional[Callable] = None,
            aggregator: Optional[ResultAggregator] = None,
            stop_event: Optional[asyncio.Event] = None,
            on_unit_done: Optional[UnitCallback] = None
    ):
        self.registry = registry
        self.options = options or RunOptions()
        self.retry_strategy = retry_strategy
        self.resolver = resolver
        self.fallback = fallback
        self.aggregator = aggregator if aggregator is not None else ResultAggregator()
        self.stop_event = stop_event if stop_event is not None else asyncio.Event()
        self.on_unit_done = on_unit_done

    @property
    def workers(self) -> int:
        return max(1, self.options.parallel_workers)

    async def execute(self, units: Iterable[ExecutionUnit]) -> Dict[str, ScenarioExecutionResult]:
        units = list(units)
        if not units:
            return {}

        queue: asyncio.Queue = asyncio.Queue()
        for unit in units:
            queue.put_nowait(unit)

        count = min(self.workers, len(units))
        logger.info(f"Running {len(units)} scenario(s) on {count} worker(s)")
        await asyncio.gather(*(self._worker(worker_id, queue) for worker_id in range(count)))

        while not queue.empty():
            unit = queue.get_nowait()
            logger.warning(f"No worker left to run '{unit.identity}', recording it skipped")
            await self._record(unit, result_for(unit.instance, Status.SKIPPED))

        results = {}
        for unit in units:
            record = self.aggregator.get(unit.identity)
            if record is not None:
                results[unit.identity] = record
        return results

    async def _worker(self, worker_id: int, queue: asyncio.Queue):
        runner = ScenarioRunner(
            self.registry,
            self.options,
            retry_strategy=self.retry_strategy,
            resolver=self.resolver,
            fallback=self.fallback,
            on_attempt=self.aggregator.add,
            worker_id=worker_id,
        )

        while not queue.empty():
            unit = queue.get_nowait()
            if self.stop_event.is_set():
                await self._record(unit, result_for(unit.instance, Status.SKIPPED, worker_id=worker_id))
                continue

            try:
                result = await runner.run(unit.instance, unit.feature)
            except Exception as e:
                logger.error(f"Worker {worker_id} crashed on '{unit.identity}': {type(e).__name__}: {e}")
                await self._record(unit, result_for(unit.instance, Status.FAILED, error=e, worker_id=worker_id))
                return

            if result.status == Status.FAILED and self.options.fail_fast:
                logger.info(f"Fail-fast: stopping after '{unit.identity}'")
                self.stop_event.set()
            await self._done(unit)

    async def _record(self, unit: ExecutionUnit, record: ScenarioExecutionResult):
        self.aggregator.add(record)
        await self._done(unit)

    async def _done(self, unit: ExecutionUnit):
        if self.on_unit_done is not None:
            await self.on_unit_done(unit)
