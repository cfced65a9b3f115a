import asyncio
import logging
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..bdd.data_sources import FileDataSourceResolver
from ..bdd.expander import ExamplesExpander
from ..bdd.model import Feature, ScenarioInstance, normalize_tags
from ..bdd.parser import load_features
from ..core.base import AlwaysRetry, NonRetryablePatternStrategy, RetryStrategy
from ..core.config import ConfigManager
from ..core.exceptions import ConfigurationError
from .aggregator import ResultAggregator
from .feature import FeatureRunner
from .registry import RegistryBuilder, RegistryContext
from .resolver import ValueResolver
from .results import RunResult
from .scenario import RunOptions

logger = logging.getLogger(__name__)


@dataclass
class ExecutorConfig:
    """Configuration for a run"""
    features: List[str] = field(default_factory=lambda: ["features/"])
    steps: List[str] = field(default_factory=list)
    parallel_workers: int = 1
    retry: int = 0
    fail_fast: bool = False
    dry_run: bool = False
    step_timeout: int = 30000
    step_retry_delay: float = 1.0
    tags: Optional[Union[str, List[str]]] = None
    exclude_tags: Optional[Union[str, List[str]]] = None
    scenario: Optional[str] = None
    non_retryable_patterns: Optional[List[str]] = None
    data_dir: str = "."

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutorConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown executor options: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    @classmethod
    def from_config(cls, manager: ConfigManager, **overrides) -> "ExecutorConfig":
        """Executor section of the configuration, with non-None overrides applied on top"""
        data = dict(manager.get_module_config("executor"))
        data.setdefault("data_dir", manager.get("data_sources.base_dir", "."))
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_dict(data)

    def validate(self):
        if self.parallel_workers < 1:
            raise ConfigurationError(f"parallel_workers must be at least 1, got {self.parallel_workers}")
        if self.retry < 0:
            raise ConfigurationError(f"retry must not be negative, got {self.retry}")
        if self.step_timeout <= 0:
            raise ConfigurationError(f"step_timeout must be positive, got {self.step_timeout}")

    def run_options(self, config: Optional[Dict[str, Any]] = None) -> RunOptions:
        return RunOptions(
            retry=self.retry,
            step_timeout=self.step_timeout,
            step_retry_delay=self.step_retry_delay,
            fail_fast=self.fail_fast,
            parallel_workers=self.parallel_workers,
            config=config or {},
        )


class Executor:
    """
    Runs feature files against registered step definitions

    Loads features, expands data-driven scenarios, applies the tag and name
    filters and hands the selected features to a FeatureRunner; parallel runs
    share one work queue across features. All results end up in one
    ResultAggregator.
    """

    def __init__(
            self,
            config: Optional[Union[Dict, ExecutorConfig]] = None,
            registry: Optional[RegistryContext] = None,
            retry_strategy: Optional[RetryStrategy] = None,
            fallback: Optional[Callable] = None,
            config_manager: Optional[ConfigManager] = None
    ):
        if isinstance(config, dict):
            self.config = ExecutorConfig.from_dict(config)
        else:
            self.config = config or ExecutorConfig()
        self.config.validate()

        self.config_manager = config_manager
        self._registry = registry
        self.retry_strategy = retry_strategy or self._default_strategy()
        self.fallback = fallback
        self.resolver = ValueResolver(config_manager)
        self.expander = ExamplesExpander(FileDataSourceResolver(self.config.data_dir))

    def _default_strategy(self) -> RetryStrategy:
        if self.config.non_retryable_patterns:
            return NonRetryablePatternStrategy(self.config.non_retryable_patterns)
        return AlwaysRetry()

    @property
    def registry(self) -> RegistryContext:
        if self._registry is None:
            builder = RegistryBuilder()
            builder.load_modules(self.config.steps)
            self._registry = builder.build()
            logger.info(f"Registered {len(self._registry.steps)} step(s) and {len(self._registry.hooks)} hook(s)")
        return self._registry

    def load(self, paths: Optional[Iterable[str]] = None) -> List[Feature]:
        return load_features(paths or self.config.features)

    def should_run(self, instance: ScenarioInstance) -> bool:
        """Check if a scenario instance passes the tag and name filters"""
        tags = set(normalize_tags(instance.tags))

        include = _tag_list(self.config.tags)
        if include and not tags & include:
            return False

        exclude = _tag_list(self.config.exclude_tags)
        if exclude and tags & exclude:
            return False

        if self.config.scenario:
            needle = self.config.scenario.lower()
            if needle not in instance.name.lower() and needle not in instance.template_name.lower():
                return False

        return True

    def select(self, feature: Feature) -> List[ScenarioInstance]:
        instances = []
        for scenario in feature.scenarios:
            instances.extend(i for i in self.expander.expand(scenario, feature) if self.should_run(i))
        return instances

    def plan(self, features: List[Feature]) -> List[Dict[str, Any]]:
        """Would-be execution order, with every step marked matched or not. Runs nothing."""
        steps = self.registry.steps
        order = []
        for feature in features:
            for instance in self.select(feature):
                entries = []
                for step in list(instance.background) + list(instance.steps):
                    found = steps.find(step.text)
                    entries.append({
                        'keyword': step.keyword,
                        'text': step.text,
                        'matched': found is not None,
                        'pattern': found.definition.matcher.source if found else None,
                    })
                order.append({
                    'feature': instance.feature_name,
                    'scenario': instance.name,
                    'tags': list(instance.tags),
                    'steps': entries,
                })
                unmatched = [e['text'] for e in entries if not e['matched']]
                if unmatched:
                    logger.warning(f"Dry run: '{instance.name}' has undefined step(s): {unmatched}")
        return order

    async def run_features(self, features: List[Feature]) -> RunResult:
        result = RunResult()

        if self.config.dry_run:
            result.plan = self.plan(features)
            result.end_time = datetime.now()
            logger.info(f"Dry run: {len(result.plan)} scenario(s) would be executed")
            return result

        options = self.config.run_options(self.config_manager.to_dict() if self.config_manager else None)
        aggregator = ResultAggregator()
        runner = FeatureRunner(
            self.registry,
            options,
            expander=self.expander,
            retry_strategy=self.retry_strategy,
            resolver=self.resolver,
            fallback=self.fallback,
            aggregator=aggregator,
        )

        batches = []
        for feature in features:
            instances = self.select(feature)
            if not instances:
                logger.info(f"No scenarios selected in feature: {feature.name}")
                continue
            batches.append((feature, instances))
        await runner.run_all(batches, options)

        result.results = aggregator.final_results()
        result.end_time = datetime.now()
        logger.info(f"Run finished: {result.counts}")
        return result

    def execute(self, features: Optional[List[Feature]] = None) -> RunResult:
        """
        Execute features

        Args:
            features: Already parsed features; loaded from the configured paths when omitted

        Returns:
            RunResult with one final result per scenario instance
        """
        if features is None:
            features = self.load()
        return asyncio.run(self.run_features(features))


def _tag_list(value: Optional[Union[str, Iterable[str]]]) -> set:
    if not value:
        return set()
    if isinstance(value, str):
        value = value.split(',')
    return set(normalize_tags(value))
