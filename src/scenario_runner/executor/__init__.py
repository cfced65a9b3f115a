from .executor import Executor, ExecutorConfig
from .step_definitions import (
    StepDefinition,
    StepDefinitionRegistry,
    StepMatch,
    StepOptions,
    compile_pattern,
    given,
    when,
    then,
    step,
)
from .hooks import (
    Hook,
    HookPhase,
    HookRegistry,
    before_feature,
    after_feature,
    before_scenario,
    after_scenario,
    before_step,
    after_step,
)
from .registry import RegistryBuilder, RegistryContext
from .context import ScenarioContext, FeatureContext
from .resolver import ValueResolver
from .results import StepResult, ScenarioExecutionResult, RunResult
from .scenario import ScenarioRunner, ScenarioState, RunOptions
from .feature import FeatureRunner
from .worker_pool import WorkerPool, ExecutionUnit
from .aggregator import ResultAggregator

__all__ = [
    'Executor',
    'ExecutorConfig',
    'StepDefinition',
    'StepDefinitionRegistry',
    'StepMatch',
    'StepOptions',
    'compile_pattern',
    'Hook',
    'HookPhase',
    'HookRegistry',
    'RegistryBuilder',
    'RegistryContext',
    'ScenarioContext',
    'FeatureContext',
    'ValueResolver',
    'StepResult',
    'ScenarioExecutionResult',
    'RunResult',
    'ScenarioRunner',
    'ScenarioState',
    'RunOptions',
    'FeatureRunner',
    'WorkerPool',
    'ExecutionUnit',
    'ResultAggregator',
    'given',
    'when',
    'then',
    'step',
    'before_feature',
    'after_feature',
    'before_scenario',
    'after_scenario',
    'before_step',
    'after_step',
]
