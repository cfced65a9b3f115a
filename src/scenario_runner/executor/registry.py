"""
Registration pass.

Steps and hooks are collected into a ``RegistryBuilder`` and then frozen into a
``RegistryContext`` that is handed to the runners explicitly. Nothing is
registered into module-level state.
"""

import importlib
import importlib.util
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Union

from ..core.exceptions import StepDefinitionError
from .hooks import HookRegistry
from .step_definitions import StepDefinitionRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryContext:
    """Frozen step and hook registries shared by every scenario of a run"""
    steps: StepDefinitionRegistry = field(default_factory=lambda: StepDefinitionRegistry(frozen=True))
    hooks: HookRegistry = field(default_factory=lambda: HookRegistry(frozen=True))


class RegistryBuilder:
    """Collects steps and hooks before a run"""

    def __init__(self):
        self.steps = StepDefinitionRegistry()
        self.hooks = HookRegistry()

    # Step decorators
    def given(self, pattern, **options):
        return self.steps.given(pattern, **options)

    def when(self, pattern, **options):
        return self.steps.when(pattern, **options)

    def then(self, pattern, **options):
        return self.steps.then(pattern, **options)

    def step(self, pattern, **options):
        return self.steps.step(pattern, **options)

    # Hook decorators
    def before_feature(self, tags=None, order: int = 0):
        return self.hooks.before_feature(tags, order)

    def after_feature(self, tags=None, order: int = 0):
        return self.hooks.after_feature(tags, order)

    def before_scenario(self, tags=None, order: int = 0):
        return self.hooks.before_scenario(tags, order)

    def after_scenario(self, tags=None, order: int = 0):
        return self.hooks.after_scenario(tags, order)

    def before_step(self, tags=None, order: int = 0):
        return self.hooks.before_step(tags, order)

    def after_step(self, tags=None, order: int = 0):
        return self.hooks.after_step(tags, order)

    def register_from_module(self, module) -> int:
        """Pick up everything marked with the module-level decorators"""
        count = self.steps.register_from_module(module) + self.hooks.register_from_module(module)
        logger.debug(f"Registered {count} definition(s) from {getattr(module, '__name__', module)}")
        return count

    def load_modules(self, modules: Iterable[Union[str, Path]]) -> int:
        """Import step modules by dotted name or file path and register their definitions"""
        count = 0
        for entry in modules:
            count += self.register_from_module(_import_steps(entry))
        return count

    def build(self) -> RegistryContext:
        return RegistryContext(steps=self.steps.freeze(), hooks=self.hooks.freeze())


def _import_steps(entry: Union[str, Path]):
    entry = str(entry)
    if entry.endswith('.py') or Path(entry).is_file():
        path = Path(entry).resolve()
        if not path.exists():
            raise StepDefinitionError(f"Step module not found: {path}")
        module_name = f"scenario_runner_steps.{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)
        logger.info(f"Loaded step module: {path}")
        return module

    try:
        module = importlib.import_module(entry)
    except ImportError as e:
        raise StepDefinitionError(f"Could not import step module '{entry}': {e}") from e
    logger.info(f"Loaded step module: {entry}")
    return module
