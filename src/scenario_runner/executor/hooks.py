"""Lifecycle hooks: feature, scenario and step level, optionally scoped by tags."""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from ..bdd.model import normalize_tags
from ..core.exceptions import StepDefinitionError

logger = logging.getLogger(__name__)


class HookPhase(str, Enum):
    BEFORE_FEATURE = "before_feature"
    AFTER_FEATURE = "after_feature"
    BEFORE = "before"
    AFTER = "after"
    BEFORE_STEP = "before_step"
    AFTER_STEP = "after_step"


@dataclass(frozen=True)
class Hook:
    phase: HookPhase
    handler: Callable
    tags: Tuple[str, ...] = ()
    order: int = 0
    name: str = ""

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.handler)

    def applies_to(self, active_tags: Iterable[str]) -> bool:
        """Tagless hooks always apply; tagged hooks need at least one tag in common"""
        if not self.tags:
            return True
        return bool(set(self.tags) & set(normalize_tags(active_tags)))


class HookRegistry:
    """Registry for lifecycle hooks"""

    def __init__(self, hooks: Optional[Sequence[Hook]] = None, frozen: bool = False):
        self._hooks: List[Hook] = list(hooks or [])
        self._frozen = frozen

    @property
    def hooks(self) -> Tuple[Hook, ...]:
        return tuple(self._hooks)

    def register(
            self,
            phase,
            handler: Callable,
            tags: Optional[Iterable[str]] = None,
            order: int = 0
    ) -> Hook:
        if self._frozen:
            raise StepDefinitionError("Hook registry is frozen; register hooks before execution starts")
        if not callable(handler):
            raise StepDefinitionError(f"Hook handler for {phase} is not callable")

        try:
            phase = HookPhase(phase)
        except ValueError as e:
            raise StepDefinitionError(f"Unknown hook phase: {phase}") from e

        hook = Hook(
            phase=phase,
            handler=handler,
            tags=tuple(normalize_tags(tags)),
            order=order,
            name=getattr(handler, '__name__', repr(handler)),
        )
        self._hooks.append(hook)
        logger.debug(f"Registered {phase.value} hook: {hook.name}")
        return hook

    def list(self, phase, active_tags: Optional[Iterable[str]] = None) -> List[Hook]:
        """Applicable hooks for a phase, by ascending ``order`` (ties keep registration order)"""
        phase = HookPhase(phase)
        active_tags = list(active_tags or [])
        selected = [h for h in self._hooks if h.phase == phase and h.applies_to(active_tags)]
        return sorted(selected, key=lambda h: h.order)

    def _decorator(self, phase: HookPhase, tags, order):
        def decorator(func):
            self.register(phase, func, tags, order)
            return func

        return decorator

    def before_feature(self, tags=None, order: int = 0):
        return self._decorator(HookPhase.BEFORE_FEATURE, tags, order)

    def after_feature(self, tags=None, order: int = 0):
        return self._decorator(HookPhase.AFTER_FEATURE, tags, order)

    def before_scenario(self, tags=None, order: int = 0):
        return self._decorator(HookPhase.BEFORE, tags, order)

    def after_scenario(self, tags=None, order: int = 0):
        return self._decorator(HookPhase.AFTER, tags, order)

    def before_step(self, tags=None, order: int = 0):
        return self._decorator(HookPhase.BEFORE_STEP, tags, order)

    def after_step(self, tags=None, order: int = 0):
        return self._decorator(HookPhase.AFTER_STEP, tags, order)

    def register_from_module(self, module) -> int:
        """Register functions marked with the module-level hook decorators"""
        count = 0
        for obj in list(vars(module).values()):
            for info in getattr(obj, '_hook_definitions', []):
                self.register(info['phase'], obj, info['tags'], info['order'])
                count += 1
        return count

    def freeze(self) -> "HookRegistry":
        return HookRegistry(self._hooks, frozen=True)

    def __len__(self) -> int:
        return len(self._hooks)


def _mark(phase: HookPhase, tags, order):
    def decorator(func):
        func.__dict__.setdefault('_hook_definitions', []).append(
            {'phase': phase, 'tags': tags, 'order': order}
        )
        return func

    return decorator


# Utility decorators marking functions as hooks for register_from_module
def before_feature(tags=None, order: int = 0):
    return _mark(HookPhase.BEFORE_FEATURE, tags, order)


def after_feature(tags=None, order: int = 0):
    return _mark(HookPhase.AFTER_FEATURE, tags, order)


def before_scenario(tags=None, order: int = 0):
    return _mark(HookPhase.BEFORE, tags, order)


def after_scenario(tags=None, order: int = 0):
    return _mark(HookPhase.AFTER, tags, order)


def before_step(tags=None, order: int = 0):
    return _mark(HookPhase.BEFORE_STEP, tags, order)


def after_step(tags=None, order: int = 0):
    return _mark(HookPhase.AFTER_STEP, tags, order)
