"""
Step definitions and the step matcher.

A step pattern is either a regular expression (a compiled ``re.Pattern``, or a
string starting with ``^`` or ending with ``$``) or an expression made of
literal text and typed placeholders::

    I click {string}            -> "Login" or 'Login'
    I wait {int} seconds        -> 5
    the ratio is {float}        -> -0.5
    I open the {word} menu      -> settings
    I see {anything else}       -> non-greedy text

Expressions are anchored at both ends; regular expressions are searched as-is.
Each pattern is compiled once, at registration.

Resolution walks definitions in registration order and the first match wins.
Overlapping patterns are not reported as ambiguous.
"""

import inspect
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Pattern, Sequence, Tuple, Union

from ..core.exceptions import StepDefinitionError, StepNotFoundError

logger = logging.getLogger(__name__)

StepPattern = Union[str, Pattern]
ArgumentResolver = Callable[[str, Any], Any]

_PLACEHOLDER = re.compile(r'\{([^{}]*)\}')

_PLACEHOLDER_REGEX = {
    'string': (r'''(?:"([^"]*)"|'([^']*)')''', 2),
    'int': (r'(\d+)', 1),
    'float': (r'([+-]?\d*\.?\d+)', 1),
    'word': (r'(\w+)', 1),
}
_GENERIC_REGEX = (r'(.*?)', 1)

_INT_LITERAL = re.compile(r'^[+-]?\d+$')
_FLOAT_LITERAL = re.compile(r'^[+-]?\d*\.\d+$')


@dataclass(frozen=True)
class StepOptions:
    """Per-definition options. ``timeout_ms=None`` means the run's default step timeout."""
    timeout_ms: Optional[int] = None
    max_retries: int = 0
    tags: Tuple[str, ...] = ()
    order: int = 0
    description: str = ""


@dataclass(frozen=True)
class CompiledMatcher:
    """Compiled form of a step pattern"""
    source: str
    regex: Pattern
    anchored: bool
    # Capture groups feeding each argument; the first group that matched wins
    arguments: Tuple[Tuple[int, ...], ...]

    def match(self, text: str) -> Optional[Tuple[Optional[str], ...]]:
        found = self.regex.fullmatch(text) if self.anchored else self.regex.search(text)
        if found is None:
            return None
        return tuple(
            next((found.group(g) for g in groups if found.group(g) is not None), None)
            for groups in self.arguments
        )


def is_regex_pattern(pattern: StepPattern) -> bool:
    if isinstance(pattern, re.Pattern):
        return True
    return pattern.startswith('^') or pattern.endswith('$')


@lru_cache(maxsize=None)
def compile_pattern(pattern: StepPattern) -> CompiledMatcher:
    """Compile a step pattern. Pure: the same pattern always yields an equivalent matcher."""
    if isinstance(pattern, re.Pattern):
        return CompiledMatcher(
            source=pattern.pattern,
            regex=pattern,
            anchored=False,
            arguments=tuple((g,) for g in range(1, pattern.groups + 1)),
        )

    if not isinstance(pattern, str):
        raise StepDefinitionError(f"Step pattern must be a string or compiled regex, got {type(pattern).__name__}")

    if is_regex_pattern(pattern):
        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise StepDefinitionError(f"Invalid step regex {pattern!r}: {e}") from e
        return CompiledMatcher(
            source=pattern,
            regex=regex,
            anchored=False,
            arguments=tuple((g,) for g in range(1, regex.groups + 1)),
        )

    parts = []
    arguments = []
    next_group = 1
    position = 0
    for placeholder in _PLACEHOLDER.finditer(pattern):
        parts.append(re.escape(pattern[position:placeholder.start()]))
        regex_part, group_count = _PLACEHOLDER_REGEX.get(placeholder.group(1).strip(), _GENERIC_REGEX)
        parts.append(regex_part)
        arguments.append(tuple(range(next_group, next_group + group_count)))
        next_group += group_count
        position = placeholder.end()
    parts.append(re.escape(pattern[position:]))

    return CompiledMatcher(
        source=pattern,
        regex=re.compile(''.join(parts)),
        anchored=True,
        arguments=tuple(arguments),
    )


def coerce_argument(value: Optional[str], resolver: Optional[ArgumentResolver] = None, context: Any = None) -> Any:
    """Strip quotes, resolve, then type the value: integer literal -> int, decimal literal -> float"""
    if value is None:
        return None

    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        value = value[1:-1]

    if resolver is not None:
        value = resolver(value, context)

    if not isinstance(value, str):
        return value
    if _INT_LITERAL.match(value):
        return int(value)
    if _FLOAT_LITERAL.match(value):
        return float(value)
    return value


@dataclass(frozen=True)
class StepDefinition:
    """A step pattern bound to its handler"""
    pattern: StepPattern
    handler: Callable
    options: StepOptions = field(default_factory=StepOptions)
    keyword: str = 'step'
    matcher: CompiledMatcher = None

    def __post_init__(self):
        if self.matcher is None:
            object.__setattr__(self, 'matcher', compile_pattern(self.pattern))

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.handler)

    @property
    def name(self) -> str:
        return getattr(self.handler, '__name__', repr(self.handler))


@dataclass(frozen=True)
class StepMatch:
    """A resolved step: which definition, with which arguments"""
    definition: StepDefinition
    args: Tuple[Any, ...]
    text: str

    @property
    def handler(self) -> Callable:
        return self.definition.handler


class StepDefinitionRegistry:
    """Registry for step definitions"""

    def __init__(self, definitions: Optional[Sequence[StepDefinition]] = None, frozen: bool = False):
        self._definitions: List[StepDefinition] = list(definitions or [])
        self._frozen = frozen

    @property
    def definitions(self) -> Tuple[StepDefinition, ...]:
        return tuple(self._definitions)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(
            self,
            pattern: StepPattern,
            handler: Callable,
            options: Optional[StepOptions] = None,
            keyword: str = 'step'
    ) -> StepDefinition:
        """Append a step definition. Its pattern is compiled here, once."""
        if self._frozen:
            raise StepDefinitionError("Step registry is frozen; register steps before execution starts")
        if not callable(handler):
            raise StepDefinitionError(f"Step handler for {pattern!r} is not callable")

        definition = StepDefinition(
            pattern=pattern,
            handler=handler,
            options=options or StepOptions(),
            keyword=keyword.lower(),
        )
        self._definitions.append(definition)
        logger.debug(f"Registered step: {keyword} {definition.matcher.source}")
        return definition

    def _decorator(self, keyword: str, pattern: StepPattern, options: Dict[str, Any]):
        step_options = _options(options)

        def decorator(func):
            self.register(pattern, func, step_options, keyword)
            return func

        return decorator

    def given(self, pattern: StepPattern, **options):
        """Decorator for Given steps"""
        return self._decorator('given', pattern, options)

    def when(self, pattern: StepPattern, **options):
        """Decorator for When steps"""
        return self._decorator('when', pattern, options)

    def then(self, pattern: StepPattern, **options):
        """Decorator for Then steps"""
        return self._decorator('then', pattern, options)

    def step(self, pattern: StepPattern, **options):
        """Decorator for steps usable with any keyword"""
        return self._decorator('step', pattern, options)

    def find(self, step_text: str) -> Optional[StepMatch]:
        """First definition, in registration order, whose pattern matches the text"""
        for definition in self._definitions:
            captured = definition.matcher.match(step_text)
            if captured is not None:
                logger.debug(f"Found matching step definition: {definition.matcher.source}")
                return StepMatch(
                    definition=definition,
                    args=tuple(captured),
                    text=step_text,
                )
        return None

    def resolve(
            self,
            step_text: str,
            resolver: Optional[ArgumentResolver] = None,
            context: Any = None
    ) -> StepMatch:
        """Resolve step text to a definition and coerced arguments, or raise StepNotFoundError"""
        found = self.find(step_text)
        if found is None:
            logger.debug(f"No step definition found for: {step_text}")
            raise StepNotFoundError(step_text)

        args = tuple(coerce_argument(value, resolver, context) for value in found.args)
        return StepMatch(definition=found.definition, args=args, text=step_text)

    def list_definitions(self) -> List[Dict[str, Any]]:
        """List registered step definitions, ordered by their ``order`` option"""
        ordered = sorted(self._definitions, key=lambda d: d.options.order)
        return [
            {
                'keyword': defn.keyword,
                'pattern': defn.matcher.source,
                'description': defn.options.description,
                'function': defn.name,
                'timeout_ms': defn.options.timeout_ms,
                'max_retries': defn.options.max_retries,
                'tags': list(defn.options.tags),
            }
            for defn in ordered
        ]

    def register_from_module(self, module) -> int:
        """Register functions marked with the module-level step decorators, in definition order"""
        count = 0
        for obj in list(vars(module).values()):
            for info in getattr(obj, '_step_definitions', []):
                self.register(info['pattern'], obj, info['options'], info['keyword'])
                count += 1
        return count

    def freeze(self) -> "StepDefinitionRegistry":
        return StepDefinitionRegistry(self._definitions, frozen=True)

    def __len__(self) -> int:
        return len(self._definitions)


def _options(values: Dict[str, Any]) -> StepOptions:
    values = dict(values)
    if 'timeout' in values:
        values['timeout_ms'] = values.pop('timeout')
    if 'retry' in values:
        values['max_retries'] = values.pop('retry')
    if 'tags' in values:
        values['tags'] = tuple(values['tags'])
    try:
        return StepOptions(**values)
    except TypeError as e:
        raise StepDefinitionError(f"Invalid step options: {e}") from e


def _mark(keyword: str, pattern: StepPattern, options: Dict[str, Any]):
    step_options = _options(options)

    def decorator(func):
        marks = func.__dict__.setdefault('_step_definitions', [])
        # Decorators apply bottom-up; prepend so the topmost pattern registers first
        marks.insert(0, {'keyword': keyword, 'pattern': pattern, 'options': step_options})
        return func

    return decorator


# Utility decorators marking functions as step definitions for register_from_module
def given(pattern: StepPattern, **options):
    """Mark function as a Given step"""
    return _mark('given', pattern, options)


def when(pattern: StepPattern, **options):
    """Mark function as a When step"""
    return _mark('when', pattern, options)


def then(pattern: StepPattern, **options):
    """Mark function as a Then step"""
    return _mark('then', pattern, options)


def step(pattern: StepPattern, **options):
    """Mark function as a step usable with any keyword"""
    return _mark('step', pattern, options)
