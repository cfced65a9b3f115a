"""
Value interpolation for step arguments.

Supported forms, anywhere inside an argument::

    {env:NAME}          environment variable (left as-is when unset)
    {config:dot.key}    value from the ConfigManager
    {var:name}          variable stored on the scenario context

An argument that consists of a single placeholder resolves to the raw value,
so a stored list stays a list.
"""

import logging
import os
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r'\{(env|config|var):([^{}]+)\}')


class ValueResolver:
    """Callable used by StepDefinitionRegistry.resolve to expand argument values"""

    def __init__(self, config=None):
        self.config = config

    def __call__(self, value: Any, context: Any = None) -> Any:
        if not isinstance(value, str) or '{' not in value:
            return value

        whole = _TOKEN.fullmatch(value)
        if whole:
            found, resolved = self._lookup(whole.group(1), whole.group(2).strip(), context)
            return resolved if found else value

        def replace(match):
            found, resolved = self._lookup(match.group(1), match.group(2).strip(), context)
            return str(resolved) if found else match.group(0)

        return _TOKEN.sub(replace, value)

    def _lookup(self, kind: str, name: str, context: Any):
        if kind == 'env':
            if name in os.environ:
                return True, os.environ[name]
        elif kind == 'config':
            if self.config is not None:
                sentinel = object()
                value = self.config.get(name, sentinel)
                if value is not sentinel:
                    return True, value
        elif kind == 'var':
            variables = getattr(context, 'variables', None) or {}
            if name in variables:
                return True, variables[name]

        logger.warning(f"Could not resolve {{{kind}:{name}}}; value left unchanged")
        return False, None


def resolve_value(value: Any, context: Any = None, config: Optional[Any] = None) -> Any:
    return ValueResolver(config)(value, context)
