"""Calling user code: step handlers and hooks, sync or async, under a time budget."""

import asyncio
import inspect
import logging
from typing import Any, Callable, Iterable, Optional, Sequence

from ..core.exceptions import HandlerTimeoutError, HookFailureError
from .hooks import HookPhase, HookRegistry

logger = logging.getLogger(__name__)


async def invoke(handler: Callable, args: Sequence[Any], timeout_ms: Optional[int] = None) -> Any:
    """
    Await an async handler, or run a sync one in a worker thread, bounded by ``timeout_ms``.

    Raises HandlerTimeoutError only when the budget runs out; a TimeoutError
    raised by the handler itself propagates unchanged. A timed-out sync
    handler cannot be interrupted; its thread is left to finish on its own.
    """
    timeout = timeout_ms / 1000 if timeout_ms else None

    try:
        async with asyncio.timeout(timeout) as budget:
            if inspect.iscoroutinefunction(handler):
                return await handler(*args)

            result = await asyncio.to_thread(handler, *args)
            if inspect.isawaitable(result):
                result = await result
            return result
    except TimeoutError:
        if budget.expired():
            raise HandlerTimeoutError(timeout_ms) from None
        raise


async def run_hooks(
        hooks: HookRegistry,
        phase: HookPhase,
        tags: Iterable[str],
        args: Sequence[Any],
        timeout_ms: Optional[int] = None
) -> None:
    """Run hooks in order; the first failure stops the phase and raises HookFailureError"""
    for hook in hooks.list(phase, tags):
        try:
            await invoke(hook.handler, args, timeout_ms)
        except Exception as e:
            raise HookFailureError(phase.value, hook.name, e) from e


async def run_teardown_hooks(
        hooks: HookRegistry,
        phase: HookPhase,
        tags: Iterable[str],
        args: Sequence[Any],
        timeout_ms: Optional[int] = None
) -> int:
    """Run every hook of a teardown phase; failures are logged, never raised. Returns the failure count."""
    failures = 0
    for hook in hooks.list(phase, tags):
        try:
            await invoke(hook.handler, args, timeout_ms)
        except Exception as e:
            failures += 1
            logger.error(f"Hook {phase.value} '{hook.name}' failed: {type(e).__name__}: {e}")
    return failures
