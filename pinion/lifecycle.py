"""
Lifecycle management: deactivation of released singletons and container
shutdown hooks.
"""

from typing import Any, Awaitable, Callable, Iterable, List, NamedTuple, Tuple
from enum import Enum
import asyncio
import logging

from .providers import maybe_await

logger = logging.getLogger("pinion.lifecycle")

Failure = Tuple[str, BaseException]


class DisposalStrategy(str, Enum):
    """Order in which released instances are deactivated."""

    LIFO = "lifo"  # Last constructed, first released (default)
    FIFO = "fifo"
    PARALLEL = "parallel"

    @classmethod
    def parse(cls, value: Any) -> "DisposalStrategy":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class ShutdownHook(NamedTuple):
    name: str
    callback: Callable[[], Any]
    priority: int


async def _guarded(name: str, call: Callable[[], Any], what: str) -> List[Failure]:
    try:
        await maybe_await(call())
    except Exception as e:
        logger.warning("%s '%s' failed: %s", what, name, e)
        return [(name, e)]
    return []


class Lifecycle:
    """
    Runs deactivation handlers and shutdown hooks.

    Failures are logged and collected; teardown always runs to completion.
    """

    __slots__ = ("_hooks", "_strategy")

    def __init__(self, strategy: DisposalStrategy = DisposalStrategy.LIFO):
        self._hooks: List[ShutdownHook] = []
        self._strategy = strategy

    def on_shutdown(
        self,
        callback: Callable[[], Any],
        *,
        name: str = "shutdown_hook",
        priority: int = 0,
    ) -> None:
        """
        Register a hook run when the container is torn down.

        Hooks run by descending priority, then in registration order.
        """
        self._hooks.append(ShutdownHook(name, callback, priority))
        self._hooks.sort(key=lambda hook: -hook.priority)

    async def run_shutdown_hooks(self) -> List[Failure]:
        failures: List[Failure] = []
        for hook in self._hooks:
            failures += await _guarded(hook.name, hook.callback, "Shutdown hook")
        return failures

    async def dispose(self, released: Iterable[Tuple[Any, Any]]) -> List[Failure]:
        """
        Deactivate released singletons.

        ``released`` holds (binding, instance) pairs, most recently
        constructed first.
        """
        pairs = list(released)
        if self._strategy is DisposalStrategy.FIFO:
            pairs.reverse()

        jobs: List[Awaitable[List[Failure]]] = [
            self._deactivate(binding, instance) for binding, instance in pairs
        ]
        if self._strategy is DisposalStrategy.PARALLEL:
            batches = await asyncio.gather(*jobs)
        else:
            batches = [await job for job in jobs]
        return [failure for batch in batches for failure in batch]

    async def _deactivate(self, binding: Any, instance: Any) -> List[Failure]:
        failures: List[Failure] = []
        what = f"Deactivation handler for {binding.describe()}"
        for handler in binding.on_deactivation:
            name = getattr(handler, "__qualname__", repr(handler))
            failures += await _guarded(name, lambda h=handler: h(instance), what)
        return failures

    def clear(self) -> None:
        self._hooks.clear()
