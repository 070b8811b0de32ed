"""
Cycle detection on the active resolution path, and lazy handles used to
close singleton cycles.
"""

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, List, Tuple

from .errors import CircularDependency, LazyDependencyNotReady
from .qualifiers import Qualifiers, identifier_name
from .scopes import ServiceScope

if TYPE_CHECKING:
    from .bindings import Binding
    from .core import Container

_UNSET = object()


class CycleGuard:
    """
    Ordered set of bindings currently under construction on one path.

    Owned by a single resolution context; no locking.
    """

    __slots__ = ("_frames",)

    def __init__(self):
        self._frames: List[Tuple[Any, "Binding"]] = []

    def __len__(self) -> int:
        return len(self._frames)

    def check(self, identifier: Any, binding: "Binding") -> None:
        """Raise CircularDependency if binding is already in progress."""
        for index, (_, active) in enumerate(self._frames):
            if active is binding:
                cycle_frames = self._frames[index:]
                cycle = [identifier_name(i) for i, _ in cycle_frames]
                cycle.append(identifier_name(identifier))
                singleton_only = all(
                    b.scope is ServiceScope.SINGLETON for _, b in cycle_frames
                )
                raise CircularDependency(
                    cycle,
                    singleton_only=singleton_only,
                    binding_ids=[b.id for _, b in cycle_frames],
                )

    @contextmanager
    def frame(self, identifier: Any, binding: "Binding") -> Iterator[None]:
        """Push identifier for the duration of the block; always popped."""
        self.check(identifier, binding)
        self._frames.append((identifier, binding))
        try:
            yield
        finally:
            self._frames.pop()

    def path(self) -> List[str]:
        return [identifier_name(i) for i, _ in self._frames]

    def reset(self) -> None:
        self._frames.clear()


class LazyRef:
    """
    Deferred reference to a singleton that was still under construction
    when it was injected.

    Reads through the container's singleton cache. Attribute access and
    calls are forwarded to the target once it exists.
    """

    __slots__ = ("_container", "_identifier", "_qualifiers", "_key", "_instance")

    def __init__(self, container: "Container", identifier: Any, qualifiers: Qualifiers, key: Any = None):
        object.__setattr__(self, "_container", container)
        object.__setattr__(self, "_identifier", identifier)
        object.__setattr__(self, "_qualifiers", qualifiers)
        object.__setattr__(self, "_key", key)
        object.__setattr__(self, "_instance", _UNSET)

    @property
    def identifier(self) -> Any:
        return self._identifier

    @property
    def resolved(self) -> bool:
        return self._instance is not _UNSET

    def _bind(self, key: Any, instance: Any) -> None:
        object.__setattr__(self, "_key", key)
        object.__setattr__(self, "_instance", instance)

    def get(self) -> Any:
        """Return the target; it must already be constructed."""
        if self._instance is not _UNSET:
            return self._instance

        if self._key is not None:
            found, instance = self._container._singletons.peek(self._key)
            if found:
                object.__setattr__(self, "_instance", instance)
                return instance

        raise LazyDependencyNotReady(self._identifier)

    async def get_async(self) -> Any:
        """Return the target, resolving it through the container if needed."""
        if self._instance is not _UNSET:
            return self._instance

        if self._key is not None:
            found, instance = self._container._singletons.peek(self._key)
            if found:
                object.__setattr__(self, "_instance", instance)
                return instance
            if self._container._singletons.is_pending(self._key):
                raise LazyDependencyNotReady(self._identifier)

        instance = await self._container.get_async(self._identifier, self._qualifiers)
        object.__setattr__(self, "_instance", instance)
        return instance

    def __getattr__(self, name: str) -> Any:
        return getattr(self.get(), name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self.get(), name, value)

    def __call__(self, *args, **kwargs):
        return self.get()(*args, **kwargs)

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "pending"
        return f"LazyRef({identifier_name(self._identifier)}, {state})"
