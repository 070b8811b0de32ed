"""
Dependency metadata and construction callbacks.

The container never inspects constructors. What a service needs comes from
a metadata provider; how it is built comes from a construction callback.
"""

from typing import Any, Callable, Dict, List, Protocol, Sequence, Tuple, runtime_checkable
import threading

from .qualifiers import Dependency, as_dependency, identifier_name


@runtime_checkable
class MetadataProvider(Protocol):
    """Reports the ordered dependency slots of a service type."""

    def dependencies_of(self, service_type: Any) -> Sequence[Any]:
        """
        Args:
            service_type: Type bound through a class binding

        Returns:
            Ordered Dependency objects (bare identifiers and
            (identifier, qualifiers) tuples are accepted too). Empty means
            "construct directly".
        """
        ...


@runtime_checkable
class ConstructionCallback(Protocol):
    """Turns resolved dependencies into an instance (may return an awaitable)."""

    def __call__(self, service_type: Any, dependencies: List[Any]) -> Any:
        ...


def default_construct(service_type: Any, dependencies: List[Any]) -> Any:
    """Call the service type positionally with its resolved dependencies."""
    return service_type(*dependencies)


class StaticMetadataProvider:
    """
    Explicit registration table of dependency slots.

    Example:
        metadata = StaticMetadataProvider()
        metadata.declare(UserService, UserRepo, Dependency(Cache, Qualifiers.named("hot")))

        @metadata.injectable(Database)
        class UserRepo:
            def __init__(self, db):
                self.db = db
    """

    def __init__(self, table: Dict[Any, Sequence[Any]] = None):
        self._table: Dict[Any, Tuple[Dependency, ...]] = {}
        self._lock = threading.Lock()
        for service_type, deps in (table or {}).items():
            self.declare(service_type, *deps)

    def declare(self, service_type: Any, *dependencies: Any) -> None:
        """Record (or replace) the dependency slots of service_type."""
        normalised = tuple(as_dependency(d) for d in dependencies)
        with self._lock:
            self._table[service_type] = normalised

    def injectable(self, *dependencies: Any) -> Callable[[Any], Any]:
        """Decorator form of declare()."""
        def decorator(service_type: Any) -> Any:
            self.declare(service_type, *dependencies)
            return service_type

        return decorator

    def declares(self, service_type: Any) -> bool:
        return service_type in self._table

    def dependencies_of(self, service_type: Any) -> Tuple[Dependency, ...]:
        return self._table.get(service_type, ())

    def __repr__(self) -> str:
        names = ", ".join(identifier_name(t) for t in self._table)
        return f"StaticMetadataProvider([{names}])"
