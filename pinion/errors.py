"""
Resolution error types with rich diagnostics.

Every error keeps its structured fields as attributes so callers (and
middleware) can inspect them without parsing the message.
"""

from typing import Any, List, Optional, Sequence


def _format_path(path: Sequence[str]) -> str:
    return " -> ".join(path)


class DIError(Exception):
    """Base exception for container errors."""
    pass


class InvalidBinding(DIError):
    """Binding declaration is malformed."""
    pass


class ContainerClosed(DIError):
    """Container was used after teardown."""

    def __init__(self, operation: str = "resolve"):
        self.operation = operation
        super().__init__(f"Cannot {operation}: container has been closed")


class UnknownIdentifier(DIError):
    """No binding registered for the identifier."""

    def __init__(
        self,
        identifier: Any,
        path: Optional[List[str]] = None,
    ):
        from .qualifiers import identifier_name

        self.identifier = identifier
        self.path = list(path or [])

        name = identifier_name(identifier)
        msg = f"No binding registered for identifier={name}"
        if self.path:
            msg += f"\nResolution path: {_format_path(self.path + [name])}"
        msg += "\n\nSuggested fixes:"
        msg += f"\n  - Register a binding for {name}"
        msg += "\n  - Mark the dependency slot optional if it may be absent"

        super().__init__(msg)


class NoMatchingBinding(DIError):
    """Bindings exist for the identifier but none matches the request."""

    def __init__(
        self,
        identifier: Any,
        qualifiers: Any = None,
        candidates: Sequence[Any] = (),
        path: Optional[List[str]] = None,
    ):
        from .qualifiers import identifier_name

        self.identifier = identifier
        self.qualifiers = qualifiers
        self.candidates = list(candidates)
        self.path = list(path or [])

        name = identifier_name(identifier)
        msg = f"No matching binding for identifier={name}"
        if qualifiers:
            msg += f" ({qualifiers})"
        if self.path:
            msg += f"\nResolution path: {_format_path(self.path + [name])}"
        if self.candidates:
            msg += "\n\nRegistered bindings:"
            for binding in self.candidates:
                msg += f"\n  - {binding.describe()}"
        msg += "\n\nSuggested fixes:"
        msg += "\n  - Check the requested name/tags against the binding constraints"
        msg += "\n  - Register an unconstrained default binding"

        super().__init__(msg)


class AmbiguousBinding(DIError):
    """More than one binding matches the request."""

    def __init__(
        self,
        identifier: Any,
        bindings: Sequence[Any],
        path: Optional[List[str]] = None,
    ):
        from .qualifiers import identifier_name

        self.identifier = identifier
        self.bindings = list(bindings)
        self.path = list(path or [])

        name = identifier_name(identifier)
        msg = f"Ambiguous binding for identifier={name}. Multiple bindings match:"
        for binding in self.bindings:
            msg += f"\n  - {binding.describe()}"
        if self.path:
            msg += f"\nResolution path: {_format_path(self.path + [name])}"

        msg += "\n\nSuggested fixes:"
        msg += "\n  - Request the dependency with a name or tag"
        msg += "\n  - Add a constraint to all but one binding"
        msg += "\n  - Use get_all() to receive every matching instance"

        super().__init__(msg)


class CircularDependency(DIError):
    """Circular dependency detected on the active resolution path."""

    def __init__(
        self,
        cycle: List[str],
        singleton_only: bool = False,
        binding_ids: Sequence[int] = (),
    ):
        self.cycle = list(cycle)
        self.singleton_only = singleton_only
        self.binding_ids = frozenset(binding_ids)

        msg = "Detected dependency cycle:"
        for i, token in enumerate(self.cycle):
            arrow = " ->" if i < len(self.cycle) - 1 else ""
            msg += f"\n  {token}{arrow}"

        msg += "\n\nSuggested fixes:"
        if singleton_only:
            msg += "\n  - Mark one edge of the cycle lazy (Dependency(lazy=True) or allow_lazy=True)"
        else:
            msg += "\n  - Lazy handles are only available when every binding on the cycle is singleton"
        msg += "\n  - Extract an interface to decouple the services"
        msg += "\n  - Restructure dependencies to remove the cycle"

        super().__init__(msg)


class ConstructionFailed(DIError):
    """A construction, dynamic or factory callback raised."""

    def __init__(
        self,
        identifier: Any,
        path: List[str],
        cause: BaseException,
    ):
        from .qualifiers import identifier_name

        self.identifier = identifier
        self.path = list(path)
        self.cause = cause

        msg = (
            f"Failed to construct {identifier_name(identifier)}: "
            f"{type(cause).__name__}: {cause}"
        )
        if self.path:
            msg += f"\nResolution path: {_format_path(self.path)}"

        super().__init__(msg)


class LazyDependencyNotReady(DIError):
    """A lazy handle was dereferenced before its target finished construction."""

    def __init__(self, identifier: Any):
        from .qualifiers import identifier_name

        self.identifier = identifier
        super().__init__(
            f"Lazy dependency {identifier_name(identifier)} is still under construction. "
            f"Dereference lazy handles after the object graph has been built, "
            f"not inside constructors."
        )
