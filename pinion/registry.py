"""
Binding registry - identifier -> ordered candidate bindings.
"""

from typing import Any, Dict, Tuple
import threading

from .bindings import Binding
from .errors import InvalidBinding, UnknownIdentifier


class BindingRegistry:
    """
    Stores candidate bindings per identifier in registration order.

    Mutations are serialized with a lock and replace the per-identifier
    tuple wholesale, so a reader always sees either the old or the new
    candidate list, never a half-updated one.
    """

    __slots__ = ("_bindings", "_lock")

    def __init__(self):
        self._bindings: Dict[Any, Tuple[Binding, ...]] = {}
        self._lock = threading.RLock()

    def register(self, identifier: Any, binding: Binding) -> None:
        """Append a candidate binding for identifier."""
        self._check(identifier, binding)
        with self._lock:
            self._bindings[identifier] = self._bindings.get(identifier, ()) + (binding,)

    def rebind(self, identifier: Any, binding: Binding) -> Tuple[Binding, ...]:
        """Replace every candidate for identifier; returns the removed bindings."""
        self._check(identifier, binding)
        with self._lock:
            removed = self._bindings.get(identifier, ())
            self._bindings[identifier] = (binding,)
        return removed

    def unbind(self, identifier: Any) -> Tuple[Binding, ...]:
        """Remove every candidate for identifier; returns the removed bindings."""
        with self._lock:
            removed = self._bindings.pop(identifier, None)
        if not removed:
            raise UnknownIdentifier(identifier)
        return removed

    def register_if_absent(self, identifier: Any, binding: Binding) -> bool:
        """Register binding only when identifier has no candidates yet."""
        self._check(identifier, binding)
        with self._lock:
            if self._bindings.get(identifier):
                return False
            self._bindings[identifier] = (binding,)
        return True

    def lookup(self, identifier: Any) -> Tuple[Binding, ...]:
        """Candidates in registration order."""
        candidates = self._bindings.get(identifier)
        if not candidates:
            raise UnknownIdentifier(identifier)
        return candidates

    def is_bound(self, identifier: Any) -> bool:
        return bool(self._bindings.get(identifier))

    def snapshot(self) -> Dict[Any, Tuple[Binding, ...]]:
        with self._lock:
            return dict(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, identifier: Any) -> bool:
        return self.is_bound(identifier)

    @staticmethod
    def _check(identifier: Any, binding: Binding) -> None:
        if not isinstance(binding, Binding):
            raise InvalidBinding(f"Expected a Binding, got {type(binding).__name__}")
        if binding.identifier != identifier:
            raise InvalidBinding(
                f"Binding was declared for {binding.identifier!r} but registered under {identifier!r}"
            )
