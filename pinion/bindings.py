"""
Binding declarations.

A binding maps an identifier to a provider, a scope and an optional
constraint. Bindings are immutable; rebinding replaces them.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple
import itertools

from .constraints import Constraint
from .errors import InvalidBinding
from .providers import ClassProvider, ConstantProvider, DynamicProvider, FactoryProvider
from .qualifiers import identifier_name
from .scopes import ServiceScope

_binding_ids = itertools.count(1)


@dataclass(frozen=True, eq=False)
class Binding:
    """
    Registered mapping from an identifier to a provider.

    Attributes:
        identifier: Service contract this binding satisfies
        provider: ClassProvider, ConstantProvider, DynamicProvider or FactoryProvider
        scope: Lifetime of produced instances
        constraint: Optional eligibility predicate (name, tag or condition)
        allow_lazy: Construction callback accepts lazy handles for any slot
        on_activation: Handlers called with (request, instance) after construction
        on_deactivation: Handlers called with the instance when a singleton is released
    """

    identifier: Any
    provider: Any
    scope: ServiceScope = ServiceScope.TRANSIENT
    constraint: Optional[Constraint] = None
    allow_lazy: bool = False
    on_activation: Tuple[Callable[..., Any], ...] = ()
    on_deactivation: Tuple[Callable[..., Any], ...] = ()
    id: int = field(default_factory=lambda: next(_binding_ids))

    def __post_init__(self):
        object.__setattr__(self, "scope", ServiceScope.parse(self.scope))
        if self.provider.kind == "constant" and self.scope is not ServiceScope.SINGLETON:
            object.__setattr__(self, "scope", ServiceScope.SINGLETON)
        if self.constraint is not None and not isinstance(self.constraint, Constraint):
            raise InvalidBinding(
                f"Binding constraint for {identifier_name(self.identifier)} must be a "
                f"Constraint, got {type(self.constraint).__name__}"
            )
        object.__setattr__(self, "on_activation", tuple(self.on_activation))
        object.__setattr__(self, "on_deactivation", tuple(self.on_deactivation))

    @property
    def kind(self) -> str:
        return self.provider.kind

    def describe(self) -> str:
        text = f"#{self.id} {self.provider.describe()} ({self.scope.value})"
        if self.constraint is not None:
            text += f" {self.constraint.description}"
        return text

    def __repr__(self) -> str:
        return f"Binding({identifier_name(self.identifier)}, {self.describe()})"

    # ── Declaration helpers ──────────────────────────────────────────

    @classmethod
    def to_class(cls, identifier: Any, service_type: Optional[type] = None, **options) -> "Binding":
        """Bind to a class built through the metadata provider (self-binding by default)."""
        return cls(identifier, ClassProvider(service_type or identifier), **options)

    @classmethod
    def to_constant(cls, identifier: Any, value: Any, **options) -> "Binding":
        options["scope"] = ServiceScope.SINGLETON
        return cls(identifier, ConstantProvider(value), **options)

    @classmethod
    def to_dynamic(cls, identifier: Any, callback: Callable[[], Any], **options) -> "Binding":
        return cls(identifier, DynamicProvider(callback), **options)

    @classmethod
    def to_factory(cls, identifier: Any, callback: Callable[..., Any], **options) -> "Binding":
        return cls(identifier, FactoryProvider(callback), **options)
