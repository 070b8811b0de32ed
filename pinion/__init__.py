"""
Pinion - runtime dependency injection container.

Async-first resolution of object graphs from explicit bindings.

Key Features:
- Scopes: singleton, transient, request
- Named, tagged and contextual bindings with strict ambiguity reporting
- Cycle detection, with lazy handles to close singleton cycles
- At-most-once singleton construction across threads and tasks
- Middleware around every top-level resolution
"""

__version__ = "0.1.0"

from .core import (
    Container,
    ResolutionContext,
)

from .bindings import Binding

from .providers import (
    ClassProvider,
    ConstantProvider,
    DynamicProvider,
    FactoryProvider,
    FactoryContext,
)

from .qualifiers import (
    Dependency,
    Qualifiers,
    identifier_name,
)

from .constraints import (
    Constraint,
    Request,
    any_ancestor_is,
    injected_into,
    named,
    no_ancestor_is,
    parent_named,
    parent_tagged,
    tagged,
    when,
)

from .scopes import ServiceScope

from .guard import LazyRef

from .metadata import (
    MetadataProvider,
    StaticMetadataProvider,
    default_construct,
)

from .middleware import (
    Middleware,
    MiddlewarePipeline,
    ResolutionRequest,
)

from .lifecycle import (
    DisposalStrategy,
    Lifecycle,
)

from .config import (
    ConfigError,
    ContainerConfig,
)

from .graph import DependencyGraph

from .diagnostics import (
    DIDiagnostics,
    DIEvent,
    DIEventType,
    LoggingDiagnosticListener,
)

from .errors import (
    AmbiguousBinding,
    CircularDependency,
    ConstructionFailed,
    ContainerClosed,
    DIError,
    InvalidBinding,
    LazyDependencyNotReady,
    NoMatchingBinding,
    UnknownIdentifier,
)

__all__ = [
    # Core types
    "Container",
    "ResolutionContext",
    "Binding",
    # Providers
    "ClassProvider",
    "ConstantProvider",
    "DynamicProvider",
    "FactoryProvider",
    "FactoryContext",
    # Identifiers
    "Dependency",
    "Qualifiers",
    "identifier_name",
    # Constraints
    "Constraint",
    "Request",
    "any_ancestor_is",
    "injected_into",
    "named",
    "no_ancestor_is",
    "parent_named",
    "parent_tagged",
    "tagged",
    "when",
    # Scopes
    "ServiceScope",
    "LazyRef",
    # Metadata
    "MetadataProvider",
    "StaticMetadataProvider",
    "default_construct",
    # Middleware
    "Middleware",
    "MiddlewarePipeline",
    "ResolutionRequest",
    # Lifecycle
    "DisposalStrategy",
    "Lifecycle",
    # Config
    "ConfigError",
    "ContainerConfig",
    # Graph
    "DependencyGraph",
    # Diagnostics
    "DIDiagnostics",
    "DIEvent",
    "DIEventType",
    "LoggingDiagnosticListener",
    # Errors
    "AmbiguousBinding",
    "CircularDependency",
    "ConstructionFailed",
    "ContainerClosed",
    "DIError",
    "InvalidBinding",
    "LazyDependencyNotReady",
    "NoMatchingBinding",
    "UnknownIdentifier",
]
