"""
Provider implementations for the four binding kinds.

A provider knows how to produce the value of one binding; caching,
matching and cycle handling are the resolver's job.
"""

from typing import TYPE_CHECKING, Any, Callable, Optional, Type
import inspect

if TYPE_CHECKING:
    from .bindings import Binding
    from .constraints import Request
    from .core import Container, ResolutionContext
    from .resolver import Resolver


async def maybe_await(value: Any) -> Any:
    """Await value when a sync-or-async callback returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


class ClassProvider:
    """
    Builds a service type: dependencies come from the metadata provider and
    the instance from the construction callback.
    """

    kind = "class"
    __slots__ = ("service_type",)

    def __init__(self, service_type: Type):
        self.service_type = service_type

    def describe(self) -> str:
        return f"class {getattr(self.service_type, '__qualname__', self.service_type)!s}"

    async def provide(
        self,
        resolver: "Resolver",
        ctx: "ResolutionContext",
        request: "Request",
        binding: "Binding",
    ) -> Any:
        dependencies = resolver.dependencies_of(self.service_type)

        resolved = []
        for dependency in dependencies:
            resolved.append(
                await resolver.resolve_dependency(ctx, request, binding, dependency)
            )

        return await resolver.construct(self.service_type, resolved, ctx, request)


class ConstantProvider:
    """Returns a pre-bound value."""

    kind = "constant"
    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value

    def describe(self) -> str:
        return f"constant {type(self.value).__name__}"

    async def provide(self, resolver, ctx, request, binding) -> Any:
        return self.value


class DynamicProvider:
    """Invokes a zero-argument (sync or async) callback per resolution."""

    kind = "dynamic"
    __slots__ = ("callback",)

    def __init__(self, callback: Callable[[], Any]):
        if not callable(callback):
            raise TypeError(f"Dynamic value callback must be callable, got {callback!r}")
        self.callback = callback

    def describe(self) -> str:
        return f"dynamic {getattr(self.callback, '__qualname__', self.callback)!s}"

    async def provide(self, resolver, ctx, request, binding) -> Any:
        return await resolver.invoke(request, ctx, self.callback)


class FactoryProvider:
    """
    Hands the consumer a callable produced by ``callback(FactoryContext)``.

    The container never invokes the returned callable; consumers call it
    later and resolve further services through the FactoryContext.
    """

    kind = "factory"
    __slots__ = ("callback",)

    def __init__(self, callback: Callable[["FactoryContext"], Callable[..., Any]]):
        if not callable(callback):
            raise TypeError(f"Factory callback must be callable, got {callback!r}")
        self.callback = callback

    def describe(self) -> str:
        return f"factory {getattr(self.callback, '__qualname__', self.callback)!s}"

    async def provide(self, resolver, ctx, request, binding) -> Any:
        factory_ctx = FactoryContext(resolver.container, request.identifier, ctx.data)
        return await resolver.invoke(request, ctx, self.callback, factory_ctx)


class FactoryContext:
    """
    Resolution handle injected into factory callbacks.

    Every call here is a new top-level resolution (it runs the middleware
    chain and gets a fresh request scope), since the factory is usually
    invoked long after the resolution that produced it has finished.
    """

    __slots__ = ("container", "identifier", "data")

    def __init__(self, container: "Container", identifier: Any, data: Optional[dict] = None):
        self.container = container
        self.identifier = identifier
        self.data = dict(data or {})

    def get(self, identifier: Any, qualifiers: Any = None) -> Any:
        return self.container.get(identifier, qualifiers, data=self.data)

    async def get_async(self, identifier: Any, qualifiers: Any = None) -> Any:
        return await self.container.get_async(identifier, qualifiers, data=self.data)

    def get_all(self, identifier: Any, qualifiers: Any = None) -> list:
        return self.container.get_all(identifier, qualifiers, data=self.data)

    async def get_all_async(self, identifier: Any, qualifiers: Any = None) -> list:
        return await self.container.get_all_async(identifier, qualifiers, data=self.data)
