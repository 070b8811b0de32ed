"""
Resolver - builds object graphs from the registry.

Per resolution step: registry lookup -> contextual matcher -> cycle guard
-> scope cache -> dependencies (recursively, in declared order) ->
construction callback -> activation handlers -> scope cache store.
"""

from typing import TYPE_CHECKING, Any, Callable, List, Tuple
import logging

from .bindings import Binding
from .constraints import Request, select, select_all
from .diagnostics import DIEventType
from .errors import CircularDependency, ConstructionFailed, DIError, UnknownIdentifier
from .guard import LazyRef
from .providers import maybe_await
from .qualifiers import Dependency, as_dependency, identifier_name
from .scopes import ServiceScope

if TYPE_CHECKING:
    from .core import Container, ResolutionContext
    from .middleware import ResolutionRequest

logger = logging.getLogger("pinion.resolver")


class Resolver:
    """
    Resolution engine. Holds the container's shared state (registry,
    singleton cache) and the external collaborators (metadata provider,
    construction callback).
    """

    __slots__ = ("container", "registry", "singletons", "metadata", "construct_callback", "config", "diagnostics")

    def __init__(
        self,
        container: "Container",
        registry,
        singletons,
        metadata,
        construct_callback: Callable[..., Any],
        config,
        diagnostics,
    ):
        self.container = container
        self.registry = registry
        self.singletons = singletons
        self.metadata = metadata
        self.construct_callback = construct_callback
        self.config = config
        self.diagnostics = diagnostics

    # ── Entry point (innermost middleware link) ──────────────────────

    async def resolve_root(self, request: "ResolutionRequest") -> Any:
        ctx = request.context
        root = Request(request.identifier, request.qualifiers, data=request.data)

        if request.multiple:
            result = await self.resolve_all(ctx, root)
        else:
            result = await self.resolve(ctx, root)

        await self._settle_lazy_refs(ctx)
        return result

    # ── Resolution ───────────────────────────────────────────────────

    async def resolve(self, ctx: "ResolutionContext", request: Request) -> Any:
        found, value = ctx.ambient(request.identifier, request.qualifiers)
        if found:
            return value

        candidates = self.candidates(ctx, request.identifier)
        binding = select(request.identifier, candidates, request, ctx.guard.path())
        return await self.resolve_binding(ctx, request, binding)

    async def resolve_all(self, ctx: "ResolutionContext", request: Request) -> List[Any]:
        found, value = ctx.ambient(request.identifier, request.qualifiers)
        if found:
            return [value]

        candidates = self.candidates(ctx, request.identifier)
        bindings = select_all(request.identifier, candidates, request, ctx.guard.path())

        results = []
        for binding in bindings:
            sibling = Request(request.identifier, request.qualifiers, parent=request.parent, data=request.data)
            results.append(await self.resolve_binding(ctx, sibling, binding))
        return results

    async def resolve_binding(self, ctx: "ResolutionContext", request: Request, binding: Binding) -> Any:
        request.binding = binding

        # Constants have no dependencies and nothing to cache
        if binding.kind == "constant":
            return binding.provider.value

        with ctx.guard.frame(request.identifier, binding):
            key = (binding.id, request.qualifiers)

            if binding.scope is ServiceScope.SINGLETON:
                return await self.singletons.get_or_create(
                    key,
                    lambda: self._instantiate(ctx, request, binding),
                    ctx,
                    label=identifier_name(request.identifier),
                )

            if binding.scope is ServiceScope.REQUEST:
                return await ctx.cache.get_or_create(
                    key,
                    lambda: self._instantiate(ctx, request, binding),
                )

            return await self._instantiate(ctx, request, binding)

    async def resolve_dependency(
        self,
        ctx: "ResolutionContext",
        parent: Request,
        consumer: Binding,
        dependency: Dependency,
    ) -> Any:
        """Resolve one dependency slot of consumer."""
        child = parent.child(dependency.identifier, dependency.qualifiers)

        if dependency.optional and not self._is_resolvable(ctx, child):
            return [] if dependency.multiple else None

        if dependency.multiple:
            return await self.resolve_all(ctx, child)

        try:
            return await self.resolve(ctx, child)
        except CircularDependency as exc:
            lazy_edge = dependency.lazy or consumer.allow_lazy
            if not (
                lazy_edge
                and self.config.allow_lazy_cycles
                and exc.singleton_only
                and consumer.id in exc.binding_ids
            ):
                raise
            return self._lazy_ref(ctx, child)

    def candidates(self, ctx: "ResolutionContext", identifier: Any) -> Tuple[Binding, ...]:
        try:
            return self.registry.lookup(identifier)
        except UnknownIdentifier:
            if self._auto_bind(identifier):
                return self.registry.lookup(identifier)
            raise UnknownIdentifier(identifier, ctx.guard.path()) from None

    # ── Collaborators ────────────────────────────────────────────────

    def dependencies_of(self, service_type: Any) -> List[Dependency]:
        return [as_dependency(d) for d in self.metadata.dependencies_of(service_type)]

    async def construct(
        self,
        service_type: Any,
        dependencies: List[Any],
        ctx: "ResolutionContext",
        request: Request,
    ) -> Any:
        return await self.invoke(request, ctx, self.construct_callback, service_type, dependencies)

    async def invoke(self, request: Request, ctx: "ResolutionContext", callback: Callable[..., Any], *args) -> Any:
        """Call a user callback; failures become ConstructionFailed."""
        try:
            return await maybe_await(callback(*args))
        except DIError:
            raise
        except Exception as exc:
            raise ConstructionFailed(request.identifier, ctx.guard.path(), exc) from exc

    # ── Internals ────────────────────────────────────────────────────

    async def _instantiate(self, ctx: "ResolutionContext", request: Request, binding: Binding) -> Any:
        instance = await binding.provider.provide(self, ctx, request, binding)

        for handler in binding.on_activation:
            instance = await self.invoke(request, ctx, handler, request, instance)

        if self.diagnostics.enabled:
            self.diagnostics.emit(
                DIEventType.INSTANTIATION,
                identifier=identifier_name(request.identifier),
                qualifiers=str(request.qualifiers),
                binding=binding.describe(),
            )
        return instance

    def _lazy_ref(self, ctx: "ResolutionContext", request: Request) -> LazyRef:
        candidates = self.candidates(ctx, request.identifier)
        binding = select(request.identifier, candidates, request, ctx.guard.path())
        ref = LazyRef(self.container, request.identifier, request.qualifiers, (binding.id, request.qualifiers))
        ctx.lazy_refs.append((ref, request))
        logger.debug(
            "Injecting lazy handle for %s to close singleton cycle at %s",
            identifier_name(request.identifier), " -> ".join(ctx.guard.path()),
        )
        return ref

    async def _settle_lazy_refs(self, ctx: "ResolutionContext") -> None:
        """Make sure every lazy handle handed out in this tree has a target."""
        while ctx.lazy_refs:
            ref, request = ctx.lazy_refs.pop(0)
            if ref.resolved:
                continue
            instance = await self.resolve(ctx, request)
            key = (request.binding.id, request.qualifiers) if request.binding is not None else None
            ref._bind(key, instance)

    def _is_resolvable(self, ctx: "ResolutionContext", request: Request) -> bool:
        found, _ = ctx.ambient(request.identifier, request.qualifiers)
        return found or self.registry.is_bound(request.identifier) or self._auto_bind(request.identifier)

    def _auto_bind(self, identifier: Any) -> bool:
        if not self.config.auto_bind or not isinstance(identifier, type):
            return False

        declares = getattr(self.metadata, "declares", None)
        if declares is not None and not declares(identifier):
            return False

        binding = Binding.to_class(identifier, scope=self.config.default_scope)
        if self.registry.register_if_absent(identifier, binding):
            logger.debug("Auto-bound %s (%s)", identifier_name(identifier), binding.scope.value)
        return True
