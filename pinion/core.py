"""
Core container types.

``Container`` is the public entry point: binding declarations, middleware,
top-level resolution and teardown. ``ResolutionContext`` is the ephemeral
state of one top-level resolution.
"""

from typing import (
    Any,
    Callable,
    Coroutine,
    Dict,
    Hashable,
    List,
    Mapping,
    Optional,
    Set,
    TYPE_CHECKING,
    Tuple,
    TypeVar,
    Union,
)
from concurrent.futures import ThreadPoolExecutor
from contextvars import ContextVar, copy_context
import asyncio
import logging

from .bindings import Binding
from .config import ContainerConfig
from .constraints import Constraint, named as named_constraint, tagged as tagged_constraint, when as when_constraint
from .diagnostics import DIDiagnostics, DIEventType, LoggingDiagnosticListener
from .errors import ContainerClosed, DIError, InvalidBinding
from .guard import CycleGuard
from .lifecycle import Lifecycle
from .metadata import StaticMetadataProvider, default_construct
from .middleware import Middleware, MiddlewarePipeline, ResolutionRequest
from .qualifiers import Qualifiers, as_qualifiers, identifier_name
from .registry import BindingRegistry
from .resolver import Resolver
from .scopes import RequestCache, ServiceScope, SingletonCache

if TYPE_CHECKING:
    from .graph import DependencyGraph

logger = logging.getLogger("pinion.container")

# Context of the resolution running in the current task, if any
_current_context: ContextVar[Optional["ResolutionContext"]] = ContextVar("pinion_resolution_context", default=None)

T = TypeVar("T")


class ResolutionContext:
    """
    State of one top-level resolution: request cache, in-progress path,
    custom data and ambient values.

    A context is torn down when its top-level call returns or fails. To let
    the request scope span several calls, create one with
    ``Container.request_scope()`` and pass it as ``context=``; it is torn
    down when its ``with`` block exits. A shared context must not be used by
    concurrent calls.
    """

    __slots__ = ("container", "parent", "cache", "guard", "data", "waiting_on", "lazy_refs", "_ambient", "_closed")

    def __init__(
        self,
        container: "Container",
        data: Optional[Mapping[str, Any]] = None,
        parent: Optional["ResolutionContext"] = None,
    ):
        self.container = container
        self.parent = parent  # context whose construction started this one
        self.cache = RequestCache()
        self.guard = CycleGuard()
        self.data: Dict[str, Any] = dict(data or {})
        self.waiting_on = None  # singleton reservation this context is blocked on
        self.lazy_refs: List[Tuple[Any, Any]] = []
        self._ambient: Dict[Tuple[Hashable, Qualifiers], Any] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def provide(self, identifier: Any, instance: Any, qualifiers: Any = None) -> None:
        """
        Seed an ambient value: resolutions of identifier (with the same
        qualifiers) inside this context receive instance.
        """
        self._ambient[(identifier, as_qualifiers(qualifiers))] = instance

    def ambient(self, identifier: Any, qualifiers: Qualifiers) -> Tuple[bool, Any]:
        if not self._ambient:
            return False, None
        key = (identifier, qualifiers)
        if key in self._ambient:
            return True, self._ambient[key]
        return False, None

    def path(self) -> List[str]:
        return self.guard.path()

    def close(self) -> None:
        """Release the request cache and the in-progress path."""
        self.cache.clear()
        self.guard.reset()
        self.lazy_refs.clear()
        self._ambient.clear()
        self.waiting_on = None
        self._closed = True

    def __enter__(self) -> "ResolutionContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    async def __aenter__(self) -> "ResolutionContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"ResolutionContext(path={self.path()}, cached={len(self.cache)})"


class Container:
    """
    DI container - bindings, middleware, resolution and teardown.

    Example:
        metadata = StaticMetadataProvider()
        metadata.declare(UserService, UserRepo)

        container = Container(metadata)
        container.bind(UserRepo, SqlUserRepo, scope="singleton")
        container.bind(UserService)

        service = container.get(UserService)
    """

    def __init__(
        self,
        metadata: Optional[Any] = None,
        construct: Optional[Callable[..., Any]] = None,
        *,
        config: Optional[ContainerConfig] = None,
        diagnostics: Optional[DIDiagnostics] = None,
    ):
        self.config = config or ContainerConfig()
        self._registry = BindingRegistry()
        self._singletons = SingletonCache()
        self._diagnostics = diagnostics or DIDiagnostics()
        self._lifecycle = Lifecycle(self.config.disposal_strategy)
        self._closed = False
        self._pending_disposals: Set[asyncio.Task] = set()

        if self.config.trace:
            self._diagnostics.add_listener(LoggingDiagnosticListener())

        self._resolver = Resolver(
            self,
            self._registry,
            self._singletons,
            metadata if metadata is not None else StaticMetadataProvider(),
            construct or default_construct,
            self.config,
            self._diagnostics,
        )
        self._pipeline = MiddlewarePipeline(self._resolver.resolve_root)

    @property
    def metadata(self) -> Any:
        return self._resolver.metadata

    @property
    def diagnostics(self) -> DIDiagnostics:
        return self._diagnostics

    @property
    def registry(self) -> BindingRegistry:
        return self._registry

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Registration ─────────────────────────────────────────────────

    def register(self, identifier: Any, binding: Binding) -> Binding:
        """Append a candidate binding for identifier."""
        self._check_open("register")
        self._registry.register(identifier, binding)
        self._diagnostics.emit(
            DIEventType.REGISTRATION,
            identifier=identifier_name(identifier),
            binding=binding.describe(),
        )
        return binding

    def rebind(self, identifier: Any, binding: Binding) -> Binding:
        """
        Replace every binding of identifier with binding.

        Singleton instances built from the replaced bindings are released,
        so the next resolution constructs from the new binding.
        """
        self._check_open("rebind")
        removed = self._registry.rebind(identifier, binding)
        self._release(identifier, removed)
        self._diagnostics.emit(
            DIEventType.REGISTRATION,
            identifier=identifier_name(identifier),
            binding=binding.describe(),
            metadata={"rebind": True},
        )
        return binding

    def unbind(self, identifier: Any) -> None:
        """Remove every binding of identifier (UnknownIdentifier if none)."""
        self._check_open("unbind")
        removed = self._registry.unbind(identifier)
        self._release(identifier, removed)
        self._diagnostics.emit(DIEventType.UNBIND, identifier=identifier_name(identifier))

    def is_bound(self, identifier: Any) -> bool:
        return self._registry.is_bound(identifier)

    def bind(
        self,
        identifier: Any,
        service_type: Optional[type] = None,
        *,
        scope: Union[ServiceScope, str, None] = None,
        named: Optional[str] = None,
        tagged: Optional[Mapping[str, Any]] = None,
        when: Union[Constraint, Callable[..., bool], None] = None,
        allow_lazy: bool = False,
        on_activation: Optional[Callable[..., Any]] = None,
        on_deactivation: Optional[Callable[..., Any]] = None,
    ) -> Binding:
        """
        Bind identifier to a class built through the metadata provider.

        Example:
            container.bind(UserRepository, SqlUserRepository, scope="singleton")
            container.bind("Weapon", Katana, tagged={"type": "melee"})
        """
        return self.register(identifier, Binding.to_class(
            identifier,
            service_type,
            **self._options(scope, named, tagged, when, allow_lazy, on_activation, on_deactivation),
        ))

    def bind_constant(
        self,
        identifier: Any,
        value: Any,
        *,
        named: Optional[str] = None,
        tagged: Optional[Mapping[str, Any]] = None,
        when: Union[Constraint, Callable[..., bool], None] = None,
    ) -> Binding:
        """Bind identifier to a fixed value."""
        return self.register(identifier, Binding.to_constant(
            identifier,
            value,
            constraint=self._constraint(named, tagged, when),
        ))

    def bind_dynamic(
        self,
        identifier: Any,
        callback: Callable[[], Any],
        *,
        scope: Union[ServiceScope, str, None] = None,
        named: Optional[str] = None,
        tagged: Optional[Mapping[str, Any]] = None,
        when: Union[Constraint, Callable[..., bool], None] = None,
        on_activation: Optional[Callable[..., Any]] = None,
        on_deactivation: Optional[Callable[..., Any]] = None,
    ) -> Binding:
        """Bind identifier to a zero-argument callback invoked per resolution."""
        return self.register(identifier, Binding.to_dynamic(
            identifier,
            callback,
            **self._options(scope, named, tagged, when, False, on_activation, on_deactivation),
        ))

    def bind_factory(
        self,
        identifier: Any,
        callback: Callable[..., Callable[..., Any]],
        *,
        scope: Union[ServiceScope, str, None] = None,
        named: Optional[str] = None,
        tagged: Optional[Mapping[str, Any]] = None,
        when: Union[Constraint, Callable[..., bool], None] = None,
    ) -> Binding:
        """
        Bind identifier to a factory: callback(FactoryContext) returns the
        callable handed to consumers.
        """
        return self.register(identifier, Binding.to_factory(
            identifier,
            callback,
            **self._options(scope, named, tagged, when, False, None, None),
        ))

    def _options(self, scope, named, tagged, when, allow_lazy, on_activation, on_deactivation) -> Dict[str, Any]:
        return {
            "scope": ServiceScope.parse(scope) if scope is not None else self.config.default_scope,
            "constraint": self._constraint(named, tagged, when),
            "allow_lazy": allow_lazy,
            "on_activation": (on_activation,) if on_activation else (),
            "on_deactivation": (on_deactivation,) if on_deactivation else (),
        }

    @staticmethod
    def _constraint(named, tagged, when) -> Optional[Constraint]:
        if named is not None and tagged:
            raise InvalidBinding("A binding accepts either named= or tagged=, not both")

        parts = []
        if named is not None:
            parts.append(named_constraint(named))
        for key, value in (tagged or {}).items():
            parts.append(tagged_constraint(key, value))
        if when is not None:
            parts.append(when if isinstance(when, Constraint) else when_constraint(when))

        if not parts:
            return None
        constraint = parts[0]
        for part in parts[1:]:
            constraint = constraint & part
        return constraint

    # ── Middleware ───────────────────────────────────────────────────

    def apply_middleware(self, *middlewares: Middleware) -> None:
        """Append middleware; the first applied is outermost."""
        for middleware in middlewares:
            self._pipeline.add(middleware)

    def remove_middleware(self, middleware: Middleware) -> None:
        self._pipeline.remove(middleware)

    # ── Resolution ───────────────────────────────────────────────────

    async def get_async(
        self,
        identifier: Any,
        qualifiers: Any = None,
        *,
        context: Optional[ResolutionContext] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Resolve identifier (primary resolution path).

        Args:
            identifier: Type or string key
            qualifiers: Qualifiers, a name string or a tag mapping
            context: Shared context from request_scope(); a fresh one otherwise
            data: Custom data visible to binding conditions

        Raises:
            UnknownIdentifier, NoMatchingBinding, AmbiguousBinding,
            CircularDependency, ConstructionFailed
        """
        return await self._top_level(identifier, qualifiers, False, context, data)

    resolve_async = get_async

    async def get_all_async(
        self,
        identifier: Any,
        qualifiers: Any = None,
        *,
        context: Optional[ResolutionContext] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> List[Any]:
        """Resolve every matching binding of identifier, in registration order."""
        return await self._top_level(identifier, qualifiers, True, context, data)

    def get(
        self,
        identifier: Any,
        qualifiers: Any = None,
        *,
        context: Optional[ResolutionContext] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Synchronous get_async().

        Not usable from a running event loop, except from code that runs while
        the container is building an instance (a constructor calling an
        injected factory, a dynamic callback).
        """
        return _run_sync(self.get_async(identifier, qualifiers, context=context, data=data), "get")

    resolve = get

    def get_all(
        self,
        identifier: Any,
        qualifiers: Any = None,
        *,
        context: Optional[ResolutionContext] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> List[Any]:
        """Synchronous get_all_async()."""
        return _run_sync(self.get_all_async(identifier, qualifiers, context=context, data=data), "get_all")

    def request_scope(self, data: Optional[Mapping[str, Any]] = None) -> ResolutionContext:
        """
        Create a context whose request scope spans several get calls.

        Example:
            with container.request_scope() as scope:
                a = container.get(UnitOfWork, context=scope)
                b = container.get(UnitOfWork, context=scope)
                assert a is b
        """
        self._check_open("resolve")
        return ResolutionContext(self, data=data)

    async def _top_level(
        self,
        identifier: Any,
        qualifiers: Any,
        multiple: bool,
        context: Optional[ResolutionContext],
        data: Optional[Mapping[str, Any]],
    ) -> Any:
        self._check_open("resolve")
        qualifiers = as_qualifiers(qualifiers)

        owned = context is None
        if owned:
            ctx = ResolutionContext(self, data=data, parent=_current_context.get())
        else:
            ctx = context
            if ctx.closed:
                raise DIError("Resolution context has already been closed")
            if len(ctx.guard):
                raise DIError("Resolution context is already in use by another resolution")
            if data:
                ctx.data.update(data)

        request = ResolutionRequest(
            identifier=identifier,
            qualifiers=qualifiers,
            multiple=multiple,
            context=ctx,
            data=ctx.data,
        )

        token = _current_context.set(ctx)
        try:
            with self._diagnostics.measure(
                identifier=identifier_name(identifier),
                qualifiers=str(qualifiers),
            ):
                return await self._pipeline(request)
        finally:
            _current_context.reset(token)
            if owned:
                ctx.close()
            else:
                ctx.guard.reset()
                ctx.lazy_refs.clear()
                ctx.waiting_on = None

    # ── Teardown ─────────────────────────────────────────────────────

    def on_shutdown(self, callback: Callable[[], Any], *, name: str = "shutdown_hook", priority: int = 0) -> None:
        """Register a hook run by close()/aclose()."""
        self._lifecycle.on_shutdown(callback, name=name, priority=priority)

    async def aclose(self) -> None:
        """
        Tear down: run deactivation handlers for cached singletons (most
        recently constructed first), release them, then run shutdown hooks.
        Failures are logged; teardown always completes.
        """
        if self._closed:
            return
        self._closed = True

        if self._pending_disposals:
            await asyncio.gather(*self._pending_disposals, return_exceptions=True)

        bindings = {
            b.id: b
            for candidates in self._registry.snapshot().values()
            for b in candidates
        }
        released = self._singletons.clear()
        pairs = [(bindings[key[0]], instance) for key, instance in released if key[0] in bindings]

        errors = await self._lifecycle.dispose(pairs)
        errors += await self._lifecycle.run_shutdown_hooks()
        self._lifecycle.clear()

        if errors:
            logger.warning("Container teardown finished with %d error(s)", len(errors))

        self._diagnostics.emit(DIEventType.SHUTDOWN, metadata={"released": len(released)})

    def close(self) -> None:
        """Synchronous aclose()."""
        _run_sync(self.aclose(), "close")

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    async def __aenter__(self) -> "Container":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    def graph(self) -> "DependencyGraph":
        """Static dependency graph of the current bindings."""
        from .graph import DependencyGraph

        return DependencyGraph.from_container(self)

    # ── Internals ────────────────────────────────────────────────────

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise ContainerClosed(operation)

    def _release(self, identifier: Any, removed: Tuple[Binding, ...]) -> None:
        """Invalidate singleton entries of removed bindings and deactivate them."""
        if not removed:
            return

        by_id = {b.id: b for b in removed}
        released = self._singletons.invalidate(by_id)
        if not released:
            return

        self._diagnostics.emit(
            DIEventType.CACHE_INVALIDATION,
            identifier=identifier_name(identifier),
            metadata={"released": len(released)},
        )

        pairs = [(by_id[key[0]], instance) for key, instance in released]
        if not any(binding.on_deactivation for binding, _ in pairs):
            return

        coro = self._lifecycle.dispose(pairs)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coro)
            return

        task = loop.create_task(coro)
        self._pending_disposals.add(task)
        task.add_done_callback(self._pending_disposals.discard)

    def __repr__(self) -> str:
        return (
            f"Container(identifiers={len(self._registry)}, "
            f"singletons={len(self._singletons)}, middleware={len(self._pipeline)})"
        )


def _run_sync(coro: Coroutine[Any, Any, T], name: str) -> T:
    """Run coro to completion from synchronous code."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    if _current_context.get() is not None:
        # Synchronous code inside a construction. The loop thread is blocked
        # until coro finishes, so it runs on a worker thread. The copied
        # context keeps the parent link for singleton deadlock detection.
        snapshot = copy_context()
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="pinion-sync") as pool:
            return pool.submit(snapshot.run, asyncio.run, coro).result()

    coro.close()
    raise RuntimeError(
        f"{name}() called from a running event loop; use the async variant "
        f"(await {name}_async() / aclose()) instead"
    )
