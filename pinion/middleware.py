"""
Middleware pipeline around top-level resolution.

A middleware takes the next link and returns a wrapped link::

    def audit(next):
        async def wrapped(request):
            started = time.perf_counter()
            try:
                return await next(request)
            finally:
                log(request.identifier, time.perf_counter() - started)
        return wrapped

Links receive a ``ResolutionRequest`` and return the instance, either
directly or as an awaitable. A middleware that never calls ``next``
short-circuits resolution and its return value becomes the result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING, Union
import threading

from .providers import maybe_await
from .qualifiers import Qualifiers, identifier_name

if TYPE_CHECKING:
    from .core import ResolutionContext

Next = Callable[["ResolutionRequest"], Union[Any, Awaitable[Any]]]
Middleware = Callable[[Next], Next]


@dataclass
class ResolutionRequest:
    """
    Arguments of one top-level get/get_all call, as seen by middleware.

    Attributes:
        identifier: Requested service contract
        qualifiers: Caller-supplied name/tags
        multiple: True for get_all
        context: Resolution context the request will run in
        data: Custom data available to binding conditions
    """

    identifier: Any
    qualifiers: Qualifiers = Qualifiers.NONE
    multiple: bool = False
    context: Optional["ResolutionContext"] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        kind = "get_all" if self.multiple else "get"
        return f"{kind}({identifier_name(self.identifier)}, {self.qualifiers})"


@dataclass
class MiddlewareDescriptor:
    """Descriptor for middleware registration."""
    middleware: Middleware
    name: str


class MiddlewarePipeline:
    """
    Ordered middleware chain. The first applied middleware is outermost.

    The composed chain is cached and rebuilt only after the middleware list
    changes.
    """

    __slots__ = ("_middlewares", "_lock", "_chain", "_terminal")

    def __init__(self, terminal: Next):
        self._middlewares: List[MiddlewareDescriptor] = []
        self._lock = threading.Lock()
        self._terminal = terminal
        self._chain: Optional[Next] = None

    def __len__(self) -> int:
        return len(self._middlewares)

    def add(self, middleware: Middleware, name: Optional[str] = None) -> None:
        if not callable(middleware):
            raise TypeError(f"Middleware must be callable, got {middleware!r}")
        if name is None:
            name = getattr(middleware, "__name__", type(middleware).__name__)
        with self._lock:
            self._middlewares.append(MiddlewareDescriptor(middleware=middleware, name=name))
            self._chain = None

    def remove(self, middleware: Middleware) -> None:
        with self._lock:
            self._middlewares = [d for d in self._middlewares if d.middleware is not middleware]
            self._chain = None

    def names(self) -> List[str]:
        return [d.name for d in self._middlewares]

    def build_handler(self) -> Next:
        """Compose the chain wrapping the terminal resolver."""
        with self._lock:
            if self._chain is not None:
                return self._chain

            handler = self._as_async(self._terminal)

            # Wrap in reverse order so first middleware is outermost
            for desc in reversed(self._middlewares):
                handler = self._as_async(desc.middleware(handler))

            self._chain = handler
            return handler

    async def __call__(self, request: ResolutionRequest) -> Any:
        return await self.build_handler()(request)

    @staticmethod
    def _as_async(link: Next) -> Next:
        async def wrapped(request: ResolutionRequest) -> Any:
            return await maybe_await(link(request))

        return wrapped
