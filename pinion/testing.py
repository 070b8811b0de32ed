"""
Testing utilities for containers.
"""

from typing import Any, Callable, List, Optional
from contextlib import contextmanager
import threading

from .core import Container
from .middleware import Next, ResolutionRequest
from .qualifiers import as_qualifiers


class _OverrideMiddleware:
    """Short-circuits top-level requests for one identifier."""

    def __init__(self, identifier: Any, value: Any, qualifiers: Any = None):
        self.identifier = identifier
        self.value = value
        self.qualifiers = as_qualifiers(qualifiers)
        self.access_count = 0

    def matches(self, request: ResolutionRequest) -> bool:
        return request.identifier == self.identifier and request.qualifiers == self.qualifiers

    def __call__(self, next: Next) -> Next:
        def wrapped(request: ResolutionRequest):
            if not self.matches(request):
                return next(request)
            self.access_count += 1
            return [self.value] if request.multiple else self.value

        return wrapped

    def reset(self) -> None:
        self.access_count = 0


@contextmanager
def override(container: Container, identifier: Any, value: Any, qualifiers: Any = None):
    """
    Temporarily answer top-level requests for identifier with value.

    Only the top-level call is intercepted; nested dependencies still
    resolve through bindings.

    Example:
        with override(container, UserRepo, FakeRepo()) as mock:
            assert isinstance(container.get(UserRepo), FakeRepo)
        assert mock.access_count == 1
    """
    mock = _OverrideMiddleware(identifier, value, qualifiers)
    container.apply_middleware(mock)
    try:
        yield mock
    finally:
        container.remove_middleware(mock)


class RecordingMiddleware:
    """
    Records every top-level request passing through it.

    Example:
        recorder = RecordingMiddleware()
        container.apply_middleware(recorder)
        container.get(UserService)
        assert recorder.identifiers == [UserService]
    """

    def __init__(self):
        self.requests: List[ResolutionRequest] = []
        self.failures: List[BaseException] = []

    def __call__(self, next: Next) -> Next:
        async def wrapped(request: ResolutionRequest):
            self.requests.append(request)
            try:
                return await next(request)
            except Exception as e:
                self.failures.append(e)
                raise

        return wrapped

    @property
    def identifiers(self) -> List[Any]:
        return [r.identifier for r in self.requests]

    def reset(self) -> None:
        self.requests.clear()
        self.failures.clear()


class CallCounter:
    """
    Wraps a callback and counts invocations (thread-safe).

    Example:
        build = CallCounter(lambda: Database())
        container.bind_dynamic(Database, build, scope="singleton")
    """

    def __init__(self, callback: Optional[Callable[..., Any]] = None):
        self.callback = callback
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, *args, **kwargs):
        with self._lock:
            self.calls += 1
        if self.callback is None:
            return None
        return self.callback(*args, **kwargs)

    def reset(self) -> None:
        with self._lock:
            self.calls = 0
