"""
Diagnostics - container events for observability.

Listeners receive a ``DIEvent`` for registrations, resolutions,
constructions, cache invalidations and shutdown. With no listener attached
the container skips event construction entirely.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol
import logging
import time

logger = logging.getLogger("pinion.diagnostics")


class DIEventType(Enum):
    """Kinds of container events."""

    REGISTRATION = "registration"
    UNBIND = "unbind"
    RESOLUTION_START = "resolution_start"
    RESOLUTION_SUCCESS = "resolution_success"
    RESOLUTION_FAILURE = "resolution_failure"
    INSTANTIATION = "instantiation"
    CACHE_INVALIDATION = "cache_invalidation"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class DIEvent:
    """
    One container event.

    Attributes:
        type: Event kind
        identifier: Identifier name, when the event concerns one
        qualifiers: Request qualifiers rendered as text
        binding: Binding description (``Binding.describe()``)
        duration: Seconds spent, for resolution results
        error: Exception that ended a failed resolution
        metadata: Event specific extras (``released`` counts, ``rebind`` flag)
    """

    type: DIEventType
    identifier: Optional[str] = None
    qualifiers: Optional[str] = None
    binding: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[BaseException] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class DiagnosticListener(Protocol):
    def on_event(self, event: DIEvent) -> None:
        ...


_MESSAGES: Dict[DIEventType, Callable[[DIEvent], str]] = {
    DIEventType.REGISTRATION: lambda e: f"Registered {e.binding} for {e.identifier}",
    DIEventType.UNBIND: lambda e: f"Unbound {e.identifier}",
    DIEventType.RESOLUTION_START: lambda e: f"Resolving {e.identifier} ({e.qualifiers})",
    DIEventType.RESOLUTION_SUCCESS: lambda e: f"Resolved {e.identifier} in {e.duration:.6f}s",
    DIEventType.RESOLUTION_FAILURE: lambda e: f"Failed to resolve {e.identifier}: {e.error}",
    DIEventType.INSTANTIATION: lambda e: f"Constructed {e.identifier} via {e.binding}",
    DIEventType.CACHE_INVALIDATION: lambda e: (
        f"Released {e.metadata.get('released', 0)} cached instance(s) of {e.identifier}"
    ),
    DIEventType.SHUTDOWN: lambda e: (
        f"Container shut down ({e.metadata.get('released', 0)} singleton(s) released)"
    ),
}


class LoggingDiagnosticListener:
    """
    Writes events to the ``pinion.diagnostics`` logger.

    Failures log at ERROR and shutdown at INFO; everything else uses
    ``log_level``.
    """

    def __init__(self, log_level: int = logging.DEBUG):
        self.log_level = log_level

    def on_event(self, event: DIEvent) -> None:
        if event.type is DIEventType.RESOLUTION_FAILURE:
            level = logging.ERROR
        elif event.type is DIEventType.SHUTDOWN:
            level = logging.INFO
        else:
            level = self.log_level

        if logger.isEnabledFor(level):
            logger.log(level, _MESSAGES[event.type](event))


class DIDiagnostics:
    """Fans container events out to registered listeners."""

    def __init__(self, listeners: Optional[List[DiagnosticListener]] = None):
        self._listeners: List[DiagnosticListener] = list(listeners or [])

    @property
    def enabled(self) -> bool:
        return bool(self._listeners)

    def add_listener(self, listener: DiagnosticListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: DiagnosticListener) -> None:
        self._listeners.remove(listener)

    def emit(self, event_type: DIEventType, **fields: Any) -> None:
        if not self._listeners:
            return

        event = DIEvent(type=event_type, **fields)
        for listener in tuple(self._listeners):
            try:
                listener.on_event(event)
            except Exception:
                # Listeners never break resolution
                logger.exception("Diagnostic listener %r failed", listener)

    @contextmanager
    def measure(self, **fields: Any) -> Iterator[None]:
        """
        Time a top-level resolution.

        Emits RESOLUTION_START on entry, then RESOLUTION_SUCCESS or
        RESOLUTION_FAILURE (with the error) on exit. The exception is
        re-raised unchanged.
        """
        if not self._listeners:
            yield
            return

        self.emit(DIEventType.RESOLUTION_START, **fields)
        started = time.perf_counter()
        try:
            yield
        except BaseException as e:
            self.emit(
                DIEventType.RESOLUTION_FAILURE,
                duration=time.perf_counter() - started,
                error=e,
                **fields,
            )
            raise
        self.emit(
            DIEventType.RESOLUTION_SUCCESS,
            duration=time.perf_counter() - started,
            **fields,
        )
