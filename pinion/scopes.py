"""
Scope definitions and instance caches.

Singleton instances live in a container-wide ``SingletonCache`` that is
shared by every thread and task; request instances live in a
``RequestCache`` owned by a single resolution context.
"""

from concurrent.futures import Future
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Tuple
import asyncio
import logging
import threading

from .errors import CircularDependency, InvalidBinding

logger = logging.getLogger("pinion.scopes")

# Reservation outcomes when the owner failed or was cancelled. Waiters
# retry on _FAILED and construct without caching on _UNCACHED (the binding
# was invalidated or the cache closed meanwhile).
_FAILED = object()
_UNCACHED = object()

CacheKey = Tuple[int, Hashable]


class ServiceScope(str, Enum):
    """Service lifetime scopes."""

    SINGLETON = "singleton"  # One instance per container lifetime
    TRANSIENT = "transient"  # New instance every resolve
    REQUEST = "request"      # One instance per top-level resolution

    @classmethod
    def parse(cls, value: Any) -> "ServiceScope":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidBinding(
                f"Unknown scope {value!r}; expected one of "
                f"{', '.join(s.value for s in cls)}"
            ) from None


class SingletonCache:
    """
    Container-lifetime instance cache with at-most-once construction.

    Keys are ``(binding_id, qualifiers)``. The first caller for a key takes
    a reservation and constructs; concurrent callers (other threads or other
    tasks) block on the reservation. When the owner fails, the reservation
    is dropped and each waiter retries construction itself.
    """

    __slots__ = ("_lock", "_instances", "_pending", "_owners", "_labels", "_order", "_retired", "_closed")

    def __init__(self):
        self._lock = threading.Lock()
        self._instances: Dict[CacheKey, Any] = {}
        self._pending: Dict[CacheKey, Future] = {}
        self._owners: Dict[CacheKey, Any] = {}  # {key: owning resolution context}
        self._labels: Dict[CacheKey, str] = {}
        self._order: List[CacheKey] = []  # construction order, for LIFO release
        self._retired: set = set()  # invalidated binding ids with constructions in flight
        self._closed = False

    def __len__(self) -> int:
        return len(self._instances)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._instances

    def peek(self, key: CacheKey) -> Tuple[bool, Any]:
        """Return (found, instance) without constructing."""
        with self._lock:
            if key in self._instances:
                return True, self._instances[key]
            return False, None

    def is_pending(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._pending

    async def get_or_create(
        self,
        key: CacheKey,
        factory: Callable[[], Awaitable[Any]],
        owner: Any,
        label: str = "",
    ) -> Any:
        """
        Return the cached instance for key, constructing it at most once.

        Args:
            key: (binding_id, qualifiers)
            factory: Coroutine function producing the instance
            owner: Resolution context asking for the instance
            label: Identifier name used in cycle reports
        """
        while True:
            with self._lock:
                if key in self._instances:
                    return self._instances[key]

                reservation = self._pending.get(key)
                if reservation is None:
                    reservation = Future()
                    self._pending[key] = reservation
                    self._owners[key] = owner
                    self._labels[key] = label
                    is_owner = True
                else:
                    is_owner = False
                    cycle = self._wait_cycle(key, owner)
                    if cycle:
                        raise CircularDependency(
                            cycle[0],
                            singleton_only=True,
                            binding_ids=cycle[1],
                        )
                    for node in _lineage(owner):
                        node.waiting_on = key

            if is_owner:
                return await self._construct(key, factory, reservation)

            try:
                outcome = await asyncio.shield(asyncio.wrap_future(reservation))
            finally:
                with self._lock:
                    for node in _lineage(owner):
                        node.waiting_on = None

            if outcome is _UNCACHED:
                return await factory()
            if outcome is not _FAILED:
                return outcome

            logger.debug("Reservation for %s failed in its owner; retrying", label or key)

    async def _construct(self, key: CacheKey, factory: Callable[[], Awaitable[Any]], reservation: Future) -> Any:
        try:
            instance = await factory()
        except BaseException:
            with self._lock:
                keep = self._release_reservation(key)
            reservation.set_result(_FAILED if keep else _UNCACHED)
            raise

        with self._lock:
            keep = self._release_reservation(key)
            if keep:
                self._instances[key] = instance
                self._order.append(key)
        reservation.set_result(instance)
        return instance

    def _release_reservation(self, key: CacheKey) -> bool:
        """Drop key's reservation; False when its result must not be cached."""
        self._pending.pop(key, None)
        self._owners.pop(key, None)
        self._labels.pop(key, None)

        binding_id = key[0]
        retired = binding_id in self._retired
        if retired and not any(k[0] == binding_id for k in self._pending):
            self._retired.discard(binding_id)
        return not (retired or self._closed)

    def _wait_cycle(self, key: CacheKey, waiter: Any) -> Optional[Tuple[List[str], List[int]]]:
        """
        Walk the wait-for chain starting at key's owner.

        Returns (labels, binding ids) of the cycle when waiting would
        deadlock (the chain leads back to the waiter or to a context the
        waiter was started from), None otherwise. Caller holds the lock.
        """
        lineage = set(map(id, _lineage(waiter)))
        labels = []
        binding_ids = []
        seen = set()
        current_key: Optional[CacheKey] = key

        while current_key is not None and current_key in self._owners:
            if current_key in seen:
                return None
            seen.add(current_key)
            labels.append(self._labels.get(current_key) or str(current_key))
            binding_ids.append(current_key[0])

            owner = self._owners[current_key]
            if id(owner) in lineage:
                labels.append(labels[0])
                return labels, binding_ids
            current_key = getattr(owner, "waiting_on", None)

        return None

    def invalidate(self, binding_ids) -> List[Tuple[CacheKey, Any]]:
        """
        Drop every entry created by the given bindings.

        In-flight constructions for those bindings complete for their
        callers but are not cached. Returns the released (key, instance)
        pairs, most recently constructed first.
        """
        binding_ids = set(binding_ids)
        released = []
        with self._lock:
            self._retired |= {k[0] for k in self._pending if k[0] in binding_ids}
            for key in reversed(self._order):
                if key[0] in binding_ids:
                    released.append((key, self._instances.pop(key)))
            self._order = [k for k in self._order if k[0] not in binding_ids]
        return released

    def clear(self) -> List[Tuple[CacheKey, Any]]:
        """
        Release everything, most recently constructed first.

        The cache is closed afterwards: constructions still in flight
        complete for their callers but are not cached.
        """
        with self._lock:
            self._closed = True
            released = [(key, self._instances[key]) for key in reversed(self._order)]
            self._instances.clear()
            self._order.clear()
        return released


class RequestCache:
    """Per-resolution-context instance cache. Owned by one context; no locking."""

    __slots__ = ("_instances",)

    def __init__(self):
        self._instances: Dict[Hashable, Any] = {}

    def __len__(self) -> int:
        return len(self._instances)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._instances

    async def get_or_create(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        if key in self._instances:
            return self._instances[key]
        instance = await factory()
        self._instances[key] = instance
        return instance

    def clear(self) -> None:
        self._instances.clear()


def _lineage(ctx: Any):
    """Yield ctx and the contexts it was started from (nested top-level calls)."""
    while ctx is not None:
        yield ctx
        ctx = getattr(ctx, "parent", None)
