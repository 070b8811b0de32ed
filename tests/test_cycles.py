"""
Cycle detection and lazy handles for singleton cycles.
"""

import pytest

from pinion import (
    CircularDependency,
    Container,
    ContainerConfig,
    Dependency,
    LazyDependencyNotReady,
    LazyRef,
    StaticMetadataProvider,
    identifier_name,
)


class A:
    def __init__(self, b):
        self.b = b
        self.name = "a"


class B:
    def __init__(self, a):
        self.a = a
        self.name = "b"


class Eager:
    def __init__(self, a):
        # Dereferences the handle during construction
        self.name_of_a = a.name


def make(lazy_edge=True, scope_a="singleton", scope_b="singleton", **config):
    metadata = StaticMetadataProvider()
    metadata.declare(A, B)
    metadata.declare(B, Dependency(A, lazy=lazy_edge))
    container = Container(metadata, config=ContainerConfig(**config))
    container.bind(A, scope=scope_a)
    container.bind(B, scope=scope_b)
    return container


# ============================================================================
# Detection
# ============================================================================


class TestCycleDetection:

    def test_transient_cycle_fails(self):
        container = make(lazy_edge=False, scope_a="transient", scope_b="transient")

        with pytest.raises(CircularDependency) as exc:
            container.get(A)

        assert exc.value.cycle == [identifier_name(A), identifier_name(B), identifier_name(A)]
        assert exc.value.singleton_only is False

    def test_transient_cycle_fails_even_with_lazy_edge(self):
        container = make(lazy_edge=True, scope_a="transient", scope_b="transient")

        with pytest.raises(CircularDependency):
            container.get(A)

    def test_mixed_scope_cycle_fails(self):
        container = make(lazy_edge=True, scope_b="transient")

        with pytest.raises(CircularDependency) as exc:
            container.get(A)
        assert exc.value.singleton_only is False

    def test_singleton_cycle_without_lazy_edge_fails(self):
        container = make(lazy_edge=False)

        with pytest.raises(CircularDependency) as exc:
            container.get(A)

        assert exc.value.singleton_only is True
        assert "lazy" in str(exc.value)

    def test_self_dependency(self, container, metadata):
        class Node:
            def __init__(self, parent):
                self.parent = parent

        metadata.declare(Node, Node)
        container.bind(Node)

        with pytest.raises(CircularDependency) as exc:
            container.get(Node)
        assert exc.value.cycle == [identifier_name(Node), identifier_name(Node)]

    def test_lazy_cycles_disabled(self):
        container = make(allow_lazy_cycles=False)

        with pytest.raises(CircularDependency):
            container.get(A)

    def test_failed_cycle_leaves_nothing_cached(self):
        container = make(lazy_edge=False)

        with pytest.raises(CircularDependency):
            container.get(A)

        assert len(container._singletons) == 0

    def test_diamond_is_not_a_cycle(self, container, metadata):
        class Top:
            def __init__(self, left, right):
                self.left = left
                self.right = right

        class Left:
            def __init__(self, bottom):
                self.bottom = bottom

        class Right:
            def __init__(self, bottom):
                self.bottom = bottom

        class Bottom:
            pass

        metadata.declare(Top, Left, Right)
        metadata.declare(Left, Bottom)
        metadata.declare(Right, Bottom)
        for cls in (Top, Left, Right):
            container.bind(cls)
        container.bind(Bottom, scope="singleton")

        top = container.get(Top)
        assert top.left.bottom is top.right.bottom


# ============================================================================
# Lazy handles
# ============================================================================


class TestLazyCycles:

    def test_resolve_from_eager_end(self):
        container = make()

        a = container.get(A)

        assert isinstance(a.b, B)
        assert isinstance(a.b.a, LazyRef)
        assert a.b.a.get() is a
        assert a.b.a.name == "a"
        assert container.get(B) is a.b

    def test_resolve_from_lazy_end(self):
        container = make()

        b = container.get(B)
        a = container.get(A)

        assert a.b is b
        assert b.a.get() is a
        assert b.a.resolved

    @pytest.mark.asyncio
    async def test_lazy_ref_get_async(self):
        container = make()

        a = await container.get_async(A)

        assert await a.b.a.get_async() is a

    def test_allow_lazy_on_binding(self):
        metadata = StaticMetadataProvider()
        metadata.declare(A, B)
        metadata.declare(B, A)
        container = Container(metadata)
        container.bind(A, scope="singleton")
        container.bind(B, scope="singleton", allow_lazy=True)

        a = container.get(A)

        assert a.b.a.get() is a

    def test_lazy_edge_without_cycle_injects_instance(self, container, metadata, services):
        class Consumer:
            def __init__(self, db):
                self.db = db

        metadata.declare(Consumer, Dependency(services.Database, lazy=True))
        container.bind(services.Database, scope="singleton")
        container.bind(Consumer)

        assert isinstance(container.get(Consumer).db, services.Database)

    def test_dereference_during_construction(self):
        metadata = StaticMetadataProvider()
        metadata.declare(A, Eager)
        metadata.declare(Eager, Dependency(A, lazy=True))
        container = Container(metadata)
        container.bind(A, scope="singleton")
        container.bind(Eager, scope="singleton")

        with pytest.raises(LazyDependencyNotReady):
            container.get(A)

    def test_lazy_ref_repr(self):
        container = make()
        a = container.get(A)

        assert "resolved" in repr(a.b.a)
