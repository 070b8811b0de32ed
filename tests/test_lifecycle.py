"""
Lifecycle: deactivation strategies and shutdown hooks.
"""

import pytest

from pinion import Binding, DisposalStrategy, Lifecycle


def binding_with(*handlers):
    return Binding.to_constant("service", None, on_deactivation=handlers)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_dispose_lifo_by_default(self):
        order = []
        lifecycle = Lifecycle()
        released = [(binding_with(order.append), "second"), (binding_with(order.append), "first")]

        errors = await lifecycle.dispose(released)

        assert errors == []
        assert order == ["second", "first"]

    @pytest.mark.asyncio
    async def test_dispose_fifo(self):
        order = []
        lifecycle = Lifecycle(DisposalStrategy.FIFO)
        released = [(binding_with(order.append), "second"), (binding_with(order.append), "first")]

        await lifecycle.dispose(released)

        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_dispose_parallel_collects_errors(self):
        closed = []

        async def close(instance):
            closed.append(instance)

        def fail(instance):
            raise RuntimeError("cannot close")

        lifecycle = Lifecycle(DisposalStrategy.PARALLEL)
        errors = await lifecycle.dispose([(binding_with(close), "a"), (binding_with(fail), "b")])

        assert closed == ["a"]
        assert len(errors) == 1
        assert isinstance(errors[0][1], RuntimeError)

    @pytest.mark.asyncio
    async def test_every_handler_runs(self):
        calls = []

        def fail(instance):
            calls.append("fail")
            raise RuntimeError("first handler fails")

        errors = await Lifecycle().dispose([(binding_with(fail, calls.append), "svc")])

        assert calls == ["fail", "svc"]
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_shutdown_hooks(self):
        order = []
        lifecycle = Lifecycle()

        async def async_hook():
            order.append("async")

        def failing_hook():
            raise RuntimeError("hook failed")

        lifecycle.on_shutdown(lambda: order.append("sync"), name="sync", priority=1)
        lifecycle.on_shutdown(async_hook, name="async", priority=5)
        lifecycle.on_shutdown(failing_hook, name="failing")

        errors = await lifecycle.run_shutdown_hooks()

        assert order == ["async", "sync"]
        assert [name for name, _ in errors] == ["failing"]

    @pytest.mark.asyncio
    async def test_clear(self):
        order = []
        lifecycle = Lifecycle()
        lifecycle.on_shutdown(lambda: order.append("hook"))
        lifecycle.clear()

        await lifecycle.run_shutdown_hooks()

        assert order == []
