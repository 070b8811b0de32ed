"""
Diagnostic events emitted by the container.
"""

import pytest

from pinion import Binding, Container, DIDiagnostics, DIEventType, UnknownIdentifier


class MockListener:
    def __init__(self):
        self.events = []

    def on_event(self, event):
        self.events.append(event)

    @property
    def types(self):
        return [e.type for e in self.events]


@pytest.fixture
def listener():
    return MockListener()


@pytest.fixture
def observed(listener):
    diagnostics = DIDiagnostics()
    diagnostics.add_listener(listener)
    return Container(diagnostics=diagnostics)


class TestDiagnostics:

    def test_registration_event(self, observed, listener):
        observed.bind_constant("test", 123)

        assert listener.types == [DIEventType.REGISTRATION]
        assert listener.events[0].identifier == "test"
        assert "constant" in listener.events[0].binding

    def test_resolution_events(self, observed, listener):
        observed.bind_dynamic("test", lambda: 123)
        listener.events.clear()

        observed.get("test")

        assert listener.types == [
            DIEventType.RESOLUTION_START,
            DIEventType.INSTANTIATION,
            DIEventType.RESOLUTION_SUCCESS,
        ]
        assert listener.events[-1].duration >= 0

    def test_failure_event(self, observed, listener):
        with pytest.raises(UnknownIdentifier):
            observed.get("missing")

        assert listener.types[-1] == DIEventType.RESOLUTION_FAILURE
        assert isinstance(listener.events[-1].error, UnknownIdentifier)

    def test_rebind_emits_invalidation(self, observed, listener):
        observed.bind_dynamic("clock", object, scope="singleton")
        observed.get("clock")
        listener.events.clear()

        observed.rebind("clock", Binding.to_constant("clock", 0))

        assert listener.types == [DIEventType.CACHE_INVALIDATION, DIEventType.REGISTRATION]
        assert listener.events[0].metadata == {"released": 1}

    def test_unbind_and_shutdown_events(self, observed, listener):
        observed.bind_constant("x", 1)
        observed.unbind("x")
        observed.close()

        assert listener.types[-2:] == [DIEventType.UNBIND, DIEventType.SHUTDOWN]

    def test_broken_listener_does_not_break_resolution(self, observed):
        class Broken:
            def on_event(self, event):
                raise RuntimeError("listener bug")

        observed.diagnostics.add_listener(Broken())
        observed.bind_constant("x", 1)

        assert observed.get("x") == 1

    def test_disabled_without_listeners(self):
        diagnostics = DIDiagnostics()
        assert not diagnostics.enabled
        diagnostics.emit(DIEventType.SHUTDOWN)
