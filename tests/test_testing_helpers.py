"""
Testing helpers: override, RecordingMiddleware, CallCounter.
"""

import pytest

from pinion.testing import CallCounter, RecordingMiddleware, override


class FakeRepository:
    pass


class TestOverride:

    def test_override_top_level(self, container, services):
        container.bind(services.Database)
        container.bind(services.UserRepository)
        fake = FakeRepository()

        with override(container, services.UserRepository, fake) as mock:
            assert container.get(services.UserRepository) is fake
            assert container.get(services.UserRepository) is fake

        assert mock.access_count == 2
        assert isinstance(container.get(services.UserRepository), services.UserRepository)

    def test_override_only_matching_qualifiers(self, container):
        container.bind_constant("cache", "default")
        container.bind_constant("cache", "hot", named="hot")

        with override(container, "cache", "fake", qualifiers="hot"):
            assert container.get("cache", "hot") == "fake"
            assert container.get("cache") == "default"

    def test_override_get_all(self, container):
        container.bind_constant("plugin", "auth")

        with override(container, "plugin", "fake"):
            assert container.get_all("plugin") == ["fake"]

    def test_override_removed_after_error(self, container):
        container.bind_constant("cache", "default")

        with pytest.raises(RuntimeError):
            with override(container, "cache", "fake"):
                raise RuntimeError("test failed")

        assert container.get("cache") == "default"

    @pytest.mark.asyncio
    async def test_override_async(self, container):
        with override(container, "clock", 1234):
            assert await container.get_async("clock") == 1234


class TestRecorder:

    def test_records_and_resets(self, container):
        recorder = RecordingMiddleware()
        container.bind_constant("a", 1)
        container.apply_middleware(recorder)

        container.get("a")
        container.get("a")
        assert recorder.identifiers == ["a", "a"]

        recorder.reset()
        assert recorder.requests == []


class TestCallCounter:

    def test_counts_and_forwards(self):
        counter = CallCounter(lambda x: x * 2)

        assert counter(2) == 4
        assert counter(3) == 6
        assert counter.calls == 2

        counter.reset()
        assert counter.calls == 0

    def test_without_callback(self):
        counter = CallCounter()
        assert counter() is None
        assert counter.calls == 1
