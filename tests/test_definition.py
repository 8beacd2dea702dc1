"""Tests for AsyncLoaderDefinition, AttemptHandle and define_async."""

import asyncio
import concurrent.futures
import logging
import types

import pytest

from lazyfx import (
    AsyncLoaderDefinition,
    DefinitionDisposedError,
    LoaderOptions,
    define_async,
)


class TestOptions:
    def test_defaults(self):
        opts = LoaderOptions()
        assert opts.delay_ms == 200
        assert opts.timeout_ms is None
        assert opts.loading_value is None
        assert opts.error_value is None
        assert opts.on_error is None

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            LoaderOptions(delay_ms=-1)

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValueError):
            LoaderOptions(timeout_ms=0)

    def test_immutable(self):
        opts = LoaderOptions()
        with pytest.raises(AttributeError):
            opts.delay_ms = 5

    def test_loader_must_be_callable(self):
        with pytest.raises(TypeError):
            AsyncLoaderDefinition("not a loader")


class TestDefineAsync:
    def test_plain_call(self):
        d = define_async(lambda: 1)
        assert isinstance(d, AsyncLoaderDefinition)
        assert d.options == LoaderOptions()

    def test_with_options(self):
        d = define_async(lambda: 1, delay_ms=0, timeout_ms=50)
        assert d.options.delay_ms == 0
        assert d.options.timeout_ms == 50

    def test_decorator_with_options(self):
        @define_async(delay_ms=10)
        async def panel():
            return "panel"

        assert isinstance(panel, AsyncLoaderDefinition)
        assert panel.options.delay_ms == 10

    def test_bare_decorator(self):
        @define_async
        async def panel():
            return "panel"

        assert isinstance(panel, AsyncLoaderDefinition)


class TestRequestAttempt:
    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_call(self, loader, flush):
        d = AsyncLoaderDefinition(loader)
        first = d.request_attempt()
        second = d.request_attempt()
        assert loader.calls == 1
        assert d.in_flight

        loader.resolve("value")
        assert await first == "value"
        assert await second == "value"

    @pytest.mark.asyncio
    async def test_success_is_memoized(self, loader, flush):
        d = AsyncLoaderDefinition(loader)
        d.request_attempt()
        loader.resolve("value")
        await flush()

        assert d.is_resolved
        assert d.resolved == "value"
        assert not d.in_flight

        handle = d.request_attempt()
        assert handle.settled
        assert await handle == "value"
        assert loader.calls == 1
        assert d.loader_calls == 1

    @pytest.mark.asyncio
    async def test_failure_not_cached(self, loader, flush):
        d = AsyncLoaderDefinition(loader)
        handle = d.request_attempt()
        loader.reject(RuntimeError("boom"))
        with pytest.raises(RuntimeError, match="boom"):
            await handle
        await flush()

        assert not d.is_resolved
        assert not d.in_flight

        d.request_attempt()
        assert loader.calls == 2

    @pytest.mark.asyncio
    async def test_on_settled_callbacks(self, loader, flush):
        d = AsyncLoaderDefinition(loader)
        seen = []
        d.request_attempt().on_settled(
            lambda v: seen.append(("ok", v)),
            lambda e: seen.append(("err", e)),
        )
        err = ValueError("nope")
        loader.reject(err)
        await flush()
        assert seen == [("err", err)]

    def test_resolved_handle_calls_success_immediately(self):
        from lazyfx import AttemptHandle

        seen = []
        AttemptHandle.resolved(7).on_settled(seen.append, lambda e: None)
        assert seen == [7]


class TestForceRetry:
    @pytest.mark.asyncio
    async def test_invokes_loader_while_in_flight(self, loader):
        d = AsyncLoaderDefinition(loader)
        d.request_attempt()
        d.force_retry()
        assert loader.calls == 2

    @pytest.mark.asyncio
    async def test_later_requests_share_retried_attempt(self, loader):
        d = AsyncLoaderDefinition(loader)
        d.request_attempt()
        retried = d.force_retry()
        shared = d.request_attempt()
        assert loader.calls == 2

        loader.resolve("second")
        assert await retried == "second"
        assert await shared == "second"

    @pytest.mark.asyncio
    async def test_resolved_definition_skips_loader(self, loader, flush):
        d = AsyncLoaderDefinition(loader)
        d.request_attempt()
        loader.resolve("done")
        await flush()

        handle = d.force_retry()
        assert handle.settled
        assert await handle == "done"
        assert loader.calls == 1
        assert not d.in_flight

    @pytest.mark.asyncio
    async def test_stale_failure_keeps_new_attempt(self, loader, flush):
        d = AsyncLoaderDefinition(loader)
        d.request_attempt()
        first = loader.futures[0]
        d.force_retry()

        first.set_exception(RuntimeError("old"))
        await flush()

        assert d.in_flight
        d.request_attempt()
        assert loader.calls == 2


class TestLoaderResults:
    @pytest.mark.asyncio
    async def test_coroutine_loader(self):
        async def load():
            await asyncio.sleep(0)
            return 42

        d = AsyncLoaderDefinition(load)
        assert await d.request_attempt() == 42

    @pytest.mark.asyncio
    async def test_thread_future_loader(self):
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            d = AsyncLoaderDefinition(lambda: pool.submit(lambda: "from thread"))
            assert await d.request_attempt() == "from thread"
        assert d.resolved == "from thread"

    @pytest.mark.asyncio
    async def test_plain_value_loader(self):
        d = AsyncLoaderDefinition(lambda: "plain")
        assert await d.request_attempt() == "plain"

    @pytest.mark.asyncio
    async def test_sync_raise_becomes_failed_attempt(self):
        def load():
            raise KeyError("missing")

        d = AsyncLoaderDefinition(load)
        handle = d.request_attempt()
        with pytest.raises(KeyError):
            await handle

    @pytest.mark.asyncio
    async def test_module_default_unwrapped(self):
        module = types.ModuleType("widgets")
        module.default = "the widget"
        d = AsyncLoaderDefinition(lambda: module)
        assert await d.request_attempt() == "the widget"

    @pytest.mark.asyncio
    async def test_none_result_warns(self, caplog):
        d = AsyncLoaderDefinition(lambda: None)
        with caplog.at_level(logging.WARNING, logger="lazyfx.definition"):
            assert await d.request_attempt() is None
        assert "Invalid async loader result" in caplog.text
        assert d.is_resolved


class TestDispose:
    @pytest.mark.asyncio
    async def test_dispose_forgets_value(self, loader, flush):
        d = AsyncLoaderDefinition(loader)
        d.request_attempt()
        loader.resolve("v")
        await flush()
        d.dispose()
        assert d.disposed
        assert not d.is_resolved
        assert d.loader_calls == 0

        with pytest.raises(DefinitionDisposedError):
            d.request_attempt()
        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_attempt_settling_after_dispose_is_not_memoized(self, loader, flush):
        d = AsyncLoaderDefinition(loader)
        handle = d.request_attempt()
        d.dispose()

        loader.resolve("stale")
        assert await handle == "stale"
        await flush()
        assert not d.is_resolved
        assert not d.in_flight

    def test_dispose_drops_anchored_entries(self):
        from lazyfx import _anchor

        d = AsyncLoaderDefinition(lambda: 1, LoaderOptions(delay_ms=5))
        d.dispose()
        assert d._id not in _anchor.loaders
        assert d._id not in _anchor.options
        assert d._id not in _anchor.loader_calls
        assert d.options == LoaderOptions()
        assert "disposed" in repr(d)

    def test_repr(self):
        def my_loader():
            return None

        assert "my_loader" in repr(AsyncLoaderDefinition(my_loader))
        assert "idle" in repr(AsyncLoaderDefinition(my_loader))
