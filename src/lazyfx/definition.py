"""Async loader definitions — shared, memoizing owners of a loader.

A definition wraps a loader (a no-argument callable returning an awaitable).
All activations of the same definition share one in-flight attempt, and a
successful result is memoized permanently: once resolved, the loader is
never invoked again. Failures are not cached, so the next request starts a
fresh attempt.

All state lives in _anchor — instances are thin handles holding an _id.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import logging
import types
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from lazyfx import _anchor
from lazyfx.errors import DefinitionDisposedError

logger = logging.getLogger("lazyfx.definition")

T = TypeVar("T")

DEFAULT_DELAY_MS = 200

Loader = Callable[[], "Awaitable[T] | concurrent.futures.Future[T] | T"]

_UNSET = object()


@dataclass(frozen=True)
class LoaderOptions:
    """Immutable configuration of a definition.

    loading_value and error_value are factories, not outputs:
    loading_value() and error_value(error) are called on each output read.
    """

    loading_value: Callable[[], Any] | None = None
    error_value: Callable[[BaseException], Any] | None = None
    delay_ms: int = DEFAULT_DELAY_MS
    timeout_ms: int | None = None
    on_error: Callable[..., None] | None = None

    def __post_init__(self) -> None:
        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {self.delay_ms}")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0, got {self.timeout_ms}")


_DEFAULT_OPTIONS = LoaderOptions()


class AttemptHandle(Generic[T]):
    """One requester's view of an attempt: either a shared future or a value."""

    __slots__ = ("_future", "_value")

    def __init__(self, future: asyncio.Future | None = None, value: Any = _UNSET) -> None:
        self._future = future
        self._value = value

    @classmethod
    def resolved(cls, value: T) -> AttemptHandle[T]:
        return cls(value=value)

    @property
    def settled(self) -> bool:
        return self._future is None or self._future.done()

    def on_settled(
        self,
        on_success: Callable[[T], None],
        on_failure: Callable[[BaseException], None],
    ) -> None:
        """Attach continuations. An already-resolved handle calls on_success now."""
        if self._future is None:
            on_success(self._value)
            return

        def _done(future: asyncio.Future) -> None:
            error = _failure_of(future)
            if error is None:
                on_success(future.result())
            else:
                on_failure(error)

        self._future.add_done_callback(_done)

    def __await__(self):
        if self._future is None:
            return self._value
        return (yield from self._future.__await__())

    def __repr__(self) -> str:
        if self._future is None:
            return f"AttemptHandle(resolved={self._value!r})"
        state = "settled" if self._future.done() else "pending"
        return f"AttemptHandle({state})"


class AsyncLoaderDefinition(Generic[T]):
    """A loader plus its options, memoizing the single current attempt."""

    __slots__ = ("_id",)

    def __init__(self, loader: Loader, options: LoaderOptions | None = None) -> None:
        if not callable(loader):
            raise TypeError(f"loader must be callable, got {loader!r}")
        self._id = _anchor.new_id()
        _anchor.loaders[self._id] = loader
        _anchor.options[self._id] = options or LoaderOptions()
        _anchor.loader_calls[self._id] = 0

    @property
    def loader(self) -> Loader | None:
        return _anchor.loaders.get(self._id)

    @property
    def options(self) -> LoaderOptions:
        return _anchor.options.get(self._id, _DEFAULT_OPTIONS)

    @property
    def disposed(self) -> bool:
        return self._id not in _anchor.loaders

    @property
    def is_resolved(self) -> bool:
        return self._id in _anchor.resolved

    @property
    def resolved(self) -> T | None:
        """The memoized value, or None while unresolved."""
        return _anchor.resolved.get(self._id)

    @property
    def loader_calls(self) -> int:
        """How many times the loader has been invoked."""
        return _anchor.loader_calls.get(self._id, 0)

    @property
    def in_flight(self) -> bool:
        return self._id in _anchor.in_flight

    def request_attempt(self, loop: asyncio.AbstractEventLoop | None = None) -> AttemptHandle[T]:
        """Return a handle on the memoized value, the in-flight attempt, or a new one."""
        if self._id in _anchor.resolved:
            return AttemptHandle.resolved(_anchor.resolved[self._id])
        shared = _anchor.in_flight.get(self._id)
        if shared is not None:
            return AttemptHandle(shared)
        return AttemptHandle(self._start(loop))

    def force_retry(self, loop: asyncio.AbstractEventLoop | None = None) -> AttemptHandle[T]:
        """Invoke the loader fresh, regardless of any attempt already in flight.

        A resolved definition never re-invokes its loader: the memoized
        value is returned instead.
        """
        if self._id in _anchor.resolved:
            return AttemptHandle.resolved(_anchor.resolved[self._id])
        _anchor.in_flight.pop(self._id, None)
        return AttemptHandle(self._start(loop))

    def _start(self, loop: asyncio.AbstractEventLoop | None) -> asyncio.Future:
        if self.disposed:
            raise DefinitionDisposedError(f"{self!r} has been disposed")
        loop = loop or asyncio.get_running_loop()
        _anchor.loader_calls[self._id] = _anchor.loader_calls.get(self._id, 0) + 1
        logger.debug("Invoking loader %r (call %d)", self.loader, _anchor.loader_calls[self._id])

        source = _invoke(self.loader, loop)
        shared = loop.create_future()
        _anchor.in_flight[self._id] = shared
        source.add_done_callback(lambda f: self._settle(f, shared))
        return shared

    def _settle(self, source: asyncio.Future, shared: asyncio.Future) -> None:
        """Update definition state first, then release the outcome to handles."""
        error = _failure_of(source)
        if error is None:
            value = _unwrap(source.result())
            if not self.disposed:
                # First success wins; the memoized value is never replaced.
                value = _anchor.resolved.setdefault(self._id, value)
                _anchor.in_flight.pop(self._id, None)
            logger.debug("Loader %r resolved", self.loader)
            if not shared.done():
                shared.set_result(value)
            return

        if _anchor.in_flight.get(self._id) is shared:
            del _anchor.in_flight[self._id]
        logger.debug("Loader %r failed: %r", self.loader, error)
        if shared.done():
            return
        if isinstance(error, asyncio.CancelledError):
            shared.cancel()
        else:
            shared.set_exception(error)
            # Handles consume the error through callbacks, not result().
            shared.exception()

    def dispose(self) -> None:
        """Discard the definition and all of its anchored state.

        An attempt still running settles for the handles already holding it
        but is not memoized. Requesting a new attempt raises
        DefinitionDisposedError.
        """
        _anchor.loaders.pop(self._id, None)
        _anchor.options.pop(self._id, None)
        _anchor.resolved.pop(self._id, None)
        _anchor.in_flight.pop(self._id, None)
        _anchor.loader_calls.pop(self._id, None)

    def __repr__(self) -> str:
        if self.disposed:
            return "AsyncLoaderDefinition(disposed)"
        if self.is_resolved:
            state = "resolved"
        elif self.in_flight:
            state = "loading"
        else:
            state = "idle"
        return f"AsyncLoaderDefinition({getattr(self.loader, '__name__', self.loader)!r}, {state})"


def _invoke(loader: Loader, loop: asyncio.AbstractEventLoop) -> asyncio.Future:
    """Call loader and turn whatever it produces into a future on loop."""
    try:
        result = loader()
    except Exception as exc:
        future = loop.create_future()
        future.set_exception(exc)
        return future

    if isinstance(result, concurrent.futures.Future):
        return asyncio.wrap_future(result, loop=loop)
    if inspect.isawaitable(result):
        return asyncio.ensure_future(result, loop=loop)

    future = loop.create_future()
    future.set_result(result)
    return future


def _failure_of(future: asyncio.Future) -> BaseException | None:
    if future.cancelled():
        return asyncio.CancelledError()
    return future.exception()


def _unwrap(value: Any) -> Any:
    """Module-style results resolve to their `default` attribute."""
    if isinstance(value, types.ModuleType) and hasattr(value, "default"):
        return value.default
    if value is None:
        logger.warning("Invalid async loader result: None")
    return value


def define_async(loader: Loader | None = None, **options: Any):
    """Factory/decorator to create an AsyncLoaderDefinition.

    Usage:
        @define_async
        async def settings_panel():
            return await fetch_panel()

        @define_async(delay_ms=0, loading_value=lambda: "loading...")
        async def report():
            ...

        user = define_async(lambda: client.get_user(42), timeout_ms=3000)
    """
    opts = LoaderOptions(**options)
    if loader is None:
        return lambda fn: AsyncLoaderDefinition(fn, opts)
    return AsyncLoaderDefinition(loader, opts)
