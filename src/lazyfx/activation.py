"""Activations — one state machine per usage of a definition.

An activation races three things against each other: the shared attempt
from its definition, a delay timer (when the loading placeholder becomes
visible) and an optional timeout timer (when a timeout error is reported).
It derives a display state from the race and calls its notify hook when
that state changes.

Every timer and attempt continuation captures the generation it was
started under. Retry and deactivation allocate a new generation, so stale
firings are ignored instead of cancelled.

Usage:
    panel = define_async(load_panel, delay_ms=100, loading_value=lambda: "...")
    act = AsyncActivation(panel, notify=lambda: redraw(act.output()))
    act.activate()
    ...
    act.deactivate()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from lazyfx import _anchor, hooks
from lazyfx._timers import ScopedTimer
from lazyfx.definition import AsyncLoaderDefinition, AttemptHandle, LoaderOptions
from lazyfx.errors import TimeoutFailure

logger = logging.getLogger("lazyfx.activation")

T = TypeVar("T")


# ─── States ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Loading:
    show_placeholder: bool


@dataclass(frozen=True)
class Resolved:
    value: Any


@dataclass(frozen=True)
class Errored:
    error: BaseException


ActivationState = Idle | Loading | Resolved | Errored

IDLE = Idle()


class _Empty:
    """The empty placeholder: nothing to display."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "EMPTY"

    def __bool__(self) -> bool:
        return False


EMPTY = _Empty()


def select_output(state: ActivationState, options: LoaderOptions) -> Any:
    """Pick what to display for state. Pure, safe to call on every render."""
    if isinstance(state, Resolved):
        return state.value
    if isinstance(state, Loading) and state.show_placeholder:
        if options.loading_value is not None:
            return options.loading_value()
    elif isinstance(state, Errored):
        if options.error_value is not None:
            return options.error_value(state.error)
    return EMPTY


# ─── Retry / fail decisions ──────────────────────────────────────────────────


class AttemptController:
    """The retry/fail pair handed to on_error for one failed attempt.

    Only the first decision counts; a controller from a superseded
    generation does nothing.
    """

    __slots__ = ("_activation", "_generation", "_error", "_decided")

    def __init__(self, activation: AsyncActivation, generation: int, error: BaseException) -> None:
        self._activation = activation
        self._generation = generation
        self._error = error
        self._decided = False

    @property
    def decided(self) -> bool:
        return self._decided

    def retry(self) -> None:
        if self._claim():
            self._activation._retry(self._generation)

    def fail(self) -> None:
        if self._claim():
            self._activation._fail(self._generation, self._error)

    def _claim(self) -> bool:
        if self._decided:
            logger.debug("Ignoring second decision for %r", self._error)
            return False
        self._decided = True
        return True


# ─── Activation ──────────────────────────────────────────────────────────────


def _noop() -> None:
    pass


class AsyncActivation(Generic[T]):
    """One logical usage of a definition: races timers against the attempt."""

    __slots__ = (
        "_definition",
        "_notify",
        "_report_error",
        "_loop",
        "_state",
        "_attempt_count",
        "_generation",
        "_active",
        "_delay_timer",
        "_timeout_timer",
    )

    def __init__(
        self,
        definition: AsyncLoaderDefinition[T],
        *,
        notify: Callable[[], None] | None = None,
        report_error: Callable[[BaseException], None] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._definition = definition
        self._notify = notify or _noop
        self._report_error = report_error or hooks.report_error
        self._loop = loop
        self._state: ActivationState = IDLE
        self._attempt_count = 0
        self._generation = 0
        self._active = False
        self._delay_timer = ScopedTimer()
        self._timeout_timer = ScopedTimer()

    @property
    def definition(self) -> AsyncLoaderDefinition[T]:
        return self._definition

    @property
    def state(self) -> ActivationState:
        return self._state

    @property
    def attempt_count(self) -> int:
        """Loader attempts requested by this activation (retries included)."""
        return self._attempt_count

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def active(self) -> bool:
        return self._active

    def output(self) -> Any:
        return select_output(self._state, self._definition.options)

    # --- Entry points ---

    def activate(self) -> ActivationState:
        """Start (or restart after deactivate) this activation. Idempotent."""
        if self._active:
            return self._state
        self._active = True

        if self._definition.is_resolved:
            # No timers, no notify: the caller reads the resolved state directly.
            self._state = Resolved(self._definition.resolved)
            return self._state

        self._attempt_count = 1
        loop = self._loop or asyncio.get_running_loop()
        self._race(self._definition.request_attempt(loop), loop)
        return self._state

    def deactivate(self) -> None:
        """Stop watching. Timers are cancelled; the shared attempt keeps running."""
        self._active = False
        self._cancel_timers()
        self._generation = _anchor.new_id()
        self._state = IDLE

    # --- Race orchestration ---

    def _race(self, handle: AttemptHandle[T], loop: asyncio.AbstractEventLoop) -> None:
        generation = self._generation = _anchor.new_id()
        options = self._definition.options

        if options.delay_ms <= 0:
            self._state = Loading(show_placeholder=True)
        else:
            self._state = Loading(show_placeholder=False)
            self._delay_timer.start(loop, options.delay_ms, lambda: self._on_delay(generation))

        if options.timeout_ms is not None:
            self._timeout_timer.start(loop, options.timeout_ms, lambda: self._on_timeout(generation))

        handle.on_settled(
            lambda value: self._on_success(generation, value),
            lambda error: self._on_failure(generation, error),
        )

    def _on_delay(self, generation: int) -> None:
        if generation != self._generation:
            return
        if isinstance(self._state, Loading) and not self._state.show_placeholder:
            self._state = Loading(show_placeholder=True)
            self._call_notify()

    def _on_timeout(self, generation: int) -> None:
        if generation != self._generation or not isinstance(self._state, Loading):
            return
        timeout_ms = self._definition.options.timeout_ms
        error = TimeoutFailure(timeout_ms)
        logger.debug("Attempt timed out after %dms", timeout_ms)
        self._call_report(error)
        # The attempt keeps running: a later success still overrides this.
        if self._definition.options.error_value is not None:
            self._state = Errored(error)
            self._call_notify()

    def _on_success(self, generation: int, value: T) -> None:
        if generation != self._generation:
            return
        self._cancel_timers()
        self._state = Resolved(value)
        self._call_notify()

    def _on_failure(self, generation: int, error: BaseException) -> None:
        if generation != self._generation:
            return
        self._cancel_timers()
        controller = AttemptController(self, generation, error)
        on_error = self._definition.options.on_error
        if on_error is None:
            controller.fail()
            return
        try:
            on_error(error, controller.retry, controller.fail, self._attempt_count)
        except Exception:
            logger.exception("on_error callback raised while handling %r", error)
            controller.fail()

    def _retry(self, generation: int) -> None:
        if generation != self._generation or not self._active:
            return
        self._attempt_count += 1
        logger.debug("Retrying %r (attempt %d)", self._definition, self._attempt_count)
        loop = self._loop or asyncio.get_running_loop()
        previous = self._state
        self._race(self._definition.force_retry(loop), loop)
        # A memoized value settles the race synchronously and has notified already.
        if isinstance(self._state, Loading) and self._state != previous:
            self._call_notify()

    def _fail(self, generation: int, error: BaseException) -> None:
        if generation != self._generation:
            return
        self._cancel_timers()
        self._state = Errored(error)
        self._call_report(error)
        self._call_notify()

    def _cancel_timers(self) -> None:
        self._delay_timer.cancel()
        self._timeout_timer.cancel()

    # --- Hooks ---

    def _call_notify(self) -> None:
        try:
            self._notify()
        except Exception:
            logger.exception("notify hook raised")

    def _call_report(self, error: BaseException) -> None:
        try:
            self._report_error(error)
        except Exception:
            logger.exception("report_error hook raised while reporting %r", error)

    def __repr__(self) -> str:
        return f"AsyncActivation({self._definition!r}, {self._state!r}, attempts={self._attempt_count})"
