"""lazyfx: lazily loaded async values with delay, timeout and retry."""

from importlib.metadata import version as _version

__version__ = _version("lazyfx")

from lazyfx.errors import DefinitionDisposedError, LazyfxError, TimeoutFailure
from lazyfx.hooks import report_error, set_error_handler, get_error_handler
from lazyfx.definition import (
    AsyncLoaderDefinition,
    AttemptHandle,
    LoaderOptions,
    define_async,
)
from lazyfx.activation import (
    AsyncActivation,
    AttemptController,
    ActivationState,
    Idle,
    Loading,
    Resolved,
    Errored,
    IDLE,
    EMPTY,
    select_output,
)
# textual NOT auto-imported — opt-in only

__all__ = [
    "AsyncLoaderDefinition",
    "AttemptHandle",
    "LoaderOptions",
    "define_async",
    "AsyncActivation",
    "AttemptController",
    "ActivationState",
    "Idle",
    "Loading",
    "Resolved",
    "Errored",
    "IDLE",
    "EMPTY",
    "select_output",
    "LazyfxError",
    "DefinitionDisposedError",
    "TimeoutFailure",
    "report_error",
    "set_error_handler",
    "get_error_handler",
]
