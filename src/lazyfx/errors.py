"""Error taxonomy for async loading.

A loader's own exception is passed through untouched (load failure). Only
the timeout failure is raised by lazyfx itself; unhandled failures never
surface as exceptions, see lazyfx.hooks.report_error.
"""

from __future__ import annotations


class LazyfxError(Exception):
    """Base class for errors created by lazyfx."""


class TimeoutFailure(LazyfxError):
    """The timeout elapsed before the attempt settled."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Async component timed out after {timeout_ms}ms.")
        self.timeout_ms = timeout_ms


class DefinitionDisposedError(LazyfxError):
    """An attempt was requested from a definition after dispose()."""
