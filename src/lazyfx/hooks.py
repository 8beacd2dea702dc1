"""Global error reporting — the default report_error hook.

Call set_error_handler() once to route loader failures to your
application's handler:
    lazyfx.set_error_handler(lambda err: sentry_sdk.capture_exception(err))

Without a handler, errors are logged as warnings instead of raised.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger("lazyfx.hooks")

UNHANDLED_MESSAGE = "Unhandled error during execution of async component loader"

ErrorHandler = Callable[[BaseException], None]

_error_handler: ErrorHandler | None = None


def set_error_handler(handler: ErrorHandler | None) -> None:
    """Set (or clear, with None) the global handler for loader failures."""
    global _error_handler
    _error_handler = handler


def get_error_handler() -> ErrorHandler | None:
    return _error_handler


def report_error(error: BaseException) -> None:
    """Forward error to the global handler, or warn if none is configured."""
    if _error_handler is None:
        logger.warning("%s: %r", UNHANDLED_MESSAGE, error, exc_info=error)
        return
    try:
        _error_handler(error)
    except Exception:
        logger.exception("Error handler raised while reporting %r", error)
