"""Textual integration for lazyfx. Opt-in — requires textual.

// [LAW:single-enforcer] Guard + NoMatches + thread-marshal enforced here, not at callsites.
// [LAW:locality-or-seam] Textual coupling isolated in this module — core lazyfx stays agnostic.
// [LAW:no-shared-mutable-globals] _paused_apps has single owner (this module), explicit API
//   (pause/is_safe), documented invariant (id present ↔ inside pause context).
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from lazyfx.activation import AsyncActivation

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend renders during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def mount(app, definition, render, *, loop=None) -> AsyncActivation:
    """Activate definition and push each selected output into render(output).

    render runs once right away and again on every state change. It is
    skipped while the app is paused or not running, NoMatches from widget
    queries is swallowed, and calls from other threads are marshaled via
    call_from_thread.

    Usage:
        def on_mount(self):
            self.panel = stx.mount(self, panel_def, self.query_one("#panel").update)

        def on_unmount(self):
            self.panel.deactivate()
    """
    _main = threading.get_ident()

    def _guarded():
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe)
        else:
            _safe()

    def _safe():
        try:
            render(activation.output())
        except NoMatches:
            pass

    activation = AsyncActivation(definition, notify=_guarded, loop=loop)
    activation.activate()
    _guarded()
    return activation
