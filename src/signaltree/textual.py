"""Textual integration for signaltree. Opt-in — requires textual.

Widgets consume Signals through subscribe(); bind() is that subscription
with the guards a live widget tree needs: skip while the app is paused or
not running, swallow NoMatches from widget queries, and marshal
notifications raised on other threads through call_from_thread.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

# Keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound effects during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def bind(app, signal, effect, *, autorun=True):
    """Subscribe effect to signal, bridged safely to Textual widgets.

    Returns the unsubscribe callable (idempotent).

    Usage:
        unbind = bind(app, tree.read("/app/title"),
                      lambda title: app.query_one("#title").update(title))
    """
    _main = threading.get_ident()

    def _guarded(value):
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe, value)
        else:
            _safe(value)

    def _safe(value):
        try:
            effect(value)
        except NoMatches:
            pass

    return signal.subscribe(_guarded, autorun)
