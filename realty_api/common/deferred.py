# realty_api/common/deferred.py
"""
Post-response dispatch for best-effort side work.

Referral attribution and first-property bonuses hang off unrelated primary
requests (registration, listing creation). They are queued on ``g`` with
``defer``; an ``after_request`` hook hands the queue to
``response.call_on_close`` so the tasks run once the server has finished
sending the body, each in its own transaction. A failing task is rolled back
and logged; it never reaches the primary caller.
"""
import logging

from flask import current_app, g, has_app_context, has_request_context

from realty_api.extensions import db

log = logging.getLogger(__name__)

_QUEUE = "_deferred_tasks"


def best_effort(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except Exception:
        db.session.rollback()
        log.exception("best-effort task %s failed (args=%r)", getattr(fn, "__name__", fn), args)
        return None


def defer(fn, *args, **kwargs):
    """Queue ``fn`` until the response is closed; run now when outside a request."""
    if not has_request_context():
        return best_effort(fn, *args, **kwargs)
    g.setdefault(_QUEUE, []).append((fn, args, kwargs))
    return None


def run_tasks(app, tasks):
    """Run queued tasks; the request context is gone by now, so push an app context if none is active."""
    if has_app_context():
        for fn, args, kwargs in tasks:
            best_effort(fn, *args, **kwargs)
        return
    with app.app_context():
        for fn, args, kwargs in tasks:
            best_effort(fn, *args, **kwargs)


def init_app(app):
    @app.after_request
    def _attach(response):
        tasks = g.pop(_QUEUE, None)
        if not tasks:
            return response
        if response.status_code >= 400:
            log.warning("dropping %d deferred task(s) after %s response", len(tasks), response.status_code)
            return response
        target = current_app._get_current_object()
        response.call_on_close(lambda: run_tasks(target, tasks))
        return response

    @app.teardown_request
    def _discard(exc):
        # after_request is skipped on unhandled errors
        tasks = g.pop(_QUEUE, None)
        if tasks:
            log.warning("dropping %d deferred task(s) after failed request: %s", len(tasks), exc)
