# school_library/tasks/dispatcher.py
"""Post-commit side effects (notices, audit records).

Handed to the background scheduler as one-shot jobs when it is running,
otherwise run inline. Either way a failure is logged and never reaches the
operation that queued it.
"""
from __future__ import annotations

from flask import current_app


def _run_side_effect(app, fn, args, kwargs):
    with app.app_context():
        try:
            fn(*args, **kwargs)
        except Exception as ex:
            app.logger.exception(f"[dispatch] {getattr(fn, '__qualname__', fn)} failed: {ex}")


def dispatch(fn, *args, **kwargs):
    app = current_app._get_current_object()
    scheduler = app.extensions.get("apscheduler")

    if app.config.get("NOTIFY_ASYNC") and scheduler is not None and getattr(scheduler, "running", False):
        try:
            # no trigger: run once, as soon as a worker thread is free
            scheduler.add_job(
                _run_side_effect,
                args=(app, fn, args, kwargs),
                misfire_grace_time=None,
            )
            return
        except Exception as ex:
            app.logger.warning(f"[dispatch] scheduler hand-off failed, running inline: {ex}")

    try:
        fn(*args, **kwargs)
    except Exception as ex:
        app.logger.exception(f"[dispatch] {getattr(fn, '__qualname__', fn)} failed: {ex}")


def dispatch_all(effects):
    for fn, args, kwargs in effects:
        dispatch(fn, *args, **kwargs)
