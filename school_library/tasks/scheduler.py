# school_library/tasks/scheduler.py
from __future__ import annotations

import atexit
import os


def start_scheduler(app):
    """
    Daily circulation jobs on an APScheduler BackgroundScheduler.
    - Jobs run inside an app context.
    - The debug reloader's watcher process does not start a second scheduler.
    - The same scheduler executes post-commit side effects (tasks/dispatcher.py).
    """
    if not app.config.get("SCHEDULER_ENABLED", True):
        app.logger.info("[scheduler] Disabled by config.")
        return None

    # Werkzeug's reloader: only the process with WERKZEUG_RUN_MAIN=true serves requests
    if app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        app.logger.info("[scheduler] Debug reloader secondary process: scheduler skipped.")
        return None

    from apscheduler.schedulers.background import BackgroundScheduler
    from apscheduler.triggers.cron import CronTrigger

    from school_library.tasks.circulation_jobs import run_daily_jobs

    scheduler = BackgroundScheduler(timezone="UTC")

    def _job_wrapper():
        try:
            results = run_daily_jobs(app)
            app.logger.info(f"[scheduler] daily circulation jobs: {results}")
        except Exception as ex:
            app.logger.exception(f"[scheduler] daily circulation jobs error: {ex}")

    hour = app.config.get("JOBS_CRON_HOUR", 8)
    minute = app.config.get("JOBS_CRON_MINUTE", 0)
    scheduler.add_job(
        func=_job_wrapper,
        trigger=CronTrigger(hour=hour, minute=minute),
        id="daily_circulation_jobs",
        replace_existing=True,
        max_instances=1,        # never overlap
        coalesce=True,          # missed runs collapse into one
        misfire_grace_time=3600,
    )

    scheduler.start()
    app.logger.info(f"[scheduler] Daily circulation jobs scheduled at {hour:02d}:{minute:02d} UTC.")

    app.extensions["apscheduler"] = scheduler

    def _shutdown():
        if getattr(scheduler, "running", False):
            scheduler.shutdown(wait=False)

    atexit.register(_shutdown)
    return scheduler
