"""Detached background tasks.

Work submitted here never reports back to the request that started it.
Each task ends in a terminal handler that logs the failure. Pooled tasks
run in their own application context; eager tasks (testing) run inline in
the caller's context, so callers commit before submitting.
"""
import atexit
import json
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from flask import current_app

from residentpulse.extensions import db


class TaskRunner:
    def __init__(self, app=None):
        self._executor = None
        self.eager = False
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.eager = bool(app.config.get("TASKS_EAGER"))
        if not self.eager:
            self._executor = ThreadPoolExecutor(
                max_workers=int(app.config.get("TASK_WORKERS", 4)),
                thread_name_prefix="residentpulse-task",
            )
            # queued notifications and summaries finish before the process exits
            atexit.register(self.shutdown)
        app.extensions["task_runner"] = self

    def submit(self, name: str, fn: Callable, *args, **kwargs) -> None:
        app = current_app._get_current_object()
        if self.eager:
            _guarded(app, name, fn, args, kwargs)
        else:
            self._executor.submit(_in_context, app, name, fn, args, kwargs)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


def _guarded(app, name, fn, args, kwargs):
    try:
        fn(*args, **kwargs)
    except Exception as exc:
        db.session.rollback()
        app.logger.error(json.dumps({"event": "task_failed", "task": name, "error": str(exc)}))


def _in_context(app, name, fn, args, kwargs):
    with app.app_context():
        try:
            _guarded(app, name, fn, args, kwargs)
        finally:
            db.session.remove()


def submit(name: str, fn: Callable, *args, **kwargs) -> None:
    current_app.extensions["task_runner"].submit(name, fn, *args, **kwargs)
