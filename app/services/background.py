"""
Fire-and-forget dispatcher for pipeline side effects.

Widget invalidation, staleness propagation, score recalculation and the
mission debrief feedback loop must never fail (or slow down) the call
that triggered them. They run in a daemon thread with their own app
context; failures are logged and the side effect's own session work is
rolled back.

``BACKGROUND_TASKS_SYNC`` runs tasks inline in the caller's session
(used in tests). Inline tasks are still failure-isolated, so callers
must commit their own work before dispatching.

Usage:
    from app.services.background import dispatcher
    dispatcher.submit("recalculate_scores", recalculate_all_scores, strategy_id, "edit")
"""

import logging
import threading

from flask import current_app

from app.models import db

logger = logging.getLogger(__name__)

# In-memory registry of running tasks (name:id → Thread)
_running_tasks: dict[str, threading.Thread] = {}
_lock = threading.Lock()


class BackgroundDispatcher:
    """Runs side-effect callables detached from the triggering request."""

    def submit(self, name: str, fn, *args, **kwargs) -> None:
        """
        Dispatch ``fn(*args, **kwargs)``.

        Args:
            name: Task label used in logs.
            fn: Callable taking plain ids (never ORM instances).
        """
        app = current_app._get_current_object()

        if app.config.get("BACKGROUND_TASKS_SYNC"):
            self._run_inline(name, fn, args, kwargs)
            return

        t = threading.Thread(
            target=self._execute_in_background,
            args=(app, name, fn, args, kwargs),
            daemon=True,
        )
        key = f"{name}:{id(t)}"
        with _lock:
            _running_tasks[key] = t
        t.start()

    def running(self) -> list[str]:
        with _lock:
            return [k for k, t in _running_tasks.items() if t.is_alive()]

    # ── Internal ──────────────────────────────────────────────────────────

    @staticmethod
    def _run_inline(name, fn, args, kwargs):
        try:
            fn(*args, **kwargs)
            db.session.commit()
        except Exception:
            logger.exception("Background task %s failed", name, extra={"event_type": "background_failure"})
            db.session.rollback()

    @staticmethod
    def _execute_in_background(app, name, fn, args, kwargs):
        key = f"{name}:{id(threading.current_thread())}"
        with app.app_context():
            try:
                fn(*args, **kwargs)
                db.session.commit()
            except Exception:
                logger.exception(
                    "Background task %s failed", name,
                    extra={"event_type": "background_failure"},
                )
                db.session.rollback()
            finally:
                with _lock:
                    _running_tasks.pop(key, None)


dispatcher = BackgroundDispatcher()
