# Overview: Best-effort fan-out of committed ledger events to subscribers.
"""
Notification fan-out

- Events are published only after the unit of work that produced them has
  committed (see services.concurrency.publish_after_commit).
- Handlers run sequentially per event. A failing handler is logged and the
  next one still runs; nothing is ever re-raised to the publisher.
- NOTIFICATIONS_ASYNC=True: events are queued and dispatched by a daemon
  worker thread inside its own app context and DB session.
  NOTIFICATIONS_ASYNC=False: events are dispatched inline right after the
  commit (same isolation from the caller's result).
"""
from __future__ import annotations

import queue
import threading
import time
from collections import defaultdict
from typing import Any, Callable

from flask import Flask, current_app

Handler = Callable[[str, dict], Any]

WILDCARD = "*"
_STOP = object()


class _HubState:
    def __init__(self, app: Flask):
        self.app = app
        self.handlers: dict[str, list[Handler]] = defaultdict(list)
        self.queue: queue.Queue = queue.Queue()
        self.worker: threading.Thread | None = None
        self.lock = threading.Lock()

    def ensure_worker(self) -> None:
        with self.lock:
            if self.worker is not None and self.worker.is_alive():
                return
            self.worker = threading.Thread(
                target=self._run, name="clubledger-notifications", daemon=True
            )
            self.worker.start()

    def _run(self) -> None:
        from .extensions import db

        while True:
            item = self.queue.get()
            try:
                if item is _STOP:
                    return
                event_type, payload = item
                with self.app.app_context():
                    try:
                        self.dispatch(event_type, payload)
                    finally:
                        db.session.remove()
            finally:
                self.queue.task_done()

    def dispatch(self, event_type: str, payload: dict) -> dict:
        handlers = list(self.handlers.get(event_type, [])) + list(self.handlers.get(WILDCARD, []))
        result = {"event_type": event_type, "notified": 0, "failed": 0}
        for handler in handlers:
            try:
                handler(event_type, payload)
                result["notified"] += 1
            except Exception:
                result["failed"] += 1
                name = getattr(handler, "__qualname__", repr(handler))
                self.app.logger.exception("Notification handler %s failed for %s", name, event_type)
        return result


class NotificationHub:
    """Flask extension holding per-app subscribers and the dispatch worker."""

    def __init__(self, app: Flask | None = None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.config.setdefault("NOTIFICATIONS_ASYNC", True)
        app.extensions["clubledger.notifications"] = _HubState(app)

    def _state(self, app: Flask | None = None) -> _HubState:
        app = app or current_app._get_current_object()
        return app.extensions["clubledger.notifications"]

    def subscribe(self, event_type: str, handler: Handler, app: Flask | None = None) -> None:
        self._state(app).handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Handler, app: Flask | None = None) -> None:
        handlers = self._state(app).handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_type: str, payload: dict) -> None:
        state = self._state()
        if not state.app.config.get("NOTIFICATIONS_ASYNC", True):
            state.dispatch(event_type, payload)
            return
        state.ensure_worker()
        state.queue.put((event_type, payload))

    def flush(self, timeout: float = 5.0, app: Flask | None = None) -> bool:
        """Wait until queued events have been dispatched. True when drained."""
        state = self._state(app)
        deadline = time.monotonic() + timeout
        while state.queue.unfinished_tasks:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def shutdown(self, app: Flask | None = None) -> None:
        state = self._state(app)
        if state.worker is not None and state.worker.is_alive():
            state.queue.put(_STOP)
            state.worker.join(timeout=5)
        state.worker = None
