from __future__ import annotations
import os, logging, threading, httpx
from contextlib import contextmanager
from typing import Any, Callable, Dict, List
WEBHOOK_URL = os.getenv("WEBHOOK_URL","").strip()
log = logging.getLogger("championship")

Listener = Callable[[str, Dict[str, Any]], None]

class Notifier:
    """Post-commit change feed. Transports (polling, websocket, SSE) subscribe here."""
    def __init__(self, webhook_url: str = WEBHOOK_URL):
        self.webhook_url = webhook_url
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        self._local = threading.local()

    def subscribe(self, fn: Listener) -> Callable[[], None]:
        with self._lock: self._listeners.append(fn)
        def _unsubscribe():
            with self._lock:
                if fn in self._listeners: self._listeners.remove(fn)
        return _unsubscribe

    @contextmanager
    def deferred(self):
        """Queue this thread's events and deliver them when the block exits.

        Wrap a writer-lock block in this so listeners and the webhook run
        after the lock is released.
        """
        if getattr(self._local, "pending", None) is not None:
            yield; return
        self._local.pending = []
        try:
            yield
        finally:
            queued, self._local.pending = self._local.pending, None
            for event, payload in queued: self._deliver(event, payload)

    def notify(self, event: str, payload: Dict[str, Any] | None = None) -> None:
        payload = payload or {}
        pending = getattr(self._local, "pending", None)
        if pending is not None: pending.append((event, payload))
        else: self._deliver(event, payload)

    def _deliver(self, event: str, payload: Dict[str, Any]) -> None:
        with self._lock: listeners = list(self._listeners)
        for fn in listeners:
            try: fn(event, payload)
            except Exception: log.exception("Listener %r failed on %s", fn, event)
        self._send_webhook({"type": event, **payload})

    def _send_webhook(self, payload: dict) -> None:
        if not self.webhook_url: return
        try: httpx.post(self.webhook_url, json=payload, timeout=10)
        except httpx.HTTPError as e: log.warning("Webhook delivery failed: %s", e)
