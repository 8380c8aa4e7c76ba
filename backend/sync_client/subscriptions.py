from __future__ import annotations

import logging
import threading
from typing import Any, Callable

import httpx

from .api import ApiError
from .session import ConsultationSession

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 4.0


class Subscription:
    """Run ``callback`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(
        self,
        callback: Callable[[], Any],
        interval: float,
        *,
        name: str = "poll",
        on_error: Callable[[Exception], None] | None = None,
        immediate: bool = True,
    ) -> None:
        self._callback = callback
        self._interval = interval
        self._on_error = on_error
        self._immediate = immediate
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def active(self) -> bool:
        return self._thread.is_alive() and not self._stopped.is_set()

    def start(self) -> "Subscription":
        self._thread.start()
        return self

    def _tick(self) -> None:
        try:
            self._callback()
        except (ApiError, httpx.HTTPError) as exc:
            if self._on_error is not None:
                self._on_error(exc)
            else:
                logger.warning("Poll %s failed: %s", self._thread.name, exc)

    def _run(self) -> None:
        if self._immediate and not self._stopped.is_set():
            self._tick()
        while not self._stopped.wait(self._interval):
            self._tick()

    def cancel(self, *, wait: bool = False, timeout: float | None = None) -> None:
        self._stopped.set()
        if wait and self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)


class SessionSync:
    """Keeps the consultation list and the open thread of a session fresh.

    The thread subscription follows the session's active consultation: when
    it changes, the old subscription is cancelled and a new one started. A
    response still in flight for the old id is discarded by the session.
    """

    def __init__(self, session: ConsultationSession, *, interval: float = DEFAULT_POLL_INTERVAL_SECONDS) -> None:
        self.session = session
        self.interval = interval
        self._lock = threading.Lock()
        self._list_subscription: Subscription | None = None
        self._thread_subscription: Subscription | None = None
        self._watched_id = ""
        self._running = False
        session.add_active_listener(self._on_active_change)

    def _record_error(self, exc: Exception) -> None:
        self.session.status_message = exc.message if isinstance(exc, ApiError) else str(exc)
        logger.warning("Sync failed for user %s: %s", self.session.user_id, exc)

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
        self.session.status_message = ""
        try:
            self.session.refresh_consultations(mark_unread=False)
        except (ApiError, httpx.HTTPError) as exc:
            self._record_error(exc)
        self._list_subscription = Subscription(
            lambda: self.session.refresh_consultations(mark_unread=True),
            self.interval,
            name=f"consultations-{self.session.user_id}",
            on_error=self._record_error,
            immediate=False,
        ).start()
        self._follow(self.session.active_id)

    def _on_active_change(self, consultation_id: str) -> None:
        if self._running:
            self._follow(consultation_id)

    def _follow(self, consultation_id: str) -> None:
        with self._lock:
            if consultation_id == self._watched_id and self._thread_subscription is not None:
                return
            previous = self._thread_subscription
            self._thread_subscription = None
            self._watched_id = consultation_id
            if previous is not None:
                previous.cancel()
            if not consultation_id or not self._running:
                return
            self._thread_subscription = Subscription(
                self.session.refresh_messages,
                self.interval,
                name=f"thread-{consultation_id}",
                on_error=self._record_error,
            ).start()

    @property
    def watched_id(self) -> str:
        return self._watched_id

    def stop(self, *, wait: bool = False) -> None:
        with self._lock:
            self._running = False
            subscriptions = [self._list_subscription, self._thread_subscription]
            self._list_subscription = None
            self._thread_subscription = None
            self._watched_id = ""
        for subscription in subscriptions:
            if subscription is not None:
                subscription.cancel(wait=wait, timeout=self.interval + 1.0)
