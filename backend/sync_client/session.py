from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable

from .api import ApiError, MedikitApiClient

logger = logging.getLogger(__name__)

ActiveListener = Callable[[str], None]


def _timestamp(value: Any) -> float | None:
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(text).timestamp()
    except ValueError:
        return None


def merge_consultations(previous: list[dict[str, Any]], incoming: dict[str, Any]) -> list[dict[str, Any]]:
    """Upsert ``incoming`` by id and keep the list newest-``updatedAt`` first."""
    if any(item["id"] == incoming["id"] for item in previous):
        updated = [{**item, **incoming} if item["id"] == incoming["id"] else item for item in previous]
    else:
        updated = [incoming, *previous]
    return sorted(updated, key=lambda item: _timestamp(item.get("updatedAt")) or 0.0, reverse=True)


def compute_unread(
    previous_unread: dict[str, bool],
    previous_list: list[dict[str, Any]],
    next_list: list[dict[str, Any]],
    active_id: str,
) -> dict[str, bool]:
    """Flag consultations that are new or whose ``updatedAt`` moved forward.

    Change detection compares timestamps only, never message content. The
    first load (empty previous list) marks nothing.
    """
    if not previous_list:
        return {}

    previous_stamps = {item["id"]: item.get("updatedAt") for item in previous_list}
    unread = dict(previous_unread)
    for item in next_list:
        if item["id"] == active_id:
            continue
        if item["id"] not in previous_stamps:
            unread[item["id"]] = True
            continue
        before = _timestamp(previous_stamps[item["id"]])
        after = _timestamp(item.get("updatedAt"))
        if before is not None and after is not None and after > before:
            unread[item["id"]] = True

    live_ids = {item["id"] for item in next_list}
    unread = {key: value for key, value in unread.items() if key in live_ids}
    unread.pop(active_id, None)
    return unread


class ConsultationSession:
    """Client-side view of one user's consultations and the open thread."""

    def __init__(self, api: MedikitApiClient, *, user_id: str, role: str) -> None:
        self.api = api
        self.user_id = user_id
        self.role = role
        self.consultations: list[dict[str, Any]] = []
        self.active_id = ""
        self.messages: list[dict[str, Any]] = []
        self.unread: dict[str, bool] = {}
        self.status_message = ""
        self._lock = threading.RLock()
        self._list_generation = 0
        self._active_generation = 0
        self._active_listeners: list[ActiveListener] = []

    def add_active_listener(self, listener: ActiveListener) -> None:
        self._active_listeners.append(listener)

    @property
    def active_consultation(self) -> dict[str, Any] | None:
        return next((item for item in self.consultations if item["id"] == self.active_id), None)

    def _set_active(self, consultation_id: str) -> None:
        with self._lock:
            if consultation_id == self.active_id:
                return
            self.active_id = consultation_id
            self._active_generation += 1
            self.messages = []
            self.unread.pop(consultation_id, None)
        for listener in self._active_listeners:
            listener(consultation_id)

    def select(self, consultation_id: str) -> None:
        self._set_active(consultation_id)

    def refresh_consultations(self, *, mark_unread: bool = True) -> bool:
        with self._lock:
            self._list_generation += 1
            generation = self._list_generation
        data = self.api.get_consultations(self.user_id, self.role)
        with self._lock:
            if generation != self._list_generation:
                return False
            ids = {item["id"] for item in data}
            next_active = self.active_id if self.active_id in ids else (data[0]["id"] if data else "")
            if mark_unread:
                self.unread = compute_unread(self.unread, self.consultations, data, next_active)
            self.consultations = data
        self._set_active(next_active)
        return True

    def refresh_messages(self) -> bool:
        """Reload the open thread; returns False when nothing was applied.

        A response is dropped if the active consultation changed while the
        request was in flight.
        """
        with self._lock:
            requested = self.active_id
            generation = self._active_generation
        if not requested:
            return False
        data = self.api.list_messages(requested)
        with self._lock:
            if requested != self.active_id or generation != self._active_generation:
                logger.debug("Discarding stale messages for %s", requested)
                return False
            self.unread.pop(requested, None)
            current_last = self.messages[-1]["id"] if self.messages else None
            next_last = data[-1]["id"] if data else None
            if len(self.messages) == len(data) and current_last == next_last:
                return False
            self.messages = data
            return True

    def _merge(self, consultation: dict[str, Any] | None) -> None:
        if consultation:
            with self._lock:
                self.consultations = merge_consultations(self.consultations, consultation)

    def _append_message(self, message: dict[str, Any]) -> None:
        with self._lock:
            if message.get("consultationId") not in (None, self.active_id):
                return
            if any(item["id"] == message["id"] for item in self.messages):
                return
            self.messages = [*self.messages, message]

    def create_consultation(self) -> dict[str, Any]:
        created = self.api.create_consultation(self.user_id)
        self._merge(created)
        self._set_active(created["id"])
        return created

    def submit(self, doctor_id: str | None = None) -> dict[str, Any] | None:
        active = self.active_consultation
        if active is None:
            return None
        updated = self.api.submit_consultation(active["id"], doctor_id)
        self._merge(updated)
        return updated

    def close(self) -> dict[str, Any] | None:
        active = self.active_consultation
        if active is None:
            return None
        updated = self.api.close_consultation(active["id"])
        self._merge(updated)
        return updated

    def delete(self) -> str | None:
        active = self.active_consultation
        if active is None:
            return None
        self.api.delete_consultation(active["id"])
        with self._lock:
            self.consultations = [item for item in self.consultations if item["id"] != active["id"]]
            self.unread.pop(active["id"], None)
            next_active = self.consultations[0]["id"] if self.consultations else ""
        self._set_active(next_active)
        return active["id"]

    def send(self, content: str, *, mode: str = "doctor", doctor_id: str | None = None) -> bool:
        """Send the draft text; ``mode="ai"`` asks for AI education instead.

        API failures are recorded in ``status_message`` and reported as False.
        """
        active = self.active_consultation
        text = (content or "").strip()
        if active is None or not text:
            return False
        self.status_message = ""
        try:
            if self.role == "patient" and mode == "ai":
                response = self.api.request_ai_response(active["id"], patient_id=self.user_id, complaint=text)
                self._append_message(response["patientMessage"])
                self._append_message(response["aiMessage"])
                self._merge(response.get("consultation"))
                return True

            if self.role == "patient" and not active.get("submittedToDoctor"):
                self._merge(self.api.submit_consultation(active["id"], doctor_id))

            sender_role = "doctor" if self.role == "doctor" else "patient"
            response = self.api.send_message(
                active["id"],
                sender_id=self.user_id,
                sender_role=sender_role,
                content=text,
            )
            self._append_message(response["message"])
            self._merge(response.get("consultation"))
            return True
        except ApiError as exc:
            self.status_message = exc.message
            return False
