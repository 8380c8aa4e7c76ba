from __future__ import annotations

import threading
import time

import pytest

from sync_client import (
    ApiError,
    ConsultationSession,
    MedikitApiClient,
    SessionSync,
    Subscription,
    compute_unread,
    merge_consultations,
)


def _item(consultation_id: str, updated_at: str, **extra) -> dict:
    return {"id": consultation_id, "updatedAt": updated_at, **extra}


class FakeApi:
    def __init__(self, consultations: list[dict] | None = None) -> None:
        self.consultations = consultations or []
        self.messages: dict[str, list[dict]] = {}
        self.on_list_messages = None

    def get_consultations(self, user_id, role):
        return list(self.consultations)

    def list_messages(self, consultation_id):
        if self.on_list_messages is not None:
            self.on_list_messages(consultation_id)
        return list(self.messages.get(consultation_id, []))


def test_first_load_marks_nothing_unread():
    incoming = [_item("a", "2024-01-01T00:00:00.000000Z")]
    assert compute_unread({}, [], incoming, "") == {}


def test_unread_tracks_new_and_advanced_consultations():
    previous = [
        _item("a", "2024-01-01T00:00:00.000000Z"),
        _item("b", "2024-01-01T00:00:00.000000Z"),
        _item("gone", "2024-01-01T00:00:00.000000Z"),
    ]
    incoming = [
        _item("c", "2024-01-01T00:00:03.000000Z"),
        _item("a", "2024-01-01T00:00:02.000000Z"),
        _item("b", "2024-01-01T00:00:02.000000Z"),
    ]
    unread = compute_unread({"gone": True}, previous, incoming, "b")
    assert unread == {"a": True, "c": True}


def test_unread_ignores_unchanged_timestamps():
    items = [_item("a", "2024-01-01T00:00:00.000000Z")]
    assert compute_unread({}, items, items, "") == {}


def test_merge_upserts_and_sorts_newest_first():
    previous = [
        _item("a", "2024-01-01T00:00:02.000000Z", status="waiting"),
        _item("b", "2024-01-01T00:00:01.000000Z", status="draft"),
    ]
    merged = merge_consultations(previous, _item("b", "2024-01-01T00:00:05.000000Z", status="waiting"))
    assert [item["id"] for item in merged] == ["b", "a"]
    assert merged[0]["status"] == "waiting"

    added = merge_consultations(merged, _item("c", "2024-01-01T00:00:03.000000Z"))
    assert [item["id"] for item in added] == ["b", "c", "a"]


def test_refresh_selects_first_consultation_and_keeps_selection():
    api = FakeApi([_item("a", "2024-01-01T00:00:02.000000Z"), _item("b", "2024-01-01T00:00:01.000000Z")])
    session = ConsultationSession(api, user_id="u1", role="patient")
    assert session.refresh_consultations(mark_unread=False)
    assert session.active_id == "a"

    session.select("b")
    api.consultations = [_item("a", "2024-01-01T00:00:04.000000Z"), _item("b", "2024-01-01T00:00:01.000000Z")]
    session.refresh_consultations()
    assert session.active_id == "b"
    assert session.unread == {"a": True}

    session.select("a")
    assert session.unread == {}


def test_messages_for_previous_selection_are_discarded():
    api = FakeApi([_item("a", "2024-01-01T00:00:02.000000Z"), _item("b", "2024-01-01T00:00:01.000000Z")])
    api.messages = {"a": [{"id": "m1", "consultationId": "a"}], "b": [{"id": "m2", "consultationId": "b"}]}
    session = ConsultationSession(api, user_id="u1", role="patient")
    session.refresh_consultations(mark_unread=False)

    api.on_list_messages = lambda consultation_id: session.select("b") if consultation_id == "a" else None
    assert session.refresh_messages() is False
    assert session.active_id == "b"
    assert session.messages == []

    api.on_list_messages = None
    assert session.refresh_messages() is True
    assert session.messages == [{"id": "m2", "consultationId": "b"}]
    assert session.refresh_messages() is False


def test_subscription_stops_after_cancel():
    ticks = []
    ticked_twice = threading.Event()

    def callback():
        ticks.append(time.monotonic())
        if len(ticks) >= 2:
            ticked_twice.set()

    subscription = Subscription(callback, 0.01, name="test-poll").start()
    assert ticked_twice.wait(2.0)
    subscription.cancel(wait=True, timeout=2.0)
    assert not subscription.active
    count = len(ticks)
    time.sleep(0.05)
    assert len(ticks) == count


def test_subscription_reports_api_errors():
    errors = []
    reported = threading.Event()

    def failing():
        raise ApiError(503, "Service unavailable")

    def on_error(exc):
        errors.append(exc)
        reported.set()

    subscription = Subscription(failing, 60.0, on_error=on_error).start()
    assert reported.wait(2.0)
    subscription.cancel(wait=True, timeout=2.0)
    assert errors[0].status_code == 503


def test_session_sync_follows_active_consultation():
    api = FakeApi([_item("a", "2024-01-01T00:00:02.000000Z"), _item("b", "2024-01-01T00:00:01.000000Z")])
    session = ConsultationSession(api, user_id="u1", role="doctor")
    sync = SessionSync(session, interval=60.0)
    try:
        sync.start()
        assert sync.watched_id == "a"
        session.select("b")
        assert sync.watched_id == "b"
    finally:
        sync.stop(wait=True)
    assert sync.watched_id == ""
    session.select("a")
    assert sync.watched_id == ""


def test_api_client_raises_server_error_message(client):
    api = MedikitApiClient(http=client)
    with pytest.raises(ApiError) as excinfo:
        api.login("ayu", "salah")
    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Invalid username or password"


def test_patient_and_doctor_sessions_end_to_end(client):
    api = MedikitApiClient(http=client)
    patient = api.login("ayu", "pasien123")
    doctor = api.login("drandi", "dokter123")

    patient_session = ConsultationSession(api, user_id=patient["id"], role="patient")
    patient_session.refresh_consultations(mark_unread=False)
    first = patient_session.create_consultation()
    assert patient_session.active_id == first["id"]

    assert patient_session.send("demam sejak kemarin", mode="ai")
    assert [item["senderRole"] for item in patient_session.messages] == ["patient", "ai"]
    assert patient_session.active_consultation["status"] == "draft"

    assert patient_session.send("Mohon saran dokter")
    assert patient_session.active_consultation["status"] == "waiting"
    assert patient_session.active_consultation["doctorId"] == doctor["id"]

    assert not patient_session.send("boleh tanya AI lagi?", mode="ai")
    assert patient_session.status_message == "AI response only available before submission to doctor"

    doctor_session = ConsultationSession(api, user_id=doctor["id"], role="doctor")
    doctor_session.refresh_consultations(mark_unread=False)
    assert doctor_session.active_id == first["id"]
    assert doctor_session.refresh_messages()
    assert len(doctor_session.messages) == 3

    assert doctor_session.send("Istirahat dan minum air putih.")
    assert doctor_session.active_consultation["status"] == "replied"

    second = patient_session.create_consultation()
    assert patient_session.send("Kontrol ulang minggu depan")
    doctor_session.refresh_consultations()
    assert doctor_session.active_id == first["id"]
    assert doctor_session.unread == {second["id"]: True}

    doctor_session.select(first["id"])
    patient_session.select(first["id"])
    closed = patient_session.close()
    assert closed["status"] == "done"
    assert closed["endedAt"] is not None

    patient_session.select(second["id"])
    assert patient_session.delete() == second["id"]
    assert [item["id"] for item in patient_session.consultations] == [first["id"]]
    assert patient_session.active_id == first["id"]
