from __future__ import annotations

import sqlite3


def _ask(client, consultation_id: str, patient_id: str, complaint: str):
    return client.post(
        f"/api/consultations/{consultation_id}/ai",
        json={"patientId": patient_id, "complaint": complaint},
    )


def test_ai_exchange_returns_both_messages(client, patient, new_consultation):
    draft = new_consultation()
    response = _ask(client, draft["id"], patient["id"], "demam tinggi sudah 2 hari")
    assert response.status_code == 201
    body = response.json()

    assert body["patientMessage"]["senderRole"] == "patient"
    assert body["patientMessage"]["content"] == "demam tinggi sudah 2 hari"
    assert body["aiMessage"]["senderRole"] == "ai"
    assert body["aiMessage"]["senderId"] is None
    assert "Demam sangat tinggi lebih dari 39C" in body["aiMessage"]["content"]
    assert "Profil singkat: Ayu Lestari, 25 tahun, Perempuan." in body["aiMessage"]["content"]
    assert body["consultation"]["status"] == "draft"
    assert body["consultation"]["submittedToDoctor"] is False
    assert body["consultation"]["updatedAt"] == body["aiMessage"]["createdAt"]

    thread = client.get(f"/api/consultations/{draft['id']}/messages").json()
    assert [item["senderRole"] for item in thread] == ["patient", "ai"]
    assert thread[0]["createdAt"] < thread[1]["createdAt"]


def test_ai_exchange_after_submission_is_rejected(client, patient, new_consultation, backend_module):
    draft = new_consultation()
    submitted = client.post(f"/api/consultations/{draft['id']}/submit").json()

    response = _ask(client, draft["id"], patient["id"], "batuk")
    assert response.status_code == 400
    assert response.json()["error"] == "AI response only available before submission to doctor"
    assert client.get(f"/api/consultations/{draft['id']}/messages").json() == []
    assert backend_module.container.consultations.get_by_id(draft["id"]).updated_at == submitted["updatedAt"]


def test_ai_exchange_validation(client, patient, new_consultation):
    draft = new_consultation()
    missing = client.post(f"/api/consultations/{draft['id']}/ai", json={"patientId": patient["id"]})
    assert missing.status_code == 400
    assert missing.json()["error"] == "patientId and complaint are required"

    unknown_patient = _ask(client, draft["id"], "ghost", "pusing")
    assert unknown_patient.status_code == 404
    assert unknown_patient.json()["error"] == "Patient not found"

    unknown_consultation = _ask(client, "missing", patient["id"], "pusing")
    assert unknown_consultation.status_code == 404


def test_ai_exchange_survives_storage_failure(client, patient, new_consultation, backend_module, monkeypatch):
    draft = new_consultation()

    def locked(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(backend_module.container.consultations, "append_message", locked)
    response = _ask(client, draft["id"], patient["id"], "mual dan muntah")
    assert response.status_code == 201
    body = response.json()
    assert body["patientMessage"]["content"] == "mual dan muntah"
    assert body["patientMessage"]["senderName"] == patient["name"]
    assert body["aiMessage"]["senderName"] == "AI Assistant"
    assert "Muntah terus-menerus" in body["aiMessage"]["content"]
    assert body["consultation"]["status"] == "draft"
    assert client.get(f"/api/consultations/{draft['id']}/messages").json() == []


def test_ai_exchange_survives_responder_crash(client, patient, new_consultation, backend_module, monkeypatch):
    draft = new_consultation()

    def crash(complaint, patient=None):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(backend_module.container.responder, "generate", crash)
    response = _ask(client, draft["id"], patient["id"], "pusing")
    assert response.status_code == 201
    assert "Sakit kepala mendadak sangat hebat" in response.json()["aiMessage"]["content"]


def test_ai_meta(client):
    response = client.get("/api/ai/meta")
    assert response.status_code == 200
    body = response.json()
    assert body["provider"] == "gemini"
    assert body["configured"] is False
    assert body["model"]
    assert isinstance(body["safetyRules"], list)


def test_health(client):
    assert client.get("/api/health").json() == {"ok": True, "status": "up"}
