from __future__ import annotations

import logging
import sqlite3
import uuid

from assist import AiResponder, generate_local_response
from storage import ConsultationStore, StaleWriteError, UserDirectory
from storage.records import ConsultationRecord, MessageRecord
from storage.time_utils import next_stamp, to_iso, utc_now

from .models import (
    ROLE_AI,
    ROLE_DOCTOR,
    ROLE_PATIENT,
    STATUS_DONE,
    STATUS_DRAFT,
    STATUS_REPLIED,
    STATUS_WAITING,
    SUBMITTED_STATES,
    TERMINAL_STATES,
    AiExchange,
    MessageOutcome,
)
from .policy import ConsultationPolicy, PolicyDecision

logger = logging.getLogger(__name__)

AI_SENDER_NAME = "AI Assistant"


class ConsultationError(Exception):
    status_code = 500

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConsultationNotFound(ConsultationError):
    status_code = 404


class PreconditionError(ConsultationError):
    status_code = 400


class ConsultationConflict(ConsultationError):
    status_code = 409


class ConsultationController:
    _TRANSITIONS = {
        STATUS_DRAFT: {STATUS_WAITING},
        STATUS_WAITING: {STATUS_REPLIED, STATUS_DONE},
        STATUS_REPLIED: {STATUS_REPLIED, STATUS_DONE},
        STATUS_DONE: set(),
    }

    def __init__(
        self,
        *,
        consultations: ConsultationStore,
        users: UserDirectory,
        responder: AiResponder,
        policy: ConsultationPolicy | None = None,
    ) -> None:
        self.consultations = consultations
        self.users = users
        self.responder = responder
        self.policy = policy or ConsultationPolicy()

    def _require(self, consultation_id: str) -> ConsultationRecord:
        record = self.consultations.get_by_id(consultation_id)
        if record is None:
            raise ConsultationNotFound("Consultation not found", code="consultation_not_found")
        return record

    @staticmethod
    def _enforce(decision: PolicyDecision) -> None:
        if not decision.allowed:
            raise PreconditionError(decision.message, code=decision.code)

    def _transition(
        self,
        record: ConsultationRecord,
        next_state: str,
        fields: dict | None = None,
    ) -> ConsultationRecord:
        allowed_next = self._TRANSITIONS.get(record.status, set())
        if next_state not in allowed_next:
            raise PreconditionError(f"Invalid transition: {record.status} -> {next_state}", code="invalid_transition")
        try:
            updated = self.consultations.update_status(
                record.id,
                {"status": next_state, **(fields or {})},
                expected_status=record.status,
            )
        except StaleWriteError as exc:
            logger.warning("Lost update on consultation %s: %s", record.id, exc)
            raise ConsultationConflict("Consultation was modified by another request", code="stale_status") from exc
        if updated is None:
            raise ConsultationNotFound("Consultation not found", code="consultation_not_found")
        return updated

    def get(self, consultation_id: str) -> ConsultationRecord:
        return self._require(consultation_id)

    def create(self, patient_id: str) -> ConsultationRecord:
        patient = self.users.find_user(patient_id)
        if patient is None or patient.role != ROLE_PATIENT:
            raise ConsultationNotFound("Patient not found", code="patient_not_found")
        return self.consultations.create_consultation(patient_id)

    def list_for(self, user_id: str, role: str) -> list[ConsultationRecord]:
        if role == ROLE_PATIENT:
            return self.consultations.list_by_patient(user_id)
        if role == ROLE_DOCTOR:
            return self.consultations.list_by_doctor(user_id)
        raise PreconditionError("Invalid role", code="invalid_role")

    def submit(self, consultation_id: str, doctor_id: str | None = None) -> ConsultationRecord:
        record = self._require(consultation_id)
        if record.submitted_to_doctor:
            return record

        doctor = self.users.find_user(doctor_id) if doctor_id else self.users.default_doctor()
        if doctor is None or doctor.role != ROLE_DOCTOR:
            raise PreconditionError("Doctor not available", code="doctor_unavailable")

        try:
            return self._transition(
                record,
                STATUS_WAITING,
                {"doctor_id": doctor.id, "submitted_to_doctor": True},
            )
        except ConsultationConflict:
            current = self._require(consultation_id)
            if current.submitted_to_doctor:
                return current
            raise

    def close(self, consultation_id: str) -> ConsultationRecord:
        record = self._require(consultation_id)
        self._enforce(self.policy.evaluate_close(record))
        if record.status in TERMINAL_STATES:
            return record
        return self._transition(record, STATUS_DONE, {"ended_at": next_stamp(record.updated_at)})

    def delete(self, consultation_id: str) -> str:
        self._require(consultation_id)
        self.consultations.delete_consultation(consultation_id)
        return consultation_id

    def list_messages(self, consultation_id: str) -> list[MessageRecord]:
        self._require(consultation_id)
        return self.consultations.list_messages(consultation_id)

    def send_message(
        self,
        consultation_id: str,
        *,
        sender_id: str | None,
        sender_role: str,
        content: str,
        doctor_id: str | None = None,
    ) -> MessageOutcome:
        record = self._require(consultation_id)
        if sender_role == ROLE_PATIENT and not record.submitted_to_doctor:
            record = self.submit(consultation_id, doctor_id)
        self._enforce(self.policy.evaluate_message(record, sender_role))

        message = self.consultations.append_message(consultation_id, sender_id, sender_role, content)
        if message is None:
            raise ConsultationNotFound("Consultation not found", code="consultation_not_found")

        if sender_role == ROLE_DOCTOR and record.status in SUBMITTED_STATES - TERMINAL_STATES:
            try:
                self._transition(record, STATUS_REPLIED)
            except ConsultationConflict:
                logger.info("Consultation %s changed before reply status update; keeping stored status", record.id)
        return MessageOutcome(message=message, consultation=self.consultations.get_by_id(consultation_id))

    def _generate(self, complaint: str, patient) -> str:
        try:
            text = self.responder.generate(complaint, patient)
        except Exception as exc:
            logger.warning("AI generation failed, using local response: %s", exc)
            text = generate_local_response(complaint, patient)
        if not text or not text.strip():
            text = generate_local_response(complaint, patient)
        return text

    def _persist_or_transient(
        self,
        consultation_id: str,
        sender_id: str | None,
        sender_role: str,
        content: str,
        sender_name: str | None,
    ) -> MessageRecord:
        try:
            message = self.consultations.append_message(consultation_id, sender_id, sender_role, content)
        except sqlite3.Error as exc:
            logger.error("Persist %s message failed: %s", sender_role, exc)
            message = None
        if message is not None:
            return message
        return MessageRecord(
            id=uuid.uuid4().hex,
            consultation_id=consultation_id,
            sender_id=sender_id,
            sender_role=sender_role,
            content=content,
            created_at=to_iso(utc_now()),
            sender_name=sender_name,
            transient=True,
        )

    def request_ai(self, consultation_id: str, *, patient_id: str, complaint: str) -> AiExchange:
        record = self._require(consultation_id)
        self._enforce(self.policy.evaluate_ai_request(record))
        patient = self.users.find_user(patient_id)
        if patient is None:
            raise ConsultationNotFound("Patient not found", code="patient_not_found")

        ai_text = self._generate(complaint, patient)
        patient_message = self._persist_or_transient(
            consultation_id, patient_id, ROLE_PATIENT, complaint, patient.name
        )
        ai_message = self._persist_or_transient(consultation_id, None, ROLE_AI, ai_text, AI_SENDER_NAME)

        try:
            consultation = self.consultations.get_by_id(consultation_id)
        except sqlite3.Error as exc:
            logger.error("Load consultation failed: %s", exc)
            consultation = None
        return AiExchange(
            patient_message=patient_message,
            ai_message=ai_message,
            consultation=consultation,
            degraded=[m.sender_role for m in (patient_message, ai_message) if m.transient],
        )
