from __future__ import annotations

from dataclasses import dataclass, field

from storage.records import (
    CONSULTATION_STATUSES,
    ROLE_AI,
    ROLE_DOCTOR,
    ROLE_PATIENT,
    SENDER_ROLES,
    STATUS_DONE,
    STATUS_DRAFT,
    STATUS_REPLIED,
    STATUS_WAITING,
    USER_ROLES,
    ConsultationRecord,
    MessageRecord,
)

TERMINAL_STATES = {STATUS_DONE}
SUBMITTED_STATES = {STATUS_WAITING, STATUS_REPLIED, STATUS_DONE}


@dataclass
class MessageOutcome:
    message: MessageRecord
    consultation: ConsultationRecord | None

    def as_envelope(self) -> dict:
        return {
            "message": self.message.as_dict(),
            "consultation": self.consultation.as_dict() if self.consultation else None,
        }


@dataclass
class AiExchange:
    patient_message: MessageRecord
    ai_message: MessageRecord
    consultation: ConsultationRecord | None
    degraded: list[str] = field(default_factory=list)

    def as_envelope(self) -> dict:
        return {
            "patientMessage": self.patient_message.as_dict(),
            "aiMessage": self.ai_message.as_dict(),
            "consultation": self.consultation.as_dict() if self.consultation else None,
        }


def invariant_violations(record: ConsultationRecord) -> list[str]:
    problems: list[str] = []
    if record.status not in CONSULTATION_STATUSES:
        problems.append(f"unknown status {record.status!r}")
    if record.submitted_to_doctor != (record.status != STATUS_DRAFT):
        problems.append("submittedToDoctor must be true exactly when status is not draft")
    if record.submitted_to_doctor and not record.doctor_id:
        problems.append("submitted consultation has no doctor")
    if (record.ended_at is not None) != (record.status == STATUS_DONE):
        problems.append("endedAt must be set exactly when status is done")
    return problems


__all__ = [
    "CONSULTATION_STATUSES",
    "ROLE_AI",
    "ROLE_DOCTOR",
    "ROLE_PATIENT",
    "SENDER_ROLES",
    "STATUS_DONE",
    "STATUS_DRAFT",
    "STATUS_REPLIED",
    "STATUS_WAITING",
    "SUBMITTED_STATES",
    "TERMINAL_STATES",
    "USER_ROLES",
    "AiExchange",
    "MessageOutcome",
    "invariant_violations",
]
