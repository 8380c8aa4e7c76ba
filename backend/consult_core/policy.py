from __future__ import annotations

from dataclasses import dataclass

from storage.records import ConsultationRecord

from .models import ROLE_AI, ROLE_DOCTOR, SENDER_ROLES, STATUS_DONE


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    code: str
    message: str


_ALLOWED = PolicyDecision(True, "ok", "allowed")


class ConsultationPolicy:
    """Role-based preconditions on a consultation, evaluated before any write."""

    def evaluate_message(self, consultation: ConsultationRecord, sender_role: str) -> PolicyDecision:
        if sender_role not in SENDER_ROLES:
            return PolicyDecision(False, "invalid_sender_role", "Invalid senderRole")
        if sender_role == ROLE_DOCTOR and not consultation.submitted_to_doctor:
            return PolicyDecision(False, "not_submitted", "Consultation has not been submitted to doctor")
        if sender_role == ROLE_AI and consultation.submitted_to_doctor:
            return self.evaluate_ai_request(consultation)
        return _ALLOWED

    def evaluate_ai_request(self, consultation: ConsultationRecord) -> PolicyDecision:
        if consultation.submitted_to_doctor:
            return PolicyDecision(
                False,
                "ai_after_submission",
                "AI response only available before submission to doctor",
            )
        return _ALLOWED

    def evaluate_close(self, consultation: ConsultationRecord) -> PolicyDecision:
        if consultation.status == STATUS_DONE:
            return _ALLOWED
        if not consultation.submitted_to_doctor:
            return PolicyDecision(False, "not_submitted", "Consultation has not been submitted to doctor")
        return _ALLOWED
