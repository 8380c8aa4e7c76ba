from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any

STATUS_DRAFT = "draft"
STATUS_WAITING = "waiting"
STATUS_REPLIED = "replied"
STATUS_DONE = "done"
CONSULTATION_STATUSES = (STATUS_DRAFT, STATUS_WAITING, STATUS_REPLIED, STATUS_DONE)

ROLE_PATIENT = "patient"
ROLE_DOCTOR = "doctor"
ROLE_AI = "ai"
USER_ROLES = {ROLE_PATIENT, ROLE_DOCTOR}
SENDER_ROLES = {ROLE_PATIENT, ROLE_DOCTOR, ROLE_AI}


@dataclass
class UserRecord:
    id: str
    name: str
    age: int | None
    gender: str | None
    role: str
    username: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "UserRecord":
        return cls(
            id=row["id"],
            name=row["name"],
            age=row["age"],
            gender=row["gender"],
            role=row["role"],
            username=row["username"],
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "age": self.age,
            "gender": self.gender,
            "role": self.role,
            "username": self.username,
        }


@dataclass
class ConsultationRecord:
    id: str
    patient_id: str
    doctor_id: str | None
    status: str
    submitted_to_doctor: bool
    started_at: str
    updated_at: str
    ended_at: str | None = None
    patient_name: str | None = None
    doctor_name: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ConsultationRecord":
        keys = row.keys()
        return cls(
            id=row["id"],
            patient_id=row["patient_id"],
            doctor_id=row["doctor_id"],
            status=row["status"],
            submitted_to_doctor=bool(row["submitted_to_doctor"]),
            started_at=row["started_at"],
            updated_at=row["updated_at"],
            ended_at=row["ended_at"],
            patient_name=row["patient_name"] if "patient_name" in keys else None,
            doctor_name=row["doctor_name"] if "doctor_name" in keys else None,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "patientId": self.patient_id,
            "doctorId": self.doctor_id,
            "status": self.status,
            "submittedToDoctor": self.submitted_to_doctor,
            "startedAt": self.started_at,
            "updatedAt": self.updated_at,
            "endedAt": self.ended_at,
            "patientName": self.patient_name,
            "doctorName": self.doctor_name,
        }


@dataclass
class MessageRecord:
    id: str
    consultation_id: str
    sender_id: str | None
    sender_role: str
    content: str
    created_at: str
    sender_name: str | None = None
    transient: bool = False

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "MessageRecord":
        return cls(
            id=row["id"],
            consultation_id=row["consultation_id"],
            sender_id=row["sender_id"],
            sender_role=row["sender_role"],
            content=row["content"],
            created_at=row["created_at"],
            sender_name=row["sender_name"] if "sender_name" in row.keys() else None,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "consultationId": self.consultation_id,
            "senderId": self.sender_id,
            "senderRole": self.sender_role,
            "content": self.content,
            "createdAt": self.created_at,
            "senderName": self.sender_name,
        }
