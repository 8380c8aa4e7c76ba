from __future__ import annotations

import sqlite3
import uuid
from typing import Any

from .database import SQLiteDB
from .records import STATUS_DRAFT, ConsultationRecord, MessageRecord
from .time_utils import next_stamp

_CONSULTATION_SELECT = """
    SELECT c.id, c.patient_id, c.doctor_id, c.status, c.submitted_to_doctor,
           c.started_at, c.updated_at, c.ended_at,
           p.name AS patient_name, d.name AS doctor_name
    FROM consultations c
    LEFT JOIN users p ON p.id = c.patient_id
    LEFT JOIN users d ON d.id = c.doctor_id
"""

_MESSAGE_SELECT = """
    SELECT m.id, m.consultation_id, m.sender_id, m.sender_role, m.content, m.created_at,
           u.name AS sender_name
    FROM messages m
    LEFT JOIN users u ON u.id = m.sender_id
"""

_UPDATABLE_FIELDS = {"doctor_id", "status", "submitted_to_doctor", "ended_at"}


class StaleWriteError(Exception):
    """The row changed status between the caller's read and this write."""

    def __init__(self, consultation_id: str, expected: str, actual: str) -> None:
        super().__init__(f"Consultation {consultation_id} is '{actual}', expected '{expected}'")
        self.consultation_id = consultation_id
        self.expected = expected
        self.actual = actual


class ConsultationStore:
    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def _fetch(self, conn: sqlite3.Connection, consultation_id: str) -> ConsultationRecord | None:
        row = conn.execute(f"{_CONSULTATION_SELECT} WHERE c.id = ?", (consultation_id,)).fetchone()
        return ConsultationRecord.from_row(row) if row else None

    def create_consultation(self, patient_id: str) -> ConsultationRecord:
        consultation_id = uuid.uuid4().hex
        now = next_stamp(None)
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO consultations (
                  id, patient_id, doctor_id, status, submitted_to_doctor,
                  started_at, updated_at, ended_at
                )
                VALUES (?, ?, NULL, ?, 0, ?, ?, NULL)
                """,
                (consultation_id, patient_id, STATUS_DRAFT, now, now),
            )
            record = self._fetch(conn, consultation_id)
        assert record is not None
        return record

    def get_by_id(self, consultation_id: str) -> ConsultationRecord | None:
        with self._db.connection() as conn:
            return self._fetch(conn, consultation_id)

    def update_status(
        self,
        consultation_id: str,
        fields: dict[str, Any],
        *,
        expected_status: str | None = None,
    ) -> ConsultationRecord | None:
        """Apply ``fields`` and stamp a fresh ``updated_at``.

        With ``expected_status`` the write only happens if the stored status
        still matches; otherwise ``StaleWriteError`` is raised and nothing
        changes. Returns None when the consultation does not exist.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported consultation fields: {', '.join(sorted(unknown))}")

        with self._db.connection(immediate=True) as conn:
            row = conn.execute(
                "SELECT status, updated_at FROM consultations WHERE id = ?",
                (consultation_id,),
            ).fetchone()
            if not row:
                return None
            if expected_status is not None and row["status"] != expected_status:
                raise StaleWriteError(consultation_id, expected_status, row["status"])

            values = dict(fields)
            if "submitted_to_doctor" in values:
                values["submitted_to_doctor"] = 1 if values["submitted_to_doctor"] else 0
            values["updated_at"] = next_stamp(row["updated_at"])
            columns = sorted(values)
            assignments = ", ".join(f"{column} = ?" for column in columns)
            conn.execute(
                f"UPDATE consultations SET {assignments} WHERE id = ?",
                (*[values[column] for column in columns], consultation_id),
            )
            return self._fetch(conn, consultation_id)

    def append_message(
        self,
        consultation_id: str,
        sender_id: str | None,
        sender_role: str,
        content: str,
    ) -> MessageRecord | None:
        message_id = uuid.uuid4().hex
        with self._db.connection(immediate=True) as conn:
            row = conn.execute(
                "SELECT updated_at FROM consultations WHERE id = ?",
                (consultation_id,),
            ).fetchone()
            if not row:
                return None
            now = next_stamp(row["updated_at"])
            conn.execute(
                """
                INSERT INTO messages (id, consultation_id, sender_id, sender_role, content, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (message_id, consultation_id, sender_id or None, sender_role, content, now),
            )
            conn.execute(
                "UPDATE consultations SET updated_at = ? WHERE id = ?",
                (now, consultation_id),
            )
            message_row = conn.execute(f"{_MESSAGE_SELECT} WHERE m.id = ?", (message_id,)).fetchone()
        return MessageRecord.from_row(message_row)

    def list_messages(self, consultation_id: str) -> list[MessageRecord]:
        with self._db.connection() as conn:
            rows = conn.execute(
                f"{_MESSAGE_SELECT} WHERE m.consultation_id = ? ORDER BY m.created_at ASC, m.rowid ASC",
                (consultation_id,),
            ).fetchall()
        return [MessageRecord.from_row(row) for row in rows]

    def list_by_patient(self, patient_id: str) -> list[ConsultationRecord]:
        with self._db.connection() as conn:
            rows = conn.execute(
                f"{_CONSULTATION_SELECT} WHERE c.patient_id = ? ORDER BY c.updated_at DESC",
                (patient_id,),
            ).fetchall()
        return [ConsultationRecord.from_row(row) for row in rows]

    def list_by_doctor(self, doctor_id: str) -> list[ConsultationRecord]:
        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                {_CONSULTATION_SELECT}
                WHERE c.doctor_id = ? AND c.submitted_to_doctor = 1
                ORDER BY c.updated_at DESC
                """,
                (doctor_id,),
            ).fetchall()
        return [ConsultationRecord.from_row(row) for row in rows]

    def delete_consultation(self, consultation_id: str) -> bool:
        with self._db.connection() as conn:
            deleted = conn.execute("DELETE FROM consultations WHERE id = ?", (consultation_id,)).rowcount
        return deleted > 0
