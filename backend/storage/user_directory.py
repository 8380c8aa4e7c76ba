from __future__ import annotations

import logging
import re
import sqlite3
import uuid
from typing import Any

from passlib.context import CryptContext

from .database import SQLiteDB
from .records import ROLE_DOCTOR, ROLE_PATIENT, USER_ROLES, UserRecord
from .time_utils import to_iso, utc_now

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

DEMO_DOCTORS: list[dict[str, Any]] = [
    {"name": "Dr. Maya Pratama - Spesialis Penyakit Dalam", "age": 41, "gender": "Perempuan", "username": "drmaya"},
    {"name": "Dr. Andi Wijaya - Spesialis Anak", "age": 38, "gender": "Laki-laki", "username": "drandi"},
    {"name": "Dr. Siti Aulia - Spesialis Kebidanan dan Kandungan", "age": 36, "gender": "Perempuan", "username": "drsiti"},
    {"name": "Dr. Rafi Pratama - Spesialis Kulit dan Kelamin", "age": 35, "gender": "Laki-laki", "username": "drrafi"},
    {"name": "Dr. Nia Kusuma - Spesialis THT", "age": 40, "gender": "Perempuan", "username": "drnia"},
    {"name": "Dr. Budi Santoso - Spesialis Mata", "age": 45, "gender": "Laki-laki", "username": "drbudi"},
    {"name": "Dr. Intan Putri - Spesialis Saraf", "age": 39, "gender": "Perempuan", "username": "drintan"},
    {"name": "Dr. Dimas Prakoso - Spesialis Jantung", "age": 42, "gender": "Laki-laki", "username": "drdimas"},
    {"name": "Dr. Laila Fitria - Spesialis Bedah", "age": 37, "gender": "Perempuan", "username": "drlaila"},
    {"name": "Dr. Rizky Ananda - Spesialis Ortopedi", "age": 43, "gender": "Laki-laki", "username": "drrizky"},
]
DEMO_PATIENTS: list[dict[str, Any]] = [
    {"name": "Ayu Lestari", "age": 25, "gender": "Perempuan", "username": "ayu"},
    {"name": "Bima Hartanto", "age": 32, "gender": "Laki-laki", "username": "bima"},
]
DEMO_DOCTOR_PASSWORD = "dokter123"
DEMO_PATIENT_PASSWORD = "pasien123"

_SPECIALTY_RE = re.compile(r"\bSpesialis\b|\bSp\.", re.IGNORECASE)
_USER_COLUMNS = "id, name, age, gender, role, username"


class DuplicateUsernameError(Exception):
    pass


def hash_password(plain_password: str) -> str:
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


class UserDirectory:
    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def find_user(self, user_id: str) -> UserRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,)).fetchone()
        return UserRecord.from_row(row) if row else None

    def list_users(self, role: str | None = None) -> list[UserRecord]:
        sql = f"SELECT {_USER_COLUMNS} FROM users"
        params: tuple[Any, ...] = ()
        if role:
            sql += " WHERE role = ?"
            params = (role,)
        sql += " ORDER BY name ASC"
        with self._db.connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [UserRecord.from_row(row) for row in rows]

    def default_doctor(self) -> UserRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE role = ? ORDER BY name ASC LIMIT 1",
                (ROLE_DOCTOR,),
            ).fetchone()
        return UserRecord.from_row(row) if row else None

    def create_user(
        self,
        username: str,
        password: str,
        role: str,
        *,
        name: str | None = None,
        age: int | None = None,
        gender: str | None = None,
    ) -> UserRecord:
        if role not in USER_ROLES:
            raise ValueError(f"Unsupported role: {role}")
        user_id = uuid.uuid4().hex
        now = to_iso(utc_now())
        try:
            with self._db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO users (id, name, age, gender, role, username, password_hash, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (user_id, name or username, age, gender, role, username, hash_password(password), now, now),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateUsernameError(f"Username already taken: {username}") from exc
        return UserRecord(id=user_id, name=name or username, age=age, gender=gender, role=role, username=username)

    def authenticate(self, username: str, password: str) -> UserRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS}, password_hash FROM users WHERE username = ?",
                (username,),
            ).fetchone()
        if not row or not row["password_hash"]:
            return None
        if not verify_password(password, row["password_hash"]):
            return None
        return UserRecord.from_row(row)

    def rename_user(self, user_id: str, name: str) -> None:
        with self._db.connection() as conn:
            conn.execute(
                "UPDATE users SET name = ?, updated_at = ? WHERE id = ?",
                (name, to_iso(utc_now()), user_id),
            )

    def seed_if_needed(self) -> dict[str, int]:
        """Insert missing demo accounts and fix doctor names without a specialty.

        Driven entirely by what is already stored, so running it from several
        processes or on every start is harmless.
        """
        demo_users = [(entry, ROLE_DOCTOR, DEMO_DOCTOR_PASSWORD) for entry in DEMO_DOCTORS] + [
            (entry, ROLE_PATIENT, DEMO_PATIENT_PASSWORD) for entry in DEMO_PATIENTS
        ]
        usernames = [entry["username"] for entry, _, _ in demo_users]
        placeholders = ", ".join("?" for _ in usernames)
        with self._db.connection() as conn:
            rows = conn.execute(
                f"SELECT id, username, name, role FROM users WHERE username IN ({placeholders})",
                tuple(usernames),
            ).fetchall()
        existing = {row["username"]: row for row in rows}

        inserted = 0
        for entry, role, password in demo_users:
            if entry["username"] in existing:
                continue
            try:
                self.create_user(
                    entry["username"],
                    password,
                    role,
                    name=entry["name"],
                    age=entry["age"],
                    gender=entry["gender"],
                )
                inserted += 1
            except DuplicateUsernameError:
                # Another process seeded it between our read and insert.
                continue

        renamed = 0
        for doctor in DEMO_DOCTORS:
            row = existing.get(doctor["username"])
            if not row or row["role"] != ROLE_DOCTOR:
                continue
            current_name = row["name"] or ""
            if _SPECIALTY_RE.search(current_name) or current_name == doctor["name"]:
                continue
            self.rename_user(row["id"], doctor["name"])
            renamed += 1

        if inserted or renamed:
            logger.info("Seeded demo accounts: inserted=%s renamed=%s", inserted, renamed)
        return {"inserted": inserted, "renamed": renamed}
