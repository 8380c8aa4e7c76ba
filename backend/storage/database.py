from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class SQLiteDB:
    def __init__(self, db_path: str) -> None:
        self._path = Path(db_path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    @property
    def path(self) -> str:
        return str(self._path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and rolls back on error.

        ``immediate=True`` takes the write lock up front so a read followed by
        a write inside the block is atomic with respect to other writers.
        """
        conn = self._connect()
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self.connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                  id TEXT PRIMARY KEY,
                  name TEXT NOT NULL,
                  age INTEGER,
                  gender TEXT,
                  role TEXT NOT NULL CHECK (role IN ('patient', 'doctor')),
                  username TEXT UNIQUE NOT NULL,
                  password_hash TEXT,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS consultations (
                  id TEXT PRIMARY KEY,
                  patient_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                  doctor_id TEXT REFERENCES users(id) ON DELETE SET NULL,
                  status TEXT NOT NULL,
                  submitted_to_doctor INTEGER NOT NULL DEFAULT 0,
                  started_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL,
                  ended_at TEXT
                );

                CREATE TABLE IF NOT EXISTS messages (
                  id TEXT PRIMARY KEY,
                  consultation_id TEXT NOT NULL REFERENCES consultations(id) ON DELETE CASCADE,
                  sender_id TEXT,
                  sender_role TEXT NOT NULL CHECK (sender_role IN ('patient', 'doctor', 'ai')),
                  content TEXT NOT NULL,
                  created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_users_role_name
                  ON users(role, name);
                CREATE INDEX IF NOT EXISTS idx_consultations_patient_updated
                  ON consultations(patient_id, updated_at DESC);
                CREATE INDEX IF NOT EXISTS idx_consultations_doctor_updated
                  ON consultations(doctor_id, updated_at DESC);
                CREATE INDEX IF NOT EXISTS idx_messages_consultation_created
                  ON messages(consultation_id, created_at);
                """
            )
