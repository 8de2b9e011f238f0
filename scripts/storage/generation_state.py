"""
Generation State store (SQLite)

Everything the pipeline tracks besides the ideas themselves:
- generation_slots: recurring auto-generation schedule per slot
- generation_status: one row per session (waiting / in_progress / completed / failed)
- idea_generation_logs: ordered, structured log entries per session
- api_keys: stored model credentials, at most one active per provider

Timestamps are stored as UTC ISO-8601 strings with a fixed format so
they sort and compare lexically.
"""

import sqlite3
import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Dict, Optional, Any

from pipeline_errors import ValidationError
from storage.idea_memory import default_db_path


TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 1440

STATUS_WAITING = "waiting"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def from_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


@dataclass
class GenerationSlot:
    """A numbered slot that may auto-generate on an interval."""
    slot_number: int
    is_enabled: bool = True
    auto_generate: bool = False
    interval_minutes: int = 60
    next_auto_generate_at: Optional[datetime] = None
    last_auto_generate_at: Optional[datetime] = None
    profile_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> 'GenerationSlot':
        return cls(
            slot_number=row["slot_number"],
            is_enabled=bool(row["is_enabled"]),
            auto_generate=bool(row["auto_generate"]),
            interval_minutes=row["auto_generate_interval_minutes"],
            next_auto_generate_at=from_timestamp(row["next_auto_generate_at"]),
            last_auto_generate_at=from_timestamp(row["last_auto_generate_at"]),
            profile_id=row["profile_id"]
        )


class GenerationState:
    """SQLite-backed slots, session status, session logs and credentials."""

    def __init__(self, db_path: str = None):
        if db_path is None:
            db_path = default_db_path()
        self.db_path = db_path

        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._init_sqlite()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_sqlite(self):
        """Initialize SQLite database with required tables."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS generation_slots (
                slot_number INTEGER PRIMARY KEY,
                profile_id TEXT,
                is_enabled INTEGER DEFAULT 1,
                auto_generate INTEGER DEFAULT 0,
                auto_generate_interval_minutes INTEGER DEFAULT 60
                    CHECK (auto_generate_interval_minutes BETWEEN 1 AND 1440),
                next_auto_generate_at TEXT,
                last_auto_generate_at TEXT,
                updated_at TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS generation_status (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT UNIQUE NOT NULL,
                status TEXT NOT NULL,
                current_stage TEXT,
                slot_number INTEGER,
                started_at TEXT,
                updated_at TEXT,
                completed_at TEXT,
                error_message TEXT,
                idea_id TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS idea_generation_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                stage TEXT NOT NULL,
                level TEXT NOT NULL,
                message TEXT NOT NULL,
                details JSON,
                duration_ms INTEGER,
                created_at TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS api_keys (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT,
                provider TEXT NOT NULL,
                api_key TEXT NOT NULL,
                model TEXT,
                is_active INTEGER DEFAULT 0,
                created_at TEXT
            )
        ''')

        cursor.execute('''
            CREATE INDEX IF NOT EXISTS idx_generation_logs_session
            ON idea_generation_logs(session_id, id)
        ''')
        cursor.execute('''
            CREATE INDEX IF NOT EXISTS idx_generation_status_slot
            ON generation_status(slot_number, status)
        ''')

        conn.commit()
        conn.close()

    # =========================================================================
    # Slots
    # =========================================================================

    def save_slot(self, slot: GenerationSlot) -> None:
        """Insert or replace a slot definition."""
        if not MIN_INTERVAL_MINUTES <= slot.interval_minutes <= MAX_INTERVAL_MINUTES:
            raise ValidationError(
                f"Auto-generate interval must be between {MIN_INTERVAL_MINUTES} "
                f"and {MAX_INTERVAL_MINUTES} minutes",
                details={"slot_number": slot.slot_number, "interval": slot.interval_minutes}
            )

        conn = sqlite3.connect(self.db_path)
        conn.execute('''
            INSERT OR REPLACE INTO generation_slots
                (slot_number, profile_id, is_enabled, auto_generate,
                 auto_generate_interval_minutes, next_auto_generate_at,
                 last_auto_generate_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ''', (
            slot.slot_number, slot.profile_id, int(slot.is_enabled), int(slot.auto_generate),
            slot.interval_minutes, to_timestamp(slot.next_auto_generate_at),
            to_timestamp(slot.last_auto_generate_at), to_timestamp(utcnow())
        ))
        conn.commit()
        conn.close()

    def get_slot(self, slot_number: int) -> Optional[GenerationSlot]:
        conn = self._connect()
        row = conn.execute(
            "SELECT * FROM generation_slots WHERE slot_number = ?", (slot_number,)
        ).fetchone()
        conn.close()
        return GenerationSlot.from_row(row) if row else None

    def list_slots(self) -> List[GenerationSlot]:
        conn = self._connect()
        rows = conn.execute("SELECT * FROM generation_slots ORDER BY slot_number").fetchall()
        conn.close()
        return [GenerationSlot.from_row(row) for row in rows]

    def get_due_slots(self, now: datetime) -> List[GenerationSlot]:
        """Enabled auto-generating slots whose next run is at or before now, soonest first."""
        conn = self._connect()
        rows = conn.execute('''
            SELECT * FROM generation_slots
            WHERE auto_generate = 1
              AND is_enabled = 1
              AND next_auto_generate_at IS NOT NULL
              AND next_auto_generate_at <= ?
            ORDER BY next_auto_generate_at ASC
        ''', (to_timestamp(now),)).fetchall()
        conn.close()
        return [GenerationSlot.from_row(row) for row in rows]

    def get_upcoming_slots(self, now: datetime) -> List[GenerationSlot]:
        """Enabled auto-generating slots not yet due."""
        conn = self._connect()
        rows = conn.execute('''
            SELECT * FROM generation_slots
            WHERE auto_generate = 1
              AND is_enabled = 1
              AND next_auto_generate_at IS NOT NULL
              AND next_auto_generate_at > ?
            ORDER BY slot_number
        ''', (to_timestamp(now),)).fetchall()
        conn.close()
        return [GenerationSlot.from_row(row) for row in rows]

    def set_next_auto_generate_at(self, slot_number: int, when: datetime) -> None:
        conn = sqlite3.connect(self.db_path)
        conn.execute('''
            UPDATE generation_slots
            SET next_auto_generate_at = ?, updated_at = ?
            WHERE slot_number = ?
        ''', (to_timestamp(when), to_timestamp(utcnow()), slot_number))
        conn.commit()
        conn.close()

    def set_last_auto_generate_at(self, slot_number: int, when: datetime) -> None:
        conn = sqlite3.connect(self.db_path)
        conn.execute('''
            UPDATE generation_slots
            SET last_auto_generate_at = ?, updated_at = ?
            WHERE slot_number = ?
        ''', (to_timestamp(when), to_timestamp(utcnow()), slot_number))
        conn.commit()
        conn.close()

    # =========================================================================
    # Session status
    # =========================================================================

    def update_status(
        self,
        session_id: str,
        status: str,
        current_stage: str,
        slot_number: Optional[int] = None,
        error_message: Optional[str] = None,
        idea_id: Optional[str] = None
    ) -> None:
        """Create or update the status row for a session."""
        now = to_timestamp(utcnow())
        completed_at = now if status in (STATUS_COMPLETED, STATUS_FAILED) else None

        conn = sqlite3.connect(self.db_path)
        conn.execute('''
            INSERT INTO generation_status
                (session_id, status, current_stage, slot_number, started_at,
                 updated_at, completed_at, error_message, idea_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
                status = excluded.status,
                current_stage = excluded.current_stage,
                slot_number = COALESCE(excluded.slot_number, generation_status.slot_number),
                updated_at = excluded.updated_at,
                completed_at = excluded.completed_at,
                error_message = excluded.error_message,
                idea_id = COALESCE(excluded.idea_id, generation_status.idea_id)
        ''', (session_id, status, current_stage, slot_number, now, now,
              completed_at, error_message, idea_id))
        conn.commit()
        conn.close()

    def set_current_stage(self, session_id: str, stage: str) -> None:
        conn = sqlite3.connect(self.db_path)
        conn.execute('''
            UPDATE generation_status SET current_stage = ?, updated_at = ?
            WHERE session_id = ?
        ''', (stage, to_timestamp(utcnow()), session_id))
        conn.commit()
        conn.close()

    def get_session_status(self, session_id: str) -> Optional[Dict]:
        conn = self._connect()
        row = conn.execute(
            "SELECT * FROM generation_status WHERE session_id = ?", (session_id,)
        ).fetchone()
        conn.close()
        return dict(row) if row else None

    def has_in_progress_session(self, slot_number: int) -> bool:
        conn = self._connect()
        row = conn.execute('''
            SELECT 1 FROM generation_status
            WHERE slot_number = ? AND status = ?
            LIMIT 1
        ''', (slot_number, STATUS_IN_PROGRESS)).fetchone()
        conn.close()
        return row is not None

    def get_recent_sessions(self, limit: int = 10) -> List[Dict]:
        conn = self._connect()
        rows = conn.execute('''
            SELECT * FROM generation_status
            WHERE status != ?
            ORDER BY updated_at DESC LIMIT ?
        ''', (STATUS_WAITING, limit)).fetchall()
        conn.close()
        return [dict(row) for row in rows]

    # =========================================================================
    # Session logs
    # =========================================================================

    def add_log(
        self,
        session_id: str,
        stage: str,
        level: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
        created_at: Optional[datetime] = None
    ) -> None:
        conn = sqlite3.connect(self.db_path)
        conn.execute('''
            INSERT INTO idea_generation_logs
                (session_id, stage, level, message, details, duration_ms, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (
            session_id, stage, level, message,
            json.dumps(details, default=str) if details else None,
            duration_ms, to_timestamp(created_at or utcnow())
        ))
        conn.commit()
        conn.close()

    def get_session_logs(self, session_id: str) -> List[Dict]:
        """Log entries for a session in insertion order."""
        conn = self._connect()
        rows = conn.execute('''
            SELECT * FROM idea_generation_logs WHERE session_id = ? ORDER BY id
        ''', (session_id,)).fetchall()
        conn.close()

        logs = []
        for row in rows:
            entry = dict(row)
            entry["details"] = json.loads(entry["details"]) if entry["details"] else None
            logs.append(entry)
        return logs

    # =========================================================================
    # Credentials
    # =========================================================================

    def set_api_key(self, provider: str, api_key: str, model: str = None, name: str = None) -> None:
        """Store a key and make it the only active one for its provider."""
        conn = sqlite3.connect(self.db_path)
        conn.execute("UPDATE api_keys SET is_active = 0 WHERE provider = ?", (provider,))
        conn.execute('''
            INSERT INTO api_keys (name, provider, api_key, model, is_active, created_at)
            VALUES (?, ?, ?, ?, 1, ?)
        ''', (name or provider, provider, api_key, model, to_timestamp(utcnow())))
        conn.commit()
        conn.close()

    def get_active_api_key(self, provider: str) -> Optional[Dict]:
        conn = self._connect()
        row = conn.execute('''
            SELECT provider, api_key, model FROM api_keys
            WHERE provider = ? AND is_active = 1
            ORDER BY id DESC LIMIT 1
        ''', (provider,)).fetchone()
        conn.close()
        return dict(row) if row else None
