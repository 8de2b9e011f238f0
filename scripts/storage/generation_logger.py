"""
Generation Logger

Per-session structured log for one generation run. Every entry is kept
in memory, persisted to idea_generation_logs, and echoed to the console.
The session status row is created on construction and moved to a
terminal status exactly once via finish().

Persistence is best effort: a failing datastore never breaks a run.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Optional, Any, Callable

from storage.generation_state import (
    GenerationState,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED
)


class GenerationStage(Enum):
    INIT = "init"
    CONFIG_VERIFY = "config_verify"
    PROMPT_BUILD = "prompt_build"
    API_CALL = "api_call"
    RESPONSE_PARSE = "response_parse"
    DUPLICATE_CHECK = "duplicate_check"
    DB_SAVE = "database_save"
    COMPLETE = "complete"
    FAILED = "failed"
    WAITING = "waiting"


class LogLevel(Enum):
    DEBUG = "debug"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LEVEL_MARKERS = {
    LogLevel.DEBUG: "..",
    LogLevel.INFO: "->",
    LogLevel.SUCCESS: "OK",
    LogLevel.WARNING: "!!",
    LogLevel.ERROR: "XX",
}


@dataclass
class LogEntry:
    """One log line of a generation session."""
    session_id: str
    stage: GenerationStage
    level: LogLevel
    message: str
    timestamp: datetime
    duration_ms: int
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "stage": self.stage.value,
            "level": self.level.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
            "details": self.details
        }


class GenerationLogger:
    """Collects, persists and prints log entries for one session."""

    def __init__(
        self,
        session_id: str,
        state: Optional[GenerationState] = None,
        slot_number: Optional[int] = None,
        initial_status: str = STATUS_IN_PROGRESS,
        initial_stage: GenerationStage = GenerationStage.INIT,
        echo: bool = True,
        clock: Callable[[], float] = time.monotonic
    ):
        self.session_id = session_id
        self.state = state
        self.slot_number = slot_number
        self.echo = echo
        self.clock = clock

        self.logs: List[LogEntry] = []
        self.start_time = clock()
        self.stage_start_time = self.start_time
        self.final_status: Optional[str] = None

        self._persist(
            "initialize status",
            lambda: self.state.update_status(
                session_id, initial_status, initial_stage.value, slot_number=slot_number
            )
        )

    def _persist(self, what: str, action: Callable[[], None]) -> None:
        if self.state is None:
            return
        try:
            action()
        except Exception as e:
            print(f"Warning: Could not {what} for session {self.session_id}: {e}")

    def log(
        self,
        stage: GenerationStage,
        level: LogLevel,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ) -> LogEntry:
        now = self.clock()
        entry = LogEntry(
            session_id=self.session_id,
            stage=stage,
            level=level,
            message=message,
            timestamp=datetime.now(timezone.utc),
            duration_ms=int((now - self.stage_start_time) * 1000),
            details=details
        )
        self.logs.append(entry)
        self.stage_start_time = now

        def write():
            self.state.add_log(
                self.session_id, stage.value, level.value, message,
                details=details, duration_ms=entry.duration_ms, created_at=entry.timestamp
            )
            self.state.set_current_stage(self.session_id, stage.value)

        self._persist("save log entry", write)

        if self.echo:
            suffix = f" {details}" if details else ""
            print(f"[{entry.timestamp.strftime('%H:%M:%S')}] {_LEVEL_MARKERS[level]} "
                  f"[{stage.value.upper()}] {message}{suffix}")
        return entry

    def info(self, stage: GenerationStage, message: str, details: Optional[Dict] = None) -> LogEntry:
        return self.log(stage, LogLevel.INFO, message, details)

    def success(self, stage: GenerationStage, message: str, details: Optional[Dict] = None) -> LogEntry:
        return self.log(stage, LogLevel.SUCCESS, message, details)

    def warning(self, stage: GenerationStage, message: str, details: Optional[Dict] = None) -> LogEntry:
        return self.log(stage, LogLevel.WARNING, message, details)

    def debug(self, stage: GenerationStage, message: str, details: Optional[Dict] = None) -> LogEntry:
        return self.log(stage, LogLevel.DEBUG, message, details)

    def error(self, stage: GenerationStage, message: str, details: Optional[Dict] = None) -> LogEntry:
        return self.log(stage, LogLevel.ERROR, message, details)

    def finish(
        self,
        status: str,
        error_message: Optional[str] = None,
        idea_id: Optional[str] = None
    ) -> bool:
        """
        Move the session to a terminal status. Only the first call has effect.

        Returns:
            True if this call set the status
        """
        if self.final_status is not None:
            return False
        self.final_status = status

        stage = GenerationStage.COMPLETE if status == STATUS_COMPLETED else GenerationStage.FAILED
        self._persist(
            "update status",
            lambda: self.state.update_status(
                self.session_id, status, stage.value,
                slot_number=self.slot_number,
                error_message=error_message,
                idea_id=idea_id
            )
        )
        return True

    def elapsed_ms(self) -> int:
        return int((self.clock() - self.start_time) * 1000)

    def get_summary(self) -> Dict[str, Any]:
        stages: Dict[str, int] = {}
        error_count = 0
        warning_count = 0
        for entry in self.logs:
            stages[entry.stage.value] = stages.get(entry.stage.value, 0) + entry.duration_ms
            if entry.level == LogLevel.ERROR:
                error_count += 1
            elif entry.level == LogLevel.WARNING:
                warning_count += 1

        last = self.logs[-1] if self.logs else None
        success = (
            last is not None
            and last.stage == GenerationStage.COMPLETE
            and last.level == LogLevel.SUCCESS
        )

        return {
            "session_id": self.session_id,
            "total_duration_ms": self.elapsed_ms(),
            "stages": stages,
            "success": success,
            "error_count": error_count,
            "warning_count": warning_count,
            "final_status": self.final_status
        }

