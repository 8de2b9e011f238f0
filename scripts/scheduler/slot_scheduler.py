"""
Slot Scheduler

Background auto-generation for generation slots. One daemon worker
thread runs two polls:

- check_and_generate (every 30s): runs the orchestrator for every due
  slot, one slot at a time, soonest due first
- log_countdowns (every 60s): writes "Next auto-generation in N minutes"
  entries for slots that are not yet due

A slot with a session still in_progress is skipped without being
rescheduled. Otherwise the slot's next run time is advanced before the
orchestrator is invoked, so a crash mid-run cannot re-fire immediately.

Usage:
    scheduler = SlotScheduler(orchestrator, state)
    scheduler.start()
    ...
    scheduler.stop()
"""

import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from run_generation import IdeaGenerationOrchestrator, GenerationRequest
from storage.generation_state import GenerationState, GenerationSlot, STATUS_WAITING, utcnow
from storage.generation_logger import GenerationStage, LogLevel


DEFAULT_CHECK_INTERVAL = 30
DEFAULT_COUNTDOWN_INTERVAL = 60


@dataclass
class SlotRunOutcome:
    """What happened to one due slot during a poll."""
    slot_number: int
    status: str
    session_id: Optional[str] = None
    idea_id: Optional[str] = None
    error: Optional[str] = None


def countdown_message(minutes: int) -> str:
    if minutes == 1:
        return "Next auto-generation in 1 minute"
    return f"Next auto-generation in {minutes} minutes"


class SlotScheduler:
    """Polls generation slots and triggers due generations."""

    def __init__(
        self,
        orchestrator: IdeaGenerationOrchestrator,
        state: GenerationState,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        countdown_interval: float = DEFAULT_COUNTDOWN_INTERVAL,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Args:
            orchestrator: Runs one generation
            state: Slot, status and log store
            check_interval: Seconds between due-slot polls
            countdown_interval: Seconds between countdown polls
            clock: Returns the current UTC time (injectable for tests)
        """
        self.orchestrator = orchestrator
        self.state = state
        self.check_interval = check_interval
        self.countdown_interval = countdown_interval
        self.clock = clock

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._check_lock = threading.Lock()
        self.last_countdown_minutes: Dict[int, int] = {}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_started(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_started:
            print("[SlotScheduler] Already running")
            return

        print(f"[SlotScheduler] Starting scheduler (checking every {self.check_interval}s, "
              f"countdown logs every {self.countdown_interval}s)")
        # One event per run; a stopped loop never sees a later start()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run_loop,
            args=(self._stop_event,),
            name="slot-scheduler",
            daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop polling. A generation already in flight is allowed to finish."""
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and timeout is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self.last_countdown_minutes.clear()
        print("[SlotScheduler] Stopped")

    def _run_loop(self, stop_event: threading.Event) -> None:
        next_check = time.monotonic()
        next_countdown = next_check

        while not stop_event.is_set():
            now = time.monotonic()
            if now >= next_check:
                self.check_and_generate()
                next_check = time.monotonic() + self.check_interval
            if stop_event.is_set():
                break
            if now >= next_countdown:
                self.log_countdowns()
                next_countdown = time.monotonic() + self.countdown_interval

            wait = min(next_check, next_countdown) - time.monotonic()
            stop_event.wait(max(0.0, wait))

    # =========================================================================
    # Due-slot poll
    # =========================================================================

    def check_and_generate(self) -> List[SlotRunOutcome]:
        """
        Run every due slot sequentially. Overlapping calls return immediately.

        Returns:
            One outcome per due slot, empty if another poll is running
        """
        if not self._check_lock.acquire(blocking=False):
            return []

        outcomes: List[SlotRunOutcome] = []
        try:
            due_slots = self.state.get_due_slots(self.clock())
            if due_slots:
                print(f"[SlotScheduler] Found {len(due_slots)} slot(s) due for generation")
            for slot in due_slots:
                outcomes.append(self.generate_for_slot(slot))
        except Exception as e:
            print(f"[SlotScheduler] Error during check: {e}")
        finally:
            self._check_lock.release()
        return outcomes

    def generate_for_slot(self, slot: GenerationSlot) -> SlotRunOutcome:
        """Run one generation for a due slot. Never raises."""
        slot_number = slot.slot_number
        try:
            if self.state.has_in_progress_session(slot_number):
                print(f"[SlotScheduler] Slot {slot_number} already has a generation in progress, skipping")
                return SlotRunOutcome(slot_number=slot_number, status="skipped")

            now = self.clock()
            next_at = now + timedelta(minutes=slot.interval_minutes)
            self.state.set_next_auto_generate_at(slot_number, next_at)

            session_id = f"auto-slot-{slot_number}-{int(now.timestamp() * 1000)}"
            print(f"[SlotScheduler] Starting auto-generation for slot {slot_number} "
                  f"(session {session_id}, next run {next_at.isoformat()})")

            result = self.orchestrator.generate_idea(GenerationRequest(
                session_id=session_id,
                profile_id=slot.profile_id,
                slot_number=slot_number
            ))

            self.state.set_last_auto_generate_at(slot_number, self.clock())
            print(f"[SlotScheduler] Slot {slot_number} generated idea {result.idea.id} "
                  f"(score {result.idea.score})")
            return SlotRunOutcome(
                slot_number=slot_number,
                status="completed",
                session_id=session_id,
                idea_id=result.idea.id
            )
        except Exception as e:
            print(f"[SlotScheduler] Auto-generation failed for slot {slot_number}: {e}")
            return SlotRunOutcome(slot_number=slot_number, status="failed", error=str(e))

    # =========================================================================
    # Countdown poll
    # =========================================================================

    def log_countdowns(self) -> int:
        """
        Write countdown entries for slots not yet due.

        Returns:
            Number of countdown entries written
        """
        written = 0
        try:
            now = self.clock()
            for slot in self.state.get_upcoming_slots(now):
                if self._log_slot_countdown(slot, now):
                    written += 1
        except Exception as e:
            print(f"[SlotScheduler] Error logging countdowns: {e}")
        return written

    def _log_slot_countdown(self, slot: GenerationSlot, now: datetime) -> bool:
        remaining = (slot.next_auto_generate_at - now).total_seconds()
        minutes = math.ceil(remaining / 60)
        if minutes < 1:
            return False

        slot_number = slot.slot_number
        if self.last_countdown_minutes.get(slot_number) == minutes:
            return False
        self.last_countdown_minutes[slot_number] = minutes

        session_id = f"countdown-slot-{slot_number}"
        message = countdown_message(minutes)
        print(f"[SlotScheduler] Slot {slot_number}: {message}")

        try:
            self.state.add_log(
                session_id,
                GenerationStage.WAITING.value,
                LogLevel.INFO.value,
                message,
                details={
                    "slot_number": slot_number,
                    "minutes_remaining": minutes,
                    "next_at": slot.next_auto_generate_at.isoformat()
                }
            )
            self.state.update_status(
                session_id,
                STATUS_WAITING,
                GenerationStage.WAITING.value,
                slot_number=slot_number
            )
        except Exception as e:
            print(f"[SlotScheduler] Failed to save countdown log for slot {slot_number}: {e}")
        return True
