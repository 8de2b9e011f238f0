#!/usr/bin/env python3
"""
Idea Runner for scheduled idea generation
CLI interface for one-off generation, the slot scheduler and session inspection
"""

import argparse
import sys
import json
import signal
import threading
from datetime import timedelta
from pathlib import Path
from typing import Optional, List, Callable

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from pipeline_errors import PipelineError
from storage.config_provider import ConfigProvider, JsonConfigProvider
from storage.idea_memory import IdeaMemory
from storage.generation_state import GenerationState, GenerationSlot, utcnow
from gates.duplicate_gate import SemanticDuplicateDetector, SentenceTransformerEmbedder
from llm_provider import AnthropicModelProvider
from run_generation import IdeaGenerationOrchestrator, GenerationRequest, GenerationResult
from scheduler import SlotScheduler


class IdeaRunner:
    """
    CLI runner for the idea generation pipeline.

    Supports sub-commands:
    - generate: Run one generation now
    - schedule: Run the slot scheduler until interrupted
    - status / logs: Inspect a session
    - slots / set-slot: Inspect and configure generation slots
    """

    def __init__(
        self,
        state: GenerationState = None,
        memory: IdeaMemory = None,
        config_provider: ConfigProvider = None,
        orchestrator: IdeaGenerationOrchestrator = None,
        output_callback: Callable[[str], None] = None
    ):
        """
        Initialize the runner.

        Args:
            state: Slot/status/log store (creates default if None)
            memory: Idea store (created lazily if None)
            config_provider: Profile loader (JSON profiles if None)
            orchestrator: Pre-built orchestrator (built lazily if None)
            output_callback: Callback for output (message -> None)
        """
        self.state = state or GenerationState()
        self._memory = memory
        self.config_provider = config_provider or JsonConfigProvider()
        self._orchestrator = orchestrator
        self.output_callback = output_callback or print

    @property
    def memory(self) -> IdeaMemory:
        if self._memory is None:
            self._memory = IdeaMemory(db_path=self.state.db_path)
        return self._memory

    @property
    def orchestrator(self) -> IdeaGenerationOrchestrator:
        if self._orchestrator is None:
            embedder = SentenceTransformerEmbedder()
            self._orchestrator = IdeaGenerationOrchestrator(
                config_provider=self.config_provider,
                model_provider=AnthropicModelProvider(self.state),
                memory=self.memory,
                state=self.state,
                duplicate_detector=SemanticDuplicateDetector(embedder, self.memory),
                embedder=embedder
            )
        return self._orchestrator

    # ===================
    # Sub-commands
    # ===================

    def run_generate(
        self,
        framework: Optional[str] = None,
        domain: Optional[str] = None,
        skip_duplicate_check: bool = False,
        profile_id: Optional[str] = None
    ) -> Optional[GenerationResult]:
        """Generate one idea now."""
        request = GenerationRequest(
            framework=framework,
            domain=domain,
            skip_duplicate_check=skip_duplicate_check,
            profile_id=profile_id
        )
        try:
            result = self.orchestrator.generate_idea(request)
        except PipelineError as e:
            self.output_callback(f"\nGeneration failed ({e.category}): {e.message}")
            return None

        idea = result.idea
        self.output_callback(f"\nIdea: {idea.name}")
        self.output_callback(f"  ID: {idea.id}")
        self.output_callback(f"  Domain: {idea.domain}" + (f" → {idea.subdomain}" if idea.subdomain else ""))
        self.output_callback(f"  Framework: {idea.generation_framework}")
        self.output_callback(f"  Score: {idea.score}/100")
        self.output_callback(f"  Complexity: {idea.complexity_scores['total']}/30")
        self.output_callback(f"  Session: {result.summary['session_id']} "
                             f"({result.summary['total_duration_ms']}ms, "
                             f"{result.summary['warning_count']} warnings)")
        return result

    def run_schedule(self, check_interval: float = 30, countdown_interval: float = 60) -> None:
        """Run the scheduler in the foreground until Ctrl+C."""
        scheduler = SlotScheduler(
            self.orchestrator,
            self.state,
            check_interval=check_interval,
            countdown_interval=countdown_interval
        )
        stopped = threading.Event()

        def handle_signal(signum, frame):
            stopped.set()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

        scheduler.start()
        try:
            while not stopped.wait(1.0):
                pass
        finally:
            scheduler.stop()

    def run_status(self, session_id: str, as_json: bool = False) -> Optional[dict]:
        """Show the status row for a session."""
        status = self.state.get_session_status(session_id)
        if status is None:
            self.output_callback(f"Session not found: {session_id}")
            return None

        if as_json:
            self.output_callback(json.dumps(status, indent=2, default=str))
            return status

        self.output_callback(f"\nSession: {session_id}")
        self.output_callback(f"  Status: {status['status']}")
        self.output_callback(f"  Stage: {status['current_stage']}")
        if status.get("slot_number") is not None:
            self.output_callback(f"  Slot: {status['slot_number']}")
        if status.get("idea_id"):
            self.output_callback(f"  Idea: {status['idea_id']}")
        if status.get("error_message"):
            self.output_callback(f"  Error: {status['error_message']}")
        return status

    def run_logs(self, session_id: str, as_json: bool = False) -> List[dict]:
        """Print the log entries of a session in order."""
        logs = self.state.get_session_logs(session_id)
        if as_json:
            self.output_callback(json.dumps(logs, indent=2, default=str))
            return logs

        if not logs:
            self.output_callback(f"No logs for session: {session_id}")
        for entry in logs:
            self.output_callback(
                f"{entry['created_at']} [{entry['stage'].upper()}] "
                f"{entry['level']}: {entry['message']}"
            )
        return logs

    def run_slots(self, as_json: bool = False) -> List[GenerationSlot]:
        """List generation slots."""
        slots = self.state.list_slots()
        if as_json:
            self.output_callback(json.dumps([{
                "slot_number": s.slot_number,
                "is_enabled": s.is_enabled,
                "auto_generate": s.auto_generate,
                "interval_minutes": s.interval_minutes,
                "next_auto_generate_at": s.next_auto_generate_at,
                "last_auto_generate_at": s.last_auto_generate_at,
                "profile_id": s.profile_id
            } for s in slots], indent=2, default=str))
            return slots

        if not slots:
            self.output_callback("No generation slots configured")
        for slot in slots:
            flags = []
            if not slot.is_enabled:
                flags.append("disabled")
            if slot.auto_generate:
                flags.append(f"auto every {slot.interval_minutes}m")
            next_at = slot.next_auto_generate_at.isoformat() if slot.next_auto_generate_at else "-"
            self.output_callback(
                f"Slot {slot.slot_number}: {', '.join(flags) or 'manual'} "
                f"| next: {next_at} | profile: {slot.profile_id or 'default'}"
            )
        return slots

    def run_set_slot(
        self,
        slot_number: int,
        interval_minutes: int = 60,
        auto_generate: bool = True,
        enabled: bool = True,
        profile_id: Optional[str] = None
    ) -> GenerationSlot:
        """Create or update a slot; auto-generating slots are first due after one interval."""
        existing = self.state.get_slot(slot_number)
        next_at = None
        if auto_generate:
            next_at = utcnow() + timedelta(minutes=interval_minutes)
        slot = GenerationSlot(
            slot_number=slot_number,
            is_enabled=enabled,
            auto_generate=auto_generate,
            interval_minutes=interval_minutes,
            next_auto_generate_at=next_at,
            last_auto_generate_at=existing.last_auto_generate_at if existing else None,
            profile_id=profile_id
        )
        self.state.save_slot(slot)
        self.output_callback(f"Slot {slot_number} saved")
        return slot


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Idea Runner - Scheduled idea generation and validation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                   Generate one idea (random framework)
  %(prog)s --framework SCAMPER --domain Health
  %(prog)s --schedule                        Run slot scheduler until Ctrl+C
  %(prog)s --slots                           List generation slots
  %(prog)s --set-slot 1 --interval 120       Auto-generate in slot 1 every 2 hours
  %(prog)s --status auto-slot-1-1760000000000
  %(prog)s --logs auto-slot-1-1760000000000
        """
    )

    # Sub-command flags
    parser.add_argument('--schedule', action='store_true', help="Run the slot scheduler")
    parser.add_argument('--slots', action='store_true', help="List generation slots")
    parser.add_argument('--set-slot', type=int, metavar='N', help="Create or update slot N")
    parser.add_argument('--status', metavar='SESSION', help="Show session status")
    parser.add_argument('--logs', metavar='SESSION', help="Show session log entries")

    # Generation options
    parser.add_argument('--framework', '-f', help="Framework name (random if omitted)")
    parser.add_argument('--domain', '-d', help="Domain hint")
    parser.add_argument('--profile', '-p', help="Configuration profile id")
    parser.add_argument('--skip-duplicate-check', action='store_true',
                        help="Save even if a similar idea exists")

    # Slot options
    parser.add_argument('--interval', type=int, default=60, help="Slot interval in minutes (1-1440)")
    parser.add_argument('--manual', action='store_true', help="Disable auto-generation for the slot")
    parser.add_argument('--disable', action='store_true', help="Disable the slot")

    # Scheduler options
    parser.add_argument('--check-interval', type=float, default=30, help="Seconds between due-slot polls")

    parser.add_argument('--json', action='store_true', help="Output in JSON format")

    args = parser.parse_args()

    runner = IdeaRunner()

    if args.schedule:
        runner.run_schedule(check_interval=args.check_interval)

    elif args.slots:
        runner.run_slots(as_json=args.json)

    elif args.set_slot is not None:
        try:
            runner.run_set_slot(
                args.set_slot,
                interval_minutes=args.interval,
                auto_generate=not args.manual,
                enabled=not args.disable,
                profile_id=args.profile
            )
        except PipelineError as e:
            print(f"Error: {e.message}")
            sys.exit(1)

    elif args.status:
        runner.run_status(args.status, as_json=args.json)

    elif args.logs:
        runner.run_logs(args.logs, as_json=args.json)

    else:
        result = runner.run_generate(
            framework=args.framework,
            domain=args.domain,
            skip_duplicate_check=args.skip_duplicate_check,
            profile_id=args.profile
        )
        if result is None:
            sys.exit(1)


if __name__ == "__main__":
    main()
