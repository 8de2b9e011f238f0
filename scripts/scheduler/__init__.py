"""
Scheduler module for scheduled idea generation

- SlotScheduler: polls generation slots and triggers due generations
"""

from .slot_scheduler import (
    SlotScheduler,
    SlotRunOutcome,
    countdown_message
)

__all__ = [
    "SlotScheduler",
    "SlotRunOutcome",
    "countdown_message"
]
