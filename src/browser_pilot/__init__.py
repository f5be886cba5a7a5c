"""
Browser Pilot

An autonomous browser agent: given a natural-language goal, it drives a real
browser by repeatedly observing the page, asking an LLM planner for one next
step, and executing it, until the goal is reached or the session fails.
"""

__version__ = "0.1.0"

from browser_pilot.errors import (
    ActionError,
    ActionErrorKind,
    BrowserPilotError,
    PlannerError,
    PlanParseError,
    SessionNotFoundError,
    SnapshotError,
    StuckLoopError,
)
from browser_pilot.events import EventBus, Subscription
from browser_pilot.loop import LoopConfig, LoopController
from browser_pilot.models import (
    ActionOutcome,
    AgentEvent,
    HistoryEntry,
    LoopState,
    Observation,
    SessionStatus,
    Step,
)
from browser_pilot.planner import Planner, PlannerConfig, parse_step
from browser_pilot.sessions import SessionManager

__all__ = [
    "__version__",
    "ActionError",
    "ActionErrorKind",
    "BrowserPilotError",
    "PlannerError",
    "PlanParseError",
    "SessionNotFoundError",
    "SnapshotError",
    "StuckLoopError",
    "EventBus",
    "Subscription",
    "LoopConfig",
    "LoopController",
    "ActionOutcome",
    "AgentEvent",
    "HistoryEntry",
    "LoopState",
    "Observation",
    "SessionStatus",
    "Step",
    "Planner",
    "PlannerConfig",
    "parse_step",
    "SessionManager",
]
