"""
Error Taxonomy

Exceptions raised inside the agent loop. Each kind maps to one recovery
policy in the loop controller:

- SnapshotError: page not ready or detached, retried with backoff
- PlanParseError: malformed planner reply, one corrective retry then fatal
- PlannerError: inference transport failure, fatal for the session
- ActionError: element missing / timeout / browser fault, reported as an
  outcome and fed back to the planner
- StuckLoopError: the same action keeps failing on the same target, fatal
- SessionNotFoundError: unknown session id on the control surface
"""

from enum import Enum
from typing import Optional


class BrowserPilotError(Exception):
    """Base class for all browser_pilot errors."""


class SnapshotError(BrowserPilotError):
    """The page could not be snapshotted (detached or mid-navigation)."""


class PlanParseError(BrowserPilotError):
    """The planner reply is not exactly one valid step."""

    def __init__(self, message: str, raw_reply: str = ""):
        super().__init__(message)
        self.raw_reply = raw_reply


class PlannerError(BrowserPilotError):
    """The inference service call itself failed."""


class ActionErrorKind(str, Enum):
    """Failure categories reported by the actuator."""

    ELEMENT_NOT_FOUND = "element_not_found"
    TIMEOUT = "timeout"
    BROWSER = "browser"


class ActionError(BrowserPilotError):
    """
    A step could not be carried out against the live page.

    Raised by browser backends and the actuator's wait helpers, then
    converted into a failed ActionOutcome by the actuator.
    """

    def __init__(
        self,
        kind: ActionErrorKind,
        message: str,
        target: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.target = target

    def __str__(self) -> str:
        return f"{self.kind.value}: {super().__str__()}"


class StuckLoopError(BrowserPilotError):
    """The same action failed against the same target too many times in a row."""

    def __init__(self, action: str, target: Optional[str], attempts: int):
        super().__init__(
            f"{action} failed {attempts} consecutive times against {target!r}"
        )
        self.action = action
        self.target = target
        self.attempts = attempts


class SessionNotFoundError(BrowserPilotError, KeyError):
    """No session is registered under the given id."""

    def __str__(self) -> str:
        return f"Unknown session: {self.args[0] if self.args else ''}"
