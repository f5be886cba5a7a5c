"""
Loop Controller

The explicit state machine that drives one browser session:

    IDLE -> OBSERVING -> PLANNING -> ACTING -> OBSERVING ...
                                          \\-> COMPLETED | FAILED | CANCELLED

- OBSERVING: snapshot the page; SnapshotError is retried with exponential
  backoff, exhaustion fails the session
- PLANNING: ask the planner; a PlanParseError gets one corrective retry, a
  second one fails the session; a Complete step completes it
- ACTING: execute the step; failed outcomes are recorded and fed back to the
  planner, unless the same step fails on the same target too many times in a
  row (stuck loop), which fails the session

Cancellation is cooperative and only honoured between states. Every terminal
state publishes exactly one terminal event.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .actuator import Actuator
from .browser.backend import BrowserBackend
from .config import env_float, env_int
from .errors import PlanParseError, PlannerError, SnapshotError, StuckLoopError
from .events import EventBus
from .models import (
    ActionOutcome,
    CancelledEvent,
    Complete,
    CompletedEvent,
    ErrorEvent,
    HistoryEntry,
    LoopState,
    Observation,
    SessionStatus,
    Step,
    StepExecutedEvent,
    StepPlannedEvent,
    ThinkingEvent,
)
from .planner import Planner
from .snapshot import SnapshotBuilder

logger = logging.getLogger(__name__)


@dataclass
class LoopConfig:
    """
    Retry and termination bounds for one session.

    Attributes:
        max_iterations: Iterations (history entries) before the session fails
        snapshot_retries: Snapshot retries after the first failed attempt
        snapshot_backoff_s: First retry delay; doubles on each further retry
        stuck_threshold: Consecutive identical failures that count as stuck
    """

    max_iterations: int = 25
    snapshot_retries: int = 3
    snapshot_backoff_s: float = 0.5
    stuck_threshold: int = 3

    @classmethod
    def from_env(cls) -> "LoopConfig":
        return cls(
            max_iterations=env_int("AGENT_MAX_ITERATIONS", 25),
            snapshot_retries=env_int("SNAPSHOT_RETRIES", 3),
            snapshot_backoff_s=env_float("SNAPSHOT_BACKOFF_SECONDS", 0.5),
            stuck_threshold=env_int("STUCK_THRESHOLD", 3),
        )


class LoopController:
    """
    Drives one goal to a terminal state against one browser session.

    The controller is the only writer of its session state (status, history,
    iteration count). Everything else observes it through the event bus or
    the read-only properties below.
    """

    def __init__(
        self,
        goal: str,
        backend: BrowserBackend,
        planner: Planner,
        bus: EventBus,
        snapshot_builder: Optional[SnapshotBuilder] = None,
        actuator: Optional[Actuator] = None,
        config: Optional[LoopConfig] = None,
        session_id: Optional[str] = None,
    ):
        if not goal or not goal.strip():
            raise ValueError("A session needs a non-empty goal")

        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.goal = goal
        self.backend = backend
        self.planner = planner
        self.bus = bus
        self.snapshot_builder = snapshot_builder or SnapshotBuilder()
        self.actuator = actuator or Actuator(backend)
        self.config = config or LoopConfig()

        self._state = LoopState.IDLE
        self._trace: list[LoopState] = [LoopState.IDLE]
        self._history: list[HistoryEntry] = []
        self._iteration = 0
        self._started = False
        self._cancel_reason: Optional[str] = None

        # Owned by the iteration in flight
        self._observation: Optional[Observation] = None
        self._step: Optional[Step] = None

        # (step, target) of the latest failure and how often it repeated
        self._failure_signature: Optional[tuple[Step, Optional[str]]] = None
        self._failure_streak = 0

        self.summary: Optional[str] = None
        self.error: Optional[str] = None

        self._handlers: dict[LoopState, Callable[[], Awaitable[None]]] = {
            LoopState.OBSERVING: self._observing,
            LoopState.PLANNING: self._planning,
            LoopState.ACTING: self._acting,
        }

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._history)

    @property
    def iteration_count(self) -> int:
        return self._iteration

    @property
    def trace(self) -> tuple[LoopState, ...]:
        """Every state entered so far, in order."""
        return tuple(self._trace)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_reason is not None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def cancel(self, reason: str = "Cancelled by user") -> None:
        """
        Request cancellation.

        Takes effect at the next state boundary; an in-flight planner or
        browser call is allowed to finish first.
        """
        if self._state.is_terminal or self._cancel_reason is not None:
            return
        logger.info("[%s] Cancellation requested: %s", self.session_id, reason)
        self._cancel_reason = reason

    async def run(self) -> LoopState:
        """
        Run the loop until a terminal state.

        Returns:
            The terminal LoopState

        Raises:
            RuntimeError: run() was already called on this controller
        """
        if self._started:
            raise RuntimeError("A loop controller can only be run once")
        self._started = True
        logger.info("[%s] Starting goal: %s", self.session_id, self.goal)

        try:
            self._transition(LoopState.OBSERVING)
            while not self._state.is_terminal:
                if self._cancel_reason is not None:
                    self._finish(
                        LoopState.CANCELLED,
                        CancelledEvent(
                            session_id=self.session_id,
                            iteration=self._iteration,
                            reason=self._cancel_reason,
                        ),
                    )
                    break
                await self._handlers[self._state]()
        except asyncio.CancelledError:
            self._cancel_reason = self._cancel_reason or "Session task cancelled"
            self._finish(
                LoopState.CANCELLED,
                CancelledEvent(
                    session_id=self.session_id,
                    iteration=self._iteration,
                    reason=self._cancel_reason,
                ),
            )
            raise
        except Exception as e:
            # Keep faults local to this session
            logger.exception("[%s] Unexpected error in %s", self.session_id, self._state.value)
            self._fail(f"Unexpected error while {self._state.value}: {e}")

        return self._state

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _observing(self) -> None:
        if self._iteration >= self.config.max_iterations:
            self._fail(f"Reached maximum step limit ({self.config.max_iterations})")
            return

        observation = await self._capture_with_retry()
        if observation is None:
            return
        self._observation = observation
        self._transition(LoopState.PLANNING)

    async def _planning(self) -> None:
        self.bus.publish(
            ThinkingEvent(session_id=self.session_id, iteration=self._iteration + 1)
        )

        try:
            step = await self._plan_with_correction()
        except PlanParseError as e:
            self._fail(f"Planner reply could not be parsed after a corrective retry: {e}")
            return
        except PlannerError as e:
            self._fail(f"Planner failed: {e}")
            return

        if self._cancel_reason is not None:
            # Planner returned after cancel(); the step is discarded
            return

        self.bus.publish(
            StepPlannedEvent(
                session_id=self.session_id,
                iteration=self._iteration + 1,
                step=step,
            )
        )

        if isinstance(step, Complete):
            self._complete(step)
            return

        self._step = step
        self._transition(LoopState.ACTING)

    async def _acting(self) -> None:
        step = self._step
        outcome = await self.actuator.execute(step)
        self._commit(step, outcome)

        try:
            self._check_stuck(step, outcome)
        except StuckLoopError as e:
            self._fail(str(e))
            return

        self._transition(LoopState.OBSERVING)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _capture_with_retry(self) -> Optional[Observation]:
        attempts = self.config.snapshot_retries + 1
        for attempt in range(attempts):
            try:
                return await self.snapshot_builder.capture(self.backend)
            except SnapshotError as e:
                if attempt + 1 >= attempts:
                    self._fail(f"Could not snapshot the page after {attempts} attempts: {e}")
                    return None
                delay = self.config.snapshot_backoff_s * (2 ** attempt)
                logger.warning(
                    "[%s] Snapshot failed (%s), retry %d/%d in %.2fs",
                    self.session_id,
                    e,
                    attempt + 1,
                    self.config.snapshot_retries,
                    delay,
                )
                await asyncio.sleep(delay)
        return None

    async def _plan_with_correction(self) -> Step:
        history = self.history
        try:
            return await self.planner.plan(self.goal, history, self._observation)
        except PlanParseError as e:
            logger.warning("[%s] Unparseable planner reply, re-prompting: %s", self.session_id, e)
            return await self.planner.plan(
                self.goal, history, self._observation, correction=str(e)
            )

    def _commit(self, step: Step, outcome: ActionOutcome, publish: bool = True) -> None:
        """Append history, advance the iteration and publish, as one unit."""
        entry = HistoryEntry(
            observation=self._observation.summary(),
            step=step,
            outcome=outcome,
        )
        event = StepExecutedEvent(
            session_id=self.session_id,
            iteration=self._iteration + 1,
            step=step,
            outcome=outcome,
        )

        self._history.append(entry)
        self._iteration += 1
        self._observation = None
        self._step = None
        if publish:
            self.bus.publish(event)

        logger.info(
            "[%s] Step %d: %s -> %s",
            self.session_id,
            self._iteration,
            step.describe(),
            outcome.brief(),
        )

    def _check_stuck(self, step: Step, outcome: ActionOutcome) -> None:
        if outcome.success:
            self._failure_signature = None
            self._failure_streak = 0
            return

        signature = (step, outcome.target or step.target)
        if signature == self._failure_signature:
            self._failure_streak += 1
        else:
            self._failure_signature = signature
            self._failure_streak = 1

        if self._failure_streak >= self.config.stuck_threshold:
            raise StuckLoopError(step.describe(), signature[1], self._failure_streak)

    def _complete(self, step: Complete) -> None:
        outcome = ActionOutcome.ok(data={"summary": step.summary})
        self._commit(step, outcome, publish=False)
        self.summary = step.summary
        self._finish(
            LoopState.COMPLETED,
            CompletedEvent(
                session_id=self.session_id,
                iteration=self._iteration,
                summary=step.summary,
            ),
        )

    def _fail(self, message: str) -> None:
        self.error = message
        logger.error("[%s] Session failed: %s", self.session_id, message)
        self._finish(
            LoopState.FAILED,
            ErrorEvent(
                session_id=self.session_id,
                iteration=self._iteration,
                message=message,
            ),
        )

    def _transition(self, state: LoopState) -> None:
        logger.debug("[%s] %s -> %s", self.session_id, self._state.value, state.value)
        self._state = state
        self._trace.append(state)

    def _finish(self, state: LoopState, event) -> None:
        if self._state.is_terminal:
            return
        self._transition(state)
        self.bus.publish(event)
        logger.info(
            "[%s] Finished as %s after %d steps",
            self.session_id,
            state.value,
            self._iteration,
        )
