"""
Data Models for the Agent Loop

Pydantic models shared by every component of the observe -> decide -> act
cycle:

- ElementNode / Observation: pruned page snapshot handed to the planner
- Step variants: the closed action vocabulary the planner may emit
- ActionOutcome: what the actuator reports after executing a step
- HistoryEntry: one completed iteration, replayed into every prompt
- AgentEvent variants: progress events broadcast on the event bus
- LoopState / SessionStatus: loop controller state machine

All models are frozen; nothing downstream of the producer may mutate them.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from .errors import ActionError, ActionErrorKind


# ============================================================================
# Page snapshot
# ============================================================================


class ElementNode(BaseModel):
    """
    One retained node of the pruned page tree.

    Interactive nodes carry an engine-assigned ``eid`` written to the page as
    a ``data-eid`` attribute; text leaves have no eid and only give context.
    """

    model_config = ConfigDict(frozen=True)

    eid: Optional[str] = None
    tag: str
    role: str
    text: str = ""
    attrs: dict[str, str] = Field(default_factory=dict)

    @property
    def interactive(self) -> bool:
        return self.eid is not None

    @property
    def selector(self) -> Optional[str]:
        """CSS selector that resolves back to this element."""
        if self.eid is None:
            return None
        return f'[data-eid="{self.eid}"]'

    def render(self) -> str:
        if not self.interactive:
            return f'  "{self.text}"'
        parts = [f"[{self.eid}]", self.role]
        if self.text:
            parts.append(f'"{self.text}"')
        for key, value in self.attrs.items():
            parts.append(f'{key}="{value}"')
        return " ".join(parts)


class Observation(BaseModel):
    """Structural description of the page at one loop iteration."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str
    elements: tuple[ElementNode, ...] = ()
    truncated: bool = False

    def render(self) -> str:
        """Deterministic text block embedded in the planner prompt."""
        lines = [f"URL: {self.url}", f"Title: {self.title}", "Elements:"]
        if self.elements:
            lines.extend(node.render() for node in self.elements)
        else:
            lines.append("  (no visible elements)")
        if self.truncated:
            lines.append("... [snapshot truncated]")
        return "\n".join(lines)

    def summary(self) -> str:
        """One-line summary kept in the action history."""
        return f"{self.title or 'untitled'} <{self.url}>"

    def interactive_elements(self) -> list[ElementNode]:
        return [node for node in self.elements if node.interactive]


# ============================================================================
# Steps (planner output)
# ============================================================================


class _StepBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def target(self) -> Optional[str]:
        """The url / selector this step acts on, if any."""
        return None

    def describe(self) -> str:
        return self.action  # type: ignore[attr-defined]


class Navigate(_StepBase):
    action: Literal["Navigate"] = "Navigate"
    url: str = Field(min_length=1)

    @property
    def target(self) -> Optional[str]:
        return self.url

    def describe(self) -> str:
        return f"Navigate to {self.url}"


class Click(_StepBase):
    action: Literal["Click"] = "Click"
    selector: str = Field(min_length=1)

    @property
    def target(self) -> Optional[str]:
        return self.selector

    def describe(self) -> str:
        return f"Click {self.selector}"


class TypeInto(_StepBase):
    action: Literal["TypeInto"] = "TypeInto"
    selector: str = Field(min_length=1)
    text: str

    @property
    def target(self) -> Optional[str]:
        return self.selector

    def describe(self) -> str:
        return f'Type "{self.text}" into {self.selector}'


class PressKey(_StepBase):
    action: Literal["PressKey"] = "PressKey"
    key: str = Field(min_length=1)
    selector: Optional[str] = Field(default=None, min_length=1)

    @property
    def target(self) -> Optional[str]:
        return self.selector

    def describe(self) -> str:
        if self.selector:
            return f"Press {self.key} on {self.selector}"
        return f"Press {self.key}"


class Extract(_StepBase):
    action: Literal["Extract"] = "Extract"
    selector: str = Field(min_length=1)
    attribute: Optional[str] = Field(default=None, min_length=1)
    label: str = "extracted"

    @property
    def target(self) -> Optional[str]:
        return self.selector

    def describe(self) -> str:
        what = f"@{self.attribute}" if self.attribute else "text"
        return f"Extract {what} of {self.selector} as {self.label!r}"


class Wait(_StepBase):
    action: Literal["Wait"] = "Wait"
    condition: Literal["element", "navigation"]
    selector: Optional[str] = Field(default=None, min_length=1)
    timeout_ms: Optional[int] = Field(default=None, gt=0, le=60000)

    @model_validator(mode="after")
    def _selector_for_element(self) -> "Wait":
        if self.condition == "element" and not self.selector:
            raise ValueError("Wait on 'element' requires a selector")
        return self

    @property
    def target(self) -> Optional[str]:
        return self.selector

    def describe(self) -> str:
        if self.condition == "element":
            return f"Wait for {self.selector}"
        return "Wait for navigation to settle"


class Complete(_StepBase):
    action: Literal["Complete"] = "Complete"
    summary: str = Field(min_length=1)

    def describe(self) -> str:
        return f"Complete: {self.summary}"


Step = Annotated[
    Union[Navigate, Click, TypeInto, PressKey, Extract, Wait, Complete],
    Field(discriminator="action"),
]

STEP_ADAPTER: TypeAdapter = TypeAdapter(Step)

STEP_ACTIONS = ("Navigate", "Click", "TypeInto", "PressKey", "Extract", "Wait", "Complete")


# ============================================================================
# Outcomes and history
# ============================================================================


class ActionOutcome(BaseModel):
    """
    Result of executing one step.

    Attributes:
        success: Whether the step was carried out
        error_kind: Failure category when not successful
        reason: Human-readable failure reason
        target: Resolved url/selector the step acted on
        data: Extracted data, if the step produced any
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    error_kind: Optional[ActionErrorKind] = None
    reason: Optional[str] = None
    target: Optional[str] = None
    data: Optional[dict[str, Any]] = None

    @classmethod
    def ok(
        cls,
        target: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> "ActionOutcome":
        return cls(success=True, target=target, data=data)

    @classmethod
    def from_error(cls, error: ActionError) -> "ActionOutcome":
        return cls(
            success=False,
            error_kind=error.kind,
            reason=str(error),
            target=error.target,
        )

    def brief(self) -> str:
        """Short form used in history lines; extracted content is left out."""
        if not self.success:
            return f"FAILED ({self.reason})"
        if self.data and "label" in self.data:
            return f"ok (extracted {self.data['label']!r})"
        return "ok"

    def __str__(self) -> str:
        if self.success:
            return f"ok: {self.data}" if self.data else "ok"
        return f"FAILED ({self.reason})"


class HistoryEntry(BaseModel):
    """One completed loop iteration: what was seen, what was done, what happened."""

    model_config = ConfigDict(frozen=True)

    observation: str
    step: Step
    outcome: ActionOutcome

    @property
    def extraction(self) -> Optional[dict[str, Any]]:
        data = self.outcome.data
        if self.outcome.success and data and "content" in data:
            return data
        return None

    def render(self, number: int) -> str:
        return f"{number}. on {self.observation}: {self.step.describe()} -> {self.outcome.brief()}"


# ============================================================================
# Loop state
# ============================================================================


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LoopState(str, Enum):
    """States of the loop controller's finite-state machine."""

    IDLE = "idle"
    OBSERVING = "observing"
    PLANNING = "planning"
    ACTING = "acting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (LoopState.COMPLETED, LoopState.FAILED, LoopState.CANCELLED)

    @property
    def status(self) -> SessionStatus:
        if self is LoopState.COMPLETED:
            return SessionStatus.COMPLETED
        if self is LoopState.FAILED:
            return SessionStatus.FAILED
        if self is LoopState.CANCELLED:
            return SessionStatus.CANCELLED
        return SessionStatus.RUNNING


# ============================================================================
# Events
# ============================================================================


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    iteration: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def terminal(self) -> bool:
        return False


class ThinkingEvent(_EventBase):
    type: Literal["thinking"] = "thinking"


class StepPlannedEvent(_EventBase):
    type: Literal["step_planned"] = "step_planned"
    step: Step


class StepExecutedEvent(_EventBase):
    type: Literal["step_executed"] = "step_executed"
    step: Step
    outcome: ActionOutcome


class ErrorEvent(_EventBase):
    type: Literal["error"] = "error"
    message: str

    @property
    def terminal(self) -> bool:
        return True


class CompletedEvent(_EventBase):
    type: Literal["completed"] = "completed"
    summary: str

    @property
    def terminal(self) -> bool:
        return True


class CancelledEvent(_EventBase):
    type: Literal["cancelled"] = "cancelled"
    reason: str = "cancelled"

    @property
    def terminal(self) -> bool:
        return True


AgentEvent = Annotated[
    Union[
        ThinkingEvent,
        StepPlannedEvent,
        StepExecutedEvent,
        ErrorEvent,
        CompletedEvent,
        CancelledEvent,
    ],
    Field(discriminator="type"),
]

EVENT_ADAPTER: TypeAdapter = TypeAdapter(AgentEvent)
