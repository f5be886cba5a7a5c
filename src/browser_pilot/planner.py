"""
Planner

Turns (goal, history, observation) into exactly one next Step.

1. Build the prompt: the closed action grammar as system prompt; goal, a
   bounded window of recent history, extracted data and the current page
   snapshot as user prompt
2. Ask the inference service
3. Parse the reply strictly into one Step, or raise PlanParseError

History is evicted oldest-first (FIFO) once it exceeds the configured window
or character budget: recent actions matter more than old ones. The planner
only reads history; the loop controller owns it.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from pydantic import ValidationError

from .config import env_int
from .errors import PlanParseError
from .llm import LLMProvider, Message
from .models import STEP_ACTIONS, STEP_ADAPTER, HistoryEntry, Observation, Step

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a browser automation agent. You control a real browser by issuing ONE step at a time as JSON.

Available actions:
- {"action":"Navigate","url":"https://..."}
- {"action":"Click","selector":"[data-eid=\\"e0\\"]"}
- {"action":"TypeInto","selector":"[data-eid=\\"e0\\"]","text":"search query"}
- {"action":"PressKey","key":"Enter"}
- {"action":"PressKey","key":"Enter","selector":"[data-eid=\\"e0\\"]"}
- {"action":"Extract","selector":"[data-eid=\\"e0\\"]","label":"price"}
- {"action":"Extract","selector":"[data-eid=\\"e0\\"]","attribute":"href","label":"link"}
- {"action":"Wait","condition":"element","selector":"[data-eid=\\"e0\\"]","timeout_ms":5000}
- {"action":"Wait","condition":"navigation"}
- {"action":"Complete","summary":"what was achieved, including any answer found"}

Rules:
1. Return ONLY a single JSON object per response. No markdown, no explanation.
2. Target elements by the [eN] ids from the page snapshot, using the selector format [data-eid="eN"]. Plain CSS selectors also work.
3. After every step you will see the new page snapshot and the outcome of your step.
4. Use TypeInto to fill inputs, then PressKey "Enter" to submit, or Click the submit button.
5. If a step failed, try a different element or approach instead of repeating it.
6. When the goal is accomplished, or cannot be accomplished, use Complete with a summary.
7. Keep steps minimal. Do not over-navigate."""

CORRECTION_NOTICE = (
    "Your previous reply could not be used: {error}\n"
    "Reply with exactly one JSON object using one of the listed actions, and nothing else."
)

_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)


@dataclass
class PlannerConfig:
    """
    Prompt budget for the planner.

    Attributes:
        history_window: Maximum number of most recent history entries replayed
        history_char_budget: Maximum characters of rendered history
        max_extract_chars: Maximum characters of extracted data echoed back
    """

    history_window: int = 10
    history_char_budget: int = 6000
    max_extract_chars: int = 1500

    @classmethod
    def from_env(cls) -> "PlannerConfig":
        return cls(
            history_window=env_int("HISTORY_WINDOW", 10),
            history_char_budget=env_int("HISTORY_CHAR_BUDGET", 6000),
            max_extract_chars=env_int("PLANNER_EXTRACT_CHARS", 1500),
        )


def parse_step(reply: str) -> Step:
    """
    Parse a planner reply into exactly one Step.

    Accepts one JSON object, optionally wrapped in a single markdown code
    fence. Anything else is rejected.

    Raises:
        PlanParseError: The reply is empty, not one JSON object, names an
            unknown action or fails validation
    """
    text = reply.strip()
    if not text:
        raise PlanParseError("Reply was empty", reply)

    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise PlanParseError(f"Reply is not a single JSON object ({e.msg})", reply) from e

    if not isinstance(payload, dict):
        raise PlanParseError(
            f"Reply must be a JSON object, got {type(payload).__name__}", reply
        )

    action = payload.get("action")
    if action not in STEP_ACTIONS:
        raise PlanParseError(
            f"Unknown action {action!r}; expected one of {', '.join(STEP_ACTIONS)}",
            reply,
        )

    try:
        return STEP_ADAPTER.validate_python(payload)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'][1:]) or action}: {err['msg']}"
            for err in e.errors()
        )
        raise PlanParseError(f"Invalid {action} step: {problems}", reply) from e


class Planner:
    """
    Next-step planner backed by an LLM provider.

    Stateless between calls apart from its configuration.
    """

    def __init__(
        self,
        provider: LLMProvider,
        config: Optional[PlannerConfig] = None,
    ):
        self.provider = provider
        self.config = config or PlannerConfig()

    async def plan(
        self,
        goal: str,
        history: Sequence[HistoryEntry],
        observation: Observation,
        correction: Optional[str] = None,
    ) -> Step:
        """
        Decide the next step.

        Args:
            goal: The session goal
            history: Read-only view of completed iterations, oldest first
            observation: Current page snapshot
            correction: Parse error of the previous reply, for a corrective retry

        Returns:
            The parsed Step

        Raises:
            PlanParseError: The reply could not be parsed into a Step
            PlannerError: The inference call failed
        """
        messages = self.build_messages(goal, history, observation, correction)
        response = await self.provider.complete(messages)
        logger.debug("Planner reply: %s", response.content)
        step = parse_step(response.content)
        logger.info("Planned: %s", step.describe())
        return step

    def build_messages(
        self,
        goal: str,
        history: Sequence[HistoryEntry],
        observation: Observation,
        correction: Optional[str] = None,
    ) -> list[Message]:
        return [
            Message(role="system", content=SYSTEM_PROMPT),
            Message(
                role="user",
                content=self.build_user_prompt(goal, history, observation, correction),
            ),
        ]

    def build_user_prompt(
        self,
        goal: str,
        history: Sequence[HistoryEntry],
        observation: Observation,
        correction: Optional[str] = None,
    ) -> str:
        window = self.select_history(history)
        parts = [f"## Goal\n{goal}", f"\n## Step\n{len(history) + 1}"]

        if window:
            omitted = len(history) - len(window)
            lines = [line for _, line in window]
            if omitted:
                lines.insert(0, f"({omitted} earlier steps omitted)")
            parts.append("\n## Previous Steps\n" + "\n".join(lines))

            extracted = [
                history[index].extraction
                for index, _ in window
                if history[index].extraction is not None
            ]
            if extracted:
                parts.append("\n## Extracted Data\n" + "\n".join(
                    f"[{data['label']}] {self._clip(data['content'])}" for data in extracted
                ))

        parts.append(f"\n## Current Page\n{observation.render()}")

        if correction:
            parts.append("\n## Correction\n" + CORRECTION_NOTICE.format(error=correction))
        else:
            parts.append("\n## Instructions\nReply with the single next step as JSON.")

        return "\n".join(parts)

    def select_history(self, history: Sequence[HistoryEntry]) -> list[tuple[int, str]]:
        """
        Pick the history entries that fit the prompt budget.

        Returns:
            (index into history, rendered line) pairs, oldest first
        """
        if self.config.history_window <= 0:
            return []
        start = max(len(history) - self.config.history_window, 0)
        window = [
            (index, history[index].render(index + 1))
            for index in range(start, len(history))
        ]

        # FIFO eviction: drop the oldest until the budget fits, keep the newest
        total = sum(len(line) + 1 for _, line in window)
        while len(window) > 1 and total > self.config.history_char_budget:
            _, dropped = window.pop(0)
            total -= len(dropped) + 1
        return window

    def _clip(self, content: str) -> str:
        limit = self.config.max_extract_chars
        if len(content) > limit:
            return content[:limit] + "..."
        return content


def create_planner(
    provider: LLMProvider,
    config: Optional[PlannerConfig] = None,
) -> Planner:
    """Factory function to create a planner (config from env if None)."""
    return Planner(provider, config or PlannerConfig.from_env())
