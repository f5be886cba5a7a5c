"""
Actuator

Executes one planner Step against the live page and reports an
ActionOutcome. Element-targeting steps use smart-wait: the selector is polled
at a fixed interval up to a ceiling before the step is declared
ELEMENT_NOT_FOUND, which absorbs asynchronously rendered UI.

The actuator never retries a failed step and never raises for one; failures
are returned as outcomes and the loop controller decides what happens next.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .browser.backend import BrowserBackend
from .config import env_int
from .errors import ActionError, ActionErrorKind
from .models import (
    ActionOutcome,
    Click,
    Complete,
    Extract,
    Navigate,
    PressKey,
    Step,
    TypeInto,
    Wait,
)

logger = logging.getLogger(__name__)


@dataclass
class ActuatorConfig:
    """
    Timing bounds for step execution (all in milliseconds).

    Attributes:
        navigation_timeout_ms: Ceiling for Navigate to reach DOM content loaded
        element_timeout_ms: Smart-wait ceiling when resolving a target element
        wait_timeout_ms: Default ceiling for Wait steps without their own timeout
        poll_interval_ms: Smart-wait polling interval
        settle_delay_ms: Pause after Navigate/Click/PressKey so the page can react
        max_extract_chars: Maximum characters returned by Extract
    """

    navigation_timeout_ms: int = 30000
    element_timeout_ms: int = 5000
    wait_timeout_ms: int = 10000
    poll_interval_ms: int = 250
    settle_delay_ms: int = 1000
    max_extract_chars: int = 2000

    @classmethod
    def from_env(cls) -> "ActuatorConfig":
        return cls(
            navigation_timeout_ms=env_int("NAVIGATION_TIMEOUT_MS", 30000),
            element_timeout_ms=env_int("ELEMENT_TIMEOUT_MS", 5000),
            wait_timeout_ms=env_int("WAIT_TIMEOUT_MS", 10000),
            poll_interval_ms=env_int("POLL_INTERVAL_MS", 250),
            settle_delay_ms=env_int("SETTLE_DELAY_MS", 1000),
            max_extract_chars=env_int("MAX_EXTRACT_CHARS", 2000),
        )


class Actuator:
    """Maps Step variants onto browser backend calls."""

    def __init__(
        self,
        backend: BrowserBackend,
        config: Optional[ActuatorConfig] = None,
    ):
        self.backend = backend
        self.config = config or ActuatorConfig()

    async def execute(self, step: Step) -> ActionOutcome:
        """
        Execute a single step.

        Args:
            step: Any Step variant except Complete

        Returns:
            ActionOutcome describing success or the failure reason

        Raises:
            ValueError: For Complete, which ends the loop instead of acting
        """
        if isinstance(step, Complete):
            raise ValueError("Complete is handled by the loop controller, not executed")

        logger.info("Executing: %s", step.describe())
        try:
            outcome = await self._dispatch(step)
        except ActionError as e:
            if e.target is None:
                e.target = step.target
            logger.info("Step failed: %s", e)
            return ActionOutcome.from_error(e)

        logger.debug("Step succeeded: %s", outcome)
        return outcome

    async def _dispatch(self, step: Step) -> ActionOutcome:
        if isinstance(step, Navigate):
            return await self._navigate(step)
        if isinstance(step, Click):
            await self._await_element(step.selector)
            await self.backend.click(step.selector)
            await self._settle()
            return ActionOutcome.ok(target=step.selector)
        if isinstance(step, TypeInto):
            await self._await_element(step.selector)
            await self.backend.type(step.selector, step.text)
            return ActionOutcome.ok(target=step.selector)
        if isinstance(step, PressKey):
            if step.selector is not None:
                await self._await_element(step.selector)
            await self.backend.press(step.key, step.selector)
            await self._settle()
            return ActionOutcome.ok(target=step.selector)
        if isinstance(step, Extract):
            return await self._extract(step)
        if isinstance(step, Wait):
            return await self._wait(step)
        raise ValueError(f"Unsupported step: {step!r}")

    async def _navigate(self, step: Navigate) -> ActionOutcome:
        await self.backend.navigate(step.url, self.config.navigation_timeout_ms)
        await self._settle()
        return ActionOutcome.ok(target=step.url, data={"url": await self.backend.url()})

    async def _extract(self, step: Extract) -> ActionOutcome:
        await self._await_element(step.selector)
        values = await self.backend.read(step.selector, step.attribute)
        content = "\n".join(value.strip() for value in values if value and value.strip())
        limit = self.config.max_extract_chars
        if len(content) > limit:
            content = content[:limit] + f"... [truncated, {len(content)} total chars]"
        return ActionOutcome.ok(
            target=step.selector,
            data={"label": step.label, "content": content},
        )

    async def _wait(self, step: Wait) -> ActionOutcome:
        timeout_ms = step.timeout_ms or self.config.wait_timeout_ms
        if step.condition == "element":
            await self._await_element(
                step.selector,
                timeout_ms=timeout_ms,
                missing_kind=ActionErrorKind.TIMEOUT,
            )
            return ActionOutcome.ok(target=step.selector)

        await self.backend.wait_for_load("load", timeout_ms)
        return ActionOutcome.ok(data={"url": await self.backend.url()})

    async def _await_element(
        self,
        selector: str,
        timeout_ms: Optional[int] = None,
        missing_kind: ActionErrorKind = ActionErrorKind.ELEMENT_NOT_FOUND,
    ) -> None:
        """
        Smart-wait: poll until ``selector`` is visible or the ceiling elapses.

        Raises:
            ActionError: ``missing_kind`` when the element never shows up
        """
        timeout_ms = self.config.element_timeout_ms if timeout_ms is None else timeout_ms
        interval = max(self.config.poll_interval_ms, 1) / 1000
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        polls = 0

        while True:
            polls += 1
            if await self.backend.resolve(selector):
                return
            if loop.time() + interval > deadline:
                break
            await asyncio.sleep(interval)

        raise ActionError(
            missing_kind,
            f"{selector} not visible after {timeout_ms}ms ({polls} polls)",
            target=selector,
        )

    async def _settle(self) -> None:
        if self.config.settle_delay_ms > 0:
            await asyncio.sleep(self.config.settle_delay_ms / 1000)


def create_actuator(
    backend: BrowserBackend,
    config: Optional[ActuatorConfig] = None,
) -> Actuator:
    """Factory function to create an actuator (config from env if None)."""
    return Actuator(backend, config or ActuatorConfig.from_env())
