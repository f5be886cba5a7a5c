"""
Event Renderer

Consumes a session's events from the bus and prints them as blocks, until
the terminal event arrives.
"""

import logging
from typing import Optional

from ..events import Subscription
from ..models import (
    AgentEvent,
    CancelledEvent,
    CompletedEvent,
    ErrorEvent,
    StepExecutedEvent,
    StepPlannedEvent,
    ThinkingEvent,
)
from .blocks import print_action, print_completion, print_error, print_result, print_thought
from .console import AgentConsole, get_console

logger = logging.getLogger(__name__)


class EventRenderer:
    """Prints agent events to an AgentConsole."""

    def __init__(self, console: Optional[AgentConsole] = None, verbose: bool = False):
        self.console = console or get_console()
        self.verbose = verbose

    def render(self, event: AgentEvent) -> None:
        if isinstance(event, ThinkingEvent):
            if self.verbose:
                print_thought(event.iteration, console=self.console)
        elif isinstance(event, StepPlannedEvent):
            print_action(event.step, event.iteration, console=self.console)
        elif isinstance(event, StepExecutedEvent):
            print_result(event.outcome, event.iteration, console=self.console)
        elif isinstance(event, CompletedEvent):
            print_completion(event.summary, event.iteration, console=self.console)
        elif isinstance(event, ErrorEvent):
            print_error(event.message, console=self.console)
        elif isinstance(event, CancelledEvent):
            print_error(event.reason, title="[CANCELLED]", console=self.console)
        else:
            logger.debug("No renderer for event %r", event)

    async def consume(self, subscription: Subscription) -> Optional[AgentEvent]:
        """
        Render events until a terminal one (or the subscription closes).

        Returns:
            The terminal event, or None if the subscription closed first
        """
        async for event in subscription:
            self.render(event)
            if event.terminal:
                return event
        return None
