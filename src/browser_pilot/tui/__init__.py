"""
Rich TUI Interface Module

Terminal rendering of agent events as THOUGHT / ACTION / RESULT blocks.
"""

from browser_pilot.tui.console import (
    AgentConsole,
    BlockType,
    TUIConfig,
    get_console,
)
from browser_pilot.tui.blocks import (
    format_step_params,
    print_action,
    print_completion,
    print_error,
    print_result,
    print_thought,
)
from browser_pilot.tui.renderer import EventRenderer

__all__ = [
    "AgentConsole",
    "BlockType",
    "TUIConfig",
    "get_console",
    "format_step_params",
    "print_action",
    "print_completion",
    "print_error",
    "print_result",
    "print_thought",
    "EventRenderer",
]
