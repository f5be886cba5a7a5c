"""
Rich TUI Console Setup

Themed console for rendering agent progress. Colors and timestamps are
configured via environment variables.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

from rich.console import Console, RenderableType
from rich.panel import Panel
from rich.style import Style
from rich.theme import Theme


# Block types for agent output
BlockType = Literal["thought", "action", "result", "error"]


@dataclass
class TUIConfig:
    """
    TUI configuration loaded from environment variables.

    Attributes:
        color_thought: Color for THOUGHT blocks (planner is deciding)
        color_action: Color for ACTION blocks (planned steps)
        color_result: Color for RESULT blocks (step outcomes)
        color_error: Color for failed outcomes and session errors
        show_timestamps: Whether to display timestamps
    """

    color_thought: str = "blue"
    color_action: str = "green"
    color_result: str = "yellow"
    color_error: str = "red"
    show_timestamps: bool = True

    @classmethod
    def from_env(cls) -> "TUIConfig":
        """Load configuration from environment variables."""
        return cls(
            color_thought=os.getenv("COLOR_THOUGHT", "blue"),
            color_action=os.getenv("COLOR_ACTION", "green"),
            color_result=os.getenv("COLOR_RESULT", "yellow"),
            color_error=os.getenv("COLOR_ERROR", "red"),
            show_timestamps=os.getenv("SHOW_TIMESTAMPS", "true").lower() == "true",
        )


def create_theme(config: TUIConfig) -> Theme:
    """Create a Rich theme from TUI configuration."""
    return Theme(
        {
            "thought": Style(color=config.color_thought, bold=True),
            "action": Style(color=config.color_action, bold=True),
            "result": Style(color=config.color_result, bold=True),
            "error": Style(color=config.color_error, bold=True),
            "timestamp": Style(dim=True),
            "label": Style(bold=True),
        }
    )


class AgentConsole:
    """
    Rich console wrapper for agent output.

    Every block is a left-titled panel, colored by block type, optionally
    prefixed with a timestamp.
    """

    def __init__(
        self,
        config: Optional[TUIConfig] = None,
        console: Optional[Console] = None,
    ):
        """
        Initialize the agent console.

        Args:
            config: TUI configuration. If None, loads from environment.
            console: Underlying Rich console (a new themed one if None)
        """
        self.config = config or TUIConfig.from_env()
        self._theme = create_theme(self.config)
        self.console = console or Console(theme=self._theme)

    def timestamp(self) -> str:
        if self.config.show_timestamps:
            return datetime.now().strftime("%H:%M:%S")
        return ""

    def _get_block_style(self, block_type: BlockType) -> tuple[str, str]:
        styles = {
            "thought": (self.config.color_thought, "THOUGHT"),
            "action": (self.config.color_action, "ACTION"),
            "result": (self.config.color_result, "RESULT"),
            "error": (self.config.color_error, "ERROR"),
        }
        return styles[block_type]

    def print_block(
        self,
        content: RenderableType,
        block_type: BlockType,
        title: Optional[str] = None,
    ) -> None:
        """
        Print a styled block to the console.

        Args:
            content: Text or Rich renderable to display
            block_type: Type of block (thought, action, result, error)
            title: Optional title to override default label
        """
        color, label = self._get_block_style(block_type)
        block_title = title or f"[{label}]"

        timestamp = self.timestamp()
        if timestamp:
            block_title = f"{timestamp} {block_title}"

        panel = Panel(
            content,
            title=block_title,
            title_align="left",
            border_style=color,
            padding=(0, 1),
        )
        self.console.print(panel)

    def print(self, *args, **kwargs) -> None:
        """Passthrough to underlying Rich console."""
        self.console.print(*args, **kwargs)


# Global console instance
_console: Optional[AgentConsole] = None


def get_console() -> AgentConsole:
    """Get or create the global console instance."""
    global _console
    if _console is None:
        _console = AgentConsole()
    return _console
