"""
THOUGHT / ACTION / RESULT blocks for agent events.
"""

from typing import Optional

from rich.table import Table
from rich.text import Text

from ..models import ActionOutcome, Step
from .console import AgentConsole, get_console

# Extracted content longer than this is cut in the terminal (not in history)
DISPLAY_TRUNCATE = 500


def format_step_params(step: Step) -> Table:
    """Render a step's fields (minus the action tag) as a two-column table."""
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    for key, value in step.model_dump(exclude={"action"}, exclude_none=True).items():
        table.add_row(key, str(value))
    return table


def print_thought(
    iteration: int,
    *,
    console: Optional[AgentConsole] = None,
) -> None:
    """Show that the planner is deciding step ``iteration``."""
    console = console or get_console()
    text = Text(f"Deciding step {iteration}...", style="italic")
    console.print_block(text, "thought", title=f"[THOUGHT {iteration}]")


def print_action(
    step: Step,
    iteration: int,
    *,
    console: Optional[AgentConsole] = None,
) -> None:
    """Show a planned step with its parameters."""
    console = console or get_console()

    content = Table.grid()
    content.add_row(Text(step.describe(), style="bold"))
    params = format_step_params(step)
    if params.row_count:
        content.add_row(params)

    console.print_block(content, "action", title=f"[ACTION {iteration}] {step.action}")


def print_result(
    outcome: ActionOutcome,
    iteration: int,
    *,
    console: Optional[AgentConsole] = None,
) -> None:
    """Show the outcome of an executed step."""
    console = console or get_console()

    text = Text()
    if outcome.success:
        text.append("OK", style="bold green")
    else:
        text.append("FAILED", style="bold red")
        if outcome.error_kind is not None:
            text.append(f" ({outcome.error_kind.value})", style="dim red")
        if outcome.reason:
            text.append(f"\n{outcome.reason}")

    if outcome.data and "content" in outcome.data:
        content = str(outcome.data["content"])
        if len(content) > DISPLAY_TRUNCATE:
            content = content[:DISPLAY_TRUNCATE] + f"... ({len(content) - DISPLAY_TRUNCATE} more chars)"
        text.append(f"\n{outcome.data.get('label', 'extracted')}: ", style="bold")
        text.append(content)

    block_type = "result" if outcome.success else "error"
    console.print_block(text, block_type, title=f"[RESULT {iteration}]")


def print_completion(
    summary: str,
    steps: int,
    *,
    console: Optional[AgentConsole] = None,
) -> None:
    console = console or get_console()
    text = Text()
    text.append("Goal completed", style="bold green")
    text.append(f" in {steps} steps\n\n", style="dim")
    text.append(summary)
    console.print_block(text, "result", title="[DONE]")


def print_error(
    message: str,
    *,
    title: str = "[FAILED]",
    console: Optional[AgentConsole] = None,
) -> None:
    console = console or get_console()
    text = Text()
    text.append("Error", style="bold red")
    text.append("\n\n")
    text.append(message)
    console.print_block(text, "error", title=title)
