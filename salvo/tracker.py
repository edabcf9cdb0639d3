from __future__ import annotations

from typing import List

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .engine.controller import SequentialController
from .engine.outcome import format_mod
from .engine.types import AttackDescriptor, Phase
from .errors import RollError

MARKERS = {
    "pending": "[dim]·[/]",
    "current": "[bold yellow]▶[/]",
    "resolved": "[green]✓[/]",
    "skipped": "[dim]–[/]",
}

# Prompt key for each command.
KEYS = {
    "Roll Next Attack": "n",
    "Roll Final Attack": "n",
    "Skip": "s",
    "Cancel": "c",
    "Done": "d",
}


def row_status(controller: SequentialController, index: int) -> str:
    state = controller.state
    if index in state.resolved:
        return "resolved"
    if index in state.skipped:
        return "skipped"
    if index == state.current_index and state.phase is Phase.RUNNING:
        return "current"
    return "pending"


def bonus_preview(controller: SequentialController, atk: AttackDescriptor) -> str:
    """Static part of the attack bonus, dice taken at their minimum."""
    if not atk.has_attack_roll:
        return "—"
    formula = controller.resolver.bonus_formula(atk)
    if not formula:
        return "+0"
    try:
        data = controller.builder.host.roll_data()
        return format_mod(controller.resolver.roller.evaluate(formula, data, minimize=True).total)
    except RollError:
        return "?"


def progress(controller: SequentialController) -> str:
    total = len(controller.attacks)
    done = total if controller.phase is Phase.COMPLETED else controller.state.current_index + 1
    return f"{min(done, total)} / {total}"


def commands(controller: SequentialController) -> List[str]:
    if controller.phase is Phase.COMPLETED:
        return ["Done"]
    if controller.phase is Phase.CANCELLED:
        return []
    roll = "Roll Final Attack" if controller.is_last else "Roll Next Attack"
    return [roll, "Skip", "Cancel"]


def tracker_table(controller: SequentialController) -> Table:
    t = Table(box=None, show_header=True, expand=False)
    t.add_column("")
    t.add_column("#")
    t.add_column("Attack")
    t.add_column("Bonus")
    for atk in controller.attacks:
        status = row_status(controller, atk.index)
        label = f"[bold]{escape(atk.label)}[/]" if status == "current" else escape(atk.label)
        t.add_row(MARKERS[status], str(atk.index + 1), label, bonus_preview(controller, atk))
    return t


def render_tracker(controller: SequentialController, item_name: str, console: Console | None = None) -> None:
    c = console or Console()
    action = controller.resolver.action
    c.rule(f"[bold]{escape(item_name)}[/] — {escape(action.name)}  {progress(controller)}")
    c.print(Panel(tracker_table(controller), title="Full Attack", border_style="cyan"))
    cmds = commands(controller)
    if cmds:
        c.print("  ".join(escape(f"[{KEYS[name]}]") + f" {name}" for name in cmds))


__all__ = ["render_tracker", "tracker_table", "commands", "bonus_preview", "progress", "row_status"]
