from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Protocol

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..logging_utils import NDJSONWriter
from .dice import RollResult
from .types import AttackDescriptor, ResourceDelta, StepContext, StepOutcome, StepRoll


class OutcomeSink(Protocol):
    """Receives one outcome per resolved step and owns its presentation."""

    def emit(self, outcome: StepOutcome) -> None: ...


def build_outcome(
    run_id: str, atk: AttackDescriptor, ctx: StepContext, rolled: StepRoll, delta: ResourceDelta
) -> StepOutcome:
    return StepOutcome(
        run_id=run_id,
        index=atk.index,
        label=atk.label,
        attack=rolled.attack,
        crit_confirm=rolled.crit_confirm,
        damage=rolled.damage,
        resources=delta,
        misfire=rolled.misfire,
        save_dc=rolled.save_dc,
        save_type=rolled.save_type,
        targets=ctx.targets,
    )


def _roll_record(r: RollResult | None) -> Dict[str, Any] | None:
    if r is None:
        return None
    return {
        "formula": r.formula,
        "total": r.total,
        "d20": r.d20,
        "flavors": r.flavors(),
    }


def outcome_record(o: StepOutcome) -> Dict[str, Any]:
    """Flat, JSON-friendly summary of an outcome."""
    return {
        "type": "attack",
        "run_id": o.run_id,
        "index": o.index,
        "label": o.label,
        "attack": _roll_record(o.attack),
        "crit_confirm": _roll_record(o.crit_confirm),
        "damage": [
            {
                **_roll_record(d.roll),
                "damage_type": d.damage_type,
                "critical": d.critical,
                **({"flavor": d.flavor} if d.flavor else {}),
            }
            for d in o.damage
        ],
        "resources": {
            "charges": o.resources.charges,
            "ammo_id": o.resources.ammo_id,
            "ammo": o.resources.ammo,
            "self_uses": o.resources.self_uses,
        },
        "misfire": o.misfire,
        "save": {"type": o.save_type, "dc": o.save_dc} if o.save_type else None,
        "targets": list(o.targets),
    }


class ListSink:
    def __init__(self) -> None:
        self.outcomes: List[StepOutcome] = []

    def emit(self, outcome: StepOutcome) -> None:
        self.outcomes.append(outcome)


class NDJSONSink:
    """Append each outcome as one JSON line."""

    def __init__(self, path: Path) -> None:
        self.writer = NDJSONWriter(Path(path))

    def emit(self, outcome: StepOutcome) -> None:
        self.writer.write(outcome_record(outcome))

    def close(self) -> None:
        self.writer.close()


def format_mod(n: int) -> str:
    return f"+{n}" if n >= 0 else str(n)


def _roll_cell(r: RollResult) -> str:
    faces = " ".join(f"{t.text}={sum(t.rolls)}" for t in r.terms if t.rolls)
    return f"[bold]{r.total}[/]  [dim]{escape(r.formula)}{f'  ({faces})' if faces else ''}[/dim]"


def outcome_panel(o: StepOutcome, *, title: str | None = None) -> Panel:
    """Chat card for one resolved step."""
    t = Table(box=None, show_header=False, expand=False)
    if o.attack is not None:
        nat = o.attack.d20
        mark = " [green]threat[/]" if o.crit_confirm is not None else ""
        if nat == 1:
            mark = " [red]natural 1[/]"
        t.add_row("Attack", _roll_cell(o.attack) + mark)
    if o.crit_confirm is not None:
        t.add_row("Confirm", _roll_cell(o.crit_confirm))
    for d in o.damage:
        name = "Critical" if d.critical else (d.flavor or "Damage")
        kind = f" {d.damage_type}" if d.damage_type else ""
        t.add_row(name, _roll_cell(d.roll) + kind)
    if o.save_type:
        t.add_row("Save", f"DC {o.save_dc} {o.save_type}")
    if o.misfire:
        t.add_row("Misfire", "[red]the weapon misfires[/]")
    spent = []
    if o.resources.charges:
        spent.append(f"{o.resources.charges} charge(s)")
    if o.resources.ammo:
        spent.append(f"{o.resources.ammo} {o.resources.ammo_id}")
    if o.resources.self_uses:
        spent.append(f"{o.resources.self_uses} use")
    if spent:
        t.add_row("Spent", ", ".join(spent))
    if o.targets:
        t.add_row("Targets", ", ".join(o.targets))
    return Panel(t, title=escape(title or f"{o.index + 1}. {o.label}"), border_style="red")


class ConsoleSink:
    """Print each outcome as a rich chat card."""

    def __init__(self, console: Console | None = None, *, title: str | None = None) -> None:
        self.console = console or Console()
        self.title = title

    def emit(self, outcome: StepOutcome) -> None:
        title = f"{self.title}: {outcome.label}" if self.title else None
        self.console.print(outcome_panel(outcome, title=title))


class FanOutSink:
    def __init__(self, *sinks: OutcomeSink) -> None:
        self.sinks = list(sinks)

    def emit(self, outcome: StepOutcome) -> None:
        for s in self.sinks:
            s.emit(outcome)


__all__ = [
    "OutcomeSink",
    "ListSink",
    "NDJSONSink",
    "ConsoleSink",
    "FanOutSink",
    "outcome_panel",
    "format_mod",
    "build_outcome",
    "outcome_record",
]
