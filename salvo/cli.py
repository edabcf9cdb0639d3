from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Iterable, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

try:
    import typer.rich_utils as tru
except ModuleNotFoundError:  # pragma: no cover - older Typer versions
    tru = None

from salvo.card import CardRoller
from salvo.config import Settings
from salvo.config_env import load_env
from salvo.engine.controller import SequentialController
from salvo.engine.dice import FormulaRoller
from salvo.engine.outcome import ConsoleSink, FanOutSink, NDJSONSink
from salvo.engine.types import AttackForm, Phase
from salvo.errors import (
    CommandRejected,
    InsufficientResource,
    LedgerInvariantViolation,
    PrettyError,
    RollError,
    StepResolutionFailure,
)
from salvo.host import SheetHost
from salvo.models import Action
from salvo.rng import RNG
from salvo.tracker import render_tracker
from salvo.use import ActionUse

if tru is not None:  # pragma: no branch
    tru.Panel = partial(tru.Panel, box=box.ASCII)

app = typer.Typer(no_args_is_help=True, help="Resolve full attacks one roll at a time.")

# Exit codes
EXIT_INVALID = 1
EXIT_PLANNING = 2
EXIT_LEDGER = 3
EXIT_STEP = 4

PROMPT_HELP = "n=next  s=skip  c=cancel  d=done  b NAME=toggle buff  t NAME...=set targets"


@app.callback()
def main() -> None:
    """salvo - sequential full-attack resolution."""
    load_env()


def _load(sheet: Path) -> SheetHost:
    try:
        return SheetHost.load(sheet)
    except PrettyError as e:
        typer.secho(f"ERR: {sheet}\n{e}", fg=typer.colors.RED)
        raise typer.Exit(EXIT_INVALID)


def _action(host: SheetHost, action_id: Optional[str]) -> Action:
    try:
        return host.action(action_id)
    except KeyError as e:
        typer.secho(str(e.args[0]), fg=typer.colors.RED)
        raise typer.Exit(EXIT_INVALID)


@app.command()
def validate(sheet: Path = typer.Argument(..., exists=True)):
    """Validate a host sheet (json or yaml)."""
    _load(sheet)
    typer.secho(f"OK: {sheet}", fg=typer.colors.GREEN)


@app.command()
def plan(
    sheet: Path = typer.Argument(..., exists=True),
    action_id: Optional[str] = typer.Option(None, "--action", help="Action id or name"),
    charges: Optional[int] = typer.Option(None, help="Override the item's current charges"),
) -> None:
    """Show the attacks a full attack would make with the current resources."""
    host = _load(sheet)
    action = _action(host, action_id)
    if charges is not None:
        host.item.charges = charges
    use = ActionUse(host, action.id, AttackForm(), Settings(sequential_attacks=True))
    try:
        attacks = use.plan()
    except InsufficientResource as e:
        typer.secho(f"{action.name}: {e}", fg=typer.colors.RED)
        raise typer.Exit(EXIT_PLANNING)

    c = Console()
    c.rule(f"[bold]{escape(host.item.name)}[/] — {escape(action.name)}")
    t = Table(box=None, show_header=True, expand=False)
    t.add_column("#")
    t.add_column("Attack")
    t.add_column("Bonus")
    t.add_column("Ammo")
    t.add_column("Charges")
    for atk in attacks:
        t.add_row(
            str(atk.index + 1),
            escape(atk.label),
            escape(atk.attack_bonus) or "—",
            atk.ammo_id or "—",
            str(atk.charge_cost or 0),
        )
    c.print(t)
    dropped = len(host.raw_attacks(action)) - len(attacks)
    if dropped:
        typer.echo(f"{dropped} attack(s) dropped for lack of resources")


class _ConsoleTemplate:
    def __init__(self, console: Console, name: str) -> None:
        self.console = console
        self.name = name

    def delete(self) -> None:
        self.console.print(f"[dim]Template for {self.name} removed[/dim]")


def _lines(script: Optional[Path]) -> Iterable[str]:
    if script is not None:
        yield from script.read_text(encoding="utf-8").splitlines()
        return
    while True:
        try:
            line = input("> ")
        except EOFError:
            return
        yield line


def _drive(controller: SequentialController, host: SheetHost, lines: Iterable[str], console: Console) -> None:
    """Feed prompt commands to the controller, one at a time."""
    render_tracker(controller, host.item.name, console)
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        verb, _, arg = line.partition(" ")
        verb = verb.lower()
        try:
            if verb in ("n", "next"):
                controller.advance(run_id=controller.run_id)
            elif verb in ("s", "skip"):
                controller.skip(run_id=controller.run_id)
            elif verb in ("c", "cancel", "q", "quit"):
                controller.cancel(run_id=controller.run_id)
            elif verb in ("d", "done"):
                controller.acknowledge(run_id=controller.run_id)
                return
            elif verb in ("b", "buff"):
                state = host.toggle_buff(arg.strip())
                console.print(f"{arg.strip()}: {'on' if state else 'off'}")
                continue
            elif verb in ("t", "target"):
                host.set_targets(arg.split())
                console.print(f"Targets: {', '.join(host.targets()) or '—'}")
                continue
            elif verb in ("h", "help", "?"):
                console.print(PROMPT_HELP)
                continue
            else:
                console.print(f"[yellow]Unknown command: {verb}[/]  ({PROMPT_HELP})")
                continue
        except StepResolutionFailure as e:
            console.print(f"[yellow]{e}[/]  (attack can be retried)")
        except CommandRejected as e:
            console.print(f"[yellow]{e}[/]")
        except KeyError as e:
            console.print(f"[yellow]{e.args[0]}[/]")
        if controller.phase is Phase.CANCELLED:
            console.print("Full attack cancelled.")
            return
        render_tracker(controller, host.item.name, console)

    if not controller.phase.terminal:
        controller.cancel(run_id=controller.run_id)
        console.print("Full attack cancelled.")


@app.command()
def attack(
    sheet: Path = typer.Argument(..., exists=True),
    action_id: Optional[str] = typer.Option(None, "--action", help="Action id or name"),
    charge: bool = typer.Option(False, "--charge", help="Charge (+2 to the first attack)"),
    power_attack: bool = typer.Option(False, "--power-attack", help="Use Power Attack / Deadly Aim"),
    cond: List[str] = typer.Option([], "--cond", help="Conditional id or name (repeatable)"),
    seed: Optional[int] = typer.Option(None, help="Deterministic RNG seed"),
    script: Optional[Path] = typer.Option(None, exists=True, help="Command script, one command per line"),
    log: Optional[Path] = typer.Option(None, help="NDJSON output, one line per attack"),
    save: bool = typer.Option(False, help="Write spent resources back to the sheet"),
    sequential: Optional[bool] = typer.Option(
        None, "--sequential/--all-at-once", help="Override the sequential_attacks setting"
    ),
) -> None:
    """Make a full attack, rolling one attack per command."""
    host = _load(sheet)
    action = _action(host, action_id)
    console = Console()

    selected = list(cond) or [c.id for c in action.conditionals if c.default]
    form = AttackForm(
        full_attack=True,
        charge=charge,
        power_attack=power_attack,
        conditionals=tuple(selected),
    )

    ndjson = NDJSONSink(log) if log else None
    sink = ConsoleSink(console, title=action.name)
    if ndjson is not None:
        sink = FanOutSink(sink, ndjson)

    use = ActionUse(
        host,
        action.id,
        form,
        Settings.load(sequential_attacks=sequential),
        roller=FormulaRoller(RNG(seed)),
        sink=sink,
        placer=lambda a: _ConsoleTemplate(console, a.name),
    )
    try:
        controller = use.execute()
        if controller is not None and use.sequential:
            console.print(PROMPT_HELP)
            _drive(controller, host, _lines(script), console)
    except InsufficientResource as e:
        typer.secho(f"{action.name}: {e}", fg=typer.colors.RED)
        raise typer.Exit(EXIT_PLANNING)
    except StepResolutionFailure as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(EXIT_STEP)
    except LedgerInvariantViolation as e:
        typer.secho(f"Resource error, sequence halted: {e}", fg=typer.colors.RED)
        raise typer.Exit(EXIT_LEDGER)
    finally:
        if ndjson is not None:
            ndjson.close()
        if save:
            host.save(sheet)

    if controller is not None:
        state = controller.state
        typer.echo(
            f"{len(state.resolved)} resolved, {len(state.skipped)} skipped ({controller.phase.value})"
        )



@app.command()
def card(
    sheet: Path = typer.Argument(..., exists=True),
    action_id: Optional[str] = typer.Option(None, "--action", help="Action id or name"),
    roll: List[int] = typer.Option([], "--roll", help="Attack number to roll (repeatable)"),
    seed: Optional[int] = typer.Option(None, help="Deterministic RNG seed"),
    log: Optional[Path] = typer.Option(None, help="NDJSON output, one line per attack"),
    save: bool = typer.Option(False, help="Write spent resources back to the sheet"),
) -> None:
    """List an action's attacks as a card and roll the chosen ones, in any order."""
    if not Settings.load().attack_card:
        typer.secho("Attack cards are disabled (attack_card setting).", fg=typer.colors.YELLOW)
        raise typer.Exit(EXIT_INVALID)
    host = _load(sheet)
    action = _action(host, action_id)
    console = Console()

    ndjson = NDJSONSink(log) if log else None
    sink = ConsoleSink(console, title=action.name)
    if ndjson is not None:
        sink = FanOutSink(sink, ndjson)
    roller = CardRoller(host, action.id, roller=FormulaRoller(RNG(seed)), sink=sink)
    deck = roller.card

    console.rule(f"[bold]{escape(host.item.name)}[/] — {escape(deck.action_name)}")
    t = Table(box=None, show_header=True, expand=False)
    t.add_column("#")
    t.add_column("Attack")
    t.add_column("Bonus")
    for entry in deck.entries:
        t.add_row(str(entry.index + 1), escape(entry.label), escape(entry.bonus) or "—")
    console.print(t)

    try:
        for number in roll:
            try:
                roller.roll(number - 1, deck.token)
            except CommandRejected as e:
                console.print(f"[yellow]{escape(str(e))}[/]")
    except InsufficientResource as e:
        typer.secho(f"{action.name}: {e}", fg=typer.colors.RED)
        raise typer.Exit(EXIT_PLANNING)
    except RollError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(EXIT_STEP)
    except LedgerInvariantViolation as e:
        typer.secho(f"Resource error: {e}", fg=typer.colors.RED)
        raise typer.Exit(EXIT_LEDGER)
    finally:
        if ndjson is not None:
            ndjson.close()
        if save:
            host.save(sheet)

    rolled = sum(1 for e in deck.entries if e.disabled)
    typer.echo(f"{rolled} of {len(deck.entries)} attack(s) rolled")


__all__ = ["app"]


if __name__ == "__main__":
    app()
