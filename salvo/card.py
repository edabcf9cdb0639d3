"""Per-attack card: every attack of a full attack as its own roll button.

A lighter alternative to the sequential tracker. Nothing is sequenced; the
user may roll the attacks in any order, each at most once.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import List, Optional

from .engine.context import StepContextBuilder
from .engine.dice import FormulaRoller
from .engine.ledger import ResourceLedger
from .engine.outcome import ListSink, OutcomeSink, build_outcome
from .engine.planner import plan
from .engine.resolve import AttackResolver
from .engine.types import AttackForm, SequenceState, StepOutcome
from .errors import CommandRejected, InsufficientResource
from .host import SheetHost
from .logging import get_logger
from .models import Action

log = get_logger(__name__)


@dataclass
class CardEntry:
    index: int
    label: str
    bonus: str = ""
    disabled: bool = False


@dataclass
class AttackCard:
    action_name: str
    entries: List[CardEntry]
    token: str

    @classmethod
    def from_action(cls, action: Action, token: Optional[str] = None) -> "AttackCard":
        entries = [CardEntry(index=0, label="Attack")]
        for i, part in enumerate(action.attack_parts):
            entries.append(CardEntry(index=i + 1, label=part.label or f"Attack {i + 2}", bonus=part.bonus))
        return cls(action_name=action.name, entries=entries, token=token or uuid.uuid4().hex)

    @property
    def multiple(self) -> bool:
        return len(self.entries) > 1


class CardRoller:
    """Rolls single attacks for an :class:`AttackCard`."""

    def __init__(
        self,
        host: SheetHost,
        action_id: Optional[str] = None,
        *,
        roller: Optional[FormulaRoller] = None,
        sink: Optional[OutcomeSink] = None,
        form: Optional[AttackForm] = None,
    ) -> None:
        self.host = host
        self.action = host.action(action_id)
        self.roller = roller or FormulaRoller()
        self.sink = sink if sink is not None else ListSink()
        self.form = form or AttackForm(full_attack=False)
        self.card = AttackCard.from_action(self.action)

    def roll(self, index: int, token: str) -> StepOutcome:
        card = self.card
        if token != card.token:
            raise CommandRejected("roll request does not belong to this card")
        if not 0 <= index < len(card.entries):
            log.warning("attack index %d out of range (%d parts)", index, len(card.entries) - 1)
            raise CommandRejected(f"attack index {index} out of range")
        entry = card.entries[index]
        if entry.disabled:
            raise CommandRejected(f"{entry.label} was already rolled")

        entry.disabled = True
        try:
            outcome = self._roll_one(index)
        except Exception:
            log.exception("error rolling %s", entry.label)
            entry.disabled = False
            raise
        return outcome

    def _roll_one(self, index: int) -> StepOutcome:
        action = self.action
        uses = action.uses
        if uses.self_charged and uses.self_value < 1:
            raise InsufficientResource("charge", f"{action.name} has no uses left.")
        raw = self.host.raw_attacks(action)
        # Plan the single attack on its own so resource checks still apply.
        (atk,) = plan(
            [raw[index]],
            initial_charges=self.host.charges(),
            charge_cost=uses.charge_cost,
            ammo=self.host.ammo_stocks() if action.uses_ammo else None,
            ammo_cost=action.ammo.cost,
            charge_per_attack=uses.per_attack,
        )
        atk = replace(atk, index=index)
        state = SequenceState(length=len(raw), current_index=index)
        ctx = StepContextBuilder(self.host, action, self.roller).build(self.form, atk, state)
        rolled = AttackResolver(action, self.roller).roll(atk, ctx)
        # Each card roll is a use of its own and pays the per-use costs again.
        ledger = ResourceLedger(
            self.host,
            charges_available=self.host.charges(),
            ammo_cost=action.ammo.cost,
            self_use_ref=f"self:{action.id}" if uses.self_charged else None,
            action_charge_cost=0 if uses.per_attack else uses.charge_cost,
        )
        outcome = build_outcome(self.card.token, atk, ctx, rolled, ledger.commit_step(atk))
        self.sink.emit(outcome)
        return outcome


__all__ = ["AttackCard", "CardEntry", "CardRoller"]
