"""Using an action: decide between sequential and all-at-once resolution.

The attack dialog has already run by the time an :class:`ActionUse` is
built; its result arrives as an :class:`AttackForm` and is never asked for
again.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Callable, List, Optional, Protocol

from .config import Settings
from .engine.context import CHARGE_PART, StepContextBuilder
from .engine.controller import SequentialController
from .engine.dice import FormulaRoller
from .engine.ledger import ResourceLedger
from .engine.outcome import ListSink, OutcomeSink
from .engine.planner import plan
from .engine.resolve import AttackResolver
from .engine.types import AttackDescriptor, AttackForm, StepOutcome
from .errors import InsufficientResource
from .host import SheetHost
from .logging import get_logger
from .models import Action

log = get_logger(__name__)

# Item kinds that always resolve all at once.
ALL_AT_ONCE_ITEM_TYPES = {"spell", "consumable"}


class Template(Protocol):
    def delete(self) -> None: ...


TemplatePlacer = Callable[[Action], Optional[Template]]


class ActionUse:
    def __init__(
        self,
        host: SheetHost,
        action_id: Optional[str],
        form: AttackForm,
        settings: Optional[Settings] = None,
        *,
        roller: Optional[FormulaRoller] = None,
        sink: Optional[OutcomeSink] = None,
        placer: Optional[TemplatePlacer] = None,
        run_id: Optional[str] = None,
    ) -> None:
        self.host = host
        self.action = host.action(action_id)
        self.settings = settings or Settings.load()
        self.roller = roller or FormulaRoller()
        self.sink = sink if sink is not None else ListSink()
        self.placer = placer
        self.run_id = run_id
        if form.charge and CHARGE_PART not in form.attack_bonus:
            form = replace(form, attack_bonus=(*form.attack_bonus, CHARGE_PART))
        self.form = form

    @property
    def sequential(self) -> bool:
        """True when this use is resolved one attack at a time."""
        item = self.host.item
        if not self.settings.sequential_attacks:
            return False
        if not self.action.has_attack:
            return False
        if item.type in ALL_AT_ONCE_ITEM_TYPES:
            return False
        if item.type == "feat" and item.sub_type == "classFeat":
            return False
        if not self.form.full_attack:
            return False
        return len(self.host.raw_attacks(self.action)) > 1

    def plan(self) -> List[AttackDescriptor]:
        action = self.action
        raw = self.host.raw_attacks(action)
        if not self.form.full_attack:
            raw = raw[:1]
        uses = action.uses
        if uses.self_charged and uses.self_value < 1:
            raise InsufficientResource("charge", f"{action.name} has no uses left.")
        return plan(
            raw,
            initial_charges=self.host.charges(),
            charge_cost=uses.charge_cost,
            ammo=self.host.ammo_stocks() if action.uses_ammo else None,
            ammo_cost=action.ammo.cost,
            charge_per_attack=uses.per_attack,
        )

    def start(self) -> Optional[SequentialController]:
        """Plan the sequence and hand back its controller.

        Returns ``None`` when template placement is abandoned. Planning
        failures propagate as :class:`InsufficientResource`.
        """
        attacks = self.plan()

        release = None
        if self.action.measure_template and self.placer is not None:
            template = self.placer(self.action)
            if template is None:
                log.info("%s: template placement cancelled", self.action.name)
                return None
            release = template.delete

        ledger = ResourceLedger(
            self.host,
            charges_available=self.host.charges(),
            ammo_cost=self.action.ammo.cost,
            self_use_ref=f"self:{self.action.id}" if self.action.uses.self_charged else None,
            action_charge_cost=0 if self.action.uses.per_attack else self.action.uses.charge_cost,
        )
        return SequentialController(
            attacks,
            ledger,
            StepContextBuilder(self.host, self.action, self.roller),
            AttackResolver(self.action, self.roller),
            self.sink,
            self.form,
            run_id=self.run_id,
            release=release,
            on_complete=self._completed,
        )

    def run_all(self, controller: SequentialController) -> List[StepOutcome]:
        while not controller.phase.terminal:
            controller.advance()
        return controller.outcomes

    def execute(self) -> Optional[SequentialController]:
        """Start the use; in all-at-once mode every attack is rolled before returning."""
        controller = self.start()
        if controller is None:
            return None
        if not self.sequential:
            log.debug("%s: resolving all at once", self.action.name)
            self.run_all(controller)
        return controller

    def _completed(self, controller: SequentialController) -> None:
        log.info('full attack "%s (%s)" completed', self.host.item.name, self.action.name)
        if self.settings.clear_targets_after_attack:
            self.host.clear_targets()


__all__ = ["ActionUse", "Template", "TemplatePlacer", "ALL_AT_ONCE_ITEM_TYPES"]
