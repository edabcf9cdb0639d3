"""Per-step roll context derivation.

Every step starts from freshly refreshed actor roll data, so a buff toggled
between two attacks applies to the second one. Selections made once for the
whole sequence are re-derived per step:

* the charge bonus applies to the first step only;
* power attack is recomputed from the current base attack bonus;
* selected conditionals are re-evaluated against the refreshed data.
"""
from __future__ import annotations

import copy
import math
import re
from types import MappingProxyType
from typing import Any, Dict, List, Protocol, Tuple

from ..errors import RollError
from ..logging import get_logger
from ..models import Action
from .dice import FormulaRoller
from .types import AttackDescriptor, AttackForm, SequenceState, StepContext

log = get_logger(__name__)

CHARGE_LABEL = "Charge"
CHARGE_TAG = f"[{CHARGE_LABEL}]"
CHARGE_PART = f"2{CHARGE_TAG}"


class RollDataSource(Protocol):
    def roll_data(self) -> Dict[str, Any]: ...

    def targets(self) -> List[str]: ...


def create_tag(name: str) -> str:
    """Stable camel-case key for a display name, e.g. "Flanking Bonus" -> "flankingBonus"."""
    words = [w for w in re.split(r"[^0-9A-Za-z]+", name) if w]
    if not words:
        return "tag"
    head, *rest = words
    return head.lower() + "".join(w[:1].upper() + w[1:].lower() for w in rest)


def power_attack_values(bab: int, base: int, multiplier: float) -> Tuple[int, int]:
    """Return ``(penalty, bonus)`` for the given base attack bonus."""
    steps = 1 + bab // 4
    return -steps, math.floor(steps * base * multiplier)


def power_attack_label(action: Action) -> str:
    return "Deadly Aim" if action.is_ranged else "Power Attack"


class StepContextBuilder:
    def __init__(self, host: RollDataSource, action: Action, roller: FormulaRoller) -> None:
        self.host = host
        self.action = action
        self.roller = roller

    def build(self, form: AttackForm, atk: AttackDescriptor, state: SequenceState) -> StepContext:
        index = atk.index
        if index != state.current_index:
            log.warning("building context for attack %d while at %d", index + 1, state.current_index + 1)

        data = copy.deepcopy(self.host.roll_data())
        data["full_attack"] = 1 if form.full_attack else 0
        data["attack_count"] = index

        charge = form.charge and index == 0
        attack_parts = [p for p in form.attack_bonus if charge or CHARGE_TAG not in p]
        damage_parts = list(form.damage_bonus)
        crit_parts = list(form.damage_bonus)

        pa_bonus = pa_penalty = 0
        if form.power_attack:
            bab = int(data.get("attributes", {}).get("bab", {}).get("total", data.get("bab", 0)))
            pa_penalty, pa_bonus = power_attack_values(
                bab, self.action.power_attack.damage_bonus, self.action.power_attack_mult()
            )
            label = power_attack_label(self.action)
            attack_parts.append(f"{pa_penalty}[{label}]")
            if pa_bonus > 0:
                damage_parts.append(f"{pa_bonus}[{label}]")
                crit_parts.append(f"{pa_bonus * self.action.power_attack.crit_multiplier}[{label}]")
        data["power_attack"] = {"bonus": pa_bonus, "penalty": pa_penalty}

        cond_attack, cond_damage = self._conditionals(form, data, index)

        return StepContext(
            index=index,
            roll_data=MappingProxyType(data),
            charge=charge,
            attack_parts=tuple(attack_parts),
            damage_parts=tuple(damage_parts),
            crit_damage_parts=tuple(crit_parts),
            conditional_attack_parts=tuple(cond_attack),
            conditional_damage_parts=tuple(cond_damage),
            power_attack_bonus=pa_bonus,
            power_attack_penalty=pa_penalty,
            targets=tuple(self.host.targets()),
        )

    def _conditionals(
        self, form: AttackForm, data: Dict[str, Any], index: int
    ) -> Tuple[List[str], List[str]]:
        values: Dict[str, Dict[str, int]] = {}
        attack: List[str] = []
        damage: List[str] = []
        for cid in form.conditionals:
            cond = self.action.conditional(cid)
            if cond is None:
                log.warning("selected conditional %r not found on %s", cid, self.action.name)
                continue
            tag = create_tag(cond.name)
            for key, mod in enumerate(cond.modifiers):
                if mod.formula.strip() in ("", "0"):
                    continue
                try:
                    total = self.roller.evaluate(mod.formula, data).total
                except RollError as e:
                    log.warning("conditional %s modifier %d skipped: %s", cond.name, key, e)
                    continue
                values.setdefault(tag, {})[str(key)] = total
                if mod.sub_target not in ("all", f"attack_{index}"):
                    continue
                part = f"@conditionals.{tag}.{key}[{cond.name}]"
                if mod.target == "attack":
                    attack.append(part)
                elif mod.target == "damage":
                    damage.append(part)
        data["conditionals"] = values
        return attack, damage


__all__ = [
    "StepContextBuilder",
    "RollDataSource",
    "create_tag",
    "power_attack_values",
    "power_attack_label",
    "CHARGE_PART",
    "CHARGE_TAG",
]
