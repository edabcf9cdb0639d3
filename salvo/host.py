"""In-process host adapter backed by a character sheet file.

This is the only place that knows the sheet layout. The engine sees
normalized :class:`RawAttack` entries, a roll-data mapping rebuilt on every
call, and a resource store keyed by ``charges``, ``ammo:<id>`` and
``self:<action id>``.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .engine.types import AmmoStock, RawAttack
from .logging import get_logger
from .models import ABILITY_ORDER, Action, HostSheet
from .validation import load_sheet

log = get_logger(__name__)


def ability_mod(score: int) -> int:
    return (score - 10) // 2


def _add_path(data: Dict[str, Any], path: str, delta: int) -> None:
    *parents, leaf = path.split(".")
    cur = data
    for key in parents:
        cur = cur.setdefault(key, {})
    cur[leaf] = cur.get(leaf, 0) + delta


class SheetHost:
    def __init__(self, sheet: HostSheet) -> None:
        self.sheet = sheet

    @classmethod
    def load(cls, path: str | Path) -> "SheetHost":
        return cls(load_sheet(Path(path)))

    # --- action source ---
    def action(self, action_id: str | None = None) -> Action:
        return self.sheet.action(action_id)

    @property
    def item(self):
        return self.sheet.item

    def raw_attacks(self, action: Action) -> List[RawAttack]:
        default_ammo = self.item.default_ammo or (self.item.ammo[0].id if self.item.ammo else None)
        out = [RawAttack(label="Attack", attack_bonus="", ammo_id=default_ammo)]
        for i, part in enumerate(action.attack_parts):
            out.append(
                RawAttack(
                    label=part.label or f"Attack {i + 2}",
                    attack_bonus=part.bonus,
                    ammo_id=part.ammo or default_ammo,
                    kind=part.kind,
                )
            )
        return out

    def roll_data(self) -> Dict[str, Any]:
        """Build roll data from the sheet as it is right now, active buffs included."""
        actor = self.sheet.actor
        bab = actor.bab
        scores = {a: actor.abilities.get(a, 10) for a in ABILITY_ORDER}
        scores.update({k: v for k, v in actor.abilities.items() if k not in scores})
        other: Dict[str, int] = {}
        for buff in actor.buffs:
            if not buff.active:
                continue
            for path, delta in buff.changes.items():
                if path == "bab":
                    bab += delta
                elif path.startswith("abilities.") and path.count(".") == 1:
                    key = path.split(".", 1)[1]
                    scores[key] = scores.get(key, 10) + delta
                else:
                    other[path] = other.get(path, 0) + delta

        data: Dict[str, Any] = json.loads(json.dumps(actor.extra))
        data["bab"] = bab
        data.setdefault("attributes", {})["bab"] = {"total": bab}
        data["abilities"] = {k: {"total": v, "mod": ability_mod(v)} for k, v in scores.items()}
        for path, delta in other.items():
            _add_path(data, path, delta)
        return data

    def toggle_buff(self, name: str) -> bool:
        for buff in self.sheet.actor.buffs:
            if buff.name.lower() == name.lower():
                buff.active = not buff.active
                log.info("buff %s %s", buff.name, "on" if buff.active else "off")
                return buff.active
        raise KeyError(f"unknown buff {name!r}")

    # --- targets ---
    def targets(self) -> List[str]:
        return list(self.sheet.targets)

    def set_targets(self, names: List[str]) -> None:
        self.sheet.targets = list(names)

    def clear_targets(self) -> None:
        self.sheet.targets.clear()

    # --- resource store ---
    def charges(self) -> int:
        return self.item.charges or 0

    def ammo_stock(self, ammo_id: str) -> Optional[AmmoStock]:
        for a in self.item.ammo:
            if a.id == ammo_id:
                return AmmoStock(id=a.id, quantity=a.quantity, abundant=a.abundant, name=a.name)
        return None

    def ammo_stocks(self) -> Dict[str, AmmoStock]:
        return {a.id: self.ammo_stock(a.id) for a in self.item.ammo}

    def deduct(self, ref: str, amount: int) -> bool:
        kind, _, key = ref.partition(":")
        if kind == "charges":
            have = self.item.charges or 0
            if have < amount:
                return False
            self.item.charges = have - amount
            return True
        if kind == "ammo":
            for a in self.item.ammo:
                if a.id == key:
                    if a.quantity < amount:
                        return False
                    a.quantity -= amount
                    return True
            return False
        if kind == "self":
            try:
                act = self.action(key)
            except KeyError:
                return False
            if act.uses.self_value < amount:
                return False
            act.uses.self_value -= amount
            return True
        log.warning("unknown resource ref %r", ref)
        return False

    def save(self, path: str | Path) -> None:
        path = Path(path)
        data = self.sheet.model_dump(mode="json")
        if path.suffix.lower() == ".json":
            path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        else:
            path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


__all__ = ["SheetHost", "ability_mod"]
