from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, NonNegativeInt, PositiveInt, model_validator

ABILITY_ORDER = ("str", "dex", "con", "int", "wis", "cha")

# Action types that use "Deadly Aim" instead of "Power Attack".
RANGED_ACTION_TYPES = {"rwak", "twak", "rsak"}


class Buff(BaseModel):
    name: str = Field(min_length=1)
    active: bool = False
    # dotted roll-data path -> additive change; "bab" and "abilities.<x>" are scores
    changes: Dict[str, int] = Field(default_factory=dict)


class Actor(BaseModel):
    name: str = Field(min_length=1)
    bab: int = 0
    abilities: Dict[str, int] = Field(default_factory=lambda: {a: 10 for a in ABILITY_ORDER})
    buffs: List[Buff] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)


class Ammo(BaseModel):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    quantity: NonNegativeInt = 0
    abundant: bool = False


class AttackPart(BaseModel):
    bonus: str = ""
    label: str = ""
    ammo: Optional[str] = None
    kind: Literal["normal", "damage_only"] = "normal"


class DamagePart(BaseModel):
    formula: str
    type: str = ""


class ConditionalModifier(BaseModel):
    formula: str
    target: Literal["attack", "damage", "effect"] = "attack"
    # "all" or "attack_<n>" (0-based step index)
    sub_target: str = "all"
    damage_type: str = ""


class Conditional(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    default: bool = False
    modifiers: List[ConditionalModifier] = Field(default_factory=list)


class PowerAttack(BaseModel):
    damage_bonus: int = 2
    multiplier: Optional[float] = None
    crit_multiplier: PositiveInt = 1


class AmmoUse(BaseModel):
    type: Optional[str] = None
    cost: NonNegativeInt = 1


class Uses(BaseModel):
    charge_cost: NonNegativeInt = 0
    per_attack: bool = False
    self_charged: bool = False
    self_value: NonNegativeInt = 0


class Save(BaseModel):
    type: str
    dc: str = "10"


class Action(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    action_type: str = "mwak"
    held: Literal["normal", "1h", "2h", "oh"] = "normal"
    attack: str = ""
    has_attack: bool = True
    attack_parts: List[AttackPart] = Field(default_factory=list)
    damage: List[DamagePart] = Field(default_factory=list)
    crit_range: int = Field(default=20, ge=2, le=20)
    crit_multiplier: int = Field(default=2, ge=1)
    misfire: NonNegativeInt = 0
    power_attack: PowerAttack = Field(default_factory=PowerAttack)
    conditionals: List[Conditional] = Field(default_factory=list)
    ammo: AmmoUse = Field(default_factory=AmmoUse)
    uses: Uses = Field(default_factory=Uses)
    save: Optional[Save] = None
    measure_template: bool = False

    @model_validator(mode="before")
    @classmethod
    def _normalize_attack_parts(cls, data: Any) -> Any:
        # Older sheets keep extra attacks under system.attackParts or
        # data.attackParts as [bonus, label] pairs.
        if not isinstance(data, dict) or "attack_parts" in data:
            return data
        data = dict(data)
        for legacy in ("system", "data"):
            block = data.pop(legacy, None)
            if isinstance(block, dict) and "attackParts" in block:
                data["attack_parts"] = [_part_from_legacy(p) for p in block["attackParts"] or []]
                break
        return data

    @property
    def uses_ammo(self) -> bool:
        return bool(self.ammo.type) and self.ammo.cost > 0

    @property
    def is_ranged(self) -> bool:
        return self.action_type in RANGED_ACTION_TYPES

    def power_attack_mult(self) -> float:
        if self.power_attack.multiplier is not None:
            return self.power_attack.multiplier
        return {"2h": 1.5, "oh": 0.5}.get(self.held, 1.0)

    def conditional(self, cid: str) -> Optional[Conditional]:
        return next((c for c in self.conditionals if c.id == cid or c.name == cid), None)


def _part_from_legacy(part: Any) -> Any:
    if isinstance(part, (list, tuple)):
        bonus = part[0] if len(part) > 0 else ""
        label = part[1] if len(part) > 1 else ""
        return {"bonus": str(bonus or ""), "label": str(label or "")}
    return part


class Item(BaseModel):
    name: str = Field(min_length=1)
    type: str = "weapon"
    sub_type: Optional[str] = None
    charges: Optional[NonNegativeInt] = None
    ammo: List[Ammo] = Field(default_factory=list)
    default_ammo: Optional[str] = None
    actions: List[Action] = Field(default_factory=list)


class HostSheet(BaseModel):
    actor: Actor
    item: Item
    targets: List[str] = Field(default_factory=list)

    def action(self, action_id: str | None) -> Action:
        if not self.item.actions:
            raise KeyError(f"{self.item.name} has no actions")
        if action_id is None:
            return self.item.actions[0]
        for a in self.item.actions:
            if a.id == action_id or a.name.lower() == action_id.lower():
                return a
        raise KeyError(f"unknown action {action_id!r} on {self.item.name}")
