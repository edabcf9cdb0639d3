from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Mapping, Optional, Set, Tuple

from .dice import RollResult

AttackKind = Literal["normal", "damage_only"]


@dataclass(frozen=True)
class RawAttack:
    """One attack entry as the host defines it, before planning."""
    label: str
    attack_bonus: str = ""
    ammo_id: Optional[str] = None
    kind: AttackKind = "normal"


@dataclass(frozen=True)
class AttackDescriptor:
    index: int
    label: str
    attack_bonus: str = ""
    requires_ammo: bool = False
    ammo_id: Optional[str] = None
    # None marks an attack the charges cannot pay for; filtered out by planning.
    charge_cost: Optional[int] = 0
    kind: AttackKind = "normal"

    @property
    def has_attack_roll(self) -> bool:
        return self.kind != "damage_only"


@dataclass(frozen=True)
class AmmoStock:
    id: str
    quantity: int
    abundant: bool = False
    name: Optional[str] = None


class Phase(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self is not Phase.RUNNING


@dataclass
class SequenceState:
    length: int
    current_index: int = 0
    resolved: Set[int] = field(default_factory=set)
    skipped: Set[int] = field(default_factory=set)
    phase: Phase = Phase.RUNNING

    def __post_init__(self) -> None:
        if self.length == 0 and self.phase is Phase.RUNNING:
            self.phase = Phase.COMPLETED

    @property
    def exhausted(self) -> bool:
        return self.current_index >= self.length

    def mark(self, bucket: Set[int]) -> None:
        """Record the current index in ``bucket`` and step past it."""
        bucket.add(self.current_index)
        self.current_index += 1
        if self.exhausted:
            self.phase = Phase.COMPLETED


@dataclass(frozen=True)
class ResourceDelta:
    charges: int = 0
    ammo_id: Optional[str] = None
    ammo: int = 0
    self_uses: int = 0

    @property
    def empty(self) -> bool:
        return not (self.charges or self.ammo or self.self_uses)


@dataclass(frozen=True)
class AttackForm:
    """Selections made once in the attack dialog, before the sequence starts."""
    full_attack: bool = True
    charge: bool = False
    power_attack: bool = False
    conditionals: Tuple[str, ...] = ()
    attack_bonus: Tuple[str, ...] = ()
    damage_bonus: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StepContext:
    index: int
    roll_data: Mapping[str, Any]
    charge: bool
    attack_parts: Tuple[str, ...]
    damage_parts: Tuple[str, ...]
    crit_damage_parts: Tuple[str, ...]
    conditional_attack_parts: Tuple[str, ...] = ()
    conditional_damage_parts: Tuple[str, ...] = ()
    power_attack_bonus: int = 0
    power_attack_penalty: int = 0
    targets: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DamageRoll:
    roll: RollResult
    damage_type: str = ""
    critical: bool = False
    flavor: Optional[str] = None


@dataclass(frozen=True)
class StepRoll:
    attack: Optional[RollResult] = None
    crit_confirm: Optional[RollResult] = None
    damage: Tuple[DamageRoll, ...] = ()
    misfire: bool = False
    save_dc: Optional[int] = None
    save_type: Optional[str] = None

    @property
    def threatened(self) -> bool:
        return self.crit_confirm is not None


@dataclass(frozen=True)
class StepOutcome:
    run_id: str
    index: int
    label: str
    attack: Optional[RollResult]
    crit_confirm: Optional[RollResult]
    damage: Tuple[DamageRoll, ...]
    resources: ResourceDelta
    misfire: bool = False
    save_dc: Optional[int] = None
    save_type: Optional[str] = None
    targets: Tuple[str, ...] = ()
