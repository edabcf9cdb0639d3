from .sheet import (
    ABILITY_ORDER,
    Action,
    Actor,
    Ammo,
    AttackPart,
    Buff,
    Conditional,
    ConditionalModifier,
    DamagePart,
    HostSheet,
    Item,
    PowerAttack,
)

__all__ = [
    "ABILITY_ORDER",
    "Action",
    "Actor",
    "Ammo",
    "AttackPart",
    "Buff",
    "Conditional",
    "ConditionalModifier",
    "DamagePart",
    "HostSheet",
    "Item",
    "PowerAttack",
]
