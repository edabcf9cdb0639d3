"""Build the ordered attack sequence and filter it against available resources."""
from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Mapping, Sequence

from ..errors import InsufficientResource
from ..logging import get_logger
from .types import AmmoStock, AttackDescriptor, RawAttack

log = get_logger(__name__)


def _descriptors(raw: Sequence[RawAttack], uses_ammo: bool) -> List[AttackDescriptor]:
    return [
        AttackDescriptor(
            index=i,
            label=r.label,
            attack_bonus=r.attack_bonus,
            requires_ammo=uses_ammo,
            ammo_id=r.ammo_id if uses_ammo else None,
            kind=r.kind,
        )
        for i, r in enumerate(raw)
    ]


def _filter_ammo(
    attacks: List[AttackDescriptor], ammo: Mapping[str, AmmoStock], ammo_cost: int
) -> List[AttackDescriptor]:
    # Stocks are shared across the sequence, so each surviving shot reserves
    # its cost before the next one is checked.
    reserved: Dict[str, int] = {}
    out: List[AttackDescriptor] = []
    for atk in attacks:
        stock = ammo.get(atk.ammo_id) if atk.ammo_id else None
        if stock is None:
            log.debug("attack %r dropped: no ammunition reference", atk.label)
            continue
        need = reserved.get(stock.id, 0) + ammo_cost
        if not stock.abundant and stock.quantity < need:
            log.debug("attack %r dropped: %s has %d, needs %d", atk.label, stock.id, stock.quantity, need)
            continue
        reserved[stock.id] = need
        out.append(atk)
    return out


def _filter_charges(
    attacks: List[AttackDescriptor], initial_charges: int, cost: int
) -> List[AttackDescriptor]:
    priced = [
        replace(atk, charge_cost=cost if initial_charges >= (i + 1) * cost else None)
        for i, atk in enumerate(attacks)
    ]
    out: List[AttackDescriptor] = []
    for atk in priced:
        if atk.charge_cost is None:
            # Charges are spent in order; nothing after this can be paid for.
            break
        out.append(atk)
    return out


def plan(
    raw_attacks: Sequence[RawAttack],
    *,
    initial_charges: int = 0,
    charge_cost: int = 0,
    ammo: Mapping[str, AmmoStock] | None = None,
    ammo_cost: int = 0,
    charge_per_attack: bool = True,
) -> List[AttackDescriptor]:
    """Plan a full attack.

    ``ammo`` is ``None`` when the action does not use ammunition. A
    ``charge_cost`` of zero means the action does not spend charges; when
    ``charge_per_attack`` is false the cost is paid once; step 0 carries it
    here, and the ledger charges it to whichever step is resolved first.
    Raises :class:`InsufficientResource` when nothing survives filtering.
    Pure: nothing is deducted here.
    """
    uses_ammo = ammo is not None and ammo_cost > 0
    attacks = _descriptors(raw_attacks, uses_ammo)

    if uses_ammo:
        attacks = _filter_ammo(attacks, ammo, ammo_cost)
        if not attacks:
            raise InsufficientResource("ammo")

    if charge_cost > 0:
        if charge_per_attack:
            attacks = _filter_charges(attacks, initial_charges, charge_cost)
        elif attacks and initial_charges >= charge_cost:
            attacks = [replace(attacks[0], charge_cost=charge_cost)] + attacks[1:]
        else:
            attacks = []
        if not attacks:
            raise InsufficientResource("charge")

    planned = [replace(atk, index=i) for i, atk in enumerate(attacks)]
    log.info(
        "planned %d of %d attack(s)%s",
        len(planned),
        len(raw_attacks),
        f" ({len(raw_attacks) - len(planned)} unaffordable)" if len(planned) < len(raw_attacks) else "",
    )
    return planned


__all__ = ["plan"]
