from __future__ import annotations

from typing import Optional, Protocol

from ..errors import LedgerInvariantViolation
from ..logging import get_logger
from .types import AmmoStock, AttackDescriptor, ResourceDelta

log = get_logger(__name__)


class ResourceStore(Protocol):
    """Persistent balances owned by the host; the source of truth."""

    def ammo_stock(self, ammo_id: str) -> Optional[AmmoStock]: ...

    def deduct(self, ref: str, amount: int) -> bool: ...


def ammo_ref(ammo_id: str) -> str:
    return f"ammo:{ammo_id}"


class ResourceLedger:
    """Tracks charge and ammunition spending for one sequence run.

    Charges are checked against the snapshot taken when the sequence was
    planned; ammunition is read from the store on every query. There is no
    rollback: a committed deduction is final.

    Costs paid once per use (``action_charge_cost`` and the self-charged use)
    go to the first step actually resolved, whichever index that is.
    """

    def __init__(
        self,
        store: ResourceStore,
        *,
        charges_available: int = 0,
        ammo_cost: int = 1,
        charge_ref: str = "charges",
        self_use_ref: Optional[str] = None,
        action_charge_cost: int = 0,
    ) -> None:
        self.store = store
        self.charges_available = charges_available
        self.charges_consumed = 0
        self.ammo_cost = ammo_cost
        self.charge_ref = charge_ref
        self.self_use_ref = self_use_ref
        self.action_charge_cost = action_charge_cost
        self.action_cost_paid = False

    @property
    def charges_remaining(self) -> int:
        return self.charges_available - self.charges_consumed

    def can_afford_charge(self, cost: int) -> bool:
        return cost <= self.charges_remaining

    def can_afford_ammo(self, ammo_id: Optional[str], cost: int) -> bool:
        if cost <= 0:
            return True
        stock = self.store.ammo_stock(ammo_id) if ammo_id else None
        if stock is None:
            return False
        return stock.abundant or stock.quantity >= cost

    def step_charge(self, atk: AttackDescriptor) -> int:
        """Charges the next commit of ``atk`` would spend."""
        if self.action_charge_cost:
            return 0 if self.action_cost_paid else self.action_charge_cost
        return atk.charge_cost or 0

    def can_afford(self, atk: AttackDescriptor) -> bool:
        if not self.can_afford_charge(self.step_charge(atk)):
            return False
        if atk.requires_ammo:
            return self.can_afford_ammo(atk.ammo_id, self.ammo_cost)
        return True

    def commit_charge(self, cost: int) -> int:
        if cost <= 0:
            return 0
        if not self.can_afford_charge(cost):
            raise LedgerInvariantViolation(
                f"charge commit of {cost} exceeds remaining {self.charges_remaining}"
            )
        if not self.store.deduct(self.charge_ref, cost):
            raise LedgerInvariantViolation(f"store refused to deduct {cost} charge(s)")
        self.charges_consumed += cost
        return cost

    def commit_ammo(self, ammo_id: str, cost: int) -> int:
        """Spend ammunition. Abundant stock reports success without spending."""
        if cost <= 0:
            return 0
        stock = self.store.ammo_stock(ammo_id)
        if stock is None:
            raise LedgerInvariantViolation(f"ammunition {ammo_id!r} no longer exists")
        if stock.abundant:
            return 0
        if not self.store.deduct(ammo_ref(ammo_id), cost):
            raise LedgerInvariantViolation(
                f"store refused to deduct {cost} from {ammo_id!r} (has {stock.quantity})"
            )
        return cost

    def commit_step(self, atk: AttackDescriptor) -> ResourceDelta:
        """The single commit made for a resolved step."""
        if not self.can_afford(atk):
            raise LedgerInvariantViolation(f"attack {atk.index + 1} ({atk.label}) is not affordable")
        charges = self.commit_charge(self.step_charge(atk))
        ammo = 0
        if atk.requires_ammo and atk.ammo_id:
            ammo = self.commit_ammo(atk.ammo_id, self.ammo_cost)
        self_uses = 0
        if self.self_use_ref and not self.action_cost_paid:
            if not self.store.deduct(self.self_use_ref, 1):
                raise LedgerInvariantViolation(f"no uses left on {self.self_use_ref!r}")
            self_uses = 1
        self.action_cost_paid = True
        delta = ResourceDelta(
            charges=charges,
            ammo_id=atk.ammo_id if atk.requires_ammo else None,
            ammo=ammo,
            self_uses=self_uses,
        )
        if not delta.empty:
            log.info("attack %d spent %s", atk.index + 1, delta)
        return delta


__all__ = ["ResourceLedger", "ResourceStore", "ammo_ref"]
