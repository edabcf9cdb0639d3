"""Error taxonomy for sequence planning and step resolution."""
from __future__ import annotations

from typing import Literal

ResourceKind = Literal["ammo", "charge"]


class SalvoError(Exception):
    """Base class for all engine errors."""


class PlanningFailure(SalvoError):
    """Raised before a sequence starts; the action use aborts with no side effects."""


class InsufficientResource(PlanningFailure):
    def __init__(self, kind: ResourceKind, message: str | None = None) -> None:
        self.kind = kind
        super().__init__(message or _DEPLETED[kind])


_DEPLETED = {
    "ammo": "Ammunition depleted.",
    "charge": "Charges depleted.",
}


class StepResolutionFailure(SalvoError):
    """The roll or the emission for one step failed. The step stays retryable."""

    def __init__(self, index: int, cause: BaseException) -> None:
        self.index = index
        self.cause = cause
        super().__init__(f"attack {index + 1} failed: {cause}")


class LedgerInvariantViolation(SalvoError):
    """A commit exceeded the available balance.

    Only reachable when the planning filter was bypassed or the host balance
    was drained from outside the sequence. Never clamped.
    """


class CommandRejected(SalvoError):
    """A control command was not legal in the controller's current state."""


class RollError(SalvoError):
    """A formula could not be evaluated."""


class PrettyError(SalvoError):
    """Human-readable validation failure for host sheets."""


__all__ = [
    "SalvoError",
    "PlanningFailure",
    "InsufficientResource",
    "StepResolutionFailure",
    "LedgerInvariantViolation",
    "CommandRejected",
    "RollError",
    "PrettyError",
]
