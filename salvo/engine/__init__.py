from .controller import Command, SequentialController
from .ledger import ResourceLedger
from .planner import plan
from .types import AttackDescriptor, AttackForm, Phase, SequenceState, StepOutcome

__all__ = [
    "AttackDescriptor",
    "AttackForm",
    "Command",
    "Phase",
    "ResourceLedger",
    "SequenceState",
    "SequentialController",
    "StepOutcome",
    "plan",
]
