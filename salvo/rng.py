import random
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class RNG:
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        self._r = random.Random(self.seed)

    def roll_int(self, lo: int, hi: int) -> int:
        return self._r.randint(lo, hi)


@dataclass
class ScriptedRNG:
    """Replays fixed die faces in order; used by tests and demos."""

    faces: List[int] = field(default_factory=list)
    fallback: Optional[int] = None

    def roll_int(self, lo: int, hi: int) -> int:
        if self.faces:
            face = self.faces.pop(0)
        elif self.fallback is not None:
            face = self.fallback
        else:
            raise IndexError("scripted dice exhausted")
        return max(lo, min(hi, face))
