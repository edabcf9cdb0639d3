"""Formula roller used as the engine's roll evaluator.

A formula is a sum of terms. Each term is a die expression (``2d6``), an
integer, or an ``@dotted.path`` reference into roll data, optionally followed
by a ``[flavor]`` tag::

    1d20 + @attributes.bab.total + @abilities.str.mod + 2[Charge] - 3[Power Attack]
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Protocol, Tuple

from ..errors import RollError
from ..rng import RNG

_TERM_RE = re.compile(
    r"\s*(?P<sign>[+-](?:\s*[+-])*)?\s*"
    r"(?P<body>\d*d\d+|\d+|@[A-Za-z_][\w.]*)"
    r"\s*(?:\[(?P<flavor>[^\]]*)\])?\s*",
    re.IGNORECASE,
)
_DICE_RE = re.compile(r"^(?P<num>\d*)d(?P<sides>\d+)$", re.IGNORECASE)


class DieSource(Protocol):
    def roll_int(self, lo: int, hi: int) -> int: ...


@dataclass(frozen=True)
class Term:
    text: str
    value: int
    flavor: Optional[str] = None
    faces: int = 0
    rolls: Tuple[int, ...] = ()


@dataclass(frozen=True)
class RollResult:
    formula: str
    total: int
    terms: Tuple[Term, ...]

    @property
    def d20(self) -> Optional[int]:
        """Natural face of the first d20 in the formula, if any."""
        for t in self.terms:
            if t.faces == 20 and t.rolls:
                return t.rolls[0]
        return None

    def flavors(self) -> list[str]:
        return [t.flavor for t in self.terms if t.flavor]


def join_parts(parts: Iterable[str]) -> str:
    """Join formula fragments with ``+``, dropping empty ones."""
    return " + ".join(p.strip() for p in parts if p and str(p).strip())


def lookup(data: Mapping[str, Any], path: str) -> Any:
    cur: Any = data
    for key in path.split("."):
        if isinstance(cur, Mapping) and key in cur:
            cur = cur[key]
        else:
            raise RollError(f"unknown reference @{path}")
    return cur


def _as_int(path: str, value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return math.floor(value)
    raise RollError(f"@{path} is not numeric ({value!r})")


class FormulaRoller:
    def __init__(self, rng: DieSource | None = None) -> None:
        self.rng = rng if rng is not None else RNG()

    def evaluate(
        self, formula: str, data: Mapping[str, Any] | None = None, *, minimize: bool = False
    ) -> RollResult:
        data = data or {}
        text = formula.strip()
        terms: list[Term] = []
        pos = 0
        while pos < len(text):
            m = _TERM_RE.match(text, pos)
            if not m or m.end() == pos:
                raise RollError(f"invalid formula near {text[pos:]!r}: {formula!r}")
            signs = (m.group("sign") or "").replace(" ", "")
            if terms and not signs:
                raise RollError(f"missing operator before {m.group('body')!r}: {formula!r}")
            sign = -1 if signs.count("-") % 2 else 1
            terms.append(self._term(m.group("body"), sign, m.group("flavor"), data, minimize))
            pos = m.end()
        return RollResult(formula=formula, total=sum(t.value for t in terms), terms=tuple(terms))

    def _term(
        self,
        body: str,
        sign: int,
        flavor: str | None,
        data: Mapping[str, Any],
        minimize: bool,
    ) -> Term:
        flavor = flavor.strip() if flavor else None
        if body.startswith("@"):
            path = body[1:]
            value = _as_int(path, lookup(data, path))
            return Term(text=body, value=sign * value, flavor=flavor)
        dm = _DICE_RE.match(body)
        if dm:
            num = int(dm.group("num") or 1)
            sides = int(dm.group("sides"))
            if sides < 1:
                raise RollError(f"invalid die size in {body!r}")
            if minimize:
                rolls = tuple(1 for _ in range(num))
            else:
                rolls = tuple(self.rng.roll_int(1, sides) for _ in range(num))
            return Term(text=body, value=sign * sum(rolls), flavor=flavor, faces=sides, rolls=rolls)
        return Term(text=body, value=sign * int(body), flavor=flavor)


__all__ = ["FormulaRoller", "RollResult", "Term", "join_parts", "lookup", "DieSource"]
