import copy

import pytest

from salvo.config import Settings
from salvo.engine.dice import FormulaRoller
from salvo.engine.outcome import ListSink
from salvo.engine.types import AttackForm
from salvo.host import SheetHost
from salvo.models import HostSheet
from salvo.rng import ScriptedRNG
from salvo.use import ActionUse

BASE_SHEET = {
    "actor": {
        "name": "Valeros",
        "bab": 6,
        "abilities": {"str": 16, "dex": 12, "con": 14, "int": 10, "wis": 10, "cha": 8},
        "buffs": [
            {"name": "Heroism", "changes": {"bab": 2}},
            {"name": "Haste", "changes": {"attack": 1}},
        ],
        "extra": {"attack": 0},
    },
    "item": {
        "name": "Longsword",
        "type": "weapon",
        "actions": [
            {
                "id": "full",
                "name": "Full Attack",
                "attack": "@attributes.bab.total + @abilities.str.mod",
                "attack_parts": [
                    {"bonus": "-5", "label": "Iterative 2"},
                    {"bonus": "-10", "label": "Iterative 3"},
                ],
                "damage": [{"formula": "1d8 + 3", "type": "slashing"}],
            }
        ],
    },
    "targets": ["Goblin"],
}


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    monkeypatch.setenv("SALVO_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.delenv("SALVO_SEQUENTIAL_ATTACKS", raising=False)
    monkeypatch.delenv("SALVO_CLEAR_TARGETS_AFTER_ATTACK", raising=False)
    monkeypatch.delenv("SALVO_ATTACK_CARD", raising=False)


@pytest.fixture
def sheet_data():
    return copy.deepcopy(BASE_SHEET)


@pytest.fixture
def make_host(sheet_data):
    def _make(action=None, **item):
        data = copy.deepcopy(sheet_data)
        data["item"].update(item)
        if action:
            data["item"]["actions"][0].update(action)
        return SheetHost(HostSheet.model_validate(data))

    return _make


@pytest.fixture
def rigged():
    """Roller whose dice land on the given faces, then on ``fallback``."""

    def _make(*faces, fallback=10):
        return FormulaRoller(ScriptedRNG(list(faces), fallback=fallback))

    return _make


@pytest.fixture
def start(rigged):
    """Plan a sequential full attack and return ``(controller, sink)``."""

    def _start(host, form=None, roller=None, sink=None, settings=None, **kwargs):
        sink = sink if sink is not None else ListSink()
        use = ActionUse(
            host,
            None,
            form or AttackForm(),
            settings or Settings(sequential_attacks=True),
            roller=roller or rigged(),
            sink=sink,
            **kwargs,
        )
        return use.start(), sink

    return _start
