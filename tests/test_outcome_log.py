import io
import json

from rich.console import Console

from salvo.engine.context import CHARGE_PART
from salvo.engine.outcome import ConsoleSink, FanOutSink, ListSink, NDJSONSink, outcome_record
from salvo.engine.types import AttackForm


def test_ndjson_sink_writes_one_line_per_step(make_host, start, tmp_path):
    path = tmp_path / "logs" / "attack.ndjson"
    ndjson = NDJSONSink(path)
    controller, _ = start(make_host(), sink=ndjson, run_id="r1")
    controller.advance()
    controller.skip()
    controller.advance()
    ndjson.close()

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [rec["index"] for rec in lines] == [0, 2]
    assert all(rec["run_id"] == "r1" and rec["ts"] for rec in lines)
    assert lines[1]["label"] == "Iterative 3"
    assert lines[0]["targets"] == ["Goblin"]


def test_outcome_record_shape(make_host, start, rigged):
    controller, sink = start(make_host(action={"crit_range": 19}), roller=rigged(19, 19, 2, 3))
    outcome = controller.advance()
    rec = outcome_record(outcome)
    assert rec["attack"]["d20"] == 19
    assert rec["crit_confirm"]["d20"] == 19
    assert [d["critical"] for d in rec["damage"]] == [False, True]
    assert rec["resources"] == {"charges": 0, "ammo_id": None, "ammo": 0, "self_uses": 0}
    assert rec["save"] is None


def test_console_sink_prints_a_card(make_host, start):
    buf = io.StringIO()
    console = Console(file=buf, width=120, color_system=None)
    controller, _ = start(
        make_host(),
        sink=ConsoleSink(console, title="Full Attack"),
        form=AttackForm(charge=True, attack_bonus=(CHARGE_PART,)),
    )
    controller.advance()
    text = buf.getvalue()
    assert "Full Attack: Attack" in text
    assert "2[Charge]" in text
    assert "Goblin" in text


def test_fan_out_sink_delivers_to_every_sink(make_host, start):
    a, b = ListSink(), ListSink()
    controller, _ = start(make_host(), sink=FanOutSink(a, b))
    controller.advance()
    assert len(a.outcomes) == len(b.outcomes) == 1
