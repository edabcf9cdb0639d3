import pytest

from salvo.engine.context import CHARGE_PART
from salvo.engine.controller import Command
from salvo.engine.dice import FormulaRoller
from salvo.engine.outcome import ListSink
from salvo.engine.types import AttackForm, Phase
from salvo.errors import CommandRejected, LedgerInvariantViolation, StepResolutionFailure
from salvo.rng import ScriptedRNG

WAND = {"uses": {"charge_cost": 1, "per_attack": True}}
TEMPLATED_WAND = {**WAND, "measure_template": True}


class Template:
    def __init__(self):
        self.deleted = 0

    def delete(self):
        self.deleted += 1


def _snapshot(controller):
    s = controller.state
    return (s.current_index, set(s.resolved), set(s.skipped), s.phase, controller.ledger.charges_consumed)


def _check_bookkeeping(controller):
    s = controller.state
    assert not (s.resolved & s.skipped)
    assert s.resolved | s.skipped == set(range(s.current_index))


class FlakySink(ListSink):
    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def emit(self, outcome):
        self.attempts += 1
        if self.failures:
            self.failures -= 1
            raise ConnectionError("chat unavailable")
        super().emit(outcome)


def test_charges_cut_the_sequence_and_third_advance_is_rejected(make_host, start):
    host = make_host(action=WAND, charges=2)
    controller, sink = start(host)

    assert len(controller.attacks) == 2
    controller.advance()
    controller.advance()

    assert controller.phase is Phase.COMPLETED
    assert host.charges() == 0
    with pytest.raises(CommandRejected):
        controller.advance()
    assert len(sink.outcomes) == 2


@pytest.mark.parametrize("pattern", ["aaa", "sss", "asa", "sas", "as", "c", "ac", "sac", "ssa"])
def test_resolved_charges_never_exceed_the_snapshot(make_host, start, pattern):
    host = make_host(action=WAND, charges=3)
    controller, sink = start(host)
    last_index = 0
    for cmd in pattern:
        {"a": controller.advance, "s": controller.skip, "c": controller.cancel}[cmd]()
        assert controller.state.current_index >= last_index
        last_index = controller.state.current_index
        _check_bookkeeping(controller)

    spent = sum(controller.attacks[i].charge_cost for i in controller.state.resolved)
    assert spent == controller.ledger.charges_consumed
    assert spent <= controller.ledger.charges_available
    assert host.charges() == 3 - spent
    assert len(sink.outcomes) == len(controller.state.resolved)


def test_skip_spends_nothing_and_emits_nothing(make_host, start):
    host = make_host(action=WAND, charges=3)
    controller, sink = start(host)

    controller.skip()

    assert controller.ledger.charges_consumed == 0
    assert host.charges() == 3
    assert sink.outcomes == []
    assert controller.state.skipped == {0}
    assert controller.current.label == "Iterative 2"


def test_skipping_the_last_attack_completes(make_host, start):
    controller, _ = start(make_host())
    controller.skip()
    controller.skip()
    controller.skip()
    assert controller.phase is Phase.COMPLETED
    assert controller.state.skipped == {0, 1, 2}


def test_cancel_before_any_roll_leaves_resources_untouched(make_host, start):
    host = make_host(action=TEMPLATED_WAND, charges=3)
    template = Template()
    controller, sink = start(host, placer=lambda action: template)

    controller.cancel()

    assert controller.phase is Phase.CANCELLED
    assert controller.ledger.charges_consumed == 0
    assert host.charges() == 3
    assert template.deleted == 1
    assert sink.outcomes == []


@pytest.mark.parametrize("command", ["advance", "skip", "cancel"])
def test_terminal_controller_rejects_commands_without_side_effects(make_host, start, command):
    host = make_host(action=TEMPLATED_WAND, charges=3)
    template = Template()
    controller, sink = start(host, placer=lambda action: template)
    controller.advance()
    controller.cancel()
    before = _snapshot(controller)

    with pytest.raises(CommandRejected):
        getattr(controller, command)()

    assert _snapshot(controller) == before
    assert host.charges() == 2
    assert len(sink.outcomes) == 1
    assert template.deleted == 1


def test_completed_controller_rejects_advance_and_skip(make_host, start):
    controller, _ = start(make_host())
    for _ in range(3):
        controller.advance()
    before = _snapshot(controller)
    for command in (controller.advance, controller.skip, controller.cancel):
        with pytest.raises(CommandRejected):
            command()
    assert _snapshot(controller) == before


def test_acknowledge_only_after_completion(make_host, start):
    controller, _ = start(make_host())
    with pytest.raises(CommandRejected):
        controller.acknowledge()
    for _ in range(3):
        controller.advance()
    controller.acknowledge()
    assert controller.phase is Phase.COMPLETED


def test_commands_for_another_run_are_rejected(make_host, start):
    host = make_host(action=WAND, charges=3)
    controller, sink = start(host, run_id="run-1")
    before = _snapshot(controller)

    with pytest.raises(CommandRejected):
        controller.dispatch(Command("advance", "run-0"))
    with pytest.raises(CommandRejected):
        controller.skip(run_id="stale")

    assert _snapshot(controller) == before
    assert sink.outcomes == []

    outcome = controller.dispatch(Command("advance", "run-1"))
    assert outcome.run_id == "run-1"
    assert controller.state.resolved == {0}


def test_unknown_command_kind_is_rejected(make_host, start):
    controller, _ = start(make_host())
    with pytest.raises(CommandRejected):
        controller.dispatch(Command("reroll", controller.run_id))


def test_roll_failure_leaves_the_step_retryable(make_host, start):
    host = make_host(action=WAND, charges=3)
    rng = ScriptedRNG([])
    controller, sink = start(host, roller=FormulaRoller(rng))

    with pytest.raises(StepResolutionFailure) as exc:
        controller.advance()

    assert exc.value.index == 0
    assert isinstance(exc.value.cause, IndexError)
    assert controller.state.current_index == 0
    assert controller.ledger.charges_consumed == 0
    assert host.charges() == 3
    assert sink.outcomes == []

    rng.faces.extend([11, 5])
    outcome = controller.advance()
    assert outcome.attack.d20 == 11
    assert host.charges() == 2


def test_failed_delivery_is_resent_without_rerolling_or_recharging(make_host, start, rigged):
    host = make_host(action=WAND, charges=3)
    sink = FlakySink(failures=1)
    roller = rigged(14, 6, 3, 2)
    controller, _ = start(host, sink=sink, roller=roller)

    with pytest.raises(StepResolutionFailure):
        controller.advance()

    assert controller.awaiting_delivery
    assert host.charges() == 2
    assert controller.state.current_index == 0
    with pytest.raises(CommandRejected):
        controller.skip()

    outcome = controller.advance()

    assert sink.attempts == 2
    assert outcome.index == 0
    assert outcome.attack.d20 == 14
    assert host.charges() == 2
    assert controller.ledger.charges_consumed == 1
    assert roller.rng.faces == [3, 2]
    assert controller.state.resolved == {0}
    assert not controller.awaiting_delivery


def test_ammo_drained_from_outside_halts_the_engine(make_host, start):
    host = make_host(ammo=[{"id": "arrows", "quantity": 3}], action={"ammo": {"type": "arrow", "cost": 1}})
    controller, sink = start(host)
    controller.advance()
    host.item.ammo[0].quantity = 0

    with pytest.raises(LedgerInvariantViolation):
        controller.advance()

    assert controller.halted
    assert len(sink.outcomes) == 1
    for command in (controller.advance, controller.skip, controller.cancel, controller.acknowledge):
        with pytest.raises(LedgerInvariantViolation):
            command()
    assert controller.state.current_index == 1


def test_charges_drained_from_outside_halts_on_commit(make_host, start):
    host = make_host(action=WAND, charges=3)
    controller, sink = start(host)
    host.item.charges = 0

    with pytest.raises(LedgerInvariantViolation):
        controller.advance()

    assert controller.halted
    assert sink.outcomes == []
    assert controller.ledger.charges_consumed == 0


def test_second_command_while_advancing_is_rejected(make_host, start):
    seen = []

    class MeddlingSink(ListSink):
        def emit(self, outcome):
            try:
                controller.skip()
            except CommandRejected as e:
                seen.append(e)
            super().emit(outcome)

    controller, sink = start(make_host(), sink=MeddlingSink())
    controller.advance()

    assert len(seen) == 1
    assert controller.state.resolved == {0}
    assert controller.state.skipped == set()
    controller.skip()
    assert controller.state.skipped == {1}


def test_charge_bonus_reaches_only_the_first_roll(make_host, start):
    controller, sink = start(make_host(), form=AttackForm(charge=True, attack_bonus=(CHARGE_PART,)))
    for _ in range(3):
        controller.advance()
    first, *rest = sink.outcomes
    assert "Charge" in first.attack.flavors()
    assert all("Charge" not in o.attack.flavors() for o in rest)


def test_targets_are_read_at_each_step(make_host, start):
    host = make_host()
    controller, sink = start(host)
    controller.advance()
    host.set_targets(["Orc", "Ogre"])
    controller.advance()
    assert sink.outcomes[0].targets == ("Goblin",)
    assert sink.outcomes[1].targets == ("Orc", "Ogre")


def test_per_action_cost_is_paid_by_the_first_resolved_step(make_host, start):
    host = make_host(action={"uses": {"charge_cost": 1, "per_attack": False}}, charges=1)
    controller, sink = start(host)

    controller.skip()
    controller.advance()
    controller.advance()

    assert controller.phase is Phase.COMPLETED
    assert [o.index for o in sink.outcomes] == [1, 2]
    assert [o.resources.charges for o in sink.outcomes] == [1, 0]
    assert controller.ledger.charges_consumed == 1
    assert host.charges() == 0


def test_self_charged_use_is_spent_when_the_first_attack_is_skipped(make_host, start):
    host = make_host(action={"uses": {"self_charged": True, "self_value": 2}})
    controller, sink = start(host)

    controller.skip()
    controller.skip()
    controller.advance()

    assert [o.resources.self_uses for o in sink.outcomes] == [1]
    assert host.action().uses.self_value == 1
