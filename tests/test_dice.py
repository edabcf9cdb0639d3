import pytest

from salvo.engine.dice import FormulaRoller, join_parts
from salvo.errors import RollError
from salvo.rng import RNG, ScriptedRNG


def roller(*faces):
    return FormulaRoller(ScriptedRNG(list(faces)))


def test_dice_and_constants():
    r = roller(3, 4).evaluate("2d6 + 5")
    assert r.total == 12
    assert r.terms[0].rolls == (3, 4)


def test_references_and_flavors():
    data = {"abilities": {"str": {"mod": 3}}, "bab": 6}
    r = roller(15).evaluate("1d20 + @bab + @abilities.str.mod + 2[Charge] - 1[Power Attack]", data)
    assert r.total == 15 + 6 + 3 + 2 - 1
    assert r.d20 == 15
    assert r.flavors() == ["Charge", "Power Attack"]


def test_double_negative():
    assert roller().evaluate("4 - -2").total == 6


def test_leading_negative_term():
    assert roller().evaluate("-3[Power Attack]").total == -3


def test_empty_formula_is_zero():
    r = roller().evaluate("")
    assert r.total == 0
    assert r.d20 is None


def test_unknown_reference_raises():
    with pytest.raises(RollError):
        roller().evaluate("1 + @nope.nothing", {})


def test_missing_operator_raises():
    with pytest.raises(RollError):
        roller(1, 1).evaluate("1d6 2")


def test_garbage_raises():
    with pytest.raises(RollError):
        roller().evaluate("1 + banana")


def test_minimize_takes_lowest_faces_without_rolling():
    rng = ScriptedRNG([])
    r = FormulaRoller(rng).evaluate("2d6 + 1", minimize=True)
    assert r.total == 3


def test_scripted_faces_are_clamped_to_the_die():
    assert roller(9).evaluate("1d6").total == 6


def test_seeded_rng_is_repeatable():
    a = FormulaRoller(RNG(7)).evaluate("4d6").total
    b = FormulaRoller(RNG(7)).evaluate("4d6").total
    assert a == b


def test_join_parts_skips_blanks():
    assert join_parts(["1d20", "", "  ", "@bab", "-5"]) == "1d20 + @bab + -5"
