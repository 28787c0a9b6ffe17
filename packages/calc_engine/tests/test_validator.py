from calc_engine import validate


def test_empty_formula():
    res = validate("", None, {})
    assert not res.valid
    assert res.reason == "Empty formula"
    assert not validate("   ", None, {}).valid


def test_self_reference():
    res = validate("Staffing * 2", "Staffing", {"Staffing": 1})
    assert not res.valid
    assert res.reason == "Self-reference detected"
    assert not validate("staffing_cost*2", "Staffing Cost", {}).valid


def test_unknown_variable():
    res = validate("Rent + Mystery", "Total", {"Rent": 1})
    assert not res.valid
    assert "Mystery" in res.reason


def test_known_variables():
    assert validate("Rent + Utilities", "Total", {"Rent": 1, "Utilities": 2}).valid
    assert validate("Total Cost * 2", None, {"Total Cost": 1}).valid


def test_line_references_and_sums():
    assert validate("L{0} + L{prev} * 2", None, {}).valid
    assert validate("L3 - 1", None, {}).valid
    assert validate("sum(food) / 2", None, {}).valid


def test_functions_and_literals():
    assert validate("sqrt(16) + ROUND(2.5, 1)", None, {}).valid
    assert validate("Math.max(1, 2)", None, {}).valid
    assert validate("$1,200 * 12", None, {}).valid
    assert validate("PI * 2^2", None, {}).valid


def test_parse_error():
    res = validate("1 + * 2", None, {})
    assert not res.valid
    assert res.reason.startswith("Parse error")
