from calc_engine import evaluate, normalize
from calc_engine.tokens import extract_tag, normalize_var_name, remove_tags, strip_inline_comment


def test_percent_literal():
    assert normalize("5%") == "(5/100)"
    assert evaluate(normalize("5%")) == 0.05


def test_tax_line_keeps_label_but_drops_glue():
    assert normalize("Tax is 5%") == "Tax (5/100)"


def test_currency_and_thousands_separators():
    assert normalize("$1,200") == "1200"
    assert normalize("$ 45.50 + $1,000,000") == "45.50 + 1000000"


def test_unicode_glyphs_and_caret():
    assert normalize("3 × 4 ÷ 2 − 1") == "3 * 4 / 2 - 1"
    assert normalize("2^3") == "2**3"


def test_glue_words_removed_whole_word_only():
    assert normalize("20% of total") == "(20/100) total"
    assert normalize("theater + 2") == "theater + 2"
    assert normalize("Forecast at 5") == "Forecast 5"
    assert normalize("40 hours") == "40"


def test_protected_identifiers_survive_glue_removal():
    assert normalize("per * 2", protected=["per"]) == "per * 2"


def test_comments_and_tags_are_stripped():
    assert normalize("100 + 50 // rent split") == "100 + 50"
    assert normalize("150 #food") == "150"
    assert normalize("80 tag: food") == "80"


def test_normalize_is_total():
    assert normalize("") == ""
    assert normalize("   hello   world ") == "hello world"


def test_tag_helpers():
    assert extract_tag("Groceries: 150 #Food") == "food"
    assert extract_tag("Dining: 80 tag: Eating-Out #food") == "eating-out"
    assert extract_tag("no tags here") is None
    assert remove_tags("Groceries: 150 #food") == "Groceries: 150"
    assert strip_inline_comment("1 + 1 // two") == "1 + 1"


def test_normalize_var_name():
    assert normalize_var_name("My Var!") == "My_Var"
    assert normalize_var_name("Total Cost") == "Total_Cost"
    assert normalize_var_name("2024 budget") == "v_2024_budget"
    assert normalize_var_name("!!!") is None
