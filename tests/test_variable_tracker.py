import pytest

from formula_graph.variable_tracker import filter_usages, meaning_from_context, track_variable_usage, variable_stats


def test_usage_in_first_mention_order(formula_factory):
    formulas = [
        formula_factory("eq1", ["x"], role="definition", section="Method"),
        formula_factory("eq2", ["y", "f", "x"], section="Results"),
        formula_factory("eq3", ["L", "y"], role="objective", section="Results"),
    ]
    usages = track_variable_usage(formulas)
    assert [u.symbol for u in usages] == ["x", "y", "f", "L"]

    x = usages[0]
    assert x.defined_in == ["eq1"]
    assert x.used_in == ["eq1", "eq2"]
    assert x.first_appearance == "Method"
    assert x.is_defined

    y = usages[1]
    assert y.defined_in == []
    assert y.used_in == ["eq2", "eq3"]
    assert y.first_appearance == "Results"
    assert not y.is_defined


def test_symbol_repeated_in_one_formula_counts_once(formula_factory):
    formula = formula_factory("eq1", ["x"], role="definition")
    formula.variables = formula.variables * 2
    usage = track_variable_usage([formula])[0]
    assert usage.used_in == ["eq1"]
    assert usage.defined_in == ["eq1"]


def test_no_formulas_no_usages():
    assert track_variable_usage([]) == []


def test_filter_usages(formula_factory):
    usages = track_variable_usage([formula_factory("eq1", ["x", "y", "z"])])
    assert [u.symbol for u in filter_usages(usages, ["z", "x"])] == ["x", "z"]
    assert filter_usages(usages, None) == usages
    assert filter_usages(usages, []) == usages
    assert filter_usages(usages, ["w"]) == []


def test_variable_stats(formula_factory):
    formulas = [
        formula_factory("eq1", ["a", "b", "c", "d", "e", "f"], role="definition"),
        formula_factory("eq2", ["f", "e"]),
        formula_factory("eq3", ["e"]),
    ]
    stats = variable_stats(track_variable_usage(formulas))
    assert stats.total_variables == 6
    assert stats.defined_variables == 6
    assert stats.undefined_variables == 0
    assert stats.most_used_variables == ["e", "f", "a", "b", "c"]


def test_definition_context_fills_variables(formula_factory):
    definition = formula_factory("eq1", ["x"], role="definition")
    definition.context = "We define x as the input"
    later = formula_factory("eq2", ["y", "x"])

    usages = track_variable_usage([definition, later])
    x = usages[0]
    assert x.meaning == "the input"
    assert definition.variables[0].meaning == "the input"
    assert definition.variables[0].defined_in == "eq1"
    assert later.variables[1].defined_in == "eq1"
    assert later.variables[0].defined_in is None


def test_use_before_definition_stays_undefined_there(formula_factory):
    early = formula_factory("eq1", ["x"])
    definition = formula_factory("eq2", ["x"], role="definition")
    track_variable_usage([early, definition])
    assert early.variables[0].defined_in is None
    assert definition.variables[0].defined_in == "eq2"


@pytest.mark.parametrize(
    "symbol,context,meaning",
    [
        ("x", "We define x as the input", "the input"),
        ("W", "where W denotes a weight matrix", "a weight matrix"),
        ("y_i", "Let y be the predicted label for each sample", "the predicted label"),
        ("x", "Minimize the loss", None),
        ("x", "", None),
        ("a", "Let alpha be the rate", None),
    ],
)
def test_meaning_from_context(symbol, context, meaning):
    assert meaning_from_context(symbol, context) == meaning
