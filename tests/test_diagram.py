import pytest

from formula_graph.diagram import (
    build_dependency_diagram,
    build_role_flow_diagram,
    build_variable_diagram,
    preview,
    sanitize_id,
)
from formula_graph.graph_analysis import cluster_by_role, group_by_role
from formula_graph.models import FormulaDependency
from formula_graph.variable_tracker import track_variable_usage


@pytest.fixture
def formulas(formula_factory):
    return [
        formula_factory("eq1", ["x"], role="definition", number="(1)", latex="x := a"),
        formula_factory("eq2", ["y", "x"], latex="y = f(x) + g(x) + h(x) + k(x)"),
        formula_factory("eq3", ["L", "y"], role="objective", latex="L = y^2"),
    ]


@pytest.mark.parametrize(
    "raw,expected",
    [("eq1", "eq1"), ("eq2.1", "eq2_1"), ("inline-3", "inline_3"), ("1st", "_1st")],
)
def test_sanitize_id(raw, expected):
    assert sanitize_id(raw) == expected


def test_preview_truncates():
    assert preview("a" * 25) == "a" * 25
    assert preview("a" * 26) == "a" * 25 + "..."


class TestDependencyDiagram:
    def test_nodes_edges_and_subgraphs(self, formulas):
        dependencies = [
            FormulaDependency("eq1", "eq2", shared_variables=["x"]),
            FormulaDependency("eq2", "eq3", type="derives_from", shared_variables=["y"]),
        ]
        graph = build_dependency_diagram(formulas, dependencies, cluster_by_role(formulas))

        assert graph.direction == "TB"
        assert graph.node_ids() == ["eq1", "eq2", "eq3"]
        assert graph.nodes[0].label == "(1)\nx := a"
        assert graph.nodes[1].label == "eq2\ny = f(x) + g(x) + h(x) + ..."
        assert graph.nodes[2].role == "objective"

        assert [(e.source, e.target, e.label, e.style) for e in graph.edges] == [
            ("eq1", "eq2", "x", "solid"),
            ("eq2", "eq3", "y", "thick"),
        ]
        assert [(s.id, s.label, s.nodes) for s in graph.subgraphs] == [
            ("group_definition", "📘 Definition", ("eq1",)),
            ("group_objective", "🎯 Objective", ("eq3",)),
            ("group_unknown", "❓ Unknown", ("eq2",)),
        ]

    def test_edge_label_lists_at_most_three_variables(self, formulas):
        dependencies = [FormulaDependency("eq1", "eq2", shared_variables=["a", "b", "c", "d"])]
        graph = build_dependency_diagram(formulas, dependencies, [])
        assert graph.edges[0].label == "a, b, c"

    def test_edges_to_missing_formulas_are_skipped(self, formulas):
        graph = build_dependency_diagram(formulas, [FormulaDependency("eq1", "eq7")], [])
        assert graph.edges == ()

    def test_invalid_direction(self, formulas):
        with pytest.raises(ValueError):
            build_dependency_diagram(formulas, [], [], direction="XY")


class TestRoleFlowDiagram:
    def test_groups_are_chained_in_flow_order(self, formula_factory):
        formulas = [
            formula_factory("eq1", ["a"], role="theorem"),
            formula_factory("eq2", ["b"], role="definition"),
            formula_factory("eq3", ["c"], role="definition"),
            formula_factory("eq4", ["d"]),
            formula_factory("eq5", ["e"], role="constraint"),
        ]
        graph = build_role_flow_diagram(group_by_role(formulas))

        assert [s.id for s in graph.subgraphs] == ["group_definition", "group_constraint", "group_theorem"]
        assert graph.subgraphs[0].nodes == ("eq2", "eq3")
        assert "eq4" not in graph.node_ids()
        assert [(e.source, e.target, e.style) for e in graph.edges] == [
            ("eq2", "eq5", "dotted"),
            ("eq5", "eq1", "dotted"),
        ]

    def test_at_most_five_formulas_per_role(self, formula_factory):
        formulas = [formula_factory(f"eq{i}", ["x"], role="example") for i in range(1, 8)]
        graph = build_role_flow_diagram(group_by_role(formulas))
        assert graph.subgraphs[0].nodes == ("eq1", "eq2", "eq3", "eq4", "eq5")

    def test_empty_groups(self):
        graph = build_role_flow_diagram({})
        assert graph.nodes == ()
        assert graph.edges == ()


class TestVariableDiagram:
    def test_variables_link_to_formulas(self, formulas):
        graph = build_variable_diagram(track_variable_usage(formulas), formulas)

        assert graph.direction == "LR"
        variable_nodes = [n for n in graph.nodes if n.shape == "circle"]
        assert [(n.id, n.label, n.role) for n in variable_nodes] == [
            ("var_x", "x", "defined"),
            ("var_y", "y", "undefined"),
            ("var_L", "L", "undefined"),
        ]
        formula_nodes = [n for n in graph.nodes if n.shape == "rectangle"]
        assert [(n.id, n.label, n.role) for n in formula_nodes] == [
            ("eq1", "(1)", "formula"),
            ("eq2", "eq2", "formula"),
            ("eq3", "eq3", "formula"),
        ]
        assert [(e.source, e.target, e.style) for e in graph.edges] == [
            ("var_x", "eq1", "thick"),
            ("var_x", "eq2", "dotted"),
            ("var_y", "eq2", "dotted"),
            ("var_y", "eq3", "dotted"),
            ("var_L", "eq3", "dotted"),
        ]

    def test_non_ascii_symbols_get_distinct_ids(self, formula_factory):
        formulas = [formula_factory("eq1", ["θ", "α", "x_i"])]
        graph = build_variable_diagram(track_variable_usage(formulas), formulas)
        variable_ids = [n.id for n in graph.nodes if n.shape == "circle"]
        assert variable_ids == ["var_u3b8", "var_u3b1", "var_x_i"]

    def test_limits(self, formula_factory):
        symbols = [f"v{i}" for i in range(20)]
        formulas = [formula_factory(f"eq{i}", symbols) for i in range(1, 6)]
        graph = build_variable_diagram(track_variable_usage(formulas), formulas)
        assert len([n for n in graph.nodes if n.shape == "circle"]) == 15
        assert len(graph.edges) == 15 * 3
        assert {n.id for n in graph.nodes if n.shape == "rectangle"} == {"eq1", "eq2", "eq3"}
