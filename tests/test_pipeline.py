"""
End-to-end tests of the extraction and analysis pipeline.
"""

import pytest

from formula_graph.models import ROLES
from formula_graph.pipeline import (
    PipelineConfig,
    analyze_dependencies,
    analyze_roles,
    analyze_variables,
    default_flow_description,
    dominant_roles,
    extract_formulas,
    extract_formulas_from_text,
    filter_by_section,
)


class TestWorkedExample:
    def test_formulas(self, worked_extraction):
        assert worked_extraction.success
        formulas = worked_extraction.formulas
        assert [(f.id, f.number, f.role) for f in formulas] == [
            ("eq1", "(1)", "definition"),
            ("eq2", "(2)", "unknown"),
            ("eq3", "(3)", "objective"),
        ]
        assert formulas[0].confidence == 0.7
        assert formulas[1].confidence == 0.0
        assert formulas[2].context == "Minimize the loss"
        assert formulas[1].symbols() == ["y", "f", "x"]
        assert formulas[2].symbols() == ["L", "y"]

    def test_stats(self, worked_extraction):
        stats = worked_extraction.stats
        assert stats.total_formulas == 3
        assert stats.numbered_equations == 3
        assert stats.inline_formulas == 0
        assert sum(stats.by_role.values()) == stats.total_formulas
        assert set(stats.by_role) == set(ROLES)

    def test_dependencies(self, worked_extraction):
        result = analyze_dependencies(worked_extraction)
        assert result.success
        assert [(d.source, d.target, d.shared_variables) for d in result.dependencies] == [
            ("eq1", "eq2", ["x"]),
            ("eq2", "eq3", ["y"]),
        ]
        assert result.analysis.root_formulas == ["eq1"]
        assert result.analysis.leaf_formulas == ["eq3"]
        assert result.graph.node_ids() == ["eq1", "eq2", "eq3"]
        assert result.collaborator_error is None

    def test_variables(self, worked_extraction):
        result = analyze_variables(worked_extraction)
        assert [u.symbol for u in result.variables] == ["x", "y", "f", "L"]
        assert result.variables[0].defined_in == ["eq1"]
        assert result.stats.defined_variables == 1
        assert result.stats.undefined_variables == 3
        assert result.graph is not None

    def test_variables_symbol_filter(self, worked_extraction):
        result = analyze_variables(worked_extraction, PipelineConfig(filter_symbols=["y"]))
        assert [u.symbol for u in result.variables] == ["y"]
        assert result.variables[0].used_in == ["eq2", "eq3"]

    def test_roles_without_collaborator(self, worked_extraction):
        result = analyze_roles(worked_extraction)
        assert result.dominant_roles == ["definition", "objective", "unknown"]
        assert result.logical_flow == (
            "This paper mainly defines its basic concepts and variables, "
            "then sets up an objective to optimize."
        )
        assert [f.id for f in result.role_groups["definition"]] == ["eq1"]
        assert [s.id for s in result.graph.subgraphs] == ["group_definition", "group_objective"]

    def test_roles_with_collaborator(self, worked_extraction):
        result = analyze_roles(worked_extraction, flow_collaborator=lambda formulas: "Custom flow.")
        assert result.logical_flow == "Custom flow."

    def test_failing_flow_collaborator_falls_back(self, worked_extraction):
        def collaborator(formulas):
            raise RuntimeError("offline")

        result = analyze_roles(worked_extraction, flow_collaborator=collaborator)
        assert result.success
        assert result.logical_flow.startswith("This paper mainly")

    def test_failing_dependency_collaborator(self, worked_extraction):
        def collaborator(formulas):
            raise RuntimeError("quota exceeded")

        result = analyze_dependencies(worked_extraction, collaborator=collaborator)
        assert result.success
        assert len(result.dependencies) == 2
        assert result.collaborator_error == "Dependency inference failed: quota exceeded"


class TestSamplePaper:
    def test_title_and_ids(self, sample_extraction):
        assert sample_extraction.paper_title == "Formula Graphs for Scientific Papers"
        assert [f.id for f in sample_extraction.formulas] == [
            "inline_1", "eq1", "eq2", "inline_2", "inline_3", "inline_4",
        ]

    def test_sections_and_roles(self, sample_extraction):
        by_id = {f.id: f for f in sample_extraction.formulas}
        assert by_id["eq1"].section == "Method (방법)"
        assert by_id["inline_4"].section == "Experiments (실험)"
        assert by_id["inline_1"].role == "definition"
        assert by_id["eq2"].role == "constraint"
        assert by_id["eq2"].confidence == 0.8
        assert by_id["inline_2"].role == "example"

    def test_stats(self, sample_extraction):
        stats = sample_extraction.stats
        assert stats.total_formulas == 6
        assert stats.numbered_equations == 2
        assert stats.inline_formulas == 4

    def test_section_filter(self, sample_extraction):
        method = filter_by_section(sample_extraction.formulas, "METHOD")
        assert [f.id for f in method] == ["inline_1", "eq1", "eq2"]
        assert filter_by_section(method, "method") == method
        assert filter_by_section(sample_extraction.formulas, None) == sample_extraction.formulas

    def test_section_filter_keeps_ids(self, sample_text):
        result = extract_formulas_from_text(sample_text, PipelineConfig(filter_section="Experiments"))
        assert [f.id for f in result.formulas] == ["inline_2", "inline_3", "inline_4"]

    def test_dependencies_analysis(self, sample_extraction):
        result = analyze_dependencies(sample_extraction, PipelineConfig(direction="LR"))
        assert result.success
        assert result.graph.direction == "LR"
        assert result.analysis.root_formulas == ["inline_1", "eq1"]
        assert "eq1" in result.analysis.leaf_formulas


class TestFailures:
    def test_missing_file(self, tmp_path):
        result = extract_formulas(tmp_path / "missing.txt")
        assert not result.success
        assert "not found" in result.error

    def test_unsupported_file_type(self, tmp_path):
        path = tmp_path / "paper.pdf"
        path.write_bytes(b"%PDF-1.4")
        result = extract_formulas(path)
        assert not result.success
        assert "Unsupported" in result.error

    def test_empty_text(self):
        result = extract_formulas_from_text("   \n")
        assert not result.success

    def test_failed_extraction_propagates(self, tmp_path):
        extraction = extract_formulas(tmp_path / "missing.txt")
        assert not analyze_dependencies(extraction).success
        assert not analyze_variables(extraction).success
        assert not analyze_roles(extraction).success

    def test_dependencies_need_two_formulas(self):
        extraction = extract_formulas_from_text("Minimize the loss $$L = y^2$$ (3)")
        assert len(extraction.formulas) == 1
        result = analyze_dependencies(extraction)
        assert not result.success
        assert result.error == "Need at least 2 formulas to analyze dependencies"
        assert result.analysis.total_formulas == 1

    def test_invalid_direction(self):
        with pytest.raises(ValueError):
            PipelineConfig(direction="diagonal")


def test_extract_from_file_with_section_hints(tmp_path):
    path = tmp_path / "paper.txt"
    path.write_text("Our Approach Overview\nWe define the loss as follows.\n$$L = y^2 + x$$ (1)\n", encoding="utf-8")
    (tmp_path / "paper.sections.txt").write_text("Our Approach Overview\n", encoding="utf-8")

    result = extract_formulas(path)
    assert result.success
    assert [(f.id, f.section) for f in result.formulas] == [("eq1", "Our Approach Overview")]
    assert result.formulas[0].role == "definition"


def test_dominant_roles_prefers_counts_then_vocabulary_order(formula_factory):
    groups = {
        "example": [formula_factory("eq1", ["x"]), formula_factory("eq2", ["x"])],
        "theorem": [formula_factory("eq3", ["x"])],
        "definition": [formula_factory("eq4", ["x"])],
        "baseline": [formula_factory("eq5", ["x"])],
    }
    assert dominant_roles(groups) == ["example", "definition", "theorem"]


def test_default_flow_description_without_roles():
    assert default_flow_description([]) == "No dominant formula roles were identified."
    assert default_flow_description(["unknown"]) == "No dominant formula roles were identified."
