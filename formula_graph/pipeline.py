"""
End-to-end formula analysis of one document.

Entry points here never raise for document problems: a missing, unreadable
or empty document yields a result with success=False and an error message.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from .dependencies import (
    DEFAULT_INFERENCE_TIMEOUT,
    DEFAULT_MAX_INFERENCE_SIZE,
    DependencyCollaborator,
    build_dependencies,
)
from .diagram import DIRECTIONS, build_dependency_diagram, build_role_flow_diagram, build_variable_diagram
from .document import DocumentError, extract_title, load_document
from .formula_extractor import extract_document_formulas
from .graph_analysis import analyze_graph, group_by_role
from .models import (
    ROLES,
    DependencyAnalysisResult,
    ExtractFormulasResult,
    Formula,
    FormulaStats,
    GraphAnalysis,
    RoleAnalysisResult,
    VariableAnalysisResult,
)
from .role_classifier import classify_formulas
from .sections import segment_sections
from .variable_tracker import filter_usages, track_variable_usage, variable_stats

logger = logging.getLogger(__name__)

FlowCollaborator = Callable[[Sequence[Formula]], str]

DOMINANT_ROLE_COUNT = 3
MIN_DEPENDENCY_FORMULAS = 2

ROLE_FLOW_DESCRIPTIONS = {
    "definition": "defines its basic concepts and variables",
    "objective": "sets up an objective to optimize",
    "constraint": "states the constraints",
    "theorem": "presents its main theorems and results",
    "derivation": "derives and expands its equations",
    "approximation": "makes approximations and estimates",
    "example": "gives concrete examples",
    "baseline": "compares against existing methods",
}


@dataclass
class PipelineConfig:
    """
    Options for one pipeline run.

    Attributes:
        include_inline: Keep inline formulas
        numbered_only: Keep only formulas with an explicit equation number
        filter_section: Keep formulas whose section name contains this text (case-insensitive)
        filter_symbols: Restrict variable analysis to these symbols
        max_dependency_inference_size: Skip the dependency collaborator above this many formulas
        inference_timeout: Seconds to wait for a collaborator
        direction: Diagram direction (TB, BT, LR, RL)
    """
    include_inline: bool = True
    numbered_only: bool = False
    filter_section: Optional[str] = None
    filter_symbols: Optional[List[str]] = None
    max_dependency_inference_size: int = DEFAULT_MAX_INFERENCE_SIZE
    inference_timeout: float = DEFAULT_INFERENCE_TIMEOUT
    direction: str = "TB"

    def __post_init__(self):
        if self.direction not in DIRECTIONS:
            raise ValueError(f"Invalid diagram direction '{self.direction}'. Choose one of: {', '.join(DIRECTIONS)}")


def extract_formulas(path: Path, config: Optional[PipelineConfig] = None) -> ExtractFormulasResult:
    """
    Load a text document and extract its classified formulas.

    Args:
        path: Plain-text document
        config: Pipeline options

    Returns:
        ExtractFormulasResult; success=False if the document cannot be read
    """
    try:
        document = load_document(Path(path))
    except (FileNotFoundError, DocumentError, OSError) as e:
        logger.error("Could not load %s: %s", path, e)
        return ExtractFormulasResult(success=False, error=str(e))

    return extract_formulas_from_text(
        document.text,
        config=config,
        section_hints=document.section_hints,
        title=document.title,
    )


def extract_formulas_from_text(
    text: str,
    config: Optional[PipelineConfig] = None,
    section_hints: Optional[Iterable[str]] = None,
    title: Optional[str] = None,
) -> ExtractFormulasResult:
    """
    Extract classified formulas from document text.

    Args:
        text: Normalized document text
        config: Pipeline options
        section_hints: Heading names known from outside the text
        title: Title from document metadata, if any

    Returns:
        ExtractFormulasResult with formulas in document order
    """
    config = config or PipelineConfig()
    if not text or not text.strip():
        return ExtractFormulasResult(success=False, error="Document contains no text")

    sections = segment_sections(text, section_hints)
    formulas = extract_document_formulas(
        sections,
        include_inline=config.include_inline,
        numbered_only=config.numbered_only,
    )
    formulas = classify_formulas(formulas)
    formulas = filter_by_section(formulas, config.filter_section)

    return ExtractFormulasResult(
        success=True,
        paper_title=extract_title(text, title),
        formulas=formulas,
        stats=formula_stats(formulas),
    )


def filter_by_section(formulas: Sequence[Formula], section: Optional[str]) -> List[Formula]:
    """Keep formulas whose section name contains `section`, ignoring case."""
    if not section:
        return list(formulas)
    needle = section.lower()
    return [formula for formula in formulas if needle in formula.section.lower()]


def formula_stats(formulas: Sequence[Formula]) -> FormulaStats:
    stats = FormulaStats(total_formulas=len(formulas))
    for formula in formulas:
        if formula.number:
            stats.numbered_equations += 1
        if formula.type == "inline":
            stats.inline_formulas += 1
        stats.by_role[formula.role if formula.role in ROLES else "unknown"] += 1
    return stats


def analyze_variables(
    extraction: ExtractFormulasResult,
    config: Optional[PipelineConfig] = None,
) -> VariableAnalysisResult:
    """
    Report where each symbol is defined and used.

    Args:
        extraction: Result of extract_formulas
        config: Pipeline options (filter_section, filter_symbols)

    Returns:
        VariableAnalysisResult with a variable/formula diagram
    """
    config = config or PipelineConfig()
    if not extraction.success:
        return VariableAnalysisResult(success=False, error=extraction.error)

    formulas = filter_by_section(extraction.formulas, config.filter_section)
    usages = filter_usages(track_variable_usage(formulas), config.filter_symbols)

    return VariableAnalysisResult(
        success=True,
        variables=usages,
        stats=variable_stats(usages),
        graph=build_variable_diagram(usages, formulas),
    )


def analyze_dependencies(
    extraction: ExtractFormulasResult,
    config: Optional[PipelineConfig] = None,
    collaborator: Optional[DependencyCollaborator] = None,
) -> DependencyAnalysisResult:
    """
    Build, analyse and diagram the formula dependency graph.

    Args:
        extraction: Result of extract_formulas
        config: Pipeline options
        collaborator: Optional edge proposer, e.g. LLMClient.propose_dependencies

    Returns:
        DependencyAnalysisResult; success=False with fewer than two formulas
    """
    config = config or PipelineConfig()
    if not extraction.success:
        return DependencyAnalysisResult(success=False, error=extraction.error)

    formulas = filter_by_section(extraction.formulas, config.filter_section)
    if len(formulas) < MIN_DEPENDENCY_FORMULAS:
        return DependencyAnalysisResult(
            success=False,
            analysis=GraphAnalysis(total_formulas=len(formulas)),
            error="Need at least 2 formulas to analyze dependencies",
        )

    build = build_dependencies(
        formulas,
        collaborator=collaborator,
        max_inference_size=config.max_dependency_inference_size,
        timeout=config.inference_timeout,
    )
    analysis = analyze_graph(formulas, build.dependencies)
    graph = build_dependency_diagram(formulas, build.dependencies, analysis.clusters, config.direction)

    return DependencyAnalysisResult(
        success=True,
        analysis=analysis,
        dependencies=build.dependencies,
        graph=graph,
        collaborator_error=build.collaborator_error,
    )


def analyze_roles(
    extraction: ExtractFormulasResult,
    config: Optional[PipelineConfig] = None,
    flow_collaborator: Optional[FlowCollaborator] = None,
) -> RoleAnalysisResult:
    """
    Group formulas by role and describe the paper's rhetorical flow.

    The flow text comes from the collaborator when one is given and
    succeeds; otherwise it is built from the dominant roles.

    Args:
        extraction: Result of extract_formulas
        config: Pipeline options
        flow_collaborator: Optional callable returning a flow paragraph

    Returns:
        RoleAnalysisResult with a role-flow diagram
    """
    config = config or PipelineConfig()
    if not extraction.success:
        return RoleAnalysisResult(success=False, error=extraction.error)

    formulas = filter_by_section(extraction.formulas, config.filter_section)
    groups = group_by_role(formulas)
    dominant = dominant_roles(groups)

    logical_flow = ""
    if flow_collaborator is not None and len(formulas) >= 2:
        try:
            logical_flow = flow_collaborator(formulas) or ""
        except Exception as e:
            logger.warning("Role flow description failed: %s", e)
    if not logical_flow:
        logical_flow = default_flow_description(dominant)

    return RoleAnalysisResult(
        success=True,
        role_groups=groups,
        dominant_roles=dominant,
        logical_flow=logical_flow,
        graph=build_role_flow_diagram(groups, config.direction),
    )


def dominant_roles(groups, limit: int = DOMINANT_ROLE_COUNT) -> List[str]:
    """Most frequent non-empty roles; equal counts keep vocabulary order."""
    counted = [(role, len(groups.get(role, []))) for role in ROLES]
    counted = [item for item in counted if item[1] > 0]
    counted.sort(key=lambda item: item[1], reverse=True)
    return [role for role, _ in counted[:limit]]


def default_flow_description(dominant: Sequence[str]) -> str:
    descriptions = [ROLE_FLOW_DESCRIPTIONS[role] for role in dominant if role in ROLE_FLOW_DESCRIPTIONS]
    if not descriptions:
        return "No dominant formula roles were identified."
    return f"This paper mainly {', then '.join(descriptions)}."
