"""
Data model shared by every stage of the formula pipeline.

All records are plain dataclasses. Sections and diagram elements are frozen;
formulas and dependencies are built incrementally by their owning stage and
handed on unchanged afterwards.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple


ROLES = (
    "definition",
    "objective",
    "constraint",
    "theorem",
    "derivation",
    "approximation",
    "example",
    "baseline",
    "unknown",
)

# Tie-break order used when two roles score the same.
ROLE_PRIORITY = (
    "definition",
    "objective",
    "theorem",
    "constraint",
    "derivation",
    "approximation",
    "example",
    "baseline",
)

FORMULA_TYPES = ("equation", "inline", "display", "definition")

DEPENDENCY_TYPES = ("uses_variable", "derives_from", "substitutes", "combines")

VARIABLE_TYPES = ("scalar", "vector", "matrix", "tensor", "function", "set", "unknown")

ROLE_LABELS = {
    "definition": "정의 (Definition)",
    "objective": "목적 함수 (Objective)",
    "constraint": "제약 조건 (Constraint)",
    "theorem": "정리 (Theorem)",
    "derivation": "유도 (Derivation)",
    "approximation": "근사 (Approximation)",
    "example": "예시 (Example)",
    "baseline": "기준선 (Baseline)",
    "unknown": "미분류 (Unknown)",
}

ROLE_EMOJIS = {
    "definition": "📘",
    "objective": "🎯",
    "constraint": "🔒",
    "theorem": "📐",
    "derivation": "⚙️",
    "approximation": "≈",
    "example": "💡",
    "baseline": "📊",
    "unknown": "❓",
}


def role_title(role: str) -> str:
    """Short display title for a role, e.g. '🎯 Objective'."""
    return f"{ROLE_EMOJIS.get(role, '')} {role.capitalize()}".strip()


@dataclass(frozen=True)
class Section:
    """A contiguous span of document text under one heading."""
    id: str
    name: str
    original_name: str
    content: str
    page_range: Tuple[int, int]


@dataclass
class Variable:
    """
    A symbol as it appears inside one formula.

    Attributes:
        symbol: Normalized symbol (e.g. "x", "θ", "x_i")
        latex: Markup the symbol was read from (e.g. "\\theta", "x_{i}")
        meaning: Optional human description
        type: One of VARIABLE_TYPES
        defined_in: ID of the formula that defines the symbol, if known
    """
    symbol: str
    latex: str
    meaning: Optional[str] = None
    type: Optional[str] = None
    defined_in: Optional[str] = None


@dataclass
class Formula:
    id: str
    latex: str
    type: str
    role: str = "unknown"
    number: Optional[str] = None
    context: str = ""
    section: str = ""
    page_number: int = 1
    variables: List[Variable] = field(default_factory=list)
    confidence: float = 0.0

    def symbols(self) -> List[str]:
        return [v.symbol for v in self.variables]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VariableUsage:
    symbol: str
    latex: str
    meaning: str
    defined_in: List[str] = field(default_factory=list)
    used_in: List[str] = field(default_factory=list)
    first_appearance: str = ""

    @property
    def is_defined(self) -> bool:
        return bool(self.defined_in)


@dataclass
class FormulaDependency:
    """Directed edge between two formulas; identity is (source, target)."""
    source: str
    target: str
    type: str = "uses_variable"
    shared_variables: List[str] = field(default_factory=list)
    description: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.target)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "from": self.source,
            "to": self.target,
            "type": self.type,
        }
        if self.shared_variables:
            data["shared_variables"] = list(self.shared_variables)
        if self.description:
            data["description"] = self.description
        return data


@dataclass
class FormulaCluster:
    id: str
    formulas: List[str]
    description: str
    role: Optional[str] = None


@dataclass(frozen=True)
class DiagramNode:
    id: str
    label: str
    role: Optional[str] = None
    shape: str = "rounded"


@dataclass(frozen=True)
class DiagramEdge:
    source: str
    target: str
    label: str = ""
    style: str = "solid"


@dataclass(frozen=True)
class DiagramSubgraph:
    id: str
    label: str
    nodes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DiagramGraph:
    """Rendering-agnostic node/edge/subgraph description of a diagram."""
    direction: str = "TB"
    nodes: Tuple[DiagramNode, ...] = ()
    edges: Tuple[DiagramEdge, ...] = ()
    subgraphs: Tuple[DiagramSubgraph, ...] = ()
    title: Optional[str] = None

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FormulaStats:
    total_formulas: int = 0
    numbered_equations: int = 0
    inline_formulas: int = 0
    by_role: Dict[str, int] = field(default_factory=lambda: {role: 0 for role in ROLES})


@dataclass
class GraphAnalysis:
    total_formulas: int = 0
    total_dependencies: int = 0
    root_formulas: List[str] = field(default_factory=list)
    leaf_formulas: List[str] = field(default_factory=list)
    clusters: List[FormulaCluster] = field(default_factory=list)


@dataclass
class ExtractFormulasResult:
    success: bool
    paper_title: str = ""
    formulas: List[Formula] = field(default_factory=list)
    stats: FormulaStats = field(default_factory=FormulaStats)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DependencyAnalysisResult:
    success: bool
    analysis: GraphAnalysis = field(default_factory=GraphAnalysis)
    dependencies: List[FormulaDependency] = field(default_factory=list)
    graph: DiagramGraph = field(default_factory=DiagramGraph)
    error: Optional[str] = None
    collaborator_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "analysis": asdict(self.analysis),
            "dependencies": [dep.to_dict() for dep in self.dependencies],
            "graph": self.graph.to_dict(),
            "error": self.error,
            "collaborator_error": self.collaborator_error,
        }


@dataclass
class VariableStats:
    total_variables: int = 0
    defined_variables: int = 0
    undefined_variables: int = 0
    most_used_variables: List[str] = field(default_factory=list)


@dataclass
class VariableAnalysisResult:
    success: bool
    variables: List[VariableUsage] = field(default_factory=list)
    stats: VariableStats = field(default_factory=VariableStats)
    graph: Optional[DiagramGraph] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RoleAnalysisResult:
    success: bool
    role_groups: Dict[str, List[Formula]] = field(default_factory=dict)
    dominant_roles: List[str] = field(default_factory=list)
    logical_flow: str = ""
    graph: Optional[DiagramGraph] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ComponentExplanation:
    symbol: str
    latex: str
    explanation: str
    type: str = "variable"


@dataclass
class FormulaExplanation:
    """Prose explanation of one formula, from the LLM or the offline fallback."""
    formula_id: str
    summary: str
    components: List[ComponentExplanation] = field(default_factory=list)
    meaning: str = ""
    intuition: str = ""
    role: str = ""
    related_formulas: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
