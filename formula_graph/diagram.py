"""
Build rendering-agnostic diagram graphs.

The functions here only decide which nodes, edges and subgraphs exist and
how they are labelled. Turning a DiagramGraph into a concrete syntax is the
job of a serializer such as formula_graph.mermaid.
"""

import re
from typing import Dict, List, Mapping, Sequence

from .models import (
    DiagramEdge,
    DiagramGraph,
    DiagramNode,
    DiagramSubgraph,
    Formula,
    FormulaCluster,
    FormulaDependency,
    VariableUsage,
    role_title,
)

DIRECTIONS = ("TB", "BT", "LR", "RL")

PREVIEW_LENGTH = 25
ROLE_FLOW_PREVIEW_LENGTH = 30
MAX_EDGE_LABEL_VARIABLES = 3
ROLE_FLOW_PER_ROLE = 5
VARIABLE_DIAGRAM_LIMIT = 15
FORMULAS_PER_VARIABLE = 3

# Order of the rhetorical flow: set-up first, supporting material last
ROLE_FLOW_ORDER = (
    "definition",
    "objective",
    "constraint",
    "derivation",
    "theorem",
    "approximation",
    "example",
    "baseline",
)


def sanitize_id(raw_id: str) -> str:
    """
    Make an identifier safe for diagram syntaxes.

    Examples:
        >>> sanitize_id("eq2.1")
        'eq2_1'
        >>> sanitize_id("1st")
        '_1st'
    """
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", raw_id)
    return re.sub(r"^(\d)", r"_\1", cleaned)


def preview(latex: str, length: int = PREVIEW_LENGTH) -> str:
    return latex if len(latex) <= length else latex[:length] + "..."


def build_dependency_diagram(
    formulas: Sequence[Formula],
    dependencies: Sequence[FormulaDependency],
    clusters: Sequence[FormulaCluster],
    direction: str = "TB",
) -> DiagramGraph:
    """
    Project formulas, edges and role clusters into a diagram graph.

    Args:
        formulas: Formulas in document order, one node each
        dependencies: Edges; those touching unknown formulas are skipped
        clusters: Role clusters, one subgraph each
        direction: One of TB, BT, LR, RL

    Returns:
        DiagramGraph

    Raises:
        ValueError: If direction is not supported
    """
    _check_direction(direction)

    nodes: List[DiagramNode] = []
    node_ids: Dict[str, str] = {}
    for formula in formulas:
        node_id = sanitize_id(formula.id)
        if formula.id in node_ids:
            continue
        node_ids[formula.id] = node_id
        nodes.append(
            DiagramNode(
                id=node_id,
                label=f"{formula.number or formula.id}\n{preview(formula.latex)}",
                role=formula.role,
                shape="rounded",
            )
        )

    subgraphs: List[DiagramSubgraph] = []
    for cluster in clusters:
        members = tuple(node_ids[fid] for fid in cluster.formulas if fid in node_ids)
        if not members:
            continue
        subgraphs.append(
            DiagramSubgraph(
                id=f"group_{sanitize_id(cluster.role or cluster.id)}",
                label=role_title(cluster.role) if cluster.role else cluster.id,
                nodes=members,
            )
        )

    edges: List[DiagramEdge] = []
    for dep in dependencies:
        if dep.source not in node_ids or dep.target not in node_ids:
            continue
        edges.append(
            DiagramEdge(
                source=node_ids[dep.source],
                target=node_ids[dep.target],
                label=", ".join(dep.shared_variables[:MAX_EDGE_LABEL_VARIABLES]),
                style="thick" if dep.type == "derives_from" else "solid",
            )
        )

    return DiagramGraph(
        direction=direction,
        nodes=tuple(nodes),
        edges=tuple(edges),
        subgraphs=tuple(subgraphs),
        title="Formula dependencies",
    )


def build_role_flow_diagram(
    role_groups: Mapping[str, Sequence[Formula]],
    direction: str = "TB",
) -> DiagramGraph:
    """
    Draw formulas grouped by role, with consecutive role groups chained.

    Up to five formulas are shown per role. The first formula of each role
    group gets a dotted edge to the first formula of the next non-empty
    group. Unclassified formulas are left out.
    """
    _check_direction(direction)

    nodes: List[DiagramNode] = []
    edges: List[DiagramEdge] = []
    subgraphs: List[DiagramSubgraph] = []
    previous_first = None

    for role in ROLE_FLOW_ORDER:
        members = list(role_groups.get(role, []))[:ROLE_FLOW_PER_ROLE]
        if not members:
            continue
        member_ids = []
        for formula in members:
            node_id = sanitize_id(formula.id)
            member_ids.append(node_id)
            nodes.append(
                DiagramNode(
                    id=node_id,
                    label=f"{formula.id}\n{preview(formula.latex, ROLE_FLOW_PREVIEW_LENGTH)}",
                    role=role,
                )
            )
        subgraphs.append(
            DiagramSubgraph(id=f"group_{role}", label=role_title(role), nodes=tuple(member_ids))
        )
        if previous_first is not None:
            edges.append(DiagramEdge(source=previous_first, target=member_ids[0], style="dotted"))
        previous_first = member_ids[0]

    return DiagramGraph(
        direction=direction,
        nodes=tuple(nodes),
        edges=tuple(edges),
        subgraphs=tuple(subgraphs),
        title="Formula roles",
    )


def build_variable_diagram(
    usages: Sequence[VariableUsage],
    formulas: Sequence[Formula],
    direction: str = "LR",
) -> DiagramGraph:
    """
    Link variables to the formulas using them.

    The first 15 variables are drawn, each connected to at most three of
    its formulas. Edges to a defining formula are thick, others dotted.
    Variable nodes carry the bucket "defined" or "undefined"; formula nodes
    carry "formula".
    """
    _check_direction(direction)

    shown = list(usages)[:VARIABLE_DIAGRAM_LIMIT]
    known_ids = {formula.id for formula in formulas}

    relevant = set()
    for usage in shown:
        relevant.update(fid for fid in usage.used_in[:FORMULAS_PER_VARIABLE] if fid in known_ids)

    nodes: List[DiagramNode] = []
    for usage in shown:
        nodes.append(
            DiagramNode(
                id=_variable_node_id(usage.symbol),
                label=usage.symbol,
                role="defined" if usage.is_defined else "undefined",
                shape="circle",
            )
        )
    for formula in formulas:
        if formula.id in relevant:
            nodes.append(
                DiagramNode(
                    id=sanitize_id(formula.id),
                    label=formula.number or formula.id,
                    role="formula",
                    shape="rectangle",
                )
            )

    edges: List[DiagramEdge] = []
    for usage in shown:
        for fid in usage.used_in[:FORMULAS_PER_VARIABLE]:
            if fid not in known_ids:
                continue
            edges.append(
                DiagramEdge(
                    source=_variable_node_id(usage.symbol),
                    target=sanitize_id(fid),
                    style="thick" if fid in usage.defined_in else "dotted",
                )
            )

    return DiagramGraph(
        direction=direction,
        nodes=tuple(nodes),
        edges=tuple(edges),
        title="Variable usage",
    )


def _check_direction(direction: str) -> None:
    if direction not in DIRECTIONS:
        raise ValueError(f"Invalid diagram direction '{direction}'. Choose one of: {', '.join(DIRECTIONS)}")


def _variable_node_id(symbol: str) -> str:
    # Greek letters and accents would all collapse to "_" under sanitize_id
    encoded = "".join(
        ch if (ch.isascii() and (ch.isalnum() or ch == "_")) else f"u{ord(ch):x}"
        for ch in symbol
    )
    return f"var_{encoded}"
