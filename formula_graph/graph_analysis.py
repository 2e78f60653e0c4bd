"""
Structural analysis of a formula dependency graph.
"""

import logging
from typing import Dict, List, Sequence

from .models import ROLE_LABELS, ROLES, Formula, FormulaCluster, FormulaDependency, GraphAnalysis

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_LIMIT = 10


def analyze_graph(
    formulas: Sequence[Formula],
    dependencies: Sequence[FormulaDependency],
    cluster_limit: int = DEFAULT_CLUSTER_LIMIT,
) -> GraphAnalysis:
    """
    Find root formulas, leaf formulas and role clusters.

    Degrees and the dependency total only count edges whose two endpoints
    are both among the given formulas; edges pointing outside the set are
    ignored. An isolated formula is both a root and a leaf.

    Args:
        formulas: Formulas in document order
        dependencies: Edges between them
        cluster_limit: Maximum number of formula IDs listed per cluster

    Returns:
        GraphAnalysis with roots and leaves in document order
    """
    in_degree: Dict[str, int] = {formula.id: 0 for formula in formulas}
    out_degree: Dict[str, int] = {formula.id: 0 for formula in formulas}

    counted = 0
    for dep in dependencies:
        if dep.source not in in_degree or dep.target not in in_degree:
            continue
        out_degree[dep.source] += 1
        in_degree[dep.target] += 1
        counted += 1

    roots = [formula.id for formula in formulas if in_degree[formula.id] == 0]
    leaves = [formula.id for formula in formulas if out_degree[formula.id] == 0]

    return GraphAnalysis(
        total_formulas=len(formulas),
        total_dependencies=counted,
        root_formulas=roots,
        leaf_formulas=leaves,
        clusters=cluster_by_role(formulas, cluster_limit),
    )


def cluster_by_role(formulas: Sequence[Formula], limit: int = DEFAULT_CLUSTER_LIMIT) -> List[FormulaCluster]:
    """One cluster per non-empty role, in role vocabulary order."""
    groups = group_by_role(formulas)
    clusters = []
    for role in ROLES:
        members = groups[role]
        if not members:
            continue
        clusters.append(
            FormulaCluster(
                id=f"cluster_{role}",
                formulas=[formula.id for formula in members[:limit]],
                description=f"{ROLE_LABELS[role]}: {len(members)} formulas",
                role=role,
            )
        )
    return clusters


def group_by_role(formulas: Sequence[Formula]) -> Dict[str, List[Formula]]:
    groups: Dict[str, List[Formula]] = {role: [] for role in ROLES}
    for formula in formulas:
        groups.setdefault(formula.role, []).append(formula)
    return groups
