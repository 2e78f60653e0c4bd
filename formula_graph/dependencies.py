"""
Infer dependency edges between formulas.

Edges come from two sources:
- Shared variables: any two formulas mentioning the same symbol are linked,
  earlier formula to later formula
- An optional collaborator (usually the LLM client) proposing additional
  typed edges for small formula sets

The collaborator is an enhancement only. If it fails, times out or returns
garbage, the shared-variable edges are returned on their own.
"""

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .models import DEPENDENCY_TYPES, Formula, FormulaDependency

logger = logging.getLogger(__name__)

DEFAULT_MAX_INFERENCE_SIZE = 20
DEFAULT_INFERENCE_TIMEOUT = 30.0
COLLABORATOR_THREAD_NAME = "dependency-collaborator"

DependencyCollaborator = Callable[[Sequence[Formula]], List[Dict[str, Any]]]


@dataclass
class DependencyBuild:
    """
    Edges produced for one formula set.

    Attributes:
        dependencies: Edges in insertion order, unique per (source, target)
        collaborator_error: Why the collaborator contributed nothing, if it failed
    """
    dependencies: List[FormulaDependency] = field(default_factory=list)
    collaborator_error: Optional[str] = None


def infer_shared_variable_edges(formulas: Sequence[Formula]) -> List[FormulaDependency]:
    """
    Link every pair of formulas that mention a common symbol.

    Edges point from the earlier formula to the later one. A pair sharing
    several symbols gets a single edge listing all of them.

    Args:
        formulas: Formulas in document order

    Returns:
        uses_variable edges
    """
    mentions: Dict[str, List[str]] = {}
    for formula in formulas:
        for symbol in formula.symbols():
            ids = mentions.setdefault(symbol, [])
            if formula.id not in ids:
                ids.append(formula.id)

    edges: Dict[Tuple[str, str], FormulaDependency] = {}
    for symbol, formula_ids in mentions.items():
        if len(formula_ids) < 2:
            continue
        for i in range(len(formula_ids) - 1):
            for j in range(i + 1, len(formula_ids)):
                key = (formula_ids[i], formula_ids[j])
                edge = edges.get(key)
                if edge is None:
                    edges[key] = FormulaDependency(
                        source=key[0],
                        target=key[1],
                        type="uses_variable",
                        shared_variables=[symbol],
                    )
                elif symbol not in edge.shared_variables:
                    edge.shared_variables.append(symbol)

    return list(edges.values())


def build_dependencies(
    formulas: Sequence[Formula],
    collaborator: Optional[DependencyCollaborator] = None,
    max_inference_size: int = DEFAULT_MAX_INFERENCE_SIZE,
    timeout: float = DEFAULT_INFERENCE_TIMEOUT,
) -> DependencyBuild:
    """
    Build the dependency edge set for a list of formulas.

    Args:
        formulas: Formulas in document order
        collaborator: Callable returning edge proposals as dicts with
            "from", "to", "type" and optional "description"
        max_inference_size: Skip the collaborator above this many formulas
        timeout: Seconds to wait for the collaborator

    Returns:
        DependencyBuild with shared-variable edges plus accepted proposals
    """
    edges: Dict[Tuple[str, str], FormulaDependency] = {
        edge.key: edge for edge in infer_shared_variable_edges(formulas)
    }
    build = DependencyBuild()

    if collaborator is not None and len(formulas) <= max_inference_size:
        try:
            proposals = _call_with_timeout(collaborator, formulas, timeout)
            accepted = merge_proposals(edges, proposals, {formula.id for formula in formulas})
            logger.debug("Collaborator proposed %d edges, %d accepted", len(proposals), accepted)
        except FutureTimeoutError:
            build.collaborator_error = f"Dependency inference timed out after {timeout:g}s"
            logger.warning(build.collaborator_error)
        except Exception as e:
            build.collaborator_error = f"Dependency inference failed: {e}"
            logger.warning(build.collaborator_error)
    elif collaborator is not None:
        logger.debug(
            "Skipping dependency inference for %d formulas (limit %d)",
            len(formulas),
            max_inference_size,
        )

    build.dependencies = list(edges.values())
    return build


def merge_proposals(
    edges: Dict[Tuple[str, str], FormulaDependency],
    proposals: Any,
    known_ids: Set[str],
) -> int:
    """
    Add valid proposals for pairs that have no edge yet.

    Proposals with unknown IDs, self-loops or an unknown type are dropped.

    Returns:
        Number of edges added

    Raises:
        ValueError: If proposals is not a list
    """
    if not isinstance(proposals, list):
        raise ValueError(f"expected a list of proposals, got {type(proposals).__name__}")

    added = 0
    for proposal in proposals:
        if not isinstance(proposal, dict):
            continue
        source = proposal.get("from")
        target = proposal.get("to")
        dep_type = proposal.get("type")
        if source not in known_ids or target not in known_ids or source == target:
            continue
        if dep_type not in DEPENDENCY_TYPES:
            continue
        if (source, target) in edges:
            continue
        description = proposal.get("description")
        edges[(source, target)] = FormulaDependency(
            source=source,
            target=target,
            type=dep_type,
            description=str(description) if description else None,
        )
        added += 1
    return added


def _call_with_timeout(
    collaborator: DependencyCollaborator,
    formulas: Sequence[Formula],
    timeout: float,
) -> Any:
    future: Future = Future()

    def run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(collaborator(list(formulas)))
        except Exception as e:
            future.set_exception(e)

    # Daemon thread: a collaborator still running after the timeout must not keep the process alive
    worker = threading.Thread(target=run, name=COLLABORATOR_THREAD_NAME, daemon=True)
    worker.start()
    return future.result(timeout=timeout)
