"""
Track where each symbol is defined and where it is used.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

from .models import Formula, VariableStats, VariableUsage

logger = logging.getLogger(__name__)

MOST_USED_LIMIT = 5
MEANING_CUES = r"(?:is|as|denotes|be)"


def track_variable_usage(formulas: Iterable[Formula]) -> List[VariableUsage]:
    """
    Build one usage record per distinct symbol.

    Every formula mentioning a symbol is added to ``used_in``; formulas whose
    role is "definition" are also added to ``defined_in``. A symbol with no
    defining formula is reported as undefined, which is not an error.

    The formulas' Variable objects are updated too: ``defined_in`` is set to
    the first defining formula seen so far, and a definition context such as
    "we define x as the input" fills in ``meaning``.

    Args:
        formulas: Classified formulas in document order

    Returns:
        Usage records in order of the symbol's first mention
    """
    usages: Dict[str, VariableUsage] = {}

    for formula in formulas:
        for variable in formula.variables:
            usage = usages.get(variable.symbol)
            if usage is None:
                usage = VariableUsage(
                    symbol=variable.symbol,
                    latex=variable.latex,
                    meaning=variable.meaning or "",
                    first_appearance=formula.section,
                )
                usages[variable.symbol] = usage

            if formula.role == "definition":
                if formula.id not in usage.defined_in:
                    usage.defined_in.append(formula.id)
                if not variable.meaning:
                    variable.meaning = meaning_from_context(variable.symbol, formula.context)
            if formula.id not in usage.used_in:
                usage.used_in.append(formula.id)

            if usage.defined_in and variable.defined_in is None:
                variable.defined_in = usage.defined_in[0]
            if variable.meaning and not usage.meaning:
                usage.meaning = variable.meaning

    logger.debug("Tracked %d distinct symbols", len(usages))
    return list(usages.values())


def meaning_from_context(symbol: str, context: str) -> Optional[str]:
    """
    Read a symbol's meaning from definition prose.

    Examples:
        >>> meaning_from_context("x", "We define x as the input")
        'the input'
        >>> meaning_from_context("x", "Minimize the loss") is None
        True
    """
    base = symbol.split("_", 1)[0]
    if not base or not context:
        return None
    match = re.search(
        rf"(?<![A-Za-z\\]){re.escape(base)}(?![A-Za-z])\s+{MEANING_CUES}\s+"
        r"((?:the|a|an)\s+[A-Za-z][\w-]*(?:\s+(?!and\b|for\b|where\b|with\b)[A-Za-z][\w-]*){0,3})",
        context,
    )
    return match.group(1) if match else None


def filter_usages(usages: Sequence[VariableUsage], symbols: Optional[Iterable[str]]) -> List[VariableUsage]:
    """Keep only the listed symbols; no filter when symbols is empty or None."""
    wanted = set(symbols or [])
    if not wanted:
        return list(usages)
    return [usage for usage in usages if usage.symbol in wanted]


def variable_stats(usages: Sequence[VariableUsage]) -> VariableStats:
    defined = sum(1 for usage in usages if usage.is_defined)
    # sorted() is stable, so equally used symbols keep first-mention order
    most_used = sorted(usages, key=lambda usage: len(usage.used_in), reverse=True)
    return VariableStats(
        total_variables=len(usages),
        defined_variables=defined,
        undefined_variables=len(usages) - defined,
        most_used_variables=[usage.symbol for usage in most_used[:MOST_USED_LIMIT]],
    )
