"""
Assign a rhetorical role to each formula.

Roles are scored from cue phrases in the formula's own context and from a
few markup patterns in the formula itself. Classification looks at one
formula at a time and never at its neighbours.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, NamedTuple, Tuple

from .models import Formula

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 0.9
BASE_CONFIDENCE = 0.5
CONFIDENCE_STEP = 0.1
MARKUP_WEIGHT = 2


class RoleAssessment(NamedTuple):
    role: str
    confidence: float


def _cue_pattern(cue: str) -> re.Pattern:
    if not cue.isascii():
        return re.compile(re.escape(cue))
    # Word boundaries only where the cue starts or ends with a word character
    prefix = r"\b" if cue[0].isalnum() else ""
    suffix = r"\b" if cue[-1].isalnum() else ""
    return re.compile(prefix + re.escape(cue) + suffix, re.IGNORECASE)


@dataclass
class RoleRule:
    """
    Cues for one role.

    Attributes:
        role: Role assigned when this rule wins
        context_cues: Phrases looked up in the formula context
        markup_cues: Regexes matched against the formula markup
    """
    role: str
    context_cues: Tuple[str, ...]
    markup_cues: Tuple[str, ...] = ()
    _context_patterns: List[re.Pattern] = field(init=False, repr=False)
    _markup_patterns: List[re.Pattern] = field(init=False, repr=False)

    def __post_init__(self):
        self._context_patterns = [_cue_pattern(cue) for cue in self.context_cues]
        self._markup_patterns = [re.compile(cue) for cue in self.markup_cues]

    def score(self, latex: str, context: str) -> int:
        context_hits = sum(1 for pattern in self._context_patterns if pattern.search(context))
        markup_hits = sum(1 for pattern in self._markup_patterns if pattern.search(latex))
        return context_hits + MARKUP_WEIGHT * markup_hits


ROLE_RULES = (
    RoleRule(
        "definition",
        ("we define", "define", "defined as", "denote", "denotes", "let", "where",
         "is given by", "정의"),
        (r":=", r"\\triangleq", r"\\coloneqq", r"≜", r"≔"),
    ),
    RoleRule(
        "objective",
        ("minimize", "minimise", "maximize", "maximise", "loss", "cost", "objective",
         "optimize", "optimise", "목적", "손실"),
        (r"\\(?:arg)?(?:min|max)(?![A-Za-z])", r"\barg\s*(?:min|max)\b", r"\bargmin\b", r"\bargmax\b"),
    ),
    RoleRule(
        "theorem",
        ("theorem", "lemma", "proposition", "corollary", "proof", "prove", "정리", "명제"),
    ),
    RoleRule(
        "constraint",
        ("subject to", "s.t.", "constraint", "constrained", "such that", "satisfies",
         "제약", "조건"),
        (r"\\(?:leq|geq|le|ge|preceq|succeq)(?![A-Za-z])|≤|≥",),
    ),
    RoleRule(
        "derivation",
        ("it follows", "follows", "substituting", "expanding", "rearranging",
         "therefore", "thus", "hence", "we obtain", "we get", "derive", "유도", "따라서"),
    ),
    RoleRule(
        "approximation",
        ("approximately", "approximate", "approximation", "estimate", "asymptotic", "≈", "근사"),
        (r"\\(?:approx|simeq)(?![A-Za-z])|≈",),
    ),
    RoleRule(
        "example",
        ("for example", "for instance", "e.g.", "example", "such as", "예시", "예를 들어"),
    ),
    RoleRule(
        "baseline",
        ("baseline", "prior work", "previous work", "existing", "traditional",
         "standard approach", "기준", "기존"),
    ),
)


def classify_formula_role(latex: str, context: str) -> RoleAssessment:
    """
    Score a formula against every role rule.

    The highest score wins and ties go to the rule listed first, so rule
    order is the tie-break priority. Confidence grows with the score and is
    capped at 0.9; it is not a calibrated probability.

    Args:
        latex: Formula markup
        context: Prose surrounding the formula

    Returns:
        RoleAssessment; role "unknown" with confidence 0.0 when no cue matches

    Examples:
        >>> classify_formula_role("L = y^2", "Minimize the loss")
        RoleAssessment(role='objective', confidence=0.7)
    """
    best_role = "unknown"
    best_score = 0
    for rule in ROLE_RULES:
        score = rule.score(latex, context)
        if score > best_score:
            best_role = rule.role
            best_score = score

    if best_score == 0:
        return RoleAssessment("unknown", 0.0)

    confidence = min(MAX_CONFIDENCE, BASE_CONFIDENCE + CONFIDENCE_STEP * best_score)
    return RoleAssessment(best_role, round(confidence, 2))


def classify_formulas(formulas: Iterable[Formula]) -> List[Formula]:
    """Set role and confidence on each formula in place and return them as a list."""
    classified = []
    for formula in formulas:
        formula.role, formula.confidence = classify_formula_role(formula.latex, formula.context)
        classified.append(formula)
    logger.debug("Classified %d formulas", len(classified))
    return classified
