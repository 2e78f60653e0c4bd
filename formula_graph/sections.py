"""
Split paper text into named sections.

Headings are recognized by a leading section number ("3. Method",
"IV. Results"), by a closed vocabulary of canonical section names, or by
caller-supplied hints. Canonical names are shown with a bilingual label.
"""

import logging
import re
from typing import Iterable, List, Optional, Tuple

from .models import Section

logger = logging.getLogger(__name__)

CHARS_PER_PAGE = 3000
MAX_HEADING_LENGTH = 80
MAX_HEADING_WORDS = 8
MIN_SECTION_CHARS = 20

PREAMBLE_NAME = "Header"
IMPLICIT_SECTION_NAME = "Document"

CANONICAL_SECTIONS = {
    "abstract": "Abstract (초록)",
    "introduction": "Introduction (서론)",
    "related work": "Related Work (관련 연구)",
    "related works": "Related Work (관련 연구)",
    "background": "Background (배경)",
    "preliminaries": "Preliminaries (예비 지식)",
    "method": "Method (방법)",
    "methods": "Method (방법)",
    "methodology": "Methodology (방법론)",
    "approach": "Approach (접근법)",
    "model": "Model (모델)",
    "experiment": "Experiments (실험)",
    "experiments": "Experiments (실험)",
    "evaluation": "Evaluation (평가)",
    "results": "Results (결과)",
    "discussion": "Discussion (논의)",
    "conclusion": "Conclusion (결론)",
    "conclusions": "Conclusion (결론)",
    "references": "References (참고문헌)",
    "appendix": "Appendix (부록)",
    "acknowledgements": "Acknowledgements (감사의 글)",
    "acknowledgments": "Acknowledgements (감사의 글)",
}

NUMBERED_HEADING = re.compile(r"^(\d{1,2}(?:\.\d{1,2})*)\.?\s+([A-Z][A-Za-z][A-Za-z\s\-:,&]*)$")
ROMAN_HEADING = re.compile(r"^(I{1,3}|IV|VI{0,3}|IX|X)\.\s+([A-Z][A-Za-z\s\-:,&]+)$")


def canonical_label(title: str) -> Optional[str]:
    """Bilingual display label for a canonical section title, or None."""
    key = title.strip().rstrip(":").strip().lower()
    return CANONICAL_SECTIONS.get(key)


def match_heading(line: str, hints: Iterable[str] = ()) -> Optional[str]:
    """
    Return the heading title if the line is a section heading.

    Args:
        line: A stripped line of text
        hints: Extra heading names to accept

    Returns:
        The heading title without numbering, or None
    """
    if not line or len(line) >= MAX_HEADING_LENGTH:
        return None

    for pattern in (NUMBERED_HEADING, ROMAN_HEADING):
        match = pattern.match(line)
        if match:
            title = match.group(2).strip()
            if len(title.split()) <= MAX_HEADING_WORDS:
                return title

    lower = line.lower()
    if lower.rstrip(":").strip() in CANONICAL_SECTIONS:
        return line.rstrip(":").strip()

    for hint in hints:
        hint_lower = hint.strip().lower()
        if not hint_lower:
            continue
        if lower == hint_lower or _strip_numbering(lower) == hint_lower:
            return _strip_numbering(line)

    return None


def segment_sections(text: str, section_hints: Optional[Iterable[str]] = None) -> List[Section]:
    """
    Split normalized document text into ordered sections.

    Args:
        text: Document text
        section_hints: Optional heading names known from outside the text

    Returns:
        List of Section objects in document order. If no heading survives,
        the whole text is returned as one implicit section.
    """
    hints = [hint for hint in (section_hints or []) if hint and hint.strip()]
    use_form_feeds = "\f" in text

    # (name, original_name, lines, first_page, last_page)
    spans: List[Tuple[str, str, List[str], int, int]] = []
    current: Optional[List] = None
    page = 1
    char_count = 0

    for raw_line in text.split("\n"):
        if use_form_feeds:
            page += raw_line.count("\f")
        else:
            char_count += len(raw_line) + 1
            page = 1 + char_count // CHARS_PER_PAGE

        line = raw_line.replace("\f", "").strip()
        title = match_heading(line, hints)

        if title is not None:
            if current is not None:
                spans.append(tuple(current))
            name = canonical_label(title) or title
            current = [name, line, [], page, page]
            continue

        if current is None:
            if not line:
                continue
            current = [PREAMBLE_NAME, "", [], page, page]

        current[2].append(line)
        current[4] = page

    if current is not None:
        spans.append(tuple(current))

    sections: List[Section] = []
    for name, original_name, lines, first_page, last_page in _fold_short_spans(spans):
        content = "\n".join(lines).strip()
        sections.append(
            Section(
                id=f"sec{len(sections) + 1}",
                name=name,
                original_name=original_name,
                content=content,
                page_range=(first_page, last_page),
            )
        )

    if not sections and text.strip():
        last_page = page if use_form_feeds else 1 + len(text) // CHARS_PER_PAGE
        content = "\n".join(line.replace("\f", "").strip() for line in text.split("\n")).strip()
        sections.append(
            Section(
                id="sec1",
                name=IMPLICIT_SECTION_NAME,
                original_name="",
                content=content,
                page_range=(1, max(1, last_page)),
            )
        )

    logger.debug("Segmented document into %d sections", len(sections))
    return sections


def _fold_short_spans(spans: List[Tuple]) -> List[List]:
    """
    Merge spans shorter than MIN_SECTION_CHARS into a neighbour.

    A short span is appended to the previous kept span; before the first
    kept span it is prepended to the next one. Empty spans are dropped.
    Returns nothing if no span reaches the minimum length.
    """
    kept: List[List] = []
    pending: List[str] = []
    pending_page: Optional[int] = None

    for name, original_name, lines, first_page, last_page in spans:
        content = "\n".join(lines).strip()
        if not content:
            continue
        if len(content) < MIN_SECTION_CHARS and kept:
            logger.debug("Folding short section %r into %r", name, kept[-1][0])
            kept[-1][2].extend(lines)
            kept[-1][4] = last_page
            continue
        if pending:
            lines = pending + list(lines)
            first_page = pending_page
            pending, pending_page = [], None
        if len("\n".join(lines).strip()) < MIN_SECTION_CHARS:
            logger.debug("Carrying short section %r into the next one", name)
            pending = list(lines)
            pending_page = first_page
            continue
        kept.append([name, original_name, list(lines), first_page, last_page])

    return kept


def _strip_numbering(line: str) -> str:
    return re.sub(r"^(\d+(?:\.\d+)*|[IVX]+)\.?\s+", "", line.strip())
