"""
Load already-extracted paper text.

This module is the text source of the pipeline. It does not parse binary
formats: it reads plain text (.txt, .md, .tex) produced by an upstream
converter, plus an optional sidecar file listing section headings.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


SUPPORTED_SUFFIXES = {".txt", ".md", ".tex", ".text"}


class DocumentError(ValueError):
    """Raised when a document has no usable text."""


@dataclass
class DocumentText:
    """
    Plain text of one paper.

    Attributes:
        text: Normalized document text
        section_hints: Heading names known from outside the text (may be empty)
        title: Title from document metadata, if any
        source_path: Where the text was read from
    """
    text: str
    section_hints: List[str] = field(default_factory=list)
    title: Optional[str] = None
    source_path: Optional[Path] = None


def normalize_text(text: str) -> str:
    """Unify line endings and drop trailing whitespace; form feeds are kept as page breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\u00a0", " ")
    lines = [line.rstrip(" \t") for line in text.split("\n")]
    return "\n".join(lines)


def load_document(path: Path) -> DocumentText:
    """
    Read a plain-text document from disk.

    A sidecar file named "<stem>.sections.txt" next to the document, when
    present, provides one section heading per line.

    Args:
        path: Path to the text file

    Returns:
        DocumentText with normalized text

    Raises:
        FileNotFoundError: If the file does not exist
        DocumentError: If the file type is unsupported or the text is empty
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Document not found: {path}")

    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise DocumentError(
            f"Unsupported document type '{path.suffix}'. "
            f"Convert the paper to plain text first ({', '.join(sorted(SUPPORTED_SUFFIXES))})."
        )

    try:
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise DocumentError(f"Document is not valid UTF-8 text: {path}") from e

    text = normalize_text(raw)
    if not text.strip():
        raise DocumentError(f"Document is empty: {path}")

    hints: List[str] = []
    sidecar = path.with_name(f"{path.stem}.sections.txt")
    if sidecar.exists():
        hints = [
            line.strip()
            for line in sidecar.read_text(encoding="utf-8", errors="ignore").splitlines()
            if line.strip()
        ]

    return DocumentText(text=text, section_hints=hints, source_path=path)


def extract_title(text: str, metadata_title: Optional[str] = None) -> str:
    """
    Guess the paper title.

    A metadata title longer than five characters wins. Otherwise the first
    15 non-empty lines are scored (length, capitalization, position) up to
    the abstract.

    Examples:
        >>> extract_title("Attention Is All You Need\\nA. Author\\nAbstract\\n...")
        'Attention Is All You Need'
    """
    if metadata_title and len(metadata_title) > 5:
        return metadata_title

    lines = [line.strip() for line in text.split("\n") if line.strip()][:15]

    title = ""
    best_score = 0
    for i, line in enumerate(lines):
        if "abstract" in line.lower():
            break

        score = 0
        score += 10 if 20 < len(line) < 150 else 0
        score += 5 if re.match(r"^[A-Z]", line) else 0
        score += (5 - i) if i < 5 else 0
        score -= 10 if "@" in line else 0
        score -= 5 if re.match(r"^\d", line) else 0

        if score > best_score:
            best_score = score
            title = line

    return title or "Untitled Paper"
