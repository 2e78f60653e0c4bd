"""
Extract mathematical formulas from section text.

This module provides functionality to:
- Detect numbered display equations, unmarked display equations and inline math
- Capture the prose surrounding each formula
- Assign deterministic, collision-free formula IDs
- Scan formula markup for variable symbols
"""

import bisect
import logging
import re
import string
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from pylatexenc.latex2text import LatexNodes2Text
from pylatexenc.latexwalker import LatexWalkerError

from .models import Formula, Section, Variable
from .sections import CHARS_PER_PAGE

logger = logging.getLogger(__name__)


@dataclass
class RawFormula:
    """
    A formula candidate before ID assignment.

    Attributes:
        latex: Formula markup without delimiters or number marker
        raw_latex: Markup as it appears in the text
        type: equation, inline, display or definition
        start: Character offset in the section content
        end: Offset just past the formula (and its number marker)
        first_line: Index of the line the formula starts on
        last_line: Index of the line the formula ends on
        number: Explicit equation number such as "(2.1)", if any
        context: Surrounding prose
    """
    latex: str
    raw_latex: str
    type: str
    start: int
    end: int
    first_line: int
    last_line: int
    number: Optional[str] = None
    context: str = ""


MATH_ENVIRONMENTS = {
    "equation",
    "equation*",
    "align",
    "align*",
    "gather",
    "gather*",
    "multline",
    "multline*",
    "eqnarray",
    "eqnarray*",
    "displaymath",
}

FONT_MACRO_PREFIXES = (
    "mathbb",
    "mathbf",
    "mathrm",
    "mathcal",
    "mathfrak",
    "mathsf",
    "mathit",
    "boldsymbol",
)

COMPLEX_MACROS = {
    "frac",
    "sqrt",
    "sum",
    "prod",
    "int",
    "oint",
    "lim",
    "sin",
    "cos",
    "tan",
    "log",
    "ln",
    "exp",
    "sup",
    "inf",
    "max",
    "min",
    "det",
    "operatorname",
}

OPERATOR_MACROS = {
    "times",
    "cdot",
    "pm",
    "mp",
    "leq",
    "geq",
    "le",
    "ge",
    "neq",
    "approx",
    "simeq",
    "sim",
    "propto",
    "to",
    "rightarrow",
    "leftarrow",
    "iff",
    "in",
    "subset",
    "subseteq",
    "oplus",
    "otimes",
}

DECORATION_MACROS = {
    "quad",
    "qquad",
    "hspace",
    "vspace",
    "left",
    "right",
}

TOKEN_PATTERN = re.compile(r"\\[A-Za-z]+|[A-Za-z]+|\d+|[^\s]")
OPERATOR_CHARS = set("=+-*/<>≤≥≈∑∫∂∇")
DECORATION_TOKENS = {"(", ")", "[", "]", ",", ";", ":", "."}

# Trailing "(n)" or "(n.m)" marker; capped at three digits so years are not read as numbers.
NUMBER_MARKER = re.compile(r"[ \t]*\((\d{1,3}(?:\.\d{1,3})?)\)[ \t]*$")
TAG_PATTERN = re.compile(r"\\tag\*?\{\s*([^{}]+?)\s*\}")
DEFINITION_OPERATORS = (":=", "\\triangleq", "\\coloneqq", "\\eqqcolon", "≜", "≔", "\\stackrel{\\text{def}}")

RELATION_PATTERN = re.compile(r"=|≤|≥|≈|<|>|∈|→|\\(?:leq|geq|le|ge|approx|in|propto|sim|to)\b")
PROSE_WORD_PATTERN = re.compile(r"[A-Za-z]{3,}")
ISOLATED_LETTER_PATTERN = re.compile(r"(?<![A-Za-z\\])[b-zB-HJ-Zα-ωΑ-Ω](?![A-Za-z])")
MATH_INDICATORS = ("\\", "_", "^", "=", "+", "<", ">", "≤", "≥", "≈", "∑", "∫", "∂", "∇")

DISPLAY_OPENERS = ("$$", "\\[", "\\begin")

MAX_MATH_LINE_LENGTH = 160
MIN_CONTEXT_WORDS = 3
PREVIOUS_LINE_WORDS = 40

# ---------------------------------------------------------------------------
# Variable symbol grammar
# ---------------------------------------------------------------------------

GREEK_LETTERS = (
    "alpha", "beta", "gamma", "delta", "epsilon", "varepsilon", "zeta", "eta",
    "theta", "vartheta", "iota", "kappa", "lambda", "mu", "nu", "xi", "pi",
    "varpi", "rho", "varrho", "sigma", "varsigma", "tau", "upsilon", "phi",
    "varphi", "chi", "psi", "omega", "Gamma", "Delta", "Theta", "Lambda", "Xi",
    "Pi", "Sigma", "Upsilon", "Phi", "Psi", "Omega",
)

FONT_VARIABLE_TYPES = {
    "mathbf": "vector",
    "boldsymbol": "vector",
    "bm": "vector",
    "mathbb": "set",
    "mathcal": "set",
    "mathfrak": "set",
    "mathsf": None,
    "mathit": None,
}

ACCENT_MARKS = {
    "hat": "\u0302",
    "widehat": "\u0302",
    "bar": "\u0304",
    "overline": "\u0305",
    "tilde": "\u0303",
    "widetilde": "\u0303",
    "vec": "\u20d7",
    "dot": "\u0307",
    "ddot": "\u0308",
}

RESERVED_NAMES = (
    "argmin", "argmax", "softmax", "sigmoid", "relu", "diag", "sin", "cos",
    "tan", "cot", "sec", "csc", "log", "exp", "min", "max", "lim", "sup",
    "inf", "arg", "det", "dim", "ker", "deg", "gcd", "mod", "sum", "prod",
    "int", "ln", "tr",
)

_DROPPED_MACROS = re.compile(r"\\(?:label|tag|ref|eqref|cite|begin|end)\*?\s*\{[^{}]*\}")
_DIFFERENTIAL = re.compile(r"\\(?:mathrm|text|operatorname)\s*\{\s*d\s*\}")
_TEXT_MACROS = re.compile(
    r"\\(?:text|textrm|textit|textbf|textsf|mathrm|operatorname\*?|mbox|mathop)\s*\{([^{}]*)\}"
)

_DECORATION_NAMES = "|".join(
    sorted(set(FONT_VARIABLE_TYPES) | set(ACCENT_MARKS), key=len, reverse=True)
)
_LETTER_CLASS = "A-Za-z\u0391-\u03a9\u03b1-\u03c9\u03d1\u03d5\u03f5"
SYMBOL_PATTERN = re.compile(
    rf"\\(?P<deco>{_DECORATION_NAMES})(?![A-Za-z])\s*"
    rf"(?:\{{\s*(?P<body>\\[A-Za-z]+|[A-Za-z])\s*\}}|(?P<bare>[A-Za-z])(?![A-Za-z]))"
    rf"|\\(?P<macro>[A-Za-z]+)"
    rf"|(?P<word>[{_LETTER_CLASS}]+)"
)
_SCRIPT_ATOM = re.compile(r"\\[A-Za-z]+|[A-Za-z0-9]")
_SKIPPED_SUPERSCRIPTS = {"T", "\\top", "\\intercal", "\\prime", "*", "\\ast"}

_LATEX_TO_TEXT = LatexNodes2Text()


def _latex_to_unicode(macro: str) -> str:
    try:
        text = _LATEX_TO_TEXT.latex_to_text(macro).strip()
    except (LatexWalkerError, ValueError):
        return macro.lstrip("\\")
    if len(text) != 1:
        return macro.lstrip("\\")
    return text


GREEK_SYMBOLS: Dict[str, str] = {name: _latex_to_unicode("\\" + name) for name in GREEK_LETTERS}


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


def detect_formulas(content: str) -> List[RawFormula]:
    """
    Detect formula candidates in one section's text.

    Display blocks ($$...$$, \\[...\\], math environments) are found first,
    then lines carrying a trailing equation number, then inline math, then
    isolated math-only lines. Spans claimed by an earlier shape are masked
    out for the later ones, so the outermost formula wins.

    Args:
        content: Section text

    Returns:
        Formula candidates in document order, without IDs
    """
    lines = content.split("\n")
    line_starts = _line_offsets(lines)
    found: List[RawFormula] = []

    for entry in _non_overlapping(_extract_display_with_regex(content)):
        raw_latex = entry["raw_latex"]
        formula = entry["formula"]
        end = entry["end"]
        number = None

        tag = TAG_PATTERN.search(formula)
        if tag:
            number = f"({tag.group(1)})"
            formula = TAG_PATTERN.sub("", formula).strip()

        line_end = content.find("\n", end)
        line_end = len(content) if line_end == -1 else line_end
        marker = NUMBER_MARKER.match(content, end, line_end)
        if marker and marker.end() == line_end:
            number = number or f"({marker.group(1)})"
            end = line_end

        if not number and _is_trivial_formula(formula):
            continue

        found.append(
            RawFormula(
                latex=formula,
                raw_latex=raw_latex,
                type="equation" if number else _display_type(formula),
                start=entry["start"],
                end=end,
                first_line=_line_index(line_starts, entry["start"]),
                last_line=_line_index(line_starts, max(entry["start"], end - 1)),
                number=number,
            )
        )

    masked = _mask(content, [(f.start, f.end) for f in found])
    masked_lines = masked.split("\n")

    numbered_spans: List[Tuple[int, int]] = []
    for index, masked_line in enumerate(masked_lines):
        marker = NUMBER_MARKER.search(masked_line)
        if not marker:
            continue
        body = masked_line[: marker.start()].strip()
        if not body or len(body) > MAX_MATH_LINE_LENGTH or not _looks_mathematical(body):
            continue
        latex = _strip_inline_delimiters(body)
        start = line_starts[index] + masked_line.index(body)
        end = line_starts[index] + len(masked_line)
        found.append(
            RawFormula(
                latex=latex,
                raw_latex=lines[index].strip(),
                type="equation",
                start=start,
                end=end,
                first_line=index,
                last_line=index,
                number=f"({marker.group(1)})",
            )
        )
        numbered_spans.append((start, end))

    masked = _mask(masked, numbered_spans)

    inline_spans: List[Tuple[int, int]] = []
    for entry in _non_overlapping(_extract_inline_with_regex(masked)):
        if _is_trivial_formula(entry["formula"]):
            continue
        found.append(
            RawFormula(
                latex=entry["formula"],
                raw_latex=entry["raw_latex"],
                type="inline",
                start=entry["start"],
                end=entry["end"],
                first_line=_line_index(line_starts, entry["start"]),
                last_line=_line_index(line_starts, entry["end"] - 1),
            )
        )
        inline_spans.append((entry["start"], entry["end"]))

    masked = _mask(masked, inline_spans)

    for index, masked_line in enumerate(masked.split("\n")):
        candidate = masked_line.strip()
        if candidate != lines[index].strip():
            # Part of this line already belongs to another formula.
            continue
        if not _is_math_only_line(candidate) or _is_trivial_formula(candidate):
            continue
        start = line_starts[index] + masked_line.index(candidate)
        found.append(
            RawFormula(
                latex=candidate,
                raw_latex=candidate,
                type=_display_type(candidate),
                start=start,
                end=start + len(candidate),
                first_line=index,
                last_line=index,
            )
        )

    found.sort(key=lambda f: (f.start, f.end))
    found = _deduplicate(found)

    formula_lines: Set[int] = set()
    for raw in found:
        formula_lines.update(range(raw.first_line, raw.last_line + 1))
    for raw in found:
        raw.context = _surrounding_prose(content, lines, line_starts, raw, formula_lines)

    return found


def assign_formula_ids(raw_formulas: Sequence[RawFormula]) -> List[str]:
    """
    Assign IDs to every formula candidate of one document.

    Numbered formulas get "eq<n>" ("eq2_1" for "(2.1)") and are reserved
    first. Inline formulas get "inline_<k>" and unmarked display formulas
    "eq<k>", each from its own counter. A collision is resolved with a
    letter suffix ("eq1b"), so IDs never repeat.

    Args:
        raw_formulas: All candidates of the document in document order

    Returns:
        IDs aligned with raw_formulas
    """
    taken: Set[str] = set()
    ids: List[Optional[str]] = [None] * len(raw_formulas)

    for index, raw in enumerate(raw_formulas):
        if raw.number:
            ids[index] = _claim(_number_id(raw.number), taken)

    inline_counter = 0
    display_counter = 0
    for index, raw in enumerate(raw_formulas):
        if ids[index] is not None:
            continue
        if raw.type == "inline":
            inline_counter += 1
            ids[index] = _claim(f"inline_{inline_counter}", taken)
        else:
            display_counter += 1
            ids[index] = _claim(f"eq{display_counter}", taken)

    return [formula_id for formula_id in ids if formula_id is not None]


def extract_document_formulas(
    sections: Sequence[Section],
    include_inline: bool = True,
    numbered_only: bool = False,
) -> List[Formula]:
    """
    Extract formulas from every section of a document.

    IDs are assigned over the complete candidate list before the inline and
    numbered-only filters are applied, so a formula keeps its ID whatever
    filters are used. Roles are left as "unknown" for the classifier.

    Args:
        sections: Sections in document order
        include_inline: Keep inline formulas
        numbered_only: Keep only formulas with an explicit number

    Returns:
        List of Formula objects in document order
    """
    candidates: List[Tuple[Section, RawFormula]] = []
    for section in sections:
        for raw in detect_formulas(section.content):
            candidates.append((section, raw))

    ids = assign_formula_ids([raw for _, raw in candidates])

    formulas: List[Formula] = []
    for formula_id, (section, raw) in zip(ids, candidates):
        if not include_inline and raw.type == "inline":
            continue
        if numbered_only and not raw.number:
            continue
        formulas.append(
            Formula(
                id=formula_id,
                latex=raw.latex,
                type=raw.type,
                number=raw.number,
                context=raw.context,
                section=section.name,
                page_number=_page_number(section, raw.start),
                variables=extract_variables(raw.latex),
            )
        )

    logger.debug(
        "Extracted %d formulas (%d candidates) from %d sections",
        len(formulas),
        len(candidates),
        len(sections),
    )
    return formulas


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


def extract_variables(latex: str) -> List[Variable]:
    """
    Scan formula markup for variable symbols.

    Recognized symbols are single Latin or Greek letters, Greek macros,
    font-decorated letters (\\mathbf{x}) and accented letters (\\hat{x}),
    each with an optional subscript. Multi-letter words, operator names and
    \\text{...} bodies are not variables.

    Args:
        latex: Formula markup

    Returns:
        One Variable per distinct symbol, in order of first occurrence

    Examples:
        >>> [v.symbol for v in extract_variables(r"L(\\theta) = \\sum_i (y_i - f(x_i))^2")]
        ['L', 'θ', 'y_i', 'f', 'x_i']
    """
    expr = _prepare_for_variables(latex)
    variables: List[Variable] = []
    seen: Set[str] = set()

    pos = 0
    while True:
        match = SYMBOL_PATTERN.search(expr, pos)
        if not match:
            break
        pos = match.end()

        base = _symbol_base(match)
        if base is None:
            # Operator and word subscripts ("\sum_i", "max_k") are not variables
            pos = _skip_scripts(expr, pos)
            continue
        symbol, var_type = base

        subscript, pos_after_sub = _read_script(expr, pos, "_")
        if subscript is not None:
            sub_text = _script_text(subscript)
            if sub_text:
                symbol = f"{symbol}_{sub_text}"
            pos = pos_after_sub

        while pos < len(expr) and expr[pos] == "'":
            symbol += "'"
            pos += 1

        superscript, pos_after_sup = _read_script(expr, pos, "^")
        if superscript is not None and superscript.strip() in _SKIPPED_SUPERSCRIPTS:
            pos = pos_after_sup

        if var_type is None:
            var_type = _infer_variable_type(symbol, expr, pos)

        if symbol in seen:
            continue
        seen.add(symbol)
        variables.append(
            Variable(
                symbol=symbol,
                latex=expr[match.start():pos].strip(),
                type=var_type,
            )
        )

    return variables


def normalize_latex(latex: str) -> str:
    """Collapse whitespace and sizing macros so equal formulas compare equal."""
    normalized = re.sub(r"\\(?:left|right|big|Big|bigg|Bigg)\b", "", latex)
    return re.sub(r"\s+", " ", normalized).strip()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _extract_inline_with_regex(tex_content: str) -> List[Dict]:
    entries: List[Dict] = []

    patterns = [
        re.compile(r"(?<![\\$])\$([^$\n]+?)(?<!\\)\$(?!\$)"),
        re.compile(r"\\\((.+?)\\\)"),
    ]

    for pattern in patterns:
        for match in pattern.finditer(tex_content):
            formula = match.group(1).strip()
            if not formula:
                continue
            start, end = match.span()
            entries.append(
                {
                    "formula": formula,
                    "raw_latex": match.group(0),
                    "start": start,
                    "end": end,
                }
            )

    return entries


def _extract_display_with_regex(tex_content: str) -> List[Dict]:
    entries: List[Dict] = []

    display_patterns = [
        re.compile(r"(?<!\\)\$\$(.+?)(?<!\\)\$\$", re.DOTALL),
        re.compile(r"\\\[(.+?)\\\]", re.DOTALL),
    ]

    for pattern in display_patterns:
        for match in pattern.finditer(tex_content):
            formula = match.group(1).strip()
            if not formula:
                continue
            start, end = match.span()
            entries.append(
                {
                    "formula": formula,
                    "raw_latex": match.group(0),
                    "start": start,
                    "end": end,
                }
            )

    env_group = "|".join(re.escape(env) for env in sorted(MATH_ENVIRONMENTS))
    env_pattern = re.compile(
        rf"\\begin\{{({env_group})\}}(.*?)\\end\{{\1\}}", re.DOTALL
    )

    for match in env_pattern.finditer(tex_content):
        formula = match.group(2).strip()
        if not formula:
            continue
        start, end = match.span()
        entries.append(
            {
                "formula": formula,
                "raw_latex": match.group(0),
                "start": start,
                "end": end,
            }
        )

    return entries


def _non_overlapping(entries: List[Dict]) -> List[Dict]:
    # Outermost first: earliest start, then longest span.
    ordered = sorted(entries, key=lambda e: (e["start"], -e["end"]))
    kept: List[Dict] = []
    max_end = -1
    for entry in ordered:
        if entry["start"] < max_end:
            continue
        kept.append(entry)
        max_end = entry["end"]
    return kept


def _mask(text: str, spans: Sequence[Tuple[int, int]]) -> str:
    chars = list(text)
    for start, end in spans:
        for i in range(start, min(end, len(chars))):
            if chars[i] != "\n":
                chars[i] = " "
    return "".join(chars)


def _line_offsets(lines: Sequence[str]) -> List[int]:
    offsets = []
    position = 0
    for line in lines:
        offsets.append(position)
        position += len(line) + 1
    return offsets


def _line_index(line_starts: Sequence[int], position: int) -> int:
    return max(0, bisect.bisect_right(line_starts, position) - 1)


def _display_type(latex: str) -> str:
    if any(op in latex for op in DEFINITION_OPERATORS):
        return "definition"
    return "display"


def _number_id(number: str) -> str:
    inner = number.strip().strip("()").strip()
    inner = re.sub(r"[^0-9A-Za-z]+", "_", inner).strip("_")
    return f"eq{inner}"


def _suffixes() -> Iterator[str]:
    for letter in string.ascii_lowercase[1:]:
        yield letter
    n = 2
    while True:
        yield f"z{n}"
        n += 1


def _claim(base: str, taken: Set[str]) -> str:
    candidate = base
    if candidate in taken:
        for suffix in _suffixes():
            candidate = f"{base}{suffix}"
            if candidate not in taken:
                break
    taken.add(candidate)
    return candidate


def _deduplicate(formulas: List[RawFormula]) -> List[RawFormula]:
    seen: Set[Tuple[str, Optional[str]]] = set()
    unique: List[RawFormula] = []
    for raw in formulas:
        key = (normalize_latex(raw.latex), raw.number)
        if key in seen:
            continue
        seen.add(key)
        unique.append(raw)
    return unique


def _looks_mathematical(text: str) -> bool:
    if any(indicator in text for indicator in MATH_INDICATORS):
        return True
    return bool(ISOLATED_LETTER_PATTERN.search(text))


def _is_math_only_line(line: str) -> bool:
    if not line or len(line) > MAX_MATH_LINE_LENGTH:
        return False
    if not RELATION_PATTERN.search(line):
        return False
    prose_words = [
        word for word in PROSE_WORD_PATTERN.findall(_prepare_for_variables(line))
        if word.lower() not in RESERVED_NAMES
    ]
    return len(prose_words) <= 1


def _strip_inline_delimiters(text: str) -> str:
    text = re.sub(r"(?<!\\)\$", "", text)
    text = text.replace("\\(", "").replace("\\)", "")
    return re.sub(r"\s+", " ", text).strip()


def _line_prose(text: str) -> str:
    text = NUMBER_MARKER.sub("", text)
    text = re.sub(r"(?<!\\)\$+", " ", text)
    text = re.sub(r"\\[\[\]()]", " ", text)
    return _clean_context(text)


def _surrounding_prose(
    content: str,
    lines: Sequence[str],
    line_starts: Sequence[int],
    raw: RawFormula,
    formula_lines: Set[int],
) -> str:
    if raw.raw_latex.startswith(DISPLAY_OPENERS):
        # Prose on the formula's own lines, outside the display block
        line_start = line_starts[raw.first_line]
        line_end = line_starts[raw.last_line] + len(lines[raw.last_line])
        before = content[line_start:raw.start]
        after = content[raw.end:line_end]
        own = _line_prose(f"{before} {after}")
    else:
        own = _line_prose(lines[raw.first_line])

    if len(PROSE_WORD_PATTERN.findall(own)) >= MIN_CONTEXT_WORDS:
        return own

    previous = raw.first_line - 1
    while previous >= 0 and not lines[previous].strip():
        previous -= 1
    if previous < 0 or previous in formula_lines:
        return own

    earlier = _last_words(_line_prose(lines[previous]), PREVIOUS_LINE_WORDS)
    return _clean_context(f"{earlier} {own}")


def _page_number(section: Section, offset: int) -> int:
    first_page, last_page = section.page_range
    return min(last_page, first_page + offset // CHARS_PER_PAGE)


def _prepare_for_variables(latex: str) -> str:
    expr = _DROPPED_MACROS.sub(" ", latex)
    expr = _DIFFERENTIAL.sub(" ", expr)
    expr = _TEXT_MACROS.sub(lambda m: f" {m.group(1)} ", expr)
    return expr


def _symbol_base(match: "re.Match") -> Optional[Tuple[str, Optional[str]]]:
    deco = match.group("deco")
    if deco:
        body = match.group("body") or match.group("bare")
        if body.startswith("\\"):
            name = body[1:]
            if name not in GREEK_SYMBOLS:
                return None
            letter = GREEK_SYMBOLS[name]
        else:
            letter = body
        if deco in ACCENT_MARKS:
            return letter + ACCENT_MARKS[deco], None
        return letter, FONT_VARIABLE_TYPES[deco]

    macro = match.group("macro")
    if macro:
        if macro in GREEK_SYMBOLS:
            return GREEK_SYMBOLS[macro], None
        return None

    word = match.group("word")
    if len(word) == 1:
        return word, None
    # "logp" or "expx" as flattened by PDF text extraction
    for name in RESERVED_NAMES:
        if word.startswith(name) and len(word) == len(name) + 1:
            return word[-1], None
    return None


def _read_script(expr: str, pos: int, marker: str) -> Tuple[Optional[str], int]:
    i = pos
    while i < len(expr) and expr[i] == " ":
        i += 1
    if i >= len(expr) or expr[i] != marker:
        return None, pos
    i += 1
    while i < len(expr) and expr[i] == " ":
        i += 1
    if i >= len(expr):
        return None, pos
    if expr[i] == "{":
        closing = _find_matching_brace(expr, i)
        if closing is None:
            return None, pos
        return expr[i + 1:closing], closing + 1
    atom = _SCRIPT_ATOM.match(expr, i)
    if atom:
        return atom.group(0), atom.end()
    return None, pos


def _skip_scripts(expr: str, pos: int) -> int:
    for marker in ("_", "^", "_"):
        _, pos = _read_script(expr, pos, marker)
    return pos


def _script_text(script: str) -> str:
    def replace_macro(match: "re.Match") -> str:
        name = match.group(1)
        return GREEK_SYMBOLS.get(name, name)

    text = re.sub(r"\\([A-Za-z]+)", replace_macro, script)
    return re.sub(r"[\s{}\\]", "", text)


def _infer_variable_type(symbol: str, expr: str, pos: int) -> str:
    rest = expr[pos:].lstrip()
    if rest.startswith("(") or rest.startswith("\\left("):
        return "function"
    letter = symbol[0]
    if letter.isupper():
        return "matrix"
    if letter.islower():
        return "scalar"
    return "unknown"


def _clean_context(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _last_words(fragment: str, count: int) -> str:
    if count <= 0 or not fragment:
        return ""
    tokens = re.findall(r"\S+", fragment)
    return " ".join(tokens[-count:])


def _is_trivial_formula(formula: str) -> bool:
    if not formula:
        return True

    stripped = formula.strip()
    if not stripped:
        return True

    prepared = _prepare_formula_for_analysis(stripped)
    if not prepared:
        return True

    tokens = [
        tok for tok in TOKEN_PATTERN.findall(prepared) if tok and not tok.isspace()
    ]

    if not tokens:
        return True

    symbol_count = 0
    distinct_symbols: Set[str] = set()
    numeric_tokens = 0
    has_operator = False
    has_complex_macro = False

    i = 0
    while i < len(tokens):
        token = tokens[i]

        if token in DECORATION_TOKENS:
            i += 1
            continue

        if token.startswith("\\"):
            name = token[1:]
            lower_name = name.lower()

            if lower_name in OPERATOR_MACROS:
                has_operator = True
                i += 1
                continue

            if lower_name in DECORATION_MACROS:
                i += 1
                continue

            if lower_name in COMPLEX_MACROS:
                has_complex_macro = True

            if any(lower_name.startswith(prefix) for prefix in FONT_MACRO_PREFIXES):
                if (
                    i + 1 < len(tokens)
                    and len(tokens[i + 1]) == 1
                    and tokens[i + 1].isalpha()
                ):
                    symbol_count += 1
                    distinct_symbols.add(f"{lower_name}:{tokens[i + 1]}")
                    i += 2
                    continue

            symbol_count += 1
            distinct_symbols.add(lower_name)
            i += 1
            continue

        if token.isdigit():
            numeric_tokens += 1
            i += 1
            continue

        if token.isalpha():
            symbol_count += len(token)
            distinct_symbols.update(token)
            i += 1
            continue

        if any(ch in OPERATOR_CHARS for ch in token):
            has_operator = True
        i += 1

    if symbol_count == 0:
        return True

    if numeric_tokens > 0:
        meaningful_density = symbol_count / (symbol_count + numeric_tokens)
        if meaningful_density < 0.25:
            return True

    if has_operator or has_complex_macro:
        return False

    if symbol_count <= 1 and len(distinct_symbols) <= 1:
        return True

    return False


def _prepare_formula_for_analysis(formula: str) -> str:
    content = re.sub(r"\\(left|right)\b", "", formula)
    content = _remove_sub_supers(content)
    content = content.replace("{", "").replace("}", "")
    return content.strip()


def _remove_sub_supers(expr: str) -> str:
    result: List[str] = []
    i = 0
    length = len(expr)
    while i < length:
        ch = expr[i]
        if ch in ("_", "^"):
            i += 1
            if i < length and expr[i] == "{":
                closing = _find_matching_brace(expr, i)
                if closing is None:
                    break
                i = closing + 1
            else:
                i += 1
            continue
        result.append(ch)
        i += 1
    return "".join(result)


def _find_matching_brace(expr: str, start: int) -> Optional[int]:
    if start >= len(expr) or expr[start] != "{":
        return None

    depth = 0
    for idx in range(start, len(expr)):
        ch = expr[idx]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return idx
            if depth < 0:
                return None
    return None
