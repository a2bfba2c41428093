"""
LexFill - Placeholder Locator
=============================
Finds the literal text of a placeholder inside raw document text and
substitutes filled values back into it.

Strategies, tried in order (the first one with a hit wins):

    marker  the label wrapped in a placeholder marker: [Label], {Label},
            {{Label}}, <Label>, <<Label>>
    blank   an underscore (or dot) run close to the bare label
    fuzzy   the marker token whose inner text is most similar to the label
    label   the bare label, word-bounded (located, never replaced)
"""

import re
from dataclasses import asdict, dataclass
from difflib import SequenceMatcher
from typing import Any, Iterable, List, Optional, Sequence, Tuple

MARKER_TOKEN_RE = re.compile(
    r"\{\{\s*([^{}\n]{1,120}?)\s*\}\}"
    r"|<<\s*([^<>\n]{1,120}?)\s*>>"
    r"|\[\s*([^\[\]\n]{1,120}?)\s*\]"
    r"|\{\s*([^{}\n]{1,120}?)\s*\}"
    r"|<\s*([^<>\n]{1,120}?)\s*>"
)

BLANK_RE = re.compile(r"_{3,}|\.{5,}|…{2,}")
BLANK_CHARS = "_.…"
WORD_RE = re.compile(r"[A-Za-z0-9]+")

MARKER = "marker"
BLANK = "blank"
FUZZY = "fuzzy"
LABEL = "label"
PATTERN = "pattern"

ALL_STRATEGIES = (MARKER, BLANK, FUZZY, LABEL)
FILLABLE_STRATEGIES = (MARKER, BLANK, FUZZY)

STRATEGY_SCORES = {
    MARKER: 1.0,
    BLANK: 0.9,
    LABEL: 0.5,
    PATTERN: 1.0,
}


@dataclass(frozen=True)
class PlaceholderLocation:
    """One occurrence of a placeholder in the document text."""

    label: str
    pattern: str
    start: int
    end: int
    strategy: str
    score: float
    context: str

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Helpers
# =============================================================================

def _label_words(label: str) -> List[str]:
    return WORD_RE.findall(label or "")


def _label_body(label: str) -> Optional[str]:
    """Regex for the label words separated by any non-word run."""
    words = _label_words(label)
    if not words:
        return None
    return r"[\W_]+".join(re.escape(word) for word in words)


def _comparable(text: str) -> str:
    return " ".join(word.lower() for word in WORD_RE.findall(text or ""))


def _context(text: str, start: int, end: int, padding: int) -> str:
    return text[max(0, start - padding):min(len(text), end + padding)]


def _token_inner(match: re.Match) -> str:
    return next(group for group in match.groups() if group is not None)


def _location(
    text: str,
    label: str,
    start: int,
    end: int,
    strategy: str,
    score: float,
    padding: int,
) -> PlaceholderLocation:
    return PlaceholderLocation(
        label=label,
        pattern=text[start:end],
        start=start,
        end=end,
        strategy=strategy,
        score=round(score, 4),
        context=_context(text, start, end, padding),
    )


# =============================================================================
# Strategies
# =============================================================================

def _marker_matches(text: str, label: str) -> List[Tuple[int, int, float]]:
    body = _label_body(label)
    if body is None:
        return []
    marker_re = re.compile(
        r"\{\{\s*" + body + r"\s*\}\}"
        r"|<<\s*" + body + r"\s*>>"
        r"|\[\s*" + body + r"\s*\]"
        r"|\{\s*" + body + r"\s*\}"
        r"|<\s*" + body + r"\s*>",
        re.IGNORECASE,
    )
    return [(m.start(), m.end(), STRATEGY_SCORES[MARKER]) for m in marker_re.finditer(text)]


def _bare_label_matches(text: str, label: str) -> List[re.Match]:
    body = _label_body(label)
    if body is None:
        return []
    label_re = re.compile(r"(?<![A-Za-z0-9])" + body + r"(?![A-Za-z0-9])", re.IGNORECASE)
    return list(label_re.finditer(text))


def _run_start(text: str, pos: int) -> int:
    """Start of the blank run that covers `pos` (or `pos` itself)."""
    while pos > 0 and text[pos - 1] in BLANK_CHARS:
        pos -= 1
    return pos


def _blank_matches(text: str, label: str, padding: int) -> List[Tuple[int, int, float]]:
    """Blank runs that start or end within `padding` of a bare label; always the whole run."""
    spans = []
    seen = set()
    for match in _bare_label_matches(text, label):
        after = BLANK_RE.search(text, match.end())
        if after is not None and after.start() <= match.end() + padding:
            span = (after.start(), after.end())
        else:
            window_start = max(0, match.start() - padding)
            before = [
                run for run in BLANK_RE.finditer(text, _run_start(text, window_start), match.start())
                if run.end() >= window_start
            ]
            if not before:
                continue
            span = (before[-1].start(), before[-1].end())

        if span not in seen:
            seen.add(span)
            spans.append((span[0], span[1], STRATEGY_SCORES[BLANK]))
    return sorted(spans)


def _fuzzy_matches(text: str, label: str, threshold: float) -> List[Tuple[int, int, float]]:
    target = _comparable(label)
    if not target:
        return []

    scored = []
    for match in MARKER_TOKEN_RE.finditer(text):
        inner = _comparable(_token_inner(match))
        if not inner:
            continue
        ratio = SequenceMatcher(None, target, inner).ratio()
        if ratio > threshold:
            scored.append((match.start(), match.end(), ratio, inner))

    if not scored:
        return []

    # Every occurrence of the best matching token text
    best = max(scored, key=lambda item: item[2])
    return [(start, end, ratio) for start, end, ratio, inner in scored if inner == best[3]]


def _label_matches(text: str, label: str) -> List[Tuple[int, int, float]]:
    return [(m.start(), m.end(), STRATEGY_SCORES[LABEL]) for m in _bare_label_matches(text, label)]


def _run_strategy(
    strategy: str,
    text: str,
    label: str,
    padding: int,
    fuzzy_threshold: float,
) -> List[Tuple[int, int, float]]:
    if strategy == MARKER:
        return _marker_matches(text, label)
    if strategy == BLANK:
        return _blank_matches(text, label, padding)
    if strategy == FUZZY:
        return _fuzzy_matches(text, label, fuzzy_threshold)
    if strategy == LABEL:
        return _label_matches(text, label)
    raise ValueError(f"Unknown locate strategy: {strategy}")


# =============================================================================
# Public API
# =============================================================================

def iter_placeholder_locations(
    text: str,
    label: str,
    padding: int = 40,
    fuzzy_threshold: float = 0.75,
    strategies: Sequence[str] = ALL_STRATEGIES,
) -> List[PlaceholderLocation]:
    """
    Every non-overlapping occurrence of `label`, found by the first strategy
    that produces a hit. Returns an empty list when nothing matches.
    """
    if not text or not label:
        return []

    for strategy in strategies:
        matches = _run_strategy(strategy, text, label, padding, fuzzy_threshold)
        if matches:
            return [
                _location(text, label, start, end, strategy, score, padding)
                for start, end, score in matches
            ]
    return []


def locate_placeholder(
    text: str,
    label: str,
    padding: int = 40,
    fuzzy_threshold: float = 0.75,
) -> Optional[PlaceholderLocation]:
    """
    First occurrence of a placeholder in `text`, or None.

    Args:
        text: Raw extracted document text
        label: Placeholder label as produced by extraction
        padding: Context characters kept on each side (also the blank search window)
        fuzzy_threshold: difflib ratio the fuzzy strategy must exceed
    """
    locations = iter_placeholder_locations(text, label, padding, fuzzy_threshold)
    return locations[0] if locations else None


def find_placeholder_tokens(text: str) -> List[str]:
    """Distinct marker tokens ([X], {{X}}, ...) in document order."""
    tokens = []
    seen = set()
    for match in MARKER_TOKEN_RE.finditer(text or ""):
        token = match.group(0)
        if token not in seen:
            seen.add(token)
            tokens.append(token)
    return tokens


def _field_value(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def is_marker_pattern(pattern: Optional[str]) -> bool:
    """True for a single marker token with words inside, e.g. "[COMPANY]" but not "[____]"."""
    if not pattern:
        return False
    match = MARKER_TOKEN_RE.fullmatch(pattern.strip())
    return match is not None and bool(_comparable(_token_inner(match)))


def _pattern_spans(text: str, pattern: str) -> List[Tuple[int, int]]:
    return [(m.start(), m.end()) for m in re.finditer(re.escape(pattern), text)]


def fill_text(
    text: str,
    fields: Iterable[Any],
    padding: int = 40,
    fuzzy_threshold: float = 0.75,
) -> str:
    """
    Substitute filled placeholder values into `text`.

    A stored marker `pattern` ("[COMPANY]") is used first; otherwise, and
    always for blank patterns, the label is located with the marker, blank
    and fuzzy strategies. Bare label occurrences are
    never replaced. Overlapping spans go to the earliest start, then the
    longest span.
    """
    if not text:
        return text

    spans: List[Tuple[int, int, str]] = []
    for item in fields or []:
        label = _field_value(item, "label")
        value = _field_value(item, "value")
        if not label or value is None or not str(value).strip():
            continue

        pattern = _field_value(item, "pattern")
        # Blank runs look alike; only a marker token identifies its field
        found = _pattern_spans(text, pattern) if is_marker_pattern(pattern) else []
        if not found:
            found = [
                (location.start, location.end)
                for location in iter_placeholder_locations(
                    text, label, padding, fuzzy_threshold, FILLABLE_STRATEGIES
                )
            ]
        spans.extend((start, end, str(value).strip()) for start, end in found)

    spans.sort(key=lambda span: (span[0], -(span[1] - span[0])))

    parts = []
    cursor = 0
    for start, end, value in spans:
        if start < cursor:
            continue
        parts.append(text[cursor:start])
        parts.append(value)
        cursor = end
    parts.append(text[cursor:])
    return "".join(parts)


def locate_fields(
    text: str,
    labels: Iterable[str],
    padding: int = 40,
    fuzzy_threshold: float = 0.75,
) -> dict:
    """label -> first fillable location, for labels that could be located."""
    result = {}
    for label in labels:
        locations = iter_placeholder_locations(
            text, label, padding, fuzzy_threshold, FILLABLE_STRATEGIES
        )
        if locations:
            result[label] = locations[0]
    return result
