"""
Local heuristic compiler -- deterministic prompt -> CompiledRule, no network.

Used as the authoring-time fallback when the remote compiler is unavailable
and as a correctness baseline.  The behaviour is a pure function of the
prompt and the pattern table below; bump PATTERN_TABLE_VERSION whenever the
table changes so compiled rules can be traced back to the table that
produced them.

Categories run in a fixed order.  Each category yields at most one predicate
(first match wins); predicates from different categories accumulate with an
implicit AND.  When nothing matches the compiler returns ``None`` -- "could
not parse" -- which is different from an empty CompiledRule ("no filter").
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable

from src.rules.model import CompiledFilter, CompiledRule, Operator
from src.rules.flattener import summarize_filters
from src.core.logging import get_logger

logger = get_logger(__name__)

PATTERN_TABLE_VERSION = "2"

# ── Fields ───────────────────────────────────────────────

DEFAULT_METRIC_FIELD = "retail"
DESCRIPTION_FIELD = "item_description"
ORIGIN_STATE_FIELD = "origin_state"
DESTINATION_STATE_FIELD = "destination_state"
CARRIER_FIELD = "carrier_name"
STATUS_FIELD = "status_name"
MODE_FIELD = "mode_name"

# ── Vocabularies ─────────────────────────────────────────

# Unit written right after the number ("over 500 miles")
_UNIT_FIELDS: list[tuple[str, str]] = [
    (r"lbs?|pounds?", "total_weight"),
    (r"mi|miles?", "miles"),
]

# Field keywords anywhere in the prompt, checked in order
_FIELD_KEYWORDS: list[tuple[str, str]] = [
    (r"\bweight\b|\bweighing\b|\bheav(?:y|ier)\b", "total_weight"),
    (r"\bmiles?\b|\bdistance\b|\bmileage\b", "miles"),
]

# Longest phrases first so "drawer system" wins over "drawer"
PRODUCT_KEYWORDS: list[str] = ["drawer system", "cargoglide", "toolbox", "drawer"]

CARRIER_VOCABULARY: dict[str, str] = {
    "fedex freight": "FedEx Freight",
    "fedex": "FedEx Freight",
    "xpo logistics": "XPO Logistics",
    "xpo": "XPO Logistics",
    "old dominion": "Old Dominion",
    "odfl": "Old Dominion",
    "estes": "Estes Express",
    "saia": "Saia",
    "r+l": "R+L Carriers",
    "r&l": "R+L Carriers",
}

STATUS_VOCABULARY: dict[str, str] = {
    "delivered": "Delivered",
    "in transit": "In Transit",
    "picked up": "Picked Up",
    "cancelled": "Cancelled",
    "canceled": "Cancelled",
}

MODE_VOCABULARY: dict[str, str] = {
    "less than truckload": "LTL",
    "ltl": "LTL",
    "full truckload": "TL",
    "truckload": "TL",
    "ftl": "TL",
    "tl": "TL",
    "partial": "Partial",
}

US_STATE_CODES: frozenset[str] = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL", "GA", "HI",
    "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN",
    "MS", "MO", "MT", "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH",
    "OK", "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA",
    "WV", "WI", "WY",
})

# ── Regexes ──────────────────────────────────────────────

_NUMBER = r"\$?\s*(\d+(?:,\d{3})*(?:\.\d+)?)"

_RANGE_RE = re.compile(rf"\bbetween\s*{_NUMBER}\s*(?:and|to|-)\s*{_NUMBER}")
_LOWER_BOUND_RE = re.compile(rf"\b(?:over|greater than|more than|above)\s*{_NUMBER}")
_UPPER_BOUND_RE = re.compile(rf"\b(?:under|less than|below)\s*{_NUMBER}")

# Keywords are case-insensitive, the state code itself must be upper case
_ORIGIN_RE = re.compile(r"(?i:\b(?:from|origin(?:\s+state)?)\s+)([A-Z]{2})\b")
_DESTINATION_RE = re.compile(r"(?i:\b(?:to|into|destination(?:\s+state)?)\s+)([A-Z]{2})\b")

_QUOTED_RE = re.compile(r"\"([^\"]+)\"|\u201c([^\u201d]+)\u201d|(?:^|(?<=\s))'([^']+)'")


def _vocabulary_re(vocabulary: dict[str, str] | list[str]) -> re.Pattern[str]:
    terms = sorted(vocabulary, key=len, reverse=True)
    alternation = "|".join(re.escape(t) for t in terms)
    return re.compile(rf"(?<![\w+&])(?:{alternation})(?![\w+&])")


_PRODUCT_RE = _vocabulary_re(PRODUCT_KEYWORDS)
_CARRIER_RE = _vocabulary_re(CARRIER_VOCABULARY)
_STATUS_RE = _vocabulary_re(STATUS_VOCABULARY)
_MODE_RE = _vocabulary_re(MODE_VOCABULARY)


# ── Helpers ──────────────────────────────────────────────

def _to_number(text: str) -> int | float:
    value = float(text.replace(",", ""))
    return int(value) if value.is_integer() else value


def metric_field_for(lower: str, number_end: int) -> str:
    """Pick the numeric field a comparison binds to.

    A unit right after the number wins, then a field keyword anywhere in
    the prompt, then the default metric.
    """
    tail = lower[number_end:number_end + 12]
    for pattern, field in _UNIT_FIELDS:
        if re.match(rf"\s*(?:{pattern})\b", tail):
            return field
    for pattern, field in _FIELD_KEYWORDS:
        if re.search(pattern, lower):
            return field
    return DEFAULT_METRIC_FIELD


def _unique(values: list[str]) -> list[str]:
    seen: list[str] = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return seen


def _eq_or_in(field: str, values: list[str]) -> CompiledFilter | None:
    if not values:
        return None
    if len(values) == 1:
        return CompiledFilter(field=field, operator=Operator.eq, value=values[0])
    return CompiledFilter(field=field, operator=Operator.in_, value=values)


# ── Extractors (one per category) ────────────────────────

def _extract_range(prompt: str, lower: str) -> CompiledFilter | None:
    m = _RANGE_RE.search(lower)
    if not m:
        return None
    low, high = _to_number(m.group(1)), _to_number(m.group(2))
    field = metric_field_for(lower, m.end())
    return CompiledFilter(field=field, operator=Operator.between, value=[low, high])


def _extract_lower_bound(prompt: str, lower: str) -> CompiledFilter | None:
    m = _LOWER_BOUND_RE.search(lower)
    if not m:
        return None
    field = metric_field_for(lower, m.end())
    return CompiledFilter(field=field, operator=Operator.gt, value=_to_number(m.group(1)))


def _extract_upper_bound(prompt: str, lower: str) -> CompiledFilter | None:
    m = _UPPER_BOUND_RE.search(lower)
    if not m:
        return None
    field = metric_field_for(lower, m.end())
    return CompiledFilter(field=field, operator=Operator.lt, value=_to_number(m.group(1)))


def _extract_literal_set(prompt: str, lower: str) -> CompiledFilter | None:
    """Quoted literals, else known product keywords -> OR of substring matches."""
    quoted = [
        next(g for g in m.groups() if g is not None).strip()
        for m in _QUOTED_RE.finditer(prompt)
    ]
    terms = _unique([q for q in quoted if q])
    if not terms:
        terms = _unique([m.group(0) for m in _PRODUCT_RE.finditer(lower)])
    if not terms:
        return None
    return CompiledFilter(field=DESCRIPTION_FIELD, operator=Operator.contains_any, value=terms)


def _extract_state(regex: re.Pattern[str], field: str, prompt: str) -> CompiledFilter | None:
    for m in regex.finditer(prompt):
        code = m.group(1)
        if code in US_STATE_CODES:
            return CompiledFilter(field=field, operator=Operator.eq, value=code)
    return None


def _extract_origin(prompt: str, lower: str) -> CompiledFilter | None:
    return _extract_state(_ORIGIN_RE, ORIGIN_STATE_FIELD, prompt)


def _extract_destination(prompt: str, lower: str) -> CompiledFilter | None:
    return _extract_state(_DESTINATION_RE, DESTINATION_STATE_FIELD, prompt)


def _vocabulary_extractor(
    regex: re.Pattern[str], vocabulary: dict[str, str], field: str,
) -> Callable[[str, str], CompiledFilter | None]:
    def extract(prompt: str, lower: str) -> CompiledFilter | None:
        values = _unique([vocabulary[m.group(0)] for m in regex.finditer(lower)])
        return _eq_or_in(field, values)
    return extract


# ── Pattern table ────────────────────────────────────────

@dataclass(frozen=True)
class PatternCategory:
    name: str
    field: str | None
    extract: Callable[[str, str], CompiledFilter | None]


PATTERN_TABLE: list[PatternCategory] = [
    PatternCategory("range", None, _extract_range),
    PatternCategory("lower_bound", None, _extract_lower_bound),
    PatternCategory("upper_bound", None, _extract_upper_bound),
    PatternCategory("literal_set", DESCRIPTION_FIELD, _extract_literal_set),
    PatternCategory("origin", ORIGIN_STATE_FIELD, _extract_origin),
    PatternCategory("destination", DESTINATION_STATE_FIELD, _extract_destination),
    PatternCategory("carrier", CARRIER_FIELD, _vocabulary_extractor(_CARRIER_RE, CARRIER_VOCABULARY, CARRIER_FIELD)),
    PatternCategory("status", STATUS_FIELD, _vocabulary_extractor(_STATUS_RE, STATUS_VOCABULARY, STATUS_FIELD)),
    PatternCategory("mode", MODE_FIELD, _vocabulary_extractor(_MODE_RE, MODE_VOCABULARY, MODE_FIELD)),
]


def extract_by_category(prompt: str) -> dict[str, CompiledFilter]:
    """Run the pattern table; returns category name -> predicate for hits only."""
    lower = prompt.lower()
    hits: dict[str, CompiledFilter] = {}
    for category in PATTERN_TABLE:
        predicate = category.extract(prompt, lower)
        if predicate is not None:
            hits[category.name] = predicate
    return hits


def _describe(filters: list[CompiledFilter]) -> str:
    return f"Parsed locally: {summarize_filters(filters)}"


# ── Public API ───────────────────────────────────────────

def compile_prompt_locally(prompt: str) -> CompiledRule | None:
    """Compile *prompt* with the pattern table, or return None if nothing matched."""
    if not prompt or not prompt.strip():
        return None

    hits = extract_by_category(prompt)
    if not hits:
        logger.info("Heuristic[v%s] could not parse prompt_len=%d", PATTERN_TABLE_VERSION, len(prompt))
        return None

    filters = list(hits.values())
    logger.info(
        "Heuristic[v%s] -> %d filter(s) from categories=%s",
        PATTERN_TABLE_VERSION, len(filters), ",".join(hits),
    )
    return CompiledRule(filters=filters, explanation=_describe(filters))


def parse_simple_logic(prompt: str) -> CompiledRule | None:
    return compile_prompt_locally(prompt)


def pattern_table_rows() -> list[dict[str, Any]]:
    """The pattern table as plain rows (for the catalog endpoint / eval report)."""
    return [
        {"order": i + 1, "category": c.name, "field": c.field or "numeric metric"}
        for i, c in enumerate(PATTERN_TABLE)
    ]
