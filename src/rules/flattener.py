"""
Rule flattener -- collapses the ordered rule set into one ordered list of
CompiledFilters.

  enabled FilterRule              -> its valid conditions, in order
  enabled AIRule (status=compiled) -> compiled_rule.filters, in order
  anything else                   -> nothing

A FilterRule with conditionLogic OR contributes one merged predicate when
its conditions share a field and are all equality (-> in) or all substring
(-> contains_any) tests; any other OR rule is logged and ANDed.

Half-filled conditions (no field, missing value, wrong value shape) are
dropped, never raised: rules are routinely flattened mid-edit.
Legacy single-condition rules are upgraded at load time by the serializer,
not here.
"""
from __future__ import annotations

from typing import Iterable, Sequence

from pydantic import ValidationError

from src.rules.model import AIRule, CompiledFilter, FilterRule, Operator, Rule
from src.core.logging import get_logger

logger = get_logger(__name__)


# OR over one field collapses into a single set / substring predicate
_SET_OPERATORS = {Operator.eq, Operator.in_, Operator.matches_any}
_PATTERN_OPERATORS = {Operator.contains, Operator.contains_any}


def _values(f: CompiledFilter) -> list:
    return list(f.value) if isinstance(f.value, list) else [f.value]


def _merge_or(rule: FilterRule, predicates: list[CompiledFilter]) -> list[CompiledFilter]:
    """One predicate equivalent to ORing *predicates*, or them unchanged (ANDed)."""
    if len(predicates) < 2:
        return predicates
    fields = {f.field for f in predicates}
    operators = {f.operator for f in predicates}
    if len(fields) == 1:
        merged: list = []
        for f in predicates:
            merged.extend(v for v in _values(f) if v not in merged)
        if operators <= _SET_OPERATORS:
            return [CompiledFilter(field=predicates[0].field, operator=Operator.in_, value=merged)]
        if operators <= _PATTERN_OPERATORS:
            return [CompiledFilter(field=predicates[0].field, operator=Operator.contains_any, value=merged)]
    logger.warning(
        "Rule %s uses OR across %s with operators %s; only same-field equality or "
        "substring conditions can be ORed, treating the conditions as AND",
        rule.id, sorted(fields), sorted(o.value for o in operators),
    )
    return predicates


def _filter_rule_predicates(rule: FilterRule) -> list[CompiledFilter]:
    predicates: list[CompiledFilter] = []
    for idx, condition in enumerate(rule.conditions):
        try:
            predicates.append(CompiledFilter.from_condition(condition))
        except ValidationError as exc:
            logger.debug(
                "Dropping condition %d of rule %s: %s",
                idx, rule.id, exc.errors()[0].get("msg", "invalid"),
            )
    if rule.condition_logic == "OR":
        return _merge_or(rule, predicates)
    return predicates


def _ai_rule_predicates(rule: AIRule) -> list[CompiledFilter]:
    if not rule.contributes:
        return []
    return list(rule.compiled_rule.filters)


def flatten(rules: Iterable[Rule]) -> list[CompiledFilter]:
    """Flatten *rules* (authored order) into executable predicates."""
    filters: list[CompiledFilter] = []
    for rule in rules:
        if not rule.enabled:
            continue
        if isinstance(rule, FilterRule):
            filters.extend(_filter_rule_predicates(rule))
        elif isinstance(rule, AIRule):
            filters.extend(_ai_rule_predicates(rule))
    return filters


def _format_value(value: object) -> str:
    if isinstance(value, list):
        head = ", ".join(str(v) for v in value[:3])
        return f"[{head}{'...' if len(value) > 3 else ''}]"
    return str(value)


def summarize_filters(filters: Sequence[CompiledFilter]) -> str:
    """Human-readable one-liner, e.g. ``retail gt 1500 AND origin_state eq CA``."""
    if not filters:
        return "No filters applied"
    parts = []
    for f in filters:
        if f.value is None:
            parts.append(f"{f.field} {f.operator.value}")
        else:
            parts.append(f"{f.field} {f.operator.value} {_format_value(f.value)}")
    return " AND ".join(parts)
