"""
Authoring session -- owns the ordered rule set while a report is edited.

Mutations (add, edit, toggle, move, remove) are synchronous and run to
completion.  Compilation is the only async step: ``compile_rule`` takes a
request token when it dispatches, and a completion whose token is no longer
current (prompt edited, rule recompiled or removed meanwhile) is discarded.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable

from src.rules.compiler import CompilationOutcome, apply_outcome, compile_prompt
from src.rules.flattener import flatten
from src.rules.model import AIRule, CompiledFilter, Condition, FilterRule, Rule
from src.rules.serialization import deserialize_rules, serialize_rules
from src.core.logging import get_logger
from src.core.utils import RequestTokens

logger = get_logger(__name__)

CompileFn = Callable[..., Awaitable[CompilationOutcome]]


class AuthoringSession:
    def __init__(self, rules: Iterable[Rule] | None = None, compile_fn: CompileFn | None = None):
        self._rules: list[Rule] = list(rules or [])
        self._tokens = RequestTokens()
        self._compile = compile_fn or compile_prompt

    # ── Look-ups ─────────────────────────────────────

    @property
    def rules(self) -> list[Rule]:
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return any(r.id == rule_id for r in self._rules)

    def _index(self, rule_id: str) -> int:
        for idx, rule in enumerate(self._rules):
            if rule.id == rule_id:
                return idx
        raise KeyError(f"No rule with id {rule_id!r}")

    def get(self, rule_id: str) -> Rule:
        return self._rules[self._index(rule_id)]

    def _ai_rule(self, rule_id: str) -> AIRule:
        rule = self.get(rule_id)
        if not isinstance(rule, AIRule):
            raise TypeError(f"Rule {rule_id!r} is not an AI rule")
        return rule

    def _replace(self, rule: Rule) -> None:
        self._rules[self._index(rule.id)] = rule

    # ── Mutations ────────────────────────────────────

    def add_filter_rule(
        self, conditions: Iterable[Condition | dict[str, Any]] | None = None, label: str | None = None,
    ) -> FilterRule:
        rule = FilterRule(conditions=list(conditions or []), label=label)
        self._rules.append(rule)
        return rule

    def add_ai_rule(self, prompt: str = "") -> AIRule:
        rule = AIRule(prompt=prompt)
        self._rules.append(rule)
        return rule

    def update_conditions(self, rule_id: str, conditions: Iterable[Condition | dict[str, Any]]) -> FilterRule:
        rule = self.get(rule_id)
        if not isinstance(rule, FilterRule):
            raise TypeError(f"Rule {rule_id!r} is not a filter rule")
        updated = FilterRule.model_validate({**rule.model_dump(), "conditions": list(conditions)})
        self._replace(updated)
        return updated

    def remove_rule(self, rule_id: str) -> None:
        del self._rules[self._index(rule_id)]
        self._tokens.invalidate(rule_id)

    def toggle_rule(self, rule_id: str, enabled: bool | None = None) -> Rule:
        rule = self.get(rule_id)
        value = (not rule.enabled) if enabled is None else enabled
        updated = rule.model_copy(update={"enabled": value})
        self._replace(updated)
        return updated

    def move_rule(self, rule_id: str, index: int) -> None:
        rule = self._rules.pop(self._index(rule_id))
        index = max(0, min(index, len(self._rules)))
        self._rules.insert(index, rule)

    def edit_prompt(self, rule_id: str, prompt: str) -> AIRule:
        rule = self._ai_rule(rule_id)
        updated = rule.with_prompt(prompt)
        if updated is not rule:
            # any compilation still in flight was for the old prompt
            self._tokens.invalidate(rule_id)
            self._replace(updated)
        return updated

    # ── Compilation ──────────────────────────────────

    async def compile_rule(
        self,
        rule_id: str,
        available_fields: list | None = None,
        sample_data: list[dict[str, Any]] | None = None,
    ) -> AIRule | None:
        """Compile an AI rule; returns the updated rule, or None if superseded."""
        rule = self._ai_rule(rule_id)
        token = self._tokens.issue(rule_id)
        self._replace(rule.begin_compile())

        try:
            outcome = await self._compile(rule.prompt, available_fields, sample_data)
        except Exception as exc:
            logger.exception("Compilation of rule %s raised", rule_id)
            outcome = CompilationOutcome(error=f"Compilation failed: {exc}")

        if rule_id not in self or not self._tokens.is_current(rule_id, token):
            logger.debug("Discarding stale compilation for rule %s (token %d)", rule_id, token)
            return None

        updated = apply_outcome(self._ai_rule(rule_id), outcome)
        self._replace(updated)
        logger.info("Rule %s -> %s (source=%s)", rule_id, updated.status.value, outcome.source)
        return updated

    # ── Output ───────────────────────────────────────

    def flatten(self) -> list[CompiledFilter]:
        return flatten(self._rules)

    def to_payload(self) -> str:
        return serialize_rules(self._rules)

    @classmethod
    def from_payload(cls, payload: str | bytes | None, compile_fn: CompileFn | None = None) -> "AuthoringSession":
        return cls(deserialize_rules(payload), compile_fn=compile_fn)
