"""
Rule model -- the structures an author edits and the compiled form that
query execution consumes.

  FilterRule      -- structured conditions typed in by hand
  AIRule          -- a natural-language prompt plus its compiled output
  CompiledFilter  -- one strict, validated predicate {field, operator, value}
  CompiledRule    -- the ordered predicates a compiler produced for a prompt

Conditions on a FilterRule are deliberately lenient (a rule is often
half-filled while being edited).  CompiledFilter is strict: operator/value
shape compatibility is checked once, when it is built, so nothing downstream
has to re-check it.
"""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class Operator(str, Enum):
    """Closed set of filter operators."""

    eq = "eq"
    neq = "neq"
    gt = "gt"
    gte = "gte"
    lt = "lt"
    lte = "lte"
    contains = "contains"
    not_contains = "not_contains"
    starts_with = "starts_with"
    ends_with = "ends_with"
    in_ = "in"        # attribute is `in_` (reserved word); wire value is "in"
    not_in = "not_in"
    is_null = "is_null"
    is_not_null = "is_not_null"
    between = "between"
    contains_any = "contains_any"
    contains_all = "contains_all"
    matches_any = "matches_any"


class AIRuleStatus(str, Enum):
    pending = "pending"
    compiling = "compiling"
    compiled = "compiled"
    error = "error"


class ValueShape(str, Enum):
    NONE = "none"
    SCALAR = "scalar"
    LIST = "list"
    RANGE = "range"


NULL_OPERATORS = frozenset({Operator.is_null, Operator.is_not_null})

LIST_OPERATORS = frozenset({
    Operator.in_,
    Operator.not_in,
    Operator.contains_any,
    Operator.contains_all,
    Operator.matches_any,
})


def required_shape(operator: Operator) -> ValueShape:
    if operator in NULL_OPERATORS:
        return ValueShape.NONE
    if operator is Operator.between:
        return ValueShape.RANGE
    if operator in LIST_OPERATORS:
        return ValueShape.LIST
    return ValueShape.SCALAR


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def check_value(operator: Operator, value: Any) -> Any:
    """Return *value* normalised for *operator*, or raise ValueError."""
    shape = required_shape(operator)

    if shape is ValueShape.NONE:
        return None

    if shape is ValueShape.RANGE:
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValueError(f"'{operator.value}' needs a [min, max] pair, got {value!r}")
        if not all(_is_number(v) for v in value):
            raise ValueError(f"'{operator.value}' bounds must be numbers, got {value!r}")
        return [value[0], value[1]]

    if shape is ValueShape.LIST:
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"'{operator.value}' needs a list value, got {value!r}")
        if not all(_is_scalar(v) for v in value):
            raise ValueError(f"'{operator.value}' list items must be scalars, got {value!r}")
        return list(value)

    if value is None or not _is_scalar(value):
        raise ValueError(f"'{operator.value}' needs a scalar value, got {value!r}")
    return value


def _new_id() -> str:
    return str(uuid.uuid4())


# ── Predicates ───────────────────────────────────────────

class Condition(BaseModel):
    """One authored condition.  May be incomplete while the rule is edited."""

    field: str = ""
    operator: Union[Operator, str] = Operator.eq
    value: Any = None


class CompiledFilter(BaseModel):
    """A validated predicate -- the common currency after flattening."""

    field: str
    operator: Operator
    value: Any = None

    @model_validator(mode="after")
    def _check_shape(self) -> "CompiledFilter":
        field = self.field.strip()
        if not field:
            raise ValueError("field must be non-empty")
        self.field = field
        self.value = check_value(self.operator, self.value)
        return self

    @classmethod
    def from_condition(cls, condition: Condition) -> "CompiledFilter":
        return cls(field=condition.field, operator=condition.operator, value=condition.value)


class CompiledRule(BaseModel):
    """Output of a compiler, stored verbatim on the AI rule."""

    filters: list[CompiledFilter] = Field(default_factory=list)
    explanation: str | None = None


# ── Rules ────────────────────────────────────────────────

class FilterRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["filter"] = "filter"
    id: str = Field(default_factory=_new_id)
    enabled: bool = True
    label: str | None = None
    conditions: list[Condition] = Field(default_factory=list)
    condition_logic: Literal["AND", "OR"] = Field("AND", alias="conditionLogic")


class AIRule(BaseModel):
    """A natural-language rule and its compilation state.

    Transitions: pending -> compiling -> compiled | error.  Editing the
    prompt goes back to pending and drops any compiled output or error.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["ai"] = "ai"
    id: str = Field(default_factory=_new_id)
    enabled: bool = True
    prompt: str = ""
    status: AIRuleStatus = AIRuleStatus.pending
    compiled_rule: CompiledRule | None = Field(None, alias="compiledRule")
    error: str | None = None
    explanation: str | None = None

    @model_validator(mode="after")
    def _compiled_needs_rule(self) -> "AIRule":
        if self.status is AIRuleStatus.compiled and self.compiled_rule is None:
            raise ValueError("status 'compiled' requires a compiled rule")
        return self

    @property
    def contributes(self) -> bool:
        return (
            self.enabled
            and self.status is AIRuleStatus.compiled
            and self.compiled_rule is not None
        )

    def with_prompt(self, prompt: str) -> "AIRule":
        if prompt == self.prompt:
            return self
        return self.model_copy(update={
            "prompt": prompt,
            "status": AIRuleStatus.pending,
            "compiled_rule": None,
            "error": None,
            "explanation": None,
        })

    def begin_compile(self) -> "AIRule":
        return self.model_copy(update={"status": AIRuleStatus.compiling, "error": None})

    def with_compiled(self, compiled: CompiledRule, explanation: str | None = None) -> "AIRule":
        return self.model_copy(update={
            "status": AIRuleStatus.compiled,
            "compiled_rule": compiled,
            "error": None,
            "explanation": explanation if explanation is not None else compiled.explanation,
        })

    def with_error(self, message: str) -> "AIRule":
        return self.model_copy(update={
            "status": AIRuleStatus.error,
            "compiled_rule": None,
            "error": message or "Unknown error",
        })


Rule = Annotated[Union[FilterRule, AIRule], Field(discriminator="type")]

rule_adapter: TypeAdapter = TypeAdapter(Rule)
