"""
Rule-set persistence -- stable JSON encoding with legacy upgrade on load.

Payload:

    {"format": "rule-set", "version": 2, "rules": [{"type": "filter", ...}, ...]}

Keys are sorted and separators compact, so the same rule set always encodes
to the same bytes.  On load:

  - a bare JSON list (the v1 layout) is accepted as the rules array
  - a FilterRule that carries field/operator/value directly is upgraded to a
    one-element ``conditions`` list
  - an AIRule saved while ``compiling`` comes back as ``pending`` (no request
    survives a reload)
  - unknown or malformed entries are dropped, the rest still load
"""
from __future__ import annotations

import json
from typing import Any, Iterable

from pydantic import ValidationError

from src.rules.model import AIRuleStatus, Rule, rule_adapter
from src.core.logging import get_logger

logger = get_logger(__name__)

PAYLOAD_FORMAT = "rule-set"
PAYLOAD_VERSION = 2

_LEGACY_KEYS = ("field", "operator", "value")


def rule_to_dict(rule: Rule) -> dict[str, Any]:
    return rule.model_dump(mode="json", by_alias=True, exclude_none=True)


def serialize_rules(rules: Iterable[Rule]) -> str:
    payload = {
        "format": PAYLOAD_FORMAT,
        "version": PAYLOAD_VERSION,
        "rules": [rule_to_dict(r) for r in rules],
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


# ── Upgrades ─────────────────────────────────────────────

def upgrade_filter_rule(raw: dict[str, Any]) -> dict[str, Any]:
    """Move a legacy top-level field/operator/value into ``conditions``."""
    if isinstance(raw.get("conditions"), list):
        return raw
    upgraded = {k: v for k, v in raw.items() if k not in _LEGACY_KEYS and k != "conditions"}
    if raw.get("field"):
        upgraded["conditions"] = [{
            "field": raw["field"],
            "operator": raw.get("operator") or "eq",
            "value": raw.get("value"),
        }]
    else:
        upgraded["conditions"] = []
    return upgraded


def upgrade_ai_rule(raw: dict[str, Any]) -> dict[str, Any]:
    if raw.get("status") == AIRuleStatus.compiling.value:
        return {**raw, "status": AIRuleStatus.pending.value}
    return raw


def upgrade_rule(raw: dict[str, Any]) -> dict[str, Any]:
    kind = raw.get("type")
    if kind == "filter":
        return upgrade_filter_rule(raw)
    if kind == "ai":
        return upgrade_ai_rule(raw)
    return raw


# ── Loading ──────────────────────────────────────────────

def _rules_array(data: Any) -> list[Any]:
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if data.get("format") not in (None, PAYLOAD_FORMAT):
            logger.warning("Unknown payload format %r -- loading nothing", data.get("format"))
            return []
        rules = data.get("rules")
        return rules if isinstance(rules, list) else []
    logger.warning("Rule payload has unexpected type %s -- loading nothing", type(data).__name__)
    return []


def load_rules(data: Any) -> list[Rule]:
    """Build rules from already-decoded JSON (envelope, bare list or None)."""
    rules: list[Rule] = []
    for idx, raw in enumerate(_rules_array(data)):
        if not isinstance(raw, dict):
            logger.warning("Dropping rule #%d: not an object", idx)
            continue
        try:
            rules.append(rule_adapter.validate_python(upgrade_rule(raw)))
        except ValidationError as exc:
            logger.warning("Dropping rule #%d (type=%r): %d validation error(s)",
                           idx, raw.get("type"), exc.error_count())
    return rules


def deserialize_rules(payload: str | bytes | None) -> list[Rule]:
    """Decode a stored payload into rules, upgrading legacy entries."""
    if not payload:
        return []
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        logger.warning("Rule payload is not valid JSON -- loading nothing: %s", exc)
        return []
    return load_rules(data)
