"""
Evaluation harness -- runs heuristic_cases.jsonl through the local heuristic
compiler and generates analytics/reports/heuristic_eval.md.

Checks:
  - Parse outcome   (compiled vs. "could not parse" matches expected)
  - Exact filters   (field, operator, value and order all match)
  - Latency         (per-prompt ms)
"""
from __future__ import annotations

import json
import sys
import datetime
from pathlib import Path
from typing import Any

EVAL_PATH = Path(__file__).resolve().parent / "heuristic_cases.jsonl"
REPORT_PATH = Path(__file__).resolve().parents[1] / "reports" / "heuristic_eval.md"


def _load_cases(path: Path = EVAL_PATH) -> list[dict[str, Any]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines if line.strip()]


def _run_one(case: dict[str, Any]) -> dict[str, Any]:
    """Compile a single prompt and compare it with the expected filters."""
    from src.rules.heuristic import compile_prompt_locally
    from src.core.utils import timer

    prompt = case["prompt"]
    with timer() as t:
        compiled = compile_prompt_locally(prompt)

    actual = None
    if compiled is not None:
        actual = [f.model_dump(mode="json") for f in compiled.filters]
    expected = case.get("expected")

    parse_ok = (actual is None) == (expected is None)
    return {
        "prompt": prompt,
        "expected": expected,
        "actual": actual,
        "parse_ok": parse_ok,
        "success": parse_ok and actual == expected,
        "latency_ms": t["elapsed_ms"],
    }


def _generate_report(results: list[dict[str, Any]]) -> str:
    """Generate the Markdown eval report."""
    from src.rules.heuristic import PATTERN_TABLE_VERSION, pattern_table_rows

    total = len(results)
    now = datetime.datetime.now().strftime("%Y-%m-%d %H:%M")
    successes = sum(1 for r in results if r["success"])
    parse_ok = sum(1 for r in results if r["parse_ok"])
    success_rate = (successes / total * 100) if total else 0
    parse_rate = (parse_ok / total * 100) if total else 0

    lines: list[str] = []
    lines.append("# Heuristic Compiler Evaluation")
    lines.append("")
    lines.append(f"> Generated: {now}  |  Prompts: **{total}**  |  Pattern table: `v{PATTERN_TABLE_VERSION}`")
    lines.append("")
    lines.append("## Summary")
    lines.append("")
    lines.append("| Metric | Value |")
    lines.append("|--------|-------|")
    lines.append(f"| Exact match rate | **{success_rate:.0f}%** ({successes}/{total}) |")
    lines.append(f"| Parse outcome correct | **{parse_rate:.0f}%** ({parse_ok}/{total}) |")
    lines.append("")
    lines.append("## Pattern Table")
    lines.append("")
    lines.append("| Order | Category | Field |")
    lines.append("|-------|----------|-------|")
    for row in pattern_table_rows():
        lines.append(f"| {row['order']} | {row['category']} | {row['field']} |")
    lines.append("")
    lines.append("## Per-Prompt Results")
    lines.append("")
    lines.append("| # | Prompt | Filters | Latency | Pass |")
    lines.append("|---|--------|---------|---------|------|")
    for i, r in enumerate(results, 1):
        n = "--" if r["actual"] is None else str(len(r["actual"]))
        p = "OK" if r["success"] else "ERROR"
        ptext = r["prompt"][:55] + ("..." if len(r["prompt"]) > 55 else "")
        lines.append(f"| {i} | {ptext} | {n} | {r['latency_ms']} | {p} |")
    lines.append("")

    failures = [(i, r) for i, r in enumerate(results, 1) if not r["success"]]
    lines.append("## Failures")
    lines.append("")
    if not failures:
        lines.append("None -- every prompt compiled as expected.")
        lines.append("")
    for i, r in failures:
        lines.append(f"### #{i}: {r['prompt']}")
        lines.append("")
        lines.append(f"**Expected:** `{json.dumps(r['expected'])}`")
        lines.append("")
        lines.append(f"**Actual:** `{json.dumps(r['actual'])}`")
        lines.append("")

    return "\n".join(lines)


def run(cases_path: Path = EVAL_PATH, report_path: Path = REPORT_PATH) -> list[dict[str, Any]]:
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")  # type: ignore[attr-defined]

    cases = _load_cases(cases_path)
    print(f"Loaded {len(cases)} heuristic cases.")

    results = []
    for i, case in enumerate(cases, 1):
        r = _run_one(case)
        status = "PASS" if r["success"] else "FAIL"
        print(f"  [{i:2d}/{len(cases)}] {status}  {r['prompt'][:60]:<60}")
        results.append(r)

    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(_generate_report(results), encoding="utf-8")
    print(f"\nReport written to {report_path}")

    successes = sum(1 for r in results if r["success"])
    print(f"\n{'='*50}")
    print(f"  Exact match: {successes}/{len(results)}")
    print(f"{'='*50}")
    return results


if __name__ == "__main__":
    run()
