# /// script
# requires-python = ">=3.12"
# dependencies = []
# ///

from __future__ import annotations

import argparse
from datetime import date
from typing import Any

from run_utils import find_run_dir, load_json, resolve_base_name

DISCLAIMER = (
    "This report is for genetics self-education only. It is not medical advice and the "
    "risk index is a heuristic ranking, not a clinical risk estimate. Discuss any finding "
    "with a qualified healthcare professional before acting on it."
)
CONFIDENCE_ORDER = {"high": 0, "medium": 1, "low": 2}
CATEGORY_LABELS = {
    "drug": "Medication response",
    "disease": "Disease risk",
    "cancer": "Hereditary cancer",
    "metabolic": "Metabolic",
    "lifestyle": "Lifestyle",
}


def _status_pill(confidence: str) -> str:
    return {
        "high": "HIGH",
        "medium": "MEDIUM",
        "low": "LOW",
    }.get(confidence, confidence.upper() or "NA")


def _count_phrase(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _as_list(payload: Any) -> list[dict[str, Any]]:
    return payload if isinstance(payload, list) else []


def _split_findings(
    recommendations: list[dict[str, Any]],
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    medication = [rec for rec in recommendations if rec.get("category") == "drug"]
    other = [rec for rec in recommendations if rec.get("category") != "drug"]
    return medication, other


def _finding_lines(idx: int, rec: dict[str, Any]) -> list[str]:
    lines = [
        f"{idx}. **{rec.get('title', rec.get('rule_id', 'Finding'))}** "
        f"[{_status_pill(rec.get('confidence', ''))}]  ",
        f"   * **Marker:** {rec.get('gene', '')} {rec.get('rsid', '')}  ",
        f"   * **Summary:** {rec.get('explanation', '')}  ",
    ]
    friendly = rec.get("patient_friendly_explanation")
    if friendly:
        lines.append(f"   * **In plain language:** {friendly}  ")
    actions = rec.get("actions") or []
    if actions:
        lines.append(f"   * **Actions:** {'; '.join(actions)}")
    lines.append("")
    return lines


def _render_markdown(
    base_name: str,
    summary: dict[str, Any],
    recommendations: list[dict[str, Any]],
    risk_score: dict[str, Any],
    lifestyle_plan: list[dict[str, Any]],
) -> str:
    lines: list[str] = []
    lines.append("# Genetic Recommendations Report")
    lines.append(f"**File:** {summary.get('input_file') or base_name}  ")
    lines.append(f"**Date:** {date.today().strftime('%B %d, %Y')}  ")
    lines.append(f"**Run Folder:** {summary.get('run_folder', '')}")
    lines.append("")

    section = 1
    lines.append(f"## {section}. Marker Summary")
    section += 1
    lines.append(f"* **Detected Format:** {summary.get('detected_format', 'NA')}")
    lines.append(f"* **Markers Parsed:** {summary.get('total_markers', 'NA')}")
    if summary.get("heterozygosity_rate") is not None:
        lines.append(f"* **Heterozygosity Rate:** {summary.get('heterozygosity_rate')}")
    if summary.get("duplicate_rsid_count"):
        examples = summary.get("duplicate_rsid_examples") or []
        example_text = f" Examples: {', '.join(examples)}" if examples else ""
        lines.append(
            f"* **Duplicate rsIDs:** {summary.get('duplicate_rsid_count')} (last value kept).{example_text}"
        )
    genes = summary.get("annotated_genes") or []
    if genes:
        lines.append(f"* **Annotated Genes:** {', '.join(genes)}")
    warnings = summary.get("parse_warnings") or []
    if warnings:
        lines.append(f"* **Skipped Rows:** {_count_phrase(len(warnings), 'row')}")
    lines.append("\n---\n")

    lines.append(f"## {section}. Heuristic Risk Index")
    section += 1
    if recommendations:
        overall = float(risk_score.get("overall", 0) or 0)
        lines.append(f"* **Overall:** {overall:.1f} / 100")
        by_category = risk_score.get("by_category") or {}
        for category, score in sorted(by_category.items(), key=lambda item: -float(item[1])):
            label = CATEGORY_LABELS.get(category, category)
            lines.append(f"* **{label}:** {float(score):.2f}")
        lines.append("")
        lines.append("_The index averages rule weights by confidence. It is not a probability._")
    else:
        lines.append("No findings were produced, so no index was computed.")
    lines.append("\n---\n")

    medication, other = _split_findings(recommendations)
    lines.append(f"## {section}. Medication Response (Pharmacogenomics)")
    section += 1
    if medication:
        for idx, rec in enumerate(medication, start=1):
            lines.extend(_finding_lines(idx, rec))
    else:
        lines.append("No medication-response findings detected.")
    lines.append("\n---\n")

    lines.append(f"## {section}. Disease, Cancer, Metabolic & Lifestyle Findings")
    section += 1
    if other:
        ordered = sorted(other, key=lambda rec: CONFIDENCE_ORDER.get(rec.get("confidence", ""), 9))
        for idx, rec in enumerate(ordered, start=1):
            lines.extend(_finding_lines(idx, rec))
    else:
        lines.append("No other findings detected.")
    lines.append("\n---\n")

    priorities = risk_score.get("prioritized_actions") or []
    if priorities:
        lines.append(f"## {section}. Prioritized Actions")
        section += 1
        for item in priorities:
            lines.append(item if item.startswith("  ") else f"**{item}**")
        lines.append("\n---\n")

    if lifestyle_plan:
        lines.append(f"## {section}. Lifestyle Plan")
        section += 1
        for item in lifestyle_plan:
            lines.append(
                f"* [{item.get('frequency', 'daily')}] **{item.get('title', '')}** "
                f"({item.get('category', '')}): {item.get('description', '')}"
            )
        lines.append("\n---\n")

    lines.append(f"## {section}. Disclaimer")
    lines.append(DISCLAIMER)
    return "\n".join(lines) + "\n"


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a Markdown report from run outputs.")
    parser.add_argument("base_name", help="Run folder name")
    parser.add_argument("--run-date", help="Run date in YYYYMMDD (optional)")
    args = parser.parse_args()

    base_name = resolve_base_name(args.base_name)
    try:
        run_dir = find_run_dir(base_name, args.run_date)
    except FileNotFoundError as exc:
        print(str(exc))
        return 1

    summary = load_json(run_dir / "summary.json")
    if not isinstance(summary, dict):
        summary = {}
    summary["run_folder"] = str(run_dir)
    recommendations = _as_list(load_json(run_dir / "recommendations.json"))
    risk_score = load_json(run_dir / "risk_score.json")
    lifestyle_plan = _as_list(load_json(run_dir / "lifestyle_plan.json"))

    markdown = _render_markdown(
        base_name,
        summary,
        recommendations,
        risk_score if isinstance(risk_score, dict) else {},
        lifestyle_plan,
    )
    output_path = run_dir / f"{base_name}_Report.md"
    output_path.write_text(markdown, encoding="utf-8")
    print(f"Generated report in {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
