#!/usr/bin/env -S uv --quiet run --active --script
# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "polars",
#     "requests",
# ]
# ///

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any

from gemini_client import GeminiClient
from lifestyle_plan import generate_lifestyle_plan
from recommendation_engine import (
    DEFAULT_MAX_RECOMMENDATIONS,
    RecommendationEngine,
    calculate_risk_score,
    generate_prioritized_actions,
)
from run_utils import find_run_dir, load_summary, resolve_base_name, update_summary, write_json
from state_store import (
    get_markers,
    get_profile,
    load_state,
    save_state,
    set_recommendations,
    update_profile,
)


def _profile_updates(summary: dict[str, Any], args: argparse.Namespace) -> dict[str, Any]:
    medications = args.medication or summary.get("reported_medications") or None
    return {
        "age": args.age if args.age is not None else summary.get("reported_age"),
        "sex": args.sex or summary.get("reported_sex"),
        "medications": medications,
    }


def _build_client(state: dict[str, Any]) -> GeminiClient:
    client = GeminiClient.from_env()
    if not client.has_api_key():
        client.set_api_key(state.get("settings", {}).get("gemini_api_key"))
    return client


def evaluate_run(
    run_dir: Path,
    *,
    profile_updates: dict[str, Any],
    use_enrichment: bool,
    max_recommendations: int,
) -> int:
    state_path = run_dir / "state.json"
    state = load_state(state_path)
    markers = get_markers(state)
    if not markers:
        print("No genetic markers stored for this run. Run qc_analysis.py first.")
        return 1

    state = update_profile(state, **profile_updates)
    profile = get_profile(state)

    engine = RecommendationEngine(client=_build_client(state) if use_enrichment else None)
    recommendations = engine.evaluate(
        markers,
        profile,
        use_enrichment=use_enrichment,
        max_recommendations=max_recommendations,
    )
    risk_score = calculate_risk_score(recommendations, engine.rules)
    plan = generate_lifestyle_plan(recommendations)
    priorities = generate_prioritized_actions(recommendations)

    print("\n--- RECOMMENDATIONS ---")
    for rec in recommendations:
        print(f"[{rec.confidence}] {rec.gene} ({rec.rsid}): {rec.title}")
    if not recommendations:
        print("No rules matched the uploaded markers.")
    print(f"\nHeuristic risk index: {risk_score['overall']:.1f}")
    print("----------------------------\n")

    state = set_recommendations(state, recommendations)
    state["lifestyle_plan"] = plan
    save_state(state_path, state)

    recs_path = run_dir / "recommendations.json"
    score_path = run_dir / "risk_score.json"
    plan_path = run_dir / "lifestyle_plan.json"
    write_json(recs_path, [rec.to_dict() for rec in recommendations])
    write_json(score_path, {**risk_score, "prioritized_actions": priorities})
    write_json(plan_path, plan)
    update_summary(
        run_dir,
        {
            "recommendations_path": str(recs_path),
            "risk_score_path": str(score_path),
            "lifestyle_plan_path": str(plan_path),
            "recommendation_count": len(recommendations),
            "enriched_count": sum(1 for rec in recommendations if rec.enriched),
            "risk_index": round(risk_score["overall"], 1),
        },
    )
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Match stored markers against the rule table.")
    parser.add_argument("base_name", nargs="?", help="Run folder name")
    parser.add_argument("--run-date", help="Run date in YYYYMMDD (optional)")
    parser.add_argument("--age", type=int, help="Reported age in years")
    parser.add_argument("--sex", choices=["female", "male"], help="Reported sex")
    parser.add_argument(
        "--medication",
        action="append",
        help="Current medication (repeat for several)",
    )
    parser.add_argument(
        "--enrich",
        action="store_true",
        help="Ask Gemini for patient-friendly explanations (needs GEMINI_API_KEY)",
    )
    parser.add_argument(
        "--max-recommendations",
        type=int,
        default=DEFAULT_MAX_RECOMMENDATIONS,
        help="Maximum number of recommendations to keep",
    )
    args = parser.parse_args()

    base_name = resolve_base_name(args.base_name)
    try:
        run_dir = find_run_dir(base_name, args.run_date)
    except FileNotFoundError as exc:
        print(str(exc))
        return 1
    summary = load_summary(run_dir)
    return evaluate_run(
        run_dir,
        profile_updates=_profile_updates(summary, args),
        use_enrichment=args.enrich,
        max_recommendations=args.max_recommendations,
    )


if __name__ == "__main__":
    raise SystemExit(main())
