from __future__ import annotations

from typing import Sequence

from genetic_models import LifestylePlanItem, Recommendation

MAX_PLAN_ITEMS = 10

PLAN_FREQUENCY: dict[str, str] = {
    "drug": "screening",
    "cancer": "monthly",
    "metabolic": "weekly",
}
PLAN_CATEGORY: dict[str, str] = {
    "drug": "medication",
    "cancer": "screening",
    "metabolic": "diet",
}


def generate_lifestyle_plan(recommendations: Sequence[Recommendation]) -> list[LifestylePlanItem]:
    """Turn the first high/medium findings into plan items."""
    eligible = [rec for rec in recommendations if rec.confidence in {"high", "medium"}]
    plan: list[LifestylePlanItem] = []
    for rec in eligible[:MAX_PLAN_ITEMS]:
        plan.append(
            {
                "id": f"plan-{rec.rule_id}-{rec.rsid}",
                "title": f"{rec.gene}: {rec.rsid}",
                "description": rec.explanation,
                "frequency": PLAN_FREQUENCY.get(rec.category, "daily"),
                "category": PLAN_CATEGORY.get(rec.category, "lifestyle"),
                "completed": False,
                "linked_recommendation_id": rec.id,
            }
        )
    return plan
