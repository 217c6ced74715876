from __future__ import annotations

import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Sequence

from gemini_client import GeminiClient
from genetic_models import GeneticMarker, GeneticRule, Recommendation, RiskScore, UserProfile
from genetic_rules import load_rules

DEFAULT_MAX_RECOMMENDATIONS = 50
DEFAULT_RULE_WEIGHT = 0.5
ENRICHMENT_BATCH_SIZE = 5
ENRICHMENT_BATCH_DELAY = 1.0

CONFIDENCE_SCORES: dict[str, float] = {"high": 1.0, "medium": 0.6, "low": 0.3}

INTERACTING_DRUGS: tuple[str, ...] = ("warfarin", "clopidogrel", "statin", "plavix", "coumadin")

CATEGORY_ACTIONS: dict[str, list[str]] = {
    "drug": [
        "Discuss with physician before starting new medications",
        "Add to medical record",
        "Inform pharmacist",
    ],
    "cancer": [
        "Schedule genetic counseling consultation",
        "Discuss enhanced screening with oncologist",
        "Inform family members of hereditary risk",
    ],
    "disease": [
        "Discuss with primary care physician",
        "Consider preventive screening",
        "Implement lifestyle modifications",
    ],
    "metabolic": [
        "Schedule bloodwork to assess current status",
        "Consult with dietitian for meal planning",
        "Establish exercise routine",
    ],
    "lifestyle": [
        "Implement recommended modifications",
        "Track progress in health journal",
    ],
}
MEDICAL_ALERT_ACTION = "Consider wearing medical alert bracelet"
UNIVERSAL_ACTIONS: tuple[str, ...] = ("Save to lifestyle plan", "Export for medical records")

_NON_BASE = re.compile(r"[^ACGT]")


def _clean_genotype(value: str) -> str:
    return _NON_BASE.sub("", value.upper())


def reverse_genotype(genotype: str) -> str:
    return genotype[::-1]


def matches_genotype_pattern(genotype: str, pattern: str | Sequence[str]) -> bool:
    """Match an observed genotype against one pattern or any of several.

    Both sides are reduced to A/C/G/T letters; allele order is ignored, so
    ``GA`` matches ``AG``.
    """
    observed = _clean_genotype(genotype)
    candidates = [pattern] if isinstance(pattern, str) else list(pattern)
    for candidate in candidates:
        expected = _clean_genotype(candidate)
        if observed == expected or observed == reverse_genotype(expected):
            return True
    return False


def apply_user_modifiers(rule: GeneticRule, profile: UserProfile | None) -> str:
    if profile is None:
        return rule.confidence

    confidence = rule.confidence
    if profile.age:
        if rule.category == "cancer" and profile.age > 50 and confidence == "medium":
            confidence = "high"
        if rule.category == "metabolic" and profile.age < 30 and confidence == "high":
            confidence = "medium"

    if profile.medications and rule.category == "drug":
        on_related_drug = any(
            drug in medication.lower()
            for medication in profile.medications
            for drug in INTERACTING_DRUGS
        )
        if on_related_drug and confidence == "medium":
            confidence = "high"

    return confidence


def generate_actions(rule: GeneticRule) -> list[str]:
    actions = list(CATEGORY_ACTIONS.get(rule.category, []))
    if rule.category == "drug" and rule.confidence == "high":
        actions.append(MEDICAL_ALERT_ACTION)
    actions.extend(UNIVERSAL_ACTIONS)
    return actions


def _title(rule: GeneticRule) -> str:
    implication = rule.implication
    if len(implication) > 50:
        implication = f"{implication[:50]}..."
    return f"{rule.gene}: {implication}"


def build_enrichment_prompt(rec: Recommendation) -> str:
    return (
        "You are a genetic counselor explaining test results to a patient.\n\n"
        "Genetic finding:\n"
        f"- Gene: {rec.gene}\n"
        f"- Variant: {rec.rsid}\n"
        f"- Technical explanation: {rec.explanation}\n\n"
        "Provide a SHORT (2-3 sentences), patient-friendly explanation that:\n"
        "1. Explains what this means in simple terms\n"
        "2. Mentions practical implications\n"
        "3. Emphasizes consulting healthcare providers for medical decisions\n\n"
        "Keep it reassuring and educational. Do not make specific medical recommendations."
    )


def match_rules(
    markers: Iterable[GeneticMarker],
    rules: Sequence[GeneticRule],
    profile: UserProfile | None = None,
    *,
    generation: int = 0,
) -> list[Recommendation]:
    """Emit at most one recommendation per rule, in rule order."""
    lookup: dict[str, GeneticMarker] = {}
    for marker in markers:
        lookup[marker.rsid] = marker

    created_at = time.time()
    recommendations: list[Recommendation] = []
    for rule in rules:
        for rsid in rule.rsids:
            marker = lookup.get(rsid)
            if marker is None:
                continue
            if not matches_genotype_pattern(marker.genotype, rule.genotype_pattern):
                continue
            recommendations.append(
                Recommendation(
                    id=f"rec-{rule.id}-{rsid}",
                    rule_id=rule.id,
                    gene=rule.gene,
                    rsid=rsid,
                    category=rule.category,
                    title=_title(rule),
                    explanation=rule.recommendation,
                    confidence=apply_user_modifiers(rule, profile),
                    actions=generate_actions(rule),
                    created_at=created_at,
                    generation=generation,
                )
            )
            break
    return recommendations


def rank_recommendations(
    recommendations: list[Recommendation],
    rules: Sequence[GeneticRule],
    max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS,
) -> list[Recommendation]:
    weights = {rule.id: rule.weight for rule in rules}
    ranked = sorted(
        recommendations,
        key=lambda rec: weights.get(rec.rule_id, DEFAULT_RULE_WEIGHT),
        reverse=True,
    )
    return ranked[: max(max_recommendations, 0)]


class RecommendationEngine:
    """Evaluates marker sets against the rule table.

    Every call to ``evaluate`` takes a new generation number. Enrichment
    results are only written back while their generation is still the latest,
    so a slow enrichment from an earlier evaluation cannot touch the output of
    a newer one.
    """

    def __init__(
        self,
        rules: Sequence[GeneticRule] | None = None,
        client: GeminiClient | None = None,
        *,
        batch_size: int = ENRICHMENT_BATCH_SIZE,
        batch_delay: float = ENRICHMENT_BATCH_DELAY,
    ) -> None:
        self.rules = list(rules) if rules is not None else load_rules()
        self.client = client
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def _next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def evaluate(
        self,
        markers: Iterable[GeneticMarker],
        profile: UserProfile | None = None,
        *,
        use_enrichment: bool = False,
        max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS,
    ) -> list[Recommendation]:
        generation = self._next_generation()
        matched = match_rules(markers, self.rules, profile, generation=generation)
        limited = rank_recommendations(matched, self.rules, max_recommendations)

        if use_enrichment:
            if self.client is not None and self.client.has_api_key():
                self.enrich(limited)
            else:
                print("No Gemini API key configured; skipping explanation enrichment.")
        return limited

    def _enrich_one(self, client: GeminiClient, rec: Recommendation) -> None:
        try:
            response = client.generate(
                build_enrichment_prompt(rec),
                temperature=0.7,
                max_tokens=200,
            )
            text = (response.get("text") or "").strip()
        except Exception as exc:
            print(f"Warning: failed to enhance recommendation {rec.id}: {exc}")
            return
        if not text:
            return
        with self._lock:
            if rec.generation != self._generation:
                return
            rec.patient_friendly_explanation = text
            rec.enriched = True

    def enrich(self, recommendations: list[Recommendation]) -> None:
        client = self.client
        if not recommendations or client is None:
            return
        generation = recommendations[0].generation
        with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
            for start in range(0, len(recommendations), self.batch_size):
                if not self.is_current(generation):
                    print("Evaluation superseded; dropping remaining enrichment batches.")
                    return
                batch = recommendations[start : start + self.batch_size]
                list(executor.map(lambda rec: self._enrich_one(client, rec), batch))
                if start + self.batch_size < len(recommendations) and self.batch_delay:
                    time.sleep(self.batch_delay)


def evaluate_genetics(
    markers: Iterable[GeneticMarker],
    profile: UserProfile | None = None,
    *,
    rules: Sequence[GeneticRule] | None = None,
    use_enrichment: bool = False,
    max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS,
    client: GeminiClient | None = None,
) -> list[Recommendation]:
    engine = RecommendationEngine(rules, client)
    return engine.evaluate(
        markers,
        profile,
        use_enrichment=use_enrichment,
        max_recommendations=max_recommendations,
    )


def calculate_risk_score(
    recommendations: Iterable[Recommendation],
    rules: Sequence[GeneticRule] | None = None,
) -> RiskScore:
    """Weighted average of confidence factors, scaled to 0-100.

    This is a heuristic index for ranking attention, not a clinical risk.
    """
    weights = {rule.id: rule.weight for rule in (rules if rules is not None else load_rules())}
    by_category: dict[str, float] = {}
    total_weight = 0.0
    weighted_sum = 0.0
    for rec in recommendations:
        weight = weights.get(rec.rule_id, DEFAULT_RULE_WEIGHT)
        score = weight * CONFIDENCE_SCORES.get(rec.confidence, CONFIDENCE_SCORES["low"])
        weighted_sum += score
        total_weight += weight
        by_category[rec.category] = by_category.get(rec.category, 0.0) + score

    overall = (weighted_sum / total_weight) * 100 if total_weight > 0 else 0
    return {"overall": overall, "by_category": by_category}


def generate_prioritized_actions(recommendations: Sequence[Recommendation]) -> list[str]:
    actions: list[str] = []
    high_priority = [rec for rec in recommendations if rec.confidence == "high"]
    if high_priority:
        actions.append("High Priority Actions:")
        for rec in high_priority[:3]:
            actions.append(f"  - {rec.gene}: {rec.explanation[:80]}...")

    drug_related = [rec for rec in recommendations if rec.category == "drug"]
    if drug_related:
        actions.append("Medication Considerations:")
        actions.append(
            f"  - Discuss {len(drug_related)} pharmacogenomic findings with physician"
        )

    cancer_related = [rec for rec in recommendations if rec.category == "cancer"]
    if cancer_related:
        actions.append("Genetic Counseling Recommended:")
        actions.append(
            f"  - {len(cancer_related)} hereditary cancer risk markers identified"
        )
    return actions
