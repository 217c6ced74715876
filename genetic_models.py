from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, TypedDict

Category = Literal["drug", "disease", "cancer", "metabolic", "lifestyle"]
Confidence = Literal["low", "medium", "high"]
Status = Literal["pending", "accepted", "declined", "saved"]

CATEGORIES: tuple[str, ...] = ("drug", "disease", "cancer", "metabolic", "lifestyle")
CONFIDENCE_LEVELS: tuple[str, ...] = ("low", "medium", "high")
STATUSES: tuple[str, ...] = ("pending", "accepted", "declined", "saved")


@dataclass
class GeneticMarker:
    rsid: str
    genotype: str
    gene: str = ""
    chromosome: str | None = None
    position: int | None = None
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GeneticMarker:
        return cls(
            rsid=data["rsid"],
            genotype=data["genotype"],
            gene=data.get("gene") or "",
            chromosome=data.get("chromosome"),
            position=data.get("position"),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class GeneticRule:
    id: str
    gene: str
    rsids: tuple[str, ...]
    genotype_pattern: str | tuple[str, ...]
    category: str
    implication: str
    recommendation: str
    confidence: str
    weight: float
    evidence_url: str | None = None


@dataclass
class UserProfile:
    age: int | None = None
    sex: str | None = None
    medications: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> UserProfile:
        data = data or {}
        return cls(
            age=data.get("age"),
            sex=data.get("sex"),
            medications=list(data.get("medications") or []),
        )


@dataclass
class Recommendation:
    """One finding produced by a rule for a single matching rsid.

    Created fresh on every evaluation. Only the enrichment step writes to it
    afterwards (``patient_friendly_explanation`` and ``enriched``); ``status``
    belongs to whoever stores the recommendation.
    """

    id: str
    rule_id: str
    gene: str
    rsid: str
    category: str
    title: str
    explanation: str
    confidence: str
    actions: list[str]
    created_at: float
    status: str = "pending"
    patient_friendly_explanation: str | None = None
    enriched: bool = False
    generation: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Recommendation:
        return cls(
            id=data["id"],
            rule_id=data["rule_id"],
            gene=data.get("gene", ""),
            rsid=data["rsid"],
            category=data["category"],
            title=data.get("title", ""),
            explanation=data.get("explanation", ""),
            confidence=data["confidence"],
            actions=list(data.get("actions") or []),
            created_at=float(data.get("created_at", 0.0)),
            status=data.get("status", "pending"),
            patient_friendly_explanation=data.get("patient_friendly_explanation"),
            enriched=bool(data.get("enriched", False)),
            generation=int(data.get("generation", 0)),
        )


@dataclass
class ParseResult:
    success: bool = False
    markers: list[GeneticMarker] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    format: str | None = None


class RiskScore(TypedDict):
    overall: float
    by_category: dict[str, float]


class GenerationResult(TypedDict):
    text: str
    finish_reason: str | None


class LifestylePlanItem(TypedDict):
    id: str
    title: str
    description: str
    frequency: str
    category: str
    completed: bool
    linked_recommendation_id: str
