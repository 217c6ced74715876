from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable

import polars as pl

from genetic_models import CATEGORIES, CONFIDENCE_LEVELS, GeneticRule

RULES_FILE = "genetic_rules.csv"
# Source checkouts keep data/ beside the modules; installs put it under the prefix.
RULES_SEARCH_ROOTS = (Path(__file__).resolve().parent, Path(sys.prefix))


def find_rules_path(roots: Iterable[Path] = RULES_SEARCH_ROOTS) -> Path:
    candidates = [root / "data" / RULES_FILE for root in roots]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


RULES_PATH = find_rules_path()

_RULE_SCHEMA = {
    "id": pl.String,
    "gene": pl.String,
    "rsids": pl.String,
    "genotype_pattern": pl.String,
    "category": pl.String,
    "implication": pl.String,
    "recommendation": pl.String,
    "confidence": pl.String,
    "weight": pl.Float64,
    "evidence_url": pl.String,
}

_RULES_CACHE: list[GeneticRule] | None = None


def _split_list(value: object) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in str(value).split(";") if item.strip())


def _row_to_rule(row: dict[str, object]) -> tuple[GeneticRule | None, str | None]:
    rule_id = str(row.get("id") or "").strip()
    if not rule_id:
        return None, "missing id"
    rsids = tuple(rsid.lower() for rsid in _split_list(row.get("rsids")))
    if not rsids:
        return None, f"{rule_id}: no rsids"
    patterns = _split_list(row.get("genotype_pattern"))
    if not patterns:
        return None, f"{rule_id}: no genotype pattern"
    category = str(row.get("category") or "").strip().lower()
    if category not in CATEGORIES:
        return None, f"{rule_id}: unknown category {category!r}"
    confidence = str(row.get("confidence") or "").strip().lower()
    if confidence not in CONFIDENCE_LEVELS:
        return None, f"{rule_id}: unknown confidence {confidence!r}"
    weight = row.get("weight")
    if not isinstance(weight, (int, float)) or not 0.0 <= weight <= 1.0:
        return None, f"{rule_id}: weight {weight!r} outside [0, 1]"

    rule = GeneticRule(
        id=rule_id,
        gene=str(row.get("gene") or "").strip().upper(),
        rsids=rsids,
        genotype_pattern=patterns[0] if len(patterns) == 1 else patterns,
        category=category,
        implication=str(row.get("implication") or ""),
        recommendation=str(row.get("recommendation") or ""),
        confidence=confidence,
        weight=float(weight),
        evidence_url=(str(row["evidence_url"]) if row.get("evidence_url") else None),
    )
    return rule, None


def load_rule_frame(path: Path = RULES_PATH) -> pl.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Missing genetic rule table: {path}")
    return pl.read_csv(path, schema_overrides=_RULE_SCHEMA)


def load_rules(path: Path | None = None) -> list[GeneticRule]:
    """Load the rule table in file order.

    Rows that do not describe a usable rule are skipped with a warning. The
    default table is read once and cached.
    """
    global _RULES_CACHE
    if path is None and _RULES_CACHE is not None:
        return _RULES_CACHE

    frame = load_rule_frame(path or RULES_PATH)
    rules: list[GeneticRule] = []
    seen: set[str] = set()
    for row in frame.iter_rows(named=True):
        rule, problem = _row_to_rule(row)
        if rule is None:
            print(f"Warning: skipping rule row ({problem}).")
            continue
        if rule.id in seen:
            print(f"Warning: duplicate rule id {rule.id}; keeping the first definition.")
            continue
        seen.add(rule.id)
        rules.append(rule)

    if path is None:
        _RULES_CACHE = rules
    return rules


def get_rule_by_id(rule_id: str, rules: list[GeneticRule] | None = None) -> GeneticRule | None:
    for rule in rules if rules is not None else load_rules():
        if rule.id == rule_id:
            return rule
    return None


def get_rules_by_gene(gene: str, rules: list[GeneticRule] | None = None) -> list[GeneticRule]:
    return [rule for rule in (rules if rules is not None else load_rules()) if rule.gene == gene]


def get_rules_by_category(
    category: str, rules: list[GeneticRule] | None = None
) -> list[GeneticRule]:
    return [
        rule for rule in (rules if rules is not None else load_rules()) if rule.category == category
    ]
