# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "polars",
# ]
# ///

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Sequence

import polars as pl

from genetic_models import GeneticMarker
from genetic_parser import generate_sample_data, parse_genetic_data
from run_utils import read_text_input, resolve_base_name, run_root, update_summary, write_json
from state_store import add_markers, load_state, save_state

_MARKER_SCHEMA = {
    "rsid": pl.String,
    "gene": pl.String,
    "genotype": pl.String,
    "chromosome": pl.String,
    "position": pl.Int64,
}


def _normalize_chromosome(expr: pl.Expr) -> pl.Expr:
    upper = expr.cast(pl.String).str.strip_chars().str.to_uppercase().str.replace(r"^CHR", "")
    return (
        pl.when(upper.is_null() | (upper == ""))
        .then(pl.lit("Unknown"))
        .when(upper.is_in(["23", "X"]))
        .then(pl.lit("X"))
        .when(upper.is_in(["24", "Y"]))
        .then(pl.lit("Y"))
        .when(upper.is_in(["25", "MT", "M"]))
        .then(pl.lit("MT"))
        .otherwise(upper)
    )


def markers_frame(markers: Sequence[GeneticMarker]) -> pl.DataFrame:
    columns: dict[str, list[Any]] = {name: [] for name in _MARKER_SCHEMA}
    for marker in markers:
        columns["rsid"].append(marker.rsid)
        columns["gene"].append(marker.gene)
        columns["genotype"].append(marker.genotype)
        columns["chromosome"].append(marker.chromosome)
        columns["position"].append(marker.position)
    return pl.DataFrame(columns, schema=_MARKER_SCHEMA)


def summarize_markers(markers: Sequence[GeneticMarker]) -> dict[str, Any]:
    """QC summary of a parsed marker list (before duplicate rsids are merged)."""
    df = markers_frame(markers).with_columns(
        _normalize_chromosome(pl.col("chromosome")).alias("chr_norm"),
        pl.col("genotype").str.len_chars().alias("allele_count"),
    )
    diploid_mask = pl.col("allele_count") == 2
    df = df.with_columns(
        diploid_flag=diploid_mask,
        hetero_flag=diploid_mask
        & (pl.col("genotype").str.slice(0, 1) != pl.col("genotype").str.slice(1, 1)),
        ambiguous_flag=pl.col("genotype").str.contains(r"^([AT]{2}|[CG]{2})$"),
    )

    total_count = df.height
    diploid_count = df.filter(pl.col("diploid_flag")).height
    hetero_count = df.filter(pl.col("hetero_flag")).height
    heterozygosity_rate = (hetero_count / diploid_count) if diploid_count else 0.0

    dup_df = df.group_by("rsid").len().filter(pl.col("len") > 1).sort("rsid")
    genes = (
        df.filter(pl.col("gene") != "")
        .select(pl.col("gene").unique())
        .to_series()
        .sort()
        .to_list()
    )
    by_chromosome = (
        df.group_by("chr_norm")
        .agg(pl.len().alias("total"))
        .sort("chr_norm")
        .to_dicts()
    )

    return {
        "total_markers": total_count,
        "unique_rsids": df.select(pl.col("rsid").n_unique()).item() if total_count else 0,
        "diploid_calls": diploid_count,
        "single_allele_calls": total_count - diploid_count,
        "heterozygous_count": hetero_count,
        "homozygous_count": diploid_count - hetero_count,
        "heterozygosity_rate": round(heterozygosity_rate, 4),
        "ambiguous_snp_count": df.filter(pl.col("ambiguous_flag")).height,
        "duplicate_rsid_count": dup_df.height,
        "duplicate_rsid_examples": dup_df.select("rsid").head(5).to_series().to_list(),
        "annotated_genes": genes,
        "markers_by_chromosome": by_chromosome,
    }


def process_genetic_file(input_path: str, base_name: str, *, sample: str | None = None) -> bool:
    if sample:
        print(f"Loading sample preset '{sample}'...")
        markers = generate_sample_data(sample)
        detected_format = "sample"
        warnings: list[str] = []
    else:
        print(f"Processing {input_path}...")
        content = read_text_input(Path(input_path))
        result = parse_genetic_data(content, input_path)
        if not result.success:
            for error in result.errors:
                print(f"Error: {error}")
            return False
        markers = result.markers
        detected_format = result.format
        warnings = result.warnings

    for warning in warnings:
        print(f"Warning: {warning}")

    qc = summarize_markers(markers)
    print(f"Detected format: {detected_format}")
    print(f"Markers parsed: {qc['total_markers']}")
    print(f"Skipped rows: {len(warnings)}")
    print(f"Heterozygosity rate: {qc['heterozygosity_rate']:.2%}")
    if qc["duplicate_rsid_count"]:
        print(f"Duplicate rsIDs (last value kept): {qc['duplicate_rsid_count']}")

    run_dir = run_root(base_name)
    state_path = run_dir / "state.json"
    state = add_markers(load_state(state_path), markers)
    save_state(state_path, state)

    markers_path = run_dir / "markers.json"
    write_json(markers_path, state["genetic_markers"])
    update_summary(
        run_dir,
        {
            "base_name": base_name,
            "input_file": input_path,
            "detected_format": detected_format,
            "parse_warnings": warnings,
            "markers_path": str(markers_path),
            "state_path": str(state_path),
            **qc,
        },
    )
    print(f"Saved {len(state['genetic_markers'])} markers to {markers_path}")
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description="Parse a genotype upload and summarize marker QC.")
    parser.add_argument("input_path", nargs="?", help="JSON, VCF-lite or tab-delimited genotype file")
    parser.add_argument("--base-name", help="Run folder name (defaults to the input file stem)")
    parser.add_argument(
        "--sample",
        choices=["healthy", "diabetes_risk", "brca_like"],
        help="Load a built-in sample marker set instead of a file",
    )
    args = parser.parse_args()

    base_name = args.base_name or resolve_base_name(args.input_path or args.sample)
    if not args.sample:
        if not args.input_path or not Path(args.input_path).exists():
            print(f"Input file not found: {args.input_path}")
            return 1
    ok = process_genetic_file(args.input_path or "", base_name, sample=args.sample)
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
