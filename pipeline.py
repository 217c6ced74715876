# /// script
# requires-python = ">=3.12"
# dependencies = []
# ///

from __future__ import annotations

import argparse
import hashlib
import platform
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Sequence

from run_utils import resolve_base_name, run_root, update_summary

RULE_TABLE = Path(__file__).resolve().parent / "data" / "genetic_rules.csv"


def _run_command(args: Sequence[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        args,
        text=True,
        check=True,
        capture_output=False,
    )


def _safe_version(cmd: Sequence[str]) -> str | None:
    try:
        result = subprocess.run(cmd, text=True, check=True, capture_output=True)
    except (FileNotFoundError, subprocess.CalledProcessError):
        return None
    return result.stdout.strip() or result.stderr.strip() or None


def _rule_table_digest() -> str | None:
    if not RULE_TABLE.exists():
        return None
    return hashlib.sha256(RULE_TABLE.read_bytes()).hexdigest()[:16]


def _collect_manifest() -> dict[str, str | None]:
    return {
        "rule_table_sha256": _rule_table_digest(),
        "timestamp": datetime.now().isoformat(timespec="seconds"),
        "python_version": platform.python_version(),
        "platform": platform.platform(),
        "uv_version": _safe_version(["uv", "--version"]),
        "git_commit": _safe_version(["git", "rev-parse", "--short", "HEAD"]),
    }


def _ensure_input_file(input_path: str) -> Path:
    input_file = Path(input_path)
    if not input_file.exists():
        raise FileNotFoundError(f"Input file not found: {input_file}")
    return input_file


def build_steps(
    input_path: str | None,
    base_name: str,
    *,
    sample: str | None,
    enrich: bool,
    max_recommendations: int | None,
) -> list[tuple[str, str, list[str]]]:
    if sample:
        qc_args = ["--sample", sample, "--base-name", base_name]
    else:
        qc_args = [str(input_path), "--base-name", base_name]
    evaluate_args = [base_name]
    if enrich:
        evaluate_args.append("--enrich")
    if max_recommendations is not None:
        evaluate_args.extend(["--max-recommendations", str(max_recommendations)])
    return [
        ("Parse & QC", "qc_analysis.py", qc_args),
        ("Recommendations", "evaluate_genetics.py", evaluate_args),
        ("Report", "generate_report.py", [base_name]),
    ]


def run_pipeline(
    input_path: str | None,
    base_name: str,
    *,
    sex: str | None,
    age: int | None,
    medications: list[str] | None,
    sample: str | None = None,
    enrich: bool = False,
    max_recommendations: int | None = None,
) -> None:
    if not sample:
        _ensure_input_file(str(input_path))
    run_dir = run_root(base_name)
    update_summary(
        run_dir,
        {
            "run_folder": str(run_dir),
            "run_manifest": _collect_manifest(),
            "reported_sex": sex,
            "reported_age": age,
            "reported_medications": medications or [],
        },
    )

    for label, script, extra_args in build_steps(
        input_path,
        base_name,
        sample=sample,
        enrich=enrich,
        max_recommendations=max_recommendations,
    ):
        print(f"\n==> {label}: {script}")
        _run_command(["uv", "run", "--script", script, *extra_args])


def main() -> int:
    parser = argparse.ArgumentParser(description="Parse genotype data and generate recommendations end-to-end.")
    parser.add_argument("input_path", nargs="?", help="JSON, VCF-lite or tab-delimited genotype file")
    parser.add_argument(
        "--sample",
        choices=["healthy", "diabetes_risk", "brca_like"],
        help="Use a built-in sample marker set instead of a file",
    )
    parser.add_argument("--sex", choices=["female", "male"], help="Reported sex")
    parser.add_argument("--age", type=int, help="Reported age in years (optional)")
    parser.add_argument(
        "--medication",
        action="append",
        help="Current medication; repeat for several (raises confidence of related drug findings)",
    )
    parser.add_argument(
        "--enrich",
        action="store_true",
        help="Request plain-language explanations from Gemini (needs GEMINI_API_KEY)",
    )
    parser.add_argument("--max-recommendations", type=int, help="Cap on recommendations kept")
    args = parser.parse_args()

    if not args.input_path and not args.sample:
        parser.error("provide an input file or --sample")

    base_name = resolve_base_name(args.input_path or args.sample)
    try:
        run_pipeline(
            args.input_path,
            base_name,
            sex=args.sex,
            age=args.age,
            medications=args.medication,
            sample=args.sample,
            enrich=args.enrich,
            max_recommendations=args.max_recommendations,
        )
    except FileNotFoundError as exc:
        print(str(exc))
        return 1
    except subprocess.CalledProcessError as exc:
        print(f"Pipeline step failed: {' '.join(exc.cmd)} (exit {exc.returncode})")
        return exc.returncode or 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
