from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any

INPUT_SUFFIXES = (".json", ".vcf", ".tsv", ".tab", ".txt")


def resolve_base_name(arg: str | None, default: str = "genetic-data") -> str:
    if not arg:
        return default
    base = Path(arg).name
    for suffix in INPUT_SUFFIXES:
        if base.lower().endswith(suffix):
            base = base[: -len(suffix)]
            break
    return base


def run_root(base_name: str) -> Path:
    run_date = date.today().strftime("%Y%m%d")
    root = Path("runs") / run_date / base_name
    root.mkdir(parents=True, exist_ok=True)
    return root


def find_run_dir(base_name: str, run_date: str | None = None) -> Path:
    runs_root = Path("runs")
    if run_date:
        candidate = runs_root / run_date / base_name
        if not candidate.exists():
            raise FileNotFoundError(f"Run folder not found: {candidate}")
        return candidate
    candidates = sorted(runs_root.glob(f"*/{base_name}"), key=lambda p: p.parent.name)
    if not candidates:
        raise FileNotFoundError(f"No run folders found for {base_name}")
    return candidates[-1]


def write_json(path: Path, payload: Any) -> None:
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def load_json(path: Path) -> Any:
    if not path.exists():
        return {}
    raw = path.read_bytes()
    for encoding in ("utf-8-sig", "utf-8", "cp1252"):
        try:
            return json.loads(raw.decode(encoding))
        except (UnicodeDecodeError, json.JSONDecodeError):
            continue
    print(f"Warning: unable to parse JSON at {path}; skipping.")
    return {}


def read_text_input(path: Path) -> str:
    raw = path.read_bytes()
    for encoding in ("utf-8-sig", "utf-8"):
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode("cp1252", errors="replace")


def load_summary(root: Path) -> dict[str, Any]:
    summary = load_json(root / "summary.json")
    return summary if isinstance(summary, dict) else {}


def update_summary(root: Path, updates: dict[str, Any]) -> None:
    summary = load_summary(root)
    summary.update(updates)
    write_json(root / "summary.json", summary)
