from __future__ import annotations

import json
import re
from pathlib import PurePath
from typing import Any, Iterable, Literal

from genetic_models import GeneticMarker, ParseResult

_RSID_PATTERN = re.compile(r"^rs\d+$", re.IGNORECASE)
_GENOTYPE_PATTERN = re.compile(r"^[ACGT]{1,2}$", re.IGNORECASE)

_RSID_KEYS = ("rsid", "snp", "id", "rsID")
_GENOTYPE_KEYS = ("genotype", "allele", "gt", "call")
_GENE_KEYS = ("gene", "geneSymbol")

_EXTENSION_FORMATS = {
    ".json": "json",
    ".vcf": "vcf",
    ".tsv": "tab",
    ".tab": "tab",
    ".txt": "tab",
}

UNSUPPORTED_FORMAT_ERROR = (
    "Unable to detect file format. Supported formats: JSON, VCF-lite, tab-delimited."
)

JsonShape = Literal["array", "keyed", "unsupported"]


def _first_value(obj: dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = obj.get(key)
        if value:
            return value
    return None


def _coerce_position(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_marker(obj: Any) -> GeneticMarker | None:
    """Normalize a loosely keyed record into a GeneticMarker.

    Returns None when the rsid is not ``rs<digits>`` or the genotype is not one
    or two A/C/G/T letters, so callers can drop the row without failing the
    whole upload.
    """
    if not isinstance(obj, dict):
        return None
    rsid = _first_value(obj, _RSID_KEYS)
    genotype = _first_value(obj, _GENOTYPE_KEYS)
    gene = _first_value(obj, _GENE_KEYS) or ""
    if not isinstance(rsid, str) or not isinstance(genotype, str):
        return None
    rsid = rsid.strip()
    genotype = genotype.strip()
    if not _RSID_PATTERN.match(rsid):
        return None
    if not _GENOTYPE_PATTERN.match(genotype):
        return None
    chromosome = _first_value(obj, ("chromosome", "chrom"))
    note = _first_value(obj, ("note", "comment"))
    return GeneticMarker(
        rsid=rsid.lower(),
        gene=str(gene).strip().upper(),
        genotype=genotype.upper(),
        chromosome=str(chromosome) if chromosome is not None else None,
        position=_coerce_position(_first_value(obj, ("position", "pos"))),
        note=str(note) if note is not None else None,
    )


def _json_shape(parsed: Any) -> JsonShape:
    if isinstance(parsed, list):
        return "array"
    if isinstance(parsed, dict):
        return "keyed"
    return "unsupported"


def _parse_json(content: str) -> ParseResult:
    result = ParseResult(format="json")
    try:
        parsed = json.loads(content)
    except (ValueError, RecursionError):
        result.errors.append("Invalid JSON format")
        return result

    shape = _json_shape(parsed)
    if shape == "array":
        for index, item in enumerate(parsed):
            marker = normalize_marker(item)
            if marker:
                result.markers.append(marker)
            else:
                result.warnings.append(f"Skipped invalid entry at index {index}")
    elif shape == "keyed":
        for key, value in parsed.items():
            if not key.startswith("rs"):
                continue
            if isinstance(value, str):
                marker = normalize_marker({"rsid": key, "genotype": value})
            elif isinstance(value, dict):
                marker = normalize_marker({"rsid": key, **value})
            else:
                marker = None
            if marker:
                result.markers.append(marker)
            else:
                result.warnings.append(f"Skipped invalid entry for {key}")

    result.success = bool(result.markers)
    if not result.success:
        result.errors.append("No valid genetic markers found in JSON")
    return result


def _parse_vcf_lite(content: str) -> ParseResult:
    result = ParseResult(format="vcf")
    header_found = False
    for line_number, raw_line in enumerate(content.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            if line.startswith("#CHROM"):
                header_found = True
            continue
        parts = line.split()
        if len(parts) < 5:
            continue
        chrom, pos, rsid, ref, alt = parts[:5]
        if not rsid.startswith("rs"):
            continue
        marker = normalize_marker(
            {"rsid": rsid, "genotype": f"{ref}{alt}", "chromosome": chrom, "position": pos}
        )
        if marker:
            result.markers.append(marker)
        elif not _RSID_PATTERN.match(rsid):
            result.warnings.append(f"Skipped line {line_number}: {rsid} is not a valid rsid")
        else:
            result.warnings.append(
                f"Skipped line {line_number}: {rsid} {ref}/{alt} is not a single-base call"
            )

    result.success = bool(result.markers)
    if not result.success and header_found:
        result.errors.append("VCF header found but no variant data parsed")
    return result


def _split_row(line: str) -> list[str]:
    if "\t" in line:
        return [part.strip() for part in line.split("\t")]
    return line.split()


def _header_index(headers: list[str], *needles: str) -> int:
    for index, header in enumerate(headers):
        if any(needle in header for needle in needles):
            return index
    return -1


def _parse_tab_delimited(content: str) -> ParseResult:
    result = ParseResult(format="tab")
    headers: list[str] = []
    first_line = True
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        parts = _split_row(line)

        if first_line:
            first_line = False
            lowered = [part.lower() for part in parts]
            if any("rsid" in cell or "genotype" in cell for cell in lowered):
                headers = lowered
                continue

        if headers:
            rsid_idx = _header_index(headers, "rsid", "snp")
            genotype_idx = _header_index(headers, "genotype", "allele")
            gene_idx = _header_index(headers, "gene")
            if rsid_idx < 0 or genotype_idx < 0 or len(parts) <= max(rsid_idx, genotype_idx):
                continue
            record = {
                "rsid": parts[rsid_idx],
                "genotype": parts[genotype_idx],
                "gene": parts[gene_idx] if 0 <= gene_idx < len(parts) else "",
            }
        else:
            if len(parts) < 2:
                continue
            rsid = next((part for part in parts if part.startswith("rs")), None)
            genotype = next((part for part in parts if _GENOTYPE_PATTERN.match(part)), None)
            if not rsid or not genotype:
                continue
            gene = next((part for part in parts if part not in {rsid, genotype}), "")
            record = {"rsid": rsid, "genotype": genotype, "gene": gene}

        marker = normalize_marker(record)
        if marker:
            result.markers.append(marker)

    result.success = bool(result.markers)
    return result


def _filename_warning(filename: str | None, detected: str | None) -> str | None:
    if not filename or not detected:
        return None
    suffix = PurePath(filename).suffix.lower()
    expected = _EXTENSION_FORMATS.get(suffix)
    if expected is None or expected == detected:
        return None
    return f"File extension {suffix} suggests {expected} but content parsed as {detected}"


def parse_genetic_data(content: str, filename: str | None = None) -> ParseResult:
    """Parse uploaded text, trying JSON, then VCF-lite, then tab-delimited.

    The first dialect that yields at least one valid marker wins. ``filename``
    is only used to warn when the extension disagrees with the content.
    """
    for parser in (_parse_json, _parse_vcf_lite, _parse_tab_delimited):
        attempt = parser(content)
        if attempt.success:
            warning = _filename_warning(filename, attempt.format)
            if warning:
                attempt.warnings.append(warning)
            return attempt

    return ParseResult(success=False, errors=[UNSUPPORTED_FORMAT_ERROR])


def validate_markers(
    markers: Iterable[GeneticMarker],
) -> tuple[list[GeneticMarker], list[tuple[GeneticMarker, str]]]:
    valid: list[GeneticMarker] = []
    invalid: list[tuple[GeneticMarker, str]] = []
    for marker in markers:
        if not marker.rsid or not _RSID_PATTERN.match(marker.rsid):
            invalid.append((marker, "Invalid rsid format"))
            continue
        if not marker.genotype or not _GENOTYPE_PATTERN.match(marker.genotype):
            invalid.append((marker, "Invalid genotype format"))
            continue
        valid.append(marker)
    return valid, invalid


def merge_markers(*collections: Iterable[GeneticMarker]) -> list[GeneticMarker]:
    """Union marker collections keyed by rsid; later entries replace earlier ones."""
    merged: dict[str, GeneticMarker] = {}
    for collection in collections:
        for marker in collection:
            merged[marker.rsid] = marker
    return list(merged.values())


_SAMPLE_BASE: list[tuple[str, str, str]] = [
    ("rs1065852", "CYP2D6", "CT"),
    ("rs1799853", "CYP2C9", "CC"),
    ("rs4244285", "CYP2C19", "GG"),
    ("rs776746", "CYP3A5", "AG"),
]

_SAMPLE_PRESETS: dict[str, list[tuple[str, str, str]]] = {
    "healthy": [],
    "diabetes_risk": [
        ("rs7903146", "TCF7L2", "CT"),
        ("rs9939609", "FTO", "AA"),
        ("rs1801282", "PPARG", "GG"),
    ],
    "brca_like": [
        ("rs1799966", "BRCA1", "AG"),
        ("rs144848", "BRCA2", "CT"),
        ("rs17879961", "CHEK2", "CT"),
    ],
}


def generate_sample_data(preset: str = "healthy") -> list[GeneticMarker]:
    extra = _SAMPLE_PRESETS.get(preset, [])
    return [
        GeneticMarker(rsid=rsid, gene=gene, genotype=genotype)
        for rsid, gene, genotype in [*_SAMPLE_BASE, *extra]
    ]
