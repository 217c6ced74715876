import json
import unittest

from genetic_models import GeneticMarker
from genetic_parser import (
    UNSUPPORTED_FORMAT_ERROR,
    generate_sample_data,
    merge_markers,
    normalize_marker,
    parse_genetic_data,
    validate_markers,
)


class NormalizeMarkerTests(unittest.TestCase):
    def test_aliases_are_resolved_and_case_normalized(self) -> None:
        marker = normalize_marker({"snp": "RS123", "call": "ag", "geneSymbol": "cyp2d6", "chrom": "22", "pos": "42"})
        self.assertIsNotNone(marker)
        assert marker is not None
        self.assertEqual(marker.rsid, "rs123")
        self.assertEqual(marker.genotype, "AG")
        self.assertEqual(marker.gene, "CYP2D6")
        self.assertEqual(marker.chromosome, "22")
        self.assertEqual(marker.position, 42)

    def test_rejects_rsids_that_are_not_rs_digits(self) -> None:
        for rsid in ("rs", "rs12a", "i3000001", "12345", "rs 12"):
            self.assertIsNone(normalize_marker({"rsid": rsid, "genotype": "AG"}), rsid)

    def test_rejects_invalid_genotypes(self) -> None:
        for genotype in ("", "AGT", "--", "00", "I", "D", "A/G"):
            self.assertIsNone(normalize_marker({"rsid": "rs1", "genotype": genotype}), genotype)

    def test_single_allele_genotype_is_accepted(self) -> None:
        marker = normalize_marker({"rsid": "rs1", "genotype": "t"})
        self.assertIsNotNone(marker)
        assert marker is not None
        self.assertEqual(marker.genotype, "T")
        self.assertEqual(marker.gene, "")

    def test_non_dict_input_is_rejected(self) -> None:
        self.assertIsNone(normalize_marker(["rs1", "AG"]))
        self.assertIsNone(normalize_marker(None))


class JsonDialectTests(unittest.TestCase):
    def test_array_of_well_formed_markers_round_trips(self) -> None:
        records = [
            {"rsid": "RS1065852", "genotype": "ct", "gene": "cyp2d6"},
            {"rsID": "rs4244285", "gt": "gg", "gene": "cyp2c19"},
            {"id": "rs9923231", "allele": "aa"},
        ]
        result = parse_genetic_data(json.dumps(records))
        self.assertTrue(result.success)
        self.assertEqual(result.format, "json")
        self.assertEqual([m.rsid for m in result.markers], ["rs1065852", "rs4244285", "rs9923231"])
        self.assertEqual([m.genotype for m in result.markers], ["CT", "GG", "AA"])
        self.assertEqual([m.gene for m in result.markers], ["CYP2D6", "CYP2C19", ""])

    def test_invalid_array_entries_are_skipped_with_warning(self) -> None:
        records = [
            {"rsid": "rs1", "genotype": "AG"},
            {"rsid": "bad", "genotype": "AG"},
            "not-an-object",
        ]
        result = parse_genetic_data(json.dumps(records))
        self.assertTrue(result.success)
        self.assertEqual(len(result.markers), 1)
        self.assertEqual(
            result.warnings,
            ["Skipped invalid entry at index 1", "Skipped invalid entry at index 2"],
        )

    def test_keyed_object_with_plain_and_nested_values(self) -> None:
        payload = {
            "rs9923231": "aa",
            "rs1799853": {"genotype": "CT", "gene": "cyp2c9"},
            "source": "lab export",
        }
        result = parse_genetic_data(json.dumps(payload))
        self.assertTrue(result.success)
        by_rsid = {m.rsid: m for m in result.markers}
        self.assertEqual(by_rsid["rs9923231"].genotype, "AA")
        self.assertEqual(by_rsid["rs1799853"].gene, "CYP2C9")
        self.assertEqual(len(result.markers), 2)

    def test_keyed_object_nested_rsid_overrides_key(self) -> None:
        result = parse_genetic_data(json.dumps({"rs1": {"rsid": "rs2", "genotype": "CT"}}))
        self.assertEqual([m.rsid for m in result.markers], ["rs2"])

    def test_keyed_object_plain_value_is_still_validated(self) -> None:
        result = parse_genetic_data(json.dumps({"rs1": "AG", "rsX": "AG", "rs2": "ZZ"}))
        self.assertEqual([m.rsid for m in result.markers], ["rs1"])
        self.assertEqual(len(result.warnings), 2)

    def test_json_without_valid_markers_falls_through_to_failure(self) -> None:
        result = parse_genetic_data(json.dumps([{"rsid": "nope", "genotype": "AG"}]))
        self.assertFalse(result.success)
        self.assertEqual(result.markers, [])
        self.assertEqual(result.errors, [UNSUPPORTED_FORMAT_ERROR])

    def test_scalar_json_is_not_a_marker_set(self) -> None:
        result = parse_genetic_data("42")
        self.assertFalse(result.success)


class VcfDialectTests(unittest.TestCase):
    def test_vcf_lite_lines_become_markers(self) -> None:
        content = "\n".join(
            [
                "##fileformat=VCFv4.2",
                "#CHROM\tPOS\tID\tREF\tALT",
                "16\t31107689\trs9923231\tC\tT",
                "10\t94942290\trs1799853\tC\tT\t.\tPASS",
                "1\t100\t.\tA\tG",
            ]
        )
        result = parse_genetic_data(content, "upload.vcf")
        self.assertTrue(result.success)
        self.assertEqual(result.format, "vcf")
        self.assertEqual(len(result.markers), 2)
        first = result.markers[0]
        self.assertEqual(first.rsid, "rs9923231")
        self.assertEqual(first.genotype, "CT")
        self.assertEqual(first.chromosome, "16")
        self.assertEqual(first.position, 31107689)
        self.assertEqual(result.warnings, [])

    def test_multi_base_alleles_are_skipped_with_warning(self) -> None:
        content = "1 100 rs1 A G\n1 200 rs2 AT G\n1 300 rsX A G\n"
        result = parse_genetic_data(content)
        self.assertEqual([m.rsid for m in result.markers], ["rs1"])
        self.assertEqual(len(result.warnings), 2)
        self.assertIn("rs2", result.warnings[0])
        self.assertIn("single-base call", result.warnings[0])
        self.assertEqual(result.warnings[1], "Skipped line 3: rsX is not a valid rsid")


class TabDialectTests(unittest.TestCase):
    def test_header_row_with_rsid_and_genotype(self) -> None:
        result = parse_genetic_data("rsid\tgenotype\nrs1065852\tCT")
        self.assertTrue(result.success)
        self.assertEqual(result.format, "tab")
        self.assertEqual(len(result.markers), 1)
        marker = result.markers[0]
        self.assertEqual(marker.rsid, "rs1065852")
        self.assertEqual(marker.gene, "")
        self.assertEqual(marker.genotype, "CT")

    def test_header_resolves_gene_and_allele_columns(self) -> None:
        content = "Gene\trsid\tAllele\nCYP2C19\trs4244285\tAA\nVKORC1\trs9923231\tat\n"
        result = parse_genetic_data(content)
        self.assertEqual(
            [(m.rsid, m.gene, m.genotype) for m in result.markers],
            [("rs4244285", "CYP2C19", "AA"), ("rs9923231", "VKORC1", "AT")],
        )

    def test_headerless_rows_infer_columns(self) -> None:
        content = "CYP2D6\trs1065852\tCT\nrs4244285 GG CYP2C19\nrs1\n"
        result = parse_genetic_data(content)
        self.assertEqual(
            [(m.rsid, m.gene, m.genotype) for m in result.markers],
            [("rs1065852", "CYP2D6", "CT"), ("rs4244285", "CYP2C19", "GG")],
        )

    def test_headerless_rows_still_validate_rsid(self) -> None:
        result = parse_genetic_data("rsfoo\tAG\nrs77\tAG\n")
        self.assertEqual([m.rsid for m in result.markers], ["rs77"])

    def test_short_data_rows_are_skipped(self) -> None:
        result = parse_genetic_data("rsid\tgene\tgenotype\nrs1\tABC\nrs2\tDEF\tGG\n")
        self.assertEqual([m.rsid for m in result.markers], ["rs2"])


class DetectionTests(unittest.TestCase):
    def test_unparseable_prose_fails_cleanly(self) -> None:
        content = (
            "Dear diary, today I went to the market and bought apples.\n"
            "Nothing about genetics here, just a long paragraph of prose."
        )
        result = parse_genetic_data(content)
        self.assertFalse(result.success)
        self.assertEqual(result.markers, [])
        self.assertTrue(result.errors)
        self.assertEqual(result.errors[0], UNSUPPORTED_FORMAT_ERROR)

    def test_deeply_nested_json_fails_without_raising(self) -> None:
        result = parse_genetic_data("[" * 200000)
        self.assertFalse(result.success)
        self.assertEqual(result.markers, [])
        self.assertEqual(result.errors, [UNSUPPORTED_FORMAT_ERROR])

    def test_json_wins_before_other_dialects(self) -> None:
        result = parse_genetic_data('[{"rsid": "rs1", "genotype": "AG"}]', "data.tsv")
        self.assertEqual(result.format, "json")
        self.assertTrue(any("suggests tab" in warning for warning in result.warnings))

    def test_filename_hint_does_not_change_detection(self) -> None:
        result = parse_genetic_data("rsid\tgenotype\nrs1\tAG", "markers.json")
        self.assertTrue(result.success)
        self.assertEqual(result.format, "tab")

    def test_bad_rsids_rejected_in_every_dialect(self) -> None:
        inputs = [
            json.dumps([{"rsid": "rs12x", "genotype": "AG"}]),
            "1 100 rs12x A G",
            "rsid\tgenotype\nrs12x\tAG",
        ]
        for content in inputs:
            result = parse_genetic_data(content)
            self.assertFalse(result.success, content)
            self.assertEqual(result.markers, [])


class MarkerCollectionTests(unittest.TestCase):
    def test_merge_markers_last_write_wins(self) -> None:
        first = [GeneticMarker("rs1", "AA"), GeneticMarker("rs2", "CC")]
        second = [GeneticMarker("rs1", "AG", gene="GENE1")]
        merged = merge_markers(first, second)
        self.assertEqual([m.rsid for m in merged], ["rs1", "rs2"])
        self.assertEqual(merged[0].genotype, "AG")
        self.assertEqual(merged[0].gene, "GENE1")

    def test_validate_markers_reports_reasons(self) -> None:
        valid, invalid = validate_markers(
            [GeneticMarker("rs1", "AG"), GeneticMarker("x1", "AG"), GeneticMarker("rs2", "NN")]
        )
        self.assertEqual([m.rsid for m in valid], ["rs1"])
        self.assertEqual([reason for _, reason in invalid], ["Invalid rsid format", "Invalid genotype format"])

    def test_sample_presets(self) -> None:
        self.assertEqual(len(generate_sample_data("healthy")), 4)
        diabetes = generate_sample_data("diabetes_risk")
        self.assertIn("rs7903146", [m.rsid for m in diabetes])
        self.assertEqual(len(generate_sample_data("unknown-preset")), 4)


if __name__ == "__main__":
    unittest.main()
