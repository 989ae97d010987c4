#!/usr/bin/env python3

"""
Unit tests for the count table and GFF3 annotation parsers.

Covers header validation, tolerant numeric parsing, line ending handling,
attribute decoding and field-level merging of repeated annotation records.
"""

import unittest
import sys
import os

# Add the parent directory to the path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from expression_pipeline.core.exceptions import FormatError, NonTabularPayloadError, ParseError
from expression_pipeline.core.parsers import (
    AnnotationParser, CountTableParser, looks_like_html, parse_annotation,
    parse_counts, parse_length, safe_parse_count
)

HEADER = "Geneid\tChr\tStart\tEnd\tStrand\tLength\tA_1\tA_2\tB_1"

COUNTS = "\n".join([
    "# Program:featureCounts v2.0.1",
    HEADER,
    "g1\tchr1\t1\t100\t+\t100\t10\t20\t5",
    "",
    "g2\tchr1\t200\t399\t-\t200\tNA\t4\t6",
    "g3\tchr2\t5\t50\t.\tunknown\t1\t2\t3",
]) + "\n"

GFF = "\n".join([
    "##gff-version 3",
    "chr1\tRefSeq\tgene\t1\t100\t.\t+\t.\tID=gene-LT_001;locus_tag=LT_001;product=DNA%20gyrase%20subunit%20A",
    "chr1\tRefSeq\tCDS\t1\t100\t.\t+\t0\tID=cds-LT_001;locus_tag=LT_001;Name=gyrA",
    "chr1\tRefSeq\tgene\t200\t400\t.\t-\t.\tID=gene-2;description=Putative lipase;gene=lipA",
    "chr1\tRefSeq\tregion\t1\t5000\t.\t+\t.\tName=chr1",
    "chr1\tRefSeq\tgene\t500",
    "chr1\tRefSeq\tgene\t600\t700\t.\t+\t.\tlocus_tag=LT_003",
]) + "\n"


class TestSafeParsing(unittest.TestCase):
    """Test the numeric guard functions."""

    def test_safe_parse_count(self):
        self.assertEqual(safe_parse_count("12"), 12.0)
        self.assertEqual(safe_parse_count("3.5"), 3.5)
        self.assertEqual(safe_parse_count(" 7 "), 7.0)
        self.assertEqual(safe_parse_count("NA"), 0.0)
        self.assertEqual(safe_parse_count(""), 0.0)
        self.assertEqual(safe_parse_count(None), 0.0)
        self.assertEqual(safe_parse_count("nan"), 0.0)
        self.assertEqual(safe_parse_count("inf"), 0.0)
        self.assertEqual(safe_parse_count("-4"), 0.0)

    def test_parse_length(self):
        self.assertEqual(parse_length("1500"), 1500.0)
        self.assertIsNone(parse_length("unknown"))
        self.assertIsNone(parse_length(None))
        self.assertIsNone(parse_length("nan"))

    def test_only_plain_numbers_are_counts(self):
        self.assertEqual(safe_parse_count("1_000"), 0.0)
        self.assertEqual(safe_parse_count("0x10"), 0.0)
        self.assertEqual(safe_parse_count("1e3"), 1000.0)
        self.assertEqual(safe_parse_count(".5"), 0.5)
        self.assertEqual(safe_parse_count("+2"), 2.0)
        self.assertEqual(safe_parse_count("1e999"), 0.0)
        self.assertIsNone(parse_length("1_500"))
        self.assertEqual(parse_length("1.5e3"), 1500.0)

    def test_looks_like_html(self):
        self.assertTrue(looks_like_html("<!DOCTYPE html>\n<html><body>404</body></html>"))
        self.assertTrue(looks_like_html("  <html lang='en'>"))
        self.assertFalse(looks_like_html(HEADER))


class TestCountTableParser(unittest.TestCase):
    """Test count table parsing."""

    def test_parse_structure(self):
        table = parse_counts(COUNTS)

        self.assertEqual(table.gene_ids, ["g1", "g2", "g3"])
        self.assertEqual(table.sample_labels, ["A_1", "A_2", "B_1"])
        self.assertEqual([s.index for s in table.samples], [0, 1, 2])
        self.assertEqual(table.conditions, ["A", "B"])

        g1 = table.get_gene("g1")
        self.assertEqual(g1.chrom, "chr1")
        self.assertEqual(g1.start, "1")
        self.assertEqual(g1.end, "100")
        self.assertEqual(g1.strand, "+")
        self.assertEqual(g1.length, 100.0)
        self.assertEqual(g1.counts, (10.0, 20.0, 5.0))

    def test_every_gene_has_one_count_per_sample(self):
        table = parse_counts(COUNTS)
        for gene in table.genes:
            self.assertEqual(len(gene.counts), len(table.samples))

    def test_malformed_count_is_zeroed(self):
        """A count of 'NA' becomes 0 and later rows are still parsed."""
        table = parse_counts(COUNTS)
        self.assertEqual(table.get_gene("g2").counts, (0.0, 4.0, 6.0))
        self.assertIsNotNone(table.get_gene("g3"))

    def test_unparsable_length(self):
        table = parse_counts(COUNTS)
        self.assertIsNone(table.get_gene("g3").length)

    def test_windows_line_endings(self):
        self.assertEqual(parse_counts(COUNTS.replace("\n", "\r\n")), parse_counts(COUNTS))

    def test_reparse_is_identical(self):
        self.assertEqual(parse_counts(COUNTS), parse_counts(COUNTS))

    def test_header_too_narrow(self):
        text = "Geneid\tChr\tStart\tEnd\tStrand\tLength\ng1\tchr1\t1\t100\t+\t100\n"
        with self.assertRaises(FormatError) as ctx:
            parse_counts(text)
        self.assertEqual(ctx.exception.line_number, 1)

    def test_header_only(self):
        with self.assertRaises(FormatError):
            parse_counts("# comment\n" + HEADER + "\n\n")

    def test_empty_input(self):
        with self.assertRaises(FormatError):
            parse_counts("")

    def test_html_payload(self):
        with self.assertRaises(NonTabularPayloadError) as ctx:
            parse_counts("<!DOCTYPE html>\n<html><body>Not Found</body></html>")
        self.assertIsInstance(ctx.exception, FormatError)
        self.assertIsInstance(ctx.exception, ParseError)

    def test_short_rows_are_padded(self):
        text = HEADER + "\ng1\tchr1\t1\t100\t+\t100\t10\n"
        table = parse_counts(text)
        self.assertEqual(table.get_gene("g1").counts, (10.0, 0.0, 0.0))

    def test_long_rows_are_truncated(self):
        text = HEADER + "\ng1\tchr1\t1\t100\t+\t100\t1\t2\t3\t4\t5\n"
        table = parse_counts(text)
        self.assertEqual(table.get_gene("g1").counts, (1.0, 2.0, 3.0))

    def test_row_with_only_identifier(self):
        table = parse_counts(HEADER + "\ng1\n")
        gene = table.get_gene("g1")
        self.assertEqual(gene.chrom, "")
        self.assertIsNone(gene.length)
        self.assertEqual(gene.counts, (0.0, 0.0, 0.0))

    def test_duplicate_gene_keeps_first_row(self):
        text = HEADER + "\ng1\tchr1\t1\t100\t+\t100\t1\t2\t3\ng1\tchr1\t1\t100\t+\t100\t7\t8\t9\n"
        with self.assertLogs(level='WARNING'):
            table = parse_counts(text)
        self.assertEqual(table.gene_ids, ["g1"])
        self.assertEqual(table.get_gene("g1").counts, (1.0, 2.0, 3.0))

    def test_row_without_identifier_is_skipped(self):
        text = HEADER + "\n\tchr1\t1\t100\t+\t100\t1\t2\t3\ng2\tchr1\t1\t100\t+\t100\t1\t2\t3\n"
        table = parse_counts(text)
        self.assertEqual(table.gene_ids, ["g2"])

    def test_zeroed_counts_are_logged(self):
        with self.assertLogs(level='WARNING') as logs:
            parse_counts(COUNTS)
        self.assertTrue(any("unparsable count" in message for message in logs.output))

    def test_underscore_count_is_zeroed(self):
        text = HEADER + "\ng1\tchr1\t1\t100\t+\t100\t1_000\t2\t3\n"
        with self.assertLogs(level='WARNING') as logs:
            table = parse_counts(text)
        self.assertEqual(table.get_gene("g1").counts, (0.0, 2.0, 3.0))
        self.assertTrue(any("Replaced 1 unparsable" in message for message in logs.output))

    def test_unicode_line_separators_inside_fields(self):
        """Only newline characters end a row."""
        text = HEADER + "\ng1\tchr\x0c1\t1\t100\t+\t100\t1\t2\t3\ng2\tchr\x1e2\t1\t100\t-\t100\t4\t5\t6\r\n"
        table = parse_counts(text)
        self.assertEqual(table.gene_ids, ["g1", "g2"])
        self.assertEqual(table.get_gene("g1").chrom, "chr\x0c1")
        self.assertEqual(table.get_gene("g2").counts, (4.0, 5.0, 6.0))

    def test_labels_without_separator(self):
        text = "Geneid\tChr\tStart\tEnd\tStrand\tLength\tControl\tTreated_1\ng1\tc\t1\t2\t+\t2\t1\t2\n"
        table = parse_counts(text)
        self.assertEqual(table.conditions, ["Control", "Treated"])

    def test_custom_separator(self):
        text = "Geneid\tChr\tStart\tEnd\tStrand\tLength\tWT-1\tKO-1\ng1\tc\t1\t2\t+\t2\t1\t2\n"
        table = CountTableParser(separator="-").parse(text)
        self.assertEqual(table.conditions, ["KO", "WT"])

    def test_source_in_error(self):
        with self.assertRaises(FormatError) as ctx:
            CountTableParser(source="sense.tsv").parse(HEADER)
        self.assertIn("sense.tsv", str(ctx.exception))


class TestAnnotationParser(unittest.TestCase):
    """Test GFF3 annotation parsing."""

    def setUp(self):
        self.annotations = parse_annotation(GFF)

    def test_identifiers(self):
        self.assertEqual(set(self.annotations), {"LT_001", "gene-2", "LT_003"})

    def test_repeated_identifier_merges_fields(self):
        entry = self.annotations["LT_001"]
        self.assertEqual(entry.product, "DNA gyrase subunit A")
        self.assertEqual(entry.gene_name, "gyrA")
        self.assertEqual(entry.biotype, "CDS")

    def test_fallback_attributes(self):
        entry = self.annotations["gene-2"]
        self.assertEqual(entry.product, "Putative lipase")
        self.assertEqual(entry.gene_name, "lipA")
        self.assertEqual(entry.biotype, "gene")

    def test_default_product(self):
        entry = self.annotations["LT_003"]
        self.assertEqual(entry.product, "Hypothetical protein")
        self.assertIsNone(entry.gene_name)

    def test_custom_default_product(self):
        annotations = AnnotationParser(default_product="Unknown").parse(GFF)
        self.assertEqual(annotations["LT_003"].product, "Unknown")

    def test_product_then_name_records(self):
        """Product from the first record and name from the second end up together."""
        text = (
            "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tlocus_tag=X1;product=Kinase\n"
            "chr1\tsrc\tCDS\t1\t10\t.\t+\t0\tlocus_tag=X1;Name=kinA\n"
        )
        entry = parse_annotation(text)["X1"]
        self.assertEqual(entry.product, "Kinase")
        self.assertEqual(entry.gene_name, "kinA")

    def test_locus_tag_preferred_over_id(self):
        text = "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=gene-1;locus_tag=T1\n"
        self.assertEqual(list(parse_annotation(text)), ["T1"])

    def test_invalid_percent_encoding_kept_raw(self):
        text = (
            "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=a;product=50%zz\n"
            "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=b;product=bad%E0%A4%A\n"
            "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=c;product=caf%C3%A9\n"
        )
        annotations = parse_annotation(text)
        self.assertEqual(annotations["a"].product, "50%zz")
        self.assertEqual(annotations["b"].product, "bad%E0%A4%A")
        self.assertEqual(annotations["c"].product, "café")

    def test_mixed_valid_and_invalid_escapes_kept_raw(self):
        text = (
            "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=a;product=GC%20content%zz\n"
            "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=b;product=50%25 done%\n"
        )
        annotations = parse_annotation(text)
        self.assertEqual(annotations["a"].product, "GC%20content%zz")
        self.assertEqual(annotations["b"].product, "50%25 done%")

    def test_unicode_line_separators_inside_attributes(self):
        text = (
            "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=a;product=alpha\u2028beta;Name=xyz\n"
            "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=b;product=one\x85two;Name=abc\r\n"
        )
        annotations = parse_annotation(text)
        self.assertEqual(annotations["a"].product, "alpha\u2028beta")
        self.assertEqual(annotations["a"].gene_name, "xyz")
        self.assertEqual(annotations["b"].product, "one\x85two")
        self.assertEqual(annotations["b"].gene_name, "abc")

    def test_value_containing_equals(self):
        text = "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=a;product=ratio=1:2\n"
        self.assertEqual(parse_annotation(text)["a"].product, "ratio=1:2")

    def test_empty_values_ignored(self):
        text = "chr1\tsrc\tgene\t1\t10\t.\t+\t.\tID=a;product=;Name= ;bare\n"
        entry = parse_annotation(text)["a"]
        self.assertEqual(entry.product, "Hypothetical protein")
        self.assertIsNone(entry.gene_name)

    def test_windows_line_endings(self):
        self.assertEqual(parse_annotation(GFF.replace("\n", "\r\n")), self.annotations)

    def test_html_payload(self):
        self.assertEqual(parse_annotation("<!DOCTYPE html>\n<html><body>404</body></html>"), {})

    def test_empty_input(self):
        self.assertEqual(parse_annotation(""), {})

    def test_fasta_section_ignored(self):
        text = GFF + "##FASTA\n>chr1\nACGT\tA\tB\tC\tD\tE\tF\tG\tID=seq\n"
        self.assertNotIn("seq", parse_annotation(text))


if __name__ == '__main__':
    unittest.main()
