#!/usr/bin/env python3

"""
Text parsers for count tables and genome annotations.

Handles featureCounts-style tab-delimited count matrices and GFF3
annotation records. Both parsers work on text already read into memory
and keep no state between calls.
"""

import logging
import math
import re
from typing import Dict, Iterator, List, Optional, Sequence, Tuple
from urllib.parse import unquote

from .config import DEFAULT_PRODUCT
from .data_structures import (
    AnnotationEntry, CountTable, GeneRecord, SampleColumn, merge_annotation
)
from .exceptions import FormatError, NonTabularPayloadError

# Geneid, Chr, Start, End, Strand, Length
METADATA_COLUMNS = 6
MIN_HEADER_FIELDS = METADATA_COLUMNS + 1
GFF3_COLUMNS = 9
DEFAULT_HTML_MARKERS = ('<!doctype html', '<html')
# Plain decimal or exponent notation, no underscores, nan or inf
NUMBER_PATTERN = re.compile(r"\s*[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?\s*")
MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def looks_like_html(text: str, markers: Sequence[str] = DEFAULT_HTML_MARKERS) -> bool:
    """Sniff for an HTML page handed over instead of tabular data."""
    head = text[:4096].lower()
    return any(marker.lower() in head for marker in markers)


def split_lines(text: str) -> Iterator[Tuple[int, str]]:
    """
    Yield ``(line_number, line)`` for every line of the text.

    Lines end at ``\\n`` only, with one trailing ``\\r`` removed, so other
    Unicode line boundaries inside a field stay part of that field.
    """
    for line_num, line in enumerate(text.split('\n'), 1):
        if line.endswith('\r'):
            line = line[:-1]
        yield line_num, line


def iter_data_lines(text: str) -> Iterator[Tuple[int, str]]:
    """Yield ``(line_number, line)`` for non-blank, non-comment lines."""
    for line_num, line in split_lines(text):
        if not line.strip() or line.startswith('#'):
            continue
        yield line_num, line


def parse_number(value: Optional[str]) -> Optional[float]:
    """Parse plain decimal notation, None for anything else."""
    if value is None or not NUMBER_PATTERN.fullmatch(value):
        return None
    return float(value)


def safe_parse_count(value: Optional[str]) -> float:
    """Parse a raw count; anything unparsable or negative is 0."""
    count = parse_number(value)
    if count is None or not math.isfinite(count) or count < 0:
        return 0.0
    return count


def parse_length(value: Optional[str]) -> Optional[float]:
    """Parse a feature length, returning None when it is not a number."""
    length = parse_number(value)
    if length is None or not math.isfinite(length):
        return None
    return length


class CountTableParser:
    """Parse tab-delimited count matrices in O(n) with one pass."""

    def __init__(self, source: str = "", separator: str = "_",
                 html_markers: Sequence[str] = DEFAULT_HTML_MARKERS):
        self.source = source
        self.separator = separator
        self.html_markers = html_markers

    def parse(self, text: str) -> CountTable:
        """
        Parse count table text.

        Args:
            text: Whole file content

        Returns:
            CountTable with genes in file order and samples in header order

        Raises:
            FormatError: Header too narrow, no data rows or HTML payload
        """
        if not text or looks_like_html(text, self.html_markers):
            raise NonTabularPayloadError(filename=self.source)

        lines = list(iter_data_lines(text))
        if len(lines) < 2:
            raise FormatError("Count table needs a header and at least one data row", self.source)

        header_line_num, header_line = lines[0]
        header = header_line.split('\t')
        if len(header) < MIN_HEADER_FIELDS:
            raise FormatError(
                f"Header has {len(header)} columns, expected at least {MIN_HEADER_FIELDS}",
                self.source, header_line_num
            )

        samples = [
            SampleColumn(label=label.strip(), index=i, separator=self.separator)
            for i, label in enumerate(header[METADATA_COLUMNS:])
        ]

        genes: List[GeneRecord] = []
        seen = set()
        zeroed_fields = 0
        for line_num, line in lines[1:]:
            parts = line.split('\t')
            gene_id = parts[0].strip()
            if not gene_id:
                logging.warning(f"Skipping row without gene ID at line {line_num}")
                continue
            if gene_id in seen:
                logging.warning(f"Duplicate gene ID {gene_id} at line {line_num}, keeping first row")
                continue

            counts, zeroed = self._parse_counts(parts[METADATA_COLUMNS:], len(samples), gene_id, line_num)
            zeroed_fields += zeroed
            length_field = parts[5] if len(parts) > 5 else None
            length = parse_length(length_field)
            if length is None:
                logging.debug(f"Unparsable length {length_field!r} for {gene_id} at line {line_num}")

            genes.append(GeneRecord(
                id=gene_id,
                chrom=self._field(parts, 1),
                start=self._field(parts, 2),
                end=self._field(parts, 3),
                strand=self._field(parts, 4),
                length=length,
                counts=counts,
            ))
            seen.add(gene_id)

        if zeroed_fields:
            logging.warning(f"Replaced {zeroed_fields} unparsable count values with 0")

        logging.info(f"Parsed {len(genes)} genes across {len(samples)} samples")
        return CountTable(genes=tuple(genes), samples=tuple(samples))

    def _parse_counts(self, fields: List[Optional[str]], width: int, gene_id: str,
                      line_num: int) -> Tuple[Tuple[float, ...], int]:
        """Parse count fields, padding or truncating to the header width."""
        if len(fields) != width:
            logging.warning(
                f"Gene {gene_id} at line {line_num} has {len(fields)} counts for {width} samples"
            )
        fields = (fields + [None] * width)[:width]

        zeroed = 0
        counts = []
        for value in fields:
            count = safe_parse_count(value)
            if count == 0 and value is not None and not self._is_zero(value):
                logging.debug(f"Unparsable count {value!r} for {gene_id} at line {line_num}")
                zeroed += 1
            counts.append(count)
        return tuple(counts), zeroed

    @staticmethod
    def _is_zero(value: str) -> bool:
        return parse_number(value) == 0

    @staticmethod
    def _field(parts: List[str], index: int) -> str:
        return parts[index] if len(parts) > index else ""


class AnnotationParser:
    """Parse GFF3 records into gene descriptions keyed by locus tag."""

    def __init__(self, default_product: str = DEFAULT_PRODUCT,
                 html_markers: Sequence[str] = DEFAULT_HTML_MARKERS):
        self.default_product = default_product
        self.html_markers = html_markers

    def parse(self, text: str) -> Dict[str, AnnotationEntry]:
        """Parse GFF3 text; malformed lines are skipped, never fatal."""
        if not text or looks_like_html(text, self.html_markers):
            logging.warning("Annotation input is empty or not GFF3, no annotations loaded")
            return {}

        entries: Dict[str, AnnotationEntry] = {}
        skipped = 0
        for line_num, line in split_lines(text):
            if line.startswith('##FASTA'):
                break
            if not line.strip() or line.startswith('#'):
                continue

            cols = line.split('\t')
            if len(cols) < GFF3_COLUMNS:
                skipped += 1
                continue

            attributes = self._parse_gff3_attributes(cols[8])
            gene_id = attributes.get('locus_tag') or attributes.get('ID')
            if not gene_id:
                skipped += 1
                continue

            incoming = AnnotationEntry(
                product=attributes.get('product') or attributes.get('description'),
                gene_name=attributes.get('Name') or attributes.get('gene'),
                biotype=cols[2].strip() or None,
            )
            entries[gene_id] = merge_annotation(entries.get(gene_id), incoming)

        if skipped:
            logging.debug(f"Skipped {skipped} GFF3 lines without usable columns or identifier")

        logging.info(f"Parsed annotations for {len(entries)} genes")
        return {gene_id: entry.with_default_product(self.default_product)
                for gene_id, entry in entries.items()}

    def _parse_gff3_attributes(self, attr_string: str) -> Dict[str, str]:
        """Parse GFF3 attributes string."""
        attributes = {}
        for attr in attr_string.split(';'):
            if '=' not in attr:
                continue
            key, value = attr.split('=', 1)
            key, value = key.strip(), value.strip()
            if key and value:
                attributes[key] = self._decode(value)
        return attributes

    @staticmethod
    def _decode(value: str) -> str:
        """Percent-decode a value, keeping it as-is if the encoding is invalid."""
        if MALFORMED_ESCAPE.search(value):
            return value
        try:
            return unquote(value, errors='strict')
        except UnicodeDecodeError:
            return value


def parse_counts(text: str, separator: str = "_") -> CountTable:
    """Parse count table text, raising FormatError on structural problems."""
    return CountTableParser(separator=separator).parse(text)


def parse_annotation(text: str, default_product: str = DEFAULT_PRODUCT) -> Dict[str, AnnotationEntry]:
    """Parse GFF3 text into a mapping of gene identifier to annotation."""
    return AnnotationParser(default_product=default_product).parse(text)
