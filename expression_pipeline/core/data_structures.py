#!/usr/bin/env python3

"""
Core data structures for the expression pipeline.

Defines the value objects passed between the parsers, the normalizer and
the condition aggregator: gene records, sample columns, count tables,
normalized matrices, annotation entries and condition summaries. All of
them are frozen and convert to plain dictionaries for JSON output.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .config import DEFAULT_PRODUCT

_DIGIT_RUN = re.compile(r'(\d+)')


def natural_sort_key(text: str) -> tuple:
    """
    Sort key treating embedded digit runs as numbers, ignoring case.

    ``Cond2`` sorts before ``Cond10``. Text chunks sit at even positions and
    numbers at odd positions, so keys of different strings always compare
    like with like. The raw string breaks ties between case variants.
    """
    chunks = _DIGIT_RUN.split(text)
    parts = tuple(int(chunk) if i % 2 else chunk.casefold() for i, chunk in enumerate(chunks))
    return parts, text


def condition_of(label: str, separator: str = "_") -> str:
    """Get the condition part of a ``<Condition>_<Replicate>`` sample label."""
    return label.split(separator, 1)[0]


def ordered_conditions(labels, separator: str = "_") -> List[str]:
    """Get the distinct conditions of sample labels in natural order."""
    return sorted({condition_of(label, separator) for label in labels}, key=natural_sort_key)


@dataclass(frozen=True)
class SampleColumn:
    """A sample column of a count table."""
    label: str
    index: int
    separator: str = "_"

    def __post_init__(self):
        """Validate sample column data after initialization."""
        if self.index < 0:
            raise ValueError(f"Invalid sample column index: {self.index}")

    @property
    def condition(self) -> str:
        """Get the experimental condition of this sample."""
        return condition_of(self.label, self.separator)

    @property
    def replicate(self) -> str:
        """Get the replicate part of the label (empty if there is none)."""
        parts = self.label.split(self.separator, 1)
        return parts[1] if len(parts) > 1 else ""

    def to_dict(self) -> Dict[str, object]:
        return {
            'label': self.label,
            'index': self.index,
            'condition': self.condition,
            'replicate': self.replicate,
        }


@dataclass(frozen=True)
class GeneRecord:
    """Represents one parsed row of a count table."""
    id: str
    chrom: str = ""
    start: str = ""
    end: str = ""
    strand: str = ""
    length: Optional[float] = None
    counts: Tuple[float, ...] = ()

    def __post_init__(self):
        """Validate gene record data after initialization."""
        if not self.id:
            raise ValueError("Gene ID cannot be empty")
        object.__setattr__(self, 'counts', tuple(self.counts))
        for count in self.counts:
            if not math.isfinite(count) or count < 0:
                raise ValueError(f"Invalid count for gene {self.id}: {count}")

    @property
    def is_stranded(self) -> bool:
        """Check if the feature has a known strand."""
        return self.strand in ('+', '-')

    @property
    def sample_count(self) -> int:
        """Get number of count values."""
        return len(self.counts)

    @property
    def total_count(self) -> float:
        """Get sum of raw counts over all samples."""
        return sum(self.counts)

    def to_dict(self) -> Dict[str, object]:
        return {
            'id': self.id,
            'chrom': self.chrom,
            'start': self.start,
            'end': self.end,
            'strand': self.strand,
            'length': self.length,
            'counts': list(self.counts),
        }


@dataclass(frozen=True)
class CountTable:
    """Parsed count matrix: gene records plus their sample columns."""
    genes: Tuple[GeneRecord, ...]
    samples: Tuple[SampleColumn, ...]

    def __post_init__(self):
        """Validate the table after initialization."""
        object.__setattr__(self, 'genes', tuple(self.genes))
        object.__setattr__(self, 'samples', tuple(self.samples))
        if not self.samples:
            raise ValueError("Count table needs at least one sample column")

        seen = set()
        for gene in self.genes:
            if gene.sample_count != len(self.samples):
                raise ValueError(
                    f"Gene {gene.id} has {gene.sample_count} counts for {len(self.samples)} samples"
                )
            if gene.id in seen:
                raise ValueError(f"Duplicate gene ID: {gene.id}")
            seen.add(gene.id)

        object.__setattr__(self, '_index', {gene.id: gene for gene in self.genes})

    @property
    def gene_ids(self) -> List[str]:
        return [gene.id for gene in self.genes]

    @property
    def sample_labels(self) -> List[str]:
        return [sample.label for sample in self.samples]

    @property
    def conditions(self) -> List[str]:
        """Get distinct conditions in natural order."""
        return sorted({sample.condition for sample in self.samples}, key=natural_sort_key)

    def get_gene(self, gene_id: str) -> Optional[GeneRecord]:
        """Get gene record by ID."""
        return self._index.get(gene_id)

    def raw_counts(self) -> Dict[str, Dict[str, float]]:
        """Get raw counts keyed by gene ID, then by sample label."""
        labels = self.sample_labels
        return {gene.id: dict(zip(labels, gene.counts)) for gene in self.genes}

    def to_dict(self) -> Dict[str, object]:
        return {
            'samples': [sample.to_dict() for sample in self.samples],
            'conditions': self.conditions,
            'genes': [gene.to_dict() for gene in self.genes],
        }


@dataclass(frozen=True)
class NormalizedMatrix:
    """Log-scale normalized expression per gene and sample."""
    gene_ids: Tuple[str, ...]
    samples: Tuple[SampleColumn, ...]
    values: Tuple[Tuple[float, ...], ...]
    conditions: Tuple[str, ...] = ()

    def __post_init__(self):
        """Validate matrix shape after initialization."""
        object.__setattr__(self, 'gene_ids', tuple(self.gene_ids))
        object.__setattr__(self, 'samples', tuple(self.samples))
        object.__setattr__(self, 'values', tuple(tuple(row) for row in self.values))
        object.__setattr__(self, 'conditions', tuple(self.conditions))

        if len(self.values) != len(self.gene_ids):
            raise ValueError(f"Matrix has {len(self.values)} rows for {len(self.gene_ids)} genes")
        for gene_id, row in zip(self.gene_ids, self.values):
            if len(row) != len(self.samples):
                raise ValueError(f"Gene {gene_id} has {len(row)} values for {len(self.samples)} samples")
            if any(value < 0 for value in row):
                raise ValueError(f"Negative normalized value for gene {gene_id}")

        object.__setattr__(self, '_rows', dict(zip(self.gene_ids, self.values)))

    @property
    def sample_labels(self) -> List[str]:
        return [sample.label for sample in self.samples]

    def values_for(self, gene_id: str) -> Optional[Tuple[float, ...]]:
        """Get normalized values of a gene, parallel to the samples."""
        return self._rows.get(gene_id)

    def value_map(self, gene_id: str) -> Optional[Dict[str, float]]:
        """Get normalized values of a gene keyed by sample label."""
        row = self.values_for(gene_id)
        if row is None:
            return None
        return dict(zip(self.sample_labels, row))

    def mean_expression(self, gene_id: str) -> float:
        """Get mean normalized value over all samples (0 for unknown genes)."""
        row = self.values_for(gene_id)
        if not row:
            return 0.0
        return sum(row) / len(row)

    def to_dict(self) -> Dict[str, object]:
        labels = self.sample_labels
        return {
            'samples': labels,
            'conditions': list(self.conditions),
            'values': {gene_id: dict(zip(labels, row)) for gene_id, row in zip(self.gene_ids, self.values)},
        }


@dataclass(frozen=True)
class AnnotationEntry:
    """Descriptive metadata for one gene identifier."""
    product: Optional[str] = None
    gene_name: Optional[str] = None
    biotype: Optional[str] = None

    def merge(self, incoming: 'AnnotationEntry') -> 'AnnotationEntry':
        """Take each non-empty field of ``incoming``, keeping ours otherwise."""
        return AnnotationEntry(
            product=incoming.product or self.product,
            gene_name=incoming.gene_name or self.gene_name,
            biotype=incoming.biotype or self.biotype,
        )

    def with_default_product(self, default: str = DEFAULT_PRODUCT) -> 'AnnotationEntry':
        """Get a copy whose missing product is replaced by ``default``."""
        if self.product:
            return self
        return AnnotationEntry(product=default, gene_name=self.gene_name, biotype=self.biotype)

    def matches(self, term: str) -> bool:
        """Check if product or gene name contains a lower-case search term."""
        return any(value and term in value.lower() for value in (self.product, self.gene_name))

    def to_dict(self) -> Dict[str, object]:
        return {'product': self.product, 'gene_name': self.gene_name, 'biotype': self.biotype}


def merge_annotation(existing: Optional[AnnotationEntry],
                     incoming: AnnotationEntry) -> AnnotationEntry:
    """Field-level merge of a repeated annotation record."""
    if existing is None:
        return incoming
    return existing.merge(incoming)


@dataclass(frozen=True)
class ConditionSummary:
    """Replicate statistics of one gene within one condition."""
    gene_id: str
    condition: str
    mean: float = 0.0
    standard_deviation: float = 0.0
    mean_raw_count: float = 0.0
    sample_count: int = 0

    @property
    def range_low(self) -> float:
        """Lower bound of mean +/- SD, clamped at zero."""
        return max(0.0, self.mean - self.standard_deviation)

    @property
    def range_high(self) -> float:
        return self.mean + self.standard_deviation

    @property
    def has_data(self) -> bool:
        """False when no sample column matched the condition."""
        return self.sample_count > 0

    def to_dict(self) -> Dict[str, object]:
        return {
            'gene_id': self.gene_id,
            'condition': self.condition,
            'mean': self.mean,
            'standard_deviation': self.standard_deviation,
            'range_low': self.range_low,
            'range_high': self.range_high,
            'mean_raw_count': self.mean_raw_count,
            'sample_count': self.sample_count,
        }


@dataclass(frozen=True)
class ExpressionDataset:
    """A count table together with its normalized matrix."""
    label: str
    table: CountTable
    matrix: NormalizedMatrix

    def __post_init__(self):
        """Validate dataset data after initialization."""
        if not self.label:
            raise ValueError("Dataset label cannot be empty")
        if list(self.matrix.gene_ids) != self.table.gene_ids:
            raise ValueError(f"Matrix genes do not match count table of dataset {self.label}")

    @property
    def conditions(self) -> List[str]:
        return list(self.matrix.conditions)

    @property
    def gene_ids(self) -> List[str]:
        return self.table.gene_ids

    def has_gene(self, gene_id: str) -> bool:
        return self.table.get_gene(gene_id) is not None

    def to_dict(self) -> Dict[str, object]:
        return {
            'label': self.label,
            'samples': [sample.to_dict() for sample in self.table.samples],
            'conditions': self.conditions,
            'genes': [gene.to_dict() for gene in self.table.genes],
            'normalized': self.matrix.to_dict()['values'],
            'raw_counts': self.table.raw_counts(),
        }


@dataclass(frozen=True)
class ConditionProfile:
    """Per-dataset summaries of the selected genes for one condition."""
    condition: str
    summaries: Dict[str, Dict[str, Optional[ConditionSummary]]] = field(default_factory=dict)

    def get(self, gene_id: str, dataset_label: str) -> Optional[ConditionSummary]:
        return self.summaries.get(gene_id, {}).get(dataset_label)

    def to_dict(self) -> Dict[str, object]:
        return {
            'condition': self.condition,
            'genes': {
                gene_id: {label: summary.to_dict() if summary else None
                          for label, summary in by_dataset.items()}
                for gene_id, by_dataset in self.summaries.items()
            },
        }
