#!/usr/bin/env python3

"""
Processing classes for expression normalization, replicate aggregation
and gene selection.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .data_structures import (
    AnnotationEntry, ConditionProfile, ConditionSummary, CountTable,
    ExpressionDataset, NormalizedMatrix, SampleColumn, natural_sort_key,
    ordered_conditions
)

PER_MILLION = 1_000_000
BASES_PER_KB = 1000
SORT_KEYS = ('id', 'name', 'expression')


def safe_divisor(length: Optional[float]) -> float:
    """Get the per-kilobase divisor of a feature, 1 for unusable lengths."""
    if length is None or not math.isfinite(length) or length <= 0:
        return 1.0
    return length / BASES_PER_KB


def compute_rpk(table: CountTable) -> List[List[float]]:
    """Get reads per kilobase for every gene and sample."""
    rpk = []
    for gene in table.genes:
        divisor = safe_divisor(gene.length)
        rpk.append([count / divisor for count in gene.counts])
    return rpk


def scaling_factors(rpk: Sequence[Sequence[float]], sample_count: int) -> List[float]:
    """Get per-million scaling factors per sample; 1 where a sample sums to 0."""
    factors = []
    for i in range(sample_count):
        total = sum(row[i] for row in rpk) / PER_MILLION
        factors.append(total if total else 1.0)
    return factors


def summarize(values: Sequence[float]) -> Tuple[float, float]:
    """
    Get arithmetic mean and population standard deviation.

    An empty sequence gives ``(0.0, 0.0)``: the denominator is replaced by 1
    rather than failing.
    """
    n = len(values) or 1
    mean = sum(values) / n
    variance = sum((x - mean) ** 2 for x in values) / n
    return mean, math.sqrt(variance)


class ExpressionNormalizer:
    """Convert raw counts into log2 TPM-like expression values."""

    def normalize(self, table: CountTable) -> NormalizedMatrix:
        """
        Normalize a count table.

        Each count is divided by the feature length in kilobases (RPK), then
        by the per-million RPK total of its sample, and finally transformed
        with ``log2(x + 1)``.

        Args:
            table: Parsed count table

        Returns:
            NormalizedMatrix with genes and samples in table order
        """
        rpk = compute_rpk(table)
        factors = scaling_factors(rpk, len(table.samples))

        values = [
            tuple(math.log2(value / factor + 1) for value, factor in zip(row, factors))
            for row in rpk
        ]

        empty_samples = [s.label for s in table.samples if not any(row[s.index] for row in rpk)]
        if empty_samples:
            logging.warning(f"Samples without any reads: {', '.join(empty_samples)}")

        separator = table.samples[0].separator
        conditions = ordered_conditions(table.sample_labels, separator)
        logging.info(f"Normalized {len(values)} genes across {len(table.samples)} samples "
                     f"in {len(conditions)} conditions")

        return NormalizedMatrix(
            gene_ids=tuple(table.gene_ids),
            samples=table.samples,
            values=tuple(values),
            conditions=tuple(conditions),
        )


class ConditionAggregator:
    """Summarize replicate samples per experimental condition."""

    def __init__(self, condition_match: str = 'exact'):
        if condition_match not in ('exact', 'prefix'):
            raise ValueError(f"Invalid condition match mode: {condition_match}")
        self.condition_match = condition_match

    def select_samples(self, samples: Iterable[SampleColumn], condition: str) -> List[SampleColumn]:
        """Get the sample columns belonging to a condition."""
        if self.condition_match == 'prefix':
            return [s for s in samples if s.label.startswith(condition)]
        return [s for s in samples if s.condition == condition]

    def summarize_gene(self, matrix: NormalizedMatrix, table: CountTable,
                       gene_id: str, condition: str) -> Optional[ConditionSummary]:
        """Get the summary of one gene in one condition (None if gene unknown)."""
        values = matrix.values_for(gene_id)
        gene = table.get_gene(gene_id)
        if values is None or gene is None:
            return None

        selected = self.select_samples(matrix.samples, condition)
        if not selected:
            logging.debug(f"No sample columns match condition {condition}")

        normalized = [values[s.index] for s in selected]
        raw = [gene.counts[s.index] for s in selected]
        mean, std = summarize(normalized)
        mean_raw, _ = summarize(raw)

        return ConditionSummary(
            gene_id=gene_id,
            condition=condition,
            mean=mean,
            standard_deviation=std,
            mean_raw_count=mean_raw,
            sample_count=len(selected),
        )

    def aggregate(self, matrix: NormalizedMatrix, table: CountTable,
                  gene_ids: Iterable[str],
                  conditions: Optional[Iterable[str]] = None) -> List[ConditionSummary]:
        """
        Summarize genes per condition.

        Args:
            matrix: Normalized expression values
            table: Count table holding the raw counts
            gene_ids: Genes to summarize; unknown genes are skipped
            conditions: Conditions to report, defaults to those of the matrix

        Returns:
            Summaries ordered by condition, then by gene
        """
        gene_ids = list(gene_ids)
        conditions = list(matrix.conditions if conditions is None else conditions)

        summaries = []
        for condition in conditions:
            for gene_id in gene_ids:
                summary = self.summarize_gene(matrix, table, gene_id, condition)
                if summary is None:
                    logging.debug(f"Gene {gene_id} not found, skipping")
                    continue
                summaries.append(summary)
        return summaries

    def profile(self, datasets: Iterable[ExpressionDataset],
                gene_ids: Iterable[str]) -> List[ConditionProfile]:
        """
        Summarize genes across several datasets.

        Conditions are the union over all datasets in natural order. A gene
        missing from a dataset gets None for that dataset.
        """
        datasets = list(datasets)
        gene_ids = list(gene_ids)
        if not gene_ids:
            return []

        conditions = sorted({c for dataset in datasets for c in dataset.conditions},
                            key=natural_sort_key)

        profiles = []
        for condition in conditions:
            summaries: Dict[str, Dict[str, Optional[ConditionSummary]]] = {}
            for gene_id in gene_ids:
                summaries[gene_id] = {
                    dataset.label: self.summarize_gene(dataset.matrix, dataset.table, gene_id, condition)
                    for dataset in datasets
                }
            profiles.append(ConditionProfile(condition=condition, summaries=summaries))

        logging.info(f"Profiled {len(gene_ids)} genes over {len(conditions)} conditions "
                     f"in {len(datasets)} datasets")
        return profiles


class GeneSelector:
    """Search and sort the gene list of a dataset."""

    def __init__(self, dataset: ExpressionDataset,
                 annotations: Optional[Dict[str, AnnotationEntry]] = None,
                 limit: int = 100):
        self.dataset = dataset
        self.annotations = annotations or {}
        self.limit = limit

    def matches(self, gene_id: str, term: str) -> bool:
        """Check if a gene ID or its annotation contains the search term."""
        if term in gene_id.lower():
            return True
        annotation = self.annotations.get(gene_id)
        return annotation is not None and annotation.matches(term)

    def search(self, term: str = "", sort_key: str = 'id',
               descending: Optional[bool] = None) -> List[str]:
        """
        Filter genes by a case-insensitive term and sort them.

        Sort keys are ``id``, ``name`` (product, falling back to the ID) and
        ``expression`` (mean normalized value over all samples). Without an
        explicit ``descending``, IDs and names sort A to Z and expression
        sorts highest first. The result is truncated to the selector limit.
        """
        if sort_key not in SORT_KEYS:
            raise ValueError(f"Unknown sort key: {sort_key}")
        if descending is None:
            descending = sort_key == 'expression'

        term = term.lower()
        genes = [g for g in self.dataset.gene_ids if self.matches(g, term)]

        if sort_key == 'expression':
            matrix = self.dataset.matrix
            genes.sort(key=matrix.mean_expression, reverse=descending)
        else:
            genes.sort(key=lambda g: self._label(g, sort_key).casefold(), reverse=descending)

        return genes[:self.limit]

    def _label(self, gene_id: str, sort_key: str) -> str:
        if sort_key == 'name':
            annotation = self.annotations.get(gene_id)
            if annotation and annotation.product:
                return annotation.product
        return gene_id


def normalize(table: CountTable) -> NormalizedMatrix:
    """Normalize a count table into log2 TPM-like values."""
    return ExpressionNormalizer().normalize(table)


def aggregate(matrix: NormalizedMatrix, table: CountTable, gene_ids: Iterable[str],
              conditions: Optional[Iterable[str]] = None,
              condition_match: str = 'exact') -> List[ConditionSummary]:
    """Summarize genes per condition (mean/SD of replicates)."""
    return ConditionAggregator(condition_match).aggregate(matrix, table, gene_ids, conditions)
