#!/usr/bin/env python3

"""
Strand-specific RNA-seq Expression Pipeline

Turns featureCounts-style read-count tables and GFF3 annotations into
normalized, replicate-aggregated expression profiles ready for plotting.

This modular implementation provides:
- Tolerant parsers for tab-delimited count tables and GFF3 records
- Length and library-size normalization (log2 TPM-like values)
- Per-condition mean/standard deviation of replicate samples
- Gene search and sorting across sense and antisense datasets

Modules:
- core: Data structures, parsers, processors, configuration and pipeline
- utils: Performance monitoring
- tests: Unit test suite
"""

__version__ = "1.0.0"
__author__ = "Expression Pipeline Team"

# Import main components for easy access
from .core.data_structures import (
    GeneRecord, SampleColumn, CountTable, NormalizedMatrix, AnnotationEntry,
    ConditionSummary, ExpressionDataset, ConditionProfile, merge_annotation
)
from .core.exceptions import (
    PipelineError, ParseError, FormatError, NonTabularPayloadError,
    ConfigurationError, MemoryError
)
from .core.config import PipelineConfig, load_config
from .core.parsers import parse_counts, parse_annotation, safe_parse_count
from .core.processors import normalize, aggregate, safe_divisor
from .core.pipeline import ExpressionPipeline

__all__ = [
    # Main pipeline
    'ExpressionPipeline',
    # Core API
    'parse_counts', 'parse_annotation', 'normalize', 'aggregate',
    'safe_parse_count', 'safe_divisor',
    # Data structures
    'GeneRecord', 'SampleColumn', 'CountTable', 'NormalizedMatrix',
    'AnnotationEntry', 'ConditionSummary', 'ExpressionDataset',
    'ConditionProfile', 'merge_annotation',
    # Exceptions
    'PipelineError', 'ParseError', 'FormatError', 'NonTabularPayloadError',
    'ConfigurationError', 'MemoryError',
    # Configuration
    'PipelineConfig', 'load_config'
]
