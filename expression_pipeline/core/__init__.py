#!/usr/bin/env python3

"""
Core module for the expression pipeline.

Contains fundamental data structures, exception types, parsers,
processors and configuration management components.
"""

from .data_structures import (
    GeneRecord, SampleColumn, CountTable, NormalizedMatrix, AnnotationEntry,
    ConditionSummary, ExpressionDataset, ConditionProfile
)
from .exceptions import (
    PipelineError, ParseError, FormatError, NonTabularPayloadError,
    ConfigurationError, MemoryError
)
from .config import PipelineConfig, load_config

__all__ = [
    'GeneRecord', 'SampleColumn', 'CountTable', 'NormalizedMatrix',
    'AnnotationEntry', 'ConditionSummary', 'ExpressionDataset', 'ConditionProfile',
    'PipelineError', 'ParseError', 'FormatError', 'NonTabularPayloadError',
    'ConfigurationError', 'MemoryError',
    'PipelineConfig', 'load_config'
]
