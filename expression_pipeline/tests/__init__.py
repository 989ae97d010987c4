#!/usr/bin/env python3

"""
Test suite for the expression pipeline.

Unit tests covering all major components including:
- Core data structures and their invariants
- Configuration management and validation
- Count table and GFF3 parsing, including malformed input
- Normalization and replicate aggregation arithmetic
- End-to-end pipeline runs on temporary files
"""
