#!/usr/bin/env python3

"""
Command-line interface for the expression pipeline.

Normalizes one or two count tables (sense / antisense), attaches GFF3
annotations and writes per-condition expression profiles as JSON.
"""

import argparse
import sys
import os
import logging
from typing import Dict, List, Optional

from expression_pipeline.core.config import load_config
from expression_pipeline.core.exceptions import PipelineError


def setup_logging(log_level: str = "INFO") -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Normalize strand-specific RNA-seq counts and summarize replicates per condition",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single dataset
  python pipeline_cli.py --counts sense=sense_read_counts.tsv --output results/report.json

  # Sense and antisense with annotation and selected genes
  python pipeline_cli.py --counts sense=sense.tsv --counts antisense=antisense.tsv --annotation genome.gff3 --genes LT_001 LT_002 --output results/report.json
        """
    )

    # Required arguments
    parser.add_argument(
        '--counts',
        required=True,
        action='append',
        metavar='LABEL=PATH',
        help='Count table as LABEL=PATH (repeatable, e.g. sense=counts.tsv)'
    )
    parser.add_argument(
        '--output',
        required=True,
        help='Output JSON report path'
    )

    # Optional parameters
    parser.add_argument(
        '--annotation',
        help='GFF3 annotation file'
    )
    parser.add_argument(
        '--genes',
        nargs='+',
        help='Gene identifiers to profile (default: the gene list)'
    )
    parser.add_argument(
        '--search',
        default='',
        help='Filter the gene list by ID, product or gene name'
    )
    parser.add_argument(
        '--sort',
        choices=['id', 'name', 'expression'],
        default='id',
        help='Gene list order (default: id); expression sorts highest first'
    )
    direction = parser.add_mutually_exclusive_group()
    direction.add_argument(
        '--descending',
        dest='descending',
        action='store_const',
        const=True,
        help='Sort the gene list Z to A / highest first'
    )
    direction.add_argument(
        '--ascending',
        dest='descending',
        action='store_const',
        const=False,
        help='Sort the gene list A to Z / lowest first'
    )
    parser.set_defaults(descending=None)
    parser.add_argument(
        '--config',
        help='Configuration file (JSON or YAML)'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )

    # Advanced options
    parser.add_argument(
        '--condition-match',
        choices=['exact', 'prefix'],
        help='How sample labels are matched to conditions (default: exact)'
    )
    parser.add_argument(
        '--search-limit',
        type=int,
        help='Maximum length of the gene list (default: 100)'
    )

    return parser


def parse_count_arguments(values: List[str]) -> Dict[str, str]:
    """Parse LABEL=PATH count arguments."""
    count_files = {}
    for value in values:
        label, sep, path = value.partition('=')
        if not sep or not label or not path:
            raise ValueError(f"Expected LABEL=PATH for --counts, got: {value}")
        if label in count_files:
            raise ValueError(f"Duplicate dataset label: {label}")
        count_files[label] = path
    return count_files


def validate_input_files(count_files: Dict[str, str], annotation_file: Optional[str] = None) -> None:
    """Validate that input files exist."""
    input_files = {f"{label} counts": path for label, path in count_files.items()}
    if annotation_file:
        input_files['annotation'] = annotation_file

    for file_type, file_path in input_files.items():
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"{file_type} file not found: {file_path}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    # Set up logging
    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        count_files = parse_count_arguments(args.counts)
        validate_input_files(count_files, args.annotation)

        # Load configuration
        config = load_config(config_path=args.config, use_env=True)

        # Override config with command line arguments
        if args.condition_match is not None:
            config.condition_match = args.condition_match
        if args.search_limit is not None:
            config.search_limit = args.search_limit

        # Re-validate after CLI overrides.
        config.validate()

        logger.info("Starting expression pipeline...")
        for label, path in count_files.items():
            logger.info(f"Counts ({label}): {path}")
        logger.info(f"Annotation: {args.annotation}")
        logger.info(f"Output: {args.output}")

        from expression_pipeline import ExpressionPipeline

        pipeline = ExpressionPipeline(config)
        success = pipeline.run(
            count_files=count_files,
            output_file=args.output,
            annotation_file=args.annotation,
            gene_ids=args.genes,
            search_term=args.search,
            sort_key=args.sort,
            descending=args.descending
        )

        if success:
            logger.info("Pipeline completed successfully!")
            return 0
        else:
            logger.error("Pipeline failed!")
            return 1

    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Input error: {e}")
        return 1
    except PipelineError as e:
        logger.error(f"Pipeline error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
