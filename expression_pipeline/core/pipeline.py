#!/usr/bin/env python3

"""
Main pipeline class for expression profiling.

Reads count tables and annotation files, then runs parsing, normalization
and replicate aggregation, and writes every result as one JSON report.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import PipelineConfig
from .data_structures import AnnotationEntry, ConditionProfile, ExpressionDataset
from .exceptions import FormatError, ParseError, PipelineError
from .parsers import AnnotationParser, CountTableParser
from .processors import ConditionAggregator, ExpressionNormalizer, GeneSelector
from ..utils.performance_monitor import PerformanceMonitor, monitor_phase

PRIMARY_DATASET = 'sense'


class ExpressionPipeline:
    """Main pipeline class that coordinates all processing phases."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()
        self.monitor = PerformanceMonitor(
            memory_limit_mb=self.config.memory_limit_mb,
            enable_memory_monitoring=self.config.enable_memory_monitoring
        )
        self.datasets: Dict[str, ExpressionDataset] = {}
        self.annotations: Dict[str, AnnotationEntry] = {}

        self.normalizer = ExpressionNormalizer()
        self.aggregator = ConditionAggregator(self.config.condition_match)

    @property
    def mode(self) -> Optional[str]:
        """'both' with two or more datasets, else the label of the loaded one."""
        if len(self.datasets) > 1:
            return 'both'
        return next(iter(self.datasets), None)

    @property
    def primary_dataset(self) -> Optional[ExpressionDataset]:
        """Dataset providing the gene list."""
        if PRIMARY_DATASET in self.datasets:
            return self.datasets[PRIMARY_DATASET]
        return next(iter(self.datasets.values()), None)

    def read_text(self, file_path: str) -> str:
        """Read an input file as UTF-8 text."""
        try:
            with open(file_path, 'r', encoding='utf-8', errors='replace') as f:
                return f.read()
        except FileNotFoundError:
            raise ParseError(f"Input file not found: {file_path}")
        except OSError as e:
            raise ParseError(f"Failed to read input file: {e}", file_path)

    def build_dataset(self, text: str, label: str, source: str = "") -> ExpressionDataset:
        """Parse and normalize count table text into a dataset."""
        parser = CountTableParser(
            source=source,
            separator=self.config.condition_separator,
            html_markers=self.config.html_markers
        )
        table = parser.parse(text)
        matrix = self.normalizer.normalize(table)
        return ExpressionDataset(label=label, table=table, matrix=matrix)

    def load_dataset(self, file_path: str, label: str) -> Optional[ExpressionDataset]:
        """
        Load a count table file as a labelled dataset.

        Returns:
            The dataset, or None if the file is not a usable count table
        """
        with self.monitor.phase_context(f"load_{label}") as metrics:
            text = self.read_text(file_path)
            try:
                dataset = self.build_dataset(text, label, source=file_path)
            except FormatError as e:
                logging.error(f"Could not parse {label} file: {e}")
                return None

            metrics.operations_count = len(dataset.table.genes)
            self.monitor.check_memory_limit()

        self.datasets[label] = dataset
        logging.info(f"Loaded dataset {label}: {len(dataset.gene_ids)} genes, "
                     f"conditions {', '.join(dataset.conditions)}")
        return dataset

    @monitor_phase("annotation_parsing")
    def load_annotation(self, file_path: str) -> Dict[str, AnnotationEntry]:
        """Load GFF3 annotations; unusable content yields no annotations."""
        text = self.read_text(file_path)
        parser = AnnotationParser(
            default_product=self.config.default_product,
            html_markers=self.config.html_markers
        )
        self.annotations = parser.parse(text)
        self.monitor.record_operations(len(self.annotations))
        return self.annotations

    def search_genes(self, term: str = "", sort_key: str = 'id',
                     descending: Optional[bool] = None) -> List[str]:
        """Search the gene list of the primary dataset."""
        dataset = self.primary_dataset
        if dataset is None:
            return []
        selector = GeneSelector(dataset, self.annotations, limit=self.config.search_limit)
        return selector.search(term, sort_key, descending)

    @monitor_phase("aggregation")
    def profile_genes(self, gene_ids: Sequence[str]) -> List[ConditionProfile]:
        """Summarize the selected genes per condition in every dataset."""
        profiles = self.aggregator.profile(self.datasets.values(), gene_ids)
        self.monitor.record_operations(len(profiles) * len(gene_ids))
        return profiles

    def run(self, count_files: Dict[str, str], output_file: str,
            annotation_file: Optional[str] = None,
            gene_ids: Optional[Sequence[str]] = None,
            search_term: str = "", sort_key: str = 'id',
            descending: Optional[bool] = None) -> bool:
        """
        Run the complete expression pipeline.

        Args:
            count_files: Count table paths keyed by dataset label
            output_file: Path of the JSON report
            annotation_file: GFF3 annotation path (optional)
            gene_ids: Genes to profile; defaults to the gene search result
            search_term: Filter for the gene list
            sort_key: Gene list order ('id', 'name' or 'expression')
            descending: Gene list direction; None uses the default of the sort key

        Returns:
            True if pipeline completed successfully
        """
        try:
            output_path = Path(output_file)
            output_path.parent.mkdir(parents=True, exist_ok=True)

            if self.config.write_log_file:
                self._setup_pipeline_logging(str(output_path.parent))

            logging.info("Starting expression pipeline")
            logging.info(f"Configuration: {self.config}")
            logging.info(f"Count files: {count_files}")

            # Phase 1: Parse and normalize count tables
            for label, file_path in count_files.items():
                self.load_dataset(file_path, label)

            if not self.datasets:
                raise PipelineError("No count table could be loaded")

            # Phase 2: Parse annotations
            if annotation_file:
                self.load_annotation(annotation_file)

            # Phase 3: Gene list and condition profiles
            gene_list = self.search_genes(search_term, sort_key, descending)
            selected = list(gene_ids) if gene_ids else gene_list
            profiles = self.profile_genes(selected)

            # Phase 4: Report
            report = self.build_report(gene_list, selected, profiles)
            with open(output_path, 'w') as f:
                json.dump(report, f, indent=2)

            logging.info(f"Created: {output_path}")
            logging.info("Pipeline completed successfully")
            self.monitor.log_performance_report()
            return True

        except Exception as e:
            logging.error(f"Pipeline failed: {e}")
            logging.debug("Full traceback:", exc_info=True)
            return False

    def build_report(self, gene_list: Sequence[str], selected: Sequence[str],
                     profiles: Sequence[ConditionProfile]) -> Dict[str, object]:
        """Collect all results as plain JSON-serializable data."""
        return {
            'mode': self.mode,
            'datasets': {label: dataset.to_dict() for label, dataset in self.datasets.items()},
            'annotations': {gene_id: entry.to_dict() for gene_id, entry in self.annotations.items()},
            'gene_list': list(gene_list),
            'selected_genes': list(selected),
            'profiles': [profile.to_dict() for profile in profiles],
            'performance': self.monitor.get_performance_summary(),
        }

    def _setup_pipeline_logging(self, output_dir: str) -> None:
        """Set up pipeline-specific logging."""
        log_file = Path(output_dir) / 'expression_pipeline.log'

        # Add file handler to root logger
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s'
        ))

        root_logger = logging.getLogger()
        root_logger.addHandler(file_handler)

        if self.config.debug_mode:
            root_logger.setLevel(logging.DEBUG)
