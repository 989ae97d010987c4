#!/usr/bin/env python3

"""
Configuration management for the expression pipeline.

Centralized configuration with support for file-based configuration
and environment variable overrides.
"""

import os
import json
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List

import yaml

from .exceptions import ConfigurationError

DEFAULT_PRODUCT = "Hypothetical protein"
CONDITION_MATCH_MODES = ('exact', 'prefix')


@dataclass
class PipelineConfig:
    """Centralized configuration for the expression pipeline."""

    # Annotation settings
    default_product: str = DEFAULT_PRODUCT

    # Sample grouping
    condition_separator: str = "_"
    condition_match: str = "exact"  # 'exact' or 'prefix'

    # Input sniffing
    html_markers: List[str] = field(default_factory=lambda: ['<!doctype html', '<html'])

    # Gene list settings
    search_limit: int = 100

    # Performance settings
    memory_limit_mb: int = 4096
    enable_memory_monitoring: bool = True

    # Output settings
    write_log_file: bool = True
    debug_mode: bool = False

    @classmethod
    def from_file(cls, config_path: str) -> 'PipelineConfig':
        """Load configuration from file (JSON or YAML)."""
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                if config_path.lower().endswith(('.yaml', '.yml')):
                    config_data = yaml.safe_load(f)
                else:
                    config_data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Invalid configuration file format: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error loading configuration: {e}")

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'PipelineConfig':
        """Create configuration from dictionary."""
        # Filter out unknown keys
        known_keys = set(cls.__dataclass_fields__.keys())
        filtered_dict = {k: v for k, v in config_dict.items() if k in known_keys}

        try:
            return cls(**filtered_dict)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration parameters: {e}")

    @classmethod
    def from_env(cls) -> 'PipelineConfig':
        """Load configuration from environment variables."""
        config = cls()

        # Map environment variables to config fields
        env_mappings = {
            'EXPRESSION_DEFAULT_PRODUCT': ('default_product', str),
            'EXPRESSION_CONDITION_SEPARATOR': ('condition_separator', str),
            'EXPRESSION_CONDITION_MATCH': ('condition_match', str),
            'EXPRESSION_SEARCH_LIMIT': ('search_limit', int),
            'EXPRESSION_MEMORY_LIMIT_MB': ('memory_limit_mb', int),
            'EXPRESSION_DEBUG_MODE': ('debug_mode', lambda x: x.lower() in ('true', '1', 'yes')),
        }

        for env_var, (field_name, converter) in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value:
                try:
                    setattr(config, field_name, converter(env_value))
                except (ValueError, TypeError) as e:
                    raise ConfigurationError(f"Invalid environment variable {env_var}: {e}")

        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def save_to_file(self, config_path: str) -> None:
        """Save configuration to file."""
        config_dict = self.to_dict()

        try:
            with open(config_path, 'w') as f:
                if config_path.lower().endswith(('.yaml', '.yml')):
                    yaml.safe_dump(config_dict, f, default_flow_style=False)
                else:
                    json.dump(config_dict, f, indent=2)
        except OSError as e:
            raise ConfigurationError(f"Error saving configuration: {e}")

    def validate(self) -> None:
        """Validate configuration parameters."""
        if not self.default_product:
            raise ConfigurationError("default_product must not be empty")

        if not self.condition_separator:
            raise ConfigurationError("condition_separator must not be empty")

        if self.condition_match not in CONDITION_MATCH_MODES:
            raise ConfigurationError(
                f"condition_match must be one of {', '.join(CONDITION_MATCH_MODES)}"
            )

        if self.search_limit < 1:
            raise ConfigurationError("search_limit must be >= 1")

        if self.memory_limit_mb < 100:
            raise ConfigurationError("memory_limit_mb must be >= 100")

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.validate()


def load_config(config_path: Optional[str] = None,
                use_env: bool = True) -> PipelineConfig:
    """
    Load configuration with priority: file > environment > defaults.

    Args:
        config_path: Path to configuration file (optional)
        use_env: Whether to load environment variables

    Returns:
        PipelineConfig: Loaded configuration
    """
    # Start with defaults
    config = PipelineConfig()

    # Override with environment variables if requested
    if use_env:
        try:
            env_config = PipelineConfig.from_env()
            # Merge non-default values from environment
            for field_name in PipelineConfig.__dataclass_fields__.keys():
                env_value = getattr(env_config, field_name)
                if env_value != getattr(config, field_name):
                    setattr(config, field_name, env_value)
        except ConfigurationError:
            # Environment config is optional
            pass

    # Override with file configuration if provided
    if config_path:
        file_config = PipelineConfig.from_file(config_path)
        for field_name in PipelineConfig.__dataclass_fields__.keys():
            setattr(config, field_name, getattr(file_config, field_name))

    return config
