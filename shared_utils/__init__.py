"""
Shared utilities for the valid observation frequency pipeline.

This package provides common functionality used across components:
- Standardized logging configuration
- Configuration file loading utilities
- Path handling utilities
- Central data path constants

Author: Diego Bengochea
"""

from .logging_utils import setup_logging, get_logger, log_pipeline_start, log_pipeline_end, log_section
from .config_utils import load_config
from .path_utils import ensure_directory, safe_filename

__version__ = "1.0.0"

__all__ = [
    "setup_logging",
    "get_logger",
    "log_pipeline_start",
    "log_pipeline_end",
    "log_section",
    "load_config",
    "ensure_directory",
    "safe_filename"
]
