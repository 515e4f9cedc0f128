#!/usr/bin/env python3
"""
Valid Observation Frequency Script

Command-line interface for the valid observation frequency pipeline. Builds
the monthly and annual mosaics of distinct valid observation days, reduces
them to ecoregion histograms, collects image metadata and exports everything
to the configured output directory.

Usage Examples:
    # Run with default configuration
    python scripts/run_valid_observations.py

    # Run with custom configuration, keeping results in memory only
    python scripts/run_valid_observations.py --config custom_config.yaml --skip-export

Author: Diego Bengochea
"""

import argparse
import sys
from typing import List, Optional

import yaml

# Shared utilities
from shared_utils import setup_logging

# Component imports
from valid_observations.core.config import ConfigurationError, ValidObsConfig
from valid_observations.core.pipeline import ValidObservationsPipeline


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Valid Observation Frequency Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration file (default: config.yaml)'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: from configuration)'
    )
    parser.add_argument(
        '--skip-export',
        action='store_true',
        help='Compute everything but do not write outputs'
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the valid observation frequency script.

    Returns:
        int: Exit code (0 for success, 1 for failure)
    """
    args = parse_arguments(argv)

    try:
        config = ValidObsConfig.load(args.config)
    except (FileNotFoundError, yaml.YAMLError, ConfigurationError) as e:
        logger = setup_logging(level=args.log_level or 'INFO', component_name='valid_observations')
        logger.error(f"Invalid configuration: {str(e)}")
        return 1

    setup_logging(
        level=args.log_level or config.log_level,
        component_name='valid_observations',
        log_file=config.log_file
    )

    pipeline = ValidObservationsPipeline(config)
    summary = pipeline.run(export=not args.skip_export)
    return 0 if summary.success else 1


if __name__ == "__main__":
    sys.exit(main())
