#!/usr/bin/env python3
"""
Recipe: Valid Observation Frequency per Ecoregion

Reproduces the valid observation products from the raw inputs:
1. Monthly and annual mosaics of distinct valid Sentinel-2 observation days
2. Fixed-bin histograms of those mosaics per ecoregion
3. Metadata table of every image acquired during the study years

Usage:
    python valid_observations_recipe.py [OPTIONS]

Examples:
    # Run with the component configuration
    python valid_observations_recipe.py

    # Custom configuration
    python valid_observations_recipe.py --config my_config.yaml

Author: Diego Bengochea
"""

import argparse
import sys
import time
from pathlib import Path
from typing import Optional

# Add repo root to path for absolute imports
sys.path.insert(0, str(Path(__file__).parent))

from shared_utils.logging_utils import setup_logging

from valid_observations.core.config import ValidObsConfig
from valid_observations.scripts.run_valid_observations import main as run_valid_observations_main


class ValidObservationsRecipe:
    """
    Recipe for the valid observation frequency products.

    Checks that the vector inputs exist, then runs the component script.
    """

    def __init__(self, config_path: Optional[str] = None, log_level: str = "INFO"):
        self.config_path = config_path
        self.log_level = log_level
        self.logger = setup_logging(
            level=log_level,
            component_name='valid_observations_recipe'
        )
        self.stage_results = {}

    def validate_prerequisites(self) -> bool:
        """
        Validate that required input data exists.

        Returns:
            bool: True if prerequisites are met
        """
        self.logger.info("Validating prerequisites...")
        config = ValidObsConfig.load(self.config_path)

        ok = True
        for label, path in (('Country boundary', config.regions.country_file),
                            ('Ecoregions', config.regions.ecoregions_file)):
            if Path(path).exists():
                self.logger.info(f"{label} found: {path}")
            else:
                self.logger.error(f"{label} not found: {path}")
                ok = False
        return ok

    def run_valid_observations(self) -> bool:
        stage_name = "Valid Observations"
        self.logger.info(f"{'='*60}")
        self.logger.info(f"Starting {stage_name}")
        self.logger.info(f"{'='*60}")

        stage_start = time.time()
        argv = ['--log-level', self.log_level]
        if self.config_path:
            argv += ['--config', self.config_path]

        result = run_valid_observations_main(argv)
        stage_time = time.time() - stage_start
        success = result == 0

        self.stage_results[stage_name] = {
            'success': success,
            'duration_minutes': stage_time / 60,
            'result': result
        }

        if success:
            self.logger.info(f"{stage_name} completed successfully in {stage_time/60:.2f} minutes")
        else:
            self.logger.error(f"{stage_name} finished with failures after {stage_time/60:.2f} minutes")
        return success


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Valid observation frequency recipe")
    parser.add_argument('--config', type=str, help='Path to configuration file')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    return parser.parse_args()


def main():
    """Main entry point for the valid observations recipe."""
    args = parse_arguments()
    recipe = ValidObservationsRecipe(args.config, args.log_level)

    if not recipe.validate_prerequisites():
        recipe.logger.error("Prerequisites validation failed")
        sys.exit(1)

    if not recipe.run_valid_observations():
        sys.exit(1)


if __name__ == "__main__":
    main()
