"""
Valid Observations Executable Scripts

Scripts:
    run_valid_observations.py: Mosaics, ecoregion histograms and metadata in one run

Usage Examples:
    python -m valid_observations.scripts.run_valid_observations --config config.yaml
    python -m valid_observations.scripts.run_valid_observations --skip-export --log-level DEBUG

Author: Diego Bengochea
"""

from .run_valid_observations import main as run_valid_observations

__all__ = [
    "run_valid_observations"
]
