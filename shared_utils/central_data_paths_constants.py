"""
Central Data Paths - Constants

Default locations of the inputs and outputs of the valid observation frequency
pipeline. Paths given in the YAML configuration take precedence; these are
used when a configuration leaves them out.

Author: Diego Bengochea
"""

from pathlib import Path

# Root directories
DATA_ROOT = Path("data")

RAW_DIR = DATA_ROOT / "raw"
RESULTS_DIR = DATA_ROOT / "results"

# Country boundaries
COUNTRY_BOUNDARIES_DIR = RAW_DIR / "country_boundaries"
COUNTRY_BOUNDARIES_FILE = COUNTRY_BOUNDARIES_DIR / "country.shp"

# Ecoregions
ECOREGIONS_DIR = RAW_DIR / "ecoregions"
ECOREGIONS_FILE = ECOREGIONS_DIR / "ecoregions.shp"

# Outputs
VALID_OBS_RESULTS_DIR = RESULTS_DIR / "valid_observations"
