"""
Valid Observations Component

Pipeline measuring how often a country is validly observed by Sentinel-2:
per-pixel counts of distinct cloud-free acquisition days over monthly and
annual windows, summarized per ecoregion as fixed-bin histograms.

This component provides:
- Three-state (no data / invalid / valid) masking of each acquisition
- Monthly and annual mosaics of distinct valid observation days
- Tiled, parallel zonal histograms per ecoregion
- Per-image metadata tables
- GeoTIFF and CSV exports with a run summary of failed windows

Author: Diego Bengochea
"""

from .core.pipeline import ValidObservationsPipeline, RunSummary
from .core.config import ValidObsConfig, ConfigurationError
from .core.catalog import CatalogRetrievalError, ImageCatalog, InMemoryCatalog, StacImageCatalog

from .scripts.run_valid_observations import main as run_valid_observations

__version__ = "1.0.0"
__component__ = "valid_observations"

__all__ = [
    "ValidObservationsPipeline",
    "RunSummary",
    "ValidObsConfig",
    "ConfigurationError",
    "CatalogRetrievalError",
    "ImageCatalog",
    "InMemoryCatalog",
    "StacImageCatalog",
    "run_valid_observations",
    "__version__",
    "__component__"
]
