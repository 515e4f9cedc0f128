"""
Valid Observations Core Modules

Masking, window aggregation, mosaic sequences, zonal histograms and metadata
extraction for valid satellite observation frequency analysis.

Modules:
    config: Immutable, validated run configuration
    grid: Analysis grid, polygon rasterization and tiling
    catalog: Image catalog interface, STAC and in-memory adapters
    masking: Three-state per-image observation layers
    windows: Monthly and annual half-open time windows
    aggregation: Distinct valid day counts per window
    mosaic_sequence: Ordered monthly and annual mosaic collections
    regions: Country boundary and ecoregion polygons
    zonal_histogram: Tiled fixed-bin histograms per ecoregion
    metadata: Per-image metadata records
    export: GeoTIFF and CSV outputs
    pipeline: End-to-end pipeline and run summary

Author: Diego Bengochea
"""

from .config import (
    ConfigurationError,
    ValidObsConfig,
    StudyPeriod,
    CatalogSettings,
    RegionSettings,
    ProcessingSettings,
    ExportSettings
)

from .grid import AnalysisArea, COUNT_NODATA, make_geobox, grid_array, polygon_mask

from .catalog import (
    CatalogRetrievalError,
    SourceImage,
    ImageCatalog,
    InMemoryCatalog,
    StacImageCatalog
)

from .masking import PixelState, ObservationLayer, mask_image

from .windows import MONTHLY, ANNUAL, Window, monthly_windows, annual_windows

from .aggregation import (
    WindowStatus,
    WindowResult,
    AggregationSettings,
    aggregate_window,
    distinct_day_count
)

from .mosaic_sequence import MosaicCollection, MosaicSequenceBuilder

from .regions import EcoregionPolygon, load_boundary, load_ecoregions

from .zonal_histogram import (
    HistogramRecord,
    RegionHistograms,
    ZonalHistogramReducer,
    histogram_bins,
    histogram_table
)

from .metadata import MetadataRecord, extract_metadata, metadata_table

from .export import ResultsExporter

from .pipeline import ValidObservationsPipeline, RunSummary

__all__ = [
    # Configuration
    "ConfigurationError",
    "ValidObsConfig",
    "StudyPeriod",
    "CatalogSettings",
    "RegionSettings",
    "ProcessingSettings",
    "ExportSettings",

    # Grid
    "AnalysisArea",
    "COUNT_NODATA",
    "make_geobox",
    "grid_array",
    "polygon_mask",

    # Catalog
    "CatalogRetrievalError",
    "SourceImage",
    "ImageCatalog",
    "InMemoryCatalog",
    "StacImageCatalog",

    # Masking and aggregation
    "PixelState",
    "ObservationLayer",
    "mask_image",
    "MONTHLY",
    "ANNUAL",
    "Window",
    "monthly_windows",
    "annual_windows",
    "WindowStatus",
    "WindowResult",
    "AggregationSettings",
    "aggregate_window",
    "distinct_day_count",

    # Sequences and histograms
    "MosaicCollection",
    "MosaicSequenceBuilder",
    "EcoregionPolygon",
    "load_boundary",
    "load_ecoregions",
    "HistogramRecord",
    "RegionHistograms",
    "ZonalHistogramReducer",
    "histogram_bins",
    "histogram_table",

    # Metadata and outputs
    "MetadataRecord",
    "extract_metadata",
    "metadata_table",
    "ResultsExporter",
    "ValidObservationsPipeline",
    "RunSummary"
]
