"""
Valid Observation Frequency Pipeline

Class-based pipeline producing, for a country and its ecoregions:
- monthly and annual mosaics of distinct valid observation days
- fixed-bin histograms of those mosaics per ecoregion
- a metadata table of every image acquired during the study years

Windows and regions are processed independently; failures are recorded in the
run summary instead of aborting the run.

Author: Diego Bengochea
"""

import time
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd
from shapely.geometry.base import BaseGeometry

from shared_utils import get_logger, log_pipeline_end, log_pipeline_start, log_section

from .aggregation import AggregationSettings, WindowStatus
from .catalog import CatalogRetrievalError, ImageCatalog, StacImageCatalog
from .config import ValidObsConfig
from .export import ResultsExporter
from .grid import AnalysisArea
from .metadata import metadata_table
from .mosaic_sequence import MosaicCollection, MosaicSequenceBuilder
from .regions import EcoregionPolygon, load_boundary, load_ecoregions
from .windows import ANNUAL, MONTHLY
from .zonal_histogram import RegionHistograms, ZonalHistogramReducer, histogram_table

PIPELINE_NAME = 'valid observation frequency'


@dataclass
class RunSummary:
    """Everything a run produced, including what failed."""
    monthly: MosaicCollection
    annual: MosaicCollection
    monthly_histograms: List[RegionHistograms] = field(default_factory=list)
    annual_histograms: List[RegionHistograms] = field(default_factory=list)
    metadata: Optional[pd.DataFrame] = None
    metadata_error: Optional[str] = None
    exported: List[Path] = field(default_factory=list)
    export_errors: Dict[str, str] = field(default_factory=dict)
    elapsed_time: float = 0.0

    def windows_with_status(self, status: WindowStatus) -> List[str]:
        return [r.label for collection in (self.monthly, self.annual) for r in collection.with_status(status)]

    @property
    def failed_regions(self) -> List[object]:
        return [h.region.code for h in self.monthly_histograms + self.annual_histograms if not h.ok]

    @property
    def success(self) -> bool:
        return (
            not self.windows_with_status(WindowStatus.FAILED)
            and not self.failed_regions
            and self.metadata_error is None
            and not self.export_errors
        )

    def to_dataframe(self) -> pd.DataFrame:
        """
        One row per window, per region reduction, for the metadata query and
        per failed export.

        Columns: stage, granularity, key, status, n_images, error
        """
        rows = []
        for collection in (self.monthly, self.annual):
            for result in collection:
                rows.append({
                    'stage': 'mosaic',
                    'granularity': collection.granularity,
                    'key': result.label,
                    'status': result.status.value,
                    'n_images': result.n_images,
                    'error': result.error,
                })
        for granularity, reductions in ((MONTHLY, self.monthly_histograms), (ANNUAL, self.annual_histograms)):
            for reduction in reductions:
                rows.append({
                    'stage': 'histogram',
                    'granularity': granularity,
                    'key': str(reduction.region.code),
                    'status': 'computed' if reduction.ok else 'failed',
                    'n_images': None,
                    'error': reduction.describe_errors(),
                })
        if self.metadata is not None or self.metadata_error is not None:
            rows.append({
                'stage': 'metadata',
                'granularity': None,
                'key': 'metadata',
                'status': 'failed' if self.metadata_error else 'computed',
                'n_images': None if self.metadata is None else len(self.metadata),
                'error': self.metadata_error,
            })
        for key, error in self.export_errors.items():
            rows.append({
                'stage': 'export',
                'granularity': None,
                'key': key,
                'status': 'failed',
                'n_images': None,
                'error': error,
            })
        return pd.DataFrame(rows, columns=['stage', 'granularity', 'key', 'status', 'n_images', 'error'])


class ValidObservationsPipeline:
    """
    Pipeline for valid observation mosaics and ecoregion histograms.

    The catalog, the country polygon and the ecoregions are read from the
    configured sources unless given explicitly.

    Examples:
        >>> pipeline = ValidObservationsPipeline('valid_observations/config.yaml')
        >>> summary = pipeline.run()
        >>> summary.windows_with_status(WindowStatus.FAILED)
    """

    def __init__(
        self,
        config: Union[ValidObsConfig, str, Path, None] = None,
        catalog: Optional[ImageCatalog] = None,
        country_geometry: Optional[BaseGeometry] = None,
        ecoregions: Optional[Sequence[EcoregionPolygon]] = None,
        progress: bool = True
    ):
        self.config = config if isinstance(config, ValidObsConfig) else ValidObsConfig.load(config)
        self.catalog = catalog
        self.country_geometry = country_geometry
        self.ecoregions = list(ecoregions) if ecoregions is not None else None
        self.progress = progress
        self.area: Optional[AnalysisArea] = None
        self.logger = get_logger('pipeline')

    def prepare(self) -> None:
        """Load vector inputs, build the analysis grid and connect the catalog."""
        regions = self.config.regions
        processing = self.config.processing

        if self.country_geometry is None:
            self.country_geometry = load_boundary(regions.country_file, processing.crs)

        self.area = AnalysisArea.from_country(
            self.country_geometry,
            processing.resolution,
            processing.crs,
            bbox=regions.bbox
        )
        ny, nx = self.area.shape
        self.logger.info(f"Analysis grid: {ny} x {nx} pixels at {processing.resolution:g} in {processing.crs}")

        if self.ecoregions is None:
            self.ecoregions = load_ecoregions(
                regions.ecoregions_file,
                regions.code_field,
                regions.description_field,
                regions.code_range,
                processing.crs
            )

        if self.catalog is None:
            catalog = self.config.catalog
            self.catalog = StacImageCatalog(
                catalog.stac_url,
                catalog.collection,
                self.area.geobox,
                bands=[catalog.qa_band, catalog.reference_band],
                chunk_size=catalog.chunk_size
            )

    def build_mosaics(self):
        builder = MosaicSequenceBuilder(
            self.catalog,
            self.area,
            AggregationSettings.from_config(self.config),
            n_workers=self.config.processing.n_workers,
            progress=self.progress
        )
        monthly = builder.build_monthly(self.config.study)
        annual = builder.build_annual(self.config.study)
        return monthly, annual

    def reduce_histograms(self, collection: MosaicCollection) -> List[RegionHistograms]:
        reducer = ZonalHistogramReducer(
            tile_size=self.config.processing.tile_size,
            n_workers=self.config.processing.n_workers,
            progress=self.progress
        )
        reductions = reducer.reduce_regions(collection, collection.factor, self.ecoregions)
        failed = [r.region.code for r in reductions if not r.ok]
        self.logger.info(f"{collection.granularity.capitalize()} histograms: "
                         f"{len(reductions) - len(failed)} regions reduced, {len(failed)} failed")
        return reductions

    def collect_metadata(self):
        """
        Metadata of the images of every study year over the country.

        Returns:
            tuple: (metadata table or None, error message or None)
        """
        study = self.config.study
        # the end bound is exclusive, so the last day of the study is left out
        start, end = date(study.start_year, 1, 1), date(study.end_year, 12, 31)
        try:
            images = self.catalog.search_metadata(start, end, self.country_geometry)
        except CatalogRetrievalError as e:
            self.logger.error(f"Metadata retrieval failed: {e}")
            return None, f"CatalogRetrievalError: {e}"

        table = metadata_table(images, self.config.metadata_fields)
        self.logger.info(f"Collected metadata of {len(table)} images ({start} to {end})")
        return table, None

    def export(self, summary: RunSummary) -> List[Path]:
        exporter = ResultsExporter(self.config)
        settings = self.config.export
        regions = self.config.regions
        written = []

        if settings.mosaics:
            written += exporter.export_mosaics(summary.annual)
            if self.config.study.export_year is not None:
                written += exporter.export_mosaics(summary.monthly, year=self.config.study.export_year)
            summary.export_errors = dict(exporter.errors)

        if settings.histograms:
            for granularity, reductions in ((MONTHLY, summary.monthly_histograms),
                                            (ANNUAL, summary.annual_histograms)):
                for reduction in reductions:
                    if reduction.error is not None:
                        continue
                    table = histogram_table(reduction.records, regions.code_field, regions.description_field)
                    written.append(exporter.export_histograms(table, reduction.region.code, granularity))

        if settings.metadata and summary.metadata is not None:
            written.append(exporter.export_metadata(summary.metadata))

        if settings.summary:
            written.append(exporter.export_summary(summary.to_dataframe()))

        return written

    def run(self, export: bool = True) -> RunSummary:
        """
        Execute the complete pipeline.

        Args:
            export: Write rasters and tables to the output directory

        Returns:
            RunSummary: Products and per-window / per-region outcomes
        """
        start_time = time.time()
        log_pipeline_start(self.logger, PIPELINE_NAME, self.config.summary())

        log_section(self.logger, 'Preparation')
        self.prepare()

        log_section(self.logger, 'Mosaics')
        monthly, annual = self.build_mosaics()
        summary = RunSummary(monthly=monthly, annual=annual)

        log_section(self.logger, 'Ecoregion histograms')
        summary.monthly_histograms = self.reduce_histograms(monthly)
        summary.annual_histograms = self.reduce_histograms(annual)

        log_section(self.logger, 'Metadata')
        summary.metadata, summary.metadata_error = self.collect_metadata()

        if export:
            log_section(self.logger, 'Export')
            summary.exported = self.export(summary)

        summary.elapsed_time = time.time() - start_time

        failed_windows = summary.windows_with_status(WindowStatus.FAILED)
        if failed_windows:
            self.logger.warning(f"Failed windows: {', '.join(failed_windows)}")
        if summary.failed_regions:
            self.logger.warning(f"Failed region reductions: {summary.failed_regions}")
        if summary.export_errors:
            self.logger.warning(f"Failed exports: {', '.join(summary.export_errors)}")

        log_pipeline_end(self.logger, PIPELINE_NAME, summary.success, summary.elapsed_time)
        return summary
