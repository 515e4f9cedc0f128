"""
Immutable run configuration for the valid observation frequency pipeline.

The YAML configuration loaded by ``shared_utils.load_config`` is validated once
and frozen into a ``ValidObsConfig``. Every component receives the settings it
needs explicitly; nothing reads module level state. Inconsistent settings raise
``ConfigurationError`` before any window is processed.

Author: Diego Bengochea
"""

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import pandas as pd

from shared_utils import load_config
from shared_utils.central_data_paths_constants import (
    COUNTRY_BOUNDARIES_FILE,
    ECOREGIONS_FILE,
    VALID_OBS_RESULTS_DIR,
)

from .masking import CLEAR_SCL_CLASSES

# STAC item properties of the earth-search Sentinel-2 L2A collection.
# There is no datastrip cloud assessment property, so that field stays empty.
DEFAULT_METADATA_FIELDS = {
    'product_id': 's2:product_uri',
    'cloud_pixel_percentage': 'eo:cloud_cover',
    'cloud_coverage_assessment': None,
    'sensor': 'platform',
    'tile_id': 'grid:code',
}


class ConfigurationError(ValueError):
    """Raised when the configured study period or processing settings are inconsistent."""


@dataclass(frozen=True)
class CatalogSettings:
    """Where source imagery comes from and which bands define a valid observation."""
    stac_url: str = 'https://earth-search.aws.element84.com/v1'
    collection: str = 'sentinel-2-l2a'
    qa_band: str = 'scl'
    reference_band: str = 'red'
    clear_classes: Tuple[int, ...] = CLEAR_SCL_CLASSES
    reference_nodata: float = 0
    chunk_size: int = 2048


@dataclass(frozen=True)
class RegionSettings:
    """Country boundary and ecoregion polygon sources."""
    country_file: Path = COUNTRY_BOUNDARIES_FILE
    bbox: Optional[Tuple[float, float, float, float]] = None
    ecoregions_file: Path = ECOREGIONS_FILE
    code_field: str = 'CVEECON1'
    description_field: str = 'DESECON1'
    code_range: Tuple[int, int] = (9, 15)


@dataclass(frozen=True)
class StudyPeriod:
    """
    Temporal extent of the analysis.

    Monthly windows start at ``monthly_start`` and, unless a count is given,
    run through December of ``end_year``. Annual windows start at
    ``annual_start`` and there is one per study year.
    """
    start_year: int
    end_year: int
    monthly_start: date
    monthly_end: date
    annual_start: date
    annual_end: date
    monthly_window_count: Optional[int] = None
    export_year: Optional[int] = None

    @property
    def n_years(self) -> int:
        return self.end_year - self.start_year

    @property
    def monthly_count(self) -> int:
        if self.monthly_window_count is not None:
            return self.monthly_window_count
        return 12 * (self.end_year - self.monthly_start.year + 1) - (self.monthly_start.month - 1)

    @property
    def annual_count(self) -> int:
        return self.n_years + 1


@dataclass(frozen=True)
class ProcessingSettings:
    crs: str = 'EPSG:6372'
    resolution: float = 60
    tile_size: int = 2048
    n_workers: int = 4
    no_observation_correction: bool = True


@dataclass(frozen=True)
class ExportSettings:
    output_dir: Path = VALID_OBS_RESULTS_DIR
    mosaics: bool = True
    histograms: bool = True
    metadata: bool = True
    summary: bool = True


@dataclass(frozen=True)
class ValidObsConfig:
    """Complete, validated configuration of one pipeline run."""
    study: StudyPeriod
    catalog: CatalogSettings = field(default_factory=CatalogSettings)
    regions: RegionSettings = field(default_factory=RegionSettings)
    processing: ProcessingSettings = field(default_factory=ProcessingSettings)
    export: ExportSettings = field(default_factory=ExportSettings)
    metadata_fields: Dict[str, Optional[str]] = field(default_factory=lambda: dict(DEFAULT_METADATA_FIELDS))
    log_level: str = 'INFO'
    log_file: Optional[str] = None

    def __post_init__(self):
        validate_study_period(self.study)
        validate_processing(self.processing)

        if not self.catalog.clear_classes:
            raise ConfigurationError("At least one clear quality class is required")

        low, high = self.regions.code_range
        if low > high:
            raise ConfigurationError(f"Region code range is inverted: {self.regions.code_range}")

        if self.regions.bbox is not None:
            left, bottom, right, top = self.regions.bbox
            if left >= right or bottom >= top:
                raise ConfigurationError(f"Degenerate bounding box: {self.regions.bbox}")

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ValidObsConfig':
        """
        Build the frozen configuration from a parsed YAML dictionary.

        Examples:
            >>> cfg = ValidObsConfig.from_dict(load_config(component_name='valid_observations'))
            >>> cfg.study.monthly_count
            66
        """
        try:
            study_cfg = config['study']
        except (KeyError, TypeError):
            raise ConfigurationError("Missing required configuration section: study")

        try:
            study = StudyPeriod(
                start_year=int(study_cfg['start_year']),
                end_year=int(study_cfg['end_year']),
                monthly_start=_parse_date(study_cfg['monthly_start'], 'study.monthly_start'),
                monthly_end=_parse_date(study_cfg['monthly_end'], 'study.monthly_end'),
                annual_start=_parse_date(study_cfg['annual_start'], 'study.annual_start'),
                annual_end=_parse_date(study_cfg['annual_end'], 'study.annual_end'),
                monthly_window_count=_optional_int(study_cfg.get('monthly_window_count')),
                export_year=_optional_int(config.get('export', {}).get('monthly_export_year')),
            )
        except KeyError as e:
            raise ConfigurationError(f"Missing required study parameter: {e.args[0]}")

        data_cfg = config.get('data', {})
        catalog = CatalogSettings(
            stac_url=data_cfg.get('stac_url', CatalogSettings.stac_url),
            collection=data_cfg.get('collection', CatalogSettings.collection),
            qa_band=data_cfg.get('qa_band', CatalogSettings.qa_band),
            reference_band=data_cfg.get('reference_band', CatalogSettings.reference_band),
            clear_classes=tuple(int(v) for v in data_cfg.get('clear_classes', CatalogSettings.clear_classes)),
            reference_nodata=data_cfg.get('reference_nodata', CatalogSettings.reference_nodata),
            chunk_size=int(data_cfg.get('chunk_size', CatalogSettings.chunk_size)),
        )

        boundaries_cfg = config.get('boundaries', {})
        ecoregions_cfg = config.get('ecoregions', {})
        bbox = boundaries_cfg.get('bbox')
        regions = RegionSettings(
            country_file=Path(boundaries_cfg.get('country_file', COUNTRY_BOUNDARIES_FILE)),
            bbox=tuple(float(v) for v in bbox) if bbox else None,
            ecoregions_file=Path(ecoregions_cfg.get('file', ECOREGIONS_FILE)),
            code_field=ecoregions_cfg.get('code_field', RegionSettings.code_field),
            description_field=ecoregions_cfg.get('description_field', RegionSettings.description_field),
            code_range=tuple(int(v) for v in ecoregions_cfg.get('code_range', RegionSettings.code_range)),
        )

        processing_cfg = config.get('processing', {})
        processing = ProcessingSettings(
            crs=processing_cfg.get('crs', ProcessingSettings.crs),
            resolution=float(processing_cfg.get('resolution', ProcessingSettings.resolution)),
            tile_size=int(processing_cfg.get('tile_size', ProcessingSettings.tile_size)),
            n_workers=int(processing_cfg.get('n_workers', ProcessingSettings.n_workers)),
            no_observation_correction=bool(
                processing_cfg.get('no_observation_correction', ProcessingSettings.no_observation_correction)
            ),
        )

        export_cfg = config.get('export', {})
        export = ExportSettings(
            output_dir=Path(export_cfg.get('output_dir', VALID_OBS_RESULTS_DIR)),
            mosaics=bool(export_cfg.get('mosaics', True)),
            histograms=bool(export_cfg.get('histograms', True)),
            metadata=bool(export_cfg.get('metadata', True)),
            summary=bool(export_cfg.get('summary', True)),
        )

        metadata_fields = dict(DEFAULT_METADATA_FIELDS)
        metadata_fields.update(config.get('metadata', {}).get('fields', {}) or {})

        logging_cfg = config.get('logging', {})

        return cls(
            study=study,
            catalog=catalog,
            regions=regions,
            processing=processing,
            export=export,
            metadata_fields=metadata_fields,
            log_level=logging_cfg.get('level', 'INFO'),
            log_file=logging_cfg.get('file'),
        )

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> 'ValidObsConfig':
        """Load the YAML configuration and freeze it."""
        return cls.from_dict(load_config(config_path, component_name='valid_observations'))

    def summary(self) -> Dict[str, Any]:
        """Flat view of the key parameters, used for the pipeline start banner."""
        return {
            'study_years': f"{self.study.start_year}-{self.study.end_year}",
            'monthly_windows': f"{self.study.monthly_count} from {self.study.monthly_start}",
            'annual_windows': f"{self.study.annual_count} from {self.study.annual_start}",
            'resolution': self.processing.resolution,
            'crs': self.processing.crs,
            'region_codes': self.regions.code_range,
            'no_observation_correction': self.processing.no_observation_correction,
            'output_dir': str(self.export.output_dir),
        }


def validate_study_period(study: StudyPeriod) -> None:
    """Raise ``ConfigurationError`` for inconsistent window bounds."""
    if study.end_year < study.start_year:
        raise ConfigurationError(
            f"Study end year {study.end_year} is before start year {study.start_year}"
        )
    if study.monthly_end <= study.monthly_start:
        raise ConfigurationError(
            f"Monthly window end {study.monthly_end} is not after start {study.monthly_start}"
        )
    if study.annual_end <= study.annual_start:
        raise ConfigurationError(
            f"Annual window end {study.annual_end} is not after start {study.annual_start}"
        )
    if study.monthly_count < 1:
        raise ConfigurationError(f"Monthly window count must be positive, got {study.monthly_count}")
    if study.export_year is not None and not study.start_year <= study.export_year <= study.end_year:
        raise ConfigurationError(
            f"Monthly export year {study.export_year} is outside the study period "
            f"{study.start_year}-{study.end_year}"
        )


def validate_processing(processing: ProcessingSettings) -> None:
    if processing.resolution <= 0:
        raise ConfigurationError(f"Output resolution must be positive, got {processing.resolution}")
    if processing.tile_size < 1:
        raise ConfigurationError(f"Tile size must be positive, got {processing.tile_size}")
    if processing.n_workers < 1:
        raise ConfigurationError(f"Number of workers must be positive, got {processing.n_workers}")


def _parse_date(value: Any, key: str) -> date:
    try:
        return pd.Timestamp(value).date()
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid date for {key}: {value!r} ({e})")


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)
