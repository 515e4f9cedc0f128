"""
Persistence of mosaics and tables.

Mosaics are written as LZW-compressed tiled GeoTIFFs carrying the window label
as a tag; histogram, metadata and summary tables are written as CSV. File
names follow the naming of the historical products so downstream notebooks
keep working.

Author: Diego Bengochea
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd
import xarray as xr

from shared_utils import ensure_directory, get_logger, safe_filename

from .aggregation import WindowResult
from .config import ValidObsConfig
from .mosaic_sequence import MosaicCollection
from .windows import ANNUAL


def write_count_raster(raster: xr.DataArray, path: Union[str, Path]) -> Path:
    """
    Write one count raster to GeoTIFF.

    The raster is written block by block, so a lazy raster is computed one
    block at a time and never held whole in memory.
    """
    path = Path(path)
    ensure_directory(path.parent)
    tags = {key: str(value) for key, value in raster.attrs.items() if not key.startswith('_')}
    raster.rio.to_raster(
        path,
        tags=tags,
        compress='lzw',
        tiled=True,
        windowed=True
    )
    return path


def write_table(table: pd.DataFrame, path: Union[str, Path]) -> Path:
    path = Path(path)
    ensure_directory(path.parent)
    table.to_csv(path, index=False)
    return path


class ResultsExporter:
    """
    Writes the products of a run under the configured output directory.

    Layout:
        <output_dir>/mosaics/      annual and monthly count GeoTIFFs
        <output_dir>/histograms/   per-ecoregion histogram CSVs
        <output_dir>/metadata/     image metadata CSV
        <output_dir>/run_summary.csv
    """

    def __init__(self, config: ValidObsConfig):
        self.config = config
        self.output_dir = Path(config.export.output_dir)
        self.resolution = config.processing.resolution
        self.errors: Dict[str, str] = {}
        self.logger = get_logger('export')

    @property
    def mosaics_dir(self) -> Path:
        return self.output_dir / 'mosaics'

    @property
    def histograms_dir(self) -> Path:
        return self.output_dir / 'histograms'

    @property
    def metadata_dir(self) -> Path:
        return self.output_dir / 'metadata'

    def mosaic_filename(self, result: WindowResult) -> str:
        res = f"{self.resolution:g}m"
        start = result.window.start
        if result.window.granularity == ANNUAL:
            return f"S2_ValidObs_Year_{result.label}_{res}.tif"
        return f"S2_ValidObs_{start.year}_Month{start.month}_{res}.tif"

    def histogram_filename(self, region_code, granularity: str) -> str:
        study = self.config.study
        if granularity == ANNUAL:
            name = f"S2_ValidObs_CVE{region_code}_YearComp_{study.annual_start}-{study.annual_end}_Histogram"
        else:
            name = f"S2_ValidObs_CVE{region_code}_1MonthComp_{study.monthly_start}-{study.monthly_end}_Hist"
        return safe_filename(name) + '.csv'

    def metadata_filename(self) -> str:
        return f"S2_Metadata_{self.config.study.start_year}-{self.config.study.end_year}.csv"

    def export_mosaics(self, collection: MosaicCollection, year: Optional[int] = None) -> List[Path]:
        """
        Write the rasters of ``collection``; only windows starting in ``year`` if given.

        Failed windows have no raster and are skipped. A raster whose pixels
        cannot be read is recorded in ``errors`` under its file name and the
        remaining windows are still written.
        """
        results = collection.for_year(year) if year is not None else list(collection)
        written = []
        for result in results:
            if not result.has_raster:
                self.logger.warning(f"Not exporting window {result.label}: {result.status.value}")
                continue
            filename = self.mosaic_filename(result)
            try:
                path = write_count_raster(result.raster, self.mosaics_dir / filename)
            except Exception as e:
                self.logger.error(f"Failed to export mosaic {result.label}: {str(e)}")
                self.errors[filename] = f"{type(e).__name__}: {e}"
                continue
            self.logger.info(f"Saved mosaic {result.label} to {path}")
            written.append(path)
        return written

    def export_histograms(self, table: pd.DataFrame, region_code, granularity: str) -> Path:
        path = write_table(table, self.histograms_dir / self.histogram_filename(region_code, granularity))
        self.logger.info(f"Saved {granularity} histograms of region {region_code} to {path}")
        return path

    def export_metadata(self, table: pd.DataFrame) -> Path:
        path = write_table(table, self.metadata_dir / self.metadata_filename())
        self.logger.info(f"Saved metadata of {len(table)} images to {path}")
        return path

    def export_summary(self, table: pd.DataFrame) -> Path:
        path = write_table(table, self.output_dir / 'run_summary.csv')
        self.logger.info(f"Saved run summary to {path}")
        return path
