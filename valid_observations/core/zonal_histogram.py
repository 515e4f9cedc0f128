"""
Zonal fixed-bin histograms of valid observation counts.

For every mosaic and ecoregion, counts how many pixels (centre inside the
polygon) have each number of distinct valid observation days. Bins are fixed by
the window granularity factor ``n`` (1 monthly, 12 annual): unit-width bins
for the values ``-1 .. 15n-1``, i.e. ``15n + 1`` bins. Counts above the last
bin are folded into it and reported as ``overflow``, so the last bin reads
"15n-1 or more" and the bins of a record always add up to the region's pixel
count.

Country-scale rasters are reduced tile by tile: each tile of ``tile_size``
pixels intersecting the polygon yields a partial histogram and the partial
histograms are summed. Only the tile being reduced is read from a lazy
raster. Regions are independent and are reduced concurrently; a window whose
pixels cannot be read is reported against the region without dropping the
records of the other windows.

Author: Diego Bengochea
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
import xarray as xr
from odc.geo.geobox import GeoBox
from tqdm import tqdm

from shared_utils import get_logger

from .aggregation import WindowResult
from .grid import COUNT_NODATA, iter_tiles, polygon_mask, window_bounds
from .mosaic_sequence import MosaicCollection
from .regions import EcoregionPolygon

BIN_LOWER_BOUND = -1
DAYS_PER_UNIT_WINDOW = 15


def histogram_bins(n: int) -> List[int]:
    """
    Bin values for granularity factor ``n``.

    Examples:
        >>> bins = histogram_bins(1)
        >>> bins[0], bins[-1], len(bins)
        (-1, 14, 16)
    """
    return list(range(BIN_LOWER_BOUND, DAYS_PER_UNIT_WINDOW * n))


@dataclass(frozen=True)
class HistogramRecord:
    """Pixel count per bin of one mosaic over one ecoregion."""
    date: str
    region_code: object
    region_description: str
    bins: Dict[int, int]
    overflow: int = 0

    @property
    def total(self) -> int:
        return sum(self.bins.values())

    def to_row(self, code_field: str = 'region_code', description_field: str = 'region_description') -> dict:
        row = {
            'date': self.date,
            code_field: self.region_code,
            description_field: self.region_description,
        }
        row.update({f"bin_{value}": count for value, count in self.bins.items()})
        row['overflow'] = self.overflow
        return row


@dataclass(frozen=True)
class RegionHistograms:
    """All histogram records of one region, and the errors that prevented some or all of them."""
    region: EcoregionPolygon
    records: List[HistogramRecord] = field(default_factory=list)
    error: Optional[str] = None
    window_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.window_errors

    def describe_errors(self) -> Optional[str]:
        if self.error is not None:
            return self.error
        if self.window_errors:
            return "; ".join(f"{label}: {error}" for label, error in self.window_errors.items())
        return None


def bin_counts(values: np.ndarray, n: int) -> Tuple[np.ndarray, int]:
    """
    Histogram of integer ``values`` over the fixed bins of factor ``n``.

    Returns:
        tuple: (counts per bin, number of values folded into the last bin)
    """
    n_bins = DAYS_PER_UNIT_WINDOW * n + 1
    top = BIN_LOWER_BOUND + n_bins - 1
    values = values.astype('int64', copy=False)
    overflow = int(np.count_nonzero(values > top))
    clipped = np.clip(values, BIN_LOWER_BOUND, top) - BIN_LOWER_BOUND
    return np.bincount(clipped, minlength=n_bins), overflow


def _raster_geobox(raster: xr.DataArray) -> GeoBox:
    return GeoBox(tuple(raster.shape[-2:]), raster.rio.transform(), str(raster.rio.crs))


class ZonalHistogramReducer:
    """
    Reduces count rasters to fixed-bin histograms per ecoregion.

    Examples:
        >>> reducer = ZonalHistogramReducer(tile_size=2048, n_workers=4)
        >>> records = reducer.reduce(monthly, 1, region)
        >>> records[0].bins[3]
    """

    def __init__(self, tile_size: int = 2048, n_workers: int = 1, progress: bool = False):
        self.tile_size = tile_size
        self.n_workers = n_workers
        self.progress = progress
        self.logger = get_logger('zonal_histogram')

    def reduce_raster(self, raster: xr.DataArray, n: int, geometry) -> Tuple[np.ndarray, int]:
        """Bin counts of ``raster`` pixels whose centre lies inside ``geometry``."""
        n_bins = DAYS_PER_UNIT_WINDOW * n + 1
        counts = np.zeros(n_bins, dtype='int64')
        overflow = 0

        if geometry is None or geometry.is_empty:
            return counts, overflow

        geobox = _raster_geobox(raster)
        nodata = raster.rio.nodata
        if nodata is None:
            nodata = COUNT_NODATA

        for window in iter_tiles(raster.shape[-2:], self.tile_size):
            if not window_bounds(window, geobox).intersects(geometry):
                continue
            inside = polygon_mask(geometry, geobox, window)
            if not inside.any():
                continue
            row_off, col_off = int(window.row_off), int(window.col_off)
            tile = raster.isel(
                y=slice(row_off, row_off + int(window.height)),
                x=slice(col_off, col_off + int(window.width))
            ).values
            selected = tile[inside & (tile != nodata)]
            tile_counts, tile_overflow = bin_counts(selected, n)
            counts += tile_counts
            overflow += tile_overflow

        return counts, overflow

    def reduce(
        self,
        mosaics: Union[MosaicCollection, Iterable[WindowResult]],
        n: int,
        region: EcoregionPolygon,
        window_errors: Optional[Dict[str, str]] = None
    ) -> List[HistogramRecord]:
        """
        One HistogramRecord per mosaic with a raster, in mosaic order.

        Failed windows have no raster and produce no record. When
        ``window_errors`` is given, a raster that cannot be read is recorded
        there by label instead of raising.
        """
        if region.geometry is None or region.geometry.is_empty:
            self.logger.warning(f"Region {region.code} has an empty polygon; its histograms are all zero")

        bins = histogram_bins(n)
        records = []
        for result in mosaics:
            if not result.has_raster:
                self.logger.warning(f"Region {region.code}: skipping window {result.label} ({result.status.value})")
                continue
            try:
                counts, overflow = self.reduce_raster(result.raster, n, region.geometry)
            except Exception as e:
                if window_errors is None:
                    raise
                self.logger.error(f"Region {region.code}: reading window {result.label} failed: {str(e)}")
                window_errors[result.label] = f"{type(e).__name__}: {e}"
                continue
            records.append(HistogramRecord(
                date=result.raster.attrs.get('date', result.label),
                region_code=region.code,
                region_description=region.description,
                bins={value: int(count) for value, count in zip(bins, counts)},
                overflow=overflow
            ))
        return records

    def _reduce_region(self, mosaics, n: int, region: EcoregionPolygon) -> RegionHistograms:
        window_errors: Dict[str, str] = {}
        try:
            records = self.reduce(mosaics, n, region, window_errors)
            return RegionHistograms(region, records, window_errors=window_errors)
        except Exception as e:
            self.logger.error(f"Histogram reduction failed for region {region.code}: {str(e)}")
            return RegionHistograms(region, [], f"{type(e).__name__}: {e}")

    def reduce_regions(
        self,
        mosaics: Union[MosaicCollection, List[WindowResult]],
        n: int,
        regions: Iterable[EcoregionPolygon]
    ) -> List[RegionHistograms]:
        """
        Reduce every region, concurrently when ``n_workers`` > 1.

        Returns:
            list: RegionHistograms in the order of ``regions``
        """
        regions = list(regions)
        mosaics = list(mosaics)
        by_code: Dict[object, RegionHistograms] = {}

        if self.n_workers <= 1 or len(regions) <= 1:
            for region in tqdm(regions, desc="Ecoregion histograms", disable=not self.progress):
                by_code[region.code] = self._reduce_region(mosaics, n, region)
        else:
            with ThreadPoolExecutor(max_workers=self.n_workers) as executor:
                futures = {executor.submit(self._reduce_region, mosaics, n, region): region for region in regions}
                for future in tqdm(as_completed(futures), total=len(futures),
                                   desc="Ecoregion histograms", disable=not self.progress):
                    by_code[futures[future].code] = future.result()

        return [by_code[region.code] for region in regions]


def histogram_table(
    records: Iterable[HistogramRecord],
    code_field: str = 'region_code',
    description_field: str = 'region_description'
) -> pd.DataFrame:
    """
    Tabular form of histogram records: date, code, description, one column per
    bin, overflow.

    The last bin column (``bin_14`` monthly, ``bin_179`` annual) counts pixels
    at that value or above; ``overflow`` is how many of them were above it.
    """
    rows = [record.to_row(code_field, description_field) for record in records]
    return pd.DataFrame(rows)
