"""
Window aggregation of valid observations.

Reduces the images of one time window to a single raster holding, per pixel,
the number of distinct acquisition days with a valid observation. The result
is an explicit ``WindowResult`` so callers can distinguish a computed raster,
the zero fallback of a window without imagery and a failed window.

Counting rules:
- Two images acquired on the same day of year count once.
- Pixels never validly observed count 0.
- With the no-observation correction enabled (default), one is subtracted
  wherever at least one image of the stack has no valid observation at the
  pixel, clamped at 0. This reproduces the reference outputs of the historical
  Earth Engine products; disable it to get the plain distinct-day count.

The count raster stays lazy when the bands are dask backed: nothing is read
until a consumer pulls a tile (histogram reduction) or a block (GeoTIFF export).

Author: Diego Bengochea
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import dask.array as da
import xarray as xr

from shared_utils import get_logger

from .catalog import SourceImage
from .grid import AnalysisArea, COUNT_NODATA, georeference, grid_array
from .masking import CLEAR_SCL_CLASSES, ObservationLayer, mask_image
from .windows import Window

logger = get_logger('aggregation')

COUNT_BAND_NAME = 'valid_obs_days'


class WindowStatus(str, Enum):
    COMPUTED = 'computed'
    EMPTY = 'empty'
    FAILED = 'failed'


@dataclass(frozen=True)
class AggregationSettings:
    qa_band: str = 'scl'
    reference_band: str = 'red'
    clear_classes: Tuple[int, ...] = CLEAR_SCL_CLASSES
    reference_nodata: Optional[float] = 0
    no_observation_correction: bool = True
    chunk_size: int = 2048

    @classmethod
    def from_config(cls, config) -> 'AggregationSettings':
        return cls(
            qa_band=config.catalog.qa_band,
            reference_band=config.catalog.reference_band,
            clear_classes=config.catalog.clear_classes,
            reference_nodata=config.catalog.reference_nodata,
            no_observation_correction=config.processing.no_observation_correction,
            chunk_size=config.catalog.chunk_size,
        )


@dataclass(frozen=True)
class WindowResult:
    """Outcome of aggregating one window."""
    window: Window
    status: WindowStatus
    raster: Optional[xr.DataArray] = None
    n_images: int = 0
    error: Optional[str] = None

    @property
    def label(self) -> str:
        return self.window.label

    @property
    def has_raster(self) -> bool:
        return self.raster is not None

    @classmethod
    def computed(cls, window: Window, raster: xr.DataArray, n_images: int) -> 'WindowResult':
        return cls(window, WindowStatus.COMPUTED, raster, n_images)

    @classmethod
    def empty(cls, window: Window, raster: xr.DataArray) -> 'WindowResult':
        return cls(window, WindowStatus.EMPTY, raster, 0)

    @classmethod
    def failed(cls, window: Window, error: str) -> 'WindowResult':
        return cls(window, WindowStatus.FAILED, None, 0, error)


def distinct_day_count(layers: Sequence[ObservationLayer]) -> xr.DataArray:
    """
    Number of distinct days of year with a valid observation, per pixel.

    Valid masks sharing a day of year are merged before counting, so the
    result does not depend on the order of ``layers`` and duplicate days
    contribute once.
    """
    valid_by_day: Dict[int, xr.DataArray] = {}
    for layer in layers:
        day = layer.day_of_year
        if day in valid_by_day:
            valid_by_day[day] = valid_by_day[day] | layer.valid
        else:
            valid_by_day[day] = layer.valid

    count = None
    for day in sorted(valid_by_day):
        contribution = valid_by_day[day].astype('int32')
        count = contribution if count is None else count + contribution
    return count


def no_valid_observation_flag(layers: Sequence[ObservationLayer]) -> xr.DataArray:
    """True where at least one image of the stack has no valid observation."""
    flag = None
    for layer in layers:
        not_valid = ~layer.valid
        flag = not_valid if flag is None else flag | not_valid
    return flag


def apply_no_observation_correction(count: xr.DataArray, had_no_valid_obs: xr.DataArray) -> xr.DataArray:
    """Subtract one where ``had_no_valid_obs`` holds, never going below zero."""
    corrected = count.astype('int32') - had_no_valid_obs.astype('int32')
    return corrected.clip(min=0)


def finalize_count(count: xr.DataArray, area: AnalysisArea, window: Window, n_images: int) -> xr.DataArray:
    """Clip to the country, clamp negatives and cast to the uint16 count raster."""
    inside = xr.DataArray(area.country_mask, dims=('y', 'x'))
    clamped = count.clip(min=0)
    raster = xr.where(inside, clamped, COUNT_NODATA).astype('uint16')
    raster.name = COUNT_BAND_NAME
    raster = georeference(raster, area.geobox, nodata=COUNT_NODATA)
    raster.attrs.update({
        'date': window.label,
        'granularity': window.granularity,
        'n_images': n_images,
    })
    return raster


def empty_window_raster(area: AnalysisArea, window: Window, chunk_size: int = 2048) -> xr.DataArray:
    """All-zero count raster used when a window has no imagery, chunked like the loaded bands."""
    zeros = grid_array(da.zeros(area.geobox.shape.yx, dtype='int32', chunks=chunk_size), area.geobox)
    return finalize_count(zeros, area, window, 0)


def aggregate_window(
    images: Sequence[SourceImage],
    window: Window,
    area: AnalysisArea,
    settings: AggregationSettings = AggregationSettings()
) -> WindowResult:
    """
    Aggregate the images of ``window`` into a distinct valid day count raster.

    Args:
        images: Images acquired in the window and intersecting the area
        window: Time window being aggregated
        area: Analysis grid, bounding region and country polygon
        settings: Band names, clear classes, correction switch and chunk size

    Returns:
        WindowResult: COMPUTED with the (possibly lazy) count raster, or EMPTY
        with the zero fallback when ``images`` is empty

    Examples:
        >>> result = aggregate_window(images, window, area)
        >>> result.status, int(result.raster.max())
    """
    if not images:
        logger.info(f"Window {window.label}: no imagery, using zero fallback")
        return WindowResult.empty(window, empty_window_raster(area, window, settings.chunk_size))

    layers: List[ObservationLayer] = [
        mask_image(
            image,
            area.geobox,
            qa_band=settings.qa_band,
            reference_band=settings.reference_band,
            clear_classes=settings.clear_classes,
            reference_nodata=settings.reference_nodata,
            clip_mask=area.bounding_mask
        )
        for image in images
    ]

    count = distinct_day_count(layers)
    if settings.no_observation_correction:
        count = apply_no_observation_correction(count, no_valid_observation_flag(layers))

    raster = finalize_count(count, area, window, len(images))
    logger.info(f"Window {window.label}: aggregated {len(images)} images "
                f"({len({layer.day_of_year for layer in layers})} distinct days)")
    return WindowResult.computed(window, raster, len(images))
