"""
Per-image valid observation masking.

A pixel of a source image is a valid observation when its quality band holds
one of the clear classes and the reference band has data there. The default
quality band is the Sentinel-2 L2A Scene Classification Layer (SCL); a QA60
style bitmask is handled with ``clear_classes=(0,)``.

Pixels are classified in three states so that "not observed" is never
confused with a numeric value:

    NO_DATA   the reference band is absent (outside the swath or the analysis area)
    INVALID   observed but flagged by the quality band (cloud, shadow, cirrus)
    VALID     observed and clear

Author: Diego Bengochea
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Sequence

import numpy as np
import xarray as xr
from odc.geo.geobox import GeoBox

from shared_utils import get_logger

from .catalog import SourceImage
from .grid import full_grid, georeference

logger = get_logger('masking')

DAY_NODATA = 0

# SCL vegetation, not vegetated, water, unclassified, snow
CLEAR_SCL_CLASSES = (4, 5, 6, 7, 11)


class PixelState(IntEnum):
    NO_DATA = 0
    INVALID = 1
    VALID = 2


@dataclass(frozen=True)
class ObservationLayer:
    """Three-state observation grid of one image plus its acquisition day of year."""
    image_id: str
    day_of_year: int
    state: xr.DataArray

    @property
    def valid(self) -> xr.DataArray:
        return self.state == PixelState.VALID

    @property
    def observed(self) -> xr.DataArray:
        return self.state != PixelState.NO_DATA

    def day_layer(self) -> xr.DataArray:
        """
        Acquisition day of year where the pixel is valid.

        Stored as uint16; non-valid pixels carry the nodata value 0, which can
        not be a day of year.
        """
        days = xr.where(self.valid, self.day_of_year, DAY_NODATA).astype('uint16')
        days.name = 'julian_day'
        if self.state.rio.crs is not None:
            days = days.rio.write_crs(self.state.rio.crs)
        return days.rio.write_nodata(DAY_NODATA)


def mask_image(
    image: SourceImage,
    geobox: GeoBox,
    qa_band: str = 'scl',
    reference_band: str = 'red',
    clear_classes: Sequence[int] = CLEAR_SCL_CLASSES,
    reference_nodata: Optional[float] = 0,
    clip_mask: Optional[np.ndarray] = None
) -> ObservationLayer:
    """
    Classify every pixel of ``image`` as valid, invalid or not observed.

    Images missing the QA or reference band, or whose bands do not match the
    grid, yield an all NO_DATA layer instead of failing.

    Args:
        image: Source image with bands on the analysis grid
        geobox: Analysis grid
        qa_band: Name of the quality (scene classification) band
        reference_band: Band whose presence marks an actual acquisition
        clear_classes: Quality band codes of a clear pixel
        reference_nodata: Reference band value meaning "no data" (NaN always does)
        clip_mask: Optional boolean grid; pixels outside it become NO_DATA

    Returns:
        ObservationLayer for the image

    Examples:
        >>> layer = mask_image(image, geobox, 'scl', 'red')
        >>> int(layer.valid.sum())
    """
    qa = image.bands.get(qa_band)
    reference = image.bands.get(reference_band)

    if qa is None or reference is None:
        logger.warning(f"Image {image.image_id} is missing band(s) "
                       f"{[b for b, v in ((qa_band, qa), (reference_band, reference)) if v is None]}; "
                       f"treating it as not observed")
        return _no_data_layer(image, geobox)

    expected = tuple(geobox.shape.yx)
    if tuple(qa.shape) != expected or tuple(reference.shape) != expected:
        logger.warning(f"Image {image.image_id} bands {tuple(qa.shape)}/{tuple(reference.shape)} "
                       f"do not match grid {expected}; treating it as not observed")
        return _no_data_layer(image, geobox)

    present = reference.notnull()
    if reference_nodata is not None:
        present = present & (reference != reference_nodata)
    clear = qa.isin(list(clear_classes))

    state = xr.where(
        present,
        xr.where(clear, int(PixelState.VALID), int(PixelState.INVALID)),
        int(PixelState.NO_DATA)
    )

    if clip_mask is not None:
        inside = xr.DataArray(clip_mask, dims=('y', 'x'))
        state = xr.where(inside, state, int(PixelState.NO_DATA))

    state = georeference(state.astype('uint8').rename('state'), geobox)
    return ObservationLayer(image_id=image.image_id, day_of_year=image.day_of_year, state=state)


def _no_data_layer(image: SourceImage, geobox: GeoBox) -> ObservationLayer:
    state = full_grid(geobox, int(PixelState.NO_DATA), 'uint8', name='state')
    return ObservationLayer(image_id=image.image_id, day_of_year=image.day_of_year, state=state)
