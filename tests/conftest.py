from datetime import datetime

import numpy as np
import pytest
from shapely.geometry import box

from valid_observations.core.catalog import SourceImage
from valid_observations.core.grid import AnalysisArea, grid_array, make_geobox

CRS = 'EPSG:32614'
SCL_VEGETATION = 4


@pytest.fixture
def geobox():
    """10 x 10 grid of 1 m pixels over (0, 0, 10, 10)."""
    return make_geobox((0, 0, 10, 10), 1, CRS)


@pytest.fixture
def area(geobox):
    return AnalysisArea(geobox, box(0, 0, 10, 10))


def build_image(geobox, acquired, scl=SCL_VEGETATION, red=100.0, image_id=None, properties=None,
                footprint=None, chunks=None):
    """Synthetic image with scl and red bands; scalars fill the whole grid, ``chunks`` makes them dask backed."""
    shape = tuple(geobox.shape.yx)
    scl_values = np.array(np.broadcast_to(scl, shape), dtype='uint8')
    red_values = np.array(np.broadcast_to(red, shape), dtype='float32')
    bands = {
        'scl': grid_array(scl_values, geobox, 'scl'),
        'red': grid_array(red_values, geobox, 'red'),
    }
    if chunks is not None:
        bands = {name: band.chunk({'y': chunks, 'x': chunks}) for name, band in bands.items()}
    return SourceImage(
        image_id=image_id or f"S2_{acquired:%Y%m%dT%H%M%S}",
        acquired=acquired,
        bands=bands,
        footprint=footprint,
        properties=properties or {},
    )


@pytest.fixture
def make_image(geobox):
    def _make(acquired, scl=SCL_VEGETATION, red=100.0, grid=None, **kwargs):
        if not isinstance(acquired, datetime):
            acquired = datetime(*acquired)
        return build_image(geobox if grid is None else grid, acquired, scl=scl, red=red, **kwargs)
    return _make
