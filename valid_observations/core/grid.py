"""
Analysis grid utilities.

All rasters of a run share one grid: an odc-geo ``GeoBox`` built from the
country polygon at the configured resolution and CRS. This module creates that
grid, builds georeferenced ``xarray.DataArray`` objects on it, rasterizes
polygons onto it and splits it into processing tiles.

Author: Diego Bengochea
"""

from typing import Iterator, Optional, Sequence, Tuple

import numpy as np
import xarray as xr
import rioxarray  # noqa: F401  registers the .rio accessor
import rasterio.features
import rasterio.transform
import rasterio.windows
from rasterio.windows import Window
from odc.geo.geobox import GeoBox
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

# uint16 nodata used for pixels outside the country polygon
COUNT_NODATA = 65535


class AnalysisArea:
    """
    Spatial frame of a run.

    ``bounding_geometry`` restricts the per-image layers; ``country_geometry``
    masks the final count rasters. Both are rasterized once on the grid.
    """

    def __init__(self, geobox: GeoBox, country_geometry: BaseGeometry,
                 bounding_geometry: Optional[BaseGeometry] = None):
        self.geobox = geobox
        self.country_geometry = country_geometry
        if bounding_geometry is None:
            bounding_geometry = box(*country_geometry.bounds) if not country_geometry.is_empty else country_geometry
        self.bounding_geometry = bounding_geometry
        self.bounding_mask = polygon_mask(bounding_geometry, geobox)
        self.country_mask = polygon_mask(country_geometry, geobox)

    @property
    def shape(self) -> Tuple[int, int]:
        return tuple(self.geobox.shape.yx)

    @classmethod
    def from_country(cls, country_geometry: BaseGeometry, resolution: float, crs: str,
                     bbox: Optional[Tuple[float, float, float, float]] = None) -> 'AnalysisArea':
        """Grid over the bounding region (``bbox`` or the country envelope)."""
        bounding_geometry = box(*bbox) if bbox else box(*country_geometry.bounds)
        geobox = make_geobox(bounding_geometry.bounds, resolution, crs)
        return cls(geobox, country_geometry, bounding_geometry)


def make_geobox(bounds: Tuple[float, float, float, float], resolution: float, crs: str) -> GeoBox:
    """
    Create a north-up grid covering ``bounds`` (left, bottom, right, top).

    Examples:
        >>> geobox = make_geobox((0, 0, 600, 600), 60, 'EPSG:32614')
        >>> geobox.shape.yx
        (10, 10)
    """
    left, bottom, right, top = bounds
    width = int(np.ceil((right - left) / resolution))
    height = int(np.ceil((top - bottom) / resolution))
    transform = rasterio.transform.from_origin(left, top, resolution, resolution)
    return GeoBox((height, width), transform, crs)


def grid_coords(geobox: GeoBox) -> Tuple[np.ndarray, np.ndarray]:
    """Pixel-centre coordinates ``(y, x)`` of the grid."""
    ny, nx = geobox.shape.yx
    transform = geobox.affine
    x = transform.c + (np.arange(nx) + 0.5) * transform.a
    y = transform.f + (np.arange(ny) + 0.5) * transform.e
    return y, x


def georeference(data: xr.DataArray, geobox: GeoBox, nodata=None) -> xr.DataArray:
    """Write CRS, transform and optionally nodata onto a grid-aligned array."""
    data = data.rio.write_crs(str(geobox.crs))
    data = data.rio.write_transform(geobox.affine)
    if nodata is not None:
        data = data.rio.write_nodata(nodata)
    return data


def grid_array(values: np.ndarray, geobox: GeoBox, name: Optional[str] = None, nodata=None) -> xr.DataArray:
    """Wrap a 2D array shaped like the grid in a georeferenced DataArray."""
    y, x = grid_coords(geobox)
    data = xr.DataArray(values, dims=('y', 'x'), coords={'y': y, 'x': x}, name=name)
    return georeference(data, geobox, nodata)


def full_grid(geobox: GeoBox, fill_value, dtype, name: Optional[str] = None, nodata=None) -> xr.DataArray:
    return grid_array(np.full(geobox.shape.yx, fill_value, dtype=dtype), geobox, name, nodata)


def polygon_mask(geometry: Optional[BaseGeometry], geobox: GeoBox, window: Optional[Window] = None) -> np.ndarray:
    """
    Boolean mask, True where the pixel centre falls inside ``geometry``.

    With ``window`` the mask covers only that sub-window of the grid. Missing
    or empty geometries give an all-False mask.
    """
    if window is None:
        shape = geobox.shape.yx
        transform = geobox.affine
    else:
        shape = (int(window.height), int(window.width))
        transform = rasterio.windows.transform(window, geobox.affine)

    if geometry is None or geometry.is_empty or 0 in shape:
        return np.zeros(shape, dtype=bool)

    return rasterio.features.geometry_mask(
        [geometry],
        transform=transform,
        invert=True,
        out_shape=shape
    )


def iter_tiles(shape: Sequence[int], tile_size: int) -> Iterator[Window]:
    """Regular pixel windows of at most ``tile_size`` x ``tile_size`` covering ``shape``."""
    ny, nx = shape
    for row in range(0, ny, tile_size):
        for col in range(0, nx, tile_size):
            yield Window(col, row, min(tile_size, nx - col), min(tile_size, ny - row))


def window_bounds(window: Window, geobox: GeoBox) -> BaseGeometry:
    """Footprint of a pixel window as a shapely box in grid coordinates."""
    left, bottom, right, top = rasterio.windows.bounds(window, geobox.affine)
    return box(left, bottom, right, top)
