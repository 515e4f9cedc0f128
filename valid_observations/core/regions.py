"""
Vector inputs: the country boundary and the ecoregion polygons.

Author: Diego Bengochea
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Tuple, Union

import geopandas as gpd
from shapely.geometry.base import BaseGeometry

from shared_utils import get_logger

logger = get_logger('regions')


@dataclass(frozen=True)
class EcoregionPolygon:
    """Reduction geometry of one ecoregion, in the analysis CRS."""
    code: Any
    description: str
    geometry: BaseGeometry


def _plain(value):
    """numpy scalar to Python scalar, integral floats to int."""
    if hasattr(value, 'item'):
        value = value.item()
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return value


def load_boundary(path: Union[str, Path], crs: str) -> BaseGeometry:
    """
    Country polygon from a vector file, dissolved and reprojected to ``crs``.

    Examples:
        >>> country = load_boundary("data/raw/country_boundaries/country.shp", "EPSG:6372")
    """
    boundary = gpd.read_file(path)
    if boundary.crs is not None:
        boundary = boundary.to_crs(crs)
    geometry = boundary.geometry.union_all()
    logger.info(f"Loaded country boundary from {path} ({len(boundary)} features)")
    return geometry


def load_ecoregions(
    path: Union[str, Path],
    code_field: str,
    description_field: str,
    code_range: Tuple[int, int],
    crs: str
) -> List[EcoregionPolygon]:
    """
    Ecoregions whose code lies in ``code_range`` (inclusive), one per code.

    Features sharing a code are dissolved into one geometry; the description
    is taken from the first of them.

    Returns:
        list: EcoregionPolygon sorted by code
    """
    ecoregions = gpd.read_file(path)
    if ecoregions.crs is not None:
        ecoregions = ecoregions.to_crs(crs)
    return ecoregions_from_frame(ecoregions, code_field, description_field, code_range)


def ecoregions_from_frame(
    ecoregions: gpd.GeoDataFrame,
    code_field: str,
    description_field: str,
    code_range: Tuple[int, int]
) -> List[EcoregionPolygon]:
    low, high = code_range
    selected = ecoregions[(ecoregions[code_field] >= low) & (ecoregions[code_field] <= high)]

    regions = []
    for code, group in selected.groupby(code_field, sort=True):
        regions.append(EcoregionPolygon(
            code=_plain(code),
            description=str(group[description_field].iloc[0]),
            geometry=group.geometry.union_all()
        ))

    logger.info(f"Selected {len(regions)} ecoregions with {code_field} in [{low}, {high}]")
    return regions
