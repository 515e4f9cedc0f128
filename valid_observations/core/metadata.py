"""
Per-image metadata extraction.

Flattens catalog properties of every source image into one record. Property
names differ between catalogs, so the mapping from record field to property
name is configurable; missing properties become ``None``.

Author: Diego Bengochea
"""

from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping, Optional

import pandas as pd

from .catalog import SourceImage
from .config import DEFAULT_METADATA_FIELDS

# Column names of the exported metadata table
METADATA_COLUMNS = {
    'product_id': 'ID',
    'cloud_pixel_percentage': 'cloud_pixel_percentage',
    'cloud_coverage_assessment': 'cloud_coverage_assessment',
    'date': 'date',
    'sensor': 'sensor',
    'tile_id': 'mgrsTile',
}


@dataclass(frozen=True)
class MetadataRecord:
    product_id: Optional[str]
    cloud_pixel_percentage: Optional[float]
    cloud_coverage_assessment: Optional[float]
    date: pd.Timestamp
    sensor: Optional[str]
    tile_id: Optional[Any]


def extract_metadata(image: SourceImage, fields: Mapping[str, str] = DEFAULT_METADATA_FIELDS) -> MetadataRecord:
    """
    Project the catalog properties of ``image`` onto a MetadataRecord.
    """
    properties = image.properties

    def prop(name):
        key = fields.get(name)
        return properties.get(key) if key else None

    return MetadataRecord(
        product_id=prop('product_id'),
        cloud_pixel_percentage=prop('cloud_pixel_percentage'),
        cloud_coverage_assessment=prop('cloud_coverage_assessment'),
        date=image.timestamp,
        sensor=prop('sensor'),
        tile_id=prop('tile_id'),
    )


def metadata_table(images: Iterable[SourceImage], fields: Mapping[str, str] = DEFAULT_METADATA_FIELDS) -> pd.DataFrame:
    """One row per image, sorted by acquisition date."""
    rows = [asdict(extract_metadata(image, fields)) for image in images]
    table = pd.DataFrame(rows, columns=list(METADATA_COLUMNS))
    table = table.sort_values('date', kind='stable').reset_index(drop=True)
    return table.rename(columns=METADATA_COLUMNS)
