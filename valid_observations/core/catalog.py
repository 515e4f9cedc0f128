"""
Source image catalog interface and adapters.

The aggregation engine only needs ``ImageCatalog.search``: the images acquired
in a half-open date range whose footprint intersects a geometry, with their QA
and reference bands on the analysis grid. ``StacImageCatalog`` answers it from
a STAC API with odc-stac; ``InMemoryCatalog`` serves prebuilt images.

An empty list is a definitive "no imagery" answer. Any failure to talk to the
catalog is raised as ``CatalogRetrievalError`` so that callers can tell the two
apart.

Author: Diego Bengochea
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import pandas as pd
import xarray as xr
from odc.geo.geobox import GeoBox
from odc.geo.geom import Geometry
from odc.stac import load
from pystac_client import Client
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from shared_utils import get_logger

from .grid import grid_coords


class CatalogRetrievalError(RuntimeError):
    """The catalog could not supply images for a query."""


@dataclass(frozen=True)
class SourceImage:
    """One satellite acquisition with its bands on the analysis grid."""
    image_id: str
    acquired: datetime
    bands: Mapping[str, xr.DataArray]
    footprint: Optional[BaseGeometry] = None
    properties: Mapping[str, Any] = field(default_factory=dict)

    @property
    def timestamp(self) -> pd.Timestamp:
        ts = pd.Timestamp(self.acquired)
        if ts.tzinfo is not None:
            ts = ts.tz_convert('UTC').tz_localize(None)
        return ts

    @property
    def day_of_year(self) -> int:
        return int(self.timestamp.dayofyear)


def _to_naive_utc(value) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if ts.tzinfo is not None:
        ts = ts.tz_convert('UTC').tz_localize(None)
    return ts


def in_date_range(acquired, start, end) -> bool:
    """Half-open membership test: ``start <= acquired < end``."""
    ts = _to_naive_utc(acquired)
    return _to_naive_utc(start) <= ts < _to_naive_utc(end)


class ImageCatalog(ABC):
    """Query interface of the external image catalog."""

    @abstractmethod
    def search(self, start, end, geometry: Optional[BaseGeometry] = None) -> List[SourceImage]:
        """
        Images acquired in ``[start, end)`` intersecting ``geometry``.

        Raises:
            CatalogRetrievalError: If the catalog could not be queried
        """

    def search_metadata(self, start, end, geometry: Optional[BaseGeometry] = None) -> List[SourceImage]:
        """Like ``search`` but band data is not needed; adapters may skip loading it."""
        return self.search(start, end, geometry)


class InMemoryCatalog(ImageCatalog):
    """Catalog over an already materialized sequence of images."""

    def __init__(self, images: Iterable[SourceImage]):
        self.images = list(images)

    def search(self, start, end, geometry: Optional[BaseGeometry] = None) -> List[SourceImage]:
        selected = []
        for image in self.images:
            if not in_date_range(image.acquired, start, end):
                continue
            if geometry is not None and image.footprint is not None and not image.footprint.intersects(geometry):
                continue
            selected.append(image)
        return selected


class StacImageCatalog(ImageCatalog):
    """
    STAC-backed catalog loading every item onto the analysis GeoBox.

    Band data is loaded lazily in dask chunks and read only when a consumer
    pulls pixels. A search whose items all lack one of the configured bands
    means the collection does not serve it and is raised as a retrieval error.
    """

    def __init__(
        self,
        stac_url: str,
        collection: str,
        geobox: GeoBox,
        bands: Sequence[str],
        chunk_size: int = 2048,
        client: Optional[Client] = None
    ):
        self.stac_url = stac_url
        self.collection = collection
        self.geobox = geobox
        self.bands = list(bands)
        self.chunk_size = chunk_size
        self._client = client
        self._client_lock = threading.Lock()
        self.logger = get_logger('catalog')

    @property
    def client(self) -> Client:
        # windows search from several threads
        with self._client_lock:
            if self._client is None:
                try:
                    self._client = Client.open(self.stac_url)
                except Exception as e:
                    raise CatalogRetrievalError(f"Failed to connect to STAC catalog {self.stac_url}: {e}") from e
                self.logger.info(f"Connected to STAC catalog: {self.stac_url}")
            return self._client

    def search(self, start, end, geometry: Optional[BaseGeometry] = None) -> List[SourceImage]:
        items = self._find_items(start, end, geometry)
        if items:
            unserved = [band for band in self.bands if not any(band in item.assets for item in items)]
            if unserved:
                raise CatalogRetrievalError(
                    f"No item of {self.collection} in {_to_naive_utc(start).date()}/{_to_naive_utc(end).date()} "
                    f"has band(s) {unserved}; check the configured band names"
                )
        return [self._load_item(item) for item in items]

    def search_metadata(self, start, end, geometry: Optional[BaseGeometry] = None) -> List[SourceImage]:
        return [self._describe_item(item, {}) for item in self._find_items(start, end, geometry)]

    def _find_items(self, start, end, geometry: Optional[BaseGeometry] = None) -> list:
        start, end = _to_naive_utc(start), _to_naive_utc(end)
        if geometry is None:
            geometry = self.geobox.extent.geom
        footprint_4326 = Geometry(geometry, crs=self.geobox.crs).to_crs('EPSG:4326').geom

        try:
            search = self.client.search(
                collections=[self.collection],
                intersects=mapping(footprint_4326),
                datetime=f"{start.isoformat()}Z/{end.isoformat()}Z"
            )
            items = list(search.items())
        except CatalogRetrievalError:
            raise
        except Exception as e:
            raise CatalogRetrievalError(
                f"STAC search failed for {start.date()}/{end.date()}: {e}"
            ) from e

        # STAC datetime ranges are closed; the end boundary belongs to the next window
        items = [item for item in items if in_date_range(item.datetime, start, end)]
        self.logger.debug(f"Found {len(items)} items for {start.date()}/{end.date()}")
        return items

    def _load_item(self, item) -> SourceImage:
        available = [band for band in self.bands if band in item.assets]
        missing = sorted(set(self.bands) - set(available))
        if missing:
            self.logger.warning(f"Item {item.id} lacks bands {missing}")

        bands = {}
        if available:
            try:
                dataset = load(
                    [item],
                    bands=available,
                    geobox=self.geobox,
                    chunks={'x': self.chunk_size, 'y': self.chunk_size},
                    resampling='nearest'
                )
            except Exception as e:
                raise CatalogRetrievalError(f"Failed to load item {item.id}: {e}") from e

            dataset = dataset.isel(time=0, drop=True)
            dataset = dataset.rename({d: n for d, n in (('latitude', 'y'), ('longitude', 'x')) if d in dataset.dims})
            y, x = grid_coords(self.geobox)
            dataset = dataset.assign_coords(y=y, x=x)
            bands = {band: dataset[band] for band in available}

        return self._describe_item(item, bands)

    def _describe_item(self, item, bands: Mapping[str, xr.DataArray]) -> SourceImage:
        footprint = None
        if item.geometry is not None:
            footprint = Geometry(item.geometry, crs='EPSG:4326').to_crs(self.geobox.crs).geom

        return SourceImage(
            image_id=item.id,
            acquired=item.datetime,
            bands=bands,
            footprint=footprint,
            properties=dict(item.properties)
        )
