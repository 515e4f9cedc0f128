"""
Monthly and annual mosaic sequences.

Drives the window aggregation over the ordered monthly and annual windows of
the study period. Windows are independent: they are aggregated concurrently
and a window whose imagery cannot be retrieved is reported as failed without
stopping the others. Results are always re-assembled in chronological order.

Author: Diego Bengochea
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterator, List, Optional, Sequence

import xarray as xr
from tqdm import tqdm

from shared_utils import get_logger

from .aggregation import AggregationSettings, WindowResult, WindowStatus, aggregate_window
from .catalog import CatalogRetrievalError, ImageCatalog
from .config import StudyPeriod
from .grid import AnalysisArea
from .windows import ANNUAL, GRANULARITY_FACTOR, MONTHLY, Window, annual_windows, monthly_windows


class MosaicCollection:
    """
    Chronologically ordered window results of one granularity, keyed by label.
    """

    def __init__(self, granularity: str, results: Sequence[WindowResult] = ()):
        self.granularity = granularity
        self._results: Dict[str, WindowResult] = {}
        for result in sorted(results, key=lambda r: r.window):
            self._results[result.label] = result

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[WindowResult]:
        return iter(self._results.values())

    def __getitem__(self, label: str) -> WindowResult:
        return self._results[label]

    def __contains__(self, label: str) -> bool:
        return label in self._results

    @property
    def labels(self) -> List[str]:
        return list(self._results)

    @property
    def factor(self) -> int:
        return GRANULARITY_FACTOR[self.granularity]

    def rasters(self) -> Dict[str, xr.DataArray]:
        """Label to count raster for every window that produced one."""
        return {label: r.raster for label, r in self._results.items() if r.has_raster}

    def with_status(self, status: WindowStatus) -> List[WindowResult]:
        return [r for r in self._results.values() if r.status == status]

    def for_year(self, year: int) -> List[WindowResult]:
        return [r for r in self._results.values() if r.window.start.year == year]


class MosaicSequenceBuilder:
    """
    Builds the monthly and annual mosaic collections of a study period.

    Examples:
        >>> builder = MosaicSequenceBuilder(catalog, area, AggregationSettings(), n_workers=4)
        >>> monthly = builder.build_monthly(config.study)
        >>> [r.status for r in monthly]
    """

    def __init__(
        self,
        catalog: ImageCatalog,
        area: AnalysisArea,
        settings: AggregationSettings = AggregationSettings(),
        n_workers: int = 1,
        progress: bool = True
    ):
        self.catalog = catalog
        self.area = area
        self.settings = settings
        self.n_workers = n_workers
        self.progress = progress
        self.logger = get_logger('mosaic_sequence')

    def build_window(self, window: Window) -> WindowResult:
        """Retrieve and aggregate one window, turning any failure into a FAILED result."""
        try:
            images = self.catalog.search(window.start, window.end, self.area.bounding_geometry)
        except CatalogRetrievalError as e:
            self.logger.error(f"Window {window.label}: image retrieval failed: {e}")
            return WindowResult.failed(window, f"CatalogRetrievalError: {e}")
        except Exception as e:
            self.logger.error(f"Window {window.label}: unexpected catalog error: {str(e)}")
            return WindowResult.failed(window, f"{type(e).__name__}: {e}")

        try:
            return aggregate_window(images, window, self.area, self.settings)
        except Exception as e:
            self.logger.error(f"Window {window.label}: aggregation failed: {str(e)}")
            return WindowResult.failed(window, f"{type(e).__name__}: {e}")

    def build(self, windows: Sequence[Window], granularity: Optional[str] = None) -> MosaicCollection:
        """
        Aggregate every window, concurrently when ``n_workers`` > 1.

        Returns:
            MosaicCollection in chronological order regardless of completion order
        """
        if granularity is None:
            granularity = windows[0].granularity if windows else MONTHLY

        self.logger.info(f"Building {len(windows)} {granularity} mosaics with {self.n_workers} worker(s)")

        results: List[WindowResult] = []
        if self.n_workers <= 1 or len(windows) <= 1:
            for window in tqdm(windows, desc=f"{granularity} mosaics", disable=not self.progress):
                results.append(self.build_window(window))
        else:
            with ThreadPoolExecutor(max_workers=self.n_workers) as executor:
                futures = [executor.submit(self.build_window, window) for window in windows]
                for future in tqdm(as_completed(futures), total=len(futures),
                                   desc=f"{granularity} mosaics", disable=not self.progress):
                    results.append(future.result())

        collection = MosaicCollection(granularity, results)
        self.logger.info(
            f"{granularity.capitalize()} mosaics: "
            f"{len(collection.with_status(WindowStatus.COMPUTED))} computed, "
            f"{len(collection.with_status(WindowStatus.EMPTY))} empty, "
            f"{len(collection.with_status(WindowStatus.FAILED))} failed"
        )
        return collection

    def build_monthly(self, study: StudyPeriod) -> MosaicCollection:
        return self.build(monthly_windows(study.monthly_start, study.monthly_count), MONTHLY)

    def build_annual(self, study: StudyPeriod) -> MosaicCollection:
        return self.build(annual_windows(study.annual_start, study.annual_count), ANNUAL)
