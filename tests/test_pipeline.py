import copy

import dask
import dask.array as da
import numpy as np
import pandas as pd
import pytest
import rioxarray
import yaml
from shapely.geometry import box

from valid_observations.core.aggregation import WindowResult, WindowStatus
from valid_observations.core.catalog import CatalogRetrievalError, InMemoryCatalog
from valid_observations.core.config import ValidObsConfig
from valid_observations.core.export import ResultsExporter
from valid_observations.core.grid import COUNT_NODATA, grid_array
from valid_observations.core.mosaic_sequence import MosaicCollection
from valid_observations.core.pipeline import ValidObservationsPipeline
from valid_observations.core.regions import EcoregionPolygon
from valid_observations.core.windows import MONTHLY, monthly_windows
from valid_observations.scripts.run_valid_observations import main

CLEAR = 4
CLOUD = 9

CONFIG = {
    'study': {
        'start_year': 2019,
        'end_year': 2019,
        'monthly_start': '2019-01-01',
        'monthly_end': '2019-03-01',
        'annual_start': '2019-01-01',
        'annual_end': '2020-01-01',
        'monthly_window_count': 2,
    },
    'processing': {'crs': 'EPSG:32614', 'resolution': 1, 'tile_size': 4, 'n_workers': 2},
    'export': {'monthly_export_year': 2019},
    'metadata': {'fields': {'tile_id': 'MGRS_TILE'}},
}

ECOREGIONS = [
    EcoregionPolygon(9, 'Selvas Calido-Humedas', box(0, 0, 5, 10)),
    EcoregionPolygon(12, 'Elevaciones Semiaridas', box(5, 0, 10, 10)),
]


@pytest.fixture
def config(tmp_path):
    raw = copy.deepcopy(CONFIG)
    raw['export']['output_dir'] = str(tmp_path / 'results')
    return ValidObsConfig.from_dict(raw)


@pytest.fixture
def pipeline(config, make_image):
    pipeline = ValidObservationsPipeline(
        config,
        catalog=InMemoryCatalog([]),
        country_geometry=box(0, 0, 10, 10),
        ecoregions=ECOREGIONS,
        progress=False,
    )
    pipeline.prepare()

    scl = np.full((10, 10), CLEAR)
    scl[:, 5:] = CLOUD
    grid = pipeline.area.geobox
    pipeline.catalog.images.extend([
        make_image((2019, 1, 10), grid=grid, properties={'MGRS_TILE': '14QMG'}),
        make_image((2019, 1, 15), scl=scl, grid=grid, properties={'MGRS_TILE': '14QMG'}),
        make_image((2019, 7, 3), grid=grid, properties={'MGRS_TILE': '14QNG'}),
    ])
    return pipeline


def test_run_produces_mosaics_histograms_and_metadata(pipeline):
    summary = pipeline.run(export=False)

    assert summary.success
    assert summary.monthly.labels == ['2019-1-1', '2019-2-1']
    assert summary.monthly['2019-1-1'].status == WindowStatus.COMPUTED
    assert summary.monthly['2019-2-1'].status == WindowStatus.EMPTY
    assert summary.annual.labels == ['2019-1-1']

    january = summary.monthly['2019-1-1'].raster.values
    # left half valid twice, right half once then corrected
    assert (january[:, :5] == 2).all()
    assert (january[:, 5:] == 0).all()

    west, east = summary.monthly_histograms
    assert west.region.code == 9
    assert west.records[0].bins[2] == 50
    assert east.records[0].bins[0] == 50
    assert [r.date for r in west.records] == ['2019-1-1', '2019-2-1']
    assert len(summary.annual_histograms[0].records[0].bins) == 181

    assert list(summary.metadata['mgrsTile']) == ['14QMG', '14QMG', '14QNG']
    assert summary.exported == []


def test_run_summary_table(pipeline):
    table = pipeline.run(export=False).to_dataframe()

    assert list(table.columns) == ['stage', 'granularity', 'key', 'status', 'n_images', 'error']
    assert list(table['stage']) == ['mosaic'] * 3 + ['histogram'] * 4 + ['metadata']
    assert list(table.loc[table['stage'] == 'mosaic', 'status']) == ['computed', 'empty', 'computed']


def test_export_writes_rasters_and_tables(pipeline, tmp_path):
    summary = pipeline.run()
    results = tmp_path / 'results'

    names = sorted(path.name for path in summary.exported)
    assert names == sorted([
        'S2_ValidObs_Year_2019-1-1_1m.tif',
        'S2_ValidObs_2019_Month1_1m.tif',
        'S2_ValidObs_2019_Month2_1m.tif',
        'S2_ValidObs_CVE9_1MonthComp_2019-01-01-2019-03-01_Hist.csv',
        'S2_ValidObs_CVE12_1MonthComp_2019-01-01-2019-03-01_Hist.csv',
        'S2_ValidObs_CVE9_YearComp_2019-01-01-2020-01-01_Histogram.csv',
        'S2_ValidObs_CVE12_YearComp_2019-01-01-2020-01-01_Histogram.csv',
        'S2_Metadata_2019-2019.csv',
        'run_summary.csv',
    ])
    assert all(path.exists() for path in summary.exported)

    mosaic = rioxarray.open_rasterio(results / 'mosaics' / 'S2_ValidObs_2019_Month1_1m.tif')
    assert mosaic.rio.nodata == 65535
    assert int(mosaic.isel(band=0).values[0, 0]) == 2
    assert mosaic.attrs['date'] == '2019-1-1'

    histogram = pd.read_csv(results / 'histograms' / 'S2_ValidObs_CVE9_1MonthComp_2019-01-01-2019-03-01_Hist.csv')
    assert list(histogram.columns[:3]) == ['date', 'CVEECON1', 'DESECON1']
    assert list(histogram['bin_2']) == [50, 0]


def test_failed_metadata_retrieval_is_reported(pipeline):
    class NoMetadataCatalog(InMemoryCatalog):
        def search_metadata(self, start, end, geometry=None):
            raise CatalogRetrievalError('metadata endpoint down')

    pipeline.catalog = NoMetadataCatalog(pipeline.catalog.images)

    summary = pipeline.run(export=False)

    assert not summary.success
    assert summary.metadata is None
    assert 'metadata endpoint down' in summary.metadata_error
    assert summary.monthly['2019-1-1'].status == WindowStatus.COMPUTED


def test_cli_rejects_inconsistent_configuration(tmp_path):
    raw = copy.deepcopy(CONFIG)
    raw['study']['end_year'] = 2018
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.safe_dump(raw))

    assert main(['--config', str(path), '--skip-export']) == 1


def test_metadata_query_ends_before_last_day_of_study(pipeline, make_image):
    grid = pipeline.area.geobox
    pipeline.catalog.images.extend([
        make_image((2019, 12, 30, 23, 0), grid=grid),
        make_image((2019, 12, 31, 10, 0), grid=grid),
    ])

    table, error = pipeline.collect_metadata()

    assert error is None
    assert len(table) == 4
    assert table['date'].max() == pd.Timestamp('2019-12-30 23:00')


def test_unreadable_mosaic_is_recorded_and_others_are_written(config, geobox):
    def read():
        raise OSError('block read failed')

    january, february = monthly_windows(config.study.monthly_start, 2)
    readable = grid_array(np.full((10, 10), 2, dtype='uint16'), geobox, nodata=COUNT_NODATA)
    unreadable = grid_array(da.from_delayed(dask.delayed(read)(), shape=(10, 10), dtype='uint16'),
                            geobox, nodata=COUNT_NODATA)
    collection = MosaicCollection(MONTHLY, [
        WindowResult.computed(january, readable, 1),
        WindowResult.computed(february, unreadable, 1),
    ])
    exporter = ResultsExporter(config)

    written = exporter.export_mosaics(collection)

    assert [path.name for path in written] == ['S2_ValidObs_2019_Month1_1m.tif']
    assert exporter.errors['S2_ValidObs_2019_Month2_1m.tif'].startswith('OSError')


def test_export_errors_fail_the_run(pipeline):
    summary = pipeline.run(export=False)
    summary.export_errors['S2_ValidObs_2019_Month2_1m.tif'] = 'OSError: block read failed'

    table = summary.to_dataframe()

    assert not summary.success
    assert list(table.loc[table['stage'] == 'export', 'key']) == ['S2_ValidObs_2019_Month2_1m.tif']
