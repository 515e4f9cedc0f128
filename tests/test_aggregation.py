import itertools
from datetime import date, datetime, timedelta

import numpy as np
from shapely.geometry import box

from valid_observations.core.aggregation import (
    AggregationSettings,
    WindowStatus,
    aggregate_window,
    apply_no_observation_correction,
    distinct_day_count,
    no_valid_observation_flag,
)
from valid_observations.core.grid import COUNT_NODATA, AnalysisArea
from valid_observations.core.masking import mask_image
from valid_observations.core.windows import ANNUAL, MONTHLY, Window

CLEAR = 4
CLOUD = 9
JANUARY = Window(date(2019, 1, 1), date(2019, 2, 1), MONTHLY)
YEAR = Window(date(2019, 1, 1), date(2020, 1, 1), ANNUAL)
PLAIN = AggregationSettings(no_observation_correction=False)


def test_same_day_images_count_once(area, make_image):
    images = [
        make_image((2019, 1, 10, 10, 0)),
        make_image((2019, 1, 10, 17, 30)),
        make_image((2019, 1, 15)),
    ]

    result = aggregate_window(images, JANUARY, area)

    assert result.status == WindowStatus.COMPUTED
    assert result.n_images == 3
    assert (result.raster.values == 2).all()


def test_all_cloudy_window_counts_zero_and_is_flagged(geobox, area, make_image):
    images = [make_image((2019, 1, day), scl=CLOUD) for day in (3, 8, 21)]
    layers = [mask_image(image, geobox) for image in images]

    assert no_valid_observation_flag(layers).values.all()

    result = aggregate_window(images, JANUARY, area)
    assert (result.raster.values == 0).all()


def test_correction_subtracts_one_where_any_image_is_not_valid(area, make_image):
    scl = np.full((10, 10), CLEAR)
    scl[:, :5] = CLOUD
    images = [make_image((2019, 1, 10)), make_image((2019, 1, 20), scl=scl)]

    corrected = aggregate_window(images, JANUARY, area).raster.values
    plain = aggregate_window(images, JANUARY, area, PLAIN).raster.values

    assert (plain[:, :5] == 1).all()
    assert (plain[:, 5:] == 2).all()
    assert (corrected[:, :5] == 0).all()
    assert (corrected[:, 5:] == 2).all()


def test_correction_never_goes_negative(area, make_image):
    images = [make_image((2019, 1, 10), scl=CLOUD)]
    result = aggregate_window(images, JANUARY, area)

    assert result.raster.values.min() == 0


def test_apply_correction_clamps_at_zero(geobox, make_image):
    layers = [mask_image(make_image((2019, 1, 10), scl=CLOUD), geobox)]
    count = distinct_day_count(layers)

    corrected = apply_no_observation_correction(count, no_valid_observation_flag(layers))

    assert (count.values == 0).all()
    assert (corrected.values == 0).all()


def test_count_is_order_independent(area, make_image):
    rng = np.random.default_rng(42)
    images = [
        make_image((2019, 1, day), scl=np.where(rng.random((10, 10)) < 0.4, CLOUD, CLEAR))
        for day in (2, 2, 9, 17, 30)
    ]

    reference = aggregate_window(images, JANUARY, area).raster.values
    for permutation in itertools.permutations(images):
        result = aggregate_window(list(permutation), JANUARY, area)
        np.testing.assert_array_equal(result.raster.values, reference)


def test_duplicating_an_image_changes_nothing(area, make_image):
    scl = np.full((10, 10), CLEAR)
    scl[3:6] = CLOUD
    images = [make_image((2019, 1, 4), scl=scl), make_image((2019, 1, 12))]

    once = aggregate_window(images, JANUARY, area, PLAIN).raster.values
    twice = aggregate_window(images + images[:1], JANUARY, area, PLAIN).raster.values

    np.testing.assert_array_equal(once, twice)


def test_count_bounded_by_distinct_days(area, make_image):
    rng = np.random.default_rng(7)
    days = [1, 5, 5, 40, 41, 200, 365]
    images = [
        make_image(datetime(2019, 1, 1) + timedelta(days=day - 1),
                   scl=np.where(rng.random((10, 10)) < 0.5, CLOUD, CLEAR))
        for day in days
    ]

    values = aggregate_window(images, YEAR, area, PLAIN).raster.values

    assert values.min() >= 0
    assert values.max() <= len(set(days))


def test_empty_window_is_flagged_and_zero(area):
    result = aggregate_window([], JANUARY, area)

    assert result.status == WindowStatus.EMPTY
    assert result.n_images == 0
    assert result.has_raster
    assert (result.raster.values == 0).all()
    assert result.raster.attrs['date'] == '2019-1-1'


def test_pixels_outside_country_are_nodata(geobox, make_image):
    area = AnalysisArea(geobox, box(0, 0, 5, 10), bounding_geometry=box(0, 0, 10, 10))

    result = aggregate_window([make_image((2019, 1, 10))], JANUARY, area)
    values = result.raster.values

    assert result.raster.dtype == np.uint16
    assert result.raster.rio.nodata == COUNT_NODATA
    assert (values[:, :5] == 1).all()
    assert (values[:, 5:] == COUNT_NODATA).all()


def test_raster_is_tagged_with_window(area, make_image):
    result = aggregate_window([make_image((2019, 1, 10))], JANUARY, area)

    assert result.label == '2019-1-1'
    assert result.raster.attrs['granularity'] == MONTHLY
    assert result.raster.attrs['n_images'] == 1
    assert result.raster.rio.crs is not None


def test_dask_backed_bands_give_a_lazy_raster(area, make_image):
    rng = np.random.default_rng(11)
    cover = [np.where(rng.random((10, 10)) < 0.3, CLOUD, CLEAR) for _ in range(3)]
    days = (3, 3, 19)

    eager = aggregate_window([make_image((2019, 1, d), scl=s) for d, s in zip(days, cover)], JANUARY, area)
    lazy = aggregate_window([make_image((2019, 1, d), scl=s, chunks=5) for d, s in zip(days, cover)],
                            JANUARY, area)

    assert lazy.raster.chunks is not None
    assert eager.raster.chunks is None
    np.testing.assert_array_equal(lazy.raster.values, eager.raster.values)
    assert lazy.raster.rio.nodata == COUNT_NODATA


def test_empty_window_fallback_is_lazy(area):
    result = aggregate_window([], JANUARY, area, AggregationSettings(chunk_size=4))

    assert result.raster.chunks is not None
    assert max(result.raster.chunks[0]) <= 4
    assert (result.raster.values == 0).all()
