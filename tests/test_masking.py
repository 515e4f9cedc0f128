import numpy as np

from valid_observations.core.catalog import SourceImage
from valid_observations.core.masking import DAY_NODATA, PixelState, mask_image

CLEAR = 4
CLOUD = 9


def test_clear_pixels_with_data_are_valid(geobox, make_image):
    layer = mask_image(make_image((2019, 1, 10)), geobox)

    assert (layer.state.values == PixelState.VALID).all()
    assert int(layer.valid.sum()) == 100
    assert layer.day_of_year == 10


def test_three_states(geobox, make_image):
    scl = np.full((10, 10), CLEAR)
    scl[0, :] = CLOUD
    red = np.full((10, 10), 100.0)
    red[1, :] = 0
    red[2, :] = np.nan

    layer = mask_image(make_image((2019, 1, 10), scl=scl, red=red), geobox)
    state = layer.state.values

    assert (state[0] == PixelState.INVALID).all()
    assert (state[1] == PixelState.NO_DATA).all()
    assert (state[2] == PixelState.NO_DATA).all()
    assert (state[3:] == PixelState.VALID).all()


def test_cloudy_pixel_without_data_is_not_observed(geobox, make_image):
    layer = mask_image(make_image((2019, 1, 10), scl=CLOUD, red=0), geobox)

    assert not layer.observed.values.any()
    assert not layer.valid.values.any()


def test_missing_band_gives_no_data_layer(geobox, make_image):
    image = make_image((2019, 1, 10))
    broken = SourceImage(image.image_id, image.acquired, {'scl': image.bands['scl']})

    layer = mask_image(broken, geobox)

    assert (layer.state.values == PixelState.NO_DATA).all()
    assert layer.state.shape == (10, 10)


def test_bands_off_grid_give_no_data_layer(geobox, make_image):
    image = make_image((2019, 1, 10))
    cropped = {name: band.isel(y=slice(0, 5)) for name, band in image.bands.items()}

    layer = mask_image(SourceImage(image.image_id, image.acquired, cropped), geobox)

    assert (layer.state.values == PixelState.NO_DATA).all()


def test_clip_mask_sets_outside_to_no_data(geobox, make_image):
    clip = np.zeros((10, 10), dtype=bool)
    clip[:, :4] = True

    layer = mask_image(make_image((2019, 1, 10)), geobox, clip_mask=clip)

    assert (layer.state.values[:, :4] == PixelState.VALID).all()
    assert (layer.state.values[:, 4:] == PixelState.NO_DATA).all()


def test_qa60_style_bitmask(geobox, make_image):
    # a clear QA60 pixel is 0, which SCL reads as no data
    layer = mask_image(make_image((2019, 1, 10), scl=0), geobox, clear_classes=(0,))

    assert layer.valid.values.all()


def test_day_layer_keeps_day_only_where_valid(geobox, make_image):
    scl = np.full((10, 10), CLEAR)
    scl[:5] = CLOUD

    days = mask_image(make_image((2019, 2, 3), scl=scl), geobox).day_layer()

    assert days.dtype == np.uint16
    assert (days.values[:5] == DAY_NODATA).all()
    assert (days.values[5:] == 34).all()
    assert days.rio.nodata == DAY_NODATA
