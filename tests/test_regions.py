import geopandas as gpd
from shapely.geometry import box

from valid_observations.core.regions import ecoregions_from_frame, load_boundary, load_ecoregions

CRS = 'EPSG:32614'


def ecoregion_frame():
    return gpd.GeoDataFrame(
        {
            'CVEECON1': [8, 9, 9, 12, 16],
            'DESECON1': ['Sierras Templadas', 'Selvas Calido-Humedas', 'Selvas Calido-Humedas',
                         'Elevaciones Semiaridas', 'Mar'],
        },
        geometry=[box(0, 0, 2, 2), box(2, 0, 4, 2), box(4, 0, 6, 2), box(0, 2, 6, 4), box(6, 0, 8, 4)],
        crs=CRS,
    )


def test_codes_outside_range_are_dropped():
    regions = ecoregions_from_frame(ecoregion_frame(), 'CVEECON1', 'DESECON1', (9, 15))

    assert [r.code for r in regions] == [9, 12]
    assert all(isinstance(r.code, int) for r in regions)


def test_features_sharing_a_code_are_dissolved():
    regions = ecoregions_from_frame(ecoregion_frame(), 'CVEECON1', 'DESECON1', (9, 15))

    selvas = regions[0]
    assert selvas.description == 'Selvas Calido-Humedas'
    assert selvas.geometry.area == 8
    assert selvas.geometry.bounds == (2.0, 0.0, 6.0, 2.0)


def test_range_is_inclusive():
    regions = ecoregions_from_frame(ecoregion_frame(), 'CVEECON1', 'DESECON1', (8, 16))

    assert [r.code for r in regions] == [8, 9, 12, 16]


def test_load_from_file_reprojects(tmp_path):
    path = tmp_path / 'ecoregions.gpkg'
    ecoregion_frame().to_file(path, driver='GPKG')

    regions = load_ecoregions(path, 'CVEECON1', 'DESECON1', (9, 15), CRS)

    assert [r.code for r in regions] == [9, 12]


def test_load_boundary_dissolves_features(tmp_path):
    path = tmp_path / 'country.gpkg'
    gpd.GeoDataFrame(geometry=[box(0, 0, 5, 10), box(5, 0, 10, 10)], crs=CRS).to_file(path, driver='GPKG')

    country = load_boundary(path, CRS)

    assert country.area == 100
    assert country.bounds == (0.0, 0.0, 10.0, 10.0)
