import zipfile

import pytest

from placemap.basemap import extract_shapefile, pick_display_name, simplify_countries


def test_pick_display_name_prefers_english_name():
    assert pick_display_name({"NAME_EN": "Germany", "NAME": "Deutschland", "ADMIN": "Germany"}) == "Germany"
    assert pick_display_name({"NAME_EN": float("nan"), "NAME": "Kosovo", "ADMIN": "Kosovo"}) == "Kosovo"
    assert pick_display_name({"NAME_EN": "", "NAME": None, "ADMIN": "Somaliland"}) == "Somaliland"
    assert pick_display_name({}) is None


def test_extract_shapefile_finds_versioned_name(tmp_path):
    archive = tmp_path / "countries.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("ne_50m_admin_0_countries.shp", b"")
        zf.writestr("ne_50m_admin_0_countries.dbf", b"")
    shp = extract_shapefile(archive, tmp_path / "work")
    assert shp.name == "ne_50m_admin_0_countries.shp"


def test_extract_shapefile_missing_raises(tmp_path):
    archive = tmp_path / "other.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("readme.txt", "nothing here")
    with pytest.raises(FileNotFoundError):
        extract_shapefile(archive, tmp_path / "work")


def test_simplify_countries_keeps_selected_fields():
    gpd = pytest.importorskip("geopandas")
    geometry = pytest.importorskip("shapely.geometry")
    square = geometry.Polygon([(0, 0), (0, 1), (0.5, 1.0001), (1, 1), (1, 0)])
    gdf = gpd.GeoDataFrame(
        {
            "NAME_EN": ["Squareland"],
            "NAME": ["Carré"],
            "ADMIN": ["Squareland"],
            "SOVEREIGNT": ["Squareland"],
            "ISO_A3": ["SQL"],
            "ISO_A2": ["SQ"],
            "POP_EST": [1],
        },
        geometry=[square],
        crs="EPSG:4326",
    )
    out = simplify_countries(gdf, tolerance_deg=0.01)
    assert list(out.columns) == ["NAME", "ADMIN", "SOVEREIGNT", "ISO_A3", "ISO_A2", "geometry"]
    assert out.iloc[0]["NAME"] == "Squareland"
    assert len(out.iloc[0].geometry.exterior.coords) < len(square.exterior.coords)
