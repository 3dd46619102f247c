import json

from placemap.cache import GeocodeCache, parse_cache
from placemap.models import Coordinate


def test_load_missing_file_is_empty(tmp_path):
    cache = GeocodeCache(tmp_path / "geocode-cache.json")
    assert cache.load() == {}
    assert len(cache) == 0


def test_load_corrupt_file_is_empty(tmp_path, caplog):
    path = tmp_path / "geocode-cache.json"
    path.write_text('{"Germany::Berlin": {"lat": 52.5', encoding="utf-8")
    cache = GeocodeCache(path)
    assert cache.load() == {}
    assert "unreadable" in caplog.text


def test_load_non_mapping_is_empty(tmp_path):
    path = tmp_path / "geocode-cache.json"
    path.write_text("[]", encoding="utf-8")
    assert GeocodeCache(path).load() == {}


def test_parse_cache_drops_bad_entries():
    records = parse_cache(
        {
            "Germany::Berlin": {"lat": 52.52, "lng": 13.405},
            "Germany::Bonn": {"lat": "50.7", "lng": 7.1},
            "Germany::Kiel": "54.3,10.1",
            "Germany::Ulm": {"lat": 48.4},
        }
    )
    assert records == {"Germany::Berlin": Coordinate(lat=52.52, lng=13.405)}


def test_put_never_overwrites(tmp_path):
    cache = GeocodeCache(tmp_path / "c.json")
    assert cache.put("Germany::Berlin", Coordinate(52.52, 13.405))
    assert not cache.put("Germany::Berlin", Coordinate(0.0, 0.0))
    assert cache.get("Germany::Berlin") == Coordinate(52.52, 13.405)
    assert cache.get("Germany::Bonn") is None


def test_persist_writes_flat_lat_lng_mapping_and_reloads(tmp_path):
    path = tmp_path / "nested" / "geocode-cache.json"
    cache = GeocodeCache(path)
    cache.put("Germany::Frankfurt", Coordinate(50.11, 8.68))
    cache.put("Germany::Berlin", Coordinate(52.52, 13.405))
    cache.persist()

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk == {
        "Germany::Berlin": {"lat": 52.52, "lng": 13.405},
        "Germany::Frankfurt": {"lat": 50.11, "lng": 8.68},
    }

    first_bytes = path.read_bytes()
    reloaded = GeocodeCache(path)
    reloaded.load()
    reloaded.persist()
    assert path.read_bytes() == first_bytes
    assert not list(path.parent.glob(".*.tmp"))


def test_load_replaces_in_memory_state(tmp_path):
    path = tmp_path / "c.json"
    path.write_text(json.dumps({"Peru::Lima": {"lat": -12.05, "lng": -77.04}}), encoding="utf-8")
    cache = GeocodeCache(path)
    cache.put("Chile::Santiago", Coordinate(-33.45, -70.67))
    cache.load()
    assert "Peru::Lima" in cache
    assert "Chile::Santiago" not in cache
