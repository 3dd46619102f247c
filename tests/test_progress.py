import pytest

from placemap.models import Coordinate, WorkItem
from placemap.progress import ResultAggregator


def _items(n):
    return [WorkItem.create("Testland", f"City{idx}") for idx in range(n)]


def test_counters_add_up():
    items = _items(4)
    agg = ResultAggregator(["Testland", "Emptyland"], total=4)
    agg.record_cache_hit(items[0], Coordinate(1.0, 1.0))
    agg.record_resolved(items[1], Coordinate(2.0, 2.0))
    agg.record_miss(items[2])
    agg.record_miss(items[3])

    stats = agg.stats()
    assert stats.processed == 4
    assert stats.processed == stats.cache_hits + stats.resolved + stats.misses
    assert agg.to_dict() == {
        "Testland": [
            {"name": "City0", "lat": 1.0, "lng": 1.0},
            {"name": "City1", "lat": 2.0, "lng": 2.0},
        ],
        "Emptyland": [],
    }


def test_progress_every_tenth_and_final():
    events = []
    items = _items(25)
    agg = ResultAggregator(["Testland"], total=25, on_progress=events.append)
    for item in items:
        agg.record_miss(item)
    assert [event.processed for event in events] == [10, 20, 25]
    assert events[-1].format() == "[progress] 25/25 (cache hits: 0, misses: 25)"


def test_failing_callback_does_not_interrupt(caplog):
    def boom(event):
        raise RuntimeError("display went away")

    items = _items(10)
    agg = ResultAggregator(["Testland"], total=10, on_progress=boom)
    for item in items:
        agg.record_resolved(item, Coordinate(0.0, 0.0))
    assert agg.stats().resolved == 10
    assert "Progress callback failed" in caplog.text


def test_progress_every_must_be_positive():
    with pytest.raises(ValueError):
        ResultAggregator([], total=0, progress_every=0)
