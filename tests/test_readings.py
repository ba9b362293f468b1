"""Reading parsing, sources and simulator tests."""

import pytest

from src.core.models import SensorReading
from src.data_sources import (
    SeriesReadingSource,
    StaticReadingSource,
    generate_demo_fleet,
    generate_node_series,
    parse_reading,
)
from src.data_sources.simulator import generate_time_based_reading


@pytest.fixture
def raw_reading():
    return {
        "node_id": "n1",
        "timestamp": "2025-06-01T06:30:00Z",
        "tvoc_ugm3": "55.5",
        "soil_ph": 6.2,
        "relative_humidity_pct": "wet",
        "air_temperature_c": None,
        "frost_risk_flag": "LOW",
        "unrelated": 1,
    }


def test_parse_reading(raw_reading):
    r = parse_reading(raw_reading)
    assert r.node_id == "n1"
    assert r.time_minute == 390
    assert r.values == {"tvoc_ugm3": 55.5, "soil_ph": 6.2}
    assert r.frost_risk_flag == "LOW"
    assert r.timestamp.hour == 6


def test_parse_reading_explicit_minute(raw_reading):
    assert parse_reading(raw_reading, time_minute=12).time_minute == 12


def test_parse_reading_requires_node():
    with pytest.raises(ValueError):
        parse_reading({"tvoc_ugm3": 1.0})


def test_parse_reading_bad_timestamp():
    r = parse_reading({"node_id": "n1", "timestamp": "yesterday", "time_minute": 5})
    assert r.timestamp is None
    assert r.time_minute == 5


def test_static_source():
    source = StaticReadingSource([SensorReading(node_id="n1", time_minute=0)])
    assert source.get_reading("n1", 999).node_id == "n1"
    assert source.get_reading("n2", 0) is None


def test_series_source_nearest_minute():
    source = SeriesReadingSource({"n1": [
        SensorReading(node_id="n1", time_minute=0, values={"tvoc_ugm3": 1.0}),
        SensorReading(node_id="n1", time_minute=720, values={"tvoc_ugm3": 2.0}),
    ]})
    assert source.get_reading("n1", 700).get("tvoc_ugm3") == 2.0
    assert source.get_reading("n1", 300).get("tvoc_ugm3") == 1.0


def test_series_source_wraps_midnight():
    source = SeriesReadingSource({"n1": [
        SensorReading(node_id="n1", time_minute=0, values={"tvoc_ugm3": 1.0}),
        SensorReading(node_id="n1", time_minute=720, values={"tvoc_ugm3": 2.0}),
    ]})
    r = source.get_reading("n1", 1439)
    assert r.get("tvoc_ugm3") == 1.0
    assert r.time_minute == 1439


def test_series_source_unknown_node():
    source = SeriesReadingSource()
    assert source.get_reading("n1", 0) is None
    assert "n1" not in source


# ============ SIMULATOR ============

def test_simulated_reading_is_deterministic():
    a = generate_time_based_reading("node-x", 600)
    b = generate_time_based_reading("node-x", 600)
    assert a.values == b.values


def test_simulated_values_in_range():
    for minute in range(0, 1440, 37):
        r = generate_time_based_reading("node-y", minute)
        assert 4.0 <= r.get("soil_ph") <= 8.5
        assert 0.05 <= r.get("soil_moisture_m3m3") <= 0.55
        assert r.get("solar_irradiance_wm2") >= 0


def test_node_series_length():
    series = generate_node_series("node-z", minutes=90)
    assert len(series) == 90
    assert [r.time_minute for r in series[:3]] == [0, 1, 2]


def test_demo_fleet():
    fleet = generate_demo_fleet(clusters=3, nodes_per_cluster=4)
    assert len(fleet) == 12
    assert {n.cluster_id for n in fleet} == {"cluster-00", "cluster-01", "cluster-02"}
    assert len({n.node_id for n in fleet}) == 12


def test_series_source_load_and_copy():
    source = SeriesReadingSource()
    source.load("n1", [SensorReading(node_id="n1", time_minute=5)])
    assert "n1" in source
    copy = source.series("n1")
    copy.clear()
    assert len(source.series("n1")) == 1
