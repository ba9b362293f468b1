"""Correlation analysis tests."""

import pytest

from src.core.models import Anomaly, SensorReading
from src.ml import CorrelationAnalyzer, pearson_correlation
from src.ml.anomaly import readings_frame
from src.utils.config import AnomalyConfig


def co_moving_readings(minutes=range(0, 60)):
    """tVOC and CO2 rise together, humidity falls, pH stays flat."""
    readings = []
    for m in minutes:
        readings.append(SensorReading(node_id="n1", time_minute=m, values={
            "tvoc_ugm3": 40.0 + 2 * m,
            "ambient_co2_umolmol": 400.0 + 5 * m,
            "relative_humidity_pct": 80.0 - 0.5 * m,
            "soil_ph": 6.5,
            "rainfall_rate_mmh": float(m % 3 == 0),
        }))
    return readings


def anomaly_at(minute, field="tvoc_ugm3", value=0.0):
    return Anomaly(
        time_minute=minute,
        field=field,
        value=value,
        z_score=3.0,
        expected_mean=0.0,
        expected_std=1.0,
        expected_min=-2.5,
        expected_max=2.5,
    )


def test_pearson_perfect_positive():
    assert pearson_correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)


def test_pearson_perfect_negative():
    assert pearson_correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)


def test_pearson_degenerate_inputs():
    assert pearson_correlation([], []) == 0.0
    assert pearson_correlation([1, 2], [1, 2, 3]) == 0.0
    assert pearson_correlation([5, 5, 5], [1, 2, 3]) == 0.0


def test_top_correlations_finds_co_moving_fields():
    readings = co_moving_readings()
    analyzer = CorrelationAnalyzer(AnomalyConfig())
    top = analyzer.top_correlations(anomaly_at(10), readings)

    fields = {c.field: c for c in top}
    assert set(fields) == {"ambient_co2_umolmol", "relative_humidity_pct"}
    assert fields["ambient_co2_umolmol"].correlation == pytest.approx(1.0)
    assert fields["relative_humidity_pct"].correlation == pytest.approx(-1.0)


def test_current_value_and_delta():
    readings = co_moving_readings()
    top = CorrelationAnalyzer().top_correlations(anomaly_at(10), readings)
    co2 = next(c for c in top if c.field == "ambient_co2_umolmol")

    # Window is minutes 0..40 around minute 10
    assert co2.current_value == pytest.approx(450.0)
    assert co2.delta_value == pytest.approx(450.0 - 500.0)


def test_excludes_anomalous_field_itself():
    top = CorrelationAnalyzer().top_correlations(anomaly_at(30), co_moving_readings())
    assert all(c.field != "tvoc_ugm3" for c in top)


def test_top_n_limit():
    config = AnomalyConfig(top_n=1)
    top = CorrelationAnalyzer(config).top_correlations(anomaly_at(30), co_moving_readings())
    assert len(top) == 1


def test_no_reading_at_anomaly_minute():
    readings = co_moving_readings(range(0, 60, 2))
    assert CorrelationAnalyzer().top_correlations(anomaly_at(11), readings) == []


def test_window_clamped_to_day():
    analyzer = CorrelationAnalyzer()
    readings = co_moving_readings(range(1400, 1440))
    window = analyzer.window(readings_frame(readings), 1430)
    assert window["time_minute"].min() == 1400
    assert window["time_minute"].max() == 1439


def test_annotate_pairs_each_anomaly():
    readings = co_moving_readings()
    annotated = CorrelationAnalyzer().annotate([anomaly_at(5), anomaly_at(50)], readings)
    assert [a.anomaly.time_minute for a in annotated] == [5, 50]
    assert all(a.correlations for a in annotated)
    assert "correlations" in annotated[0].to_dict()


def test_correlation_matrix_diagonal():
    matrix = CorrelationAnalyzer(fields=["tvoc_ugm3", "ambient_co2_umolmol", "soil_ph"]).correlation_matrix(
        co_moving_readings(), anomaly_at(20)
    )
    assert matrix["tvoc_ugm3"]["tvoc_ugm3"] == pytest.approx(1.0)
    assert matrix["tvoc_ugm3"]["ambient_co2_umolmol"] == pytest.approx(1.0)
    assert matrix["tvoc_ugm3"]["soil_ph"] == 0.0
