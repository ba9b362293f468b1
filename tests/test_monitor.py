"""Monitoring loop tests."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from src.core.errors import RuleConfigError, UnknownNodeError
from src.core.formatter import format_output
from src.core.monitor import MonitoringLoop
from src.data_sources.readings import StaticReadingSource
from src.utils.config import MonitorConfig, Settings

TS = datetime(2025, 6, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def publisher():
    return MagicMock()


@pytest.fixture
def loop(nodes, publisher):
    monitor = MonitoringLoop(Settings(), publisher=publisher, local_cluster_id="A")
    monitor.set_nodes(nodes)
    return monitor


def all_normal(nodes, reading, minute=0, **per_node):
    readings = []
    for n in nodes:
        overrides = per_node.get(n.node_id, {})
        readings.append(reading(n.node_id, minute, **overrides))
    return StaticReadingSource(readings)


# ============ NODE SET ============

def test_reference_is_own_cluster_mean(loop, nodes):
    lat, lon = loop.reference
    assert lat == pytest.approx((nodes[0].lat + nodes[1].lat) / 2)
    assert lon == pytest.approx((nodes[0].lon + nodes[1].lon) / 2)


def test_reference_falls_back_to_all_nodes(nodes, publisher):
    monitor = MonitoringLoop(Settings(), publisher=publisher, local_cluster_id="nope")
    monitor.set_nodes(nodes)
    assert monitor.reference[0] == pytest.approx(sum(n.lat for n in nodes) / len(nodes))


def test_matrix_not_rebuilt_when_positions_unchanged(loop, nodes):
    matrix = loop._matrix
    loop.set_nodes(nodes)
    assert loop._matrix is matrix


def test_unknown_node(loop):
    with pytest.raises(UnknownNodeError):
        loop.node("zz")
    with pytest.raises(UnknownNodeError):
        loop.set_offline("zz")


def test_offline_in_node_set_is_honoured(nodes, publisher):
    nodes[1].status = "offline"
    monitor = MonitoringLoop(Settings(), publisher=publisher)
    monitor.set_nodes(nodes)
    assert monitor.store.status("a2") == "offline"


def test_node_set_can_bring_node_back_online(nodes, reading, publisher):
    monitor = MonitoringLoop(Settings(), publisher=publisher)
    nodes[1].status = "offline"
    monitor.set_nodes(nodes)
    nodes[1].status = "online"
    monitor.set_nodes(nodes)
    assert monitor.store.status("a2") == "online"

    result = monitor.tick(0, all_normal(nodes, reading, a2={"tvoc_ugm3": 125.0}), TS)
    assert result.infected == ["a2"]
    assert monitor.store.status("a2") == "infected"


def test_listed_online_node_keeps_infection(loop, nodes, reading):
    loop.tick(0, all_normal(nodes, reading, a1={"tvoc_ugm3": 125.0}), TS)
    loop.set_nodes(nodes)
    assert loop.store.status("a1") == "infected"


def test_reference_follows_local_cluster_change(loop, nodes):
    loop.local_cluster_id = "B"
    loop.set_nodes(nodes)
    assert loop.reference[0] == pytest.approx((nodes[2].lat + nodes[3].lat) / 2)


# ============ TICK ============

def test_quiet_tick(loop, nodes, reading, publisher):
    result = loop.tick(0, all_normal(nodes, reading), TS)
    assert result.transitions == []
    assert result.critical_alerts == []
    assert result.skipped_nodes == []
    publisher.publish.assert_not_called()


def test_infection_tick(loop, nodes, reading):
    source = all_normal(nodes, reading, 10, a1={"tvoc_ugm3": 125.0})
    result = loop.tick(10, source, TS)

    assert result.infected == ["a1"]
    assert set(result.at_risk) == {"a2", "c1"}
    kinds = [(a.node_id, a.kind) for a in result.feed]
    assert kinds[0] == ("a1", "infection")
    assert {k for k in kinds if k[1] == "warning"} == {("a2", "warning"), ("c1", "warning")}
    assert {n.node_id: n.status for n in loop.nodes}["a1"] == "infected"

    # Next tick: still infected, no new warnings
    result = loop.tick(11, all_normal(nodes, reading, 11, a1={"tvoc_ugm3": 125.0}), TS)
    assert result.transitions == []
    assert result.feed == []


def test_missing_reading_is_skipped(loop, nodes, reading):
    source = StaticReadingSource([reading("a1", 0), reading("b1", 0)])
    result = loop.tick(0, source, TS)
    assert set(result.skipped_nodes) == {"a2", "b2", "c1"}


def test_failing_node_does_not_abort_tick(loop, nodes, reading):
    good = all_normal(nodes, reading, 0, b1={"tvoc_ugm3": 200.0})

    def get_reading(node_id, minute):
        if node_id == "a2":
            raise RuntimeError("sensor bus error")
        return good.get_reading(node_id, minute)

    source = MagicMock()
    source.get_reading.side_effect = get_reading
    result = loop.tick(0, source, TS)
    assert result.skipped_nodes == ["a2"]
    assert result.infected == ["b1"]


def test_critical_alert_published(loop, nodes, reading, publisher):
    result = loop.tick(0, all_normal(nodes, reading, a1={"air_temperature_c": 0.5}), TS)
    assert [a.hazard_type for a in result.critical_alerts] == ["frost_emergency"]
    assert [a.target_cluster_id for a in result.inter_cluster_alerts] == ["B"]

    publisher.publish.assert_called_once()
    records = publisher.publish.call_args[0][0]
    assert records[0].hazard_type == "frost_emergency"


def test_repeat_hazard_supersedes(loop, nodes, reading):
    loop.tick(0, all_normal(nodes, reading, a1={"air_temperature_c": 0.5}), TS)
    result = loop.tick(1, all_normal(nodes, reading, 1, a1={"air_temperature_c": 0.5}), TS)
    assert len(result.superseded_alerts) == 1
    assert len(loop.registry.active_critical()) == 1


def test_critical_alerts_can_be_disabled(nodes, reading, publisher):
    monitor = MonitoringLoop(Settings(monitor=MonitorConfig(critical_alerts_enabled=False)), publisher=publisher)
    monitor.set_nodes(nodes)
    result = monitor.tick(0, all_normal(nodes, reading, a1={"air_temperature_c": 0.5}), TS)
    assert result.critical_alerts == []


def test_offline_node_not_evaluated(loop, nodes, reading):
    loop.set_offline("a1")
    result = loop.tick(0, all_normal(nodes, reading, a1={"tvoc_ugm3": 300.0, "air_temperature_c": 0.5}), TS)
    assert result.infected == []
    assert result.critical_alerts == []


def test_feed_is_bounded(nodes, reading, publisher):
    monitor = MonitoringLoop(Settings(monitor=MonitorConfig(feed_size=2)), publisher=publisher)
    monitor.set_nodes(nodes)
    monitor.tick(0, all_normal(nodes, reading, a1={"tvoc_ugm3": 125.0}), TS)
    assert len(monitor.feed) == 2


# ============ TEST ALERTS ============

def test_trigger_and_clear_test_alert(loop, publisher):
    change = loop.trigger_test_alert("a1", "pest_outbreak", timestamp=TS)
    assert change.activated.hazard_type == "pest_outbreak"
    assert loop.test_alerts_active

    changes = loop.clear_test_alerts()
    assert len(changes) == 1
    assert changes[0].deactivated[0].is_active is False
    assert loop.registry.active_critical() == []
    assert not loop.test_alerts_active
    assert publisher.publish.call_count == 2


def test_test_alert_not_cleared_by_normal_tick(loop, nodes, reading):
    loop.trigger_test_alert("a1", "frost_emergency", timestamp=TS)
    loop.tick(0, all_normal(nodes, reading), TS)
    assert len(loop.registry.active_critical()) == 1


def test_trigger_test_alert_errors(loop):
    with pytest.raises(UnknownNodeError):
        loop.trigger_test_alert("zz", "pest_outbreak")
    with pytest.raises(RuleConfigError):
        loop.trigger_test_alert("a1", "meteor")


# ============ EXTERNAL / SNAPSHOT ============

def test_merge_external_ignores_local_echo(loop):
    local = loop.trigger_test_alert("a1", "frost_emergency", timestamp=TS).activated.to_dict()
    remote = {**local, "id": "critical-z1", "source_node_id": "z1", "source_cluster_id": "Z"}
    assert loop.merge_external([local, remote]) == 1
    assert loop.registry.external_clusters() == ["Z"]


def test_snapshot_shape(loop, nodes, reading):
    loop.tick(0, all_normal(nodes, reading, a1={"tvoc_ugm3": 125.0}), TS)
    snap = loop.snapshot()
    assert snap["stats"]["infected"] == 1
    assert snap["stats"]["at_risk"] == 2
    assert len(snap["nodes"]) == len(nodes)
    assert snap["feed"][0]["kind"] == "infection"


def test_apply_settings(loop):
    loop.apply_settings(Settings(monitor=MonitorConfig(feed_size=5)))
    assert loop.feed._items.maxlen == 5


def test_formatter_outputs(loop, nodes, reading):
    result = loop.tick(0, all_normal(nodes, reading, a1={"tvoc_ugm3": 125.0, "air_temperature_c": 0.5}), TS)
    text = format_output(result, "operator")
    assert "FIELD STATUS: Changes" in text
    assert "Frost Emergency".upper() in text
    assert '"time_minute": 0' in format_output(result, "json")


def test_distance_matrix_is_a_copy(loop):
    matrix = loop.distance_matrix
    matrix["a1"].clear()
    assert loop.distance_matrix["a1"]


def test_retract_alert(loop, nodes, reading, publisher):
    loop.tick(0, all_normal(nodes, reading, a1={"air_temperature_c": 0.5}), TS)
    change = loop.retract_alert("a1", "frost_emergency")
    assert change.deactivated[0].is_active is False
    assert loop.registry.active_critical() == []
    assert publisher.publish.call_count == 2
