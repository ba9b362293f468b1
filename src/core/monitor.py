"""Tick-driven orchestration of health monitoring and critical alerts."""

import time
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from loguru import logger

from src.core.alerts import (
    AlertChange,
    AlertRegistry,
    CriticalAlertEngine,
    hazard_override_reading,
    render_message,
)
from src.core.errors import RuleConfigError, UnknownNodeError
from src.core.feed import AlertFeed, infection_alert, neighbor_warning_alert
from src.core.health import HealthStateMachine, HealthStateStore
from src.core.models import CriticalAlert, InterClusterAlert, Node, SensorReading, TickResult, utcnow
from src.data_sources.publisher import AlertPublisher
from src.data_sources.readings import ReadingSource
from src.geo.projection import build_distance_matrix, reference_point
from src.utils.config import Settings


class MonitoringLoop:
    """Owns the health store, distance matrix and alert registry for one run.

    Call ``tick`` once per simulated minute. Everything runs synchronously;
    only alert persistence is handed off to the publisher's worker thread.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        publisher: Optional[AlertPublisher] = None,
        local_cluster_id: Optional[str] = None,
    ):
        settings = settings or Settings()
        self.settings = settings
        self.local_cluster_id = local_cluster_id

        self.store = HealthStateStore()
        self.registry = AlertRegistry()
        self.health = HealthStateMachine(self.store, settings.infection)
        self.alerts = CriticalAlertEngine(self.registry, settings.hazard_rules, settings.radius)
        self.feed = AlertFeed(settings.monitor.feed_size)
        self.publisher = publisher or AlertPublisher(None)

        self._nodes: Dict[str, Node] = {}
        self._matrix: dict = {}
        self._reference = (0.0, 0.0)
        self._positions: tuple = ()
        self._test_alerts: set = set()

    # Configuration

    def apply_settings(self, settings: Settings) -> None:
        """Swap in new configuration values; takes effect on the next tick."""
        self.settings = settings
        self.health.config = settings.infection
        self.alerts.rules = list(settings.hazard_rules)
        self.alerts.radius = settings.radius
        self.feed.resize(settings.monitor.feed_size)
        logger.info("Monitoring configuration reloaded")

    # Node set

    def set_nodes(self, nodes: Iterable[Node]) -> None:
        self._nodes = {n.node_id: replace(n) for n in nodes}
        for node in self._nodes.values():
            if node.status == "offline":
                self.store.set_offline(node.node_id)
            elif self.store.status(node.node_id) == "offline":
                self.store.set_online(node.node_id)
        self.health.sync_status(self._nodes.values())

        positions = (self.local_cluster_id,) + tuple((n.node_id, n.lat, n.lon) for n in self._nodes.values())
        if positions != self._positions:
            self._rebuild_matrix()
            self._positions = positions

    def _rebuild_matrix(self) -> None:
        nodes = list(self._nodes.values())
        own = [n for n in nodes if n.cluster_id == self.local_cluster_id] if self.local_cluster_id else []
        self._reference = reference_point(own or nodes)
        self._matrix = build_distance_matrix(nodes, *self._reference)
        logger.info(f"Distance matrix rebuilt for {len(nodes)} nodes")

    @property
    def nodes(self) -> List[Node]:
        return [replace(n) for n in self._nodes.values()]

    @property
    def distance_matrix(self) -> dict:
        return {k: dict(v) for k, v in self._matrix.items()}

    @property
    def reference(self) -> tuple:
        return self._reference

    def node(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise UnknownNodeError(node_id) from None

    def set_offline(self, node_id: str) -> None:
        self.node(node_id)
        self.store.set_offline(node_id)
        self.health.sync_status(self._nodes.values())

    def set_online(self, node_id: str) -> None:
        self.node(node_id)
        self.store.set_online(node_id)
        self.health.sync_status(self._nodes.values())

    # Tick

    def tick(self, time_minute: int, source: ReadingSource, timestamp: Optional[datetime] = None) -> TickResult:
        start = time.perf_counter()
        timestamp = timestamp or utcnow()
        result = TickResult(time_minute=time_minute, timestamp=timestamp)
        nodes = list(self._nodes.values())
        newly_infected = []
        changes: List[AlertChange] = []

        # Pass 1: each node's own reading
        for node in nodes:
            try:
                reading = source.get_reading(node.node_id, time_minute)
                if reading is None:
                    result.skipped_nodes.append(node.node_id)
                    continue

                transition = self.health.evaluate_node(node.node_id, reading)
                if transition:
                    result.transitions.append(transition)
                    if transition.new_status == "infected":
                        newly_infected.append(node.node_id)
                        result.feed.append(infection_alert(node.node_id, self.store.get(node.node_id).triggers))

                if self.settings.monitor.critical_alerts_enabled and self.store.status(node.node_id) != "offline":
                    change = self.alerts.evaluate(node, reading, nodes, timestamp)
                    if change:
                        changes.append(change)
            except Exception as e:
                logger.warning(f"Tick {time_minute}: node {node.node_id[:8]} skipped: {e}")
                result.skipped_nodes.append(node.node_id)

        # Pass 2: nearest-neighbour risk
        propagation = self.health.propagate_risk(self._nodes.keys(), self._matrix, newly_infected)
        result.transitions.extend(propagation.transitions)
        for w in propagation.warnings:
            result.feed.append(neighbor_warning_alert(w.node_id, w.infected_neighbor_id, w.distance, w.trigger_type))

        self.health.sync_status(nodes)
        self.feed.extend(result.feed)

        for change in changes:
            if change.activated:
                result.critical_alerts.append(change.activated)
            result.superseded_alerts.extend(change.deactivated)
            result.inter_cluster_alerts.extend(change.inter_cluster_activated)
        self._publish(changes)

        result.duration_seconds = time.perf_counter() - start
        if result.transitions or result.critical_alerts:
            logger.info(
                f"Tick {time_minute}: {len(result.transitions)} transitions, "
                f"{len(result.critical_alerts)} critical alerts, {len(result.skipped_nodes)} skipped"
            )
        return result

    # Manual test alerts

    def trigger_test_alert(
        self,
        node_id: str,
        hazard_type: str,
        base: Optional[SensorReading] = None,
        timestamp: Optional[datetime] = None,
    ) -> AlertChange:
        node = self.node(node_id)
        rule = next((r for r in self.alerts.rules if r.rule_id == hazard_type), None)
        if rule is None:
            raise RuleConfigError(f"Unknown hazard type {hazard_type!r}")

        base = base or SensorReading(node_id=node_id, time_minute=0)
        reading = hazard_override_reading(hazard_type, base)
        change = self.alerts.raise_alert(
            node, hazard_type, render_message(rule, reading), list(self._nodes.values()), timestamp
        )
        self._test_alerts.add((node_id, hazard_type))
        self._publish([change])
        return change

    def clear_test_alerts(self) -> List[AlertChange]:
        """Explicitly deactivate every manually triggered alert."""
        changes = [self.alerts.retract(node_id, hazard) for node_id, hazard in sorted(self._test_alerts)]
        self._test_alerts.clear()
        self._publish(changes)
        return changes

    @property
    def test_alerts_active(self) -> bool:
        return bool(self._test_alerts)

    def retract_alert(self, source_node_id: str, hazard_type: str) -> AlertChange:
        change = self.alerts.retract(source_node_id, hazard_type)
        self._test_alerts.discard((source_node_id, hazard_type))
        self._publish([change])
        return change

    # External feed

    def merge_external(self, records: Iterable) -> int:
        parsed = []
        for record in records:
            if isinstance(record, dict):
                cls = InterClusterAlert if "target_cluster_id" in record else CriticalAlert
                record = cls.from_dict(record)
            if self.local_cluster_id and record.source_cluster_id == self.local_cluster_id:
                logger.debug(f"Ignoring echo of local alert {record.alert_id}")
                continue
            parsed.append(record)
        return self.registry.merge_external(parsed)

    # Read access

    def snapshot(self) -> dict:
        states = self.store.snapshot()
        return {
            "reference": {"lat": self._reference[0], "lon": self._reference[1]},
            "stats": self.store.stats(self._nodes.keys()),
            "nodes": [
                {**n.to_dict(), "health": states[n.node_id].to_dict() if n.node_id in states else None}
                for n in self._nodes.values()
            ],
            "feed": [a.to_dict() for a in self.feed.latest()],
            "critical_alerts": [a.to_dict() for a in self.registry.active_critical(include_external=True)],
            "inter_cluster_alerts": [a.to_dict() for a in self.registry.active_inter_cluster(include_external=True)],
            "alert_lines": [line.to_dict() for line in self.registry.alert_lines()],
        }

    def _publish(self, changes: Iterable[AlertChange]) -> None:
        records = [r for change in changes for r in change.records]
        if records:
            self.publisher.publish(records)
