"""Critical hazard alerts routed across clusters.

A reading is checked against an ordered hazard rule table; the first rule whose
conditions all hold produces a single CriticalAlert for the source node. The
alert is then routed to every *other* cluster that owns a node near the
source, with exactly one InterClusterAlert per destination cluster.
"""

import math
import operator
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from loguru import logger

from src.core.errors import RuleConfigError
from src.core.models import AlertLine, CriticalAlert, InterClusterAlert, Node, SensorReading, utcnow
from src.geo.projection import great_circle_distance
from src.utils.config import HazardRule, RadiusConfig, default_hazard_rules

OPERATORS = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}

# Values guaranteed to match each default hazard rule
TEST_OVERRIDES = {
    "pest_outbreak": {"air_temperature_c": 42, "relative_humidity_pct": 92},
    "severe_drought": {"soil_moisture_m3m3": 0.05, "soil_water_tension_kpa": 75},
    "frost_emergency": {"air_temperature_c": -2, "frost_risk_flag": "HIGH"},
    "chemical_hazard": {"tvoc_ugm3": 500, "soil_ph": 4.2},
}


class _MessageValues(dict):
    def __missing__(self, key):
        return "n/a"


def _value(reading: SensorReading, sensor: str) -> Optional[float]:
    value = reading.get(sensor)
    if value is None or isinstance(value, bool):
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def rule_matches(rule: HazardRule, reading: SensorReading) -> bool:
    for condition in rule.conditions:
        compare = OPERATORS.get(condition.operator)
        if compare is None:
            raise RuleConfigError(f"Rule {rule.rule_id}: unknown operator {condition.operator!r}")
        value = _value(reading, condition.sensor)
        if value is None or not compare(value, condition.value):
            return False
    return True


def render_message(rule: HazardRule, reading: SensorReading) -> str:
    template = rule.message_template or f"{rule.label or rule.rule_id} detected"
    try:
        return template.format_map(_MessageValues(reading.values))
    except (ValueError, IndexError) as e:
        raise RuleConfigError(f"Rule {rule.rule_id}: bad message template ({e})") from e


def evaluate_rules(reading: SensorReading, rules: Iterable[HazardRule]) -> Optional[tuple]:
    """(rule, message) for the first matching rule in priority order, else None."""
    for rule in rules:
        if rule_matches(rule, reading):
            return rule, render_message(rule, reading)
    return None


def make_critical_alert(node: Node, hazard_type: str, message: str, timestamp: Optional[datetime] = None) -> CriticalAlert:
    return CriticalAlert(
        alert_id=f"critical-{node.node_id}-{hazard_type}-{uuid.uuid4().hex[:6]}",
        source_node_id=node.node_id,
        source_cluster_id=node.cluster_id,
        hazard_type=hazard_type,
        message=message,
        timestamp=timestamp or utcnow(),
        lat=node.lat,
        lon=node.lon,
    )


def find_nodes_in_radius(source: Node, nodes: Iterable[Node], radius_meters: float) -> List[Node]:
    """Nodes within ``radius_meters`` great-circle distance, excluding the source."""
    return [
        n for n in nodes
        if n.node_id != source.node_id
        and great_circle_distance(source.lat, source.lon, n.lat, n.lon) <= radius_meters
    ]


def find_nodes_with_fallback(source: Node, nodes: Iterable[Node], radius: Optional[RadiusConfig] = None) -> List[Node]:
    """All nodes in the primary radius, else the single closest within the fallback radius."""
    radius = radius or RadiusConfig()
    nodes = list(nodes)

    primary = find_nodes_in_radius(source, nodes, radius.primary_radius_meters)
    if primary:
        return primary

    closest, closest_dist = None, math.inf
    for n in nodes:
        if n.node_id == source.node_id:
            continue
        dist = great_circle_distance(source.lat, source.lon, n.lat, n.lon)
        if dist <= radius.fallback_radius_meters and dist < closest_dist:
            closest, closest_dist = n, dist

    return [closest] if closest else []


def deduplicate_cluster_alerts(alert: CriticalAlert, nodes_in_radius: Iterable[Node]) -> List[InterClusterAlert]:
    """One InterClusterAlert per external cluster, carrying all its affected nodes."""
    by_cluster: Dict[str, List[str]] = {}
    for node in nodes_in_radius:
        if node.cluster_id == alert.source_cluster_id:
            continue
        by_cluster.setdefault(node.cluster_id, []).append(node.node_id)

    return [
        InterClusterAlert(
            alert_id=f"inter-{alert.source_node_id}-{target}-{alert.hazard_type}",
            source_alert_id=alert.alert_id,
            source_node_id=alert.source_node_id,
            source_cluster_id=alert.source_cluster_id,
            target_cluster_id=target,
            affected_node_ids=tuple(node_ids),
            hazard_type=alert.hazard_type,
            message=alert.message,
            timestamp=alert.timestamp,
        )
        for target, node_ids in by_cluster.items()
    ]


def build_alert_lines(inter_cluster_alerts: Iterable[InterClusterAlert]) -> List[AlertLine]:
    return [
        AlertLine(ica.source_node_id, target, ica.hazard_type)
        for ica in inter_cluster_alerts
        for target in ica.affected_node_ids
    ]


def hazard_override_reading(hazard_type: str, base: SensorReading) -> SensorReading:
    """Copy of ``base`` with values that trip the given hazard rule."""
    overrides = TEST_OVERRIDES.get(hazard_type)
    if overrides is None:
        raise RuleConfigError(f"No test override for hazard type {hazard_type!r}")
    return base.with_values(**overrides)


@dataclass
class AlertChange:
    """What one activation or retraction did to the alert set."""
    activated: Optional[CriticalAlert] = None
    deactivated: List[CriticalAlert] = field(default_factory=list)
    inter_cluster_activated: List[InterClusterAlert] = field(default_factory=list)
    inter_cluster_retracted: List[InterClusterAlert] = field(default_factory=list)

    @property
    def records(self) -> list:
        """Every record an external store needs to apply, in order."""
        out = [*self.deactivated, *self.inter_cluster_retracted]
        if self.activated:
            out.append(self.activated)
        out.extend(self.inter_cluster_activated)
        return out


class AlertRegistry:
    """Active critical and inter-cluster alerts.

    Locally sourced alerts are keyed by (source node, hazard type). Alerts
    received from other engines live in a separate partition keyed by their
    source cluster, so the two can never overwrite each other.
    """

    def __init__(self):
        self._critical: Dict[tuple, CriticalAlert] = {}
        self._inter: Dict[str, List[InterClusterAlert]] = {}
        self._external_critical: Dict[str, Dict[str, CriticalAlert]] = {}
        self._external_inter: Dict[str, Dict[str, InterClusterAlert]] = {}

    # Local alerts

    def activate(self, alert: CriticalAlert, inter_alerts: List[InterClusterAlert]) -> AlertChange:
        change = self.deactivate(alert.source_node_id, alert.hazard_type)
        self._critical[alert.key] = alert
        self._inter[alert.alert_id] = list(inter_alerts)
        change.activated = alert
        change.inter_cluster_activated = list(inter_alerts)
        return change

    def deactivate(self, source_node_id: str, hazard_type: str) -> AlertChange:
        change = AlertChange()
        previous = self._critical.pop((source_node_id, hazard_type), None)
        if previous is None:
            return change
        change.deactivated.append(replace(previous, is_active=False))
        change.inter_cluster_retracted = [
            replace(ica, is_active=False) for ica in self._inter.pop(previous.alert_id, [])
        ]
        return change

    def get(self, source_node_id: str, hazard_type: str) -> Optional[CriticalAlert]:
        return self._critical.get((source_node_id, hazard_type))

    def active_critical(self, include_external: bool = False) -> List[CriticalAlert]:
        alerts = list(self._critical.values())
        if include_external:
            for partition in self._external_critical.values():
                alerts.extend(partition.values())
        return alerts

    def active_inter_cluster(self, include_external: bool = False) -> List[InterClusterAlert]:
        alerts = [ica for group in self._inter.values() for ica in group]
        if include_external:
            for partition in self._external_inter.values():
                alerts.extend(partition.values())
        return alerts

    def inbox(self, cluster_id: str) -> List[InterClusterAlert]:
        """Inter-cluster alerts addressed to ``cluster_id`` from any source."""
        return [a for a in self.active_inter_cluster(include_external=True) if a.target_cluster_id == cluster_id]

    def alert_lines(self, include_external: bool = True) -> List[AlertLine]:
        return build_alert_lines(self.active_inter_cluster(include_external))

    # Externally sourced alerts

    def merge_external(self, records: Iterable) -> int:
        """Apply CriticalAlert / InterClusterAlert records from another engine.

        Inactive records remove the matching entry. Returns the number applied.
        """
        applied = 0
        for record in records:
            if isinstance(record, CriticalAlert):
                partition = self._external_critical.setdefault(record.source_cluster_id, {})
            elif isinstance(record, InterClusterAlert):
                partition = self._external_inter.setdefault(record.source_cluster_id, {})
            else:
                logger.warning(f"Ignoring external record of type {type(record).__name__}")
                continue

            if record.is_active:
                partition[record.alert_id] = record
            else:
                partition.pop(record.alert_id, None)
            applied += 1
        return applied

    def retract_external(self, source_cluster_id: str) -> None:
        self._external_critical.pop(source_cluster_id, None)
        self._external_inter.pop(source_cluster_id, None)

    def external_clusters(self) -> List[str]:
        return sorted(set(self._external_critical) | set(self._external_inter))


class CriticalAlertEngine:
    """Evaluate hazard rules for a node and route the result to nearby clusters."""

    def __init__(
        self,
        registry: AlertRegistry,
        rules: Optional[List[HazardRule]] = None,
        radius: Optional[RadiusConfig] = None,
    ):
        self.registry = registry
        self.rules = list(rules) if rules is not None else default_hazard_rules()
        self.radius = radius or RadiusConfig()

    def evaluate(
        self,
        node: Node,
        reading: SensorReading,
        nodes: List[Node],
        timestamp: Optional[datetime] = None,
    ) -> Optional[AlertChange]:
        match = evaluate_rules(reading, self.rules)
        if match is None:
            return None
        rule, message = match
        return self.raise_alert(node, rule.rule_id, message, nodes, timestamp)

    def raise_alert(
        self,
        node: Node,
        hazard_type: str,
        message: str,
        nodes: List[Node],
        timestamp: Optional[datetime] = None,
    ) -> AlertChange:
        alert = make_critical_alert(node, hazard_type, message, timestamp)
        nearby = find_nodes_with_fallback(node, nodes, self.radius)
        inter_alerts = deduplicate_cluster_alerts(alert, nearby)

        change = self.registry.activate(alert, inter_alerts)
        if change.deactivated:
            logger.info(f"Superseded {hazard_type} alert for node {node.node_id[:8]}")
        if inter_alerts:
            targets = ", ".join(a.target_cluster_id for a in inter_alerts)
            logger.warning(f"CRITICAL {hazard_type} at {node.node_id[:8]} routed to clusters: {targets}")
        else:
            logger.warning(f"CRITICAL {hazard_type} at {node.node_id[:8]}: no external cluster in range")
        return change

    def retract(self, source_node_id: str, hazard_type: str) -> AlertChange:
        change = self.registry.deactivate(source_node_id, hazard_type)
        if change.deactivated:
            logger.info(
                f"Retracted {hazard_type} alert for node {source_node_id[:8]} "
                f"({len(change.inter_cluster_retracted)} inter-cluster alerts)"
            )
        return change
