"""Per-node health state machine with nearest-neighbour risk propagation.

Transitions:

    online --(any trigger)--> infected --(all recovery checks pass)--> online
    online --(nearest neighbour infected)--> at_risk --(neighbour clear)--> online

``offline`` is only ever set from outside the engine.
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger

from src.core.models import HealthState, SensorReading, StatusTransition, Trigger
from src.geo.projection import nearest_neighbor
from src.utils.config import InfectionConfig
from src.utils.constants import NODE_STATUSES


@dataclass(frozen=True)
class TriggerRule:
    """One absolute-threshold infection check."""
    trigger_type: str
    field: str
    direction: str  # "above" or "below"
    threshold_attr: str
    severity: str
    describe: Callable[[float], str]

    def threshold(self, config: InfectionConfig) -> float:
        return getattr(config, self.threshold_attr)

    def fires(self, value: Optional[float], config: InfectionConfig) -> bool:
        if value is None:
            return False
        limit = self.threshold(config)
        return value > limit if self.direction == "above" else value < limit


# Evaluated in this order; the resulting list keeps it
TRIGGER_RULES = (
    TriggerRule(
        trigger_type="tvoc_critical",
        field="tvoc_ugm3",
        direction="above",
        threshold_attr="tvoc_threshold",
        severity="critical",
        describe=lambda v: f"Critical tVOC contamination: {v:.1f} µg/m³ (pest indicator)",
    ),
    TriggerRule(
        trigger_type="low_humidity",
        field="relative_humidity_pct",
        direction="below",
        threshold_attr="low_humidity_threshold",
        severity="severe",
        describe=lambda v: f"Extremely low humidity: {v:.1f}% (drought stress)",
    ),
    TriggerRule(
        trigger_type="low_soil_moisture",
        field="soil_moisture_m3m3",
        direction="below",
        threshold_attr="low_soil_moisture_threshold",
        severity="critical",
        describe=lambda v: f"Extremely low soil moisture: {v:.3f} m³/m³ (irrigation failure)",
    ),
)


def _numeric(reading: SensorReading, name: str) -> Optional[float]:
    value = reading.get(name)
    if isinstance(value, bool) or value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _fmt(value: Optional[float], pattern: str) -> str:
    return "n/a" if value is None else format(value, pattern)


def detect_triggers(reading: SensorReading, config: Optional[InfectionConfig] = None) -> List[Trigger]:
    config = config or InfectionConfig()
    triggers = []
    for rule in TRIGGER_RULES:
        value = _numeric(reading, rule.field)
        if rule.fires(value, config):
            triggers.append(Trigger(
                trigger_type=rule.trigger_type,
                field=rule.field,
                value=value,
                threshold=rule.threshold(config),
                message=rule.describe(value),
                severity=rule.severity,
            ))
    return triggers


def check_recovery(
    reading: SensorReading,
    config: Optional[InfectionConfig] = None,
    infected_at: Optional[int] = None,
    now_minute: Optional[int] = None,
) -> tuple:
    """Return (should_recover, reason).

    Every recovery condition must hold at once. A missing value counts as not
    yet normalized.
    """
    config = config or InfectionConfig()
    pending = []

    tvoc = _numeric(reading, "tvoc_ugm3")
    if tvoc is None or tvoc >= config.tvoc_recovery_threshold:
        pending.append(f"tVOC still elevated: {_fmt(tvoc, '.1f')} µg/m³")

    humidity = _numeric(reading, "relative_humidity_pct")
    if humidity is None or humidity <= config.humidity_recovery_threshold:
        pending.append(f"Humidity still low: {_fmt(humidity, '.1f')}%")

    moisture = _numeric(reading, "soil_moisture_m3m3")
    if moisture is None or moisture <= config.soil_moisture_recovery_threshold:
        pending.append(f"Soil moisture still low: {_fmt(moisture, '.3f')} m³/m³")

    if pending:
        return False, "Waiting for normalization: " + ", ".join(pending)

    if config.quarantine_minutes > 0 and infected_at is not None and now_minute is not None:
        elapsed = minutes_between(infected_at, now_minute)
        if elapsed < config.quarantine_minutes:
            return False, f"Quarantine: {elapsed}/{config.quarantine_minutes} min elapsed"

    return True, "All parameters normalized - immediate recovery"


def minutes_between(start: int, end: int, day: int = 1440) -> int:
    """Elapsed simulated minutes, wrapping at midnight."""
    return (end - start) % day


class HealthStateStore:
    """Single-writer map of node id -> HealthState.

    Owned by one MonitoringLoop; other readers go through ``snapshot``.
    """

    def __init__(self):
        self._states: Dict[str, HealthState] = {}

    def get(self, node_id: str) -> HealthState:
        state = self._states.get(node_id)
        if state is None:
            state = HealthState(node_id=node_id)
            self._states[node_id] = state
        return state

    def status(self, node_id: str) -> str:
        return self.get(node_id).status

    def is_infected(self, node_id: str) -> bool:
        return self.status(node_id) == "infected"

    def set_infected(self, node_id: str, triggers: List[Trigger], time_minute: int) -> None:
        state = self.get(node_id)
        if state.status != "infected":
            state.infected_at = time_minute
        state.status = "infected"
        state.triggers = list(triggers)
        state.trigger_count = len(triggers)

    def set_online(self, node_id: str) -> None:
        state = self.get(node_id)
        state.status = "online"
        state.triggers = []
        state.trigger_count = 0
        state.infected_at = None

    def set_at_risk(self, node_id: str) -> None:
        self.get(node_id).status = "at_risk"

    def set_offline(self, node_id: str) -> None:
        self.get(node_id).status = "offline"

    def snapshot(self) -> Dict[str, HealthState]:
        return {
            node_id: HealthState(
                node_id=s.node_id,
                status=s.status,
                triggers=list(s.triggers),
                infected_at=s.infected_at,
                trigger_count=s.trigger_count,
            )
            for node_id, s in self._states.items()
        }

    def stats(self, node_ids: Iterable[str]) -> dict:
        counts = {"total": 0, **{s: 0 for s in NODE_STATUSES}}
        for node_id in node_ids:
            counts["total"] += 1
            counts[self.status(node_id)] += 1
        return counts

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._states

    def __len__(self) -> int:
        return len(self._states)


@dataclass
class NeighborWarning:
    node_id: str
    infected_neighbor_id: str
    distance: float
    trigger_type: str


@dataclass
class PropagationResult:
    transitions: List[StatusTransition] = field(default_factory=list)
    warnings: List[NeighborWarning] = field(default_factory=list)


class HealthStateMachine:
    """Evaluate infection, recovery and neighbour risk against a store."""

    def __init__(self, store: HealthStateStore, config: Optional[InfectionConfig] = None):
        self.store = store
        self.config = config or InfectionConfig()

    def evaluate_node(self, node_id: str, reading: SensorReading) -> Optional[StatusTransition]:
        """Apply one reading; return the transition if the status changed."""
        state = self.store.get(node_id)
        old = state.status

        if old == "offline":
            return None

        if old == "infected":
            should_recover, reason = check_recovery(
                reading, self.config, state.infected_at, reading.time_minute
            )
            if should_recover:
                logger.info(f"Node {node_id[:8]} recovered: {reason}")
                self.store.set_online(node_id)
                return StatusTransition(node_id, old, "online")

            logger.debug(f"Node {node_id[:8]} still infected: {reason}")
            # Re-evaluate so the trigger list reflects this tick
            triggers = detect_triggers(reading, self.config)
            if triggers:
                self.store.set_infected(node_id, triggers, reading.time_minute)
            return None

        # online or at_risk
        triggers = detect_triggers(reading, self.config)
        if triggers:
            logger.info(f"Node {node_id[:8]} INFECTED: {', '.join(t.message for t in triggers)}")
            self.store.set_infected(node_id, triggers, reading.time_minute)
            return StatusTransition(node_id, old, "infected")
        return None

    def sync_status(self, nodes: Iterable) -> None:
        """Copy the store's status onto Node records."""
        for node in nodes:
            node.status = self.store.status(node.node_id)

    def propagate_risk(
        self,
        node_ids: Iterable[str],
        distance_matrix: dict,
        newly_infected: Iterable[str] = (),
    ) -> PropagationResult:
        """Mark nodes whose single nearest neighbour is infected as at_risk.

        A warning is produced only when that neighbour became infected in the
        current tick. Risk never travels more than one hop.
        """
        newly_infected = set(newly_infected)
        result = PropagationResult()

        for node_id in node_ids:
            status = self.store.status(node_id)
            if status in ("infected", "offline"):
                continue

            nearest = nearest_neighbor(distance_matrix, node_id)
            if nearest is None:
                continue
            neighbor_id, distance = nearest
            neighbor_infected = self.store.is_infected(neighbor_id)

            if neighbor_infected and status != "at_risk":
                self.store.set_at_risk(node_id)
                result.transitions.append(StatusTransition(node_id, status, "at_risk"))
                logger.info(f"Node {node_id[:8]} at risk: nearest neighbour {neighbor_id[:8]} infected")

                if neighbor_id in newly_infected:
                    triggers = self.store.get(neighbor_id).triggers
                    trigger_type = triggers[0].trigger_type if triggers else "anomaly"
                    result.warnings.append(NeighborWarning(node_id, neighbor_id, distance, trigger_type))

            elif not neighbor_infected and status == "at_risk":
                self.store.set_online(node_id)
                result.transitions.append(StatusTransition(node_id, "at_risk", "online"))
                logger.info(f"Node {node_id[:8]} no longer at risk")

        return result
