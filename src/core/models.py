"""Data models for the monitoring engine."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from src.utils.constants import SENSOR_FIELDS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SensorReading:
    """One node's measurements for one time bucket.

    Numeric fields live in ``values``; a field that was missing or could not be
    parsed as a number is simply absent (or None).
    """
    node_id: str
    time_minute: int
    values: dict = field(default_factory=dict)
    frost_risk_flag: str = "NONE"
    timestamp: Optional[datetime] = None

    def get(self, name: str) -> Optional[float]:
        return self.values.get(name)

    def with_values(self, **overrides) -> "SensorReading":
        merged = {**self.values, **overrides}
        flag = overrides.pop("frost_risk_flag", None) or self.frost_risk_flag
        merged.pop("frost_risk_flag", None)
        return SensorReading(
            node_id=self.node_id,
            time_minute=self.time_minute,
            values=merged,
            frost_risk_flag=flag,
            timestamp=self.timestamp,
        )

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "time_minute": self.time_minute,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "frost_risk_flag": self.frost_risk_flag,
            **{name: self.values.get(name) for name in SENSOR_FIELDS},
        }


@dataclass
class Node:
    """Monitored sensor unit."""
    node_id: str
    lat: float
    lon: float
    cluster_id: str
    elevation_m: Optional[float] = None
    status: str = "online"

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "lat": self.lat,
            "lon": self.lon,
            "cluster_id": self.cluster_id,
            "elevation_m": self.elevation_m,
            "status": self.status,
        }


@dataclass(frozen=True)
class Trigger:
    """A single concrete reason a node is unhealthy."""
    trigger_type: str  # tvoc_critical, low_humidity, low_soil_moisture
    field: str
    value: float
    threshold: float
    message: str
    severity: str  # critical, severe

    def to_dict(self) -> dict:
        return {
            "type": self.trigger_type,
            "field": self.field,
            "value": self.value,
            "threshold": self.threshold,
            "message": self.message,
            "severity": self.severity,
        }


@dataclass
class HealthState:
    node_id: str
    status: str = "online"
    triggers: list = field(default_factory=list)
    infected_at: Optional[int] = None  # time minute of the infection edge
    trigger_count: int = 0

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "status": self.status,
            "triggers": [t.to_dict() for t in self.triggers],
            "infected_at": self.infected_at,
            "trigger_count": self.trigger_count,
        }


@dataclass
class StatusTransition:
    node_id: str
    old_status: str
    new_status: str

    def to_dict(self) -> dict:
        return {"node_id": self.node_id, "old_status": self.old_status, "new_status": self.new_status}


@dataclass(frozen=True)
class Anomaly:
    time_minute: int
    field: str
    value: float
    z_score: float
    expected_mean: float
    expected_std: float
    expected_min: float
    expected_max: float

    def to_dict(self) -> dict:
        return {
            "time_minute": self.time_minute,
            "field": self.field,
            "value": self.value,
            "z_score": self.z_score,
            "expected_mean": self.expected_mean,
            "expected_std": self.expected_std,
            "expected_range": {"min": self.expected_min, "max": self.expected_max},
        }


@dataclass(frozen=True)
class CorrelatedField:
    field: str
    correlation: float
    current_value: float
    delta_value: float

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "correlation": self.correlation,
            "current_value": self.current_value,
            "delta_value": self.delta_value,
        }


@dataclass
class AnomalyWithCorrelations:
    anomaly: Anomaly
    correlations: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {**self.anomaly.to_dict(), "correlations": [c.to_dict() for c in self.correlations]}


@dataclass
class FeedAlert:
    """Local, human-readable alert feed entry."""
    alert_id: str
    node_id: str
    alert_type: str  # pest, drought, frost, anomaly
    kind: str  # infection, warning
    message: str
    severity: str
    created_at: datetime = field(default_factory=utcnow)
    source_node_id: Optional[str] = None
    distance: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "node_id": self.node_id,
            "type": self.alert_type,
            "kind": self.kind,
            "message": self.message,
            "severity": self.severity,
            "created_at": self.created_at.isoformat(),
            "source_node_id": self.source_node_id,
            "distance": self.distance,
        }


@dataclass(frozen=True)
class CriticalAlert:
    alert_id: str
    source_node_id: str
    source_cluster_id: str
    hazard_type: str
    message: str
    timestamp: datetime
    lat: float
    lon: float
    is_active: bool = True

    @property
    def key(self) -> tuple:
        return (self.source_node_id, self.hazard_type)

    def to_dict(self) -> dict:
        return {
            "id": self.alert_id,
            "source_node_id": self.source_node_id,
            "source_cluster_id": self.source_cluster_id,
            "type": self.hazard_type,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "lat": self.lat,
            "lon": self.lon,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CriticalAlert":
        ts = data.get("timestamp")
        return cls(
            alert_id=data["id"],
            source_node_id=data["source_node_id"],
            source_cluster_id=data["source_cluster_id"],
            hazard_type=data["type"],
            message=data.get("message", ""),
            timestamp=datetime.fromisoformat(ts) if isinstance(ts, str) else (ts or utcnow()),
            lat=float(data.get("lat", 0.0)),
            lon=float(data.get("lon", 0.0)),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass(frozen=True)
class InterClusterAlert:
    alert_id: str
    source_alert_id: str
    source_node_id: str
    source_cluster_id: str
    target_cluster_id: str
    affected_node_ids: tuple
    hazard_type: str
    message: str
    timestamp: datetime
    is_active: bool = True

    @property
    def affected_count(self) -> int:
        return len(self.affected_node_ids)

    def to_dict(self) -> dict:
        return {
            "id": self.alert_id,
            "source_alert_id": self.source_alert_id,
            "source_node_id": self.source_node_id,
            "source_cluster_id": self.source_cluster_id,
            "target_cluster_id": self.target_cluster_id,
            "affected_node_ids": list(self.affected_node_ids),
            "affected_count": self.affected_count,
            "type": self.hazard_type,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InterClusterAlert":
        ts = data.get("timestamp")
        return cls(
            alert_id=data["id"],
            source_alert_id=data.get("source_alert_id", ""),
            source_node_id=data["source_node_id"],
            source_cluster_id=data["source_cluster_id"],
            target_cluster_id=data["target_cluster_id"],
            affected_node_ids=tuple(data.get("affected_node_ids", [])),
            hazard_type=data["type"],
            message=data.get("message", ""),
            timestamp=datetime.fromisoformat(ts) if isinstance(ts, str) else (ts or utcnow()),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass(frozen=True)
class AlertLine:
    source_node_id: str
    target_node_id: str
    hazard_type: str

    def to_dict(self) -> dict:
        return {
            "source_node_id": self.source_node_id,
            "target_node_id": self.target_node_id,
            "type": self.hazard_type,
        }


@dataclass
class TickResult:
    """Everything one evaluation tick produced."""
    time_minute: int
    timestamp: datetime
    transitions: list = field(default_factory=list)
    feed: list = field(default_factory=list)
    critical_alerts: list = field(default_factory=list)
    superseded_alerts: list = field(default_factory=list)
    inter_cluster_alerts: list = field(default_factory=list)
    skipped_nodes: list = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def infected(self) -> list:
        return [t.node_id for t in self.transitions if t.new_status == "infected"]

    @property
    def at_risk(self) -> list:
        return [t.node_id for t in self.transitions if t.new_status == "at_risk"]

    def to_dict(self) -> dict:
        return {
            "time_minute": self.time_minute,
            "timestamp": self.timestamp.isoformat(),
            "transitions": [t.to_dict() for t in self.transitions],
            "feed": [a.to_dict() for a in self.feed],
            "critical_alerts": [a.to_dict() for a in self.critical_alerts],
            "superseded_alerts": [a.to_dict() for a in self.superseded_alerts],
            "inter_cluster_alerts": [a.to_dict() for a in self.inter_cluster_alerts],
            "skipped_nodes": list(self.skipped_nodes),
            "duration_seconds": self.duration_seconds,
        }
