"""FastAPI application."""

from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field

from src.core.errors import RuleConfigError, UnknownNodeError
from src.core.formatter import format_output
from src.core.models import Node, utcnow
from src.core.monitor import MonitoringLoop
from src.data_sources.publisher import create_publisher
from src.data_sources.readings import StaticReadingSource, parse_reading
from src.ml.anomaly import AnomalyDetector, summarize
from src.ml.correlation import CorrelationAnalyzer
from src.utils.config import reload_settings, settings

app = FastAPI(
    title="Fieldnet Sentinel API",
    description="Sensor fleet health monitoring and cross-cluster critical alerts",
    version=settings.app.version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

monitor = MonitoringLoop(settings, publisher=create_publisher(settings.publisher))


def reset_monitor(local_cluster_id: Optional[str] = None) -> MonitoringLoop:
    """Start a fresh monitoring run with the current settings."""
    global monitor
    monitor.publisher.close(wait=False)
    monitor = MonitoringLoop(settings, publisher=create_publisher(settings.publisher), local_cluster_id=local_cluster_id)
    return monitor


class NodeIn(BaseModel):
    node_id: str
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    cluster_id: str
    elevation_m: Optional[float] = None
    status: str = "online"


class NodesRequest(BaseModel):
    nodes: list[NodeIn]
    local_cluster_id: Optional[str] = None


class TickRequest(BaseModel):
    time_minute: int = Field(ge=0, le=1439)
    readings: list[dict] = []
    timestamp: Optional[datetime] = None
    format: str = "json"


class TestAlertRequest(BaseModel):
    node_id: str
    hazard_type: str


class ExternalAlertsRequest(BaseModel):
    records: list[dict]


class AnomalyRequest(BaseModel):
    readings: list[dict]
    threshold: Optional[float] = None
    window_size: Optional[int] = Field(default=None, ge=1)
    with_correlations: bool = True


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "nodes": len(monitor.nodes),
        "publisher": "enabled" if monitor.publisher.enabled else "disabled",
        "timestamp": utcnow().isoformat(),
    }


# ============ MONITORING ENDPOINTS ============

@app.post("/api/v1/nodes")
async def set_nodes(request: NodesRequest):
    """Replace the monitored node set."""
    try:
        monitor.local_cluster_id = request.local_cluster_id
        monitor.set_nodes(Node(**n.model_dump()) for n in request.nodes)
        return {"count": len(request.nodes), "reference": dict(zip(("lat", "lon"), monitor.reference))}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/reset")
async def reset(local_cluster_id: Optional[str] = Query(None, description="Cluster this engine runs for")):
    """Drop all health state and alerts and start a fresh monitoring run."""
    reset_monitor(local_cluster_id)
    logger.info("Monitoring run reset")
    return {"status": "reset", "local_cluster_id": local_cluster_id}


@app.post("/api/v1/tick")
async def run_tick(request: TickRequest):
    """Evaluate one tick from the readings supplied for that minute."""
    readings = []
    for raw in request.readings:
        try:
            readings.append(parse_reading(raw, time_minute=request.time_minute))
        except ValueError as e:
            logger.warning(f"Dropping reading: {e}")

    try:
        result = monitor.tick(request.time_minute, StaticReadingSource(readings), request.timestamp)
        if request.format == "operator":
            return {"formatted_output": format_output(result, "operator"), **result.to_dict()}
        return result.to_dict()
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/status")
async def get_status():
    """Snapshot of node health, feed and alerts."""
    return monitor.snapshot()


@app.post("/api/v1/nodes/{node_id}/offline")
async def mark_offline(node_id: str):
    try:
        monitor.set_offline(node_id)
    except UnknownNodeError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"node_id": node_id, "status": "offline"}


@app.post("/api/v1/nodes/{node_id}/online")
async def mark_online(node_id: str):
    try:
        monitor.set_online(node_id)
    except UnknownNodeError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"node_id": node_id, "status": "online"}


# ============ ALERT ENDPOINTS ============

@app.get("/api/v1/alerts")
async def get_alerts(cluster_id: Optional[str] = Query(None, description="Only alerts addressed to this cluster")):
    registry = monitor.registry
    inter = registry.inbox(cluster_id) if cluster_id else registry.active_inter_cluster(include_external=True)
    return {
        "critical_alerts": [a.to_dict() for a in registry.active_critical(include_external=True)],
        "inter_cluster_alerts": [a.to_dict() for a in inter],
        "alert_lines": [line.to_dict() for line in registry.alert_lines()],
    }


@app.post("/api/v1/alerts/test")
async def trigger_test_alert(request: TestAlertRequest):
    """Force a critical alert on a node."""
    try:
        change = monitor.trigger_test_alert(request.node_id, request.hazard_type)
    except UnknownNodeError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuleConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"records": [r.to_dict() for r in change.records]}


@app.delete("/api/v1/alerts/test")
async def clear_test_alerts():
    """Deactivate every manually triggered alert."""
    changes = monitor.clear_test_alerts()
    return {"records": [r.to_dict() for c in changes for r in c.records]}


@app.delete("/api/v1/alerts/{node_id}/{hazard_type}")
async def retract_alert(node_id: str, hazard_type: str):
    """Deactivate the active alert for a source node and hazard type."""
    change = monitor.retract_alert(node_id, hazard_type)
    if not change.deactivated:
        raise HTTPException(status_code=404, detail=f"No active {hazard_type} alert for node {node_id}")
    return {"records": [r.to_dict() for r in change.records]}


@app.post("/api/v1/alerts/external")
async def merge_external_alerts(request: ExternalAlertsRequest):
    """Merge alerts published by other clusters' engines."""
    try:
        applied = monitor.merge_external(request.records)
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Malformed alert record: {e}")
    return {"applied": applied}


# ============ ANALYTICS ENDPOINTS ============

@app.post("/api/v1/analytics/anomalies")
async def analyze_anomalies(request: AnomalyRequest):
    """Rolling z-score anomalies, optionally annotated with correlated fields."""
    config = settings.anomaly.model_copy(update={
        k: v for k, v in {"threshold": request.threshold, "window_size": request.window_size}.items()
        if v is not None
    })
    try:
        readings = [parse_reading(raw) for raw in request.readings]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        anomalies = AnomalyDetector(config).detect(readings)
        if request.with_correlations:
            items = [a.to_dict() for a in CorrelationAnalyzer(config).annotate(anomalies, readings)]
        else:
            items = [a.to_dict() for a in anomalies]
        return {"summary": summarize(anomalies), "anomalies": items}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/config/reload")
async def reload_config():
    """Re-read YAML/env configuration and apply it to the running monitor."""
    global settings
    try:
        settings = reload_settings()
        monitor.apply_settings(settings)
        return {"status": "reloaded", "environment": settings.app.environment}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
