"""Synthetic sensor data with diurnal patterns and injected field events."""

import math
import zlib
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import numpy as np

from src.core.models import Node, SensorReading
from src.utils.constants import METERS_PER_DEG_LAT, MINUTES_PER_DAY


def node_seed(node_id: str) -> int:
    return zlib.crc32(node_id.encode("utf-8"))


def _event(seed: int, bucket: int, salt: int) -> float:
    """Deterministic uniform [0, 1) per (node, time bucket)."""
    return float(np.random.default_rng([seed, bucket, salt]).random())


def generate_time_based_reading(node_id: str, minute: int, day: Optional[datetime] = None) -> SensorReading:
    """One reading for ``node_id`` at minute-of-day ``minute``.

    Roughly 5% of 3-hour blocks carry an irrigation failure, 10% of warm
    daylight 2-hour blocks a pest event (tVOC 90-170), and 3% of 200-minute
    blocks a soil pH excursion.
    """
    seed = node_seed(node_id)
    hour = minute / 60
    rng = np.random.default_rng([seed, minute // 5])
    nv = rng.random(16)

    # --- Diurnal patterns ---
    solar_angle = max(0.0, math.sin((hour - 6) / 12 * math.pi))
    solar = solar_angle * (900 + nv[1] * 300)

    # Temperature peaks mid-afternoon
    air_temp = 12 + 18 * math.sin((hour - 5) / 24 * math.pi) + (nv[2] - 0.5) * 6
    soil_temp = 15 + 10 * math.sin((hour - 7) / 24 * math.pi) + (nv[3] - 0.5) * 4

    humidity = float(np.clip(80 - 40 * solar_angle + (nv[4] - 0.5) * 15, 25, 98))

    moisture_base = 0.35 - 0.12 * solar_angle
    if _event(seed, minute // 180, 1) > 0.95:
        moisture_base = 0.05 + nv[5] * 0.05
    moisture = float(np.clip(moisture_base + (nv[5] - 0.5) * 0.08, 0.05, 0.55))

    co2 = 480 - 100 * solar_angle + (nv[6] - 0.5) * 40
    pressure = 1013 + 5 * math.sin(hour / 12 * math.pi) + (nv[7] - 0.5) * 8

    if 3 < hour < 7:
        rain_chance = 0.3
    elif 16 < hour < 20:
        rain_chance = 0.25
    else:
        rain_chance = 0.05
    rainfall = nv[9] * 15 if nv[8] < rain_chance else 0.0

    dew_point = air_temp - (100 - humidity) / 5
    vpd = 0.6108 * math.exp(17.27 * air_temp / (air_temp + 237.3)) * (1 - humidity / 100) / 10

    soil_ec = 1.2 + (nv[10] - 0.5) * 2 + solar_angle * 0.8

    soil_ph = 6.5 + (nv[11] - 0.5) * 1.0
    if _event(seed, minute // 200, 2) > 0.97:
        soil_ph = 4.0 if _event(seed, minute // 200, 3) > 0.5 else 8.5

    tension = 20 + solar_angle * 30 + (nv[12] - 0.5) * 15

    tvoc = 30 + (nv[13] - 0.5) * 40
    if air_temp > 25 and solar_angle > 0.3:
        pest = _event(seed, minute // 120, 4)
        if pest > 0.9:
            tvoc = 90 + _event(seed, minute // 120, 5) * 80
        elif pest > 0.7:
            tvoc = 60 + nv[13] * 40

    water_table = 2.5 + (nv[14] - 0.5) * 1.5

    day = day or datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    values = {
        "soil_moisture_m3m3": round(moisture, 2),
        "soil_temperature_c": round(soil_temp, 2),
        "soil_ec_msm": round(max(0.1, soil_ec), 2),
        "soil_ph": round(float(np.clip(soil_ph, 4.0, 8.5)), 2),
        "soil_water_tension_kpa": round(max(5.0, tension), 2),
        "air_temperature_c": round(air_temp, 2),
        "relative_humidity_pct": round(humidity, 2),
        "atmospheric_pressure_hpa": round(pressure, 2),
        "ambient_co2_umolmol": round(co2, 2),
        "rainfall_rate_mmh": round(rainfall, 2),
        "tvoc_ugm3": round(max(10.0, tvoc), 2),
        "water_table_depth_m": round(max(0.5, water_table), 2),
        "solar_irradiance_wm2": round(solar, 2),
        "dew_point_c": round(dew_point, 2),
        "vpd_kpa": round(max(0.0, vpd), 2),
    }

    if air_temp < 3:
        frost = "HIGH"
    elif air_temp < 8:
        frost = "LOW"
    else:
        frost = "NONE"

    return SensorReading(
        node_id=node_id,
        time_minute=minute,
        values=values,
        frost_risk_flag=frost,
        timestamp=day + timedelta(minutes=minute),
    )


def generate_node_series(node_id: str, minutes: int = MINUTES_PER_DAY, day: Optional[datetime] = None) -> List[SensorReading]:
    """Full day (one reading per minute) for a node."""
    return [generate_time_based_reading(node_id, m, day) for m in range(minutes)]


def generate_demo_fleet(
    clusters: int = 3,
    nodes_per_cluster: int = 4,
    center: tuple = (13.0827, 80.2707),
    spread_m: float = 250.0,
    seed: int = 42,
) -> List[Node]:
    """Nodes scattered around ``center``; clusters are interleaved so radii overlap."""
    rng = np.random.default_rng(seed)
    lat0, lon0 = center
    m_per_deg_lon = METERS_PER_DEG_LAT * math.cos(math.radians(lat0))

    nodes = []
    for c in range(clusters):
        for i in range(nodes_per_cluster):
            dx, dy = rng.uniform(-spread_m, spread_m, size=2)
            nodes.append(Node(
                node_id=f"node-{c:02d}-{i:02d}-{rng.integers(1 << 16):04x}",
                lat=lat0 + dy / METERS_PER_DEG_LAT,
                lon=lon0 + dx / m_per_deg_lon,
                cluster_id=f"cluster-{c:02d}",
                elevation_m=float(rng.uniform(2, 20)),
            ))
    return nodes


def generate_fleet_series(nodes: List[Node], minutes: int = MINUTES_PER_DAY) -> Dict[str, List[SensorReading]]:
    day = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return {n.node_id: generate_node_series(n.node_id, minutes, day) for n in nodes}
