"""Shared fixtures.

Node layout used across tests (meters from the origin node ``a1``):

    b2      80 N            cluster B
    b1      60 N            cluster B
    a1  a2  0 / 40 E        cluster A
    c1      250 S           cluster C
"""

import math

import pytest

from src.core.models import Node, SensorReading
from src.utils.config import Settings
from src.utils.constants import METERS_PER_DEG_LAT

ORIGIN = (13.0, 80.0)

NORMAL_VALUES = {
    "tvoc_ugm3": 40.0,
    "relative_humidity_pct": 55.0,
    "soil_moisture_m3m3": 0.30,
    "air_temperature_c": 25.0,
    "soil_water_tension_kpa": 20.0,
    "soil_ph": 6.5,
}


def place(node_id: str, cluster_id: str, north_m: float = 0.0, east_m: float = 0.0) -> Node:
    lat0, lon0 = ORIGIN
    m_per_deg_lon = METERS_PER_DEG_LAT * math.cos(math.radians(lat0))
    return Node(
        node_id=node_id,
        lat=lat0 + north_m / METERS_PER_DEG_LAT,
        lon=lon0 + east_m / m_per_deg_lon,
        cluster_id=cluster_id,
    )


def make_reading(node_id: str, time_minute: int = 0, **overrides) -> SensorReading:
    return SensorReading(node_id=node_id, time_minute=time_minute, values={**NORMAL_VALUES, **overrides})


@pytest.fixture
def nodes():
    return [
        place("a1", "A"),
        place("a2", "A", east_m=40),
        place("b1", "B", north_m=60),
        place("b2", "B", north_m=80),
        place("c1", "C", north_m=-250),
    ]


@pytest.fixture
def reading():
    """Factory: normal reading for a node with optional overrides."""
    return make_reading


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def place_node():
    """Factory: node positioned in meters from the origin."""
    return place
