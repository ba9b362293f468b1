"""Coordinate projection and node distance utilities.

Two distance notions are kept deliberately separate:

* ``project`` / ``planar_distance`` / ``build_distance_matrix`` use an
  equirectangular approximation in canvas units (1 unit = 10 m). The matrix is
  only used for relative ranking (nearest neighbour) and visualization.
* ``great_circle_distance`` is the haversine distance in meters and is the only
  metric used for absolute radius decisions.
"""

import math
from typing import Iterable, Optional

import numpy as np

from src.utils.constants import EARTH_RADIUS_M, METERS_PER_DEG_LAT, UNIT_METERS


def project(lat: float, lon: float, ref_lat: float, ref_lon: float) -> tuple:
    """Project lat/lon to planar (x, y) canvas units around a reference point.

    Y is flipped so north points up on a screen canvas.
    """
    meters_per_deg_lon = METERS_PER_DEG_LAT * math.cos(math.radians(ref_lat))
    y_meters = (lat - ref_lat) * METERS_PER_DEG_LAT
    x_meters = (lon - ref_lon) * meters_per_deg_lon
    return x_meters / UNIT_METERS, -y_meters / UNIT_METERS


def planar_distance(a, b, ref_lat: float, ref_lon: float) -> float:
    """Approximate distance between two nodes in canvas units."""
    x1, y1 = project(a.lat, a.lon, ref_lat, ref_lon)
    x2, y2 = project(b.lat, b.lon, ref_lat, ref_lon)
    return math.hypot(x2 - x1, y2 - y1)


def great_circle_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in meters."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def reference_point(nodes: Iterable) -> tuple:
    """Mean lat/lon of the given nodes, (0, 0) when empty."""
    nodes = list(nodes)
    if not nodes:
        return 0.0, 0.0
    return (
        float(np.mean([n.lat for n in nodes])),
        float(np.mean([n.lon for n in nodes])),
    )


def build_distance_matrix(nodes: list, ref_lat: float, ref_lon: float) -> dict:
    """Full symmetric node -> node -> distance map in canvas units.

    Recomputed from scratch; O(n^2) which is fine for tens to low hundreds of
    nodes. Inner maps are ordered nearest first and exclude the node itself.
    """
    if not nodes:
        return {}

    xy = np.array([project(n.lat, n.lon, ref_lat, ref_lon) for n in nodes], dtype=float)
    diff = xy[:, None, :] - xy[None, :, :]
    dist = np.sqrt((diff ** 2).sum(axis=-1))

    matrix = {}
    for i, node in enumerate(nodes):
        row = [(nodes[j].node_id, float(dist[i, j])) for j in range(len(nodes)) if j != i]
        # Stable sort keeps node-set order on ties
        row.sort(key=lambda item: item[1])
        matrix[node.node_id] = dict(row)
    return matrix


def nearest_neighbor(matrix: dict, node_id: str) -> Optional[tuple]:
    """(neighbor_id, distance) of the closest node, or None."""
    row = matrix.get(node_id)
    if not row:
        return None
    best_id, best_dist = None, math.inf
    for other_id, distance in row.items():
        if distance < best_dist:
            best_id, best_dist = other_id, distance
    return best_id, best_dist


def units_to_meters(units: float) -> float:
    return units * UNIT_METERS


def units_to_kilometers(units: float) -> float:
    return units * UNIT_METERS / 1000


def format_distance(units: float) -> str:
    meters = units_to_meters(units)
    if meters < 1000:
        return f"{meters:.0f}m"
    return f"{units_to_kilometers(units):.2f}km"
