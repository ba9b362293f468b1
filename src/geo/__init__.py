"""Geo module."""
from src.geo.projection import (
    build_distance_matrix,
    format_distance,
    great_circle_distance,
    nearest_neighbor,
    planar_distance,
    project,
    reference_point,
    units_to_kilometers,
    units_to_meters,
)
