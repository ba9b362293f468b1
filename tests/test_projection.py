"""Projection and distance tests."""

import pytest

from src.core.models import Node
from src.geo import (
    build_distance_matrix,
    format_distance,
    great_circle_distance,
    nearest_neighbor,
    planar_distance,
    project,
    reference_point,
)


def test_reference_projects_to_origin():
    assert project(13.0, 80.0, 13.0, 80.0) == (0.0, 0.0)


def test_north_is_negative_y(place_node):
    node = place_node("n", "A", north_m=100)
    x, y = project(node.lat, node.lon, 13.0, 80.0)
    assert x == pytest.approx(0.0)
    assert y == pytest.approx(-10.0)


def test_east_is_positive_x(place_node):
    node = place_node("e", "A", east_m=50)
    x, y = project(node.lat, node.lon, 13.0, 80.0)
    assert x == pytest.approx(5.0)
    assert y == pytest.approx(0.0)


def test_planar_distance_in_units(place_node):
    a = place_node("a", "A")
    b = place_node("b", "A", north_m=30, east_m=40)
    assert planar_distance(a, b, 13.0, 80.0) == pytest.approx(5.0)


def test_great_circle_one_degree_latitude():
    assert great_circle_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111195, rel=1e-4)


def test_great_circle_zero_for_same_point():
    assert great_circle_distance(13.0, 80.0, 13.0, 80.0) == 0.0


def test_reference_point_is_mean(nodes):
    lat, lon = reference_point(nodes[:2])
    assert lat == pytest.approx((nodes[0].lat + nodes[1].lat) / 2)
    assert lon == pytest.approx((nodes[0].lon + nodes[1].lon) / 2)


def test_reference_point_empty():
    assert reference_point([]) == (0.0, 0.0)


def test_matrix_excludes_self_and_is_symmetric(nodes):
    matrix = build_distance_matrix(nodes, *reference_point(nodes))
    assert set(matrix) == {n.node_id for n in nodes}
    for node_id, row in matrix.items():
        assert node_id not in row
        assert len(row) == len(nodes) - 1
    assert matrix["a1"]["b1"] == pytest.approx(matrix["b1"]["a1"])


def test_matrix_rows_sorted_nearest_first(nodes):
    matrix = build_distance_matrix(nodes, *reference_point(nodes))
    distances = list(matrix["a1"].values())
    assert distances == sorted(distances)


def test_nearest_neighbor(nodes):
    matrix = build_distance_matrix(nodes, *reference_point(nodes))
    neighbor, distance = nearest_neighbor(matrix, "a1")
    assert neighbor == "a2"
    assert distance == pytest.approx(4.0, rel=1e-3)
    assert nearest_neighbor(matrix, "b1")[0] == "b2"
    assert nearest_neighbor(matrix, "c1")[0] == "a1"


def test_nearest_neighbor_tie_keeps_node_order():
    nodes = [
        Node("center", 0.0, 0.0, "A"),
        Node("west", 0.0, -0.001, "A"),
        Node("east", 0.0, 0.001, "A"),
    ]
    matrix = build_distance_matrix(nodes, 0.0, 0.0)
    assert nearest_neighbor(matrix, "center")[0] == "west"


def test_single_node_has_no_neighbor(place_node):
    matrix = build_distance_matrix([place_node("solo", "A")], 13.0, 80.0)
    assert nearest_neighbor(matrix, "solo") is None
    assert nearest_neighbor(matrix, "missing") is None


def test_empty_matrix():
    assert build_distance_matrix([], 0.0, 0.0) == {}


def test_format_distance():
    assert format_distance(85) == "850m"
    assert format_distance(125) == "1.25km"
