import itertools
import math

import pytest

from core.spatial import (
    GeometryService,
    LatLng,
    distance,
    polyline_length,
    project_onto_route,
    project_onto_segment,
)

# One degree of longitude on the equator with R = 6,371,000 m.
DEGREE_M = math.radians(1.0) * 6_371_000


def test_distance_to_self_is_zero() -> None:
    point = LatLng(48.8566, 2.3522)
    assert distance(point, point) == 0.0


@pytest.mark.parametrize(
    ("a", "b"),
    [
        (LatLng(0.0, 0.0), LatLng(0.0, 1.0)),
        (LatLng(60.0, 10.0), LatLng(60.01, 10.02)),
        (LatLng(-33.87, 151.21), LatLng(51.51, -0.13)),
    ],
)
def test_distance_is_symmetric_and_positive(a: LatLng, b: LatLng) -> None:
    assert distance(a, b) > 0
    assert distance(a, b) == pytest.approx(distance(b, a))


def test_distance_uses_mean_earth_radius() -> None:
    assert distance(LatLng(0.0, 0.0), LatLng(0.0, 1.0)) == pytest.approx(DEGREE_M)
    assert GeometryService.haversine_distance(0.0, 0.0, 1.0, 0.0, unit="km") == (
        pytest.approx(DEGREE_M / 1000)
    )


def test_polyline_length_sums_segments() -> None:
    points = [LatLng(0.0, 0.0), LatLng(0.0, 0.5), LatLng(0.0, 1.0)]
    assert polyline_length(points) == pytest.approx(DEGREE_M)
    assert polyline_length(points[:1]) == 0.0


def test_projection_onto_segment_interior() -> None:
    projection = project_onto_segment(
        LatLng(0.0, 0.0),
        LatLng(0.0, 0.02),
        LatLng(0.001, 0.005),
    )
    assert projection.t == pytest.approx(0.25, abs=1e-6)
    assert projection.point.lat == pytest.approx(0.0)
    assert projection.point.lng == pytest.approx(0.005)
    assert projection.distance == pytest.approx(DEGREE_M * 0.001, rel=1e-4)


@pytest.mark.parametrize(
    ("point", "t"),
    [(LatLng(0.0, -0.01), 0.0), (LatLng(0.0, 0.05), 1.0)],
)
def test_projection_clamps_past_the_ends(point: LatLng, t: float) -> None:
    projection = project_onto_segment(LatLng(0.0, 0.0), LatLng(0.0, 0.02), point)
    assert projection.t == t


def test_degenerate_segment_projects_to_its_point() -> None:
    vertex = LatLng(10.0, 20.0)
    point = LatLng(10.001, 20.0)

    projection = project_onto_segment(vertex, vertex, point)

    assert projection.t == 0.0
    assert projection.point == vertex
    assert projection.distance == distance(point, vertex)


@pytest.mark.parametrize("latitude", [0.0, 45.0, 60.0])
def test_projection_never_beats_the_nearer_endpoint(latitude: float) -> None:
    start = LatLng(latitude, 0.0)
    end = LatLng(latitude + 0.003, 0.01)
    offsets = [-0.002, -0.0005, -0.00001, 0.0, 0.00001, 0.0005, 0.002]

    for anchor, d_lat, d_lng in itertools.product((start, end), offsets, offsets):
        point = LatLng(anchor.lat + d_lat, anchor.lng + d_lng)
        projection = project_onto_segment(start, end, point)

        assert 0.0 <= projection.t <= 1.0
        assert projection.distance <= min(distance(point, start), distance(point, end))


def test_project_onto_route_requires_vertices() -> None:
    assert project_onto_route([], LatLng(0.0, 0.0)) is None


def test_project_onto_route_single_vertex() -> None:
    only = LatLng(1.0, 1.0)
    projection = project_onto_route([only], LatLng(1.0, 1.001))

    assert projection is not None
    assert (projection.segment_index, projection.t, projection.point) == (0, 0.0, only)


def test_project_onto_route_picks_closest_segment() -> None:
    route = [LatLng(0.0, 0.0), LatLng(0.0, 0.01), LatLng(0.01, 0.01)]

    projection = project_onto_route(route, LatLng(0.005, 0.0101))

    assert projection is not None
    assert projection.segment_index == 1
    assert projection.t == pytest.approx(0.5, abs=1e-3)


def test_coordinates_from_geometry_skips_invalid_pairs() -> None:
    points = GeometryService.coordinates_from_geometry(
        {"type": "LineString", "coordinates": [[0.0, 0.0], ["bad", 0], [200.0, 0.0], [1.0, 2.0]]},
    )
    assert points == [LatLng(0.0, 0.0), LatLng(2.0, 1.0)]
