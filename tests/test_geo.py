"""Test great-circle distance helpers."""

import pytest

from missionhub.geo import haversine_km, within_radius


def test_zero_distance():
    assert haversine_km(48.8566, 2.3522, 48.8566, 2.3522) == 0


def test_paris_to_lyon():
    distance = haversine_km(48.8566, 2.3522, 45.764, 4.8357)
    assert distance == pytest.approx(392, abs=3)


def test_one_degree_of_latitude():
    assert haversine_km(0, 0, 1, 0) == pytest.approx(111.19, abs=0.05)


def test_within_radius_filters_and_sorts():
    rows = [
        {"id": "far", "latitude": 45.764, "longitude": 4.8357},
        {"id": "near", "latitude": 48.86, "longitude": 2.35},
        {"id": "mid", "latitude": 48.9, "longitude": 2.5},
        {"id": "nowhere", "latitude": None, "longitude": None},
    ]
    result = within_radius((48.8566, 2.3522), rows, 20)
    assert [r["id"] for r in result] == ["near", "mid"]
    assert result[0]["distance_km"] < result[1]["distance_km"]
    # Input rows are not mutated
    assert "distance_km" not in rows[1]
