import numpy as np
import pandas as pd
import pytest

from radarzone.core.geofence import Coordinate, GeofenceMonitor, Zone, is_inside
from radarzone.utils.geo import distance, haversine_m

from .conftest import CENTER

SAMPLES = [
    Coordinate(45.186840, 5.756056),
    Coordinate(48.858370, 2.294481),
    Coordinate(-33.856784, 151.215297),
    Coordinate(0.0, 0.0),
    Coordinate(89.9, -179.9),
]


@pytest.mark.parametrize("a", SAMPLES)
def test_distance_to_itself_is_zero(a):
    assert distance(a, a) == 0.0


@pytest.mark.parametrize("a", SAMPLES)
@pytest.mark.parametrize("b", SAMPLES)
def test_distance_is_symmetric_and_non_negative(a, b):
    assert distance(a, b) == distance(b, a)
    assert distance(a, b) >= 0.0


def test_hundred_meters_north():
    north = Coordinate(CENTER.latitude + 0.0009, CENTER.longitude)
    assert distance(CENTER, north) == pytest.approx(100.0, abs=3.0)


def test_antipodal_points_do_not_overflow():
    d = distance(Coordinate(0.0, 0.0), Coordinate(0.0, 180.0))
    assert d == pytest.approx(np.pi * 6371000.0, rel=1e-9)


def test_haversine_accepts_series():
    lats = pd.Series([CENTER.latitude, CENTER.latitude + 0.0009])
    lons = pd.Series([CENTER.longitude, CENTER.longitude])
    d = haversine_m(CENTER.latitude, CENTER.longitude, lats, lons)
    assert d.shape == (2,)
    assert d[0] == 0.0
    assert d[1] == pytest.approx(100.0, abs=3.0)


def test_haversine_scalar_returns_float():
    assert isinstance(haversine_m(0, 0, 1, 1), float)


def test_boundary_counts_as_inside():
    point = Coordinate(CENTER.latitude + 0.0009, CENTER.longitude)
    d = distance(point, CENTER)
    assert is_inside(point, Zone(CENTER, d))
    assert not is_inside(point, Zone(CENTER, d - 1e-6))


def test_monitor_check_reports_distance():
    monitor = GeofenceMonitor(Zone(CENTER, 100.0))
    inside, d = monitor.check(Coordinate(CENTER.latitude + 0.0005, CENTER.longitude))
    assert inside
    assert 50.0 < d < 60.0
    assert not monitor.is_inside(Coordinate(CENTER.latitude + 0.002, CENTER.longitude))


@pytest.mark.parametrize("lat, lon", [(91.0, 0.0), (-90.5, 0.0), (0.0, 180.5), (0.0, -181.0)])
def test_coordinate_bounds(lat, lon):
    with pytest.raises(ValueError):
        Coordinate(lat, lon)


@pytest.mark.parametrize("radius", [0.0, -5.0])
def test_zone_radius_must_be_positive(radius):
    with pytest.raises(ValueError):
        Zone(CENTER, radius)
