# src/radarzone/core/geofence.py
from __future__ import annotations

from dataclasses import dataclass

from ..utils.geo import distance


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class Zone:
    center: Coordinate
    radius_m: float

    def __post_init__(self):
        if not self.radius_m > 0:
            raise ValueError(f"radius_m must be positive, got {self.radius_m}")


def is_inside(point: Coordinate, zone: Zone) -> bool:
    """A point on the boundary (distance == radius) counts as inside."""
    return distance(point, zone.center) <= zone.radius_m


class GeofenceMonitor:
    """
    Checks one location sample at a time against a fixed circular zone.
    Holds no state besides the zone; hysteresis lives in DwellTimer.
    """

    def __init__(self, zone: Zone):
        self.zone = zone

    def check(self, point: Coordinate) -> tuple[bool, float]:
        """
        Returns:
          (inside, distance_m)
        """
        d = distance(point, self.zone.center)
        return (d <= self.zone.radius_m, d)

    def is_inside(self, point: Coordinate) -> bool:
        return self.check(point)[0]
