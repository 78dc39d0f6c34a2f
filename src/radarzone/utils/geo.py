from __future__ import annotations

import numpy as np

EARTH_RADIUS_M = 6371000.0


def haversine_m(lat1, lon1, lat2, lon2):
    """Haversine distance between two GPS points (meters).

    Scalars give a float; numpy arrays or pandas Series give an array of the
    same shape, so the same helper serves the geofence and the point set.
    """
    la1, lo1, la2, lo2 = (np.radians(np.asarray(v, dtype="float64")) for v in (lat1, lon1, lat2, lon2))
    dlat = la2 - la1
    dlon = lo2 - lo1
    a = np.sin(dlat / 2) ** 2 + np.cos(la1) * np.cos(la2) * np.sin(dlon / 2) ** 2
    # float rounding can push a a hair past 1.0 for antipodal points
    c = 2 * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))
    d = EARTH_RADIUS_M * c
    if np.ndim(d) == 0:
        return float(d)
    return d


def distance(a, b) -> float:
    """Great-circle distance in meters between two coordinates."""
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)
