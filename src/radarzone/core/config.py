from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from .geofence import Coordinate, Zone

DEFAULT_DATASET_URL = (
    "https://tabular-api.data.gouv.fr/api/resources/8a22b5a8-4b65-41be-891a-7c0aead4ba51/data/"
)


class Config:
    def __init__(self, d: dict[str, Any]):
        self.raw = d
        a = d.get("api", {})
        self.api_alarm_verbose = bool(a.get("alarm_verbose", True))
        self.api_base_url = str(a.get("base_url", "http://localhost:1337"))
        self.api_timeout_sec = float(a.get("timeout_sec", 10.0))
        g = d.get("geofence", {})
        self.gf_lat0 = float(g.get("lat0", 45.186840))
        self.gf_lon0 = float(g.get("lon0", 5.756056))
        self.gf_radius_m = float(g.get("radius_m", 100.0))
        w = d.get("dwell", {})
        self.dwell_tick_sec = float(w.get("tick_sec", 1.0))
        self.dwell_grace_ms = int(w.get("grace_ms", 2000))
        ds = d.get("dataset", {})
        self.dataset_url = str(ds.get("url", DEFAULT_DATASET_URL))
        self.dataset_near_radius_m = float(ds.get("near_radius_m", 30.0))
        s = d.get("storage", {})
        self.storage_path = Path(s.get("path", "data/storage.json"))

        # environment wins over the file
        if os.getenv("RADARZONE_API_BASE_URL"):
            self.api_base_url = os.environ["RADARZONE_API_BASE_URL"]
        if os.getenv("RADARZONE_STORAGE_PATH"):
            self.storage_path = Path(os.environ["RADARZONE_STORAGE_PATH"])
        api_mode_env = os.getenv("API_MODE", "").strip().lower()
        if api_mode_env in {"minimal", "verbose"}:
            self.api_alarm_verbose = api_mode_env == "verbose"

    def zone(self) -> Zone:
        return Zone(Coordinate(self.gf_lat0, self.gf_lon0), self.gf_radius_m)


def load_config(path: str | Path) -> Config:
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        d = json.load(f)
    return Config(d)
