from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Iterable

import httpx
import pandas as pd

from ..utils.geo import haversine_m
from .errors import MalformedResponse, NetworkError, StorageError
from .geofence import Coordinate
from .storage import COORDS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

COLUMNS = ["latitude", "longitude"]


def dedup(points: Iterable[Coordinate]) -> tuple[Coordinate, ...]:
    """Drop exact (latitude, longitude) repeats, keeping first-seen order."""
    df = pd.DataFrame([p.to_dict() for p in points], columns=COLUMNS)
    df = df.drop_duplicates(subset=COLUMNS, keep="first")
    return tuple(Coordinate(float(r.latitude), float(r.longitude)) for r in df.itertuples(index=False))


def _parse_entries(entries: list[Any]) -> tuple[list[Coordinate], int]:
    out: list[Coordinate] = []
    skipped = 0
    for item in entries:
        try:
            lat, lon = item["latitude"], item["longitude"]
            if isinstance(lat, bool) or isinstance(lon, bool):
                raise TypeError("boolean coordinate")
            out.append(Coordinate(float(lat), float(lon)))
        except (KeyError, TypeError, ValueError):
            skipped += 1
    return out, skipped


def _parse_page(body: Any) -> tuple[list[Coordinate], str | None, int]:
    """
    Expected shape: {"data": [{"latitude", "longitude"}, ...], "links": {"next": str | null}}
    Returns (points, next_url, skipped_entries).
    """
    if not isinstance(body, dict) or not isinstance(body.get("data"), list):
        raise MalformedResponse(f"unexpected page shape: {str(body)[:200]}")
    points, skipped = _parse_entries(body["data"])
    links = body.get("links")
    next_url = links.get("next") if isinstance(links, dict) else None
    return points, (next_url or None), skipped


class PointDataset:
    """
    Points of interest from a paginated remote collection.

    The first successful load is persisted under `coords` and every later
    load is served from there without touching the network. The cache never
    expires on its own; only a storage clear makes the next load refetch.
    """

    def __init__(self, store: KeyValueStore, client: httpx.AsyncClient):
        self.store = store
        self.client = client
        self._points: tuple[Coordinate, ...] = ()
        self._lock = asyncio.Lock()
        self._loads = 0

    @property
    def points(self) -> tuple[Coordinate, ...]:
        return self._points

    def _cached(self) -> tuple[Coordinate, ...] | None:
        try:
            raw = self.store.get(COORDS_KEY)
        except StorageError as e:
            logger.error("Point cache unreadable: %s", e)
            return None
        if not raw:
            return None
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Point cache corrupted, refetching: %s", e)
            return None
        if not isinstance(entries, list):
            logger.warning("Point cache is not a list, refetching")
            return None
        points, _ = _parse_entries(entries)
        return tuple(points)

    async def load(self, source_url: str) -> tuple[Coordinate, ...]:
        """Serialised: callers that waited on a running load get its result."""
        seen = self._loads
        async with self._lock:
            if self._loads != seen:
                return self._points
            try:
                return await self._load(source_url)
            finally:
                self._loads += 1

    async def _load(self, source_url: str) -> tuple[Coordinate, ...]:
        cached = self._cached()
        if cached is not None:
            logger.debug("Serving %d points from cache", len(cached))
            self._points = cached
            return cached

        collected: list[Coordinate] = []
        complete = True
        try:
            await self._fetch_all(source_url, collected)
        except MalformedResponse as e:
            logger.error("Stopping pagination early: %s", e)
        except NetworkError as e:
            logger.error("Point fetch failed after %d entries: %s", len(collected), e)
            complete = False

        points = dedup(collected)
        self._points = points
        if complete:
            try:
                self.store.set(COORDS_KEY, json.dumps([p.to_dict() for p in points]))
            except StorageError as e:
                logger.error("Could not persist %d points: %s", len(points), e)
        logger.info("Loaded %d unique points (%d fetched)", len(points), len(collected))
        return points

    async def _fetch_all(self, url: str, collected: list[Coordinate]) -> None:
        seen: set[str] = set()
        next_url: str | None = url
        while next_url:
            if next_url in seen:
                raise MalformedResponse(f"pagination loops back to {next_url}")
            seen.add(next_url)

            body = await self._get_json(next_url)
            points, next_url, skipped = _parse_page(body)
            if skipped:
                logger.warning("Skipped %d entries without usable coordinates", skipped)
            collected.extend(points)
            logger.debug("Page %d: %d points, next=%s", len(seen), len(points), next_url)

    async def _get_json(self, url: str) -> Any:
        try:
            resp = await self.client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise NetworkError(str(e)) from e
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponse(f"body is not JSON: {e}") from e

    def near(self, point: Coordinate, radius_m: float) -> tuple[Coordinate, ...]:
        """Cached points within radius_m of point, closest first."""
        if not self._points:
            return ()
        df = pd.DataFrame([p.to_dict() for p in self._points], columns=COLUMNS)
        df["distance_m"] = haversine_m(point.latitude, point.longitude, df["latitude"], df["longitude"])
        hits = df[df["distance_m"] <= radius_m].sort_values("distance_m", kind="stable")
        return tuple(Coordinate(float(r.latitude), float(r.longitude)) for r in hits.itertuples(index=False))

    def clear(self) -> None:
        self._points = ()
