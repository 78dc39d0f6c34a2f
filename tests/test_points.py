import asyncio
import json

import httpx
import pytest

from radarzone.core.geofence import Coordinate
from radarzone.core.points import PointDataset, dedup
from radarzone.core.storage import COORDS_KEY

from .conftest import CENTER, Recorder

P1 = "https://data.example.org/points/?page=1"
P2 = "https://data.example.org/points/?page=2"
P3 = "https://data.example.org/points/?page=3"


def page(points, next_url):
    return {
        "data": [{"latitude": lat, "longitude": lon, "label": "radar"} for lat, lon in points],
        "links": {"next": next_url},
    }


THREE_PAGES = {
    P1: page([(45.1, 5.7), (45.2, 5.8)], P2),
    P2: page([(45.3, 5.9), (45.1, 5.7)], P3),
    P3: page([(45.4, 6.0), (45.5, 6.1)], None),
}


def load(store, recorder, url=P1):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
            ds = PointDataset(store, client)
            return ds, await ds.load(url)

    return asyncio.run(scenario())


def test_paginates_and_deduplicates(store):
    rec = Recorder(THREE_PAGES)
    _, points = load(store, rec)
    assert [str(r.url) for r in rec.requests] == [P1, P2, P3]
    assert points == (
        Coordinate(45.1, 5.7),
        Coordinate(45.2, 5.8),
        Coordinate(45.3, 5.9),
        Coordinate(45.4, 6.0),
        Coordinate(45.5, 6.1),
    )


def test_result_is_persisted(store):
    load(store, Recorder(THREE_PAGES))
    cached = json.loads(store.get(COORDS_KEY))
    assert len(cached) == 5
    assert cached[0] == {"latitude": 45.1, "longitude": 5.7}


def test_cache_hit_makes_no_request(store):
    store.set(COORDS_KEY, json.dumps([{"latitude": 1.0, "longitude": 2.0}]))
    rec = Recorder(THREE_PAGES)
    ds, points = load(store, rec)
    assert rec.requests == []
    assert points == (Coordinate(1.0, 2.0),)
    assert ds.points == points


def test_second_load_uses_cache(store):
    rec = Recorder(THREE_PAGES)
    load(store, rec)
    load(store, rec)
    assert len(rec.requests) == 3


def test_malformed_page_keeps_partial_result(store):
    rec = Recorder({P1: page([(45.1, 5.7)], P2), P2: {"data": {"oops": True}, "links": {"next": P3}}})
    _, points = load(store, rec)
    assert points == (Coordinate(45.1, 5.7),)
    assert len(rec.requests) == 2
    assert json.loads(store.get(COORDS_KEY)) == [{"latitude": 45.1, "longitude": 5.7}]


def test_non_json_body_is_malformed(store):
    rec = Recorder({P1: page([(45.1, 5.7)], P2), P2: httpx.Response(200, text="<html>")})
    _, points = load(store, rec)
    assert points == (Coordinate(45.1, 5.7),)


def test_network_error_returns_partial_without_caching(store):
    rec = Recorder({P1: page([(45.1, 5.7)], P2), P2: httpx.ConnectError("down")})
    _, points = load(store, rec)
    assert points == (Coordinate(45.1, 5.7),)
    assert store.get(COORDS_KEY) is None


def test_http_error_status_on_first_page_gives_empty_set(store):
    rec = Recorder({P1: httpx.Response(503)})
    _, points = load(store, rec)
    assert points == ()
    assert store.get(COORDS_KEY) is None


def test_entries_without_coordinates_are_skipped(store):
    body = {
        "data": [
            {"latitude": 45.1, "longitude": 5.7},
            {"latitude": None, "longitude": 5.7},
            {"longitude": 5.7},
            {"latitude": 200.0, "longitude": 5.7},
            "garbage",
        ],
        "links": {"next": None},
    }
    _, points = load(store, Recorder({P1: body}))
    assert points == (Coordinate(45.1, 5.7),)


def test_missing_links_ends_pagination(store):
    rec = Recorder({P1: {"data": [{"latitude": 1.0, "longitude": 1.0}]}})
    _, points = load(store, rec)
    assert points == (Coordinate(1.0, 1.0),)
    assert len(rec.requests) == 1


def test_pagination_loop_is_cut(store):
    rec = Recorder({P1: page([(1.0, 1.0)], P2), P2: page([(2.0, 2.0)], P1)})
    _, points = load(store, rec)
    assert len(rec.requests) == 2
    assert len(points) == 2


def test_dedup_is_idempotent():
    pts = [Coordinate(1.0, 2.0), Coordinate(3.0, 4.0), Coordinate(1.0, 2.0), Coordinate(2.0, 1.0)]
    once = dedup(pts)
    assert once == (Coordinate(1.0, 2.0), Coordinate(3.0, 4.0), Coordinate(2.0, 1.0))
    assert dedup(once) == once


def test_dedup_of_nothing():
    assert dedup([]) == ()


def test_near_filters_and_sorts_by_distance(store):
    far = Coordinate(CENTER.latitude + 0.01, CENTER.longitude)
    mid = Coordinate(CENTER.latitude + 0.0002, CENTER.longitude)
    close = Coordinate(CENTER.latitude + 0.0001, CENTER.longitude)
    store.set(COORDS_KEY, json.dumps([p.to_dict() for p in (far, mid, close)]))
    ds, _ = load(store, Recorder())
    assert ds.near(CENTER, 30.0) == (close, mid)
    assert ds.near(CENTER, 5.0) == ()


def test_clear_drops_snapshot(store):
    ds, _ = load(store, Recorder(THREE_PAGES))
    ds.clear()
    assert ds.points == ()
    assert ds.near(CENTER, 1e7) == ()


@pytest.mark.parametrize("raw", ["{broken", '{"a": 1}'])
def test_unusable_cache_triggers_fetch(store, raw):
    store.set(COORDS_KEY, raw)
    rec = Recorder(THREE_PAGES)
    _, points = load(store, rec)
    assert len(rec.requests) == 3
    assert len(points) == 5


def test_concurrent_cold_loads_share_one_fetch(store):
    rec = Recorder(THREE_PAGES)

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(rec)) as client:
            ds = PointDataset(store, client)
            return await asyncio.gather(ds.load(P1), ds.load(P1), ds.load(P1))

    results = asyncio.run(scenario())
    assert [str(r.url) for r in rec.requests] == [P1, P2, P3]
    assert all(len(points) == 5 for points in results)
    assert results[0] == results[1] == results[2]


def test_failed_load_is_shared_then_retried(store):
    rec = Recorder({P1: httpx.ConnectError("down")})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(rec)) as client:
            ds = PointDataset(store, client)
            waiting = await asyncio.gather(ds.load(P1), ds.load(P1))
            attempts = len(rec.requests)
            rec.routes = THREE_PAGES
            return waiting, attempts, await ds.load(P1)

    waiting, attempts, later = asyncio.run(scenario())
    assert waiting == [(), ()]
    assert attempts == 1
    assert len(later) == 5
    assert len(json.loads(store.get(COORDS_KEY))) == 5
