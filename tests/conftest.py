from __future__ import annotations

import httpx
import jwt
import pytest

from radarzone.core.geofence import Coordinate, Zone
from radarzone.core.scheduler import VirtualScheduler
from radarzone.core.storage import KeyValueStore

CENTER = Coordinate(45.186840, 5.756056)
INSIDE = Coordinate(45.186840, 5.756056)
# ~100 m north of the center, outside a 50 m zone
OUTSIDE = Coordinate(45.186840 + 0.0009, 5.756056)


class Recorder:
    """httpx.MockTransport handler that records requests and answers from a route table."""

    def __init__(self, routes: dict[str, object] | None = None):
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes.get(str(request.url))
        if answer is None:
            return httpx.Response(404, json={"error": "not found"})
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=answer)


@pytest.fixture
def zone() -> Zone:
    return Zone(CENTER, 50.0)


@pytest.fixture
def sched() -> VirtualScheduler:
    return VirtualScheduler()


@pytest.fixture
def store(tmp_path) -> KeyValueStore:
    return KeyValueStore(tmp_path / "storage.json")


@pytest.fixture
def token() -> str:
    return jwt.encode({"id": 42, "username": "toto"}, "radarzone-test-secret-0123456789abcdef", algorithm="HS256")
