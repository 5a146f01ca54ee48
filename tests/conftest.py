from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from itera.core.config import Settings
from itera.main import create_app
from itera.services.mapbox_client import MapboxClient, build_http_client
from itera.services.proxy_service import ProxyService
from itera.services.rate_limiter import FixedWindowRateLimiter
from itera.services.suggestion_cache import SuggestionCache


def make_feature(index: int, place_name: str, center: List[float]) -> Dict[str, Any]:
    return {
        "id": f"place.{index}",
        "type": "Feature",
        "place_type": ["place"],
        "text": place_name.split(",")[0],
        "place_name": place_name,
        "center": center,
        "geometry": {"type": "Point", "coordinates": center},
    }


ABIDJAN_FEATURES = [
    make_feature(1, "Abidjan, Côte d'Ivoire", [-4.0083, 5.35995]),
    make_feature(2, "Abidjan-Plateau, Abidjan, Côte d'Ivoire", [-4.0215, 5.3235]),
    make_feature(3, "Abidos, Bihar, India", [85.12, 25.61]),
]

ROUTE_GEOMETRY = {
    "type": "LineString",
    "coordinates": [[-4.02, 5.32], [-4.005, 5.335], [-3.98, 5.35]],
}


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMapbox:
    """Stand-in for the Mapbox APIs, mounted through httpx.MockTransport."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.features: List[Dict[str, Any]] = list(ABIDJAN_FEATURES)
        self.routes: List[Dict[str, Any]] = [
            {"distance": 12345, "duration": 900, "geometry": ROUTE_GEOMETRY, "legs": []}
        ]
        self.status_code = 200
        self.timeout = False
        self.body: Optional[bytes] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.timeout:
            raise httpx.ReadTimeout("timed out", request=request)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"message": "Not Authorized - Invalid Token"})
        if self.body is not None:
            return httpx.Response(200, content=self.body)
        if request.url.path.startswith("/directions/"):
            code = "Ok" if self.routes else "NoRoute"
            return httpx.Response(200, json={"code": code, "routes": self.routes, "waypoints": []})
        return httpx.Response(200, json={"type": "FeatureCollection", "features": self.features})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def geocoding_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/geocoding/")]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        MAPBOX_API_KEY="sk.test-secret",
        MAPBOX_PUBLIC_TOKEN="pk.test-public",
        ENV="test",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> FakeMapbox:
    return FakeMapbox()


@pytest.fixture
def cache(clock, settings) -> SuggestionCache:
    return SuggestionCache(
        ttl_seconds=settings.SUGGESTION_CACHE_TTL,
        max_entries=settings.SUGGESTION_CACHE_MAX_ENTRIES,
        clock=clock,
    )


@pytest.fixture
def rate_limiter(clock, settings) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        limit=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        clock=clock,
    )


@pytest.fixture
def service(settings, upstream, cache, rate_limiter) -> ProxyService:
    http_client = build_http_client(settings, transport=upstream.transport)
    return ProxyService(
        mapbox=MapboxClient(http_client, settings),
        cache=cache,
        rate_limiter=rate_limiter,
        settings=settings,
    )


@pytest.fixture
def client(settings, upstream, cache, rate_limiter):
    app = create_app(
        settings=settings,
        upstream_transport=upstream.transport,
        cache=cache,
        rate_limiter=rate_limiter,
    )
    with TestClient(app) as c:
        yield c
