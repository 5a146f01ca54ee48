"""Async client for the proxy's JSON endpoints, used by the request coordinator."""

from typing import List, Optional, Sequence

import httpx

from itera.core.config import Settings
from itera.models.dto import GeocodeResponse, PlaceSuggestion, RouteResponse


class ProxyApi:
    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "ProxyApi":
        return cls(httpx.AsyncClient(base_url=settings.API_BASE_URL, transport=transport))

    async def suggestions(self, query: str, proximity: Optional[Sequence[float]] = None) -> List[PlaceSuggestion]:
        payload = {"query": query}
        if proximity is not None:
            payload["proximity"] = list(proximity)
        response = await self.http_client.post("/api/suggestions", json=payload)
        response.raise_for_status()
        return [PlaceSuggestion.model_validate(item) for item in response.json()]

    async def geocode(self, location: str) -> GeocodeResponse:
        response = await self.http_client.post("/api/geocode", json={"location": location})
        response.raise_for_status()
        return GeocodeResponse.model_validate(response.json())

    async def route(self, start: Sequence[float], end: Sequence[float]) -> RouteResponse:
        response = await self.http_client.post("/api/route", json={"start": list(start), "end": list(end)})
        response.raise_for_status()
        return RouteResponse.model_validate(response.json())

    async def aclose(self) -> None:
        await self.http_client.aclose()
