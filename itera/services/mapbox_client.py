# Outbound calls to the Mapbox geocoding and directions APIs.
# One httpx.AsyncClient (keep-alive pool) is shared by every request; each call
# is a single attempt bounded by its own timeout.

import asyncio
import httpx
import structlog
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

from itera.core.config import Settings
from itera.core.errors import UpstreamError, UpstreamTimeout

logger = structlog.get_logger(__name__)

GEOCODING_PATH = "/geocoding/v5/mapbox.places/{query}.json"
DIRECTIONS_PATH = "/directions/v5/{profile}/{coordinates}"


def build_http_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Creates the pooled client used for all upstream traffic."""
    limits = httpx.Limits(
        max_connections=settings.UPSTREAM_MAX_CONNECTIONS,
        max_keepalive_connections=settings.UPSTREAM_MAX_KEEPALIVE,
        keepalive_expiry=settings.UPSTREAM_KEEPALIVE_EXPIRY,
    )
    return httpx.AsyncClient(
        base_url=settings.MAPBOX_BASE_URL,
        limits=limits,
        transport=transport,
        headers={"Accept": "application/json"},
    )


class MapboxClient:
    def __init__(self, http_client: httpx.AsyncClient, settings: Settings):
        self.http_client = http_client
        self.settings = settings

    async def search_places(
        self,
        query: str,
        *,
        proximity: Optional[Tuple[float, float]] = None,
        limit: int = 1,
        autocomplete: bool = False,
        types: Optional[str] = None,
        timeout: float,
        endpoint: str,
    ) -> Dict[str, Any]:
        """Forward geocoding. Returns the raw FeatureCollection."""
        params: Dict[str, Any] = {"limit": limit}
        if autocomplete:
            params["autocomplete"] = "true"
        if types:
            params["types"] = types
        if proximity is not None:
            params["proximity"] = f"{proximity[0]},{proximity[1]}"
        path = GEOCODING_PATH.format(query=quote(query, safe=""))
        return await self._get_json(path, params, timeout=timeout, endpoint=endpoint)

    async def directions(
        self,
        start: Tuple[float, float],
        end: Tuple[float, float],
        *,
        timeout: float,
    ) -> Dict[str, Any]:
        """Driving directions with full-detail GeoJSON geometry."""
        coordinates = f"{start[0]},{start[1]};{end[0]},{end[1]}"
        path = DIRECTIONS_PATH.format(profile=self.settings.DIRECTIONS_PROFILE, coordinates=coordinates)
        params = {"geometries": "geojson", "overview": "full"}
        return await self._get_json(path, params, timeout=timeout, endpoint="directions")

    async def _get_json(self, path: str, params: Dict[str, Any], *, timeout: float, endpoint: str) -> Dict[str, Any]:
        params = {**params, "access_token": self.settings.MAPBOX_API_KEY or ""}
        try:
            # httpx timeouts are per phase; the deadline caps the whole exchange
            async with asyncio.timeout(timeout):
                response = await self.http_client.get(path, params=params, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except (httpx.TimeoutException, TimeoutError):
            logger.warning("upstream_timeout", endpoint=endpoint, timeout=timeout)
            raise UpstreamTimeout(endpoint=endpoint, timeout=timeout)
        except httpx.HTTPStatusError as e:
            logger.error(
                "upstream_error",
                endpoint=endpoint,
                status_code=e.response.status_code,
                timeout=False,
            )
            raise UpstreamError(endpoint=endpoint, upstream_status=e.response.status_code)
        except httpx.HTTPError as e:
            logger.error("upstream_unreachable", endpoint=endpoint, error=str(e), timeout=False)
            raise UpstreamError(endpoint=endpoint)
        except ValueError as e:
            logger.error("upstream_invalid_body", endpoint=endpoint, error=str(e))
            raise UpstreamError(endpoint=endpoint, upstream_status=response.status_code)

        if not isinstance(data, dict):
            logger.error("upstream_invalid_body", endpoint=endpoint, error="expected a JSON object")
            raise UpstreamError(endpoint=endpoint, upstream_status=response.status_code)
        return data
