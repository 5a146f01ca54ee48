# Proxy operations: suggestions, geocoding and routing.
# Owns the suggestion cache and the rate limiter; both are injected so tests
# (and each app instance) get their own state.

import math
import structlog
from numbers import Real
from typing import Any, Dict, List, Optional, Sequence, Tuple

from itera.core.config import Settings
from itera.core.errors import InvalidInput, NotFound, RateLimited, UpstreamError
from itera.models.dto import PlaceSuggestion, RouteResult
from itera.services.mapbox_client import MapboxClient
from itera.services.rate_limiter import RateLimitDecision, RateLimiter
from itera.services.suggestion_cache import SuggestionCache, make_cache_key

logger = structlog.get_logger(__name__)

Coordinates = Tuple[float, float]


def parse_point(value: Any) -> Optional[Coordinates]:
    """Returns (lon, lat) when value is a pair of finite numbers, else None."""
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return None
    if len(value) != 2:
        return None
    point = []
    for component in value:
        # bool is an int subclass; "true" is not a coordinate
        if isinstance(component, bool) or not isinstance(component, Real):
            return None
        try:
            component = float(component)
        except OverflowError:
            # JSON integers are unbounded
            return None
        if not math.isfinite(component):
            return None
        point.append(component)
    return point[0], point[1]


def to_suggestion(feature: Dict[str, Any]) -> PlaceSuggestion:
    return PlaceSuggestion(
        id=str(feature["id"]),
        place_name=feature["place_name"],
        center=tuple(feature["center"]),
    )


class ProxyService:
    def __init__(
        self,
        mapbox: MapboxClient,
        cache: SuggestionCache,
        rate_limiter: RateLimiter,
        settings: Settings,
    ):
        self.mapbox = mapbox
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.settings = settings

    @property
    def default_proximity(self) -> Coordinates:
        lon, lat = self.settings.DEFAULT_PROXIMITY
        return lon, lat

    async def admit(self, client_id: str) -> RateLimitDecision:
        """
        Counts one suggestion request for client_id.

        Raises:
            RateLimited: when the client exceeded its window budget.
        """
        decision = await self.rate_limiter.hit(client_id)
        if not decision.allowed:
            logger.warning(
                "rate_limited",
                client_ip=client_id,
                limit=decision.limit,
                retry_after=decision.reset_after,
            )
            raise RateLimited(limit=decision.limit, retry_after=decision.reset_after)
        return decision

    async def get_suggestions(self, text: Optional[str], proximity: Any = None) -> List[PlaceSuggestion]:
        """
        Autocomplete candidates for partial input, served from cache when fresh.

        Too-short input yields an empty list without touching the cache or the
        upstream provider. Malformed proximity hints fall back to the
        reference point.
        """
        query = (text or "").strip()
        if len(query) < self.settings.SUGGESTION_MIN_LENGTH:
            return []

        point = parse_point(proximity) if proximity is not None else None
        if point is None:
            if proximity is not None:
                logger.debug("proximity_ignored", proximity=repr(proximity))
            point = self.default_proximity

        key = make_cache_key(query, point, self.settings.CACHE_KEY_PRECISION)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("suggestion_cache_hit", key=key)
            return list(cached)

        data = await self.mapbox.search_places(
            query,
            proximity=point,
            limit=self.settings.SUGGESTION_LIMIT,
            autocomplete=True,
            types=self.settings.SUGGESTION_TYPES,
            timeout=self.settings.SUGGESTION_TIMEOUT,
            endpoint="suggestions",
        )
        features = data.get("features") or []
        try:
            suggestions = [to_suggestion(f) for f in features[: self.settings.SUGGESTION_LIMIT]]
        except (KeyError, TypeError, ValueError) as e:
            logger.error("upstream_invalid_body", endpoint="suggestions", error=str(e))
            raise UpstreamError(endpoint="suggestions")

        self.cache.set(key, suggestions)
        logger.info("suggestion_cache_miss", key=key, results=len(suggestions))
        return suggestions

    async def geocode(self, location: Optional[str]) -> Coordinates:
        """Resolves free text to the [lon, lat] of the best match."""
        query = (location or "").strip()
        if not query:
            raise InvalidInput("A location name is required.")

        data = await self.mapbox.search_places(
            query,
            limit=1,
            timeout=self.settings.GEOCODE_TIMEOUT,
            endpoint="geocode",
        )
        features = data.get("features") or []
        if not features:
            logger.info("geocode_not_found", location=query)
            raise NotFound(f'No place found for "{query}".')

        point = parse_point(features[0].get("center"))
        if point is None:
            logger.error("upstream_invalid_body", endpoint="geocode", error="feature without center")
            raise UpstreamError(endpoint="geocode")
        return point

    async def compute_route(self, start: Any, end: Any) -> RouteResult:
        """
        Driving route between two points. Validation happens before any
        upstream call; only the first route is kept.
        """
        start_point = parse_point(start)
        end_point = parse_point(end)
        if start_point is None or end_point is None:
            raise InvalidInput("Start and end must both be [longitude, latitude] pairs of finite numbers.")

        data = await self.mapbox.directions(start_point, end_point, timeout=self.settings.ROUTE_TIMEOUT)
        routes = data.get("routes") or []
        if not routes:
            logger.info("route_not_found", start=start_point, end=end_point, code=data.get("code"))
            raise NotFound("No route found between the given points.")

        route = routes[0]
        try:
            return RouteResult(
                distance=route["distance"],
                duration=route["duration"],
                geometry=route["geometry"],
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error("upstream_invalid_body", endpoint="directions", error=str(e))
            raise UpstreamError(endpoint="directions")
