# itera/api/routes.py
# HTTP surface of the proxy: suggestions, geocode and route.
# Each handler validates through ProxyService, which raises the domain errors
# rendered by the exception handlers registered in itera.main.

from fastapi import APIRouter, Depends, Request, Response
import structlog
from typing import List

from itera.models.dto import (
    ErrorResponse,
    GeocodeRequest,
    GeocodeResponse,
    PlaceSuggestion,
    RouteRequest,
    RouteResponse,
    SuggestionRequest,
)
from itera.services.proxy_service import ProxyService
from itera.services.rate_limiter import RateLimitDecision
from itera.utils.security import get_client_ip

router = APIRouter()
logger = structlog.get_logger(__name__)


def get_proxy_service(request: Request) -> ProxyService:
    return request.app.state.proxy_service


def rate_limit_headers(limit: int, remaining: int, reset_after: int) -> dict:
    return {
        "RateLimit-Limit": str(limit),
        "RateLimit-Remaining": str(remaining),
        "RateLimit-Reset": str(reset_after),
    }


async def enforce_suggestion_rate_limit(
    request: Request,
    response: Response,
    service: ProxyService = Depends(get_proxy_service),
) -> RateLimitDecision:
    """Admits the request against the caller's window or raises RateLimited."""
    # LoggingMiddleware resolves the address once per request
    client_ip = getattr(request.state, "client_ip", None) or get_client_ip(
        request, service.settings.TRUST_PROXY_HEADERS
    )
    decision = await service.admit(client_ip)
    response.headers.update(rate_limit_headers(decision.limit, decision.remaining, decision.reset_after))
    return decision


# ----------------------------------------------------------------------
# Suggestions
# ----------------------------------------------------------------------
@router.post(
    "/suggestions",
    response_model=List[PlaceSuggestion],
    responses={
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def suggestions(
    data: SuggestionRequest,
    _: RateLimitDecision = Depends(enforce_suggestion_rate_limit),
    service: ProxyService = Depends(get_proxy_service),
):
    """Autocomplete candidates for partial input; too-short input yields []."""
    return await service.get_suggestions(data.query, data.proximity)


# ----------------------------------------------------------------------
# Geocode
# ----------------------------------------------------------------------
@router.post(
    "/geocode",
    response_model=GeocodeResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def geocode(data: GeocodeRequest, service: ProxyService = Depends(get_proxy_service)):
    """Converts an exact address or place name into [lon, lat]."""
    coordinates = await service.geocode(data.location)
    return GeocodeResponse(coordinates=coordinates)


# ----------------------------------------------------------------------
# Route
# ----------------------------------------------------------------------
@router.post(
    "/route",
    response_model=RouteResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def route(data: RouteRequest, service: ProxyService = Depends(get_proxy_service)):
    """Driving distance, duration and line geometry between two points."""
    result = await service.compute_route(data.start, data.end)
    logger.info("route_computed", distance=result.distance, duration=result.duration)
    return RouteResponse.from_result(result)
