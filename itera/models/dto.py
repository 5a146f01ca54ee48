# Data models for the proxy's JSON contract.
# Request fields are permissive: coordinates and text are checked by
# ProxyService so that bad input maps to InvalidInput (400) rather than 422.

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional, Tuple, Union

# Upstream distances and durations pass through with their JSON number type
Number = Union[int, float]

# --- Provider-derived models ---

class PlaceSuggestion(BaseModel):
    """Reduced upstream feature offered as an autocomplete candidate."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Upstream feature identifier.")
    place_name: str = Field(..., description="Human-readable place name.")
    center: Tuple[float, float] = Field(..., description="[longitude, latitude] of the place.")

class RouteResult(BaseModel):
    """First route returned by the directions API, never cached."""
    distance: Number = Field(..., description="Route length in meters.")
    duration: Number = Field(..., description="Travel time in seconds.")
    geometry: Dict[str, Any] = Field(..., description="GeoJSON LineString, as returned upstream.")

# --- API Request Models ---

class SuggestionRequest(BaseModel):
    """Request model for /api/suggestions."""
    query: Optional[str] = Field(None, description="Partial text typed by the user.")
    proximity: Optional[Any] = Field(None, description="Optional [lon, lat] bias point.")

class GeocodeRequest(BaseModel):
    """Request model for /api/geocode."""
    location: Optional[str] = Field(None, description="Place name or address to resolve.")

class RouteRequest(BaseModel):
    """Request model for /api/route."""
    start: Optional[Any] = Field(None, description="[lon, lat] of the origin.")
    end: Optional[Any] = Field(None, description="[lon, lat] of the destination.")

# --- Public Response DTOs ---

class HealthResponse(BaseModel):
    status: str = "ok"
    message: str

class GeocodeResponse(BaseModel):
    coordinates: Tuple[float, float] = Field(..., description="[longitude, latitude] of the first match.")

class RouteFeatureProperties(BaseModel):
    distance: Number
    duration: Number

class RouteFeature(BaseModel):
    """GeoJSON Feature wrapping the route line."""
    type: str = "Feature"
    properties: RouteFeatureProperties
    geometry: Dict[str, Any]

class RouteResponse(BaseModel):
    distance: Number = Field(..., description="Route length in meters.")
    duration: Number = Field(..., description="Travel time in seconds.")
    feature: RouteFeature

    @classmethod
    def from_result(cls, result: RouteResult) -> "RouteResponse":
        return cls(
            distance=result.distance,
            duration=result.duration,
            feature=RouteFeature(
                properties=RouteFeatureProperties(distance=result.distance, duration=result.duration),
                geometry=result.geometry,
            ),
        )

# --- Error Response Model ---

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="A machine-readable error code.")
    detail: str = Field(..., description="A human-readable explanation.")
    retry_after_seconds: Optional[int] = Field(None, description="Time until retry is allowed (for rate-limiting).")
    error_id: Optional[str] = Field(None, description="Identifier of the logged failure, for unexpected errors.")
