"""Client-side request coordination for the map page.

Each address field runs a small state machine::

    IDLE/RESOLVED --edit--> TYPING --debounce--> AWAITING_SUGGESTIONS --select--> RESOLVED
                               ^                         |
                               +---------edit------------+

At most one suggestion request is in flight per field. A new edit cancels the
pending one, and a request whose cancellation token has fired never writes to
the UI state, so a slow stale response cannot overwrite newer input.

Everything runs on one asyncio loop; the only suspension points are the debounce
sleep and the network calls.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx
import structlog

from itera.client.api import ProxyApi
from itera.core.config import Settings
from itera.models.dto import PlaceSuggestion, RouteFeature, RouteResponse

logger = structlog.get_logger(__name__)

Coordinates = Tuple[float, float]

SUGGESTIONS_UNAVAILABLE = "The suggestion service is unavailable."
ROUTE_FAILED = "Unable to compute the route."
SELECT_BOTH_POINTS = "Please select a start and an end point from the suggestions."

# Failures that collapse to a single user notification per operation
REQUEST_ERRORS = (httpx.HTTPError, ValueError)


class FieldState(str, Enum):
    IDLE = "idle"
    TYPING = "typing"
    AWAITING_SUGGESTIONS = "awaiting_suggestions"
    RESOLVED = "resolved"


class CancellationToken:
    """Flag handed to one request; once cancelled its result is discarded."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class Notifier(Protocol):
    def warn(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class MapView(Protocol):
    def show_route(self, start: Coordinates, end: Coordinates, feature: RouteFeature) -> None: ...

    def clear(self) -> None: ...


class LogNotifier:
    """Notifier that only writes to the log, for headless use."""

    def warn(self, message: str) -> None:
        logger.warning("client_notification", message=message)

    def error(self, message: str) -> None:
        logger.error("client_notification", message=message)


@dataclass
class AddressField:
    name: str
    text: str = ""
    coords: Optional[Coordinates] = None
    suggestions: List[PlaceSuggestion] = field(default_factory=list)
    state: FieldState = FieldState.IDLE
    focused: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    token: Optional[CancellationToken] = field(default=None, repr=False)


@dataclass
class UIState:
    start: AddressField = field(default_factory=lambda: AddressField("start"))
    end: AddressField = field(default_factory=lambda: AddressField("end"))
    route_feature: Optional[RouteFeature] = None
    distance: Optional[float] = None
    duration: Optional[float] = None
    is_loading: bool = False


def format_distance(meters: float) -> str:
    return f"{meters / 1000:.2f} km"


class RequestCoordinator:
    def __init__(
        self,
        api: ProxyApi,
        notifier: Optional[Notifier] = None,
        map_view: Optional[MapView] = None,
        debounce_ms: int = 300,
        min_length: int = 2,
        proximity: Optional[Coordinates] = None,
    ):
        self.api = api
        self.notifier = notifier or LogNotifier()
        self.map_view = map_view
        self.debounce_seconds = debounce_ms / 1000
        self.min_length = min_length
        self.proximity = proximity
        self.state = UIState()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        notifier: Optional[Notifier] = None,
        map_view: Optional[MapView] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "RequestCoordinator":
        if not settings.MAPBOX_PUBLIC_TOKEN:
            logger.error("mapbox_public_token_missing", detail="Map rendering is unavailable.")
        return cls(
            ProxyApi.from_settings(settings, transport=transport),
            notifier=notifier,
            map_view=map_view,
            debounce_ms=settings.DEBOUNCE_MS,
            min_length=settings.SUGGESTION_MIN_LENGTH,
        )

    def get_field(self, name: str) -> AddressField:
        if name == "start":
            return self.state.start
        if name == "end":
            return self.state.end
        raise ValueError(f"Unknown address field: {name!r}")

    # --- Input events ---

    def focus(self, name: str) -> None:
        self.get_field(name).focused = True

    def blur(self, name: str) -> None:
        self.get_field(name).focused = False

    def edit(self, name: str, text: str) -> None:
        """Handles a keystroke: drops resolved coordinates and restarts the debounce."""
        address = self.get_field(name)
        self._cancel_pending(address)
        address.text = text
        address.coords = None
        address.state = FieldState.TYPING
        address.task = asyncio.get_running_loop().create_task(self._debounced_fetch(address))

    def select(self, name: str, suggestion: PlaceSuggestion) -> None:
        """Resolves the field to a suggestion; fetching stays off until the next edit."""
        address = self.get_field(name)
        self._cancel_pending(address)
        address.text = suggestion.place_name
        address.coords = (suggestion.center[0], suggestion.center[1])
        address.suggestions = []
        address.state = FieldState.RESOLVED

    def reset(self) -> None:
        for address in (self.state.start, self.state.end):
            self._cancel_pending(address)
        focused = (self.state.start.focused, self.state.end.focused)
        self.state = UIState()
        self.state.start.focused, self.state.end.focused = focused
        if self.map_view is not None:
            self.map_view.clear()

    async def wait_idle(self) -> None:
        """Waits until no suggestion work is pending on either field."""
        pending = {
            address.task for address in (self.state.start, self.state.end)
            if address.task is not None and not address.task.done()
        }
        if pending:
            await asyncio.wait(pending)

    # --- Suggestions ---

    def _cancel_pending(self, address: AddressField) -> None:
        if address.token is not None:
            address.token.cancel()
            address.token = None
        if address.task is not None and not address.task.done():
            address.task.cancel()
        address.task = None

    async def _debounced_fetch(self, address: AddressField) -> None:
        await asyncio.sleep(self.debounce_seconds)

        query = address.text.strip()
        if address.coords is not None or len(query) < self.min_length or not address.focused:
            address.suggestions = []
            return

        token = CancellationToken()
        address.token = token
        address.state = FieldState.AWAITING_SUGGESTIONS
        try:
            results = await self.api.suggestions(query, self.proximity)
        except REQUEST_ERRORS as e:
            if token.cancelled:
                return
            logger.warning("suggestions_failed", field=address.name, error=str(e))
            self.notifier.error(SUGGESTIONS_UNAVAILABLE)
            return
        finally:
            if address.token is token:
                address.token = None

        if token.cancelled:
            logger.debug("stale_suggestions_dropped", field=address.name, query=query)
            return
        address.suggestions = results

    # --- Route ---

    async def calculate_route(self) -> Optional[RouteResponse]:
        start, end = self.state.start.coords, self.state.end.coords
        if start is None or end is None:
            self.notifier.warn(SELECT_BOTH_POINTS)
            return None

        state = self.state
        state.is_loading = True
        try:
            result = await self.api.route(start, end)
        except REQUEST_ERRORS as e:
            logger.warning("route_failed", error=str(e))
            self.notifier.error(ROUTE_FAILED)
            return None
        finally:
            state.is_loading = False

        if state is not self.state:
            # reset() ran while the request was in flight
            return None
        self.state.route_feature = result.feature
        self.state.distance = result.distance
        self.state.duration = result.duration
        if self.map_view is not None:
            self.map_view.show_route(start, end, result.feature)
        return result

    def summary(self) -> Dict[str, Any]:
        """Values the result panel shows."""
        if self.state.distance is None:
            return {}
        return {"distance": format_distance(self.state.distance)}
