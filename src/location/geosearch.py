"""
Address search for map navigation.

Free-text queries go to the OpenStreetMap Nominatim geocoder (US only); the
candidates are re-ranked client-side and the best five are offered as
suggestions. Keystrokes are debounced, and only the most recently scheduled
request may update the visible suggestions.

For the one-shot startup lookup, literal 'lat,lon' strings are parsed
locally and US ZIP codes are resolved offline with pgeocode.

API docs: https://nominatim.org/release-docs/latest/api/Search/
Usage policy: https://operations.osmfoundation.org/policies/nominatim/
"""

import asyncio
import logging
import os
import re
from typing import Iterable, List, Optional, Tuple

import pgeocode
import requests

from src.data.schema import AddressSuggestion
from src.location.exceptions import SearchFailure

logger = logging.getLogger(__name__)

DEFAULT_GEOCODE_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_USER_AGENT = "CropDashboard/1.0"

DEBOUNCE_SECONDS = 0.4
MIN_QUERY_LENGTH = 3
GEOCODE_LIMIT = 8
MAX_SUGGESTIONS = 5
PREFIX_BONUS = 100

# US ZIP lookup table (downloaded by pgeocode on first use)
_zip_lookup = None


def _get_geocode_url() -> str:
    return os.environ.get("GEOCODE_URL", DEFAULT_GEOCODE_URL)


def _get_user_agent() -> str:
    """Identifying header required by the Nominatim usage policy."""
    return os.environ.get("GEOCODE_USER_AGENT", DEFAULT_USER_AGENT)


class NominatimGeocoder:
    """Thin async client for the Nominatim search endpoint."""

    def __init__(self, base_url: Optional[str] = None,
                 user_agent: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.base_url = base_url or _get_geocode_url()
        self.user_agent = user_agent or _get_user_agent()
        self.timeout = timeout

    async def search(self, query: str, limit: int = GEOCODE_LIMIT,
                     address_details: bool = True) -> List[dict]:
        """
        Look up a free-text US address.

        Returns:
            The raw candidate list, in provider order.

        Raises:
            SearchFailure: On network/HTTP errors or a non-list payload.
        """
        params = {
            "format": "json",
            "q": query,
            "countrycodes": "us",
            "limit": limit,
        }
        if address_details:
            params["addressdetails"] = 1
        return await asyncio.to_thread(self._get, params)

    def _get(self, params: dict) -> List[dict]:
        try:
            resp = requests.get(
                self.base_url, params=params, timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise SearchFailure(f"Geocoder request failed: {e}") from e

        if not isinstance(data, list):
            raise SearchFailure(f"Malformed geocoder payload: {type(data).__name__}")
        return data


def parse_candidates(items: Iterable[dict]) -> List[AddressSuggestion]:
    """Convert raw geocoder rows to suggestions, keeping provider order."""
    suggestions = []
    for item in items:
        try:
            suggestions.append(AddressSuggestion(
                display_name=str(item["display_name"]),
                latitude=float(item["lat"]),
                longitude=float(item["lon"]),
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise SearchFailure(f"Malformed geocoder candidate: {item!r}") from e
    return suggestions


def rank_suggestions(query: str, candidates: Iterable[AddressSuggestion],
                     limit: int = MAX_SUGGESTIONS) -> List[AddressSuggestion]:
    """
    Rank candidates for a query and keep the best ``limit``.

    A candidate whose display name starts with the query (case-insensitive)
    gets a +100 bonus. The sort is stable, so ties keep provider order.
    """
    prefix = query.lower()
    scored = []
    for candidate in candidates:
        score = 0
        if candidate.display_name.lower().startswith(prefix):
            score += PREFIX_BONUS
        scored.append(AddressSuggestion(
            display_name=candidate.display_name,
            latitude=candidate.latitude,
            longitude=candidate.longitude,
            rank_score=score,
        ))
    scored.sort(key=lambda s: s.rank_score, reverse=True)
    return scored[:limit]


class GeoSearchResolver:
    """
    Debounced, ranked address search feeding the search box.

    Every keystroke goes through ``on_input``. Queries shorter than three
    characters clear the suggestions at once; longer ones (re)start a 400 ms
    timer and, when it fires, run one geocoder lookup. Each scheduled lookup
    carries a sequence token and may only commit its suggestions if no newer
    keystroke or selection happened meanwhile.

    Visible state: ``address``, ``suggestions``, ``show_suggestions``,
    ``is_searching``.
    """

    def __init__(self, geocoder: Optional[NominatimGeocoder] = None,
                 map_controller=None,
                 delay: float = DEBOUNCE_SECONDS,
                 min_chars: int = MIN_QUERY_LENGTH,
                 max_results: int = MAX_SUGGESTIONS):
        self.geocoder = geocoder or NominatimGeocoder()
        self.map_controller = map_controller
        self.delay = delay
        self.min_chars = min_chars
        self.max_results = max_results

        self.address = ""
        self.suggestions: List[AddressSuggestion] = []
        self.show_suggestions = False
        self.is_searching = False

        self._token = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._idle: Optional[asyncio.Event] = None
        self._tasks = set()

    # ---- keystrokes ----

    def on_input(self, text: str) -> None:
        """Handle a change of the search box text. Needs a running loop."""
        self.address = text
        self._cancel_timer()
        self._token += 1

        if len(text) < self.min_chars:
            self._commit([])
            return

        loop = asyncio.get_running_loop()
        if self._idle is None:
            self._idle = asyncio.Event()
        self._idle.clear()
        self.is_searching = True
        self._timer = loop.call_later(self.delay, self._launch, self._token, text)

    async def search(self, query: str) -> List[AddressSuggestion]:
        """Type ``query`` and wait until the newest lookup has settled."""
        self.on_input(query)
        await self.wait_idle()
        return list(self.suggestions)

    async def wait_idle(self) -> None:
        if self._idle is not None:
            await self._idle.wait()

    async def lookup(self, query: str) -> List[AddressSuggestion]:
        """Immediate ranked lookup; failures give an empty list."""
        if len(query) < self.min_chars:
            return []
        try:
            items = await self.geocoder.search(query, limit=GEOCODE_LIMIT)
            candidates = parse_candidates(items)
        except SearchFailure as e:
            logger.warning("Address search failed for %r: %s", query, e)
            return []
        return rank_suggestions(query, candidates, self.max_results)

    # ---- selection ----

    def select(self, suggestion: AddressSuggestion) -> str:
        """
        Accept a suggestion: show its primary label, drop the suggestion
        list and centre the map on it with a marker.
        """
        self._cancel_timer()
        self._token += 1
        self.address = suggestion.label
        self._commit([])
        if self.map_controller is not None:
            self.map_controller.center_on(suggestion.latitude, suggestion.longitude)
        return self.address

    # ---- internals ----

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _launch(self, token: int, query: str) -> None:
        self._timer = None
        task = asyncio.ensure_future(self._run(token, query))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, token: int, query: str) -> None:
        ranked: List[AddressSuggestion] = []
        try:
            ranked = await self.lookup(query)
        finally:
            if token == self._token:
                self._commit(ranked)
            else:
                logger.debug("Dropping superseded suggestions for %r", query)

    def _commit(self, suggestions: List[AddressSuggestion]) -> None:
        self.suggestions = suggestions
        self.show_suggestions = len(suggestions) > 0
        self.is_searching = False
        if self._idle is not None:
            self._idle.set()


# ---------- One-shot location lookup ----------

def _is_zip_code(text: str) -> bool:
    """Check if the text looks like a 5-digit US ZIP code."""
    return bool(re.match(r"^\d{5}$", text.strip()))


def _is_coordinates(text: str) -> bool:
    """Check if the text looks like lat,lon coordinates."""
    return bool(re.match(r"^-?\d+\.?\d*\s*,\s*-?\d+\.?\d*$", text.strip()))


def _parse_coordinates(text: str) -> Tuple[float, float]:
    """Parse a 'lat,lon' string into (float, float)."""
    parts = text.strip().split(",")
    lat = float(parts[0].strip())
    lon = float(parts[1].strip())
    if not (-90 <= lat <= 90):
        raise ValueError(f"Latitude {lat} out of range [-90, 90]")
    if not (-180 <= lon <= 180):
        raise ValueError(f"Longitude {lon} out of range [-180, 180]")
    return lat, lon


def _geocode_zip(zip_code: str) -> Optional[Tuple[float, float]]:
    """Resolve a US ZIP code using the offline pgeocode database."""
    global _zip_lookup
    if _zip_lookup is None:
        _zip_lookup = pgeocode.Nominatim("US")
    result = _zip_lookup.query_postal_code(zip_code)

    # pgeocode returns NaN for unknown codes
    if result is None or str(result.latitude) == "nan":
        return None
    return float(result.latitude), float(result.longitude)


async def locate_address(address: str,
                         geocoder: Optional[NominatimGeocoder] = None
                         ) -> Optional[Tuple[float, float]]:
    """
    Resolve an address to (lat, lon) with a single best-match lookup.

    Accepts 'lat,lon' strings, 5-digit ZIP codes and free text. Returns
    None when nothing matches or the lookup fails.
    """
    address = address.strip()
    if not address:
        return None

    if _is_coordinates(address):
        try:
            return _parse_coordinates(address)
        except ValueError as e:
            logger.warning("Ignoring coordinates %r: %s", address, e)
            return None

    if _is_zip_code(address):
        try:
            location = _geocode_zip(address)
        except Exception as e:
            logger.warning("Offline ZIP lookup failed for %s: %s", address, e)
            location = None
        if location is not None:
            logger.info("Resolved ZIP code %s offline", address)
            return location

    geocoder = geocoder or NominatimGeocoder()
    try:
        items = await geocoder.search(address, limit=1, address_details=False)
        candidates = parse_candidates(items)
    except SearchFailure as e:
        logger.warning("Auto-navigate lookup failed for %r: %s", address, e)
        return None
    if not candidates:
        logger.info("No geocoder match for %r", address)
        return None
    best = candidates[0]
    return best.latitude, best.longitude
