"""
Session state: ties the map, address search, click adapter and analysis
client together and holds the one current selection and its result.

Flow:
    click  -> MapInteractionAdapter -> FieldSelection
           -> FieldAnalysisClient.analyze -> FieldAnalysisResult -> state
    search -> GeoSearchResolver (debounced) -> suggestions -> map recentre
"""

import logging
from dataclasses import asdict
from typing import Any, Dict, Optional, Tuple

from src.data.schema import FieldSelection, FieldAnalysisResult
from src.location.analysis import FieldAnalysisClient
from src.location.cropdata import crop_layer_spec
from src.location.exceptions import AnalysisFailure
from src.location.geosearch import GeoSearchResolver, locate_address
from src.location.interaction import MapInteractionAdapter
from src.location.map_controller import MapController
from src.location.resources import ResourceLoader
from src.models.soil_metrics import texture_composition

logger = logging.getLogger(__name__)

# Session status values
STATUS_IDLE = "idle"
STATUS_LOADING = "loading"
STATUS_READY = "ready"
STATUS_FAILED = "failed"

# Outcome of a request whose result was dropped because a newer one started
OUTCOME_SUPERSEDED = "superseded"

FAILURE_NOTICE = "Analysis failed."


class SessionState:
    """
    In-memory state of one dashboard session.

    Each click or analysis request takes a new sequence token. A fetch only
    commits (result or failure) if its token is still the latest, so a late
    response for an older coordinate never overwrites a newer selection.
    Superseded requests are not cancelled; their outcome is dropped.

    Usage:
        session = SessionState()
        await session.start(initial_address="Ames, Iowa")
        await session.select_field(features, {"lat": 42.0, "lng": -93.6})
        session.result.health.score
    """

    def __init__(self, client: Optional[FieldAnalysisClient] = None,
                 resolver: Optional[GeoSearchResolver] = None,
                 map_controller: Optional[MapController] = None,
                 resources: Optional[ResourceLoader] = None):
        self.map = map_controller or MapController()
        self.client = client or FieldAnalysisClient()
        self.resolver = resolver or GeoSearchResolver(map_controller=self.map)
        self.adapter = MapInteractionAdapter(self.map)
        self.adapter.subscribe(self._on_selection)
        self.resources = resources or ResourceLoader([
            ("map", self.map.attach),
            ("crop layer", self._register_crop_layer),
        ])

        self.selection: Optional[FieldSelection] = None
        self.result: Optional[FieldAnalysisResult] = None
        self.status = STATUS_IDLE
        self.error: Optional[str] = None
        self._token = 0

    def _register_crop_layer(self) -> None:
        spec = crop_layer_spec(year=self.client.current_year)
        self.map.add_layer(spec["source_id"], spec["source"], spec["layer"])

    # ---- startup ----

    async def start(self, initial_address: Optional[str] = None) -> bool:
        """
        Load map resources and optionally navigate to an initial address.

        Returns:
            True if the map was centred on ``initial_address``.
        """
        if self.resources.ready and not self.map.attached:
            logger.info("Map was detached; reloading map resources")
            self.resources.reset()
        await self.resources.ensure_loaded()
        if not initial_address:
            return False

        self.resolver.address = initial_address
        self.resolver.is_searching = True
        try:
            location = await locate_address(initial_address, self.resolver.geocoder)
        finally:
            self.resolver.is_searching = False

        if location is None:
            return False
        logger.info("Auto-navigating to %r at %s", initial_address, location)
        return self.map.center_on(*location) is not None

    # ---- field selection ----

    def _on_selection(self, selection: FieldSelection) -> None:
        self._token += 1
        self.selection = selection
        if self.status == STATUS_LOADING:
            self.status = STATUS_IDLE

    def handle_click(self, feature: Any, pointer: Any) -> Optional[FieldSelection]:
        """Select the clicked field (shows its popup); None if no field was hit."""
        return self.adapter.on_feature_click(feature, pointer)

    async def select_field(self, feature: Any, pointer: Any) -> Optional[FieldAnalysisResult]:
        """Click a field and analyse it."""
        selection = self.handle_click(feature, pointer)
        if selection is None:
            return None
        return await self.analyze(selection)

    async def analyze(self, selection: Optional[FieldSelection] = None
                      ) -> Optional[FieldAnalysisResult]:
        """
        Analyse ``selection`` (default: the current selection).

        Returns:
            The committed result, or None if the request failed or was
            superseded while in flight.

        Raises:
            ValueError: If there is nothing to analyse.
        """
        _, result = await self.run_analysis(selection)
        return result

    async def run_analysis(self, selection: Optional[FieldSelection] = None
                           ) -> Tuple[str, Optional[FieldAnalysisResult]]:
        """
        Like ``analyze`` but also reports what happened to this request.

        Returns:
            (outcome, result) where outcome is STATUS_READY, STATUS_FAILED
            or OUTCOME_SUPERSEDED; result is set only for STATUS_READY.

        Raises:
            ValueError: If there is nothing to analyse.
        """
        if selection is None:
            selection = self.selection
        if selection is None:
            raise ValueError("No field selected")

        self._token += 1
        token = self._token
        self.selection = selection
        self.status = STATUS_LOADING
        self.error = None

        try:
            result = await self.client.analyze(selection)
        except AnalysisFailure as e:
            if token != self._token:
                logger.debug("Ignoring failure of superseded analysis: %s", e)
                return OUTCOME_SUPERSEDED, None
            logger.error("Analysis Error: %s", e)
            self._fail()
            return STATUS_FAILED, None
        except Exception:
            # other client errors propagate; status must not stay loading
            if token == self._token:
                self._fail()
            raise

        if token != self._token:
            logger.info(
                "Discarding superseded analysis for lat=%.4f, lon=%.4f",
                selection.latitude, selection.longitude,
            )
            return OUTCOME_SUPERSEDED, None

        self.result = result
        self.status = STATUS_READY
        logger.info(
            "Analysis ready: texture=%s, health=%s",
            result.texture, result.health.score if result.health else None,
        )
        return STATUS_READY, result

    def _fail(self) -> None:
        self.status = STATUS_FAILED
        self.error = FAILURE_NOTICE

    # ---- presentation ----

    def snapshot(self) -> Dict[str, Any]:
        """JSON-friendly view of the whole session."""
        result = None
        if self.result is not None:
            result = self.result.to_dict()
            result["texture_composition"] = texture_composition(self.result.soil)
        return {
            "status": self.status,
            "error": self.error,
            "selection": asdict(self.selection) if self.selection else None,
            "result": result,
            "search": {
                "address": self.resolver.address,
                "suggestions": [asdict(s) for s in self.resolver.suggestions],
                "show_suggestions": self.resolver.show_suggestions,
                "is_searching": self.resolver.is_searching,
            },
            "map": self.map.view_state(),
        }
