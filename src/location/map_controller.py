"""
Map controller: sole owner of the map view, the search marker and the field
popup.

Rendering is done elsewhere (a browser map engine, a test double, or nothing
at all). The controller keeps the authoritative view state and forwards each
change to an optional ``engine`` object exposing the same method names.
At most one marker and one popup exist at a time; placing a new one
releases the previous one first.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

INITIAL_CENTER = (39.8283, -98.5795)  # (lat, lon), contiguous US
INITIAL_ZOOM = 4
FOCUS_ZOOM = 15
FLY_DURATION_MS = 2000
MARKER_COLOR = "#ef4444"


@dataclass
class Marker:
    latitude: float
    longitude: float
    color: str = MARKER_COLOR
    active: bool = True


@dataclass
class Popup:
    latitude: float
    longitude: float
    content: Dict[str, Any] = field(default_factory=dict)
    active: bool = True


class MapController:
    """
    Owns the single map instance.

    Usage:
        controller = MapController()
        controller.attach()
        controller.center_on(40.1, -88.2)   # fly + marker
        controller.detach()

    While detached every operation is a no-op that returns None.
    """

    def __init__(self, engine: Any = None):
        self.engine = engine
        self.attached = False
        self.center = INITIAL_CENTER
        self.zoom = INITIAL_ZOOM
        self.marker: Optional[Marker] = None
        self.popup: Optional[Popup] = None
        self.sources: Dict[str, Dict] = {}
        self.layers: List[Dict] = []

    def _forward(self, method: str, *args, **kwargs):
        if self.engine is not None:
            getattr(self.engine, method)(*args, **kwargs)

    # ---- lifecycle ----

    def attach(self) -> None:
        if self.attached:
            return
        self.attached = True
        self._forward("attach", center=self.center, zoom=self.zoom)
        logger.info("Map attached at %s (zoom %d)", self.center, self.zoom)

    def detach(self) -> None:
        if not self.attached:
            return
        self.clear_marker()
        self.close_popup()
        self._forward("detach")
        self.attached = False
        self.sources.clear()
        self.layers.clear()
        logger.info("Map detached")

    # ---- layers ----

    def add_layer(self, source_id: str, source: Dict, layer: Dict) -> None:
        """Register a data source and the layer drawing it (once per id)."""
        if not self.attached:
            return
        if source_id not in self.sources:
            self.sources[source_id] = source
            self._forward("add_source", source_id, source)
        if all(existing["id"] != layer["id"] for existing in self.layers):
            self.layers.append(layer)
            self._forward("add_layer", layer)

    # ---- marker ----

    def set_marker(self, latitude: float, longitude: float,
                   color: str = MARKER_COLOR) -> Optional[Marker]:
        if not self.attached:
            return None
        self.clear_marker()
        self.marker = Marker(latitude, longitude, color)
        self._forward("add_marker", self.marker)
        return self.marker

    def clear_marker(self) -> None:
        if self.marker is not None:
            self.marker.active = False
            self._forward("remove_marker", self.marker)
            self.marker = None

    # ---- popup ----

    def show_popup(self, latitude: float, longitude: float,
                   content: Dict[str, Any]) -> Optional[Popup]:
        if not self.attached:
            return None
        self.close_popup()
        self.popup = Popup(latitude, longitude, dict(content))
        self._forward("add_popup", self.popup)
        return self.popup

    def close_popup(self) -> None:
        if self.popup is not None:
            self.popup.active = False
            self._forward("remove_popup", self.popup)
            self.popup = None

    # ---- camera ----

    def fly_to(self, latitude: float, longitude: float, zoom: int = FOCUS_ZOOM,
               duration_ms: int = FLY_DURATION_MS) -> None:
        if not self.attached:
            return
        self.center = (latitude, longitude)
        self.zoom = zoom
        self._forward("fly_to", latitude, longitude, zoom=zoom, duration_ms=duration_ms)

    def center_on(self, latitude: float, longitude: float) -> Optional[Marker]:
        """Fly to a coordinate and drop the search marker there."""
        marker = self.set_marker(latitude, longitude)
        self.fly_to(latitude, longitude)
        return marker

    def view_state(self) -> Dict[str, Any]:
        """JSON-friendly snapshot of what the map currently shows."""
        return {
            "attached": self.attached,
            "center": {"lat": self.center[0], "lon": self.center[1]},
            "zoom": self.zoom,
            "marker": None if self.marker is None else {
                "lat": self.marker.latitude,
                "lon": self.marker.longitude,
                "color": self.marker.color,
            },
            "popup": None if self.popup is None else {
                "lat": self.popup.latitude,
                "lon": self.popup.longitude,
                "content": self.popup.content,
            },
            "layers": [layer["id"] for layer in self.layers],
        }
