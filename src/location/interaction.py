"""
Map interaction adapter: turns a click on the crop layer into a typed
FieldSelection.

Feature properties coming out of the vector tiles are untyped; they are
validated and converted here and nowhere downstream.
"""

import logging
import math
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator

from src.data.schema import FieldSelection
from src.location.cropdata import get_crop_name

logger = logging.getLogger(__name__)

SelectionListener = Callable[[FieldSelection], None]
Pointer = Union[Mapping[str, Any], Sequence[float]]


class RawFeatureProperties(BaseModel):
    """Properties of one crop polygon as stored in the tiles."""
    model_config = ConfigDict(extra="ignore")

    CROP_TYPE: Optional[int] = None
    CNTY: Optional[str] = None
    CSBACRES: Optional[float] = None

    @field_validator("CROP_TYPE", mode="before")
    @classmethod
    def _coerce_crop_type(cls, value):
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return None

    @field_validator("CNTY", mode="before")
    @classmethod
    def _coerce_county(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("CSBACRES", mode="before")
    @classmethod
    def _coerce_acres(cls, value):
        if value is None or isinstance(value, bool):
            return None
        try:
            acres = float(value)
        except (TypeError, ValueError):
            return None
        return acres if math.isfinite(acres) else None


def _pointer_coordinates(pointer: Pointer) -> Tuple[float, float]:
    """(lat, lon) from a {'lat', 'lng'|'lon'} mapping or a (lat, lon) pair."""
    if isinstance(pointer, Mapping):
        lon = pointer.get("lng", pointer.get("lon"))
        return float(pointer["lat"]), float(lon)
    lat, lon = pointer
    return float(lat), float(lon)


class MapInteractionAdapter:
    """
    Converts raw click events into FieldSelections.

    Performs no I/O: the selection is handed to registered listeners
    (normally the session, which starts the analysis) and, when a map
    controller is given, summarised in the field popup.
    """

    def __init__(self, map_controller=None):
        self.map_controller = map_controller
        self._listeners: List[SelectionListener] = []

    def subscribe(self, listener: SelectionListener) -> None:
        self._listeners.append(listener)

    def on_feature_click(self, feature: Any, pointer: Pointer) -> Optional[FieldSelection]:
        """
        Build a FieldSelection for the clicked feature.

        Args:
            feature: The clicked feature (mapping with 'properties'), or the
                list of features under the pointer. Empty/None means the
                click missed every field.
            pointer: Click location.

        Returns:
            The selection, or None when no feature was hit.

        Raises:
            ValueError: If the pointer lies outside valid lat/lon ranges.
        """
        if isinstance(feature, (list, tuple)):
            feature = feature[0] if feature else None
        if not feature:
            return None

        props = RawFeatureProperties.model_validate(feature.get("properties") or {})
        lat, lon = _pointer_coordinates(pointer)

        selection = FieldSelection(
            latitude=lat,
            longitude=lon,
            crop_code=props.CROP_TYPE,
            crop_name=get_crop_name(props.CROP_TYPE),
            county_id=props.CNTY,
            acreage=props.CSBACRES,
        )
        logger.info(
            "Field selected: %s (code=%s) at lat=%.4f, lon=%.4f",
            selection.crop_name, selection.crop_code, lat, lon,
        )

        if self.map_controller is not None:
            self.map_controller.show_popup(lat, lon, {
                "crop_name": selection.crop_name,
                "acres": selection.acreage_display,
                "county": selection.county_display,
            })

        for listener in self._listeners:
            listener(selection)
        return selection
