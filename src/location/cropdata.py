"""
Crop-type reference data for the field map.

Field polygons in the vector tiles carry a USDA Cropland Data Layer (CDL)
land-cover code in their CROP_TYPE property. This module maps those codes to
display names and fill colours and describes the vector layer built on them.

Code list: https://www.nass.usda.gov/Research_and_Science/Cropland/metadata/
"""

import os
from typing import Dict, List, Optional

UNKNOWN_CROP = "Unknown"

# ---- Curated CDL codes present in the field tiles ----
CROP_LOOKUP: Dict[int, str] = {
    1: "Corn",
    4: "Sorghum",
    5: "Soybeans",
    24: "Winter Wheat",
    36: "Alfalfa",
    43: "Potatoes",
    61: "Fallow",
    75: "Almonds",
    176: "Grassland",
    204: "Pistachios",
    212: "Oranges",
    # Orchards
    66: "Cherries",
    67: "Peaches",
    68: "Apples",
    69: "Grapes",
    76: "Walnuts",
    77: "Pears",
    223: "Apricots",
}

# Codes without a colour are drawn transparent
CROP_COLORS: Dict[int, str] = {
    1: "#F4D03F",    # Corn
    5: "#229954",    # Soybeans
    24: "#A04000",   # Wheat
    36: "#2ECC71",   # Alfalfa
    176: "#CDDC39",  # Grassland
    43: "#FFCC80",   # Potatoes
    75: "#D7CCC8",   # Almonds
    61: "#BDBDBD",   # Fallow
    66: "#C2185B",   # Cherries
    67: "#FFAB91",   # Peaches
    68: "#D32F2F",   # Apples
    69: "#7B1FA2",   # Grapes
    76: "#795548",   # Walnuts
    77: "#AED581",   # Pears
    223: "#FFCA28",  # Apricots
}
TRANSPARENT = "rgba(0, 0, 0, 0)"

# ---- Vector tile source ----
DEFAULT_TILES_URL = (
    "pmtiles://https://satelliteimages.blob.core.windows.net/pmt-tiles/crop_2022.pmtiles"
)
DEFAULT_CURRENT_YEAR = 2022
CROP_LAYER_ID = "visual-layer"
CROP_SOURCE_MAXZOOM = 11
CROP_FILL_OPACITY = 0.75


def get_current_year() -> int:
    """Crop year of the field tiles (FIELD_CURRENT_YEAR env var)."""
    return int(os.environ.get("FIELD_CURRENT_YEAR", DEFAULT_CURRENT_YEAR))


def get_crop_name(code: Optional[int]) -> str:
    """Human name for a CDL code; unknown or missing codes give 'Unknown'."""
    if code is None:
        return UNKNOWN_CROP
    return CROP_LOOKUP.get(code, UNKNOWN_CROP)


def get_crop_color(code: Optional[int]) -> str:
    if code is None:
        return TRANSPARENT
    return CROP_COLORS.get(code, TRANSPARENT)


def fill_color_expression() -> List:
    """Map-style 'match' expression colouring polygons by CROP_TYPE."""
    expression: List = ["match", ["to-string", ["get", "CROP_TYPE"]]]
    for code, color in CROP_COLORS.items():
        expression.extend([str(code), color])
    expression.append(TRANSPARENT)
    return expression


def crop_layer_spec(year: Optional[int] = None, tiles_url: str = DEFAULT_TILES_URL) -> Dict:
    """
    Source and fill-layer description for the crop polygons of one year.

    Returns:
        Dict with 'source_id', 'source' and 'layer' entries, ready to be
        registered on the map.
    """
    if year is None:
        year = get_current_year()
    source_id = f"crops{year}"
    return {
        "source_id": source_id,
        "source": {
            "type": "vector",
            "url": tiles_url,
            "maxzoom": CROP_SOURCE_MAXZOOM,
            "promoteId": "CROP_TYPE",
        },
        "layer": {
            "id": CROP_LAYER_ID,
            "type": "fill",
            "source": source_id,
            "source-layer": f"crops{year}",
            "paint": {
                "fill-color": fill_color_expression(),
                "fill-opacity": CROP_FILL_OPACITY,
            },
        },
    }
