"""
Pydantic request/response schemas for the field analysis service.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    map_attached: bool
    version: str


class Suggestion(BaseModel):
    """Ranked address candidate."""
    display_name: str
    label: str
    latitude: float
    longitude: float
    rank_score: int


class SearchResponse(BaseModel):
    """Output schema for /search."""
    query: str
    suggestions: List[Suggestion]


class SelectSuggestionRequest(BaseModel):
    """Input schema for /search/select."""
    display_name: str = Field(..., min_length=1, description="Full geocoder display name")
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    model_config = {"json_schema_extra": {
        "examples": [{
            "display_name": "Ames, Story County, Iowa, United States",
            "latitude": 42.0267,
            "longitude": -93.6170,
        }]
    }}


class SelectSuggestionResponse(BaseModel):
    """Output schema for /search/select."""
    address: str
    map: Dict[str, Any]


class FieldClickRequest(BaseModel):
    """A click on the crop layer: pointer location plus the hit feature's properties."""
    lat: float = Field(..., ge=-90, le=90, description="Click latitude")
    lon: float = Field(..., ge=-180, le=180, description="Click longitude")
    properties: Optional[Dict[str, Any]] = Field(
        None,
        description="Properties of the clicked polygon (CROP_TYPE, CNTY, CSBACRES); "
                    "omit when the click missed every field",
    )

    model_config = {"json_schema_extra": {
        "examples": [{
            "lat": 42.0308,
            "lon": -93.6319,
            "properties": {"CROP_TYPE": 1, "CNTY": "169", "CSBACRES": 78.431},
        }]
    }}


class FieldClickResponse(BaseModel):
    """Output schema for /fields/click."""
    selection: Optional[Dict[str, Any]] = None
    acres: Optional[str] = None
    popup: Optional[Dict[str, Any]] = None


class AnalyzeResponse(BaseModel):
    """Output schema for /fields/analyze."""
    status: str
    result: Optional[Dict[str, Any]] = None


class SessionResponse(BaseModel):
    """Output schema for /session."""
    status: str
    error: Optional[str] = None
    selection: Optional[Dict[str, Any]] = None
    result: Optional[Dict[str, Any]] = None
    search: Dict[str, Any]
    map: Dict[str, Any]
