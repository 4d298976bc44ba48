"""
Field analysis client: fetches soil, crop history and alternative-crop
recommendations for a point from the remote analysis service, normalizes
the partial payload and derives texture, health and fertilizer plan.

Response shape:
    {
        "soil": {"ph", "soc", "nitrogen", "sand", "silt", "clay"},   optional
        "history": {"<year>": {"crop", "code", "acres"}},           optional
        "recommendations": [{"name", "reason", "score"}],           optional
    }
"""

import asyncio
import logging
import math
import os
from typing import Any, Dict, Optional, Tuple

import requests

from src.data.schema import (
    FieldSelection, SoilSample, CropHistoryEntry, CropRecommendation,
    FieldAnalysisResult, DEFAULT_SOIL, SOIL_FIELDS,
)
from src.data.validation import validate_soil_sample
from src.location.cropdata import get_crop_name, get_current_year
from src.location.exceptions import AnalysisFailure
from src.models.soil_metrics import classify_texture, assess_health, plan_fertilizer

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS_URL = (
    "https://crop-detection-dcecevhvh5ard2ah.eastus-01.azurewebsites.net/api/analyze_field"
)


def _get_analysis_url() -> str:
    """Analysis endpoint (FIELD_ANALYSIS_URL env var)."""
    return os.environ.get("FIELD_ANALYSIS_URL", DEFAULT_ANALYSIS_URL)


def _as_float(value: Any) -> Optional[float]:
    """Finite float or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _as_int(value: Any) -> Optional[int]:
    number = _as_float(value)
    return None if number is None else int(number)


def normalize_soil(raw: Any) -> SoilSample:
    """
    Build a SoilSample from the service's soil object.

    A missing soil object is replaced by regional defaults. Missing silt is
    completed as 100 - sand - clay (absent values count as 0, floor 0).
    """
    if not isinstance(raw, dict):
        logger.info("No soil data in analysis response; using default soil values")
        raw = DEFAULT_SOIL

    values = {name: _as_float(raw.get(name)) for name in SOIL_FIELDS}
    if values["silt"] is None:
        values["silt"] = max(0.0, 100.0 - (values["sand"] or 0.0) - (values["clay"] or 0.0))
    return SoilSample(**values)


def normalize_history(raw: Any, selection: FieldSelection,
                      current_year: int) -> Dict[int, CropHistoryEntry]:
    """
    Crop history keyed by year, with the current year always taken from the
    clicked field (overwriting whatever the service sent for that year).
    """
    history: Dict[int, CropHistoryEntry] = {}
    if isinstance(raw, dict):
        for year_key, info in raw.items():
            year = _as_int(year_key)
            if year is None or not isinstance(info, dict):
                logger.warning("Skipping malformed history entry %r: %r", year_key, info)
                continue
            code = _as_int(info.get("code"))
            history[year] = CropHistoryEntry(
                year=year,
                crop_name=str(info.get("crop") or get_crop_name(code)),
                crop_code=code,
                acreage=_as_float(info.get("acres")),
            )

    history[current_year] = CropHistoryEntry(
        year=current_year,
        crop_name=selection.crop_name,
        crop_code=selection.crop_code,
        acreage=selection.acreage,
    )
    return history


def normalize_recommendations(raw: Any) -> Tuple[CropRecommendation, ...]:
    """Alternative crops in service order; unusable entries are skipped."""
    if not isinstance(raw, list):
        return ()
    recommendations = []
    for item in raw:
        if not isinstance(item, dict):
            logger.warning("Skipping malformed crop recommendation: %r", item)
            continue
        name = item.get("name")
        score = _as_float(item.get("score"))
        if not name or score is None:
            logger.warning("Skipping crop recommendation without name/score: %r", item)
            continue
        reason = item.get("reason")
        recommendations.append(CropRecommendation(
            name=str(name),
            score=score,
            reason=str(reason) if reason else None,
        ))
    return tuple(recommendations)


class FieldAnalysisClient:
    """
    Fetch and derive the full analysis for a selected field.

    Usage:
        client = FieldAnalysisClient()
        result = await client.analyze(selection)
    """

    def __init__(self, base_url: Optional[str] = None,
                 timeout: Optional[float] = None,
                 current_year: Optional[int] = None):
        self.base_url = base_url or _get_analysis_url()
        self.timeout = timeout
        self.current_year = current_year if current_year is not None else get_current_year()

    async def analyze(self, selection: FieldSelection) -> FieldAnalysisResult:
        """
        Run one analysis request for the selection's coordinate.

        Raises:
            AnalysisFailure: If the service is unreachable, answers with a
                non-2xx status or returns something other than a JSON object.
        """
        logger.info(
            "Requesting field analysis for lat=%.4f, lon=%.4f",
            selection.latitude, selection.longitude,
        )
        data = await asyncio.to_thread(
            self.fetch_raw, selection.latitude, selection.longitude
        )
        return self.build_result(selection, data)

    def fetch_raw(self, lat: float, lon: float) -> Dict:
        """Blocking GET of the raw analysis payload."""
        try:
            resp = requests.get(
                self.base_url, params={"lat": lat, "lon": lon}, timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
        except requests.exceptions.RequestException as e:
            raise AnalysisFailure(None, str(e)) from e

        if not 200 <= resp.status_code < 300:
            raise AnalysisFailure(resp.status_code, resp.reason or "")

        try:
            data = resp.json()
        except ValueError as e:
            raise AnalysisFailure(None, "response is not valid JSON") from e
        if not isinstance(data, dict):
            raise AnalysisFailure(None, f"unexpected payload type {type(data).__name__}")
        return data

    def build_result(self, selection: FieldSelection, data: Dict) -> FieldAnalysisResult:
        """Normalize a raw payload and derive every computed field."""
        warnings = []
        if not isinstance(data.get("soil"), dict):
            warnings.append("Soil data unavailable; using default soil values")
        soil = normalize_soil(data.get("soil"))
        warnings.extend(validate_soil_sample(soil))

        return FieldAnalysisResult(
            selection=selection,
            soil=soil,
            health=assess_health(soil),
            fertilizer_plan=tuple(plan_fertilizer(soil)),
            texture=classify_texture(soil.sand, soil.clay),
            history=normalize_history(data.get("history"), selection, self.current_year),
            crop_recommendations=normalize_recommendations(data.get("recommendations")),
            warnings=tuple(warnings),
        )
