"""
Batch field analysis over a table of points.

Input columns: lat, lon, crop_code, optional acres and county.
Output: one summary row per input row, in input order.
"""

import logging
from typing import Dict, Optional

import pandas as pd

from src.data.schema import FieldSelection, FieldAnalysisResult
from src.location.cropdata import get_crop_name
from src.location.exceptions import AnalysisFailure

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["lat", "lon", "crop_code"]

SUMMARY_COLUMNS = [
    "lat", "lon", "crop_code", "crop_name", "texture",
    "health_score", "health_label", "n_issues", "n_fertilizer_actions",
    "top_recommendation", "error",
]


def _optional(row: pd.Series, column: str):
    if column not in row.index or pd.isna(row[column]):
        return None
    return row[column]


def summarize_result(result: FieldAnalysisResult) -> Dict:
    """Flatten one analysis into a summary row."""
    health = result.health
    top = result.top_recommendations(1)
    return {
        "lat": result.selection.latitude,
        "lon": result.selection.longitude,
        "crop_code": result.selection.crop_code,
        "crop_name": result.selection.crop_name,
        "texture": result.texture,
        "health_score": health.score if health else None,
        "health_label": health.label if health else None,
        "n_issues": len(health.issues) if health else 0,
        "n_fertilizer_actions": len(result.fertilizer_plan),
        "top_recommendation": top[0].name if top else None,
        "error": None,
    }


def _error_row(lat, lon, crop_code: Optional[int], message: str) -> Dict:
    row = {column: None for column in SUMMARY_COLUMNS}
    row.update({
        "lat": lat, "lon": lon, "crop_code": crop_code,
        "crop_name": get_crop_name(crop_code), "error": message,
    })
    return row


async def analyze_points(df: pd.DataFrame, client) -> pd.DataFrame:
    """
    Analyse every row of ``df`` one after another.

    A failing row is reported in the 'error' column and does not stop the
    batch.

    Raises:
        ValueError: If a required column is missing.
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    rows = []
    for idx, row in df.iterrows():
        code = None
        acres = _optional(row, "acres")
        county = _optional(row, "county")
        try:
            raw_code = _optional(row, "crop_code")
            code = int(float(raw_code)) if raw_code is not None else None
            selection = FieldSelection(
                latitude=float(row["lat"]),
                longitude=float(row["lon"]),
                crop_code=code,
                crop_name=get_crop_name(code),
                county_id=str(county) if county is not None else None,
                acreage=float(acres) if acres is not None else None,
            )
            result = await client.analyze(selection)
        except (ValueError, AnalysisFailure) as e:
            logger.warning("Row %s failed: %s", idx, e)
            rows.append(_error_row(row["lat"], row["lon"], code, str(e)))
            continue
        rows.append(summarize_result(result))

    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
