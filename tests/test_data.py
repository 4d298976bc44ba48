"""Tests for the data model, soil validation suite and batch analysis."""

import sys
import asyncio
import pytest
import pandas as pd
from pathlib import Path

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.data.schema import (
    FieldSelection, SoilSample, CropHistoryEntry, CropRecommendation,
    AddressSuggestion, SOIL_RANGES, TEXTURE_CLASSES,
)
from src.data.validation import SoilValidationSuite, validate_soil_sample
from src.data.batch import analyze_points, SUMMARY_COLUMNS
from src.location.analysis import FieldAnalysisClient
from src.location.exceptions import AnalysisFailure


class TestSchema:
    """Test canonical data model definitions."""

    def test_soil_ranges_valid(self):
        for col, (lo, hi) in SOIL_RANGES.items():
            assert lo < hi, f"Invalid range for {col}: [{lo}, {hi}]"

    def test_texture_classes(self):
        assert TEXTURE_CLASSES == ["Unknown", "Clay", "Sandy Loam", "Loam"]

    def test_selection_rejects_bad_coordinates(self):
        with pytest.raises(ValueError):
            FieldSelection(latitude=-91.0, longitude=0.0, crop_code=1, crop_name="Corn")
        with pytest.raises(ValueError):
            FieldSelection(latitude=0.0, longitude=181.0, crop_code=1, crop_name="Corn")

    def test_selection_is_immutable(self):
        selection = FieldSelection(latitude=40.0, longitude=-95.0, crop_code=1, crop_name="Corn")
        with pytest.raises(Exception):
            selection.latitude = 41.0

    def test_history_acreage_display(self):
        assert CropHistoryEntry(2021, "Corn", 1, 80.4).acreage_display == "80 ac"
        assert CropHistoryEntry(2021, "Corn", 1).acreage_display is None

    @pytest.mark.parametrize("score,tier", [
        (95, "high"), (80.1, "high"), (80, "moderate"), (61, "moderate"), (60, "low"), (5, "low"),
    ])
    def test_recommendation_tiers(self, score, tier):
        assert CropRecommendation("Alfalfa", score).tier == tier

    def test_suggestion_label(self):
        assert AddressSuggestion("Story County, Iowa, United States", 42.0, -93.4).label == "Story County"

    def test_result_to_dict_uses_string_years(self):
        client = FieldAnalysisClient(base_url="http://analysis.test", current_year=2022)
        selection = FieldSelection(latitude=40.0, longitude=-95.0, crop_code=5, crop_name="Soybeans")
        result = client.build_result(selection, {
            "history": {"2019": {"crop": "Corn", "code": 1}},
            "recommendations": [{"name": "Oats", "score": 42}],
        })
        data = result.to_dict()
        assert set(data["history"]) == {"2019", "2022"}
        assert data["crop_recommendations"][0]["tier"] == "low"
        assert [e["year"] for e in data["timeline"]] == [2022, 2019]


class TestValidation:
    """Test the soil validation suite."""

    def test_complete_sample_passes(self):
        sample = SoilSample(ph=6.5, soc=20.0, nitrogen=2.5, sand=35.0, silt=40.0, clay=25.0)
        report = SoilValidationSuite(sample).report()
        assert report["summary"]["overall_status"] == "PASS"
        assert report["summary"]["passed"] == report["summary"]["total_checks"] == 3

    def test_out_of_range_is_critical(self):
        sample = SoilSample(ph=15.2, soc=20.0, nitrogen=2.5, sand=35.0, silt=40.0, clay=25.0)
        report = SoilValidationSuite(sample).report()
        assert report["summary"]["overall_status"] == "FAIL"
        assert report["summary"]["critical_failures"] == 1

    def test_texture_total_checked_only_when_complete(self):
        suite = SoilValidationSuite(SoilSample(sand=35.0, clay=25.0))
        suite.check_texture_total()
        assert suite.results == []

    def test_texture_total_mismatch_warns(self):
        sample = SoilSample(ph=6.5, soc=20.0, nitrogen=2.5, sand=50.0, silt=40.0, clay=30.0)
        warnings = validate_soil_sample(sample)
        assert warnings == ["Sand + silt + clay = 120.0%"]

    def test_missing_fields_warn(self):
        warnings = validate_soil_sample(SoilSample(sand=30.0, silt=50.0, clay=20.0))
        assert len(warnings) == 1
        assert "ph" in warnings[0] and "nitrogen" in warnings[0]


class FakeBatchClient:
    def __init__(self):
        self._builder = FieldAnalysisClient(base_url="http://analysis.test", current_year=2022)

    async def analyze(self, selection):
        if selection.latitude == 0.0:
            raise AnalysisFailure(500, "Internal Server Error")
        return self._builder.build_result(selection, {
            "soil": {"ph": 6.8, "soc": 25.0, "nitrogen": 1.5, "sand": 55.0, "silt": 30.0, "clay": 15.0},
            "recommendations": [{"name": "Sorghum", "score": 77}],
        })


class TestBatch:
    """Test batch analysis over a DataFrame of points."""

    def test_summary_rows_in_input_order(self):
        df = pd.DataFrame({
            "lat": [42.03, 0.0, 95.0],
            "lon": [-93.63, 0.0, -93.0],
            "crop_code": [1, 5, 24],
            "acres": [78.4, None, 10.0],
        })
        summary = asyncio.run(analyze_points(df, FakeBatchClient()))

        assert list(summary.columns) == SUMMARY_COLUMNS
        assert len(summary) == 3

        ok = summary.iloc[0]
        assert ok["crop_name"] == "Corn"
        assert ok["texture"] == "Sandy Loam"
        assert ok["health_score"] == 85
        assert ok["n_fertilizer_actions"] == 1
        assert ok["top_recommendation"] == "Sorghum"
        assert pd.isna(ok["error"])

        assert "Server Error: 500" in summary.iloc[1]["error"]
        assert summary.iloc[1]["crop_name"] == "Soybeans"
        assert "Latitude" in summary.iloc[2]["error"]

    def test_non_numeric_crop_code_is_an_error_row(self):
        df = pd.DataFrame({
            "lat": [42.03, 42.03],
            "lon": [-93.63, -93.63],
            "crop_code": ["corn", "1"],
        })
        summary = asyncio.run(analyze_points(df, FakeBatchClient()))

        assert len(summary) == 2
        bad = summary.iloc[0]
        assert "corn" in bad["error"]
        assert pd.isna(bad["crop_code"])
        assert bad["crop_name"] == "Unknown"

        good = summary.iloc[1]
        assert pd.isna(good["error"])
        assert good["crop_name"] == "Corn"

    def test_missing_columns_raise(self):
        df = pd.DataFrame({"lat": [42.0], "lon": [-93.6]})
        with pytest.raises(ValueError, match="crop_code"):
            asyncio.run(analyze_points(df, FakeBatchClient()))
