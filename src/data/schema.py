"""
Canonical data model for field analysis: the selection produced by a map
click, the normalized soil sample, and everything derived from it.

All records are frozen dataclasses; a new analysis replaces the previous
result wholesale instead of mutating it.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Tuple


# ---------- Texture classes ----------
TEXTURE_UNKNOWN = "Unknown"
TEXTURE_CLAY = "Clay"
TEXTURE_SANDY_LOAM = "Sandy Loam"
TEXTURE_LOAM = "Loam"

TEXTURE_CLASSES = [TEXTURE_UNKNOWN, TEXTURE_CLAY, TEXTURE_SANDY_LOAM, TEXTURE_LOAM]

# ---------- Severity / priority levels ----------
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"

PRIORITY_HIGH = "HIGH"
PRIORITY_MEDIUM = "MEDIUM"

# ---------- Normalization defaults ----------
# Substituted when the analysis service returns no soil object at all
DEFAULT_SOIL = {
    "ph": 6.5,
    "soc": 20.0,
    "nitrogen": 2.5,
    "clay": 25.0,
    "sand": 35.0,
}

SOIL_FIELDS = ["ph", "soc", "nitrogen", "sand", "silt", "clay"]

# Physically plausible ranges, used by the validation suite only
SOIL_RANGES = {
    "ph":       (0.0, 14.0),
    "soc":      (0.0, 1000.0),  # g/kg
    "nitrogen": (0.0, 100.0),   # g/kg
    "sand":     (0.0, 100.0),   # %
    "silt":     (0.0, 100.0),
    "clay":     (0.0, 100.0),
}

# Crop recommendation score tiers (score is a 0-100 suitability percentage)
RECOMMENDATION_TIER_HIGH = 80
RECOMMENDATION_TIER_MODERATE = 60

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class FieldSelection:
    """A field picked on the map. Created per click and never modified."""
    latitude: float
    longitude: float
    crop_code: Optional[int]
    crop_name: str
    county_id: Optional[str] = None
    acreage: Optional[float] = None

    def __post_init__(self):
        if not (-90 <= self.latitude <= 90):
            raise ValueError(f"Latitude {self.latitude} out of range [-90, 90]")
        if not (-180 <= self.longitude <= 180):
            raise ValueError(f"Longitude {self.longitude} out of range [-180, 180]")

    @property
    def acreage_display(self) -> str:
        """Acreage fixed to two decimals, or 'N/A'."""
        if self.acreage is None:
            return NOT_AVAILABLE
        return f"{self.acreage:.2f}"

    @property
    def county_display(self) -> str:
        return self.county_id or NOT_AVAILABLE


@dataclass(frozen=True)
class SoilSample:
    """Normalized topsoil measurements. Any value may be absent."""
    ph: Optional[float] = None
    soc: Optional[float] = None
    nitrogen: Optional[float] = None
    sand: Optional[float] = None
    silt: Optional[float] = None
    clay: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return asdict(self)


@dataclass(frozen=True)
class HealthIssue:
    message: str
    severity: str


@dataclass(frozen=True)
class HealthStrength:
    message: str


@dataclass(frozen=True)
class HealthAssessment:
    """0-100 soil health score with the findings that produced it."""
    score: float
    issues: Tuple[HealthIssue, ...] = ()
    strengths: Tuple[HealthStrength, ...] = ()
    label: str = ""
    color: str = ""


@dataclass(frozen=True)
class FertilizerRecommendation:
    nutrient: str
    priority: str
    amount_range: str
    fertilizer_name: str
    current_value: str
    target_value: str
    timing: str


@dataclass(frozen=True)
class CropHistoryEntry:
    year: int
    crop_name: str
    crop_code: Optional[int] = None
    acreage: Optional[float] = None

    @property
    def acreage_display(self) -> Optional[str]:
        """Whole acres for the timeline, None when unknown."""
        if self.acreage is None:
            return None
        return f"{self.acreage:.0f} ac"


@dataclass(frozen=True)
class CropRecommendation:
    """Alternative crop suggested by the analysis service."""
    name: str
    score: float
    reason: Optional[str] = None

    @property
    def tier(self) -> str:
        if self.score > RECOMMENDATION_TIER_HIGH:
            return "high"
        if self.score > RECOMMENDATION_TIER_MODERATE:
            return "moderate"
        return "low"


@dataclass(frozen=True)
class AddressSuggestion:
    """One ranked geocoder candidate."""
    display_name: str
    latitude: float
    longitude: float
    rank_score: int = 0

    @property
    def label(self) -> str:
        """Primary label: the text before the first comma."""
        return self.display_name.split(",")[0]


@dataclass(frozen=True)
class FieldAnalysisResult:
    """Everything shown for one analysed field.

    Derived fields (texture, health, fertilizer_plan) are always computed
    from the contained ``soil`` by the analysis client.
    """
    selection: FieldSelection
    soil: Optional[SoilSample]
    health: Optional[HealthAssessment]
    fertilizer_plan: Tuple[FertilizerRecommendation, ...]
    texture: str
    history: Dict[int, CropHistoryEntry] = field(default_factory=dict)
    crop_recommendations: Tuple[CropRecommendation, ...] = ()
    warnings: Tuple[str, ...] = ()

    def timeline(self) -> List[CropHistoryEntry]:
        """History entries, newest year first."""
        return [self.history[year] for year in sorted(self.history, reverse=True)]

    def top_recommendations(self, n: int = 5) -> List[CropRecommendation]:
        return list(self.crop_recommendations[:n])

    def to_dict(self) -> dict:
        data = asdict(self)
        # JSON object keys must be strings
        data["history"] = {str(year): entry for year, entry in data["history"].items()}
        data["timeline"] = [asdict(e) for e in self.timeline()]
        for rec, raw in zip(self.crop_recommendations, data["crop_recommendations"]):
            raw["tier"] = rec.tier
        return data
