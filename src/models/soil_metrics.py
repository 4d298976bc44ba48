"""
Rule-based soil metrics derived from a normalized soil sample.

All functions are pure and total: they never raise for a sparse sample.
A check whose input value is absent is simply skipped.
"""

from typing import Dict, List, Optional

from src.data.schema import (
    SoilSample, HealthAssessment, HealthIssue, HealthStrength,
    FertilizerRecommendation,
    TEXTURE_UNKNOWN, TEXTURE_CLAY, TEXTURE_SANDY_LOAM, TEXTURE_LOAM,
    SEVERITY_MEDIUM, SEVERITY_HIGH, PRIORITY_HIGH,
)


# ---------- Texture thresholds (percent) ----------
CLAY_THRESHOLD = 40.0
SANDY_LOAM_SAND_THRESHOLD = 45.0

# ---------- Health thresholds and deductions ----------
PH_ACIDIC_BELOW = 6.0
PH_ALKALINE_ABOVE = 7.5
SOC_LOW_BELOW = 15.0
NITROGEN_LOW_BELOW = 2.0

PH_DEDUCTION = 15
SOC_DEDUCTION = 20
NITROGEN_DEDUCTION = 15

# (exclusive lower bound, label, colour), checked in order
HEALTH_BUCKETS = [
    (75, "Excellent", "#10b981"),
    (50, "Fair", "#f59e0b"),
]
HEALTH_FALLBACK = ("Poor", "#ef4444")

# ---------- Fertilizer rules ----------
NITROGEN_TARGET = "3.5"
PH_TARGET = "6.5"


def classify_texture(sand: Optional[float], clay: Optional[float]) -> str:
    """
    Coarse texture class from sand and clay percentages.

    The clay rule is checked before the sandy-loam rule, so a sample with
    clay >= 40 is Clay whatever its sand content.
    """
    if not sand and not clay:
        return TEXTURE_UNKNOWN
    sand = sand or 0.0
    clay = clay or 0.0
    if clay >= CLAY_THRESHOLD:
        return TEXTURE_CLAY
    if sand > SANDY_LOAM_SAND_THRESHOLD:
        return TEXTURE_SANDY_LOAM
    return TEXTURE_LOAM


def health_label(score: float) -> str:
    """'Excellent' above 75, 'Fair' above 50, otherwise 'Poor'."""
    for lower, label, _ in HEALTH_BUCKETS:
        if score > lower:
            return label
    return HEALTH_FALLBACK[0]


def health_color(score: float) -> str:
    for lower, _, color in HEALTH_BUCKETS:
        if score > lower:
            return color
    return HEALTH_FALLBACK[1]


def assess_health(soil: Optional[SoilSample]) -> Optional[HealthAssessment]:
    """
    Score soil health from 100 down, one deduction per failed check.

    Returns None when there is no sample at all; a missing sample is not
    the same thing as a score of zero.
    """
    if soil is None:
        return None

    score = 100
    issues: List[HealthIssue] = []
    strengths: List[HealthStrength] = []

    if soil.ph is not None:
        if soil.ph < PH_ACIDIC_BELOW:
            score -= PH_DEDUCTION
            issues.append(HealthIssue(f"Acidic Soil (pH {soil.ph:.1f})", SEVERITY_MEDIUM))
        elif soil.ph > PH_ALKALINE_ABOVE:
            score -= PH_DEDUCTION
            issues.append(HealthIssue(f"Alkaline Soil (pH {soil.ph:.1f})", SEVERITY_MEDIUM))
        else:
            strengths.append(HealthStrength("pH is in optimal range"))

    if soil.soc is not None:
        if soil.soc < SOC_LOW_BELOW:
            score -= SOC_DEDUCTION
            issues.append(HealthIssue("Low organic matter", SEVERITY_HIGH))
        else:
            strengths.append(HealthStrength("Good organic matter"))

    # No strength is recorded for adequate nitrogen
    if soil.nitrogen is not None and soil.nitrogen < NITROGEN_LOW_BELOW:
        score -= NITROGEN_DEDUCTION
        issues.append(HealthIssue("Low Nitrogen", SEVERITY_MEDIUM))

    score = float(max(0, score))
    return HealthAssessment(
        score=score,
        issues=tuple(issues),
        strengths=tuple(strengths),
        label=health_label(score),
        color=health_color(score),
    )


def plan_fertilizer(soil: Optional[SoilSample]) -> List[FertilizerRecommendation]:
    """
    Fertilizer actions for a sample, nitrogen first, then pH correction.
    """
    if soil is None:
        return []

    plan = []
    if soil.nitrogen is not None and soil.nitrogen < NITROGEN_LOW_BELOW:
        plan.append(FertilizerRecommendation(
            nutrient="Nitrogen (N)",
            priority=PRIORITY_HIGH,
            amount_range="80-100 lbs/ac",
            fertilizer_name="Urea (46-0-0)",
            current_value=f"{soil.nitrogen:.1f}",
            target_value=NITROGEN_TARGET,
            timing="Split application at planting",
        ))

    if soil.ph is not None and 0 < soil.ph < PH_ACIDIC_BELOW:
        plan.append(FertilizerRecommendation(
            nutrient="pH Adjustment",
            priority=PRIORITY_HIGH,
            amount_range="2-3 tons/ac",
            fertilizer_name="Ag Limestone",
            current_value=f"{soil.ph:.1f}",
            target_value=PH_TARGET,
            timing="Fall application",
        ))

    return plan


def texture_composition(soil: Optional[SoilSample]) -> Dict[str, float]:
    """Sand/silt/clay as percentage shares of their sum (for the pie chart)."""
    if soil is None:
        return {}
    parts = {
        "sand": soil.sand or 0.0,
        "silt": soil.silt or 0.0,
        "clay": soil.clay or 0.0,
    }
    total = sum(parts.values())
    if total <= 0:
        return {}
    return {name: round(value / total * 100.0, 1) for name, value in parts.items()}
