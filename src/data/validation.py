"""
Soil sample validation suite: chainable checks with pass/fail reporting.

Validation never blocks an analysis; failed checks become warnings on the
result so the presentation layer can flag suspect upstream data.
"""

import logging
from typing import List

from src.data.schema import SoilSample, SOIL_FIELDS, SOIL_RANGES

logger = logging.getLogger(__name__)

# sand + silt + clay may deviate from 100 by this much before we flag it
TEXTURE_TOTAL_TOLERANCE = 5.0


class ValidationResult:
    """Container for a single validation check result."""

    def __init__(self, name: str, passed: bool, severity: str = "critical",
                 details: str = "", stats: dict = None):
        self.name = name
        self.passed = passed
        self.severity = severity  # "critical" | "warning" | "info"
        self.details = details
        self.stats = stats or {}

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "passed": self.passed,
            "severity": self.severity,
            "details": self.details,
            "stats": self.stats,
        }


class SoilValidationSuite:
    """
    Checks a normalized SoilSample for missing fields, out-of-range values
    and a texture split that does not add up to 100%.
    """

    def __init__(self, sample: SoilSample):
        self.sample = sample
        self.results: List[ValidationResult] = []

    def check_fields_present(self) -> "SoilValidationSuite":
        """Every soil field should carry a value."""
        missing = [f for f in SOIL_FIELDS if getattr(self.sample, f) is None]
        self.results.append(ValidationResult(
            name="soil_fields_present",
            passed=len(missing) == 0,
            severity="warning",
            details=f"Missing soil fields: {missing}" if missing else "All soil fields present",
            stats={"missing_fields": missing},
        ))
        return self

    def check_value_ranges(self) -> "SoilValidationSuite":
        """Present values should be physically plausible."""
        violations = {}
        for name, (lo, hi) in SOIL_RANGES.items():
            value = getattr(self.sample, name)
            if value is not None and not (lo <= value <= hi):
                violations[name] = {"value": value, "expected_range": [lo, hi]}
        self.results.append(ValidationResult(
            name="soil_values_in_range",
            passed=len(violations) == 0,
            severity="critical",
            details=f"Out of range: {sorted(violations)}" if violations else "All values in range",
            stats={"violations": violations},
        ))
        return self

    def check_texture_total(self, tolerance: float = TEXTURE_TOTAL_TOLERANCE) -> "SoilValidationSuite":
        """sand + silt + clay should total ~100 when all three are present."""
        parts = [self.sample.sand, self.sample.silt, self.sample.clay]
        if any(p is None for p in parts):
            return self
        total = sum(parts)
        self.results.append(ValidationResult(
            name="texture_total_100",
            passed=abs(total - 100.0) <= tolerance,
            severity="warning",
            details=f"Sand + silt + clay = {total:.1f}%",
            stats={"total": total, "tolerance": tolerance},
        ))
        return self

    def run_all(self) -> List[ValidationResult]:
        """Run all validation checks."""
        (
            self.check_fields_present()
            .check_value_ranges()
            .check_texture_total()
        )
        return self.results

    def report(self) -> dict:
        """Generate validation report."""
        if not self.results:
            self.run_all()

        critical_failures = sum(
            1 for r in self.results if not r.passed and r.severity == "critical"
        )
        warnings = sum(
            1 for r in self.results if not r.passed and r.severity == "warning"
        )
        return {
            "summary": {
                "total_checks": len(self.results),
                "passed": sum(1 for r in self.results if r.passed),
                "critical_failures": critical_failures,
                "warnings": warnings,
                "overall_status": "PASS" if critical_failures == 0 else "FAIL",
            },
            "checks": [r.to_dict() for r in self.results],
        }


def validate_soil_sample(sample: SoilSample) -> List[str]:
    """Run the suite and return the details of every failed check."""
    results = SoilValidationSuite(sample).run_all()
    failed = [r.details for r in results if not r.passed]
    for detail in failed:
        logger.warning("Soil sample check failed: %s", detail)
    return failed
