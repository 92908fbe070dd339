"""
Field comparator — classify every difference between two extractions.

This is NOT a generic recursive JSON differ. Exposés come in exactly two
shapes and each shape has a small fixed field manifest plus a couple of
dynamically keyed ``breakdown_by_use`` maps. The comparator dispatches on
the shape tag and walks that manifest; breakdown maps are compared over the
union of both sides' keys, so a usage type present on one side only still
shows up (the other side reads as null).

Field-level rules (``compare_field``), in order:
  1. Canonical JSON equality          → identical
  2. non-null → null                  → removed_fabrication, ALWAYS critical
     null → non-null                  → added_missing_data, requested severity
  3. Numeric field: coercion failure  → type_mismatch (medium)
     |a - b| ≤ tolerance              → identical
     otherwise                        → numeric_discrepancy
  4. Strings, one containing the other → string_modification
  5. Anything else                    → value_change
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .categorizer import categorize_issue
from .models import (
    ComparisonReport,
    ComparisonSummary,
    ConfidenceMetrics,
    CriticalFindings,
    Difference,
    IssueType,
    PropertyType,
    Severity,
    SummaryOverview,
)
from .paths import FieldPath
from .scoring import comparison_recommendation
from .values import canonical, is_number, to_number

logger = logging.getLogger(__name__)


# ─── Constants ───────────────────────────────────────────────────────

LARGE_DISCREPANCY_THRESHOLD = 1000  # Absolute units (sqm, EUR, years...)

BREAKDOWN_KEY = "breakdown_by_use"


# ─── Field Manifest ──────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldSpec:
    """How one named field is compared."""

    name: str
    numeric: bool = False
    tolerance: float = 0.0
    severity: Severity = Severity.LOW


@dataclass(frozen=True)
class SectionSpec:
    """A named section of a single-property record."""

    name: str
    fields: tuple[FieldSpec, ...]
    breakdown: FieldSpec | None = None  # Rule applied to every breakdown_by_use key


def _area(name: str) -> FieldSpec:
    return FieldSpec(name, numeric=True, tolerance=0.01, severity=Severity.MEDIUM)


def _money(name: str) -> FieldSpec:
    return FieldSpec(name, numeric=True, tolerance=0.01, severity=Severity.HIGH)


def _count(name: str) -> FieldSpec:
    return FieldSpec(name, numeric=True, tolerance=0, severity=Severity.MEDIUM)


SINGLE_PROPERTY_MANIFEST: tuple[SectionSpec, ...] = (
    SectionSpec(
        "property_identity",
        (FieldSpec("name_id"), FieldSpec("city"), FieldSpec("postal_code"), FieldSpec("streets")),
    ),
    SectionSpec(
        "property_metrics",
        (_area("total_usable_area_sqm"), _area("land_area_sqm")),
        breakdown=_area(BREAKDOWN_KEY),
    ),
    SectionSpec(
        "financial",
        (_money("total_rental_income_annual_eur"), _money("potential_rental_income_annual_eur")),
        breakdown=_money(BREAKDOWN_KEY),
    ),
    SectionSpec(
        "usage_details",
        (FieldSpec("overall_occupancy_percent", numeric=True, tolerance=0.01, severity=Severity.MEDIUM),),
    ),
    SectionSpec(
        "project_details",
        (
            _count("original_year_built"),
            _count("completion_year"),
            FieldSpec("project_type", severity=Severity.MEDIUM),
        ),
    ),
    SectionSpec("unit_counts", (_count("parking_spaces"),)),
)

PORTFOLIO_ENTRY_MANIFEST: tuple[FieldSpec, ...] = (
    FieldSpec("name_id"),
    FieldSpec("city"),
    FieldSpec("postal_code"),
    FieldSpec("street"),
    _money("rental_income_annual_eur"),
    _area("usable_area_sqm"),
    _area("land_area_sqm"),
    FieldSpec("occupancy_rate_percent", numeric=True, tolerance=0.01, severity=Severity.MEDIUM),
    _count("year_built"),
)


# ─── Single Field Comparison ─────────────────────────────────────────


def compare_field(
    path: FieldPath | str,
    left: Any,
    right: Any,
    *,
    tolerance: float = 0.0,
    severity: Severity = Severity.LOW,
    numeric: bool | None = None,
) -> Difference | None:
    """Compare two values at one labeled location.

    Args:
        path: Where the values live (rendered into the Difference).
        left, right: The two values; either may be None.
        tolerance: Absolute numeric deviation still treated as equal.
        severity: Severity for ordinary differences. Fabrications are
            always critical, whatever is requested here.
        numeric: Force (True) or forbid (False) the numeric path. When None,
            the numeric path is taken if either value is a real number.

    Returns:
        None when the values are equivalent, otherwise the Difference.
    """
    label = str(path)

    if canonical(left) == canonical(right):
        return None

    category = categorize_issue(left, right)

    # Null transitions take precedence over any type handling
    if left is None or right is None:
        return Difference(
            path=label,
            severity=Severity.CRITICAL if category.is_fabrication else severity,
            left_value=left,
            right_value=right,
            issue_type=category.type,
            notes=category.notes,
        )

    if numeric is None:
        numeric = is_number(left) or is_number(right)

    if numeric:
        left_num, right_num = to_number(left), to_number(right)
        if left_num is None or right_num is None:
            return Difference(
                path=label,
                severity=Severity.MEDIUM,
                left_value=left,
                right_value=right,
                issue_type=IssueType.TYPE_MISMATCH,
                notes="One or both values are not valid numbers",
            )

        diff = abs(left_num - right_num)
        if diff <= tolerance:
            return None

        percent = (diff / abs(left_num)) * 100 if left_num != 0 else 0.0
        return Difference(
            path=label,
            severity=severity,
            left_value=left,
            right_value=right,
            issue_type=IssueType.NUMERIC_DISCREPANCY,
            notes=(
                "Large discrepancy detected"
                if diff > LARGE_DISCREPANCY_THRESHOLD
                else "Small discrepancy"
            ),
            absolute_diff=diff,
            percent_diff=round(percent, 2),
        )

    return Difference(
        path=label,
        severity=severity,
        left_value=left,
        right_value=right,
        issue_type=category.type,
        notes=category.notes,
    )


# ─── Whole-Record Comparison ─────────────────────────────────────────


class ExtractionComparator:
    """Compares two extractions of the same document, field by field.

    Usage:
        comparator = ExtractionComparator()
        report = comparator.compare(first_attempt, corrected, PropertyType.SINGLE)
        summary = comparator.generate_summary(report)
    """

    def __init__(
        self,
        single_manifest: tuple[SectionSpec, ...] = SINGLE_PROPERTY_MANIFEST,
        portfolio_manifest: tuple[FieldSpec, ...] = PORTFOLIO_ENTRY_MANIFEST,
    ):
        self.single_manifest = single_manifest
        self.portfolio_manifest = portfolio_manifest

    def compare(
        self,
        left: Any,
        right: Any,
        property_type: PropertyType | str,
        confidence_metrics: ConfidenceMetrics | dict | None = None,
    ) -> ComparisonReport:
        """Compare two whole records of the same shape.

        Args:
            left: Baseline extraction (e.g. the first, unverified attempt).
            right: Candidate extraction (e.g. the verified/corrected one).
            property_type: Shape tag shared by both records.
            confidence_metrics: What is known about the right side's verification.
        """
        if isinstance(confidence_metrics, dict):
            confidence_metrics = ConfidenceMetrics.model_validate(confidence_metrics)

        report = ComparisonReport(
            property_type=PropertyType(property_type),
            confidence_metrics=confidence_metrics or ConfidenceMetrics(),
        )

        if report.property_type == PropertyType.SINGLE:
            self._compare_single(left, right, report)
        else:
            self._compare_portfolio(left, right, report)

        report.stats.improvement_detected = any(
            d.severity in (Severity.HIGH, Severity.CRITICAL) for d in report.differences
        )
        return report

    # ─── Shape Walkers ───────────────────────────────────────────────

    def _compare_single(self, left: Any, right: Any, report: ComparisonReport) -> None:
        if not isinstance(left, Mapping) or not isinstance(right, Mapping):
            self._structural(
                report,
                "property_structure",
                Severity.CRITICAL,
                "One result is not a single-property object",
                left_type=type(left).__name__,
                right_type=type(right).__name__,
            )
            return

        for section in self.single_manifest:
            left_section = left.get(section.name)
            right_section = right.get(section.name)

            if left_section is None and right_section is None:
                continue

            if left_section is None or right_section is None:
                self._structural(
                    report,
                    section.name,
                    Severity.HIGH,
                    "Section missing in one extraction",
                    left_exists=left_section is not None,
                    right_exists=right_section is not None,
                )
                continue

            if not isinstance(left_section, Mapping) or not isinstance(right_section, Mapping):
                self._structural(
                    report,
                    section.name,
                    Severity.HIGH,
                    "Section is not an object in one or both extractions",
                    left_type=type(left_section).__name__,
                    right_type=type(right_section).__name__,
                )
                continue

            base = FieldPath.of(section.name)
            for spec in section.fields:
                self._compare_one(
                    report,
                    base.child(spec.name),
                    left_section.get(spec.name),
                    right_section.get(spec.name),
                    spec,
                )

            if section.breakdown is not None:
                self._compare_breakdown(
                    report,
                    base.child(BREAKDOWN_KEY),
                    left_section.get(BREAKDOWN_KEY),
                    right_section.get(BREAKDOWN_KEY),
                    section.breakdown,
                )

    def _compare_breakdown(
        self,
        report: ComparisonReport,
        base: FieldPath,
        left: Any,
        right: Any,
        spec: FieldSpec,
    ) -> None:
        """Compare a breakdown map over the union of both sides' keys."""
        left_map = left if isinstance(left, Mapping) else {}
        right_map = right if isinstance(right, Mapping) else {}

        # Union, keeping first-seen order: left keys, then right-only keys
        for usage_type in dict.fromkeys([*left_map, *right_map]):
            self._compare_one(
                report,
                base.child(usage_type),
                left_map.get(usage_type),
                right_map.get(usage_type),
                spec,
            )

    def _compare_portfolio(self, left: Any, right: Any, report: ComparisonReport) -> None:
        if not isinstance(left, list) or not isinstance(right, list):
            self._structural(
                report,
                "portfolio_structure",
                Severity.CRITICAL,
                "One result is not an array",
                left_type=type(left).__name__,
                right_type=type(right).__name__,
            )
            return

        if len(left) != len(right):
            self._structural(
                report,
                "portfolio_length",
                Severity.CRITICAL,
                "Different number of properties extracted",
                left_count=len(left),
                right_count=len(right),
            )

        for i in range(max(len(left), len(right))):
            left_entry = left[i] if i < len(left) else None
            right_entry = right[i] if i < len(right) else None
            entry_path = FieldPath.of("portfolio", i)

            if not isinstance(left_entry, Mapping) or not isinstance(right_entry, Mapping):
                self._structural(
                    report,
                    str(entry_path),
                    Severity.CRITICAL,
                    "Property exists in one extraction but not the other",
                    left_exists=isinstance(left_entry, Mapping),
                    right_exists=isinstance(right_entry, Mapping),
                )
                continue

            for spec in self.portfolio_manifest:
                self._compare_one(
                    report,
                    entry_path.child(spec.name),
                    left_entry.get(spec.name),
                    right_entry.get(spec.name),
                    spec,
                )

    # ─── Bookkeeping ─────────────────────────────────────────────────

    def _compare_one(
        self,
        report: ComparisonReport,
        path: FieldPath,
        left: Any,
        right: Any,
        spec: FieldSpec,
    ) -> None:
        """Compare one field and count it as exactly one of identical/different."""
        report.stats.compared += 1
        difference = compare_field(
            path,
            left,
            right,
            tolerance=spec.tolerance,
            severity=spec.severity,
            numeric=True if spec.numeric else None,
        )
        if difference is None:
            report.stats.identical += 1
        else:
            report.stats.different += 1
            report.differences.append(difference)

    @staticmethod
    def _structural(
        report: ComparisonReport,
        path: str,
        severity: Severity,
        notes: str,
        **details: Any,
    ) -> None:
        report.differences.append(
            Difference(
                path=path,
                severity=severity,
                issue_type=IssueType.STRUCTURAL_MISMATCH,
                notes=notes,
                details=details,
            )
        )

    # ─── Summary & Recommendation ────────────────────────────────────

    def get_recommendation(self, report: ComparisonReport) -> str:
        fabrications = sum(
            1 for d in report.differences if d.issue_type == IssueType.REMOVED_FABRICATION
        )
        critical = sum(1 for d in report.differences if d.severity == Severity.CRITICAL)
        return comparison_recommendation(
            fabricated=fabrications,
            critical=critical,
            confidence=report.confidence_metrics.validated_confidence,
            difference_count=len(report.differences),
        )

    def generate_summary(self, report: ComparisonReport) -> ComparisonSummary:
        """Condense a comparison report into counts and a recommendation."""
        stats = report.stats
        differences = report.differences

        difference_rate = (
            f"{stats.different / stats.compared * 100:.2f}%" if stats.compared > 0 else "N/A"
        )

        return ComparisonSummary(
            overview=SummaryOverview(
                fields_compared=stats.compared,
                fields_different=stats.different,
                fields_identical=stats.identical,
                difference_rate=difference_rate,
            ),
            critical_findings=CriticalFindings(
                high_severity_issues=sum(
                    1 for d in differences if d.severity in (Severity.HIGH, Severity.CRITICAL)
                ),
                fabrications_detected=sum(
                    1 for d in differences if d.issue_type == IssueType.REMOVED_FABRICATION
                ),
                missing_data_found=sum(
                    1 for d in differences if d.issue_type == IssueType.ADDED_MISSING_DATA
                ),
            ),
            validation_quality=report.confidence_metrics,
            recommendation=self.get_recommendation(report),
        )

    def log_comparison(self, report: ComparisonReport) -> ComparisonSummary:
        """Log a formatted comparison report and return its summary."""
        summary = self.generate_summary(report)

        logger.info("=== EXTRACTION COMPARISON REPORT ===")
        logger.info("Fields compared: %d", summary.overview.fields_compared)
        logger.info("Differences found: %d", summary.overview.fields_different)
        logger.info("Fabrications detected: %d", summary.critical_findings.fabrications_detected)
        logger.info("Missing data found: %d", summary.critical_findings.missing_data_found)
        if summary.validation_quality.validated_confidence is not None:
            logger.info(
                "Validated confidence score: %s%%", summary.validation_quality.validated_confidence
            )
        logger.info("Recommendation: %s", summary.recommendation)

        for diff in report.differences[:5]:
            logger.info("  - %s: %s (%s)", diff.path, diff.issue_type.value, diff.severity.value)
            logger.info("    Left:  %s", canonical(diff.left_value))
            logger.info("    Right: %s", canonical(diff.right_value))

        return summary


def compare_extractions(
    left: Any,
    right: Any,
    property_type: PropertyType | str,
    confidence_metrics: ConfidenceMetrics | dict | None = None,
) -> ComparisonReport:
    """Module-level shortcut for ``ExtractionComparator().compare(...)``."""
    return ExtractionComparator().compare(left, right, property_type, confidence_metrics)
