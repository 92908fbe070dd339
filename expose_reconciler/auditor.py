"""
Calculation auditor — arithmetic and range consistency of one record.

These checks run PURE CODE against an extracted (usually already corrected)
record. They never call an LLM and never change the record: a breakdown
that does not add up to its stated total is reported, not repaired.

Each check function:
  - Takes the record (or one portfolio entry) plus explicit thresholds
  - Returns the issues it found (empty = all clear)
  - Is independently testable

``audit_calculations()`` dispatches on the shape tag, runs every check and
aggregates the result.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from typing import Any

from .models import (
    CalculationCheck,
    CalculationIssue,
    PropertyType,
    Severity,
    ValidationResult,
    ValidationSummary,
)
from .values import format_number, to_number


# ─── Constants ───────────────────────────────────────────────────────

AREA_TOLERANCE_FLOOR = 10.0  # sqm
INCOME_TOLERANCE_FLOOR = 1000.0  # EUR
TOLERANCE_RATIO = 0.02  # 2% of the stated total

MIN_PLAUSIBLE_YEAR = 1800
FUTURE_YEAR_MARGIN = 10

_INVALIDATING = (Severity.HIGH, Severity.CRITICAL)


# ─── Orchestrator ────────────────────────────────────────────────────


def audit_calculations(
    record: Any,
    property_type: PropertyType | str,
    *,
    current_year: int | None = None,
    area_tolerance_floor: float = AREA_TOLERANCE_FLOOR,
    income_tolerance_floor: float = INCOME_TOLERANCE_FLOOR,
    tolerance_ratio: float = TOLERANCE_RATIO,
) -> ValidationResult:
    """Run every calculation check appropriate for the record's shape."""
    if current_year is None:
        current_year = date.today().year

    checks: list[CalculationCheck] = []
    issues: list[CalculationIssue] = []

    if PropertyType(property_type) == PropertyType.SINGLE:
        if not isinstance(record, Mapping):
            issues.append(_shape_issue(record, "a single-property object"))
        else:
            for section, total_field, description, floor in (
                ("property_metrics", "total_usable_area_sqm", "area_breakdown_sum", area_tolerance_floor),
                ("financial", "total_rental_income_annual_eur", "income_breakdown_sum", income_tolerance_floor),
            ):
                check, issue = check_breakdown_sum(
                    record, section, total_field, description,
                    tolerance_floor=floor, tolerance_ratio=tolerance_ratio,
                )
                if check is not None:
                    checks.append(check)
                if issue is not None:
                    issues.append(issue)

            issues.extend(check_year_logic(record, current_year=current_year))
            issues.extend(check_occupancy(record))
    else:
        if not isinstance(record, list):
            issues.append(_shape_issue(record, "a portfolio array"))
        else:
            for index, entry in enumerate(record):
                if isinstance(entry, Mapping):
                    issues.extend(check_portfolio_entry(entry, index, current_year=current_year))

    return _aggregate(checks, issues)


def _aggregate(checks: list[CalculationCheck], issues: list[CalculationIssue]) -> ValidationResult:
    by_severity: dict[str, int] = {}
    for issue in issues:
        by_severity[issue.severity.value] = by_severity.get(issue.severity.value, 0) + 1

    return ValidationResult(
        is_valid=not any(i.severity in _INVALIDATING for i in issues),
        checks=checks,
        issues=issues,
        summary=ValidationSummary(
            total_checks=len(checks),
            high_severity_issues=by_severity.get(Severity.HIGH.value, 0),
            medium_severity_issues=by_severity.get(Severity.MEDIUM.value, 0),
            by_severity=by_severity,
        ),
    )


def _shape_issue(record: Any, expected: str) -> CalculationIssue:
    return CalculationIssue(
        severity=Severity.CRITICAL,
        path="record_structure",
        description=f"Record is a {type(record).__name__}, expected {expected}",
    )


# ─── Single-Property Checks ──────────────────────────────────────────


def check_breakdown_sum(
    record: Mapping,
    section: str,
    total_field: str,
    description: str,
    *,
    tolerance_floor: float,
    tolerance_ratio: float = TOLERANCE_RATIO,
) -> tuple[CalculationCheck | None, CalculationIssue | None]:
    """Compare the sum of ``section.breakdown_by_use`` with ``section.total_field``.

    Tolerance is ``max(tolerance_floor, total * tolerance_ratio)``. Null or
    non-numeric breakdown values count as zero. Nothing is checked unless
    the section has a breakdown map and a non-zero numeric total.

    Returns:
        (check, issue) — check is None when nothing was checked, issue is
        None when the sum is within tolerance.
    """
    data = record.get(section)
    if not isinstance(data, Mapping):
        return None, None

    breakdown = data.get("breakdown_by_use")
    total = to_number(data.get(total_field))
    if not isinstance(breakdown, Mapping) or not total:
        return None, None

    computed = sum(to_number(v) or 0.0 for v in breakdown.values())
    diff = abs(computed - total)
    tolerance = max(tolerance_floor, total * tolerance_ratio)

    check = CalculationCheck(
        description=description,
        computed_sum=computed,
        stated_total=total,
        absolute_diff=diff,
        tolerance=tolerance,
        within_tolerance=diff <= tolerance,
    )
    if check.within_tolerance:
        return check, None

    noun = "area" if "area" in description else "income"
    return check, CalculationIssue(
        severity=Severity.HIGH,
        path=f"{section}.{total_field}",
        description=(
            f"Total {noun} ({format_number(total)}) doesn't match sum of breakdown "
            f"({format_number(computed)})"
        ),
        magnitude=diff,
    )


def check_year_logic(record: Mapping, *, current_year: int) -> list[CalculationIssue]:
    """Year built must be plausible; completion cannot precede construction."""
    issues: list[CalculationIssue] = []

    details = record.get("project_details")
    if not isinstance(details, Mapping):
        return issues

    built = to_number(details.get("original_year_built"))
    completed = to_number(details.get("completion_year"))

    if built is not None and not _year_plausible(built, current_year):
        issues.append(
            CalculationIssue(
                severity=Severity.MEDIUM,
                path="project_details.original_year_built",
                description=(
                    f"Year built ({format_number(built)}) is outside reasonable range "
                    f"({MIN_PLAUSIBLE_YEAR}-{current_year + FUTURE_YEAR_MARGIN})"
                ),
            )
        )

    if built is not None and completed is not None and completed < built:
        issues.append(
            CalculationIssue(
                severity=Severity.HIGH,
                path="project_details",
                description=(
                    f"Completion year ({format_number(completed)}) is before construction "
                    f"year ({format_number(built)}) - logically impossible"
                ),
                magnitude=built - completed,
                note="This is logically impossible",
            )
        )

    return issues


def check_occupancy(record: Mapping) -> list[CalculationIssue]:
    """Overall occupancy is a percentage and must lie within 0–100."""
    usage = record.get("usage_details")
    if not isinstance(usage, Mapping):
        return []

    occupancy = to_number(usage.get("overall_occupancy_percent"))
    if occupancy is None or 0 <= occupancy <= 100:
        return []

    return [
        CalculationIssue(
            severity=Severity.HIGH,
            path="usage_details.overall_occupancy_percent",
            description=f"Occupancy rate ({format_number(occupancy)}%) is outside valid range (0-100%)",
            magnitude=occupancy,
        )
    ]


# ─── Portfolio Checks ────────────────────────────────────────────────


def check_portfolio_entry(
    entry: Mapping, index: int, *, current_year: int
) -> list[CalculationIssue]:
    """Per-property range checks; portfolios carry no breakdown maps."""
    issues: list[CalculationIssue] = []
    name = entry.get("name_id") if isinstance(entry.get("name_id"), str) else None

    occupancy = to_number(entry.get("occupancy_rate_percent"))
    if occupancy is not None and not 0 <= occupancy <= 100:
        issues.append(
            CalculationIssue(
                severity=Severity.HIGH,
                path=f"portfolio[{index}].occupancy_rate_percent",
                description=f"Occupancy ({format_number(occupancy)}%) outside valid range",
                magnitude=occupancy,
                property_index=index,
                property_name=name,
            )
        )

    year = to_number(entry.get("year_built"))
    if year is not None and not _year_plausible(year, current_year):
        issues.append(
            CalculationIssue(
                severity=Severity.MEDIUM,
                path=f"portfolio[{index}].year_built",
                description=f"Year ({format_number(year)}) outside reasonable range",
                property_index=index,
                property_name=name,
            )
        )

    return issues


def _year_plausible(year: float, current_year: int) -> bool:
    return MIN_PLAUSIBLE_YEAR <= year <= current_year + FUTURE_YEAR_MARGIN
