"""
Tests for the calculation auditor.

The auditor is plain arithmetic — every check is tested in isolation and
through ``audit_calculations``.

Run: pytest tests/ -v
"""

from __future__ import annotations

import copy
from typing import Any

from expose_reconciler.auditor import (
    audit_calculations,
    check_breakdown_sum,
    check_occupancy,
    check_portfolio_entry,
    check_year_logic,
)
from expose_reconciler.models import PropertyType, Severity

YEAR = 2026


def _make_record(**sections: dict[str, Any]) -> dict[str, Any]:
    """Factory: a consistent single-property record with section overrides."""
    record: dict[str, Any] = {
        "property_identity": {"name_id": "Westpark", "city": "Gaimersheim"},
        "property_metrics": {
            "total_usable_area_sqm": 5000,
            "breakdown_by_use": {"office_sqm": 4000, "retail_sqm": 1000},
        },
        "financial": {
            "total_rental_income_annual_eur": 700000,
            "breakdown_by_use": {"office": 600000, "retail": 100000},
        },
        "usage_details": {"overall_occupancy_percent": 92.5},
        "project_details": {"original_year_built": 2010, "completion_year": 2012},
    }
    for name, overrides in sections.items():
        record.setdefault(name, {}).update(overrides)
    return record


# ═══════════════════════════════════════════════════════════════════════
# BREAKDOWN SUMS
# ═══════════════════════════════════════════════════════════════════════


class TestBreakdownSum:
    def test_breakdown_mismatch_is_high(self):
        """{office: 100, retail: 50} vs 200 with a 4 sqm tolerance."""
        record = _make_record(
            property_metrics={
                "total_usable_area_sqm": 200,
                "breakdown_by_use": {"office_sqm": 100, "retail_sqm": 50},
            }
        )
        result = audit_calculations(
            record, PropertyType.SINGLE, current_year=YEAR, area_tolerance_floor=0
        )

        assert result.is_valid is False
        assert len(result.issues) == 1
        issue = result.issues[0]
        assert issue.severity == Severity.HIGH
        assert issue.path == "property_metrics.total_usable_area_sqm"
        assert issue.magnitude == 50
        assert issue.description == "Total area (200) doesn't match sum of breakdown (150)"

        area_check = next(c for c in result.checks if c.description == "area_breakdown_sum")
        assert area_check.tolerance == 4
        assert area_check.absolute_diff == 50
        assert area_check.within_tolerance is False

    def test_area_floor_applies_to_small_totals(self):
        record = _make_record(
            property_metrics={
                "total_usable_area_sqm": 200,
                "breakdown_by_use": {"office_sqm": 100, "retail_sqm": 92},
            }
        )
        check, issue = check_breakdown_sum(
            record, "property_metrics", "total_usable_area_sqm", "area_breakdown_sum",
            tolerance_floor=10,
        )
        assert check.tolerance == 10
        assert check.within_tolerance is True
        assert issue is None

    def test_ratio_applies_to_large_totals(self):
        record = _make_record(
            financial={
                "total_rental_income_annual_eur": 1_000_000,
                "breakdown_by_use": {"office": 985_000},
            }
        )
        check, issue = check_breakdown_sum(
            record, "financial", "total_rental_income_annual_eur", "income_breakdown_sum",
            tolerance_floor=1000,
        )
        assert check.tolerance == 20_000
        assert issue is None

    def test_income_mismatch_is_high(self):
        record = _make_record(financial={"breakdown_by_use": {"office": 600000}})
        result = audit_calculations(record, PropertyType.SINGLE, current_year=YEAR)
        issue = result.issues[0]
        assert issue.path == "financial.total_rental_income_annual_eur"
        assert issue.severity == Severity.HIGH
        assert issue.magnitude == 100000
        assert issue.description.startswith("Total income (700000)")

    def test_null_breakdown_values_count_as_zero(self):
        record = _make_record(
            property_metrics={"breakdown_by_use": {"office_sqm": 4000, "retail_sqm": None}}
        )
        check, issue = check_breakdown_sum(
            record, "property_metrics", "total_usable_area_sqm", "area_breakdown_sum",
            tolerance_floor=10,
        )
        assert check.computed_sum == 4000
        assert issue.magnitude == 1000

    def test_no_breakdown_skips_check(self):
        record = _make_record()
        del record["property_metrics"]["breakdown_by_use"]
        assert check_breakdown_sum(
            record, "property_metrics", "total_usable_area_sqm", "area_breakdown_sum",
            tolerance_floor=10,
        ) == (None, None)

    def test_null_total_skips_check(self):
        record = _make_record(property_metrics={"total_usable_area_sqm": None})
        result = audit_calculations(record, PropertyType.SINGLE, current_year=YEAR)
        assert [c.description for c in result.checks] == ["income_breakdown_sum"]

    def test_consistent_record_passes(self):
        result = audit_calculations(_make_record(), PropertyType.SINGLE, current_year=YEAR)
        assert result.is_valid is True
        assert result.issues == []
        assert result.summary.total_checks == 2


# ═══════════════════════════════════════════════════════════════════════
# YEAR LOGIC & OCCUPANCY
# ═══════════════════════════════════════════════════════════════════════


class TestYearLogic:
    def test_completion_before_construction(self):
        record = _make_record(project_details={"original_year_built": 2015, "completion_year": 2010})
        issues = check_year_logic(record, current_year=YEAR)
        assert len(issues) == 1
        assert issues[0].severity == Severity.HIGH
        assert "logically impossible" in issues[0].description
        assert issues[0].note == "This is logically impossible"
        assert issues[0].magnitude == 5

    def test_same_year_is_ok(self):
        record = _make_record(project_details={"original_year_built": 2015, "completion_year": 2015})
        assert check_year_logic(record, current_year=YEAR) == []

    def test_implausible_year_is_medium(self):
        record = _make_record(project_details={"original_year_built": 1650, "completion_year": None})
        issues = check_year_logic(record, current_year=YEAR)
        assert len(issues) == 1
        assert issues[0].severity == Severity.MEDIUM
        assert issues[0].path == "project_details.original_year_built"

    def test_future_margin(self):
        ok = _make_record(project_details={"original_year_built": YEAR + 10, "completion_year": None})
        bad = _make_record(project_details={"original_year_built": YEAR + 11, "completion_year": None})
        assert check_year_logic(ok, current_year=YEAR) == []
        assert len(check_year_logic(bad, current_year=YEAR)) == 1

    def test_medium_issue_keeps_record_valid(self):
        record = _make_record(project_details={"original_year_built": 1700})
        result = audit_calculations(record, PropertyType.SINGLE, current_year=YEAR)
        assert result.is_valid is True
        assert result.summary.medium_severity_issues == 1


class TestOccupancy:
    def test_over_hundred_percent(self):
        issues = check_occupancy(_make_record(usage_details={"overall_occupancy_percent": 105}))
        assert len(issues) == 1
        assert issues[0].severity == Severity.HIGH
        assert "outside valid range" in issues[0].description

    def test_bounds_are_inclusive(self):
        assert check_occupancy(_make_record(usage_details={"overall_occupancy_percent": 0})) == []
        assert check_occupancy(_make_record(usage_details={"overall_occupancy_percent": 100})) == []

    def test_negative_occupancy(self):
        assert len(check_occupancy(_make_record(usage_details={"overall_occupancy_percent": -3}))) == 1

    def test_missing_occupancy(self):
        record = _make_record()
        del record["usage_details"]
        assert check_occupancy(record) == []


# ═══════════════════════════════════════════════════════════════════════
# PORTFOLIO & SHAPE
# ═══════════════════════════════════════════════════════════════════════


class TestPortfolioAudit:
    def test_entry_checks(self):
        entry = {"name_id": "Objekt 7", "occupancy_rate_percent": 120, "year_built": 1500}
        issues = check_portfolio_entry(entry, 3, current_year=YEAR)
        assert [i.severity for i in issues] == [Severity.HIGH, Severity.MEDIUM]
        assert issues[0].path == "portfolio[3].occupancy_rate_percent"
        assert issues[0].property_index == 3
        assert issues[0].property_name == "Objekt 7"

    def test_portfolio_aggregation(self):
        portfolio = [
            {"name_id": "A", "occupancy_rate_percent": 95, "year_built": 1999},
            {"name_id": "B", "occupancy_rate_percent": 101},
            "not an entry",
        ]
        result = audit_calculations(portfolio, PropertyType.PORTFOLIO, current_year=YEAR)
        assert result.is_valid is False
        assert result.checks == []
        assert result.summary.high_severity_issues == 1
        assert result.summary.by_severity == {"high": 1}

    def test_clean_portfolio_is_valid(self):
        result = audit_calculations([{"occupancy_rate_percent": 50}], "PORTFOLIO", current_year=YEAR)
        assert result.is_valid is True


class TestShapeMismatch:
    def test_list_tagged_single(self):
        result = audit_calculations([{}], PropertyType.SINGLE, current_year=YEAR)
        assert result.is_valid is False
        assert result.issues[0].severity == Severity.CRITICAL
        assert result.issues[0].path == "record_structure"

    def test_object_tagged_portfolio(self):
        result = audit_calculations({}, PropertyType.PORTFOLIO, current_year=YEAR)
        assert result.issues[0].path == "record_structure"

    def test_record_not_mutated(self):
        record = _make_record(usage_details={"overall_occupancy_percent": 105})
        snapshot = copy.deepcopy(record)
        audit_calculations(record, PropertyType.SINGLE, current_year=YEAR)
        assert record == snapshot
