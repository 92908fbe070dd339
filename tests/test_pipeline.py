"""
End-to-end tests for the reconciliation pipeline.

Run: pytest tests/ -v
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

import pytest

from expose_reconciler.models import IssueType, PropertyType, Severity
from expose_reconciler.pipeline import ReconciliationPipeline, count_extracted_fields
from expose_reconciler.scoring import NO_VALIDATION

RECORD: dict[str, Any] = {
    "property_identity": {
        "name_id": "Westpark",
        "city": "Gaimersheim/Ingolstadt",
        "postal_code": "85080",
        "streets": ["Westparkstraße 12", "Westparkstraße 14"],
    },
    "property_metrics": {
        "total_usable_area_sqm": 5000,
        "land_area_sqm": 42277,
        "breakdown_by_use": {"office_sqm": 4000, "retail_sqm": 1000},
    },
    "financial": {"total_rental_income_annual_eur": 700000},
    "usage_details": {"overall_occupancy_percent": 92.5},
    "project_details": {"original_year_built": 2010, "completion_year": 2012},
}

VERIFICATION: dict[str, Any] = {
    "verification_summary": {
        "total_fields_checked": 20,
        "correct": 18,
        "incorrect": 1,
        "fabricated": 1,
    },
    "field_verifications": [
        {"field_path": "property_metrics.land_area_sqm", "status": "FABRICATED",
         "extracted_value": 42277, "correct_value": None},
        {"field_path": "property_identity.city", "status": "INCORRECT",
         "extracted_value": "Gaimersheim/Ingolstadt", "correct_value": "Gaimersheim"},
    ],
    "critical_issues": [],
}


def _pipeline() -> ReconciliationPipeline:
    return ReconciliationPipeline(current_year=2026)


class TestPipeline:
    def test_corrections_applied(self):
        report = _pipeline().run(RECORD, PropertyType.SINGLE, VERIFICATION)

        assert report.corrections_applied is True
        assert report.data["property_metrics"]["land_area_sqm"] is None
        assert report.data["property_identity"]["city"] == "Gaimersheim"
        assert report.confidence_score == 90.0
        assert report.recommendation == "ACCEPTABLE CONFIDENCE - Data has been validated and corrected. Spot checks recommended."

    def test_changes_describe_corrections(self):
        report = _pipeline().run(RECORD, PropertyType.SINGLE, VERIFICATION)
        by_path = {d.path: d for d in report.changes}

        assert set(by_path) == {"property_metrics.land_area_sqm", "property_identity.city"}
        land = by_path["property_metrics.land_area_sqm"]
        assert land.issue_type == IssueType.REMOVED_FABRICATION
        assert land.severity == Severity.CRITICAL
        assert land.left_value == 42277
        assert by_path["property_identity.city"].issue_type == IssueType.STRING_MODIFICATION

    def test_input_not_mutated(self):
        record = copy.deepcopy(RECORD)
        _pipeline().run(record, PropertyType.SINGLE, VERIFICATION)
        assert record == RECORD

    def test_verification_as_model_text(self):
        text = "Verification done.\n```json\n" + json.dumps(VERIFICATION) + "\n```"
        report = _pipeline().run(RECORD, PropertyType.SINGLE, text)
        assert report.data["property_metrics"]["land_area_sqm"] is None
        assert report.verification_summary.fabricated == 1

    def test_unparseable_verification_keeps_record(self):
        report = _pipeline().run(RECORD, PropertyType.SINGLE, "I could not verify this document.")
        assert report.data == RECORD
        assert report.corrections_applied is False
        assert report.changes == []
        assert report.confidence_score is None
        assert report.verification_summary is None

    def test_no_verification(self):
        report = _pipeline().run(RECORD)
        assert report.property_type == PropertyType.SINGLE
        assert report.confidence_score is None
        assert report.recommendation == NO_VALIDATION

    def test_calculation_audit_on_corrected_record(self):
        record = copy.deepcopy(RECORD)
        record["usage_details"]["overall_occupancy_percent"] = 105
        report = _pipeline().run(record, PropertyType.SINGLE, VERIFICATION)
        assert report.calculation_validation.is_valid is False
        assert report.calculation_validation.summary.high_severity_issues == 1

    def test_verifier_can_fix_audit_problem(self):
        verification = copy.deepcopy(VERIFICATION)
        verification["field_verifications"].append({
            "field_path": "usage_details.overall_occupancy_percent",
            "status": "INCORRECT",
            "correct_value": 95,
        })
        record = copy.deepcopy(RECORD)
        record["usage_details"]["overall_occupancy_percent"] = 105
        report = _pipeline().run(record, PropertyType.SINGLE, verification)
        assert report.calculation_validation.is_valid is True

    def test_schema_validation_attached(self):
        report = _pipeline().run(RECORD, PropertyType.SINGLE, VERIFICATION)
        assert report.schema_validation.valid is True

    def test_critical_issues_passed_through(self):
        verification = copy.deepcopy(VERIFICATION)
        verification["critical_issues"] = ["Parking area in sqm looks fabricated"]
        record = copy.deepcopy(RECORD)
        record["property_metrics"]["breakdown_by_use"]["parking_sqm"] = 450
        report = _pipeline().run(record, PropertyType.SINGLE, verification)
        assert report.critical_issues == ["Parking area in sqm looks fabricated"]
        assert report.data["property_metrics"]["breakdown_by_use"]["parking_sqm"] is None

    def test_portfolio_inferred(self):
        portfolio = [{"name_id": "A", "city": "Berlin", "occupancy_rate_percent": 120}]
        report = _pipeline().run(portfolio)
        assert report.property_type == PropertyType.PORTFOLIO
        assert report.calculation_validation.issues[0].path == "portfolio[0].occupancy_rate_percent"
        assert report.fields_extracted == 3


class TestPipelineEdgeCases:
    def test_unknown_status_keeps_other_findings(self):
        verification = copy.deepcopy(VERIFICATION)
        verification["field_verifications"].append(
            {"field_path": "financial.total_rental_income_annual_eur", "status": "PARTIALLY_CORRECT"}
        )
        report = _pipeline().run(RECORD, PropertyType.SINGLE, verification)

        assert report.data["property_metrics"]["land_area_sqm"] is None
        assert report.data["property_identity"]["city"] == "Gaimersheim"
        assert report.confidence_score == 90.0

    def test_shape_tag_mismatch_is_not_a_change(self):
        report = _pipeline().run([{"name_id": "a"}], PropertyType.SINGLE, None)
        assert report.corrections_applied is False
        assert report.changes == []
        assert report.calculation_validation.issues[0].path == "record_structure"

    def test_added_section_listed_as_change(self):
        verification = {
            "field_verifications": [
                {"field_path": "unit_counts.parking_spaces", "status": "MISSING", "correct_value": 140},
            ],
        }
        report = _pipeline().run(RECORD, PropertyType.SINGLE, verification)
        assert report.data["unit_counts"] == {"parking_spaces": 140}
        assert [d.path for d in report.changes] == ["unit_counts"]

    def test_audit_failure_logs_every_severity(self, caplog: pytest.LogCaptureFixture):
        caplog.set_level(logging.WARNING, logger="expose_reconciler.pipeline")
        _pipeline().run({"a": 1}, PropertyType.PORTFOLIO)
        assert "Calculation audit failed: 1 critical" in caplog.text

    def test_sanitize_before_reconciling(self):
        record = copy.deepcopy(RECORD)
        record["property_metrics"]["total_usable_area_sqm"] = "5.000"
        record["financial"]["total_rental_income_annual_eur"] = "700.000 EUR"

        report = _pipeline().run(record, PropertyType.SINGLE, VERIFICATION, sanitize=True)

        assert report.data["property_metrics"]["total_usable_area_sqm"] == 5000.0
        assert report.data["financial"]["total_rental_income_annual_eur"] == 700000.0
        assert report.calculation_validation.is_valid is True
        assert record["property_metrics"]["total_usable_area_sqm"] == "5.000"
        assert {d.path for d in report.changes} == {
            "property_metrics.land_area_sqm", "property_identity.city",
        }


class TestPipelineCompare:
    def test_compare_returns_report_and_summary(self):
        corrected = copy.deepcopy(RECORD)
        corrected["property_metrics"]["land_area_sqm"] = None
        report, summary = _pipeline().compare(
            RECORD, corrected, confidence_metrics={"validated_confidence": 90}
        )
        assert report.property_type == PropertyType.SINGLE
        assert summary.critical_findings.fabrications_detected == 1
        assert summary.recommendation.startswith("RECOMMENDED")


class TestCountExtractedFields:
    def test_single(self):
        # 3 identity scalars + 2 streets + 2 metrics + 2 breakdown + 1 + 1 + 2
        assert count_extracted_fields(RECORD) == 13

    def test_nulls_not_counted(self):
        assert count_extracted_fields({"a": {"b": None, "c": 1}, "d": None}) == 1

    def test_portfolio(self):
        assert count_extracted_fields([{"a": 1, "b": None}, {"a": 2, "b": 3}]) == 3
