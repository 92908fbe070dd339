"""
Reconciliation pipeline — orchestrates the full workflow.

Flow:
  ┌───────────┐   ┌──────────────┐
  │ Extracted │   │ Verification │   ← both produced upstream by the LLM
  │  record   │   │    report    │
  └─────┬─────┘   └──────┬───────┘
        │                │  (unparseable → no corrections)
        └───────┬────────┘
         ┌──────▼──────┐
         │ Corrections │   ← deep copy, path-addressed fixes
         └──────┬──────┘
         ┌──────▼──────┐
         │  Auditor    │   ← sums, ranges, year logic
         └──────┬──────┘
         ┌──────▼──────┐
         │  Scoring    │   ← confidence + recommendation
         └──────┬──────┘
         ┌──────▼──────┐
         │   Report    │   ← corrected data + what changed
         └─────────────┘

Design principles:
  - Every stage is a pure function of its inputs; the caller's record is
    never mutated.
  - Nothing here is fatal: a missing section is "nothing to check", an
    unusable verification report means "no corrections".
  - The pipeline keeps no per-request state and can be shared across threads.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .auditor import audit_calculations
from .comparator import ExtractionComparator
from .corrections import apply_intelligent_corrections
from .models import (
    ComparisonReport,
    ComparisonSummary,
    ConfidenceMetrics,
    Difference,
    PropertyType,
    ReconciliationReport,
)
from .schema import infer_property_type, sanitize_record, validate_schema
from .scoring import effective_summary, score
from .values import canonical
from .verification import parse_verification_report

logger = logging.getLogger(__name__)


class ReconciliationPipeline:
    """Orchestrates correction, audit and scoring of one extracted record.

    Usage:
        pipeline = ReconciliationPipeline()
        report = pipeline.run(record, PropertyType.SINGLE, verification_json)
        if report.confidence_score is None:
            # verification unusable — record returned unchanged
            ...
    """

    def __init__(self, comparator: ExtractionComparator | None = None, current_year: int | None = None):
        self.comparator = comparator or ExtractionComparator()
        self.current_year = current_year

    def run(
        self,
        record: Any,
        property_type: PropertyType | str | None = None,
        verification: Any = None,
        *,
        sanitize: bool = False,
    ) -> ReconciliationReport:
        """Execute the full pipeline on one extracted record.

        Args:
            record: Single-property dict or portfolio list, as extracted.
            property_type: Shape tag; inferred from the record when omitted.
            verification: Verification report (model, dict or model text).
            sanitize: Normalize numeric fields (German number format, units)
                with ``sanitize_record`` before anything else runs.

        Returns:
            ReconciliationReport with the corrected data and its scoring.
        """
        kind = PropertyType(property_type) if property_type else infer_property_type(record)
        if sanitize:
            record = sanitize_record(record)
        logger.info("Starting reconciliation (%s, %d fields extracted)", kind.value, count_extracted_fields(record))

        # ── Step 1: Verification intake ─────────────────────────────
        report = parse_verification_report(verification)
        if verification is not None and report is None:
            logger.warning("Verification unusable — returning original record, confidence unknown")

        # ── Step 2: Audit the raw record (for correction logging) ───
        pre_audit = audit_calculations(record, kind, current_year=self.current_year)

        # ── Step 3: Apply corrections ───────────────────────────────
        corrected = apply_intelligent_corrections(record, report, pre_audit)
        corrections_applied = canonical(record) != canonical(corrected)
        changes: list[Difference] = []
        if corrections_applied:
            # Compared by the record's own shape: a tag mismatch is not an edit
            changes = self.comparator.compare(record, corrected, infer_property_type(record)).differences
            logger.info("Applied corrections to %d field(s)", len(changes))

        # ── Step 4: Audit the corrected record ──────────────────────
        calculation = audit_calculations(corrected, kind, current_year=self.current_year)
        if not calculation.is_valid:
            logger.warning(
                "Calculation audit failed: %s",
                ", ".join(f"{n} {sev}" for sev, n in calculation.summary.by_severity.items()),
            )

        # ── Step 5: Score ───────────────────────────────────────────
        scored = score(report, calculation)

        # ── Step 6: Schema shape ────────────────────────────────────
        schema_validation = validate_schema(corrected, current_year=self.current_year)
        if not schema_validation.valid or schema_validation.warnings:
            logger.warning(
                "Schema validation: %d error(s), %d warning(s)",
                len(schema_validation.errors),
                len(schema_validation.warnings),
            )

        logger.info(
            "Reconciliation completed (confidence=%s, recommendation=%s)",
            scored.confidence,
            scored.recommendation,
        )

        return ReconciliationReport(
            data=corrected,
            property_type=kind,
            corrections_applied=corrections_applied,
            changes=changes,
            confidence_score=scored.confidence,
            recommendation=scored.recommendation,
            verification_summary=effective_summary(report) if report else None,
            critical_issues=report.critical_issues if report else [],
            calculation_validation=calculation,
            schema_validation=schema_validation,
            fields_extracted=count_extracted_fields(corrected),
        )

    def compare(
        self,
        left: Any,
        right: Any,
        property_type: PropertyType | str | None = None,
        confidence_metrics: ConfidenceMetrics | dict | None = None,
    ) -> tuple[ComparisonReport, ComparisonSummary]:
        """Compare two extractions of the same document and summarize."""
        kind = PropertyType(property_type) if property_type else infer_property_type(left)
        comparison = self.comparator.compare(left, right, kind, confidence_metrics)
        summary = self.comparator.log_comparison(comparison)
        return comparison, summary


def count_extracted_fields(data: Any) -> int:
    """Count non-null leaves; a list inside a section counts one field per element."""
    if isinstance(data, list):
        return sum(count_extracted_fields(entry) for entry in data)
    if not isinstance(data, Mapping):
        return 0 if data is None else 1

    count = 0
    for value in data.values():
        if value is None:
            continue
        if isinstance(value, Mapping):
            count += count_extracted_fields(value)
        elif isinstance(value, list):
            count += len(value)
        else:
            count += 1
    return count
