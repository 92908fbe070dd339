#!/usr/bin/env python3
"""
Exposé Extraction Reconciler — Entry Point
==========================================

Runs the reconciliation pipeline on an extracted record and its
verification report, then prints a coloured report.

Usage:
    python main.py                                  # Built-in sample exposé
    python main.py record.json                      # Record only, no verification
    python main.py record.json verification.json    # Record + verification report

Exit code is 0 when the corrected record passes the calculation audit.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from expose_reconciler.config import Settings
from expose_reconciler.models import Severity
from expose_reconciler.pipeline import ReconciliationPipeline

# ─── Load .env if available (optional dependency) ────────────────────
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass


# ─── Sample Extraction — Flawed on Purpose ──────────────────────────

SAMPLE_RECORD = {
    "property_identity": {
        "name_id": "Westpark Office Campus",
        "city": "Gaimersheim/Ingolstadt",
        "postal_code": "85080",
        "streets": ["Westparkstraße 12", "Westparkstraße 14"],
    },
    "property_metrics": {
        "total_usable_area_sqm": 5200,
        "land_area_sqm": 8000,
        "breakdown_by_use": {
            "office_sqm": 3900,
            "retail_sqm": 600,
            "parking_sqm": 450,
        },
    },
    "financial": {
        "total_rental_income_annual_eur": 720000,
        "potential_rental_income_annual_eur": 780000,
        "breakdown_by_use": {"office": 610000, "retail": 98000},
    },
    "usage_details": {"overall_occupancy_percent": 92.5},
    "project_details": {
        "original_year_built": 2010,
        "completion_year": 2008,
        "project_type": "refurbishment",
    },
    "unit_counts": {"parking_spaces": 140},
}

SAMPLE_VERIFICATION = """\
Verification complete. Results below.

```json
{
  "verification_summary": {
    "total_fields_checked": 14,
    "correct": 10,
    "incorrect": 2,
    "uncertain": 0,
    "missing": 0,
    "fabricated": 2,
    "overall_accuracy_percent": 71.4
  },
  "field_verifications": [
    {"field_path": "property_metrics.land_area_sqm", "status": "FABRICATED",
     "extracted_value": 8000, "correct_value": null,
     "notes": "Land area is not stated anywhere in the document"},
    {"field_path": "property_metrics.breakdown_by_use.parking_sqm", "status": "fabricated",
     "extracted_value": 450, "correct_value": null},
    {"field_path": "property_identity.city", "status": "INCORRECT",
     "extracted_value": "Gaimersheim/Ingolstadt", "correct_value": "Gaimersheim",
     "source_location": "page 1, header"},
    {"field_path": "financial.total_rental_income_annual_eur", "status": "INCORRECT",
     "extracted_value": 720000, "correct_value": 708000,
     "source_location": "page 4, rent roll"}
  ],
  "calculation_checks": [],
  "critical_issues": ["Land area in sqm was not stated in the document"]
}
```"""


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72

_SEVERITY_COLORS = {
    Severity.CRITICAL: _RED,
    Severity.HIGH: _RED,
    Severity.MEDIUM: _YELLOW,
    Severity.LOW: _CYAN,
}


# ─── Pretty Printer Helpers ─────────────────────────────────────────


def _print_changes(changes) -> None:
    """Print every field the corrections touched."""
    if not changes:
        print(f"  {_DIM}No corrections applied{_RESET}")
        return
    print(f"  {_BOLD}CHANGES ({len(changes)}){_RESET}")
    for d in changes:
        color = _SEVERITY_COLORS[d.severity]
        print(f"    {color}[{d.severity.value.upper()}]{_RESET} {d.path}")
        print(f"      {d.left_value!r} {_DIM}→{_RESET} {_BOLD}{d.right_value!r}{_RESET}")
        print(f"      {_DIM}{d.issue_type.value}: {d.notes}{_RESET}")


def _print_issues(issues) -> None:
    """Print calculation audit issues grouped by severity."""
    for severity in (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW):
        group = [i for i in issues if i.severity == severity]
        if not group:
            continue
        color = _SEVERITY_COLORS[severity]
        print(f"\n  {color}{_BOLD}{severity.value.upper()} ({len(group)}){_RESET}")
        for issue in group:
            print(f"    {color}[{issue.path}]{_RESET}")
            print(f"    {issue.description}")
            if issue.magnitude is not None:
                print(f"      {_DIM}magnitude: {issue.magnitude:g}{_RESET}")


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_report(report) -> int:
    """Pretty-print the reconciliation report with ANSI color codes.

    Returns:
        0 if the corrected record passed the calculation audit, 1 otherwise.
    """
    confidence = "N/A" if report.confidence_score is None else f"{report.confidence_score:g}%"

    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  EXTRACTION RECONCILIATION REPORT{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Type:        {report.property_type.value}")
    print(f"  Fields:      {report.fields_extracted}")
    print(f"  Confidence:  {_BOLD}{confidence}{_RESET}")
    if report.verification_summary:
        s = report.verification_summary
        print(
            f"  Verified:    {s.correct} correct, {s.incorrect} incorrect, "
            f"{s.fabricated} fabricated, {s.missing} missing"
        )
    print(f"{'─' * _WIDTH}")

    _print_changes(report.changes)

    print(f"{'─' * _WIDTH}")
    audit = report.calculation_validation
    print(f"  {_BOLD}CALCULATION AUDIT{_RESET}  {_DIM}{audit.summary.total_checks} sum check(s){_RESET}")
    _print_issues(audit.issues)

    for warning in report.schema_validation.warnings:
        print(f"    {_YELLOW}schema:{_RESET} {warning}")
    for error in report.schema_validation.errors:
        print(f"    {_RED}schema:{_RESET} {error}")

    print(f"\n{'=' * _WIDTH}")
    color = _GREEN if report.recommendation.startswith(("HIGH", "ACCEPTABLE")) else _YELLOW
    print(f"  {color}{_BOLD}{report.recommendation}{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if audit.is_valid else 1


# ─── Main ────────────────────────────────────────────────────────────


def _load_json(path: str):
    return json.loads(Path(path).read_text(encoding="utf-8"))


def main(argv: list[str] | None = None):
    """Run the reconciliation pipeline and print the report."""
    args = sys.argv[1:] if argv is None else argv
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    if args:
        record = _load_json(args[0])
        verification = _load_json(args[1]) if len(args) > 1 else None
    else:
        record, verification = SAMPLE_RECORD, SAMPLE_VERIFICATION

    print("\n  Starting Exposé Extraction Reconciler...")
    print("  Reconciling extracted record...\n")

    pipeline = ReconciliationPipeline()
    report = pipeline.run(record, verification=verification)
    exit_code = print_report(report)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
