"""
Correction applicator — turn verification findings into a corrected record.

The input record is never mutated: it is deep-copied once and only the copy
is changed. Findings are applied independently, in the order given:

    INCORRECT + correct value  → overwrite
    FABRICATED                 → null (never replaced by another guess)
    MISSING   + correct value  → fill in
    CORRECT / UNCERTAIN        → no-op

Breakdown-sum mismatches found by the auditor are NOT corrected here. The
stated total is always kept; the mismatch is only logged.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping, MutableMapping
from typing import Any

from .exceptions import UnsupportedPathError
from .models import ValidationResult, VerificationFinding, VerificationReport, VerificationStatus
from .paths import FieldPath, get_at_path, set_at_path

logger = logging.getLogger(__name__)


# ─── Free-Text Markers ───────────────────────────────────────────────
# TODO: replace with a structured issue-code enum in the verification
# report; substring matching on prose breaks as soon as the wording drifts.
# (all markers of a rule must appear, case-sensitive) → path to null,
# applied only when the path's parent mapping already exists.

CRITICAL_ISSUE_RULES: tuple[tuple[tuple[str, ...], FieldPath], ...] = (
    (("Land area", "not stated"), FieldPath.of("property_metrics", "land_area_sqm")),
    (("Parking area in sqm", "fabricated"), FieldPath.of("property_metrics", "breakdown_by_use", "parking_sqm")),
)

_BREAKDOWN_TOTAL_PATHS = {
    "property_metrics.total_usable_area_sqm": "Area",
    "financial.total_rental_income_annual_eur": "Income",
}


# ─── Public API ──────────────────────────────────────────────────────


def apply_corrections(
    record: Any,
    findings: Iterable[VerificationFinding | Mapping],
    critical_issues: Iterable[Any] = (),
) -> Any:
    """Return a corrected copy of ``record``.

    Args:
        record: The extracted record (single-property dict or portfolio list).
        findings: Per-field verification findings (models or raw dicts).
        critical_issues: Free-text issue notes for the heuristic fallback.

    Findings whose path cannot be set (list elements, non-mapping parents,
    portfolio records) are logged and skipped.
    """
    corrected = copy.deepcopy(record)

    for finding in findings:
        if not isinstance(finding, VerificationFinding):
            finding = VerificationFinding.model_validate(finding)
        _apply_finding(corrected, finding)

    _apply_critical_issue_markers(corrected, critical_issues)
    return corrected


def apply_intelligent_corrections(
    record: Any,
    verification: VerificationReport | None,
    calculation: ValidationResult | None = None,
) -> Any:
    """Apply a whole verification report, then log (never fix) sum mismatches.

    With no verification report this is a plain copy of the record.
    """
    if verification is None:
        return copy.deepcopy(record)

    corrected = apply_corrections(
        record, verification.field_verifications, verification.critical_issues
    )

    if calculation is not None:
        for issue in calculation.issues:
            label = _BREAKDOWN_TOTAL_PATHS.get(issue.path)
            if label:
                logger.info(
                    "%s breakdown doesn't match total (difference %s) - keeping stated total",
                    label,
                    issue.magnitude,
                )

    return corrected


# ─── Internal Helpers ────────────────────────────────────────────────


def _apply_finding(corrected: Any, finding: VerificationFinding) -> None:
    status = finding.status

    if status == VerificationStatus.FABRICATED:
        if _set(corrected, finding.path, None):
            logger.info("Removed fabricated field: %s", finding.path)
    elif status == VerificationStatus.INCORRECT and finding.has_correct_value:
        if _set(corrected, finding.path, finding.correct_value):
            logger.info("Corrected field: %s", finding.path)
    elif status == VerificationStatus.MISSING and finding.has_correct_value:
        if _set(corrected, finding.path, finding.correct_value):
            logger.info("Added missing field: %s", finding.path)


def _set(corrected: Any, path: str, value: Any) -> bool:
    try:
        set_at_path(corrected, path, value)
    except (UnsupportedPathError, ValueError) as e:
        logger.warning("Skipping correction at '%s': %s", path, e)
        return False
    return True


def _apply_critical_issue_markers(corrected: Any, critical_issues: Iterable[Any]) -> None:
    """Heuristic fallback: null known-risky fields named in free-text issues."""
    if not isinstance(corrected, MutableMapping):
        return

    for issue in critical_issues:
        if not isinstance(issue, str):
            continue
        for markers, path in CRITICAL_ISSUE_RULES:
            if not all(marker in issue for marker in markers):
                continue
            parent = get_at_path(corrected, FieldPath(path.segments[:-1]))
            if isinstance(parent, MutableMapping):
                parent[path.segments[-1]] = None
                logger.info("Nulled %s from critical issue note", path)
