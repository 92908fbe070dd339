"""
Confidence scoring and recommendations.

Two recommendation tables, used at different stages:

  * ``comparison_recommendation`` — used when comparing a baseline
    extraction against a corrected one, before any correction is trusted.
  * ``post_correction_recommendation`` — used after corrections have been
    applied, to tell a caller how far to trust the final record.

Their thresholds differ. In both tables the first matching rule wins.
"""

from __future__ import annotations

from .models import (
    ConfidenceResult,
    Severity,
    ValidationResult,
    VerificationReport,
    VerificationStatus,
    VerificationSummary,
)

NO_VALIDATION = "No validation performed"


# ─── Confidence Value ────────────────────────────────────────────────


def effective_summary(verification: VerificationReport) -> VerificationSummary:
    """The verifier's own counts, or counts tallied from its findings when it gave none."""
    summary = verification.verification_summary
    if summary.total_fields_checked or any(
        (summary.correct, summary.incorrect, summary.uncertain, summary.missing, summary.fabricated)
    ):
        return summary

    tally = {status: 0 for status in VerificationStatus}
    for finding in verification.field_verifications:
        tally[finding.status] += 1

    return VerificationSummary(
        total_fields_checked=len(verification.field_verifications),
        correct=tally[VerificationStatus.CORRECT],
        incorrect=tally[VerificationStatus.INCORRECT],
        uncertain=tally[VerificationStatus.UNCERTAIN],
        missing=tally[VerificationStatus.MISSING],
        fabricated=tally[VerificationStatus.FABRICATED],
        overall_accuracy_percent=summary.overall_accuracy_percent,
    )


def derive_confidence(verification: VerificationReport | None) -> float | None:
    """Confidence (0–100) for a verification report, or None when unknown.

    Prefers a score supplied by the verifier, then its stated accuracy
    percentage, and only then derives ``correct / total_checked * 100``.
    """
    if verification is None:
        return None

    if verification.confidence_score is not None:
        return float(verification.confidence_score)

    summary = effective_summary(verification)
    if summary.overall_accuracy_percent is not None:
        return float(summary.overall_accuracy_percent)

    total = summary.total_fields_checked or (
        summary.correct
        + summary.incorrect
        + summary.uncertain
        + summary.missing
        + summary.fabricated
    )
    if total <= 0:
        return None
    return round(summary.correct / total * 100, 2)


# ─── Recommendation Tables ───────────────────────────────────────────


def comparison_recommendation(
    *,
    fabricated: int,
    critical: int,
    confidence: float | None,
    difference_count: int,
) -> str:
    """Recommendation for a baseline-vs-corrected comparison report."""
    if fabricated > 5 or critical > 3:
        return (
            "STRONGLY RECOMMENDED: Use corrected extraction - "
            "baseline extraction has significant accuracy issues"
        )

    if fabricated > 2 or critical > 0:
        return "RECOMMENDED: Use corrected extraction for improved accuracy"

    # An unknown (or zero) confidence is no evidence either way
    if confidence and confidence < 80:
        return "CAUTION: Both extractions may have issues - manual review recommended"

    if difference_count == 0:
        return "OPTIONAL: Both extractions produced identical results"

    return "CONSIDER: Corrected extraction provides incremental improvements"


def post_correction_recommendation(
    *,
    confidence: float | None,
    fabricated: int,
    critical: int,
    high_calc_issues: int,
) -> str:
    """Recommendation for a record that has already been corrected."""
    score = confidence or 0

    if score < 60 or fabricated > 5 or critical > 5:
        return "LOW CONFIDENCE - Manual review strongly recommended. Multiple critical issues detected."

    if score < 75 or fabricated > 2 or critical > 2 or high_calc_issues > 2:
        return "MEDIUM CONFIDENCE - Review recommended for critical fields (financial data, areas)."

    if score >= 90 and fabricated == 0 and critical == 0:
        return "HIGH CONFIDENCE - Data appears accurate and reliable."

    return "ACCEPTABLE CONFIDENCE - Data has been validated and corrected. Spot checks recommended."


# ─── Scorer ──────────────────────────────────────────────────────────


def score(
    verification: VerificationReport | None,
    audit: ValidationResult | None = None,
) -> ConfidenceResult:
    """Aggregate a verification report and a calculation audit.

    Returns:
        ConfidenceResult; confidence is None and the recommendation says so
        when there is no usable verification report.
    """
    if verification is None:
        return ConfidenceResult(confidence=None, recommendation=NO_VALIDATION)

    high_calc_issues = 0
    if audit is not None:
        high_calc_issues = sum(1 for i in audit.issues if i.severity == Severity.HIGH)

    confidence = derive_confidence(verification)
    return ConfidenceResult(
        confidence=confidence,
        recommendation=post_correction_recommendation(
            confidence=confidence,
            fabricated=effective_summary(verification).fabricated,
            critical=len(verification.critical_issues),
            high_calc_issues=high_calc_issues,
        ),
    )
