"""
Pydantic models for reconciliation data — strict typing at the boundaries.

The extracted records themselves stay plain JSON-shaped data (dicts, lists,
primitives): the LLM decides their shape and the engine must stay total over
whatever arrives. Everything the engine *produces* or *consumes as a report*
is a typed model.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


# ─── Enumerations ───────────────────────────────────────────────────


class Severity(str, Enum):
    """Severity of a difference or calculation issue."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"  # Fabrication or structural breakage


class IssueType(str, Enum):
    """How a value changed between two sides of a comparison."""

    REMOVED_FABRICATION = "removed_fabrication"
    ADDED_MISSING_DATA = "added_missing_data"
    STRING_MODIFICATION = "string_modification"
    VALUE_CHANGE = "value_change"
    NUMERIC_DISCREPANCY = "numeric_discrepancy"
    TYPE_MISMATCH = "type_mismatch"
    STRUCTURAL_MISMATCH = "structural_mismatch"  # Section / entry / shape missing on one side


class VerificationStatus(str, Enum):
    """Per-field judgment produced by the external verification pass."""

    CORRECT = "CORRECT"
    INCORRECT = "INCORRECT"
    UNCERTAIN = "UNCERTAIN"
    MISSING = "MISSING"
    FABRICATED = "FABRICATED"


class PropertyType(str, Enum):
    """Document shape tag: one composite property or a flat portfolio."""

    SINGLE = "SINGLE"
    PORTFOLIO = "PORTFOLIO"


# ─── Comparison ─────────────────────────────────────────────────────


class Difference(BaseModel):
    """One labeled location where two values disagree."""

    path: str
    severity: Severity
    left_value: Any = None
    right_value: Any = None
    issue_type: IssueType
    notes: str = ""
    absolute_diff: Optional[float] = None
    percent_diff: Optional[float] = None
    details: dict = Field(default_factory=dict)


class ComparisonStats(BaseModel):
    compared: int = 0
    different: int = 0
    identical: int = 0
    improvement_detected: bool = False


class ConfidenceMetrics(BaseModel):
    """Verification metadata known about the right-hand side of a comparison."""

    validated_confidence: Optional[float] = None
    validation_issues_found: int = 0
    calculation_issues_found: int = 0


class ComparisonReport(BaseModel):
    property_type: PropertyType
    differences: list[Difference] = Field(default_factory=list)
    stats: ComparisonStats = Field(default_factory=ComparisonStats)
    confidence_metrics: ConfidenceMetrics = Field(default_factory=ConfidenceMetrics)


class SummaryOverview(BaseModel):
    fields_compared: int
    fields_different: int
    fields_identical: int
    difference_rate: str  # e.g. "12.50%" or "N/A"


class CriticalFindings(BaseModel):
    high_severity_issues: int
    fabrications_detected: int
    missing_data_found: int


class ComparisonSummary(BaseModel):
    """Human-readable digest of a ComparisonReport."""

    overview: SummaryOverview
    critical_findings: CriticalFindings
    validation_quality: ConfidenceMetrics
    recommendation: str


# ─── Verification Input ─────────────────────────────────────────────


class VerificationFinding(BaseModel):
    """An external judgment about one field's correctness.

    ``correct_value`` may legitimately be ``null`` ("the right answer is
    nothing"), so absence and null are told apart via ``has_correct_value``.
    """

    model_config = ConfigDict(populate_by_name=True)

    path: str = Field(alias="field_path")
    status: VerificationStatus
    extracted_value: Any = None
    correct_value: Any = None
    source_location: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @property
    def has_correct_value(self) -> bool:
        return "correct_value" in self.model_fields_set


class VerificationSummary(BaseModel):
    total_fields_checked: int = 0
    correct: int = 0
    incorrect: int = 0
    uncertain: int = 0
    missing: int = 0
    fabricated: int = 0
    overall_accuracy_percent: Optional[float] = None

    @field_validator(
        "total_fields_checked", "correct", "incorrect", "uncertain", "missing", "fabricated",
        mode="before",
    )
    @classmethod
    def _null_count_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class VerificationReport(BaseModel):
    """Structured output of the external self-verification pass."""

    model_config = ConfigDict(extra="allow")

    verification_summary: VerificationSummary = Field(default_factory=VerificationSummary)
    field_verifications: list[VerificationFinding] = Field(default_factory=list)
    calculation_checks: list[dict[str, Any]] = Field(default_factory=list)
    critical_issues: list[Any] = Field(default_factory=list)  # Free text, usually strings
    confidence_score: Optional[float] = None

    @field_validator("verification_summary", mode="before")
    @classmethod
    def _null_summary_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("calculation_checks", "critical_issues", mode="before")
    @classmethod
    def _null_list_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("field_verifications", mode="before")
    @classmethod
    def _drop_unusable_findings(cls, value: Any) -> Any:
        """Skip findings that do not validate (e.g. an unknown status) one by one."""
        if value is None:
            return []
        if not isinstance(value, list):
            return value

        kept: list[VerificationFinding] = []
        for index, entry in enumerate(value):
            if isinstance(entry, VerificationFinding):
                kept.append(entry)
                continue
            try:
                kept.append(VerificationFinding.model_validate(entry))
            except ValidationError as e:
                logger.warning(
                    "Skipping verification finding %d: %s",
                    index,
                    "; ".join(err["msg"] for err in e.errors(include_url=False)),
                )
        return kept


# ─── Calculation Audit ──────────────────────────────────────────────


class CalculationCheck(BaseModel):
    """One breakdown-sum-vs-stated-total check."""

    description: str  # e.g. "area_breakdown_sum"
    computed_sum: float
    stated_total: float
    absolute_diff: float
    tolerance: float
    within_tolerance: bool


class CalculationIssue(BaseModel):
    severity: Severity
    path: str
    description: str
    magnitude: Optional[float] = None
    note: Optional[str] = None
    property_index: Optional[int] = None  # Portfolio entries only
    property_name: Optional[str] = None


class ValidationSummary(BaseModel):
    total_checks: int = 0
    high_severity_issues: int = 0
    medium_severity_issues: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """Output of the calculation auditor."""

    is_valid: bool
    checks: list[CalculationCheck] = Field(default_factory=list)
    issues: list[CalculationIssue] = Field(default_factory=list)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)


# ─── Schema Shape ───────────────────────────────────────────────────


class SchemaValidation(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ─── Scoring & Final Report ─────────────────────────────────────────


class ConfidenceResult(BaseModel):
    confidence: Optional[float] = None  # None = unknown
    recommendation: str


class ReconciliationReport(BaseModel):
    """The final output of the reconciliation pipeline."""

    data: Any
    property_type: PropertyType
    corrections_applied: bool = False
    changes: list[Difference] = Field(default_factory=list)  # Original vs corrected record
    confidence_score: Optional[float] = None
    recommendation: str
    verification_summary: Optional[VerificationSummary] = None
    critical_issues: list[Any] = Field(default_factory=list)
    calculation_validation: ValidationResult
    schema_validation: SchemaValidation
    fields_extracted: int = 0
