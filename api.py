"""
Exposé Extraction Reconciler — FastAPI Server
=============================================

JSON API over the reconciliation engine. Extraction and verification are
produced upstream; this server only reconciles what it is handed.

Endpoints:
    POST /reconcile         Correct, audit and score one extracted record
    POST /reconcile/file    Same, from an uploaded JSON file
    POST /corrections       Apply verification findings to a record
    POST /audit             Run the calculation audit on a record
    POST /compare           Compare two extractions of the same document
    POST /score             Confidence + recommendation for a verification report
    GET  /health            Health check / readiness probe

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional, Union

from fastapi import FastAPI, HTTPException, Response, UploadFile
from pydantic import BaseModel, Field, ValidationError

from expose_reconciler import __version__
from expose_reconciler.auditor import audit_calculations
from expose_reconciler.config import Settings
from expose_reconciler.corrections import apply_corrections
from expose_reconciler.models import (
    ComparisonReport,
    ComparisonSummary,
    ConfidenceMetrics,
    ConfidenceResult,
    PropertyType,
    ReconciliationReport,
    ValidationResult,
    VerificationFinding,
)
from expose_reconciler.pipeline import ReconciliationPipeline
from expose_reconciler.scoring import score
from expose_reconciler.verification import parse_verification_report

# ─── Load .env if available ──────────────────────────────────────────
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass

logger = logging.getLogger(__name__)


# ─── Application Lifespan ────────────────────────────────────────────

_pipeline: ReconciliationPipeline | None = None
_settings: Settings = Settings.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the (stateless) pipeline once on startup."""
    global _pipeline  # noqa: PLW0603
    _pipeline = ReconciliationPipeline()
    yield
    _pipeline = None


app = FastAPI(
    title="Exposé Extraction Reconciler API",
    description=(
        "Field-level reconciliation of LLM-extracted real-estate data: "
        "verification-driven corrections, fabrication detection, "
        "arithmetic auditing and confidence scoring."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Request / Response Schemas ─────────────────────────────────────

Record = Union[dict[str, Any], list[Any]]


class ReconcileRequest(BaseModel):
    data: Record = Field(..., description="Extracted record: object (SINGLE) or array (PORTFOLIO).")
    property_type: Optional[PropertyType] = Field(
        default=None, description="Shape tag; inferred from `data` when omitted."
    )
    verification: Optional[Any] = Field(
        default=None,
        description="Verification report as an object or as the verifier's raw text.",
    )
    sanitize: bool = Field(
        default=False, description="Normalize German-format numbers before reconciling."
    )


class CorrectionsRequest(BaseModel):
    data: Record
    findings: list[VerificationFinding] = Field(default_factory=list)
    critical_issues: list[Any] = Field(default_factory=list)


class CorrectionsResponse(BaseModel):
    data: Record


class AuditRequest(BaseModel):
    data: Record
    property_type: PropertyType


class CompareRequest(BaseModel):
    left: Record = Field(..., description="Baseline extraction.")
    right: Record = Field(..., description="Corrected / candidate extraction.")
    property_type: PropertyType
    confidence_metrics: Optional[ConfidenceMetrics] = None


class CompareResponse(BaseModel):
    report: ComparisonReport
    summary: ComparisonSummary


class ScoreRequest(BaseModel):
    verification: Optional[Any] = None
    audit: Optional[ValidationResult] = None


class HealthResponse(BaseModel):
    status: str
    version: str


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_pipeline() -> ReconciliationPipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialised")
    return _pipeline


def _set_report_headers(response: Response, report: ReconciliationReport) -> None:
    confidence = report.confidence_score
    response.headers["X-Confidence-Score"] = "N/A" if confidence is None else f"{confidence:g}"
    response.headers["X-Corrections-Applied"] = str(report.corrections_applied).lower()
    fabricated = report.verification_summary.fabricated if report.verification_summary else 0
    response.headers["X-Fabrications-Detected"] = str(fabricated)
    response.headers["X-Validation-Issues"] = str(len(report.critical_issues))
    response.headers["X-Classification"] = report.property_type.value


# ─── Endpoints ───────────────────────────────────────────────────────


@app.post(
    "/reconcile",
    summary="Correct, audit and score an extracted record",
    tags=["Reconciliation"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def reconcile(request: ReconcileRequest, response: Response) -> ReconciliationReport:
    """Run the full reconciliation pipeline.

    An unusable verification report is not an error: the record comes back
    unchanged with `confidence_score: null`.
    """
    pipeline = _get_pipeline()
    report = pipeline.run(
        request.data, request.property_type, request.verification, sanitize=request.sanitize
    )
    _set_report_headers(response, report)
    return report


@app.post(
    "/reconcile/file",
    summary="Reconcile a record from an uploaded JSON file",
    tags=["Reconciliation"],
    responses={
        413: {"description": "File too large"},
        400: {"description": "File is not UTF-8 encoded JSON"},
        422: {"description": "JSON does not match the request schema"},
        503: {"description": "Pipeline not yet initialised"},
    },
)
async def reconcile_file(file: UploadFile, response: Response) -> ReconciliationReport:
    """Upload a `.json` file with the same body as `POST /reconcile`."""
    limit = _settings.max_payload_bytes
    if file.size and file.size > limit:
        raise HTTPException(status_code=413, detail=f"File too large (max {limit} bytes)")

    content = await file.read()
    if len(content) > limit:
        raise HTTPException(status_code=413, detail=f"File too large (max {limit} bytes)")

    try:
        payload = json.loads(content.decode("utf-8"))
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File must be UTF-8 encoded JSON")
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON: {e.msg}")

    try:
        request = ReconcileRequest.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )

    pipeline = _get_pipeline()
    report = await asyncio.to_thread(
        functools.partial(pipeline.run, sanitize=request.sanitize),
        request.data,
        request.property_type,
        request.verification,
    )
    _set_report_headers(response, report)
    return report


@app.post("/corrections", summary="Apply verification findings", tags=["Reconciliation"])
def corrections(request: CorrectionsRequest) -> CorrectionsResponse:
    """Return a corrected copy of `data`; unsupported finding paths are skipped."""
    return CorrectionsResponse(
        data=apply_corrections(request.data, request.findings, request.critical_issues)
    )


@app.post("/audit", summary="Audit arithmetic consistency", tags=["Validation"])
def audit(request: AuditRequest) -> ValidationResult:
    return audit_calculations(request.data, request.property_type)


@app.post(
    "/compare",
    summary="Compare two extractions",
    tags=["Validation"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def compare(request: CompareRequest) -> CompareResponse:
    pipeline = _get_pipeline()
    report, summary = pipeline.compare(
        request.left, request.right, request.property_type, request.confidence_metrics
    )
    return CompareResponse(report=report, summary=summary)


@app.post("/score", summary="Score a verification report", tags=["Validation"])
def score_verification(request: ScoreRequest) -> ConfidenceResult:
    return score(parse_verification_report(request.verification), request.audit)


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def health_check() -> HealthResponse:
    """Returns service status and version."""
    _get_pipeline()
    return HealthResponse(status="healthy", version=_settings.app_version)
